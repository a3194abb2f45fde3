"""Maps a caller-chosen key reference to the store paths of its key and IV."""

from __future__ import annotations

from dataclasses import dataclass

from tpmcrypt.core.exceptions import InvalidKeyReferenceError

DEFAULT_KEY_ROOT = "/HS/SRK"
IV_SUFFIX = "_iv"


@dataclass(frozen=True)
class SealedPaths:
    key: str
    iv: str


def validate_reference(reference: str) -> str:
    """Return ``reference`` unchanged or raise InvalidKeyReferenceError."""
    if not isinstance(reference, str) or not reference.strip():
        raise InvalidKeyReferenceError("key reference must be a non-empty string")
    if "/" in reference:
        # a separator would address an object outside this reference
        raise InvalidKeyReferenceError(f"key reference may not contain '/': {reference!r}")
    if reference.endswith(IV_SUFFIX):
        # would address the iv object of another reference
        raise InvalidKeyReferenceError(f"key reference may not end with '{IV_SUFFIX}': {reference!r}")
    return reference


def key_paths(reference: str, root: str = DEFAULT_KEY_ROOT) -> SealedPaths:
    """``<root>/<reference>`` for the key and ``<root>/<reference>_iv`` for the IV."""
    validate_reference(reference)
    key_path = f"{root.rstrip('/')}/{reference}"
    return SealedPaths(key=key_path, iv=key_path + IV_SUFFIX)
