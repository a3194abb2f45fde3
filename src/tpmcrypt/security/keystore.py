"""OS keystore store session using keyring, for machines without a TPM.

Sealed objects are kept as small JSON records in the OS keystore under a
single service name, one account per store path:

    {"data": <base64 bytes>, "auth": <sha256 hex of auth secret>, "type": "noDa"}

An index record lists every path so subtrees (``/`` included) can be deleted.
Unsealing asks the registered auth callback for the secret and compares its
digest in constant time, mirroring how the TPM gates sealed objects.

Use this only for opt-in convenience storage; do not assume keyring provides
hardware-backed security on all platforms.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from typing import Optional

from tpmcrypt.core.exceptions import PathNotFoundError, StoreBackendError
from tpmcrypt.security.store import DEFAULT_SEAL_TYPE, AuthCallback, StoreSession

try:
    import keyring
    from keyring import errors as keyring_errors
except Exception:
    keyring = None
    keyring_errors = None

logger = logging.getLogger(__name__)

INDEX_ACCOUNT = "__tpmcrypt_index__"


def _require_keyring():
    if keyring is None:
        raise StoreBackendError("keyring package is not available; install keyring to use keystore features")


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms. If `keyring` is not available this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    # treat known platform backends as acceptable
    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def _auth_digest(auth: bytes | str | None) -> str:
    if auth is None:
        auth = b""
    if isinstance(auth, str):
        auth = auth.encode("utf-8")
    return hashlib.sha256(auth).hexdigest()


def _is_under(path: str, root: str) -> bool:
    if root == "/":
        return True
    root = root.rstrip("/")
    return path == root or path.startswith(root + "/")


class KeyringSession(StoreSession):
    """Store session over the OS keystore. ``close`` only drops the callback."""

    def __init__(self, service: str = "tpmcrypt", allow_insecure: bool = False):
        _require_keyring()
        self.service = service
        self.allow_insecure = allow_insecure
        self._auth_callback: Optional[AuthCallback] = None

    # ------------------------------------------------------------------
    # Index helpers
    # ------------------------------------------------------------------

    def _load_index(self) -> list[str]:
        raw = self._get(INDEX_ACCOUNT)
        if raw is None:
            return []
        try:
            paths = json.loads(raw)
        except ValueError as e:
            raise StoreBackendError(f"corrupt keyring index for service '{self.service}': {e}") from e
        return [p for p in paths if isinstance(p, str)]

    def _save_index(self, paths: list[str]) -> None:
        self._set(INDEX_ACCOUNT, json.dumps(sorted(set(paths))))

    # ------------------------------------------------------------------
    # keyring access, with backend errors wrapped
    # ------------------------------------------------------------------

    def _get(self, account: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, account)
        except keyring_errors.KeyringError as e:
            raise StoreBackendError(f"keyring read of {account} failed: {e}") from e

    def _set(self, account: str, secret: str) -> None:
        try:
            keyring.set_password(self.service, account, secret)
        except keyring_errors.KeyringError as e:
            raise StoreBackendError(f"keyring write of {account} failed: {e}") from e

    def _remove(self, account: str) -> None:
        try:
            keyring.delete_password(self.service, account)
        except keyring_errors.PasswordDeleteError:
            logger.debug("keyring entry %s already absent", account)
        except keyring_errors.KeyringError as e:
            raise StoreBackendError(f"keyring delete of {account} failed: {e}") from e

    # ------------------------------------------------------------------
    # StoreSession
    # ------------------------------------------------------------------

    def set_auth_callback(self, callback: AuthCallback) -> None:
        self._auth_callback = callback

    def provision(self) -> None:
        secure, msg = assess_keyring_backend()
        if not secure:
            if not self.allow_insecure:
                raise StoreBackendError(
                    f"refusing to store key material in OS keystore: {msg}; "
                    "set TPMCRYPT_ALLOW_INSECURE_KEYRING=1 to override if you understand the risk"
                )
            logger.warning("Using insecure keyring backend: %s", msg)
        else:
            logger.info("Keyring backend: %s", msg)

    def create_seal(
        self,
        path: str,
        data: bytes,
        seal_type: str = DEFAULT_SEAL_TYPE,
        policy_path: Optional[str] = None,
        auth: Optional[str] = None,
    ) -> None:
        if self._get(path) is not None:
            raise StoreBackendError(f"object already exists at {path}")
        record = {
            "data": base64.b64encode(bytes(data)).decode("ascii"),
            "auth": _auth_digest(auth),
            "type": seal_type,
        }
        if policy_path:
            record["policy"] = policy_path
        # index first, so a record never exists outside the index
        paths = self._load_index()
        paths.append(path)
        self._save_index(paths)
        self._set(path, json.dumps(record))

    def unseal(self, path: str) -> bytes:
        raw = self._get(path)
        if raw is None:
            raise PathNotFoundError(f"no object at {path}")
        try:
            record = json.loads(raw)
            data = base64.b64decode(record["data"], validate=True)
            expected = record["auth"]
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise StoreBackendError(f"corrupt sealed object at {path}: {e}") from e

        if self._auth_callback is None:
            raise StoreBackendError(f"no auth callback registered to unseal {path}")
        presented = _auth_digest(self._auth_callback(path, f"unseal {path}"))
        if not hmac.compare_digest(presented, expected):
            raise StoreBackendError(f"authorization rejected for {path}")
        return data

    def delete(self, path: str) -> None:
        paths = self._load_index()
        doomed = [p for p in paths if _is_under(p, path)]
        if path not in doomed and self._get(path) is not None:
            doomed.append(path)
        if not doomed:
            raise PathNotFoundError(f"no object at {path}")
        for p in doomed:
            self._remove(p)
        self._save_index([p for p in paths if p not in doomed])

    def close(self) -> None:
        self._auth_callback = None
