"""Runtime configuration for tpmcrypt, read from ``TPMCRYPT_*`` environment variables.

Every field has a default that reproduces the classic behaviour: a TPM store
reached through FAPI, keys under ``/HS/SRK`` and a ``fapi_provisioned`` marker
in the working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

STORE_BACKENDS = ("tpm", "keyring")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass
class TpmCryptConfig:
    """Settings shared by the store client, key manager and services."""

    store_backend: str = "tpm"
    key_root: str = "/HS/SRK"
    marker_path: Path = Path("fapi_provisioned")
    entropy_device: Optional[str] = "/dev/random"
    seal_type: str = "noDa"
    wipe_path: str = "/"
    keyring_service: str = "tpmcrypt"
    allow_insecure_keyring: bool = False
    chunk_size: int = 64 * 1024
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"unknown store backend '{self.store_backend}', expected one of {', '.join(STORE_BACKENDS)}"
            )
        if not self.key_root.startswith("/"):
            raise ValueError(f"key root must be an absolute store path, got '{self.key_root}'")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk size must be positive, got {self.chunk_size}")
        self.marker_path = Path(self.marker_path)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{raw}'")


def load_config(env: Optional[Mapping[str, str]] = None) -> TpmCryptConfig:
    """Build a :class:`TpmCryptConfig` from ``env`` (defaults to ``os.environ``).

    Unset variables keep the dataclass defaults. ``TPMCRYPT_ENTROPY_DEVICE``
    set to an empty string selects ``os.urandom`` instead of a device file.
    """
    env = os.environ if env is None else env
    kwargs: dict = {}

    if "TPMCRYPT_STORE" in env:
        kwargs["store_backend"] = env["TPMCRYPT_STORE"].strip().lower()
    if "TPMCRYPT_KEY_ROOT" in env:
        kwargs["key_root"] = env["TPMCRYPT_KEY_ROOT"].rstrip("/") or "/"
    if "TPMCRYPT_PROVISIONED_MARKER" in env:
        kwargs["marker_path"] = Path(env["TPMCRYPT_PROVISIONED_MARKER"]).expanduser()
    if "TPMCRYPT_ENTROPY_DEVICE" in env:
        kwargs["entropy_device"] = env["TPMCRYPT_ENTROPY_DEVICE"] or None
    if "TPMCRYPT_SEAL_TYPE" in env:
        kwargs["seal_type"] = env["TPMCRYPT_SEAL_TYPE"]
    if "TPMCRYPT_WIPE_PATH" in env:
        kwargs["wipe_path"] = env["TPMCRYPT_WIPE_PATH"]
    if "TPMCRYPT_KEYRING_SERVICE" in env:
        kwargs["keyring_service"] = env["TPMCRYPT_KEYRING_SERVICE"]
    if "TPMCRYPT_ALLOW_INSECURE_KEYRING" in env:
        kwargs["allow_insecure_keyring"] = _parse_bool(
            "TPMCRYPT_ALLOW_INSECURE_KEYRING", env["TPMCRYPT_ALLOW_INSECURE_KEYRING"]
        )
    if "TPMCRYPT_CHUNK_SIZE" in env:
        try:
            kwargs["chunk_size"] = int(env["TPMCRYPT_CHUNK_SIZE"])
        except ValueError:
            raise ValueError(
                f"TPMCRYPT_CHUNK_SIZE must be an integer, got '{env['TPMCRYPT_CHUNK_SIZE']}'"
            ) from None
    if "TPMCRYPT_LOG_LEVEL" in env:
        kwargs["log_level"] = env["TPMCRYPT_LOG_LEVEL"].strip().upper()
    if env.get("TPMCRYPT_LOG_FILE"):
        kwargs["log_file"] = Path(env["TPMCRYPT_LOG_FILE"]).expanduser()

    return TpmCryptConfig(**kwargs)
