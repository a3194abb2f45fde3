"""Security helpers: sealed key storage and the AES-256-CBC pipeline for tpmcrypt.

This package provides:
- a secure store client with one-time provisioning (TPM via FAPI, or OS keyring)
- per-reference generation, sealing and unsealing of key/IV pairs
- a streaming AES-256-CBC/PKCS#7 cipher pipeline
- byte and file level encryption/decryption services
"""

from .entropy import RandomSource
from .key_reference import SealedPaths, key_paths, validate_reference
from .store import ProvisioningState, SecureStoreClient, StoreSession
from .sealed_keys import SealedKeyManager, SymmetricKeyMaterial
from .cipher import (
    CipherContext,
    decrypt,
    decrypt_init,
    encrypt,
    encrypt_init,
    output_capacity,
)
from .encryption import DecryptionService, EncryptionService

__all__ = [
    "RandomSource",
    "SealedPaths",
    "key_paths",
    "validate_reference",
    "ProvisioningState",
    "SecureStoreClient",
    "StoreSession",
    "SealedKeyManager",
    "SymmetricKeyMaterial",
    "CipherContext",
    "encrypt_init",
    "decrypt_init",
    "encrypt",
    "decrypt",
    "output_capacity",
    "EncryptionService",
    "DecryptionService",
]
