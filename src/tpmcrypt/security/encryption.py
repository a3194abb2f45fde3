"""
Encryption and decryption services for tpmcrypt.

These are the top-level operations the frontends call. They combine
:class:`~tpmcrypt.security.sealed_keys.SealedKeyManager` (key material kept in
the secure store) with the AES-256-CBC pipeline in
:mod:`tpmcrypt.security.cipher`:

- ``encrypt_bytes`` seals a *fresh* key/IV pair under the reference, unseals it
  again and encrypts. Reusing a reference replaces its key, so anything
  encrypted earlier under that reference can no longer be decrypted.
- ``decrypt_bytes`` unseals the pair stored under the reference and decrypts.

The ciphertext is raw CBC output with no header; the caller must keep the key
reference to decrypt it later.

Failures are logged here and re-raised as the typed errors from
:mod:`tpmcrypt.core.exceptions`; nothing is retried.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tpmcrypt.core.exceptions import TpmCryptError
from tpmcrypt.core.fileio import read_file_bytes, write_file_bytes
from tpmcrypt.security.cipher import DEFAULT_CHUNK_SIZE, decrypt, encrypt
from tpmcrypt.security.sealed_keys import SealedKeyManager

logger = logging.getLogger(__name__)


class EncryptionService:
    """Encrypts buffers and files under newly sealed key material."""

    def __init__(self, key_manager: SealedKeyManager, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.key_manager = key_manager
        self.chunk_size = chunk_size

    def encrypt_bytes(self, plaintext: bytes, reference: str) -> bytes:
        """
        Generate and seal a key for ``reference`` and return the ciphertext of ``plaintext``.

        The result length is a multiple of 16 and at least 16 bytes, even for
        empty input.
        """
        try:
            self.key_manager.generate_and_seal(reference)
            with self.key_manager.unseal(reference) as material:
                logger.info("Encrypting %d bytes under '%s'", len(plaintext), reference)
                return encrypt(material.key, material.iv, plaintext, self.chunk_size)
        except TpmCryptError as e:
            logger.error("Unable to encrypt data under '%s': %s", reference, e)
            raise

    def encrypt_file(self, src_path: str | Path, dst_path: str | Path, reference: str) -> None:
        """
        Encrypt the whole of ``src_path`` into ``dst_path``.

        ``dst_path`` is written through a temp file and rename, so a failure
        never leaves a truncated ciphertext behind.
        """
        try:
            plaintext = read_file_bytes(src_path)
            ciphertext = self.encrypt_bytes(plaintext, reference)
            write_file_bytes(dst_path, ciphertext)
        except TpmCryptError as e:
            logger.error("Unable to encrypt the requested file %s: %s", src_path, e)
            raise
        logger.info("Encrypted %s -> %s with key reference '%s'", src_path, dst_path, reference)


class DecryptionService:
    """Decrypts buffers and files with key material unsealed by reference."""

    def __init__(self, key_manager: SealedKeyManager, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.key_manager = key_manager
        self.chunk_size = chunk_size

    def decrypt_bytes(self, ciphertext: bytes, reference: str) -> bytes:
        """Return the plaintext of ``ciphertext`` using the key sealed under ``reference``."""
        try:
            with self.key_manager.unseal(reference) as material:
                logger.info("Decoding %d bytes under '%s'", len(ciphertext), reference)
                return decrypt(material.key, material.iv, ciphertext, self.chunk_size)
        except TpmCryptError as e:
            logger.error("Unable to decrypt data under '%s': %s", reference, e)
            raise

    def decrypt_file(self, src_path: str | Path, dst_path: str | Path, reference: str) -> None:
        """Decrypt the whole of ``src_path`` into ``dst_path``."""
        try:
            ciphertext = read_file_bytes(src_path)
            plaintext = self.decrypt_bytes(ciphertext, reference)
            write_file_bytes(dst_path, plaintext)
        except TpmCryptError as e:
            logger.error("Unable to decrypt the requested file %s: %s", src_path, e)
            raise
        logger.info("Decrypted %s -> %s with key reference '%s'", src_path, dst_path, reference)
