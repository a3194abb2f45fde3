"""Generation, sealing and unsealing of per-reference symmetric key material.

Each key reference owns two sealed objects: a 32-byte AES-256 key at
``<root>/<reference>`` and a 16-byte CBC IV at ``<root>/<reference>_iv``.
Unsealed material lives in :class:`SymmetricKeyMaterial`, whose buffers are
overwritten when the holder is done with them:

    with manager.unseal("alpha") as material:
        ctx = encrypt_init(material.key, material.iv)
"""

from __future__ import annotations

import logging
from typing import Optional

from tpmcrypt.core.exceptions import (
    InvalidKeyMaterialError,
    KeyNotFoundError,
    TpmCryptError,
)
from tpmcrypt.security.entropy import RandomSource
from tpmcrypt.security.key_reference import DEFAULT_KEY_ROOT, SealedPaths, key_paths
from tpmcrypt.security.store import SecureStoreClient

logger = logging.getLogger(__name__)

KEY_SIZE = 32
IV_SIZE = 16


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


class SymmetricKeyMaterial:
    """Key and IV buffers owned by one operation; zeroed by :meth:`wipe`."""

    __slots__ = ("_key", "_iv")

    def __init__(self, key: bytearray, iv: bytearray):
        self._key = key
        self._iv = iv

    @property
    def key(self) -> bytes:
        if self._key is None:
            raise RuntimeError("key material has been wiped")
        return bytes(self._key)

    @property
    def iv(self) -> bytes:
        if self._iv is None:
            raise RuntimeError("key material has been wiped")
        return bytes(self._iv)

    @property
    def wiped(self) -> bool:
        return self._key is None

    def wipe(self) -> None:
        """Overwrite both buffers (best-effort) and drop them."""
        try:
            if self._key is not None:
                _zero(self._key)
            if self._iv is not None:
                _zero(self._iv)
        finally:
            self._key = None
            self._iv = None

    def __enter__(self) -> "SymmetricKeyMaterial":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self.wiped else f"key={len(self._key)}B iv={len(self._iv)}B"
        return f"<SymmetricKeyMaterial {state}>"


class SealedKeyManager:
    """Seals fresh key/IV pairs and unseals them again by key reference."""

    def __init__(
        self,
        client: SecureStoreClient,
        random_source: Optional[RandomSource] = None,
        key_root: str = DEFAULT_KEY_ROOT,
    ):
        self.client = client
        self.random_source = random_source or RandomSource()
        self.key_root = key_root

    def paths_for(self, reference: str) -> SealedPaths:
        return key_paths(reference, self.key_root)

    def generate_and_seal(self, reference: str) -> SealedPaths:
        """Generate a new key and IV for ``reference`` and seal both.

        Any material previously sealed under ``reference`` is replaced, so
        ciphertext produced with it can no longer be decrypted. If sealing the
        IV fails, the freshly sealed key is removed again (best-effort) and the
        error re-raised; the reference must then be treated as unusable.
        """
        paths = self.paths_for(reference)
        key = iv = bytearray()
        try:
            key = self.random_source.read(KEY_SIZE)
            iv = self.random_source.read(IV_SIZE)
            with self.client.session() as session:
                self.client.seal(session, paths.key, key)
                try:
                    self.client.seal(session, paths.iv, iv)
                except TpmCryptError:
                    self._rollback(session, paths.key)
                    raise
        finally:
            _zero(key)
            _zero(iv)

        logger.info("Symmetric encryption key generated and sealed at: %s", paths.key)
        logger.info("IV generated and sealed at: %s", paths.iv)
        return paths

    def _rollback(self, session, path: str) -> None:
        try:
            self.client.delete(session, path)
            logger.warning("Rolled back sealed key at %s after IV seal failure", path)
        except TpmCryptError as e:
            logger.error("Could not roll back sealed key at %s: %s", path, e)

    def unseal(self, reference: str) -> SymmetricKeyMaterial:
        """Unseal the key and IV for ``reference``.

        Either both are returned or an error is raised; a key unsealed before
        the IV failed is zeroed first.
        """
        paths = self.paths_for(reference)
        logger.info("Unsealing key %s", reference)
        with self.client.session() as session:
            key = self.client.unseal(session, paths.key)
            try:
                iv = self.client.unseal(session, paths.iv)
            except TpmCryptError:
                _zero(key)
                raise

        material = SymmetricKeyMaterial(key, iv)
        if len(key) != KEY_SIZE or len(iv) != IV_SIZE:
            sizes = f"key={len(key)} bytes, iv={len(iv)} bytes"
            material.wipe()
            raise InvalidKeyMaterialError(
                f"material sealed under '{reference}' has the wrong size ({sizes}); "
                f"expected a {KEY_SIZE}-byte key and {IV_SIZE}-byte iv"
            )
        return material

    def delete(self, reference: str) -> None:
        """Remove the key and IV sealed under ``reference``."""
        paths = self.paths_for(reference)
        removed = 0
        with self.client.session() as session:
            for path in (paths.key, paths.iv):
                try:
                    self.client.delete(session, path)
                    removed += 1
                except KeyNotFoundError:
                    logger.warning("Nothing sealed at %s", path)
        if not removed:
            raise KeyNotFoundError(f"no sealed material for key reference '{reference}'")
        logger.info("Deleted sealed material for key reference '%s'", reference)
