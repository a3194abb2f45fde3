"""AES-256-CBC pipeline with PKCS#7 padding, driven init -> update* -> finalize.

    ctx = encrypt_init(key, iv)
    out = ctx.update(chunk_1) + ctx.update(chunk_2) + ctx.finalize()

Ciphertext is the concatenation of every update/finalize output in call order.
Encrypting ``n`` bytes never produces more than ``output_capacity(n)`` bytes
(``n`` plus one block of padding); decrypting never produces more than went in.

A context moves INIT -> UPDATING -> DONE, or to FAILED from any state once an
error is raised. Finished and failed contexts release their cipher objects and
refuse further use.
"""

from __future__ import annotations

import enum
import logging

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from tpmcrypt.core.exceptions import (
    CipherStateError,
    InvalidKeyMaterialError,
    PaddingInvalidError,
)

logger = logging.getLogger(__name__)

BLOCK_SIZE = 16
KEY_SIZE = 32
IV_SIZE = 16
DEFAULT_CHUNK_SIZE = 64 * 1024


class CipherState(enum.Enum):
    INIT = "init"
    UPDATING = "updating"
    DONE = "done"
    FAILED = "failed"


class Direction(enum.Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


def output_capacity(input_length: int) -> int:
    """Largest output the encrypt direction can produce for ``input_length`` bytes."""
    return input_length + BLOCK_SIZE


def _check_material(key: bytes, iv: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise InvalidKeyMaterialError(f"AES-256 needs a {KEY_SIZE}-byte key, got {len(key)} bytes")
    if len(iv) != IV_SIZE:
        raise InvalidKeyMaterialError(f"CBC needs a {IV_SIZE}-byte iv, got {len(iv)} bytes")


class CipherContext:
    """State of a single encrypt or decrypt operation."""

    def __init__(self, direction: Direction, key: bytes, iv: bytes):
        _check_material(key, iv)
        self.direction = direction
        cipher = Cipher(algorithms.AES(bytes(key)), modes.CBC(bytes(iv)))
        if direction is Direction.ENCRYPT:
            self._cipher = cipher.encryptor()
            self._padding = padding.PKCS7(BLOCK_SIZE * 8).padder()
        else:
            self._cipher = cipher.decryptor()
            self._padding = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        self.state = CipherState.INIT
        self.bytes_in = 0
        self.bytes_out = 0

    def _require_open(self) -> None:
        if self.state in (CipherState.DONE, CipherState.FAILED):
            raise CipherStateError(f"cipher context is {self.state.value}; start a new operation")

    def _release(self, state: CipherState) -> None:
        self.state = state
        self._cipher = None
        self._padding = None

    def update(self, chunk: bytes) -> bytes:
        """Feed ``chunk``; returns whatever whole blocks are ready."""
        self._require_open()
        try:
            if self.direction is Direction.ENCRYPT:
                out = self._cipher.update(self._padding.update(chunk))
            else:
                out = self._padding.update(self._cipher.update(chunk))
        except Exception:
            self._release(CipherState.FAILED)
            raise
        self.state = CipherState.UPDATING
        self.bytes_in += len(chunk)
        self.bytes_out += len(out)
        return out

    def finalize(self) -> bytes:
        """Flush buffered bytes, adding (encrypt) or checking (decrypt) padding."""
        self._require_open()
        try:
            if self.direction is Direction.ENCRYPT:
                out = self._cipher.update(self._padding.finalize()) + self._cipher.finalize()
            else:
                try:
                    tail = self._cipher.finalize()
                    out = self._padding.update(tail) + self._padding.finalize()
                except ValueError as e:
                    raise PaddingInvalidError(
                        f"decryption failed, bad padding (wrong key or corrupt ciphertext): {e}"
                    ) from e
        except Exception:
            self._release(CipherState.FAILED)
            raise
        self._release(CipherState.DONE)
        self.bytes_out += len(out)
        return out


def encrypt_init(key: bytes, iv: bytes) -> CipherContext:
    return CipherContext(Direction.ENCRYPT, key, iv)


def decrypt_init(key: bytes, iv: bytes) -> CipherContext:
    return CipherContext(Direction.DECRYPT, key, iv)


def _run(ctx: CipherContext, data: bytes, chunk_size: int) -> bytes:
    out = bytearray()
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        out += ctx.update(view[offset:offset + chunk_size])
    out += ctx.finalize()
    return bytes(out)


def encrypt(key: bytes, iv: bytes, plaintext: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Encrypt ``plaintext`` in ``chunk_size`` updates plus a final flush."""
    return _run(encrypt_init(key, iv), plaintext, chunk_size)


def decrypt(key: bytes, iv: bytes, ciphertext: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Decrypt ``ciphertext``; raises PaddingInvalidError for bad padding."""
    return _run(decrypt_init(key, iv), ciphertext, chunk_size)

