"""Cryptographically secure random bytes for key and IV generation."""

from __future__ import annotations

import logging
import os
from typing import Optional

from tpmcrypt.core.exceptions import EntropyError

logger = logging.getLogger(__name__)

DEFAULT_ENTROPY_DEVICE = "/dev/random"


class RandomSource:
    """Blocking reader over the OS entropy device.

    ``device=None`` uses :func:`os.urandom`. There is no retry: a device that
    cannot be opened or runs dry raises :class:`EntropyError`, which is fatal.
    """

    def __init__(self, device: Optional[str] = DEFAULT_ENTROPY_DEVICE):
        self.device = device

    def read(self, length: int) -> bytearray:
        """Return exactly ``length`` random bytes in a mutable buffer."""
        if length < 0:
            raise ValueError("length must be non-negative")
        if self.device is None:
            try:
                return bytearray(os.urandom(length))
            except NotImplementedError as e:
                raise EntropyError(f"no OS randomness source available: {e}") from e

        buf = bytearray(length)
        view = memoryview(buf)
        filled = 0
        try:
            with open(self.device, "rb", buffering=0) as dev:
                # the device may return fewer bytes than asked for
                while filled < length:
                    n = dev.readinto(view[filled:])
                    if not n:
                        raise EntropyError(
                            f"entropy device {self.device} returned {filled} of {length} bytes"
                        )
                    filled += n
        except OSError as e:
            logger.critical("Error reading from %s: %s", self.device, e)
            raise EntropyError(f"unable to read entropy from {self.device}: {e}") from e
        finally:
            view.release()
        return buf

