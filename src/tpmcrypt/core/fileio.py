""" Whole-file read/write helpers used by file-mode encryption and the provisioning marker. """

import logging
import os
import tempfile
from pathlib import Path

from tpmcrypt.core.exceptions import IoFailureError

logger = logging.getLogger(__name__)


def read_file_bytes(path: str | Path) -> bytes:

    # Reads the whole file into memory.
    file_path = Path(path).expanduser()
    try:
        with open(file_path, "rb") as f:  # rb for reading in binary mode
            return f.read()
    except OSError as e:
        logger.error("Error reading file '%s': %s", file_path, e)
        raise IoFailureError(f"unable to read '{file_path}': {e}") from e


def write_file_bytes(path: str | Path, content: bytes) -> None:
    """Write ``content`` to ``path`` through a temp file in the same directory.

    The temp file is renamed over ``path`` only after a complete write, so a
    failure leaves ``path`` absent (or holding its previous content).
    """
    file_path = Path(path).expanduser()
    directory = file_path.parent
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=directory, prefix=f".{file_path.name}.", suffix=".tmp", delete=False
        ) as tmpf:
            tmp_path = Path(tmpf.name)
            tmpf.write(content)
            tmpf.flush()
            os.fsync(tmpf.fileno())
        os.replace(tmp_path, file_path)
        tmp_path = None
    except OSError as e:
        logger.error("Error writing file '%s': %s", file_path, e)
        raise IoFailureError(f"unable to write '{file_path}': {e}") from e
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.warning("Could not remove temp file '%s': %s", tmp_path, e)
