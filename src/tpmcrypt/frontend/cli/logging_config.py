"""Lightweight logging setup for the CLI and the TUI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


def configure_logging(level: int | str = logging.INFO, log_file: Optional[Path] = None) -> None:
    # Configure root logger once; keep output simple for terminals.
    # The TUI passes a log file so log lines do not draw over the screen.
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    target = {"filename": str(log_file)} if log_file else {"stream": sys.stdout}
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        **target,
    )
