"""Convenience entry point to run the tpmcrypt TUI menu.

Allows starting the application with `python main.py` from the project root.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the src/ directory is on sys.path so `import tpmcrypt` works
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tpmcrypt.frontend.cli.commands import main as cli_main


def main() -> None:
    """Run the tpmcrypt Textual menu."""
    sys.exit(cli_main(sys.argv[1:] or ["tui"]))


if __name__ == "__main__":
    main()
