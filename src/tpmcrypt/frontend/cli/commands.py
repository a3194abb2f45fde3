"""Command line entry point for tpmcrypt.

    tpmcrypt encrypt secret.txt secret.enc --ref alpha
    tpmcrypt decrypt secret.enc secret.txt --ref alpha
    tpmcrypt delete-key alpha
    tpmcrypt wipe --yes
    tpmcrypt tui

Exit codes: 0 on success, 1 when the operation failed, 2 when the environment
is unusable (for example the entropy source cannot be read).
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from tpmcrypt.core.config import load_config
from tpmcrypt.core.exceptions import TpmCryptError
from tpmcrypt.frontend.cli.context import AppContext, build_context
from tpmcrypt.frontend.cli.logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpmcrypt",
        description="Encrypt and decrypt files with keys sealed in the TPM.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: TPMCRYPT_LOG_LEVEL or INFO).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    enc = sub.add_parser("encrypt", help="Encrypt a file under a new sealed key")
    enc.add_argument("src", help="Path of the file to encrypt")
    enc.add_argument("dst", help="Path of the encrypted output file")
    enc.add_argument(
        "--ref",
        required=True,
        help="Key reference, needed again to decrypt the file later",
    )

    dec = sub.add_parser("decrypt", help="Decrypt a file with its sealed key")
    dec.add_argument("src", help="Path of the file to decrypt")
    dec.add_argument("dst", help="Path of the plaintext output file")
    dec.add_argument("--ref", required=True, help="Key reference used to encrypt the file")

    delete = sub.add_parser("delete-key", help="Delete the sealed key and IV of a reference")
    delete.add_argument("ref", help="Key reference to delete")

    wipe = sub.add_parser("wipe", help="Delete ALL tpmcrypt data in the store and the provisioning marker")
    wipe.add_argument("--yes", action="store_true", help="Confirm the irreversible wipe")

    sub.add_parser("tui", help="Start the interactive menu")
    return parser


def _dispatch(args: argparse.Namespace, ctx: AppContext) -> int:
    if args.command == "encrypt":
        ctx.encryptor.encrypt_file(args.src, args.dst, args.ref)
        print(f"Encrypted {args.src} -> {args.dst} (key reference '{args.ref}')")
    elif args.command == "decrypt":
        ctx.decryptor.decrypt_file(args.src, args.dst, args.ref)
        print(f"Decrypted {args.src} -> {args.dst}")
    elif args.command == "delete-key":
        ctx.keys.delete(args.ref)
        print(f"Deleted sealed key data for '{args.ref}'")
    elif args.command == "wipe":
        if not args.yes:
            print("Refusing to wipe without --yes", file=sys.stderr)
            return EXIT_FAILED
        ctx.client.wipe_all()
        print("Deleted all tpmcrypt data")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_FAILED

    if args.command == "tui":
        from tpmcrypt.frontend.cli.app import TpmCryptApp

        configure_logging(args.log_level or config.log_level, config.log_file or "tpmcrypt.log")
        app = TpmCryptApp(build_context(config))
        app.run()
        return app.return_code or EXIT_OK

    configure_logging(args.log_level or config.log_level, config.log_file)
    ctx = build_context(config)
    try:
        return _dispatch(args, ctx)
    except TpmCryptError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.fatal:
            logger.critical("Unrecoverable environment fault: %s", e)
            return EXIT_FATAL
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
