"""Single-shot command runner: one JSON command on stdin, one JSON result on stdout.

Usage:
    echo '{"action": "List", "owner": "alice"}' | cidvault
    cidvault --ledger ./metadata.json --backend cli < upload.json

Exit code is 0 for success results and 1 for error results.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence, TextIO

from cidvault.config import STORAGE_BACKENDS, settings
from cidvault.services.ledger import Ledger
from cidvault.services.storage_backend import create_storage_backend

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cidvault",
        description="Apply one file-ledger command read as JSON from stdin",
    )
    parser.add_argument(
        "--ledger",
        metavar="PATH",
        default=None,
        help=f"Ledger file (default: {settings.ledger_path})",
    )
    parser.add_argument(
        "--backend",
        choices=STORAGE_BACKENDS,
        default=None,
        help=f"Storage backend (default: {settings.storage_backend})",
    )
    return parser


def main(
    argv: Sequence[str] | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> int:
    from cidvault.main import setup_logging

    args = build_parser().parse_args(argv)
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    # stdout carries only the result
    setup_logging(stream=sys.stderr)

    config = settings
    if args.backend is not None:
        config = settings.model_copy(update={"storage_backend": args.backend})

    try:
        storage = create_storage_backend(config)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    ledger = Ledger(
        path=args.ledger or config.ledger_path,
        storage=storage,
        enforce_owner_on_mutation=config.enforce_owner_on_mutation,
    )
    result = asyncio.run(ledger.handle_action(stdin.read()))

    stdout.write(json.dumps(result) + "\n")
    stdout.flush()
    return 1 if isinstance(result.get("error"), str) else 0


if __name__ == "__main__":
    raise SystemExit(main())
