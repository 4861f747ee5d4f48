#!/usr/bin/env python3
"""
Link Shard Validator - Command Line

Usage:
    lsv validate [--all | --changed-only] [--check] [--root DIR]
    lsv verify-urls [--all] [--workers N] [--root DIR]

Diagnostics are written to stderr; only the final status line goes to stdout.
"""

from __future__ import annotations

import argparse
import sys

import update_index
import validate_urls
from lsv_validation_common import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the lsv parser with one subcommand per pass."""
    parser = argparse.ArgumentParser(prog="lsv", description="Validate and verify file_N.cfg link shards")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate", help="Validate record files and regenerate _index.cfg")
    update_index.add_arguments(validate)
    validate.set_defaults(handler=update_index.run_cli)

    verify = commands.add_parser("verify-urls", help="Check that record URLs and preview images are live")
    validate_urls.add_arguments(verify)
    verify.set_defaults(handler=validate_urls.run_cli)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point dispatching to the selected subcommand."""
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
