#!/usr/bin/env python3
"""
URL Parity CLI

Usage:
    parity diff [--prod PATH] [--local PATH] [--out DIR] [--generated-at TS]
    parity fix  [--diff PATH] [--local PATH] [--out DIR] [--rules PATH]
                [--workers N] [--delay S] [--timeout S]
                [--no-extract] [--resume] [--regenerate]

    python -m parity diff ...

Exit codes:
    0    stage completed (fix: even with skips or failed extractions)
    1    input error (missing/invalid inventory, diff report or rule file)
    2    usage error
    130  fix run cancelled
"""

import argparse
import sys

from parity import __version__
from parity.diff import diff_urls
from parity.fix import fix_urls


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parity",
        description="URL parity audit and remediation between production and a local rebuild",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    diff_parser = subparsers.add_parser("diff", help="Diff production and local URL inventories")
    diff_urls.build_parser(diff_parser)
    diff_parser.set_defaults(handler=diff_urls.run_from_args)

    fix_parser = subparsers.add_parser("fix", help="Decide and stage remediation for missing URLs")
    fix_urls.build_parser(fix_parser)
    fix_parser.set_defaults(handler=fix_urls.run_from_args)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 2
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
