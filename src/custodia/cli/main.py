from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from custodia.cli.commands import (
    access_cmd,
    import_cmd,
    init_cmd,
    representations_cmd,
    resources_cmd,
    web_cmd,
)
from custodia.cli.context import CLIContext
from custodia.core.config import load_paths
from custodia.core.errors import CustodiaError
from custodia.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="custodia",
        description="Custodia usage-controlled resource broker",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .custodia data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    resources_cmd.register(subparsers)
    representations_cmd.register(subparsers)
    access_cmd.register(subparsers)
    import_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    paths = load_paths(args.project_root)
    ctx = CLIContext(paths=paths, console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except CustodiaError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
