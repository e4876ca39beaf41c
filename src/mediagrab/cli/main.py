from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from mediagrab.cli.commands import doctor_cmd, fetch_cmd, reap_cmd, web_cmd
from mediagrab.cli.context import CLIContext
from mediagrab.core.config import load_paths, load_settings
from mediagrab.core.errors import MediagrabError
from mediagrab.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediagrab",
        description="Media extraction jobs over yt-dlp with live progress",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .mediagrab data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    fetch_cmd.register(subparsers)
    reap_cmd.register(subparsers)
    doctor_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    ctx = CLIContext(paths=load_paths(args.project_root), settings=load_settings(), console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except MediagrabError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
