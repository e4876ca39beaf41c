from __future__ import annotations

import argparse

from mediagrab.cli.context import CLIContext
from mediagrab.infrastructure.artifacts.store import ArtifactStore


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("reap", help="Delete artifacts nobody retrieved in time")
    parser.add_argument(
        "--max-age",
        type=float,
        default=None,
        help="Age in seconds after which an artifact is deleted (default: configured TTL)",
    )
    parser.set_defaults(handler=run_reap)


def run_reap(args: argparse.Namespace, ctx: CLIContext) -> int:
    max_age = ctx.settings.artifact_ttl_seconds if args.max_age is None else max(0.0, args.max_age)
    store = ArtifactStore(ctx.paths.artifact_dir)
    reaped = store.reap_expired(max_age)
    ctx.console.print(f"Reaped {len(reaped)} file(s) older than {max_age:g}s from {store.base_dir}")
    return 0
