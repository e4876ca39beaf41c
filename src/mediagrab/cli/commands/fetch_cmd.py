from __future__ import annotations

import argparse
from pathlib import Path

from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from mediagrab.application.services.job_service import ExtractionJobService
from mediagrab.cli.context import CLIContext
from mediagrab.core.files import write_bytes_atomic
from mediagrab.domain.models.event import PROGRESS, ProgressEvent
from mediagrab.domain.models.job import OUTPUT_FORMATS
from mediagrab.infrastructure.artifacts.store import ArtifactStore


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("fetch", help="Download one URL and write the result locally")
    parser.add_argument("url", help="Source URL")
    parser.add_argument(
        "--format",
        dest="output_format",
        default=None,
        help=f"Output format: {', '.join(sorted(OUTPUT_FORMATS))} (default: audio)",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output file or directory (default: ./download.<ext>)",
    )
    parser.set_defaults(handler=run_fetch)


def run_fetch(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ExtractionJobService(
        settings=ctx.settings,
        artifact_store=ArtifactStore(ctx.paths.artifact_dir),
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>5.1f}%"),
        TimeElapsedColumn(),
        console=ctx.console,
    )

    with progress:
        task = progress.add_task("Starting download...", total=100.0)

        def on_event(event: ProgressEvent) -> None:
            if event.kind == PROGRESS and event.percent is not None:
                progress.update(task, completed=event.percent, description=event.text or "Downloading...")

        retrieved = service.download(args.url, args.output_format, progress_callback=on_event)
        progress.update(task, completed=100.0, description="Completed.")

    target = _resolve_target(args.out, retrieved.extension)
    write_bytes_atomic(target, retrieved.data)

    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"File ID: {retrieved.artifact_id}",
                    f"Content type: {retrieved.content_type}",
                    f"Bytes: {len(retrieved.data)}",
                    f"Saved to: {target}",
                ]
            ),
            title="Download Complete",
        )
    )
    return 0


def _resolve_target(out: Path | None, extension: str) -> Path:
    if out is None:
        return Path.cwd() / f"download{extension}"
    if out.is_dir():
        return out / f"download{extension}"
    return out
