from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from mediagrab.core.config import AppPaths, ExtractorSettings


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    settings: ExtractorSettings
    console: Console
