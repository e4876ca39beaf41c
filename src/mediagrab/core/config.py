from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    home_dir: Path
    artifact_dir: Path


@dataclass(frozen=True)
class ExtractorSettings:
    binary: str = "yt-dlp"
    player_client: str = "android"
    allowed_hosts: tuple[str, ...] = ("youtube.com", "youtu.be")
    job_timeout_seconds: float = 900.0
    ready_timeout_seconds: float = 10.0
    artifact_ttl_seconds: float = 3600.0
    reaper_interval_seconds: float = 300.0
    reaper_enabled: bool = True


DEFAULT_HOME_DIRNAME = ".mediagrab"


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("MEDIAGRAB_HOME")
    if home_raw:
        home_dir = Path(home_raw).expanduser().resolve()
    else:
        home_dir = root / DEFAULT_HOME_DIRNAME

    artifact_raw = os.getenv("MEDIAGRAB_ARTIFACT_DIR")
    artifact_dir = Path(artifact_raw).expanduser().resolve() if artifact_raw else home_dir / "artifacts"

    return AppPaths(project_root=root, home_dir=home_dir, artifact_dir=artifact_dir)


def load_settings() -> ExtractorSettings:
    defaults = ExtractorSettings()
    return ExtractorSettings(
        binary=os.getenv("MEDIAGRAB_YTDLP_BINARY", "").strip() or defaults.binary,
        player_client=os.getenv("MEDIAGRAB_PLAYER_CLIENT", "").strip() or defaults.player_client,
        allowed_hosts=_read_list_env("MEDIAGRAB_ALLOWED_HOSTS", defaults.allowed_hosts),
        job_timeout_seconds=_read_non_negative_float_env(
            "MEDIAGRAB_JOB_TIMEOUT_SECONDS", defaults.job_timeout_seconds
        ),
        ready_timeout_seconds=_read_float_env("MEDIAGRAB_READY_TIMEOUT_SECONDS", defaults.ready_timeout_seconds),
        artifact_ttl_seconds=_read_float_env("MEDIAGRAB_ARTIFACT_TTL_SECONDS", defaults.artifact_ttl_seconds),
        reaper_interval_seconds=_read_float_env(
            "MEDIAGRAB_REAPER_INTERVAL_SECONDS", defaults.reaper_interval_seconds
        ),
        reaper_enabled=_read_bool_env("MEDIAGRAB_REAPER_ENABLED", defaults.reaper_enabled),
    )


def _read_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_non_negative_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _read_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(item.strip().lower() for item in raw.split(",") if item.strip())
    return items or default
