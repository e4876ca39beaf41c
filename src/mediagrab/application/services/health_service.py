from __future__ import annotations

import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from mediagrab.core.config import ExtractorSettings
from mediagrab.core.files import is_writable_directory
from mediagrab.infrastructure.artifacts.store import PARTIAL_SUFFIXES, ArtifactStore


@dataclass(slots=True)
class DoctorIssue:
    check: str
    level: str
    message: str


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks_run: int
    issues: list[DoctorIssue]
    runtime: dict[str, object]


class HealthService:
    def __init__(self, settings: ExtractorSettings, artifact_store: ArtifactStore) -> None:
        self.settings = settings
        self.artifact_store = artifact_store

    def run_doctor(self) -> DoctorReport:
        issues: list[DoctorIssue] = []
        checks_run = 0

        # Check 1: the extractor binary resolves to something executable.
        checks_run += 1
        binary_path = self.resolve_binary()
        if binary_path is None:
            issues.append(
                DoctorIssue(
                    check="extractor_binary",
                    level="error",
                    message=f"Extractor binary '{self.settings.binary}' was not found on PATH.",
                )
            )

        # Check 2: the artifact directory exists and is writable.
        checks_run += 1
        artifact_dir = self.artifact_store.base_dir
        writable = is_writable_directory(artifact_dir)
        if not writable:
            issues.append(
                DoctorIssue(
                    check="artifact_dir",
                    level="error",
                    message=f"Artifact directory is not writable: {artifact_dir}",
                )
            )

        # Check 3: orphaned artifacts and download leftovers older than the TTL.
        checks_run += 1
        cutoff = time.time() - self.settings.artifact_ttl_seconds
        artifacts = self.artifact_store.list_artifacts() if writable else []
        orphaned = [a for a in artifacts if _mtime(a.storage_path) < cutoff]
        partials = self._partial_files(artifact_dir) if writable else []
        if orphaned:
            issues.append(
                DoctorIssue(
                    check="orphaned_artifacts",
                    level="warning",
                    message=(
                        f"{len(orphaned)} artifact(s) are older than the "
                        f"{self.settings.artifact_ttl_seconds:g}s TTL; run 'mediagrab reap'."
                    ),
                )
            )
        if partials:
            issues.append(
                DoctorIssue(
                    check="partial_downloads",
                    level="warning",
                    message=f"{len(partials)} partial download file(s) left in {artifact_dir}.",
                )
            )

        runtime: dict[str, object] = {
            "extractor_binary": self.settings.binary,
            "extractor_path": str(binary_path) if binary_path else None,
            "player_client": self.settings.player_client,
            "allowed_hosts": ", ".join(self.settings.allowed_hosts),
            "artifact_dir": str(artifact_dir),
            "artifacts_stored": len(artifacts),
            "job_timeout_seconds": self.settings.job_timeout_seconds,
            "artifact_ttl_seconds": self.settings.artifact_ttl_seconds,
        }
        ok = not any(issue.level == "error" for issue in issues)
        return DoctorReport(ok=ok, checks_run=checks_run, issues=issues, runtime=runtime)

    def resolve_binary(self) -> Path | None:
        candidate = Path(self.settings.binary).expanduser()
        if candidate.parent != Path(".") and candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate.resolve()
        found = shutil.which(self.settings.binary)
        return Path(found) if found else None

    @staticmethod
    def _partial_files(artifact_dir: Path) -> list[Path]:
        if not artifact_dir.exists():
            return []
        return [p for p in artifact_dir.iterdir() if p.is_file() and p.suffix.lower() in PARTIAL_SUFFIXES]


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0
