from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from mediagrab.core.errors import RetrievalMiss, ValidationError
from mediagrab.core.files import ensure_directory, write_bytes_atomic
from mediagrab.core.ids import is_uuid
from mediagrab.domain.models.artifact import Artifact, RetrievedArtifact

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mp3": "audio/mpeg",
}
DEFAULT_CONTENT_TYPE = "audio/mpeg"

# Leftovers yt-dlp writes while a download or conversion is in flight.
PARTIAL_SUFFIXES = {".part", ".ytdl", ".tmp", ".temp"}

RETRIEVAL_MISS_MESSAGE = "File not found or expired"


def content_type_for(extension: str | None, fallback_extension: str | None = None) -> str:
    for candidate in (extension, fallback_extension):
        normalized = _normalize_extension(candidate)
        if normalized in CONTENT_TYPES:
            return CONTENT_TYPES[normalized]
    return DEFAULT_CONTENT_TYPE


def _normalize_extension(extension: str | None) -> str:
    raw = str(extension or "").strip().lower()
    if not raw:
        return ""
    return raw if raw.startswith(".") else f".{raw}"


class ArtifactStore:
    """Ephemeral, read-once artifact storage keyed by job id.

    Files live flat under ``base_dir`` as ``<job_id><ext>``. A retrieval claims
    the file by renaming it first, so two concurrent readers can never both
    receive the same artifact.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def ensure_layout(self) -> None:
        ensure_directory(self.base_dir)

    def output_template(self, job_id: str) -> str:
        self._require_job_id(job_id)
        self.ensure_layout()
        return str(self.base_dir / f"{job_id}.%(ext)s")

    def path_for(self, job_id: str, extension: str) -> Path:
        self._require_job_id(job_id)
        normalized = _normalize_extension(extension)
        if not normalized or "/" in normalized or "\\" in normalized:
            raise ValidationError(f"Invalid artifact extension: {extension!r}")
        return self.base_dir / f"{job_id}{normalized}"

    def store(self, job_id: str, data: bytes, extension: str) -> Artifact:
        path = self.path_for(job_id, extension)
        write_bytes_atomic(path, data)
        return self._artifact_for(job_id, path)

    def locate(self, job_id: str, extension: str) -> Artifact | None:
        path = self.path_for(job_id, extension)
        if not path.is_file():
            return None
        return self._artifact_for(job_id, path)

    def retrieve(self, job_id: str, filename: str | None = None) -> RetrievedArtifact:
        if not is_uuid(job_id):
            # Never a path into the store, so it can only be unknown.
            raise RetrievalMiss(RETRIEVAL_MISS_MESSAGE)
        fallback_extension = Path(filename).suffix if filename else None
        candidates = self._completed_files(job_id)
        if not candidates:
            raise RetrievalMiss(RETRIEVAL_MISS_MESSAGE)
        chosen = self._choose(candidates, fallback_extension)
        claimed = chosen.with_name(f".{chosen.name}.claimed")
        try:
            # A fresh mtime keeps the reaper off the claimed file while it is read.
            os.utime(chosen)
            os.replace(chosen, claimed)
        except FileNotFoundError as exc:
            # Another reader claimed it first, or the reaper got there.
            raise RetrievalMiss(RETRIEVAL_MISS_MESSAGE) from exc

        # Only the claimant cleans up, so a losing reader never deletes a claimed file.
        try:
            data = claimed.read_bytes()
        except OSError as exc:
            logger.error("Failed to read artifact %s: %s", claimed, exc)
            raise RetrievalMiss(RETRIEVAL_MISS_MESSAGE) from exc
        finally:
            self.discard(job_id)

        return RetrievedArtifact(
            artifact_id=job_id,
            data=data,
            content_type=content_type_for(chosen.suffix, fallback_extension),
            filename=chosen.name,
        )

    def discard(self, job_id: str) -> int:
        """Delete every file belonging to ``job_id``, partial ones included."""
        self._require_job_id(job_id)
        if not self.base_dir.exists():
            return 0
        removed = 0
        for path in [*self.base_dir.glob(f"{job_id}.*"), *self.base_dir.glob(f".{job_id}.*")]:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.debug("Discarded %s file(s) for job %s", removed, job_id)
        return removed

    def list_artifacts(self) -> list[Artifact]:
        if not self.base_dir.exists():
            return []
        artifacts: list[Artifact] = []
        for path in sorted(self.base_dir.iterdir()):
            job_id = path.name.split(".", 1)[0]
            if self._is_completed_file(path, job_id):
                artifacts.append(self._artifact_for(job_id, path))
        return artifacts

    def reap_expired(self, max_age_seconds: float, now: float | None = None) -> list[Path]:
        """Delete artifacts and leftovers whose mtime is older than ``max_age_seconds``."""
        if not self.base_dir.exists():
            return []
        cutoff = (time.time() if now is None else now) - max(0.0, float(max_age_seconds))
        reaped: list[Path] = []
        for path in self.base_dir.iterdir():
            if not path.is_file() or not is_uuid(path.name.lstrip(".").split(".", 1)[0]):
                continue
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            reaped.append(path)
        if reaped:
            logger.info("Reaped %s expired artifact file(s) from %s", len(reaped), self.base_dir)
        return reaped

    def _completed_files(self, job_id: str) -> list[Path]:
        if not self.base_dir.exists():
            return []
        return sorted(
            (path for path in self.base_dir.glob(f"{job_id}.*") if self._is_completed_file(path, job_id)),
            key=self._mtime,
            reverse=True,
        )

    @staticmethod
    def _mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0

    @staticmethod
    def _is_completed_file(path: Path, job_id: str) -> bool:
        # Intermediate yt-dlp outputs look like "<id>.f137.mp4"; only "<id><ext>" counts.
        return (
            is_uuid(job_id)
            and path.is_file()
            and path.stem == job_id
            and path.suffix.lower() not in PARTIAL_SUFFIXES
        )

    @staticmethod
    def _choose(candidates: list[Path], preferred_extension: str | None) -> Path:
        preferred = _normalize_extension(preferred_extension)
        for path in candidates:
            if preferred and path.suffix.lower() == preferred:
                return path
        return candidates[0]

    def _artifact_for(self, job_id: str, path: Path) -> Artifact:
        return Artifact(
            artifact_id=job_id,
            storage_path=path,
            content_type=content_type_for(path.suffix),
            size_bytes=path.stat().st_size,
        )

    @staticmethod
    def _require_job_id(job_id: str) -> None:
        if not is_uuid(job_id):
            raise ValidationError(f"Invalid file id: {job_id!r}")
