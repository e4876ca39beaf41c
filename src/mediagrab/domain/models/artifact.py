from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Artifact:
    artifact_id: str
    storage_path: Path
    content_type: str
    size_bytes: int

    @property
    def filename(self) -> str:
        return self.storage_path.name

    @property
    def extension(self) -> str:
        return self.storage_path.suffix.lower()


@dataclass(slots=True)
class RetrievedArtifact:
    artifact_id: str
    data: bytes
    content_type: str
    filename: str

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()
