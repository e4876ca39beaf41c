from __future__ import annotations

from dataclasses import dataclass
from typing import Any

PROGRESS = "progress"
COMPLETED = "completed"
ERROR = "error"
READY = "ready"

TERMINAL_KINDS = frozenset({COMPLETED, ERROR})


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """One message on a job's event channel.

    ``ready`` is a channel control message and never comes out of the parser.
    """

    kind: str
    percent: float | None = None
    text: str | None = None
    artifact_id: str | None = None
    filename: str | None = None
    message: str | None = None
    job_id: str | None = None

    @classmethod
    def progress(cls, percent: float, text: str) -> ProgressEvent:
        return cls(kind=PROGRESS, percent=max(0.0, min(100.0, float(percent))), text=text)

    @classmethod
    def completed(cls, artifact_id: str, filename: str) -> ProgressEvent:
        return cls(kind=COMPLETED, artifact_id=artifact_id, filename=filename)

    @classmethod
    def error(cls, message: str) -> ProgressEvent:
        return cls(kind=ERROR, message=message)

    @classmethod
    def ready(cls, job_id: str) -> ProgressEvent:
        return cls(kind=READY, job_id=job_id)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def to_payload(self) -> dict[str, Any]:
        if self.kind == PROGRESS:
            return {"state": PROGRESS, "value": self.percent, "text": self.text}
        if self.kind == COMPLETED:
            return {"state": COMPLETED, "fileId": self.artifact_id, "filename": self.filename}
        if self.kind == ERROR:
            return {"state": ERROR, "message": self.message}
        return {"state": READY, "jobId": self.job_id}
