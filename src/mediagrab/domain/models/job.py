from __future__ import annotations

from dataclasses import dataclass

from mediagrab.domain.models.artifact import Artifact

AUDIO = "audio"
VIDEO = "video"
OUTPUT_FORMATS = (AUDIO, VIDEO)
DEFAULT_OUTPUT_FORMAT = AUDIO

# Container names accepted in place of the format names.
FORMAT_ALIASES = {"mp3": AUDIO, "mp4": VIDEO}

OUTPUT_EXTENSIONS = {AUDIO: ".mp3", VIDEO: ".mp4"}


class JobState:
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    TERMINAL = frozenset({COMPLETED, ERROR})


_ALLOWED_TRANSITIONS = {
    JobState.INITIALIZING: frozenset({JobState.RUNNING, JobState.ERROR}),
    JobState.RUNNING: frozenset({JobState.COMPLETED, JobState.ERROR}),
    JobState.COMPLETED: frozenset(),
    JobState.ERROR: frozenset(),
}


@dataclass(slots=True)
class JobRequest:
    source_locator: str
    output_format: str = DEFAULT_OUTPUT_FORMAT


@dataclass(slots=True)
class Job:
    id: str
    source_locator: str
    output_format: str
    created_at: str
    state: str = JobState.INITIALIZING
    progress_percent: float = 0.0
    status_text: str = "Waiting for download to start."
    exit_code: int | None = None
    error_message: str | None = None
    artifact: Artifact | None = None

    @property
    def expected_extension(self) -> str:
        return OUTPUT_EXTENSIONS[self.output_format]

    @property
    def is_terminal(self) -> bool:
        return self.state in JobState.TERMINAL

    def transition(self, new_state: str) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(f"Invalid job transition {self.state} -> {new_state} for job {self.id}")
        self.state = new_state

    def record_progress(self, percent: float, text: str) -> None:
        self.progress_percent = max(0.0, min(100.0, float(percent)))
        self.status_text = text
