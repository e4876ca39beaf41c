class MediagrabError(Exception):
    """Base error for all user-facing mediagrab exceptions."""


class ConfigurationError(MediagrabError):
    """Raised when configuration is invalid or incomplete."""


class ValidationError(MediagrabError):
    """Raised when a job request is rejected before anything is launched."""


class SpawnError(MediagrabError):
    """Raised when the extraction binary cannot be started."""


class SubprocessFailure(MediagrabError):
    """Raised when the extraction subprocess exits non-zero."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ArtifactMissing(MediagrabError):
    """Raised when the subprocess succeeded but produced no artifact."""


class RetrievalMiss(MediagrabError):
    """Raised when an artifact is unknown or has already been consumed."""


class JobCancelledError(MediagrabError):
    """Raised when a job is abandoned by its caller."""


class JobTimeoutError(MediagrabError):
    """Raised when a job exceeds its maximum duration."""
