from __future__ import annotations

from urllib.parse import urlparse

from mediagrab.core.errors import ValidationError
from mediagrab.domain.models.job import DEFAULT_OUTPUT_FORMAT, FORMAT_ALIASES, OUTPUT_FORMATS, JobRequest


class JobRequestValidator:
    ALLOWED_SCHEMES = {"http", "https"}

    def __init__(self, allowed_hosts: tuple[str, ...] | list[str]) -> None:
        self.allowed_hosts = tuple(host.strip().lower().lstrip(".") for host in allowed_hosts if host.strip())

    def validate(self, source_locator: str | None, output_format: str | None = None) -> JobRequest:
        locator = str(source_locator or "").strip()
        if not locator:
            raise ValidationError("URL is required")
        if not self.is_allowed_locator(locator):
            raise ValidationError("Invalid YouTube URL")
        return JobRequest(source_locator=locator, output_format=self.normalize_output_format(output_format))

    def is_allowed_locator(self, locator: str) -> bool:
        try:
            parsed = urlparse(locator)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return False
        if parsed.scheme.lower() not in self.ALLOWED_SCHEMES or not host:
            return False
        return any(host == allowed or host.endswith("." + allowed) for allowed in self.allowed_hosts)

    @staticmethod
    def normalize_output_format(output_format: str | None) -> str:
        raw = str(output_format or "").strip().lower()
        if not raw:
            return DEFAULT_OUTPUT_FORMAT
        normalized = FORMAT_ALIASES.get(raw, raw)
        if normalized not in OUTPUT_FORMATS:
            supported = ", ".join(sorted([*OUTPUT_FORMATS, *FORMAT_ALIASES]))
            raise ValidationError(f"Unsupported output format '{output_format}'. Expected one of: {supported}")
        return normalized


def validate_job_request(
    source_locator: str | None,
    output_format: str | None,
    allowed_hosts: tuple[str, ...] | list[str],
) -> JobRequest:
    return JobRequestValidator(allowed_hosts).validate(source_locator, output_format)
