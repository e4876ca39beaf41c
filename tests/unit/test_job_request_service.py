import pytest

from mediagrab.application.services.job_request_service import JobRequestValidator, validate_job_request
from mediagrab.core.errors import ValidationError
from mediagrab.domain.models.job import AUDIO, VIDEO

HOSTS = ("youtube.com", "youtu.be")


def test_accepts_known_hosts_and_subdomains() -> None:
    validator = JobRequestValidator(HOSTS)

    for url in (
        "https://www.youtube.com/watch?v=abc",
        "https://youtube.com/watch?v=abc",
        "http://m.youtube.com/watch?v=abc",
        "https://youtu.be/abc",
    ):
        request = validator.validate(url, None)
        assert request.source_locator == url
        assert request.output_format == AUDIO


def test_strips_whitespace_from_locator() -> None:
    request = JobRequestValidator(HOSTS).validate("  https://youtu.be/abc  ", "video")

    assert request.source_locator == "https://youtu.be/abc"
    assert request.output_format == VIDEO


@pytest.mark.parametrize("url", [None, "", "   "])
def test_missing_locator_is_rejected(url) -> None:
    with pytest.raises(ValidationError, match="URL is required"):
        JobRequestValidator(HOSTS).validate(url, "audio")


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/watch?v=abc",
        "https://notyoutube.com/watch?v=abc",
        "https://youtube.com.evil.test/watch",
        "ftp://youtube.com/watch?v=abc",
        "youtube.com/watch?v=abc",
        "--exec=rm -rf /",
    ],
)
def test_foreign_or_malformed_locators_are_rejected(url: str) -> None:
    with pytest.raises(ValidationError, match="Invalid YouTube URL"):
        JobRequestValidator(HOSTS).validate(url, "audio")


def test_format_aliases_and_case_are_normalized() -> None:
    assert JobRequestValidator.normalize_output_format("MP3") == AUDIO
    assert JobRequestValidator.normalize_output_format("mp4") == VIDEO
    assert JobRequestValidator.normalize_output_format(" Video ") == VIDEO
    assert JobRequestValidator.normalize_output_format(None) == AUDIO


def test_unsupported_format_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Unsupported output format"):
        JobRequestValidator(HOSTS).validate("https://youtu.be/abc", "flac")


def test_allowed_hosts_are_configurable() -> None:
    validator = JobRequestValidator((" Vimeo.com ",))

    assert validator.validate("https://player.vimeo.com/video/1").output_format == AUDIO
    with pytest.raises(ValidationError):
        validator.validate("https://youtu.be/abc")


def test_module_level_helper_matches_validator() -> None:
    request = validate_job_request("https://youtu.be/abc", "mp3", HOSTS)

    assert request.output_format == AUDIO
    with pytest.raises(ValidationError):
        validate_job_request("https://example.com", None, HOSTS)
