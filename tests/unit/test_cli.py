import os
import time
from pathlib import Path

import pytest

from mediagrab.cli.main import build_parser, main
from mediagrab.core.ids import new_uuid

URL = "https://youtu.be/dQw4w9WgXcQ"


@pytest.fixture
def cli_env(monkeypatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("MEDIAGRAB_HOME", str(home))
    monkeypatch.delenv("MEDIAGRAB_ARTIFACT_DIR", raising=False)
    monkeypatch.delenv("MEDIAGRAB_ARTIFACT_TTL_SECONDS", raising=False)
    return home / "artifacts"


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_fetch_writes_downloaded_file(cli_env: Path, tmp_path: Path, monkeypatch, fake_extractor) -> None:
    binary = fake_extractor(stdout_lines=("[download]  50.0% of 1.00MiB",), payload=b"cli-audio")
    monkeypatch.setenv("MEDIAGRAB_YTDLP_BINARY", str(binary))
    out = tmp_path / "saved.mp3"

    code = main(["--project-root", str(tmp_path), "fetch", URL, "--format", "mp3", "--out", str(out)])

    assert code == 0
    assert out.read_bytes() == b"cli-audio"
    assert list(cli_env.iterdir()) == []


def test_fetch_into_directory_uses_default_name(cli_env: Path, tmp_path: Path, monkeypatch, fake_extractor) -> None:
    binary = fake_extractor(output_ext="mp4", payload=b"cli-video")
    monkeypatch.setenv("MEDIAGRAB_YTDLP_BINARY", str(binary))
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    code = main(["fetch", URL, "--format", "video", "--out", str(out_dir)])

    assert code == 0
    assert (out_dir / "download.mp4").read_bytes() == b"cli-video"


def test_fetch_invalid_url_returns_error_code(cli_env: Path) -> None:
    assert main(["fetch", "https://example.com/nope"]) == 1


def test_reap_deletes_expired_artifacts(cli_env: Path) -> None:
    cli_env.mkdir(parents=True)
    stale = cli_env / f"{new_uuid()}.mp3"
    fresh = cli_env / f"{new_uuid()}.mp3"
    stale.write_bytes(b"old")
    fresh.write_bytes(b"new")
    past = time.time() - 600
    os.utime(stale, (past, past))

    assert main(["reap", "--max-age", "300"]) == 0
    assert not stale.exists()
    assert fresh.exists()


def test_doctor_exit_code_follows_report(cli_env: Path, monkeypatch, fake_extractor) -> None:
    monkeypatch.setenv("MEDIAGRAB_YTDLP_BINARY", str(fake_extractor()))
    assert main(["doctor"]) == 0

    monkeypatch.setenv("MEDIAGRAB_YTDLP_BINARY", "definitely-not-a-real-yt-dlp-binary")
    assert main(["doctor"]) == 1
