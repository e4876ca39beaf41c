import sys
from pathlib import Path

import pytest

from conftest import make_settings
from mediagrab.core.errors import SpawnError
from mediagrab.domain.models.job import Job
from mediagrab.infrastructure.process.executor import VIDEO_FORMAT_SELECTOR, ProcessExecutor, build_command


def _job(output_format: str) -> Job:
    return Job(
        id="0b3c1d1e-1111-4222-8333-444455556666",
        source_locator="https://youtu.be/abc",
        output_format=output_format,
        created_at="2026-01-01T00:00:00Z",
    )


def test_audio_command_extracts_mp3() -> None:
    command = build_command(make_settings("yt-dlp"), _job("audio"), "/tmp/a/%(ext)s")

    assert command == [
        "yt-dlp",
        "--extractor-args",
        "youtube:player_client=android",
        "--newline",
        "--progress",
        "--no-playlist",
        "-x",
        "--audio-format",
        "mp3",
        "-o",
        "/tmp/a/%(ext)s",
        "--",
        "https://youtu.be/abc",
    ]


def test_video_command_merges_to_mp4_with_custom_client() -> None:
    command = build_command(make_settings("/opt/yt-dlp", player_client="web"), _job("video"), "out.%(ext)s")

    assert command[0] == "/opt/yt-dlp"
    assert "youtube:player_client=web" in command
    selector_at = command.index("-f")
    assert command[selector_at + 1] == VIDEO_FORMAT_SELECTOR
    assert command[selector_at + 2 : selector_at + 4] == ["--merge-output-format", "mp4"]
    assert "-x" not in command


def test_launch_missing_binary_raises_spawn_error(tmp_path: Path) -> None:
    with pytest.raises(SpawnError):
        ProcessExecutor().launch([str(tmp_path / "missing-binary"), "--version"])


def test_running_process_pumps_both_streams_until_eof(tmp_path: Path) -> None:
    script = "import sys; sys.stdout.write('out-line\\n'); sys.stderr.write('err-line\\n'); sys.exit(3)"
    process = ProcessExecutor().launch([sys.executable, "-c", script], cwd=tmp_path)

    collected: dict[str, bytes] = {"stdout": b"", "stderr": b""}
    open_streams = {"stdout", "stderr"}
    try:
        while open_streams:
            chunk = process.next_chunk(timeout=5.0)
            assert chunk is not None
            if chunk.data is None:
                open_streams.discard(chunk.stream)
            else:
                collected[chunk.stream] += chunk.data
        exit_code = process.wait(timeout=5.0)
    finally:
        process.close()

    assert collected == {"stdout": b"out-line\n", "stderr": b"err-line\n"}
    assert exit_code == 3
    assert process.poll() == 3


def test_terminate_stops_running_process() -> None:
    process = ProcessExecutor().launch([sys.executable, "-c", "import time; time.sleep(30)"])
    try:
        assert process.wait(timeout=0.1) is None
        process.terminate(grace_seconds=5.0)
        assert process.poll() is not None
    finally:
        process.close()
