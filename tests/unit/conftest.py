import stat
import sys
from pathlib import Path
from typing import Callable

import pytest

from mediagrab.core.config import AppPaths, ExtractorSettings

_SCRIPT = '''#!{python}
import os
import subprocess
import sys
import time

args = sys.argv[1:]
template = args[args.index("-o") + 1]

with open(__file__ + ".pid", "w") as fh:
    fh.write(str(os.getpid()))

if {child_seconds!r}:
    # Inherits stdout and stderr, like the ffmpeg yt-dlp runs.
    subprocess.Popen(
        [
            sys.executable,
            "-c",
            "import sys, time; time.sleep(float(sys.argv[1])); open(sys.argv[2], 'wb').write(b'late')",
            str({child_seconds!r}),
            template.replace("%(ext)s", {output_ext!r} or "mp3"),
        ]
    )

if {partial!r}:
    with open(template.replace("%(ext)s", {output_ext!r} + ".part"), "wb") as fh:
        fh.write(b"partial")

for line in {stdout_lines!r}:
    sys.stdout.write(line + "\\n")
    sys.stdout.flush()
for line in {stderr_lines!r}:
    sys.stderr.write(line + "\\n")
    sys.stderr.flush()

time.sleep({hang_seconds!r})

if {output_ext!r} and {write_output!r}:
    with open(template.replace("%(ext)s", {output_ext!r}), "wb") as fh:
        fh.write({payload!r})

sys.exit({exit_code!r})
'''


@pytest.fixture
def fake_extractor(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing an executable stand-in for yt-dlp into ``tmp_path``."""

    def _make(
        *,
        stdout_lines: tuple[str, ...] = (),
        stderr_lines: tuple[str, ...] = (),
        exit_code: int = 0,
        output_ext: str = "mp3",
        write_output: bool = True,
        payload: bytes = b"ID3-fake-audio",
        hang_seconds: float = 0.0,
        partial: bool = False,
        child_seconds: float = 0.0,
        name: str = "fake-yt-dlp",
    ) -> Path:
        script = tmp_path / name
        script.write_text(
            _SCRIPT.format(
                python=sys.executable,
                stdout_lines=list(stdout_lines),
                stderr_lines=list(stderr_lines),
                exit_code=exit_code,
                output_ext=output_ext,
                write_output=write_output,
                payload=payload,
                hang_seconds=hang_seconds,
                partial=partial,
                child_seconds=child_seconds,
            ),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture
def app_paths(tmp_path: Path) -> AppPaths:
    project_root = tmp_path / "proj"
    project_root.mkdir(parents=True, exist_ok=True)
    home_dir = project_root / ".mediagrab"
    return AppPaths(project_root=project_root, home_dir=home_dir, artifact_dir=home_dir / "artifacts")


def make_settings(binary: Path | str = "yt-dlp", **overrides) -> ExtractorSettings:
    values = {"binary": str(binary), "reaper_enabled": False}
    values.update(overrides)
    return ExtractorSettings(**values)


@pytest.fixture
def settings_for() -> Callable[..., ExtractorSettings]:
    return make_settings
