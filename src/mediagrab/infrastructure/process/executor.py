from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from mediagrab.core.config import ExtractorSettings
from mediagrab.core.errors import SpawnError
from mediagrab.domain.models.job import VIDEO, Job

logger = logging.getLogger(__name__)

VIDEO_FORMAT_SELECTOR = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"
_READ_SIZE = 4096
_GROUP_POLL_SECONDS = 0.05
_GROUP_EXIT_WAIT_SECONDS = 1.0


def build_command(settings: ExtractorSettings, job: Job, output_template: str) -> list[str]:
    command = [
        settings.binary,
        "--extractor-args",
        f"youtube:player_client={settings.player_client}",
        "--newline",
        "--progress",
        "--no-playlist",
    ]
    if job.output_format == VIDEO:
        command += ["-f", VIDEO_FORMAT_SELECTOR, "--merge-output-format", "mp4"]
    else:
        command += ["-x", "--audio-format", "mp3"]
    command += ["-o", output_template, "--", job.source_locator]
    return command


@dataclass(frozen=True, slots=True)
class OutputChunk:
    stream: str
    # None marks end of stream.
    data: bytes | None


class RunningProcess:
    def __init__(self, process: subprocess.Popen[bytes]) -> None:
        self.process = process
        self._chunks: queue.Queue[OutputChunk] = queue.Queue()
        self._pumps = [
            self._start_pump("stdout", process.stdout),
            self._start_pump("stderr", process.stderr),
        ]

    @property
    def pid(self) -> int:
        return self.process.pid

    def next_chunk(self, timeout: float) -> OutputChunk | None:
        try:
            return self._chunks.get(timeout=timeout)
        except queue.Empty:
            return None

    def poll(self) -> int | None:
        return self.process.poll()

    def wait(self, timeout: float | None = None) -> int | None:
        try:
            return self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def terminate(self, grace_seconds: float = 5.0) -> None:
        """Stop the extractor and everything it spawned.

        The process runs as the leader of its own session, so yt-dlp's
        ffmpeg children share its process group and are signalled with it.
        Anything still in the group after the grace period gets SIGKILL.
        """
        if self.process.poll() is None:
            logger.info("Terminating extractor process group %s", self.process.pid)
        self._signal_group(signal.SIGTERM)
        try:
            self.process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("Extractor process %s ignored SIGTERM; killing", self.process.pid)
        # Survivors that ignored SIGTERM or outlived the leader.
        self._signal_group(signal.SIGKILL)
        self.process.wait(timeout=grace_seconds)
        # Orphaned zombies stay in the group until reaped, so the wait is capped.
        self._wait_for_group_exit(min(grace_seconds, _GROUP_EXIT_WAIT_SECONDS))

    def close(self) -> None:
        for pump in self._pumps:
            pump.join(timeout=1.0)
        if any(pump.is_alive() for pump in self._pumps):
            # A descendant still holds the pipes open.
            self._signal_group(signal.SIGKILL)
            self._wait_for_group_exit(_GROUP_EXIT_WAIT_SECONDS)
            for pump in self._pumps:
                pump.join(timeout=1.0)
        for pump, handle in zip(self._pumps, (self.process.stdout, self.process.stderr)):
            # Closing blocks on the reader lock while a pump is still inside read1().
            if handle is not None and not pump.is_alive():
                handle.close()

    def _signal_group(self, signum: int) -> None:
        try:
            os.killpg(self.process.pid, signum)
        except ProcessLookupError:
            return
        except PermissionError as exc:
            logger.warning("Cannot signal extractor process group %s: %s", self.process.pid, exc)

    def _group_alive(self) -> bool:
        try:
            os.killpg(self.process.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _wait_for_group_exit(self, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while self._group_alive():
            if time.monotonic() >= deadline:
                logger.warning("Extractor process group %s still alive after %.1fs", self.process.pid, timeout)
                return
            time.sleep(_GROUP_POLL_SECONDS)

    def _start_pump(self, stream: str, handle: IO[bytes] | None) -> threading.Thread:
        thread = threading.Thread(
            target=self._pump,
            args=(stream, handle),
            daemon=True,
            name=f"extractor-{stream}-{self.process.pid}",
        )
        thread.start()
        return thread

    def _pump(self, stream: str, handle: IO[bytes] | None) -> None:
        try:
            if handle is None:
                return
            read = getattr(handle, "read1", handle.read)
            for chunk in iter(lambda: read(_READ_SIZE), b""):
                self._chunks.put(OutputChunk(stream=stream, data=chunk))
        except (OSError, ValueError) as exc:
            # Pipe closed underneath us after terminate().
            logger.debug("Extractor %s pump stopped: %s", stream, exc)
        finally:
            self._chunks.put(OutputChunk(stream=stream, data=None))


class ProcessExecutor:
    def launch(self, command: list[str], *, cwd: Path | None = None) -> RunningProcess:
        logger.info("Spawning extractor: %s", " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                start_new_session=True,
            )
        except OSError as exc:
            logger.error("Failed to spawn %s: %s", command[0], exc)
            raise SpawnError("Failed to start download process.") from exc
        return RunningProcess(process)
