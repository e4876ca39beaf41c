from __future__ import annotations

import logging
import time
from typing import Callable

from mediagrab.application.services.job_request_service import JobRequestValidator
from mediagrab.application.services.progress_parser import STDERR, STDOUT, ProgressParser
from mediagrab.core.config import ExtractorSettings
from mediagrab.core.errors import (
    ArtifactMissing,
    JobCancelledError,
    JobTimeoutError,
    MediagrabError,
    SubprocessFailure,
)
from mediagrab.core.ids import new_uuid
from mediagrab.core.time import now_utc_iso
from mediagrab.domain.models.artifact import Artifact, RetrievedArtifact
from mediagrab.domain.models.event import ERROR, PROGRESS, ProgressEvent
from mediagrab.domain.models.job import Job, JobState
from mediagrab.infrastructure.artifacts.store import ArtifactStore
from mediagrab.infrastructure.process.executor import ProcessExecutor, RunningProcess, build_command

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Download process failed."
ARTIFACT_MISSING_MESSAGE = (
    "Failed to process the downloaded file. It might be due to a format conversion error."
)
CANCELLED_MESSAGE = "Download cancelled."
NOT_ATTACHED_MESSAGE = "Event stream was not opened in time; download not started."


def _noop(_event: ProgressEvent) -> None:
    return None


class ExtractionJobService:
    """Drives one extraction job from validation to a single terminal event.

    ``run`` is the streaming entry point: every event, the terminal one
    included, goes through ``emit`` and nothing follows the terminal event.
    ``download`` is the blocking variant and raises the typed errors from
    :mod:`mediagrab.core.errors` instead.
    """

    _POLL_SECONDS = 0.2
    _TERMINATE_GRACE_SECONDS = 5.0

    def __init__(
        self,
        *,
        settings: ExtractorSettings,
        artifact_store: ArtifactStore,
        executor: ProcessExecutor | None = None,
        validator: JobRequestValidator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.artifact_store = artifact_store
        self.executor = executor or ProcessExecutor()
        self.validator = validator or JobRequestValidator(settings.allowed_hosts)
        self._clock = clock

    def create_job(self, source_locator: str | None, output_format: str | None = None) -> Job:
        request = self.validator.validate(source_locator, output_format)
        job = Job(
            id=new_uuid(),
            source_locator=request.source_locator,
            output_format=request.output_format,
            created_at=now_utc_iso(),
        )
        logger.info("Created job %s (%s) for %s", job.id, job.output_format, job.source_locator)
        return job

    def run(
        self,
        job: Job,
        emit: Callable[[ProgressEvent], object],
        *,
        cancellation_check: Callable[[], bool] | None = None,
        launch_gate: Callable[[], bool] | None = None,
    ) -> ProgressEvent:
        try:
            artifact = self.execute(
                job,
                emit,
                cancellation_check=cancellation_check,
                launch_gate=launch_gate,
            )
            terminal = ProgressEvent.completed(artifact.artifact_id, artifact.filename)
        except MediagrabError as exc:
            terminal = ProgressEvent.error(str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure in job %s", job.id)
            self._fail(job, str(exc) or exc.__class__.__name__)
            self.artifact_store.discard(job.id)
            terminal = ProgressEvent.error(str(exc) or "Unknown error")
        emit(terminal)
        return terminal

    def execute(
        self,
        job: Job,
        emit: Callable[[ProgressEvent], object] = _noop,
        *,
        cancellation_check: Callable[[], bool] | None = None,
        launch_gate: Callable[[], bool] | None = None,
    ) -> Artifact:
        try:
            if launch_gate is not None and not launch_gate():
                raise JobCancelledError(NOT_ATTACHED_MESSAGE)
            self._ensure_not_cancelled(cancellation_check)
            return self._launch_and_watch(job, emit, cancellation_check)
        except MediagrabError as exc:
            self._fail(job, str(exc))
            raise

    def download(
        self,
        source_locator: str | None,
        output_format: str | None = None,
        progress_callback: Callable[[ProgressEvent], object] | None = None,
    ) -> RetrievedArtifact:
        job = self.create_job(source_locator, output_format)
        self.execute(job, progress_callback or _noop)
        return self.artifact_store.retrieve(job.id, filename=f"download{job.expected_extension}")

    def _launch_and_watch(
        self,
        job: Job,
        emit: Callable[[ProgressEvent], object],
        cancellation_check: Callable[[], bool] | None,
    ) -> Artifact:
        command = build_command(self.settings, job, self.artifact_store.output_template(job.id))
        process = self.executor.launch(command)
        job.transition(JobState.RUNNING)
        job.status_text = "Download started."
        deadline = self._deadline()
        failure_hint: str | None = None
        try:
            parser = ProgressParser()
            open_streams = {STDOUT, STDERR}
            while open_streams:
                self._check_limits(cancellation_check, deadline)
                chunk = process.next_chunk(timeout=self._POLL_SECONDS)
                if chunk is None:
                    continue
                if chunk.data is None:
                    open_streams.discard(chunk.stream)
                    events = parser.finish(chunk.stream)
                else:
                    if chunk.stream == STDERR:
                        logger.debug("yt-dlp stderr [%s]: %s", job.id, chunk.data.decode("utf-8", "replace").rstrip())
                    events = parser.feed(chunk.stream, chunk.data)
                for event in events:
                    if event.kind == ERROR:
                        # Upstream signal only; the exit code decides whether the job failed.
                        logger.warning("Job %s: %s", job.id, event.message)
                        failure_hint = event.message
                        continue
                    if event.kind == PROGRESS and event.percent is not None:
                        job.record_progress(event.percent, event.text or "")
                    emit(event)
            exit_code = self._wait_for_exit(process, cancellation_check, deadline)
        except BaseException:
            process.terminate(grace_seconds=self._TERMINATE_GRACE_SECONDS)
            self.artifact_store.discard(job.id)
            raise
        finally:
            process.close()

        job.exit_code = exit_code
        if exit_code != 0:
            self.artifact_store.discard(job.id)
            logger.error("Job %s: extractor exited with code %s", job.id, exit_code)
            raise SubprocessFailure(failure_hint or GENERIC_FAILURE_MESSAGE, exit_code=exit_code)

        artifact = self.artifact_store.locate(job.id, job.expected_extension)
        if artifact is None:
            self.artifact_store.discard(job.id)
            logger.error("Job %s: extractor succeeded but %s%s is missing", job.id, job.id, job.expected_extension)
            raise ArtifactMissing(ARTIFACT_MISSING_MESSAGE)

        job.artifact = artifact
        job.record_progress(100.0, "Completed.")
        job.transition(JobState.COMPLETED)
        logger.info("Job %s completed: %s (%s bytes)", job.id, artifact.filename, artifact.size_bytes)
        return artifact

    def _wait_for_exit(
        self,
        process: RunningProcess,
        cancellation_check: Callable[[], bool] | None,
        deadline: float | None,
    ) -> int:
        while True:
            self._check_limits(cancellation_check, deadline)
            exit_code = process.wait(timeout=self._POLL_SECONDS)
            if exit_code is not None:
                return exit_code

    def _check_limits(self, cancellation_check: Callable[[], bool] | None, deadline: float | None) -> None:
        self._ensure_not_cancelled(cancellation_check)
        if deadline is not None and self._clock() >= deadline:
            raise JobTimeoutError(f"Download timed out after {self.settings.job_timeout_seconds:g}s.")

    @staticmethod
    def _ensure_not_cancelled(cancellation_check: Callable[[], bool] | None) -> None:
        if cancellation_check is not None and bool(cancellation_check()):
            raise JobCancelledError(CANCELLED_MESSAGE)

    def _deadline(self) -> float | None:
        timeout = float(self.settings.job_timeout_seconds)
        if timeout <= 0:
            return None
        return self._clock() + timeout

    @staticmethod
    def _fail(job: Job, message: str) -> None:
        job.error_message = message
        if not job.is_terminal:
            job.transition(JobState.ERROR)
        logger.info("Job %s failed: %s", job.id, message)


