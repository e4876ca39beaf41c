from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, is_dataclass
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from mediagrab.application.services.event_channel import EventChannel
from mediagrab.application.services.health_service import HealthService
from mediagrab.application.services.job_service import ExtractionJobService
from mediagrab.application.services.reaper_service import ArtifactReaperService
from mediagrab.core.config import AppPaths, ExtractorSettings, load_settings
from mediagrab.core.errors import (
    ArtifactMissing,
    ConfigurationError,
    JobCancelledError,
    JobTimeoutError,
    RetrievalMiss,
    SpawnError,
    SubprocessFailure,
    ValidationError,
)
from mediagrab.domain.models.event import READY, ProgressEvent
from mediagrab.domain.models.job import Job
from mediagrab.infrastructure.artifacts.store import RETRIEVAL_MISS_MESSAGE, ArtifactStore
from mediagrab.infrastructure.process.executor import ProcessExecutor

logger = logging.getLogger(__name__)

_CHANNEL_POLL_SECONDS = 0.5
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class DownloadRequest(BaseModel):
    url: str
    format: str | None = None


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _sse_message(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_payload(), ensure_ascii=True)}\n\n"


def _attachment_headers(extension: str, file_id: str) -> dict[str, str]:
    return {
        "Content-Disposition": f'attachment; filename="download{extension}"',
        "X-Mediagrab-File-Id": file_id,
    }


def create_app(
    paths: AppPaths,
    settings: ExtractorSettings | None = None,
    executor: ProcessExecutor | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="mediagrab", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    artifact_store = ArtifactStore(paths.artifact_dir)
    try:
        artifact_store.ensure_layout()
    except OSError as exc:
        raise ConfigurationError(f"Artifact directory is not usable: {paths.artifact_dir}") from exc
    job_service = ExtractionJobService(settings=settings, artifact_store=artifact_store, executor=executor)
    reaper: ArtifactReaperService | None = None
    if settings.reaper_enabled:
        reaper = ArtifactReaperService(
            artifact_store=artifact_store,
            ttl_seconds=settings.artifact_ttl_seconds,
            interval_seconds=settings.reaper_interval_seconds,
        )

    app.state.artifact_store = artifact_store
    app.state.job_service = job_service
    app.state.reaper = reaper

    @app.on_event("shutdown")
    def _shutdown_reaper() -> None:
        if reaper is not None:
            reaper.shutdown()

    def _stream_job(job: Job, request: Request) -> StreamingResponse:
        channel = EventChannel(job.id)

        def worker() -> None:
            terminal = job_service.run(
                job,
                channel.publish,
                cancellation_check=channel.cancelled,
                launch_gate=lambda: channel.wait_until_attached(settings.ready_timeout_seconds),
            )
            logger.info("Job %s finished with %s after %s event(s)", job.id, terminal.kind, channel.published_count)

        async def iterator() -> AsyncIterator[str]:
            try:
                while True:
                    if await request.is_disconnected():
                        logger.info("Client disconnected from job %s", job.id)
                        break
                    event = await run_in_threadpool(channel.next_event, _CHANNEL_POLL_SECONDS)
                    if event is None:
                        continue
                    yield _sse_message(event)
                    if event.kind == READY:
                        channel.mark_attached()
                    if event.is_terminal:
                        break
            finally:
                channel.close()

        threading.Thread(target=worker, daemon=True, name=f"job-{job.id}").start()
        return StreamingResponse(iterator(), media_type="text/event-stream", headers=_SSE_HEADERS)

    @app.get("/api/download/stream")
    def api_download_stream(
        request: Request,
        url: str | None = None,
        output_format: str | None = Query(default=None, alias="format"),
    ) -> StreamingResponse:
        if not (url or "").strip():
            raise HTTPException(status_code=400, detail="URL is required")
        try:
            job = job_service.create_job(url, output_format)
        except ValidationError as exc:
            logger.info("Rejected stream request for %s: %s", url, exc)
            return StreamingResponse(
                iter([_sse_message(ProgressEvent.error(str(exc)))]),
                media_type="text/event-stream",
                headers=_SSE_HEADERS,
            )
        return _stream_job(job, request)

    @app.get("/api/download/file")
    def api_download_file(
        file_id: str | None = Query(default=None, alias="fileId"),
        filename: str | None = None,
    ) -> Response:
        if not (file_id or "").strip():
            raise HTTPException(status_code=400, detail="File ID is required")
        try:
            retrieved = artifact_store.retrieve(str(file_id).strip(), filename=filename)
        except RetrievalMiss as exc:
            raise HTTPException(status_code=404, detail=RETRIEVAL_MISS_MESSAGE) from exc
        return Response(
            content=retrieved.data,
            media_type=retrieved.content_type,
            headers=_attachment_headers(retrieved.extension, retrieved.artifact_id),
        )

    @app.post("/api/download")
    def api_download(req: DownloadRequest) -> Response:
        try:
            retrieved = job_service.download(req.url, req.format)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except SubprocessFailure as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except JobTimeoutError as exc:
            raise HTTPException(status_code=504, detail=str(exc)) from exc
        except (SpawnError, ArtifactMissing, JobCancelledError, RetrievalMiss) as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(
            content=retrieved.data,
            media_type=retrieved.content_type,
            headers=_attachment_headers(retrieved.extension, retrieved.artifact_id),
        )

    @app.get("/api/health")
    def api_health() -> dict[str, Any]:
        report = HealthService(settings, artifact_store).run_doctor()
        return {
            "ok": report.ok,
            "checks_run": report.checks_run,
            "issues": _jsonable(report.issues),
            "runtime": _jsonable(report.runtime),
            "reaper_running": bool(reaper is not None and reaper.running),
        }

    return app
