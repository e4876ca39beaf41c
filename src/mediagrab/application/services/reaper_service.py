from __future__ import annotations

import logging
import threading
from pathlib import Path

from mediagrab.infrastructure.artifacts.store import ArtifactStore

logger = logging.getLogger(__name__)


class ArtifactReaperService:
    """Background sweeper deleting artifacts nobody retrieved within the TTL."""

    def __init__(
        self,
        *,
        artifact_store: ArtifactStore,
        ttl_seconds: float,
        interval_seconds: float,
        autostart: bool = True,
    ) -> None:
        self.artifact_store = artifact_store
        self.ttl_seconds = float(ttl_seconds)
        self.interval_seconds = max(1.0, float(interval_seconds))
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        if autostart:
            self.start()

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="artifact-reaper")
        self._worker.start()

    def shutdown(self) -> None:
        self._stop.set()
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)

    def sweep_once(self) -> list[Path]:
        return self.artifact_store.reap_expired(self.ttl_seconds)

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def _worker_loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except OSError as exc:
                logger.warning("Artifact sweep failed in %s: %s", self.artifact_store.base_dir, exc)
