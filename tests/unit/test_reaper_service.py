import os
import time
from pathlib import Path

from mediagrab.application.services.reaper_service import ArtifactReaperService
from mediagrab.core.ids import new_uuid
from mediagrab.infrastructure.artifacts.store import ArtifactStore


def test_sweep_once_removes_expired_artifacts(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    old = store.store(new_uuid(), b"old", ".mp3").storage_path
    fresh = store.store(new_uuid(), b"fresh", ".mp3").storage_path
    past = time.time() - 120
    os.utime(old, (past, past))

    reaper = ArtifactReaperService(artifact_store=store, ttl_seconds=60, interval_seconds=60, autostart=False)
    reaped = reaper.sweep_once()

    assert reaped == [old]
    assert not old.exists()
    assert fresh.exists()
    assert reaper.running is False


def test_background_worker_starts_and_stops(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    reaper = ArtifactReaperService(artifact_store=store, ttl_seconds=60, interval_seconds=60)
    try:
        assert reaper.running is True
        reaper.start()
        assert reaper.running is True
    finally:
        reaper.shutdown()

    assert reaper.running is False


def test_background_worker_sweeps_on_interval(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    stale = store.store(new_uuid(), b"stale", ".mp4").storage_path
    past = time.time() - 10
    os.utime(stale, (past, past))

    reaper = ArtifactReaperService(artifact_store=store, ttl_seconds=1, interval_seconds=1)
    try:
        deadline = time.monotonic() + 5.0
        while stale.exists() and time.monotonic() < deadline:
            time.sleep(0.05)
    finally:
        reaper.shutdown()

    assert not stale.exists()
