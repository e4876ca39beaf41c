import os
import time
from pathlib import Path

from conftest import make_settings
from mediagrab.application.services.health_service import HealthService
from mediagrab.core.ids import new_uuid
from mediagrab.infrastructure.artifacts.store import ArtifactStore


def test_doctor_passes_for_basic_clean_state(tmp_path: Path, fake_extractor) -> None:
    binary = fake_extractor()
    store = ArtifactStore(tmp_path / "artifacts")
    store.store(new_uuid(), b"fresh", ".mp3")

    report = HealthService(make_settings(binary), store).run_doctor()

    assert report.ok is True
    assert report.checks_run == 3
    assert report.issues == []
    assert report.runtime["extractor_path"] == str(binary.resolve())
    assert report.runtime["artifacts_stored"] == 1


def test_doctor_fails_when_binary_missing(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "artifacts")

    report = HealthService(make_settings("definitely-not-a-real-yt-dlp-binary"), store).run_doctor()

    assert report.ok is False
    assert [issue.check for issue in report.issues] == ["extractor_binary"]
    assert report.runtime["extractor_path"] is None


def test_doctor_warns_about_orphans_and_partials(tmp_path: Path, fake_extractor) -> None:
    binary = fake_extractor()
    store = ArtifactStore(tmp_path / "artifacts")
    stale = store.store(new_uuid(), b"stale", ".mp4").storage_path
    past = time.time() - 7200
    os.utime(stale, (past, past))
    (store.base_dir / f"{new_uuid()}.mp3.part").write_bytes(b"partial")

    report = HealthService(make_settings(binary, artifact_ttl_seconds=3600), store).run_doctor()

    assert report.ok is True
    assert sorted(issue.check for issue in report.issues) == ["orphaned_artifacts", "partial_downloads"]
    assert all(issue.level == "warning" for issue in report.issues)
