"""
Pytest configuration and fixtures

Every test gets its own in-memory document store (mongomock) and its own
uploads/outputs/scripts directories. The media host is offline by default,
so uploads take the inline fallback unless a test swaps the uploader.
"""
import pytest
import sys
import os

import mongomock
from fastapi.testclient import TestClient

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from core.config import settings
from core.database import DocumentStore, get_db
from core.exceptions import UploadError
from services.analysis_backends import AnalysisRegistry, get_analysis_registry
from services.media_uploader import PDF, MediaUploader, get_media_uploader


class FakeUploader(MediaUploader):
    """Records uploads and answers with predictable URLs."""

    def __init__(self, fail_kinds=()):
        super().__init__(cloud_name="demo", api_key="key", api_secret="secret", root_folder="talenttrack")
        self.fail_kinds = set(fail_kinds)
        self.calls = []

    def upload(self, kind, data, folder=None, public_id=None):
        self.calls.append({"kind": kind, "folder": folder, "public_id": public_id})
        if kind in self.fail_kinds:
            raise UploadError(f"{kind} upload rejected")
        return f"https://media.example.com/{folder}/{public_id}.{kind}"


@pytest.fixture(autouse=True)
def workspace_dirs(tmp_path, monkeypatch):
    """Point uploads, outputs and the analysis script search path at tmp_path."""
    dirs = {name: tmp_path / name for name in ("uploads", "outputs", "scripts")}
    for path in dirs.values():
        path.mkdir()
    monkeypatch.setattr(settings, "UPLOADS_DIR", str(dirs["uploads"]))
    monkeypatch.setattr(settings, "OUTPUTS_DIR", str(dirs["outputs"]))
    monkeypatch.setattr(settings, "SCRIPTS_DIRS", str(dirs["scripts"]))
    monkeypatch.setattr(settings, "ANALYSIS_PYTHON", sys.executable)
    monkeypatch.setattr(settings, "LIVE_SIMULATION_DELAY_S", 0)
    return dirs


@pytest.fixture
def store():
    store = DocumentStore(db_name="talenttrack_test", client=mongomock.MongoClient())
    store.connect()
    yield store
    store.close()


@pytest.fixture
def db(store):
    return store.get_handle()


@pytest.fixture
def uploader():
    """Media host with no credentials: every upload falls back inline."""
    return MediaUploader(cloud_name="", api_key="", api_secret="")


@pytest.fixture
def fake_uploader():
    return FakeUploader()


@pytest.fixture
def failing_pdf_uploader():
    return FakeUploader(fail_kinds={PDF})


@pytest.fixture
def registry(workspace_dirs):
    return AnalysisRegistry.from_settings()


@pytest.fixture
def client(db, uploader, registry):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_media_uploader] = lambda: uploader
    app.dependency_overrides[get_analysis_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_uploader():
    """Swap the media uploader used by the API for the rest of the test."""
    def _use(instance):
        app.dependency_overrides[get_media_uploader] = lambda: instance
        return instance
    return _use


@pytest.fixture
def session_payload():
    def _payload(athlete="A", activity="Squats", reps=3, **meta):
        session_meta = {
            "athleteName": athlete,
            "activityName": activity,
            "totalReps": 10,
            "correctReps": 8,
            "incorrectReps": 2,
            "duration": 60,
            "accuracy": 90,
            "timestamp": "2024-01-01T00:00:00Z",
        }
        session_meta.update(meta)
        return {
            "sessionMeta": session_meta,
            "repImages": [
                {
                    "repNumber": n,
                    "imageData": f"data:image/jpeg;base64,REP{n}",
                    "correct": n % 2 == 1,
                    "details": {"angle": 90 + n},
                }
                for n in range(1, reps + 1)
            ],
        }
    return _payload
