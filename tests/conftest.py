import os
import tempfile
from pathlib import Path

# Must be set before vigitracker modules are imported
_TMP = Path(tempfile.mkdtemp(prefix="vigitracker-tests-"))
os.environ.setdefault("API_TRACKER_DB", str(_TMP / "api_tracker.db"))
os.environ.setdefault("FLASK_SECRET_KEY", "test-secret")
os.environ.setdefault("VIGI_STORE", "memory")

import pytest

from vigitracker import api_tracker
from vigitracker.memory_store import MemoryStore
from vigitracker.models import Device, LatLng

USER = {"uid": "user-1", "email": "ada@example.com", "display_name": "Ada Lovelace"}


class FakeGenerationClient:
    """Stands in for GeminiClient; answers are keyed by flow name."""

    def __init__(self, text=None, outputs=None, error=None):
        self.text = text
        self.outputs = outputs or {}
        self.error = error
        self.calls = []

    def generate_text(self, prompt, *, flow, tools=None, handlers=None,
                      temperature=0.3, max_tokens=1024):
        self.calls.append({"flow": flow, "prompt": prompt, "tools": tools})
        if self.error:
            raise self.error
        return self.text

    def generate_json(self, prompt, schema, *, flow, temperature=0.3, max_tokens=2048):
        self.calls.append({"flow": flow, "prompt": prompt, "schema": schema})
        if self.error:
            raise self.error
        value = self.outputs.get(flow)
        if value is None:
            return None
        return schema.model_validate(value)


def make_device(device_id="dev-001", name="Cargo Truck 1", status="Active", lat=34.0522, lng=-118.2437):
    return Device(
        id=device_id,
        name=name,
        status=status,
        firmware_version="1.2.3",
        last_location=LatLng(lat=lat, lng=lng),
    )


def suggestions(n):
    return {
        "geofence_suggestions": [
            {
                "name": f"Zone {i}",
                "latitude": 34.05 + i * 0.001,
                "longitude": -118.24,
                "radius": 200,
                "description": "Frequent stop",
            }
            for i in range(n)
        ]
    }


@pytest.fixture(autouse=True)
def tracker_db(tmp_path, monkeypatch):
    monkeypatch.setattr(api_tracker, "_DB_PATH", tmp_path / "api_tracker.db")
    api_tracker.init_db()
    return tmp_path / "api_tracker.db"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fake_client():
    return FakeGenerationClient()


@pytest.fixture
def app(store, fake_client, monkeypatch):
    from vigitracker import dashboard

    monkeypatch.setattr(dashboard, "_store", store)
    monkeypatch.setattr(dashboard, "_flow_client", fake_client)
    dashboard.app.config.update(TESTING=True)
    return dashboard.app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    with client.session_transaction() as sess:
        sess["user"] = dict(USER)
    return client
