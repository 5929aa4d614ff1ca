import re

import httpx
import pytest

from vigitracker import auth
from vigitracker.auth import AuthError, AuthUser
from vigitracker.flows import SOS_FALLBACK_MESSAGE
from vigitracker.models import Geofence, Notification

from conftest import USER, make_device, suggestions

UID = USER["uid"]


def _stat(html, name):
    m = re.search(rf'id="stat-{name}">.*?<span class="value">(\d+)</span>', html, re.S)
    return int(m.group(1))


# ── Auth gating ──

@pytest.mark.parametrize("path", ["/dashboard", "/devices", "/geofences", "/notifications", "/reports", "/ota-updates", "/profile"])
def test_pages_redirect_to_login(client, path):
    resp = client.get(path)
    assert resp.status_code == 302
    assert "/login" in resp.headers["Location"]


def test_api_requires_login(client):
    resp = client.post("/api/sos", json={"latitude": 1, "longitude": 2})
    assert resp.status_code == 401


def test_landing_is_public(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"VigiTracker" in resp.data


def test_login_success(client, monkeypatch):
    monkeypatch.setattr(auth, "sign_in", lambda email, pw: AuthUser(uid="u9", email=email))
    resp = client.post("/login?next=/devices", data={"email": "a@example.com", "password": "secret1"})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/devices")
    with client.session_transaction() as sess:
        assert sess["user"]["uid"] == "u9"


def test_login_rejects_offsite_next(client, monkeypatch):
    monkeypatch.setattr(auth, "sign_in", lambda email, pw: AuthUser(uid="u9", email=email))
    resp = client.post("/login?next=//evil.example", data={"email": "a@example.com", "password": "x"})
    assert resp.headers["Location"].endswith("/dashboard")


def test_login_failure_shows_message(client, monkeypatch):
    def fail(email, pw):
        raise AuthError("Invalid email or password.")

    monkeypatch.setattr(auth, "sign_in", fail)
    resp = client.post("/login", data={"email": "a@example.com", "password": "bad"})
    assert resp.status_code == 401
    assert b"Invalid email or password." in resp.data


def test_signup_saves_profile(client, store, monkeypatch):
    monkeypatch.setattr(
        auth, "sign_up",
        lambda email, pw, display_name="": AuthUser(uid="u7", email=email, display_name=display_name),
    )
    resp = client.post("/signup", data={"name": "Bo", "email": "bo@example.com", "password": "secret1"})
    assert resp.status_code == 302
    assert store.get_profile("u7").name == "Bo"


def test_logout_clears_session(auth_client):
    auth_client.post("/logout")
    assert auth_client.get("/dashboard").status_code == 302


# ── Pages ──

def test_dashboard_counts(auth_client, store):
    for device_id, status in [("a", "Active"), ("b", "Active"), ("c", "Stopped"), ("d", "Offline")]:
        store.add_device(UID, make_device(device_id, status=status))
    store.add_notification(UID, Notification(type="sos", title="SOS", description="", user_id=UID))

    html = auth_client.get("/dashboard").get_data(as_text=True)

    assert _stat(html, "total") == 4
    assert _stat(html, "active") == 2
    assert _stat(html, "offline") == 1
    assert _stat(html, "alerts") == 1


def test_add_device(auth_client, store):
    resp = auth_client.post("/devices", data={"id": "dev-9", "name": "Van 9", "firmware_version": ""},
                            follow_redirects=True)
    assert b"has been added successfully" in resp.data
    device = store.get_device(UID, "dev-9")
    assert device.status == "Active"
    assert device.firmware_version == "1.0.0"
    # Dropped near the default origin when the browser sent no fix
    assert abs(device.last_location.lat - 37.7749) <= 0.05
    assert [n.type for n in store.list_notifications(UID)] == ["online"]


def test_add_device_uses_browser_location(auth_client, store):
    auth_client.post("/devices", data={"id": "dev-9", "name": "Van", "latitude": "10.5", "longitude": "20.25"})
    loc = store.get_device(UID, "dev-9").last_location
    assert (loc.lat, loc.lng) == (10.5, 20.25)


def test_add_device_duplicate_id(auth_client, store):
    store.add_device(UID, make_device("dev-1"))
    resp = auth_client.post("/devices", data={"id": "dev-1", "name": "Other"}, follow_redirects=True)
    assert b"already registered" in resp.data
    assert store.get_device(UID, "dev-1").name == "Cargo Truck 1"


def test_add_device_requires_name(auth_client, store):
    auth_client.post("/devices", data={"id": "dev-1", "name": ""})
    assert store.list_devices(UID) == []


def test_delete_device_removes_row(auth_client, store):
    store.add_device(UID, make_device("dev-1"))
    store.add_device(UID, make_device("dev-2", name="Van"))
    assert b'data-device-id="dev-1"' in auth_client.get("/devices").data

    resp = auth_client.post("/devices/dev-1/delete", follow_redirects=True)

    assert b'data-device-id="dev-1"' not in resp.data
    assert b'data-device-id="dev-2"' in resp.data
    assert store.get_device(UID, "dev-1") is None


def test_device_detail(auth_client, store):
    store.add_device(UID, make_device("dev-001"))
    resp = auth_client.get("/devices/dev-001")
    assert resp.status_code == 200
    assert b'data-trip-id="trip-001"' in resp.data
    assert auth_client.get("/devices/missing").status_code == 404


def test_add_geofence_defaults_to_device_location(auth_client, store):
    store.add_device(UID, make_device("dev-1", lat=12.0, lng=34.0))
    auth_client.post("/geofences", data={"name": "Depot", "device_id": "dev-1", "radius": "250"})
    [fence] = store.list_geofences(UID)
    assert (fence.latitude, fence.longitude, fence.radius) == (12.0, 34.0, 250)


def test_add_geofence_unknown_device(auth_client, store):
    resp = auth_client.post("/geofences", data={"name": "Depot", "device_id": "nope"}, follow_redirects=True)
    assert b"You must select a device." in resp.data
    assert store.list_geofences(UID) == []


def test_delete_geofence(auth_client, store):
    store.add_device(UID, make_device("dev-1"))
    fence = store.add_geofence(UID, Geofence(name="Depot", latitude=1, longitude=2, device_id="dev-1"))
    auth_client.post(f"/geofences/dev-1/{fence.id}/delete")
    assert store.list_geofences(UID) == []


def test_notifications_page(auth_client, store):
    store.add_notification(UID, Notification(type="geofence-enter", title="Entered Depot",
                                             description="Truck entered", user_id=UID, icon="MapPin"))
    assert b"Entered Depot" in auth_client.get("/notifications").data


def test_ota_updates_flags_outdated(auth_client, store):
    store.add_device(UID, make_device("dev-1").model_copy(update={"firmware_version": "1.1.0"}))
    assert b"Update to 1.2.3" in auth_client.get("/ota-updates").data


def test_reports_page(auth_client, store):
    store.add_device(UID, make_device("dev-1"))
    assert b'data-generate-report="dev-1"' in auth_client.get("/reports").data


def test_profile_update(auth_client, store, monkeypatch):
    renamed = []
    monkeypatch.setattr(auth, "update_display_name", lambda uid, name: renamed.append((uid, name)))
    resp = auth_client.post("/profile", data={"name": "Ada King", "email": "ada@example.com"},
                            follow_redirects=True)
    assert b"successfully updated" in resp.data
    assert renamed == [(UID, "Ada King")]
    assert store.get_profile(UID).name == "Ada King"
    with auth_client.session_transaction() as sess:
        assert sess["user"]["display_name"] == "Ada King"


def test_profile_rejects_bad_email(auth_client, store):
    auth_client.post("/profile", data={"name": "Ada", "email": "nope"})
    assert store.get_profile(UID) is None


# ── Flow API ──

def test_api_sos(auth_client, fake_client):
    fake_client.text = "Help is on the way."
    resp = auth_client.post("/api/sos", json={"latitude": 34.05, "longitude": -118.24, "message": "Crash"})
    assert resp.status_code == 200
    assert resp.get_json() == {"confirmation_message": "Help is on the way."}


def test_api_sos_fallback(auth_client):
    resp = auth_client.post("/api/sos", json={"latitude": 34.05, "longitude": -118.24})
    assert resp.get_json()["confirmation_message"] == SOS_FALLBACK_MESSAGE


def test_api_sos_missing_latitude(auth_client, fake_client):
    resp = auth_client.post("/api/sos", json={"longitude": -118.24})
    assert resp.status_code == 400
    assert resp.get_json()["details"][0]["loc"] == ["latitude"]
    assert fake_client.calls == []


def test_api_sos_rate_limited(auth_client, fake_client):
    fake_client.error = RuntimeError("429 RESOURCE_EXHAUSTED")
    resp = auth_client.post("/api/sos", json={"latitude": 1, "longitude": 2})
    assert resp.status_code == 429


def test_api_sos_service_failure_is_generic(auth_client, fake_client):
    fake_client.error = RuntimeError("connection reset by peer")
    resp = auth_client.post("/api/sos", json={"latitude": 1, "longitude": 2})
    assert resp.status_code == 500
    assert "connection reset" not in resp.get_json()["error"]


def test_api_report(auth_client, store, fake_client):
    store.add_device(UID, make_device("dev-1"))
    fake_client.outputs["generate_device_report"] = {"report": "Busy month."}
    resp = auth_client.post("/api/reports", json={"deviceId": "dev-1", "timeframe": "30d"})
    assert resp.status_code == 200
    assert resp.get_json() == {"device_id": "dev-1", "device_name": "Cargo Truck 1", "report": "Busy month."}


def test_api_report_validation_and_missing_device(auth_client, store):
    store.add_device(UID, make_device("dev-1"))
    assert auth_client.post("/api/reports", json={"deviceId": "dev-1", "timeframe": 30}).status_code == 400
    assert auth_client.post("/api/reports", json={"deviceId": "nope"}).status_code == 404


def test_api_geofence_suggestions(auth_client, store, fake_client):
    store.add_device(UID, make_device("dev-001"))
    fake_client.outputs["suggest_geofences_from_history"] = suggestions(4)
    resp = auth_client.post("/api/devices/dev-001/geofence-suggestions")
    assert resp.status_code == 200
    assert len(resp.get_json()["geofence_suggestions"]) == 4


def test_api_geofence_suggestions_too_few(auth_client, store, fake_client):
    store.add_device(UID, make_device("dev-001"))
    fake_client.outputs["suggest_geofences_from_history"] = suggestions(2)
    resp = auth_client.post("/api/devices/dev-001/geofence-suggestions")
    assert resp.status_code == 500
    assert resp.get_json()["status"] == "error"


def test_api_geofence_suggestions_without_history(auth_client, store, fake_client):
    store.add_device(UID, make_device("dev-002"))
    resp = auth_client.post("/api/devices/dev-002/geofence-suggestions")
    assert resp.status_code == 422
    assert fake_client.calls == []


def test_api_save_suggestion(auth_client, store):
    store.add_device(UID, make_device("dev-001"))
    suggestion = suggestions(3)["geofence_suggestions"][0]
    resp = auth_client.post("/api/devices/dev-001/geofence-suggestions/save", json=suggestion)
    assert resp.status_code == 201
    assert resp.get_json()["deviceId"] == "dev-001"
    assert [g.name for g in store.list_geofences(UID)] == ["Zone 0"]


def test_api_trip_summary(auth_client, store, fake_client):
    store.add_device(UID, make_device("dev-001"))
    fake_client.outputs["summarize_device_trip"] = {"summary": "Warehouse to distribution."}
    resp = auth_client.post("/api/trips/trip-001/summary")
    assert resp.status_code == 200
    assert resp.get_json() == {"trip_id": "trip-001", "summary": "Warehouse to distribution."}
    assert "Latitude: 34.0522" in fake_client.calls[0]["prompt"]


def test_api_trip_summary_unknown_trip(auth_client, store):
    store.add_device(UID, make_device("dev-001"))
    assert auth_client.post("/api/trips/trip-999/summary").status_code == 404


def test_api_trip_summary_failure(auth_client, store):
    store.add_device(UID, make_device("dev-001"))
    resp = auth_client.post("/api/trips/trip-001/summary")
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Could not generate trip summary."


def test_api_tracker(auth_client):
    resp = auth_client.get("/api/tracker")
    assert resp.status_code == 200
    assert set(resp.get_json()) == {"summary", "recent"}


# ── Failure paths ──

def test_login_when_auth_service_unreachable(client, monkeypatch):
    def unreachable(*args, **kwargs):
        raise httpx.ConnectError("dns failure")

    monkeypatch.setenv("FIREBASE_API_KEY", "web-key")
    monkeypatch.setattr(auth.httpx, "post", unreachable)
    resp = client.post("/login", data={"email": "a@example.com", "password": "secret1"})
    assert resp.status_code == 401
    assert b"Authentication failed. Please try again." in resp.data


@pytest.mark.parametrize("body", [["dev-1"], "dev-1", 42])
def test_api_report_rejects_non_object_body(auth_client, store, body):
    store.add_device(UID, make_device("dev-1"))
    resp = auth_client.post("/api/reports", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid request"


def test_api_save_suggestion_rejects_non_positive_radius(auth_client, store):
    store.add_device(UID, make_device("dev-001"))
    resp = auth_client.post(
        "/api/devices/dev-001/geofence-suggestions/save",
        json={"name": "Z", "latitude": 1, "longitude": 2, "radius": -50},
    )
    assert resp.status_code == 400
    assert store.list_geofences(UID) == []


def _broken(*args, **kwargs):
    raise RuntimeError("PERMISSION_DENIED: missing or insufficient permissions")


def test_store_failure_on_page_shows_error(auth_client, store, monkeypatch, capsys):
    monkeypatch.setattr(store, "list_devices", _broken)
    resp = auth_client.get("/devices")
    assert resp.status_code == 500
    assert b"Something went wrong. Please try again." in resp.data
    assert b"PERMISSION_DENIED" not in resp.data
    assert "[dashboard] GET /devices failed" in capsys.readouterr().out


def test_store_failure_on_form_post(auth_client, store, monkeypatch):
    monkeypatch.setattr(store, "add_device", _broken)
    resp = auth_client.post("/devices", data={"id": "dev-9", "name": "Van"})
    assert resp.status_code == 500
    assert b"Something went wrong. Please try again." in resp.data


def test_store_failure_on_api_returns_json(auth_client, store, monkeypatch):
    monkeypatch.setattr(store, "get_device", _broken)
    resp = auth_client.post("/api/reports", json={"deviceId": "dev-1"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Something went wrong. Please try again.", "status": "error"}


def test_not_found_is_not_swallowed(auth_client):
    assert auth_client.get("/devices/missing").status_code == 404
    assert auth_client.get("/no-such-page").status_code == 404


def test_ota_firmware_images_are_not_links(auth_client):
    html = auth_client.get("/ota-updates").get_data(as_text=True)
    assert "/firmware/v1.2.3.bin" in html
    assert 'href="/firmware/' not in html


def test_secret_key_fallback_is_logged(monkeypatch, capsys):
    from vigitracker import dashboard

    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)
    key = dashboard._secret_key()
    assert len(key) == 64
    assert "[dashboard] FLASK_SECRET_KEY not set" in capsys.readouterr().out

    monkeypatch.setenv("FLASK_SECRET_KEY", "configured")
    assert dashboard._secret_key() == "configured"
