"""Flask web dashboard for VigiTracker fleet tracking."""

from __future__ import annotations

import os
import secrets
import sys
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, abort, flash, jsonify, redirect, render_template, request, url_for
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

load_dotenv()

from vigitracker import api_tracker, auth, flows, sample_data
from vigitracker.auth import AuthError, AuthUser, current_user, login_required
from vigitracker.flows import FlowError, GenerationClient
from vigitracker.memory_store import MemoryStore
from vigitracker.models import (
    DEVICE_STATUSES,
    Device,
    DeviceForm,
    Geofence,
    GeofenceForm,
    LatLng,
    Notification,
    ProfileForm,
    UserProfile,
    fleet_counts,
)
from vigitracker.store import Store
from vigitracker.utils import (
    DEFAULT_DEVICE_ORIGIN,
    DEFAULT_MAP_CENTER,
    osm_url,
    path_length_km,
    random_point_near,
)

# Resolve paths for templates and static files
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_TEMPLATE_DIR = _PROJECT_ROOT / "templates"
_STATIC_DIR = _PROJECT_ROOT / "static"

app = Flask(
    __name__,
    template_folder=str(_TEMPLATE_DIR),
    static_folder=str(_STATIC_DIR),
)


def _secret_key() -> str:
    key = os.getenv("FLASK_SECRET_KEY", "")
    if not key:
        print("[dashboard] FLASK_SECRET_KEY not set; sessions will not survive a restart", flush=True)
        key = secrets.token_hex(32)
    return key


app.secret_key = _secret_key()

api_tracker.init_db()

_store: Store | None = None
# None means the flows create their own GeminiClient
_flow_client: GenerationClient | None = None


def _get_store() -> Store:
    global _store
    if _store is None:
        if os.getenv("VIGI_STORE", "firestore").lower() == "memory":
            _store = MemoryStore(seed_demo=os.getenv("VIGI_SEED_DEMO", "true").lower() == "true")
        else:
            from vigitracker.firestore_store import FirestoreStore
            _store = FirestoreStore()
    return _store


@app.context_processor
def _inject_user():
    return {"current_user": current_user(), "osm_url": osm_url}


def _form_data(*fields: str) -> dict:
    """Non-empty form fields, so optional inputs left blank fall back to defaults."""
    data = {}
    for name in fields:
        value = request.form.get(name, "").strip()
        if value:
            data[name] = value
    return data


def _json_body() -> dict:
    """Request JSON if it is an object; anything else validates as empty."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    field = ".".join(str(p) for p in first["loc"]) or "input"
    return f"{field}: {first['msg']}"


def _bad_request(e: ValidationError):
    return jsonify({
        "error": "Invalid request",
        "details": e.errors(include_url=False, include_context=False, include_input=False),
    }), 400


def _flow_failed(e: Exception, message: str):
    """User-facing failure for a flow call; the detail only goes to the log."""
    err = str(e)
    print(f"[flow] {message} ({type(e).__name__}: {err})", flush=True)
    if "429" in err or "RESOURCE_EXHAUSTED" in err:
        return jsonify({
            "error": "Gemini AI is temporarily rate limited. Please try again in a few minutes.",
            "status": "rate_limited",
        }), 429
    return jsonify({"error": message, "status": "error"}), 500


# ── Public Pages ─────────────────────────────────────────────────────────

@app.route("/")
def index():
    """Landing page."""
    return render_template("landing.html")


@app.route("/login", methods=["GET", "POST"])
def login():
    if current_user() is not None:
        return redirect(url_for("dashboard"))
    if request.method == "GET":
        return render_template("login.html")

    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")
    if not email or not password:
        flash("Email and password are required.", "error")
        return render_template("login.html", email=email), 400
    try:
        user = auth.sign_in(email, password)
    except AuthError as e:
        flash(str(e), "error")
        return render_template("login.html", email=email), 401
    auth.login_user(user)
    next_url = request.args.get("next", "")
    if not next_url.startswith("/") or next_url.startswith("//"):
        next_url = url_for("dashboard")
    return redirect(next_url)


@app.route("/signup", methods=["GET", "POST"])
def signup():
    if current_user() is not None:
        return redirect(url_for("dashboard"))
    if request.method == "GET":
        return render_template("signup.html")

    name = request.form.get("name", "").strip()
    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")
    if not email or not password:
        flash("Email and password are required.", "error")
        return render_template("signup.html", name=name, email=email), 400
    try:
        user = auth.sign_up(email, password, display_name=name)
    except AuthError as e:
        flash(str(e), "error")
        return render_template("signup.html", name=name, email=email), 400
    _get_store().save_profile(user.uid, UserProfile(name=name, email=user.email))
    auth.login_user(user)
    return redirect(url_for("dashboard"))


@app.route("/logout", methods=["POST"])
def logout():
    auth.logout_user()
    return redirect(url_for("index"))


# ── Dashboard Pages ──────────────────────────────────────────────────────

@app.route("/dashboard")
@login_required
def dashboard(user: AuthUser):
    store = _get_store()
    devices = store.list_devices(user.uid)
    notifications = store.list_notifications(user.uid)
    if devices and devices[0].last_location:
        center = (devices[0].last_location.lat, devices[0].last_location.lng)
    else:
        center = DEFAULT_MAP_CENTER
    return render_template(
        "dashboard.html",
        counts=fleet_counts(devices, notifications),
        devices=devices,
        map_center=center,
    )


@app.route("/devices", methods=["GET", "POST"])
@login_required
def devices_page(user: AuthUser):
    store = _get_store()
    if request.method == "POST":
        try:
            form = DeviceForm(**_form_data("id", "name", "firmware_version", "latitude", "longitude"))
        except ValidationError as e:
            flash(_validation_message(e), "error")
            return redirect(url_for("devices_page"))
        if store.get_device(user.uid, form.id) is not None:
            flash(f'Device ID "{form.id}" is already registered.', "error")
            return redirect(url_for("devices_page"))

        if form.latitude is not None and form.longitude is not None:
            lat, lng = form.latitude, form.longitude
        else:
            lat, lng = random_point_near(*DEFAULT_DEVICE_ORIGIN)
        device = store.add_device(user.uid, Device(
            id=form.id,
            name=form.name,
            status="Active",
            firmware_version=form.firmware_version,
            last_location=LatLng(lat=lat, lng=lng),
        ))
        store.add_notification(user.uid, Notification(
            type="online",
            title="Device added",
            description=f'"{device.name}" is now being tracked.',
            icon="Truck",
            icon_color="text-green-500",
            user_id=user.uid,
            device_id=device.id,
        ))
        flash(f'Device "{device.name}" has been added successfully.', "success")
        return redirect(url_for("devices_page"))

    return render_template(
        "devices.html",
        devices=sorted(store.list_devices(user.uid), key=lambda d: d.name.lower()),
        statuses=DEVICE_STATUSES,
    )


@app.route("/devices/<device_id>/delete", methods=["POST"])
@login_required
def delete_device(user: AuthUser, device_id: str):
    store = _get_store()
    device = store.get_device(user.uid, device_id)
    if device is None or not store.delete_device(user.uid, device_id):
        flash("Device not found.", "error")
    else:
        flash(f'"{device.name}" has been removed.', "success")
    return redirect(url_for("devices_page"))


@app.route("/devices/<device_id>")
@login_required
def device_detail(user: AuthUser, device_id: str):
    device = _get_store().get_device(user.uid, device_id)
    if device is None:
        abort(404)
    trips = sample_data.trips_for_device(device.id)
    return render_template(
        "device_detail.html",
        device=device,
        trips=trips,
        path_km={t.id: path_length_km([(p.lat, p.lng) for p in t.path]) for t in trips},
        total_km=round(sum(t.distance for t in trips), 1),
    )


@app.route("/geofences", methods=["GET", "POST"])
@login_required
def geofences_page(user: AuthUser):
    store = _get_store()
    devices = store.list_devices(user.uid)
    if request.method == "POST":
        try:
            form = GeofenceForm(**_form_data("name", "device_id", "latitude", "longitude", "radius"))
        except ValidationError as e:
            flash(_validation_message(e), "error")
            return redirect(url_for("geofences_page"))
        device = next((d for d in devices if d.id == form.device_id), None)
        if device is None:
            flash("You must select a device.", "error")
            return redirect(url_for("geofences_page"))

        if form.latitude is not None and form.longitude is not None:
            lat, lng = form.latitude, form.longitude
        elif device.last_location is not None:
            lat, lng = device.last_location.lat, device.last_location.lng
        else:
            lat, lng = DEFAULT_MAP_CENTER
        store.add_geofence(user.uid, Geofence(
            name=form.name,
            latitude=lat,
            longitude=lng,
            radius=form.radius,
            device_id=device.id,
        ))
        flash(f'Geofence "{form.name}" has been added successfully.', "success")
        return redirect(url_for("geofences_page"))

    names = {d.id: d.name for d in devices}
    return render_template(
        "geofences.html",
        devices=devices,
        geofences=store.list_geofences(user.uid),
        device_names=names,
    )


@app.route("/geofences/<device_id>/<geofence_id>/delete", methods=["POST"])
@login_required
def delete_geofence(user: AuthUser, device_id: str, geofence_id: str):
    if _get_store().delete_geofence(user.uid, device_id, geofence_id):
        flash("Geofence deleted.", "success")
    else:
        flash("Geofence not found.", "error")
    return redirect(url_for("geofences_page"))


@app.route("/notifications")
@login_required
def notifications_page(user: AuthUser):
    return render_template(
        "notifications.html",
        notifications=_get_store().list_notifications(user.uid, limit=50),
    )


@app.route("/reports")
@login_required
def reports_page(user: AuthUser):
    return render_template("reports.html", devices=_get_store().list_devices(user.uid))


@app.route("/ota-updates")
@login_required
def ota_updates_page(user: AuthUser):
    latest = sample_data.latest_firmware()
    return render_template(
        "ota_updates.html",
        firmwares=sample_data.FIRMWARES,
        latest=latest,
        devices=_get_store().list_devices(user.uid),
    )


@app.route("/profile", methods=["GET", "POST"])
@login_required
def profile_page(user: AuthUser):
    store = _get_store()
    if request.method == "POST":
        try:
            form = ProfileForm(**_form_data("name", "email"))
        except ValidationError as e:
            flash(_validation_message(e), "error")
            return redirect(url_for("profile_page"))
        try:
            auth.update_display_name(user.uid, form.name)
        except Exception as e:
            print(f"[auth] profile update failed for {user.uid}: {e}", flush=True)
            flash("There was a problem updating your profile.", "error")
            return redirect(url_for("profile_page"))
        store.save_profile(user.uid, UserProfile(name=form.name, email=form.email))
        auth.login_user(user.model_copy(update={"display_name": form.name}))
        flash("Your profile information has been successfully updated.", "success")
        return redirect(url_for("profile_page"))

    profile = store.get_profile(user.uid) or UserProfile(name=user.display_name, email=user.email)
    initials = "".join(part[0] for part in (profile.name or "").split()) or "U"
    return render_template("profile.html", profile=profile, initials=initials)


# ── Flow API Routes ──────────────────────────────────────────────────────

@app.route("/api/sos", methods=["POST"])
@login_required
def api_sos(user: AuthUser):
    """Trigger the SOS flow. Body: {"latitude": .., "longitude": .., "message": ..}"""
    body = _json_body()
    try:
        result = flows.handle_sos_emergency(body, client=_flow_client)
    except ValidationError as e:
        return _bad_request(e)
    except Exception as e:
        return _flow_failed(e, "Could not send emergency signal. Please try again.")
    return jsonify(result.model_dump())


@app.route("/api/reports", methods=["POST"])
@login_required
def api_report(user: AuthUser):
    """Generate the AI report for one device. Body: {"deviceId": .., "timeframe": "30d"}"""
    body = _json_body()
    payload = {
        "device_id": body.get("deviceId", body.get("device_id")),
        "user_id": user.uid,
        "timeframe": body.get("timeframe", "30d"),
    }
    try:
        data = flows.GenerateDeviceReportInput.model_validate(payload)
    except ValidationError as e:
        return _bad_request(e)
    device = _get_store().get_device(user.uid, data.device_id)
    if device is None:
        return jsonify({"error": "Device not found"}), 404
    try:
        result = flows.generate_device_report(data, client=_flow_client)
    except Exception as e:
        return _flow_failed(e, "Could not generate AI report for this device.")
    return jsonify({"device_id": device.id, "device_name": device.name, **result.model_dump()})


@app.route("/api/devices/<device_id>/geofence-suggestions", methods=["POST"])
@login_required
def api_geofence_suggestions(user: AuthUser, device_id: str):
    """Suggest geofences from the device's trip history."""
    device = _get_store().get_device(user.uid, device_id)
    if device is None:
        return jsonify({"error": "Device not found"}), 404
    history = sample_data.gps_history(sample_data.trips_for_device(device.id))
    if not history:
        return jsonify({
            "error": "There is no trip history to analyze for this device.",
            "status": "no_data",
        }), 422
    try:
        result = flows.suggest_geofences_from_history(
            {"device_id": device.id, "gps_history": history},
            client=_flow_client,
        )
    except FlowError as e:
        return _flow_failed(e, "The AI returned no usable geofence suggestions.")
    except Exception as e:
        return _flow_failed(e, "Could not generate geofence suggestions.")
    return jsonify(result.model_dump())


@app.route("/api/devices/<device_id>/geofence-suggestions/save", methods=["POST"])
@login_required
def api_save_geofence_suggestion(user: AuthUser, device_id: str):
    """Persist one suggestion as a geofence for the device."""
    store = _get_store()
    if store.get_device(user.uid, device_id) is None:
        return jsonify({"error": "Device not found"}), 404
    try:
        suggestion = flows.GeofenceSuggestion.model_validate(_json_body())
    except ValidationError as e:
        return _bad_request(e)
    geofence = store.add_geofence(user.uid, Geofence(
        name=suggestion.name,
        latitude=suggestion.latitude,
        longitude=suggestion.longitude,
        radius=suggestion.radius,
        device_id=device_id,
    ))
    return jsonify(geofence.to_doc()), 201


@app.route("/api/trips/<trip_id>/summary", methods=["POST"])
@login_required
def api_trip_summary(user: AuthUser, trip_id: str):
    """Summarize one trip from its GPS path."""
    trip = sample_data.get_trip(trip_id)
    if trip is None or _get_store().get_device(user.uid, trip.device_id) is None:
        return jsonify({"error": "Trip not found"}), 404
    try:
        result = flows.summarize_device_trip(
            {"device_id": trip.device_id, "gps_data": sample_data.trip_gps_points(trip)},
            client=_flow_client,
        )
    except Exception as e:
        return _flow_failed(e, "Could not generate trip summary.")
    return jsonify({"trip_id": trip.id, **result.model_dump()})


# ── API Tracker ──────────────────────────────────────────────────────────

@app.route("/api/tracker")
@login_required
def api_tracker_view(user: AuthUser):
    """Hosted-service call usage summary and recent calls."""
    hours = request.args.get("hours", 24, type=int)
    limit = request.args.get("limit", 50, type=int)
    return jsonify({
        "summary": api_tracker.get_summary(hours=hours),
        "recent": api_tracker.get_recent(limit=limit),
    })


# ── Error Handling ───────────────────────────────────────────────────────

@app.errorhandler(Exception)
def _unhandled_error(e: Exception):
    """Last-resort handler: log the failure, answer with a generic message."""
    if isinstance(e, HTTPException):
        return e
    print(f"[dashboard] {request.method} {request.path} failed: {type(e).__name__}: {e}", flush=True)
    message = "Something went wrong. Please try again."
    if request.path.startswith("/api/"):
        return jsonify({"error": message, "status": "error"}), 500
    flash(message, "error")
    return render_template("error.html"), 500


# ── Entry Point ──────────────────────────────────────────────────────────

def main():
    """Run the dashboard server."""
    port = int(os.getenv("DASHBOARD_PORT", "5030"))
    debug = os.getenv("DASHBOARD_DEBUG", "false").lower() == "true"
    print(f"VigiTracker dashboard starting on http://localhost:{port}")
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    # Allow running from project root: python -m vigitracker.dashboard
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    main()
