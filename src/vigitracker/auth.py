"""Email/password authentication against Firebase Auth and session gating.

Sign-in and sign-up go through the Firebase Auth REST API (the Admin SDK
cannot check passwords); profile changes go through the Admin SDK. The
signed-in user is kept in the Flask session.
"""

from __future__ import annotations

import os
import time
from functools import wraps

import httpx
from firebase_admin import auth as fb_auth
from flask import jsonify, redirect, request, session, url_for
from pydantic import BaseModel

from vigitracker import api_tracker
from vigitracker.firebase import get_app

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{action}"

_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "EMAIL_EXISTS": "An account with this email already exists.",
    "INVALID_EMAIL": "Please enter a valid email address.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}

_GENERIC_ERROR = "Authentication failed. Please try again."


class AuthError(Exception):
    """Sign-in or sign-up rejected; ``str(err)`` is safe to show the user."""


class AuthUser(BaseModel):
    uid: str
    email: str = ""
    display_name: str = ""


def _get_api_key() -> str:
    key = os.getenv("FIREBASE_API_KEY", "")
    if not key:
        raise ValueError("FIREBASE_API_KEY environment variable is required")
    return key


def error_message(code: str) -> str:
    """Map a Firebase REST error code (``"WEAK_PASSWORD : ..."``) to user text."""
    key = code.split(":", 1)[0].strip()
    return _ERROR_MESSAGES.get(key, _GENERIC_ERROR)


def _call(action: str, payload: dict) -> dict:
    t0 = time.monotonic()
    try:
        resp = httpx.post(
            IDENTITY_URL.format(action=action),
            params={"key": _get_api_key()},
            json=payload,
            timeout=10,
        )
    except httpx.HTTPError as e:
        ms = int((time.monotonic() - t0) * 1000)
        api_tracker.log_call("firebase_auth", action, "error", ms, error=str(e))
        print(f"[auth] {action} request failed: {e}", flush=True)
        raise AuthError(_GENERIC_ERROR) from e
    ms = int((time.monotonic() - t0) * 1000)

    try:
        data = resp.json() if resp.content else {}
    except ValueError:
        data = {}
    if resp.status_code >= 400:
        code = ""
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            code = data["error"].get("message", "")
        api_tracker.log_call("firebase_auth", action, "error", ms, error=code or f"HTTP {resp.status_code}")
        raise AuthError(error_message(code))
    if not isinstance(data, dict):
        api_tracker.log_call("firebase_auth", action, "error", ms, error="unreadable response body")
        raise AuthError(_GENERIC_ERROR)
    api_tracker.log_call("firebase_auth", action, "success", ms)
    return data


def sign_in(email: str, password: str) -> AuthUser:
    data = _call("signInWithPassword", {
        "email": email,
        "password": password,
        "returnSecureToken": True,
    })
    return AuthUser(
        uid=data["localId"],
        email=data.get("email", email),
        display_name=data.get("displayName", ""),
    )


def sign_up(email: str, password: str, display_name: str = "") -> AuthUser:
    data = _call("signUp", {
        "email": email,
        "password": password,
        "returnSecureToken": True,
    })
    if display_name:
        _call("update", {
            "idToken": data["idToken"],
            "displayName": display_name,
            "returnSecureToken": False,
        })
    return AuthUser(uid=data["localId"], email=data.get("email", email), display_name=display_name)


def update_display_name(uid: str, display_name: str) -> None:
    with api_tracker.track("firebase_auth", "update_user"):
        fb_auth.update_user(uid, display_name=display_name, app=get_app())


# ── Session helpers ──────────────────────────────────────────────────────

def login_user(user: AuthUser) -> None:
    session.clear()
    session["user"] = user.model_dump()
    print(f"[auth] signed in {user.uid}", flush=True)


def logout_user() -> None:
    session.clear()


def current_user() -> AuthUser | None:
    data = session.get("user")
    return AuthUser(**data) if data else None


def login_required(f):
    """Pass the signed-in user as the first argument, or bounce to /login.

    JSON endpoints under ``/api/`` get a 401 instead of a redirect.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        user = current_user()
        if user is None:
            if request.path.startswith("/api/"):
                return jsonify({"error": "Authentication required"}), 401
            return redirect(url_for("login", next=request.path))
        return f(user, *args, **kwargs)
    return decorated
