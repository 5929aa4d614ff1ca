"""Firebase Admin SDK initialisation shared by auth and the Firestore store."""

from __future__ import annotations

import os

import firebase_admin
from firebase_admin import credentials

_app: firebase_admin.App | None = None


def get_app() -> firebase_admin.App:
    """Initialise the default Firebase app once.

    Uses the service account at ``FIREBASE_CRED_PATH`` when it exists,
    otherwise Google application default credentials.
    """
    global _app
    if _app is not None:
        return _app
    if firebase_admin._apps:
        _app = firebase_admin.get_app()
        return _app

    cred_path = os.getenv("FIREBASE_CRED_PATH", "serviceAccountKey.json")
    if os.path.isfile(cred_path):
        cred = credentials.Certificate(cred_path)
        print(f"[firebase] using service account at {cred_path}", flush=True)
    else:
        cred = credentials.ApplicationDefault()
        print("[firebase] service account not found, using application default credentials", flush=True)
    project_id = os.getenv("FIREBASE_PROJECT_ID")
    options = {"projectId": project_id} if project_id else None
    _app = firebase_admin.initialize_app(cred, options)
    return _app
