"""Cloud Firestore store, the production backend for per-user records."""

from __future__ import annotations

from datetime import datetime, timezone

from firebase_admin import firestore
from google.cloud.firestore_v1.client import Client

from vigitracker.firebase import get_app
from vigitracker.models import Device, Geofence, Notification, UserProfile
from vigitracker.store import Store


def _from_snapshot(model, snap):
    data = snap.to_dict() or {}
    data["id"] = snap.id
    return model.model_validate(data)


class FirestoreStore(Store):
    """Reads and writes ``users/{uid}/...`` documents via the Admin SDK."""

    def __init__(self, db: Client | None = None) -> None:
        self._db = db

    @property
    def db(self) -> Client:
        if self._db is None:
            self._db = firestore.client(app=get_app())
        return self._db

    def _user_ref(self, uid: str):
        return self.db.collection("users").document(uid)

    def _devices(self, uid: str):
        return self._user_ref(uid).collection("devices")

    def _geofences(self, uid: str, device_id: str):
        return self._devices(uid).document(device_id).collection("geofences")

    # ── Devices ──

    def list_devices(self, uid: str) -> list[Device]:
        return [_from_snapshot(Device, snap) for snap in self._devices(uid).stream()]

    def get_device(self, uid: str, device_id: str) -> Device | None:
        snap = self._devices(uid).document(device_id).get()
        if not snap.exists:
            return None
        return _from_snapshot(Device, snap)

    def add_device(self, uid: str, device: Device) -> Device:
        doc = device.to_doc(exclude={"last_seen"})
        doc["userId"] = uid
        doc["lastSeen"] = firestore.SERVER_TIMESTAMP
        self._devices(uid).document(device.id).set(doc)
        return device.model_copy(update={"user_id": uid, "last_seen": datetime.now(timezone.utc)})

    def delete_device(self, uid: str, device_id: str) -> bool:
        ref = self._devices(uid).document(device_id)
        if not ref.get().exists:
            return False
        # Subcollections survive a document delete
        for snap in self._geofences(uid, device_id).stream():
            snap.reference.delete()
        ref.delete()
        return True

    # ── Geofences ──

    def list_geofences(self, uid: str) -> list[Geofence]:
        fences = []
        for device in self._devices(uid).stream():
            for snap in self._geofences(uid, device.id).stream():
                fences.append(_from_snapshot(Geofence, snap))
        return fences

    def add_geofence(self, uid: str, geofence: Geofence) -> Geofence:
        doc = geofence.to_doc(exclude={"id", "created_at"})
        doc["createdAt"] = firestore.SERVER_TIMESTAMP
        _, ref = self._geofences(uid, geofence.device_id).add(doc)
        return geofence.model_copy(update={"id": ref.id, "created_at": datetime.now(timezone.utc)})

    def delete_geofence(self, uid: str, device_id: str, geofence_id: str) -> bool:
        ref = self._geofences(uid, device_id).document(geofence_id)
        if not ref.get().exists:
            return False
        ref.delete()
        return True

    # ── Notifications ──

    def list_notifications(self, uid: str, limit: int = 50) -> list[Notification]:
        query = (
            self._user_ref(uid).collection("notifications")
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [_from_snapshot(Notification, snap) for snap in query.stream()]

    def add_notification(self, uid: str, notification: Notification) -> Notification:
        doc = notification.to_doc(exclude={"id", "timestamp"})
        doc["timestamp"] = firestore.SERVER_TIMESTAMP
        _, ref = self._user_ref(uid).collection("notifications").add(doc)
        return notification.model_copy(update={"id": ref.id, "timestamp": datetime.now(timezone.utc)})

    # ── Profile ──

    def get_profile(self, uid: str) -> UserProfile | None:
        snap = self._user_ref(uid).get()
        if not snap.exists:
            return None
        return UserProfile.model_validate(snap.to_dict() or {})

    def save_profile(self, uid: str, profile: UserProfile) -> None:
        self._user_ref(uid).set(profile.to_doc(), merge=True)
