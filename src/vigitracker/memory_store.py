"""In-process store for local development (``VIGI_STORE=memory``) and tests."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from vigitracker.models import Device, Geofence, Notification, UserProfile
from vigitracker.sample_data import demo_devices
from vigitracker.store import Store


@dataclass
class _UserState:
    profile: UserProfile | None = None
    devices: dict[str, Device] = field(default_factory=dict)
    geofences: dict[str, dict[str, Geofence]] = field(default_factory=dict)
    notifications: list[Notification] = field(default_factory=list)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


class MemoryStore(Store):
    """Dict-backed store; records are copied in and out so callers can't alias state."""

    def __init__(self, seed_demo: bool = False) -> None:
        self._users: dict[str, _UserState] = {}
        self._lock = threading.Lock()
        self._seed_demo = seed_demo

    def _user(self, uid: str) -> _UserState:
        state = self._users.get(uid)
        if state is None:
            state = _UserState()
            if self._seed_demo:
                state.devices = {d.id: d for d in demo_devices(uid)}
            self._users[uid] = state
        return state

    # ── Devices ──

    def list_devices(self, uid: str) -> list[Device]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._user(uid).devices.values()]

    def get_device(self, uid: str, device_id: str) -> Device | None:
        with self._lock:
            device = self._user(uid).devices.get(device_id)
            return device.model_copy(deep=True) if device else None

    def add_device(self, uid: str, device: Device) -> Device:
        saved = device.model_copy(
            deep=True,
            update={"user_id": uid, "last_seen": datetime.now(timezone.utc)},
        )
        with self._lock:
            self._user(uid).devices[saved.id] = saved
        return saved.model_copy(deep=True)

    def delete_device(self, uid: str, device_id: str) -> bool:
        with self._lock:
            state = self._user(uid)
            state.geofences.pop(device_id, None)
            return state.devices.pop(device_id, None) is not None

    # ── Geofences ──

    def list_geofences(self, uid: str) -> list[Geofence]:
        with self._lock:
            state = self._user(uid)
            return [
                g.model_copy(deep=True)
                for device_id in state.devices
                for g in state.geofences.get(device_id, {}).values()
            ]

    def add_geofence(self, uid: str, geofence: Geofence) -> Geofence:
        saved = geofence.model_copy(
            deep=True,
            update={"id": geofence.id or _new_id(), "created_at": datetime.now(timezone.utc)},
        )
        with self._lock:
            self._user(uid).geofences.setdefault(saved.device_id, {})[saved.id] = saved
        return saved.model_copy(deep=True)

    def delete_geofence(self, uid: str, device_id: str, geofence_id: str) -> bool:
        with self._lock:
            fences = self._user(uid).geofences.get(device_id, {})
            return fences.pop(geofence_id, None) is not None

    # ── Notifications ──

    def list_notifications(self, uid: str, limit: int = 50) -> list[Notification]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        with self._lock:
            items = sorted(
                self._user(uid).notifications,
                key=lambda n: n.timestamp or epoch,
                reverse=True,
            )
            return [n.model_copy(deep=True) for n in items[:limit]]

    def add_notification(self, uid: str, notification: Notification) -> Notification:
        saved = notification.model_copy(
            deep=True,
            update={
                "id": notification.id or _new_id(),
                "timestamp": notification.timestamp or datetime.now(timezone.utc),
            },
        )
        with self._lock:
            self._user(uid).notifications.append(saved)
        return saved.model_copy(deep=True)

    # ── Profile ──

    def get_profile(self, uid: str) -> UserProfile | None:
        with self._lock:
            profile = self._user(uid).profile
            return profile.model_copy() if profile else None

    def save_profile(self, uid: str, profile: UserProfile) -> None:
        with self._lock:
            state = self._user(uid)
            current = state.profile.model_dump() if state.profile else {}
            current.update(profile.model_dump(exclude_unset=True))
            state.profile = UserProfile(**current)
