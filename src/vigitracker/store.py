"""Per-user record store interface.

Collections are scoped by user: ``users/{uid}/devices``,
``users/{uid}/devices/{deviceId}/geofences`` and ``users/{uid}/notifications``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from vigitracker.models import Device, Geofence, Notification, UserProfile


class Store(ABC):
    @abstractmethod
    def list_devices(self, uid: str) -> list[Device]: ...

    @abstractmethod
    def get_device(self, uid: str, device_id: str) -> Device | None: ...

    @abstractmethod
    def add_device(self, uid: str, device: Device) -> Device:
        """Save a new device, stamping ``last_seen`` with the write time."""

    @abstractmethod
    def delete_device(self, uid: str, device_id: str) -> bool:
        """Remove a device and its geofences. Returns False if it didn't exist."""

    @abstractmethod
    def list_geofences(self, uid: str) -> list[Geofence]:
        """Geofences across all of the user's devices."""

    @abstractmethod
    def add_geofence(self, uid: str, geofence: Geofence) -> Geofence: ...

    @abstractmethod
    def delete_geofence(self, uid: str, device_id: str, geofence_id: str) -> bool: ...

    @abstractmethod
    def list_notifications(self, uid: str, limit: int = 50) -> list[Notification]:
        """Newest first."""

    @abstractmethod
    def add_notification(self, uid: str, notification: Notification) -> Notification: ...

    @abstractmethod
    def get_profile(self, uid: str) -> UserProfile | None: ...

    @abstractmethod
    def save_profile(self, uid: str, profile: UserProfile) -> None:
        """Merge the profile fields into the user document."""
