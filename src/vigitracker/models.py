"""Record shapes for devices, trips, geofences and notifications.

Python attributes are snake_case; Firestore documents and JSON payloads use
the camelCase names the web client has always written (``firmwareVersion``,
``lastLocation`` ...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

DeviceStatus = Literal["Active", "Stopped", "Offline"]
NotificationType = Literal["geofence-enter", "geofence-exit", "offline", "online", "sos"]
NotificationIcon = Literal["MapPin", "Truck", "WifiOff", "Bell"]

DEVICE_STATUSES: tuple[str, ...] = ("Active", "Stopped", "Offline")
ALERT_TYPES = {"geofence-enter", "geofence-exit", "sos"}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_doc(self, exclude: set[str] | None = None) -> dict:
        """Serialize for Firestore / JSON using the camelCase field names."""
        return self.model_dump(by_alias=True, exclude=exclude)


class LatLng(CamelModel):
    lat: float
    lng: float


class Device(CamelModel):
    id: str
    name: str
    status: DeviceStatus = "Active"
    firmware_version: str = "1.0.0"
    last_location: LatLng | None = None
    last_seen: datetime | None = None
    user_id: str | None = None


class Trip(CamelModel):
    id: str
    device_id: str
    start_time: datetime
    end_time: datetime
    start_address: str
    end_address: str
    distance: float  # km
    path: list[LatLng] = Field(default_factory=list)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class Geofence(CamelModel):
    id: str = ""
    name: str
    latitude: float
    longitude: float
    radius: float = 500  # metres
    device_id: str
    coordinates: list[float] = Field(default_factory=list)
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _center_from_coordinates(cls, data):
        # Older documents only carry coordinates=[lat, lng]
        if isinstance(data, dict) and "latitude" not in data and len(data.get("coordinates") or []) == 2:
            data = dict(data)
            data["latitude"], data["longitude"] = data["coordinates"]
        return data

    @model_validator(mode="after")
    def _coordinates_from_center(self):
        if not self.coordinates:
            self.coordinates = [self.latitude, self.longitude]
        return self


class Notification(CamelModel):
    id: str = ""
    type: NotificationType
    title: str
    description: str
    timestamp: datetime | None = None
    icon: NotificationIcon = "Bell"
    icon_color: str = "text-primary"
    user_id: str
    device_id: str = ""


class Firmware(CamelModel):
    id: str
    version: str
    release_date: str
    description: str
    url: str


class UserProfile(CamelModel):
    name: str = ""
    email: str = ""


# ── Form schemas ─────────────────────────────────────────────────────────

class DeviceForm(BaseModel):
    id: str = Field(min_length=1, description="Device ID is required")
    name: str = Field(min_length=1, description="Device name is required")
    firmware_version: str = Field(default="1.0.0", min_length=1)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class GeofenceForm(BaseModel):
    name: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius: float = Field(default=500, gt=0)


class ProfileForm(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr


def fleet_counts(devices: list[Device], notifications: list[Notification] | None = None) -> dict:
    """Headline numbers for the dashboard cards."""
    return {
        "total": len(devices),
        "active": sum(1 for d in devices if d.status == "Active"),
        "offline": sum(1 for d in devices if d.status == "Offline"),
        "alerts": sum(1 for n in (notifications or []) if n.type in ALERT_TYPES),
    }
