"""Static sample data: demo devices, trip history and the firmware catalogue.

Trips are not yet recorded by any telemetry pipeline, so device pages read
them from here. The GPS helpers turn a trip path into timestamped samples in
the shape the AI flows expect.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from vigitracker.models import Device, Firmware, Trip

_DEMO_DEVICES = [
    {"id": "dev-001", "name": "Cargo Truck 1", "status": "Active", "firmwareVersion": "1.2.3",
     "lastLocation": {"lat": 34.0522, "lng": -118.2437}, "minutes_ago": 2},
    {"id": "dev-002", "name": "Delivery Van A", "status": "Stopped", "firmwareVersion": "1.2.1",
     "lastLocation": {"lat": 34.055, "lng": -118.25}, "minutes_ago": 30},
    {"id": "dev-003", "name": "Service Vehicle 7", "status": "Offline", "firmwareVersion": "1.1.0",
     "lastLocation": {"lat": 34.048, "lng": -118.24}, "minutes_ago": 300},
    {"id": "dev-004", "name": "Cargo Truck 2", "status": "Active", "firmwareVersion": "1.2.3",
     "lastLocation": {"lat": 34.06, "lng": -118.26}, "minutes_ago": 5},
]

TRIPS: list[Trip] = [
    Trip.model_validate({
        "id": "trip-001",
        "deviceId": "dev-001",
        "startTime": "2023-10-27T09:00:00Z",
        "endTime": "2023-10-27T10:30:00Z",
        "startAddress": "123 Warehouse St, Los Angeles, CA",
        "endAddress": "456 Distribution Ave, Los Angeles, CA",
        "distance": 25.5,
        "path": [
            {"lat": 34.0522, "lng": -118.2437},
            {"lat": 34.053, "lng": -118.245},
            {"lat": 34.054, "lng": -118.248},
            {"lat": 34.055, "lng": -118.25},
        ],
    }),
    Trip.model_validate({
        "id": "trip-002",
        "deviceId": "dev-001",
        "startTime": "2023-10-27T11:00:00Z",
        "endTime": "2023-10-27T12:00:00Z",
        "startAddress": "456 Distribution Ave, Los Angeles, CA",
        "endAddress": "789 Client Rd, Beverly Hills, CA",
        "distance": 15.2,
        "path": [
            {"lat": 34.055, "lng": -118.25},
            {"lat": 34.06, "lng": -118.3},
            {"lat": 34.0736, "lng": -118.4004},
        ],
    }),
]

FIRMWARES: list[Firmware] = [
    Firmware(id="fw-001", version="1.2.3", release_date="2023-10-15",
             description="Improved GPS accuracy and battery life.", url="/firmware/v1.2.3.bin"),
    Firmware(id="fw-002", version="1.2.1", release_date="2023-09-01",
             description="Security patches and minor bug fixes.", url="/firmware/v1.2.1.bin"),
    Firmware(id="fw-003", version="1.1.0", release_date="2023-07-20",
             description="Initial stable release.", url="/firmware/v1.1.0.bin"),
]


def demo_devices(user_id: str, now: datetime | None = None) -> list[Device]:
    now = now or datetime.now(timezone.utc)
    devices = []
    for row in _DEMO_DEVICES:
        row = dict(row)
        minutes_ago = row.pop("minutes_ago")
        row["lastSeen"] = now - timedelta(minutes=minutes_ago)
        row["userId"] = user_id
        devices.append(Device.model_validate(row))
    return devices


def latest_firmware() -> Firmware:
    return max(FIRMWARES, key=lambda f: tuple(int(p) for p in f.version.split(".")))


def trips_for_device(device_id: str) -> list[Trip]:
    return [t for t in TRIPS if t.device_id == device_id]


def get_trip(trip_id: str) -> Trip | None:
    return next((t for t in TRIPS if t.id == trip_id), None)


def trip_gps_points(trip: Trip) -> list[dict]:
    """Trip path as GPS samples, one minute apart from the trip start."""
    return [
        {
            "latitude": p.lat,
            "longitude": p.lng,
            "timestamp": (trip.start_time + timedelta(minutes=i)).isoformat(),
        }
        for i, p in enumerate(trip.path)
    ]


def gps_history(trips: list[Trip], now: datetime | None = None) -> list[dict]:
    """All trip paths flattened, newest first, spaced 15 minutes back from now."""
    now = now or datetime.now(timezone.utc)
    points = [p for trip in trips for p in trip.path]
    return [
        {
            "latitude": p.lat,
            "longitude": p.lng,
            "timestamp": (now - timedelta(minutes=15 * i)).isoformat(),
        }
        for i, p in enumerate(points)
    ]
