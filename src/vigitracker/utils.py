"""Shared utility functions for the VigiTracker dashboard."""

from __future__ import annotations

import math
import random

# Map fallback centre (Los Angeles) when the user has no devices yet.
DEFAULT_MAP_CENTER = (34.0522, -118.2437)
# New devices without a browser fix are dropped near San Francisco.
DEFAULT_DEVICE_ORIGIN = (37.7749, -122.4194)


def osm_url(lat: float, lng: float, zoom: int = 16, marker: bool = True) -> str:
    """Link to the public OpenStreetMap site centred on (lat, lng)."""
    if marker:
        return f"https://www.openstreetmap.org/?mlat={lat}&mlon={lng}#map={zoom}/{lat}/{lng}"
    return f"https://www.openstreetmap.org/#map={zoom}/{lat}/{lng}"


def random_point_near(lat: float, lng: float, spread: float = 0.1) -> tuple[float, float]:
    """Uniform random point in a spread x spread degree box around (lat, lng)."""
    return (
        lat + (random.random() - 0.5) * spread,
        lng + (random.random() - 0.5) * spread,
    )


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return distance in metres between two lat/lng points."""
    R = 6371000
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_length_km(points: list[tuple[float, float]]) -> float:
    """Sum of great-circle legs along an ordered list of (lat, lng) points."""
    total = 0.0
    for (lat1, lng1), (lat2, lng2) in zip(points, points[1:]):
        total += haversine_m(lat1, lng1, lat2, lng2)
    return round(total / 1000, 2)
