"""Great-circle distance helpers."""

from __future__ import annotations

import math

from aqiops.models.reading import Coordinate

EARTH_RADIUS_KM = 6371.0

# Rough conversion used to turn a radius into a lat/lon bounding box.
KM_PER_DEGREE = 111.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometres between two lat/lon pairs."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push ``a`` a hair outside [0, 1] for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(p1: Coordinate, p2: Coordinate) -> float:
    """Great-circle distance between two coordinates."""
    return haversine_km(p1.lat, p1.lon, p2.lat, p2.lon)


def bounding_box(center: Coordinate, radius_km: float) -> dict:
    """Approximate square box around ``center`` as PurpleAir-style corners."""
    delta = radius_km / KM_PER_DEGREE
    return {
        "nwlat": min(90.0, center.lat + delta),
        "nwlng": max(-180.0, center.lon - delta),
        "selat": max(-90.0, center.lat - delta),
        "selng": min(180.0, center.lon + delta),
    }
