"""Great-circle helpers."""

import math
from typing import Tuple

from .domain import Coordinate

EARTH_RADIUS_M = 6371000
METERS_PER_DEGREE_LAT = 111320


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two (lng, lat) points."""
    lng1, lat1 = a
    lng2, lat2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    h = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def degree_window(center: Coordinate, radius_m: float) -> Tuple[float, float, float, float]:
    """Loose (min_lng, min_lat, max_lng, max_lat) box containing the radius.

    Used as an index pre-filter only; callers refine with haversine_m.
    """
    lng, lat = center
    d_lat = radius_m / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    # Near the poles a longitude window is meaningless
    d_lng = 180.0 if cos_lat < 1e-6 else min(180.0, d_lat / cos_lat)
    return (lng - d_lng, lat - d_lat, lng + d_lng, lat + d_lat)
