"""Keying, expiration and quality rules for cached isochrones."""

from typing import Sequence

from .domain import Coordinate, Quality, TransportMode

BASE_TTL_SECONDS = 24 * 60 * 60
KEY_PRECISION = 3  # ~111 m, absorbs GPS jitter

# Vertex-count thresholds for quality classification
HIGH_QUALITY_VERTICES = 100
MEDIUM_QUALITY_VERTICES = 50


def _round_coord(value: float) -> float:
    # + 0.0 folds -0.0 into 0.0 so both sides of the meridian share a bucket
    return round(float(value), KEY_PRECISION) + 0.0


def cache_key(center: Coordinate, duration: int, transport_mode: TransportMode) -> str:
    """Build the cache key for a center, duration and mode.

    >>> cache_key((2.3522, 48.8566), 15, TransportMode.WALKING)
    '2.352_48.857_15_walking'
    """
    lng, lat = center
    mode = TransportMode(transport_mode)
    return f"{_round_coord(lng):.3f}_{_round_coord(lat):.3f}_{int(duration)}_{mode.value}"


def compute_ttl(duration: int, transport_mode: TransportMode, base_ttl: float = BASE_TTL_SECONDS) -> float:
    """Time-to-live in seconds for an entry.

    Longer isochrones live longer (capped at 2x the base). Driving
    polygons age twice as fast as walking or cycling ones.
    """
    duration_multiplier = min(duration / 60, 2)
    mode_multiplier = 0.5 if TransportMode(transport_mode) is TransportMode.DRIVING else 1.0
    return base_ttl * duration_multiplier * mode_multiplier


def assess_quality(ring: Sequence[Coordinate]) -> Quality:
    point_count = len(ring)
    if point_count > HIGH_QUALITY_VERTICES:
        return Quality.HIGH
    if point_count > MEDIUM_QUALITY_VERTICES:
        return Quality.MEDIUM
    return Quality.LOW
