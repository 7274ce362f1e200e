"""Domain types shared by the cache tiers, the interpolator and the scheduler."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from shapely.geometry import box

Coordinate = Tuple[float, float]  # (lng, lat)
Ring = Tuple[Coordinate, ...]


class TransportMode(str, Enum):
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"
    TRANSIT = "transit"

    def __str__(self) -> str:
        return self.value


class Quality(str, Enum):
    """Vertex-count classification of a provider polygon (informational)."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def as_ring(coords) -> Ring:
    """Normalize any iterable of coordinate pairs to a tuple of float tuples."""
    return tuple((float(c[0]), float(c[1])) for c in coords)


@dataclass(frozen=True)
class IsochroneEntry:
    """A provider-computed isochrone as stored in both cache tiers.

    Entries are never mutated once written. Staleness is decided by the
    reader through ``is_expired``.
    """

    key: str
    center: Coordinate
    duration: int
    transport_mode: TransportMode
    polygon: Ring
    created_at: float
    ttl: float
    quality: Quality
    simplified_polygon: Optional[Ring] = None

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass
class PrecomputeArea:
    """A bounding box whose common duration/mode combinations are warmed."""

    bbox: Tuple[float, float, float, float]  # (min_lng, min_lat, max_lng, max_lat)
    durations: Tuple[int, ...]
    transport_modes: Tuple[TransportMode, ...]
    priority: int = 0
    last_computed_at: float = 0.0
    name: str = ""

    @property
    def center(self) -> Coordinate:
        centroid = box(*self.bbox).centroid
        return (centroid.x, centroid.y)

    @property
    def label(self) -> str:
        return self.name or ",".join(str(v) for v in self.bbox)


def default_precompute_areas():
    """Popular French city centres warmed on startup."""
    return [
        PrecomputeArea(
            name="paris",
            bbox=(2.224, 48.815, 2.4697, 48.902),
            durations=(5, 10, 15, 30),
            transport_modes=(TransportMode.WALKING, TransportMode.CYCLING, TransportMode.DRIVING),
            priority=10,
        ),
        PrecomputeArea(
            name="lyon",
            bbox=(4.7844, 45.7578, 4.8525, 45.7797),
            durations=(10, 15, 30),
            transport_modes=(TransportMode.WALKING, TransportMode.DRIVING),
            priority=8,
        ),
        PrecomputeArea(
            name="marseille",
            bbox=(5.3347, 43.2961, 5.4077, 43.3145),
            durations=(10, 15, 30),
            transport_modes=(TransportMode.WALKING, TransportMode.DRIVING),
            priority=7,
        ),
    ]
