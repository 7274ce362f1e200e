"""Approximate isochrones for uncached durations from cached neighbours."""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .domain import Coordinate, IsochroneEntry, Ring, TransportMode
from .exceptions import InterpolationError
from .logging_config import get_logger
from .store import CacheStore

logger = get_logger(__name__)

DEFAULT_RADIUS_M = 2000


@dataclass(frozen=True)
class Interpolation:
    polygon: Ring
    factor: float
    lower_duration: int
    upper_duration: int


def blend_rings(lower: Ring, upper: Ring, factor: float) -> Ring:
    """Vertex-by-vertex linear blend, truncated to the shorter ring and re-closed.

    This is an index-wise blend, not a topological morph; the result is only
    meant to be drawn.
    """
    length = min(len(lower), len(upper))
    if length == 0:
        raise InterpolationError("Cannot blend an empty ring")
    blended = [
        (
            lower[i][0] + (upper[i][0] - lower[i][0]) * factor,
            lower[i][1] + (upper[i][1] - lower[i][1]) * factor,
        )
        for i in range(length)
    ]
    if blended[0] != blended[-1]:
        blended.append(blended[0])
    return tuple(blended)


def select_bracket(candidates: Sequence[IsochroneEntry], target: int):
    """Pick (lower, upper): the closest durations at or below/above target."""
    lower = max((c for c in candidates if c.duration <= target), key=lambda c: c.duration, default=None)
    upper = min((c for c in candidates if c.duration >= target), key=lambda c: c.duration, default=None)
    return lower, upper


class SpatialInterpolator:
    """Blends two cached polygons of the same mode that bracket a duration.

    Results are handed back to the caller and never written to the cache,
    so approximation errors cannot compound.
    """

    def __init__(
        self,
        store: CacheStore,
        radius_m: float = DEFAULT_RADIUS_M,
        include_durable: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.radius_m = radius_m
        self.include_durable = include_durable
        self._clock = clock

    def interpolate(
        self,
        center: Coordinate,
        duration: int,
        transport_mode: TransportMode,
    ) -> Optional[Interpolation]:
        try:
            candidates = self.store.nearby(
                center, transport_mode, self.radius_m, self._clock(),
                include_durable=self.include_durable,
            )
            if len(candidates) < 2:
                return None

            lower, upper = select_bracket(candidates, duration)
            if lower is None or upper is None or lower.duration == upper.duration:
                return None

            factor = (duration - lower.duration) / (upper.duration - lower.duration)
            polygon = blend_rings(lower.polygon, upper.polygon, factor)
        except Exception as e:
            logger.warning("Interpolation failed", duration=duration,
                           transport_mode=str(transport_mode), error_type=type(e).__name__,
                           error_message=str(e))
            return None

        logger.debug("Interpolated isochrone", lower_duration=lower.duration,
                     upper_duration=upper.duration, factor=round(factor, 3))
        return Interpolation(
            polygon=polygon,
            factor=factor,
            lower_duration=lower.duration,
            upper_duration=upper.duration,
        )
