"""Douglas-Peucker simplification for isochrone rings."""

import math
from typing import List, Sequence

from .domain import Coordinate, Ring, as_ring

DEFAULT_TOLERANCE = 0.001  # degrees, ~100 m


def perpendicular_distance(point: Coordinate, line_start: Coordinate, line_end: Coordinate) -> float:
    """Distance from point to the segment line_start-line_end, in degrees.

    The projection is clamped to the segment, so points beyond either end
    measure to the nearest endpoint. A zero-length segment degrades to plain
    point distance, which is what closed rings hit on their outermost call.
    """
    x, y = point
    x1, y1 = line_start
    x2, y2 = line_end

    dx = x2 - x1
    dy = y2 - y1
    length_sq = dx * dx + dy * dy

    if length_sq == 0:
        return math.hypot(x - x1, y - y1)

    t = ((x - x1) * dx + (y - y1) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(x - (x1 + t * dx), y - (y1 + t * dy))


def douglas_peucker(points: Sequence[Coordinate], tolerance: float) -> List[Coordinate]:
    if len(points) <= 2:
        return list(points)

    first, last = points[0], points[-1]
    max_distance = 0.0
    max_index = 0
    for i in range(1, len(points) - 1):
        distance = perpendicular_distance(points[i], first, last)
        if distance > max_distance:
            max_distance = distance
            max_index = i

    if max_distance > tolerance:
        left = douglas_peucker(points[:max_index + 1], tolerance)
        right = douglas_peucker(points[max_index:], tolerance)
        return left[:-1] + right

    return [first, last]


def simplify_ring(ring: Sequence[Coordinate], tolerance: float = DEFAULT_TOLERANCE) -> Ring:
    """Reduce a ring's vertex count for rendering.

    The result never has more vertices than the input but is not guaranteed
    to be a valid polygon for pathological inputs.
    """
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")
    return as_ring(douglas_peucker(as_ring(ring), tolerance))
