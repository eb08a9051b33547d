"""Coordinate helpers: distances, angles, quantisation and axis snapping.

Points are in canvas units. Real-world lengths are in millimetres and are
converted through ``mm_per_unit`` (millimetres represented by one unit).
"""

import math
from typing import Optional, Tuple

from ..models import Point


def distance(p: Point, q: Point) -> float:
    return math.hypot(q[0] - p[0], q[1] - p[1])


def angle(p: Point, q: Point) -> float:
    """Direction from p to q in radians (screen coords, Y down)."""
    return math.atan2(q[1] - p[1], q[0] - p[0])


def length_mm(p: Point, q: Point, mm_per_unit: float) -> float:
    return distance(p, q) * mm_per_unit


def tolerance_units(tolerance_mm: float, mm_per_unit: float) -> float:
    """Convert a real-world tolerance to canvas units at the current scale."""
    if not math.isfinite(mm_per_unit) or mm_per_unit <= 0:
        return 0.0
    return tolerance_mm / mm_per_unit


def quantize(point: Point, step_mm: float, mm_per_unit: float) -> Point:
    """Round a point to the nearest real-world grid step, independent of zoom."""
    if (
        not math.isfinite(step_mm) or step_mm <= 0
        or not math.isfinite(mm_per_unit) or mm_per_unit <= 0
    ):
        return Point(*point)
    step = step_mm / mm_per_unit
    return Point(round(point[0] / step) * step, round(point[1] / step) * step)


def points_match(p: Point, q: Point, tolerance: float) -> bool:
    return abs(p[0] - q[0]) < tolerance and abs(p[1] - q[1]) < tolerance


def point_key(p: Point) -> Tuple[int, int]:
    """Integer key used to collapse coincident vertices."""
    return (int(round(p[0])), int(round(p[1])))


def unit_vector(p: Point, q: Point) -> Optional[Tuple[float, float]]:
    """Unit direction from p to q, or None for a zero-length vector."""
    d = distance(p, q)
    if d == 0:
        return None
    return ((q[0] - p[0]) / d, (q[1] - p[1]) / d)


def lerp(p: Point, q: Point, t: float) -> Point:
    return Point(p[0] + (q[0] - p[0]) * t, p[1] + (q[1] - p[1]) * t)


def is_orthogonal(start: Point, end: Point, tolerance: float = 0.01) -> bool:
    dx = abs(end[0] - start[0])
    dy = abs(end[1] - start[1])
    return dx < tolerance or dy < tolerance


def snap_to_90(start: Point, end: Point) -> Point:
    """Lock the free point to the dominant axis through start."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    if abs(dx) > abs(dy):
        return Point(end[0], start[1])
    return Point(start[0], end[1])


def snap_angle(anchor: Point, free: Point, step_deg: float = 45.0) -> Point:
    """Round the anchor->free direction to a multiple of step_deg, keeping distance."""
    d = distance(anchor, free)
    if d == 0 or step_deg <= 0:
        return Point(*free)
    step = math.radians(step_deg)
    snapped = round(angle(anchor, free) / step) * step
    return Point(anchor[0] + d * math.cos(snapped), anchor[1] + d * math.sin(snapped))
