"""Snap resolution against existing endpoints and segments.

Tolerances passed to these functions are in canvas units. Callers holding a
real-world radius convert it first with ``coordinates.tolerance_units`` so
the snap radius stays the same physical size under zoom.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from shapely.geometry import LineString, Point as ShapelyPoint

from ..models import Line, Point
from .coordinates import distance, tolerance_units


@dataclass(frozen=True)
class SnapResult:
    kind: str  # "endpoint", "segment" or "free"
    point: Point
    line_id: Optional[str] = None
    t: Optional[float] = None


def all_line_endpoints(lines: Iterable[Line]) -> List[Point]:
    endpoints: List[Point] = []
    for line in lines:
        endpoints.append(line.a)
        endpoints.append(line.b)
    return endpoints


def find_snap_point(candidate: Point, pool: Iterable[Point], tolerance: float) -> Optional[Point]:
    """Closest pool point within tolerance, or None."""
    best = None
    best_dist = float("inf")
    for p in pool:
        d = distance(candidate, p)
        if d <= tolerance and d < best_dist:
            best = p
            best_dist = d
    return best


def find_snap_on_segment(
    candidate: Point,
    lines: Sequence[Line],
    tolerance: float,
) -> Optional[SnapResult]:
    """Snap to the closest endpoint or interior projection on any line.

    The interior hit reports ``t`` in (0, 1) along a->b so the caller can
    split that line at the snapped point.
    """
    best: Optional[SnapResult] = None
    best_dist = float("inf")
    probe = ShapelyPoint(candidate[0], candidate[1])

    for line in lines:
        for p in (line.a, line.b):
            d = distance(candidate, p)
            if d <= tolerance and d < best_dist:
                best = SnapResult(kind="endpoint", point=p, line_id=line.id)
                best_dist = d

        seg = LineString([line.a, line.b])
        if seg.length == 0:
            continue
        along = seg.project(probe)
        t = along / seg.length
        if not 0.0 < t < 1.0:
            continue
        hit = seg.interpolate(along)
        proj = Point(hit.x, hit.y)
        d = distance(candidate, proj)
        if d <= tolerance and d < best_dist:
            best = SnapResult(kind="segment", point=proj, line_id=line.id, t=t)
            best_dist = d

    return best


def resolve_snap(
    candidate: Point,
    lines: Sequence[Line],
    mm_per_unit: float,
    endpoint_snap_mm: float = 200.0,
    segment_snap_mm: float = 100.0,
) -> SnapResult:
    """Endpoint snap first, then segment snap, else the candidate itself."""
    endpoint_tol = tolerance_units(endpoint_snap_mm, mm_per_unit)
    segment_tol = min(endpoint_tol, tolerance_units(segment_snap_mm, mm_per_unit))

    endpoint = find_snap_point(candidate, all_line_endpoints(lines), endpoint_tol)
    if endpoint is not None:
        return SnapResult(kind="endpoint", point=endpoint)

    hit = find_snap_on_segment(candidate, lines, segment_tol)
    if hit is not None:
        return hit
    return SnapResult(kind="free", point=Point(*candidate))
