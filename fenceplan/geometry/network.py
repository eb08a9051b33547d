"""Line network operations.

This module keeps the run graph geometrically consistent under edits:
- creating lines with their derived length
- merging collinear runs that share an endpoint
- welding near-coincident endpoints to one canonical point
- propagating an endpoint move through every connected line
- splitting a line at an interior point

Every function is pure: it takes a sequence of Lines and returns a new
list. Gate lines (``line.opening`` set) never take part in merges or welds.
"""

import logging
import math
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..models import LayoutError, Line, Point
from .coordinates import (
    distance,
    is_orthogonal,
    length_mm,
    lerp,
    points_match,
    unit_vector,
)

logger = logging.getLogger(__name__)

MERGE_ENDPOINT_EPS = 0.25
MERGE_ANGLE_TOL_DEG = 2.0
PROPAGATION_TOL = 0.1


def make_line(
    line_id: str,
    a: Point,
    b: Point,
    mm_per_unit: float,
    *,
    locked_90: Optional[bool] = None,
    even_spacing: bool = False,
    opening: Optional[str] = None,
) -> Line:
    a, b = Point(*a), Point(*b)
    if locked_90 is None:
        locked_90 = is_orthogonal(a, b)
    return Line(
        id=line_id,
        a=a,
        b=b,
        length_mm=length_mm(a, b, mm_per_unit),
        locked_90=locked_90,
        even_spacing=even_spacing,
        opening=opening,
    )


def with_endpoints(line: Line, a: Point, b: Point, mm_per_unit: float) -> Line:
    """Copy of line with new endpoints; length always follows geometry."""
    a, b = Point(*a), Point(*b)
    return replace(line, a=a, b=b, length_mm=length_mm(a, b, mm_per_unit))


def rescale_lengths(lines: Sequence[Line], mm_per_unit: float) -> List[Line]:
    return [with_endpoints(line, line.a, line.b, mm_per_unit) for line in lines]


def find_line(lines: Sequence[Line], line_id: str) -> Optional[Line]:
    for line in lines:
        if line.id == line_id:
            return line
    return None


def lines_touching(
    point: Point,
    lines: Sequence[Line],
    tolerance: float,
    exclude: Tuple[str, ...] = (),
) -> List[Line]:
    return [
        line for line in lines
        if line.id not in exclude
        and (points_match(line.a, point, tolerance) or points_match(line.b, point, tolerance))
    ]


# ---------------------------------------------------------------------------
# Merge primitives
# ---------------------------------------------------------------------------

def is_merge_blocked(l1: Line, l2: Line) -> bool:
    """Gate openings never merge into, or through, a structural run."""
    return l1.is_gate or l2.is_gate


@dataclass(frozen=True)
class SharedEndpoint:
    point: Point
    end1: str  # "a" or "b" on the first line
    end2: str  # "a" or "b" on the second line


def shared_endpoint(l1: Line, l2: Line, eps: float) -> Optional[SharedEndpoint]:
    """Closest endpoint pair of l1/l2 within eps, or None."""
    best = None
    best_dist = float("inf")
    for end1 in ("a", "b"):
        for end2 in ("a", "b"):
            p1 = l1.endpoint(end1)
            d = distance(p1, l2.endpoint(end2))
            if d <= eps and d < best_dist:
                best = SharedEndpoint(point=p1, end1=end1, end2=end2)
                best_dist = d
    return best


def angle_between(l1: Line, l2: Line) -> Optional[float]:
    """Unsigned angle between the two line axes in [0, pi/2], None if degenerate."""
    d1 = unit_vector(l1.a, l1.b)
    d2 = unit_vector(l2.a, l2.b)
    if d1 is None or d2 is None:
        return None
    dot = abs(d1[0] * d2[0] + d1[1] * d2[1])
    return math.acos(min(1.0, max(-1.0, dot)))


def overlap_on_axis(l1: Line, l2: Line, tolerance: float) -> bool:
    """True if both lines' projections on l1's axis overlap (within tolerance)."""
    direction = unit_vector(l1.a, l1.b)
    if direction is None:
        return False

    def project(p: Point) -> float:
        return p[0] * direction[0] + p[1] * direction[1]

    l1_proj = (project(l1.a), project(l1.b))
    l2_proj = (project(l2.a), project(l2.b))
    return (
        max(l1_proj) >= min(l2_proj) - tolerance
        and max(l2_proj) >= min(l1_proj) - tolerance
    )


def build_merged_line(
    base: Line,
    other: Line,
    shared: SharedEndpoint,
    mm_per_unit: float,
) -> Optional[Line]:
    """Fuse two runs into one spanning their free endpoints.

    Returns None for a degenerate merge: the free ends coincide, or both
    runs leave the shared point on the same side (the second folds back
    over the first).
    """
    base_free = base.other_endpoint(shared.end1)
    other_free = other.other_endpoint(shared.end2)
    if distance(base_free, other_free) == 0:
        return None

    v1 = (base_free[0] - shared.point[0], base_free[1] - shared.point[1])
    v2 = (other_free[0] - shared.point[0], other_free[1] - shared.point[1])
    if v1[0] * v2[0] + v1[1] * v2[1] > 0:
        return None

    merged = with_endpoints(base, base_free, other_free, mm_per_unit)
    return replace(
        merged,
        locked_90=is_orthogonal(base_free, other_free),
        even_spacing=base.even_spacing or other.even_spacing,
        opening=None,
    )


def _is_plain_junction(lines: Sequence[Line], l1: Line, l2: Line, point: Point, eps: float) -> bool:
    # A third line at the shared point makes it a real junction, not a continuation
    return not lines_touching(point, lines, eps, exclude=(l1.id, l2.id))


def _try_merge(
    lines: Sequence[Line],
    base: Line,
    other: Line,
    mm_per_unit: float,
    eps: float,
    angle_tol_deg: float,
    require_overlap: bool,
) -> Optional[Line]:
    if is_merge_blocked(base, other):
        return None
    shared = shared_endpoint(base, other, eps)
    if shared is None:
        return None

    ang = angle_between(base, other)
    if ang is None:
        logger.debug("Skipping merge of %s/%s: zero-length direction", base.id, other.id)
        return None
    if ang > math.radians(angle_tol_deg):
        return None
    if require_overlap and not overlap_on_axis(base, other, eps):
        return None
    if not _is_plain_junction(lines, base, other, shared.point, eps):
        return None

    merged = build_merged_line(base, other, shared, mm_per_unit)
    if merged is None:
        logger.debug("Skipping degenerate merge of %s/%s", base.id, other.id)
    return merged


def _replace_pair(lines: Sequence[Line], merged: Line, removed_id: str) -> List[Line]:
    # The merged line keeps the base line's id and position in the network order
    return [merged if line.id == merged.id else line for line in lines if line.id != removed_id]


def merge_collinear(
    lines: Sequence[Line],
    seed_id: str,
    mm_per_unit: float,
    eps: float = MERGE_ENDPOINT_EPS,
    angle_tol_deg: float = MERGE_ANGLE_TOL_DEG,
) -> Tuple[List[Line], bool]:
    """Repeatedly fuse the seed line with collinear neighbours.

    Returns (lines, merged_any). The seed keeps its id.
    """
    updated = list(lines)
    merged_any = False

    while True:
        seed = find_line(updated, seed_id)
        if seed is None or seed.is_gate:
            break

        merged = None
        for candidate in updated:
            if candidate.id == seed_id:
                continue
            merged = _try_merge(updated, seed, candidate, mm_per_unit, eps, angle_tol_deg, False)
            if merged is not None:
                updated = _replace_pair(updated, merged, candidate.id)
                merged_any = True
                break

        if merged is None:
            break

    return updated, merged_any


def _order_for_merge(
    l1: Line,
    l2: Line,
    primary_id: Optional[str],
    order: Mapping[str, int],
) -> Tuple[Line, Line]:
    if l1.id == primary_id:
        return l1, l2
    if l2.id == primary_id:
        return l2, l1
    r1 = order.get(l1.id, math.inf)
    r2 = order.get(l2.id, math.inf)
    return (l1, l2) if r1 <= r2 else (l2, l1)


def merge_connected(
    lines: Sequence[Line],
    primary_id: Optional[str],
    order: Mapping[str, int],
    mm_per_unit: float,
    eps: float = MERGE_ENDPOINT_EPS,
    angle_tol_deg: float = MERGE_ANGLE_TOL_DEG,
) -> List[Line]:
    """Global pairwise merge of collinear, endpoint-sharing, overlapping runs."""
    updated = list(lines)
    changed = True
    while changed:
        changed = False
        for i in range(len(updated)):
            for j in range(i + 1, len(updated)):
                base, other = _order_for_merge(updated[i], updated[j], primary_id, order)
                merged = _try_merge(updated, base, other, mm_per_unit, eps, angle_tol_deg, True)
                if merged is not None:
                    updated = _replace_pair(updated, merged, other.id)
                    changed = True
                    break
            if changed:
                break
    return updated


def weld_endpoints(
    lines: Sequence[Line],
    primary_id: Optional[str],
    order: Mapping[str, int],
    mm_per_unit: float,
    eps: float = MERGE_ENDPOINT_EPS,
) -> List[Line]:
    """Snap every cluster of near-coincident endpoints to one canonical point.

    Clusters are built with union-find over the endpoints of non-gate lines.
    The canonical point is taken from the primary line if it is in the
    cluster, otherwise from the earliest line in ``order``.
    """
    refs = [(idx, end) for idx, line in enumerate(lines) if not line.is_gate for end in ("a", "b")]
    parent = list(range(len(refs)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(refs)):
        li, ei = refs[i]
        for j in range(i + 1, len(refs)):
            lj, ej = refs[j]
            if li == lj:
                continue
            if distance(lines[li].endpoint(ei), lines[lj].endpoint(ej)) <= eps:
                parent[find(j)] = find(i)

    clusters: Dict[int, List[int]] = defaultdict(list)
    for i in range(len(refs)):
        clusters[find(i)].append(i)

    def rank(ref_index: int):
        idx, end = refs[ref_index]
        line = lines[idx]
        return (0 if line.id == primary_id else 1, order.get(line.id, math.inf), idx, end)

    targets: Dict[Tuple[int, str], Point] = {}
    for members in clusters.values():
        if len(members) < 2:
            continue
        idx, end = refs[min(members, key=rank)]
        canonical = lines[idx].endpoint(end)
        for m in members:
            targets[refs[m]] = canonical

    welded = []
    for idx, line in enumerate(lines):
        a = targets.get((idx, "a"), line.a)
        b = targets.get((idx, "b"), line.b)
        if a != line.a or b != line.b:
            line = with_endpoints(line, a, b, mm_per_unit)
        welded.append(line)
    return welded


def normalize_network(
    lines: Sequence[Line],
    primary_id: Optional[str],
    mm_per_unit: float,
    order: Optional[Mapping[str, int]] = None,
    eps: float = MERGE_ENDPOINT_EPS,
    angle_tol_deg: float = MERGE_ANGLE_TOL_DEG,
) -> List[Line]:
    """Run global merge, seeded merge and weld passes to a fixed point."""
    if order is None:
        order = {line.id: i for i, line in enumerate(lines)}

    current = list(lines)
    # Each productive merge removes a line, so this bound is never reached on sane input
    for _ in range(2 * len(current) + 2):
        nxt = merge_connected(current, primary_id, order, mm_per_unit, eps, angle_tol_deg)
        if primary_id is not None:
            nxt, _ = merge_collinear(nxt, primary_id, mm_per_unit, eps, angle_tol_deg)
        nxt = weld_endpoints(nxt, primary_id, order, mm_per_unit, eps)
        if nxt == current:
            return nxt
        current = nxt

    logger.warning("Network did not settle after %d passes", 2 * len(lines) + 2)
    return current


# ---------------------------------------------------------------------------
# Endpoint propagation
# ---------------------------------------------------------------------------

class _PointIndex:
    """Bucketed lookup of line endpoints by position."""

    def __init__(self, cell: float):
        self.cell = max(cell, 1e-9)
        self._buckets: Dict[Tuple[int, int], List[Tuple[str, str]]] = defaultdict(list)

    def _key(self, p: Point) -> Tuple[int, int]:
        return (math.floor(p[0] / self.cell), math.floor(p[1] / self.cell))

    def add(self, p: Point, item: Tuple[str, str]) -> None:
        self._buckets[self._key(p)].append(item)

    def near(self, p: Point) -> Iterator[Tuple[str, str]]:
        kx, ky = self._key(p)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                yield from self._buckets.get((kx + dx, ky + dy), ())


def propagate_move(
    lines: Sequence[Line],
    moved_id: str,
    old_point: Point,
    new_point: Point,
    mm_per_unit: float,
    tolerance: float = PROPAGATION_TOL,
) -> List[Line]:
    """Translate every line connected (transitively) to a moved endpoint.

    Breadth-first: a line touching a moved point is shifted by that point's
    delta and its opposite endpoint becomes a new seed. Each line moves at
    most once, so cycles in the network cannot loop.
    """
    by_id = {line.id: line for line in lines}
    index = _PointIndex(tolerance)
    for line in lines:
        if line.id == moved_id:
            continue
        index.add(line.a, (line.id, "a"))
        index.add(line.b, (line.id, "b"))

    processed = {moved_id}
    queue = deque([(Point(*old_point), Point(*new_point))])
    while queue:
        old, new = queue.popleft()
        dx, dy = new[0] - old[0], new[1] - old[1]
        for line_id, end in list(index.near(old)):
            if line_id in processed:
                continue
            line = by_id[line_id]
            if not points_match(line.endpoint(end), old, tolerance):
                continue
            moved = with_endpoints(
                line,
                Point(line.a[0] + dx, line.a[1] + dy),
                Point(line.b[0] + dx, line.b[1] + dy),
                mm_per_unit,
            )
            by_id[line_id] = moved
            processed.add(line_id)
            far = "b" if end == "a" else "a"
            queue.append((line.endpoint(far), moved.endpoint(far)))

    return [by_id[line.id] for line in lines]


def resize_line(
    lines: Sequence[Line],
    line_id: str,
    new_length_mm: float,
    mm_per_unit: float,
    tolerance: float = PROPAGATION_TOL,
) -> List[Line]:
    """Stretch a line from ``a`` toward ``b`` and drag connected structure along."""
    target = find_line(lines, line_id)
    if target is None:
        raise LayoutError(f"Unknown line {line_id}")
    direction = unit_vector(target.a, target.b)
    if direction is None:
        raise LayoutError(f"Line {line_id} has zero length")

    new_len_units = new_length_mm / mm_per_unit
    new_b = Point(target.a[0] + direction[0] * new_len_units, target.a[1] + direction[1] * new_len_units)
    resized = with_endpoints(target, target.a, new_b, mm_per_unit)
    updated = [resized if line.id == line_id else line for line in lines]
    return propagate_move(updated, line_id, target.b, new_b, mm_per_unit, tolerance)


def split_line(
    lines: Sequence[Line],
    line_id: str,
    t: float,
    new_id: str,
    mm_per_unit: float,
    min_piece_mm: float = 1.0,
) -> List[Line]:
    """Split a stock line at parameter t; the first piece keeps the line id."""
    target = find_line(lines, line_id)
    if target is None:
        raise LayoutError(f"Unknown line {line_id}")
    if target.is_gate:
        raise LayoutError("Gate openings cannot be split")
    if not 0.0 < t < 1.0:
        raise LayoutError(f"Split parameter must be inside (0, 1), got {t}")

    at = lerp(target.a, target.b, t)
    first = with_endpoints(target, target.a, at, mm_per_unit)
    second = replace(with_endpoints(target, at, target.b, mm_per_unit), id=new_id)
    if min(first.length_mm, second.length_mm) < min_piece_mm:
        raise LayoutError("Split point too close to a line end")

    result: List[Line] = []
    for line in lines:
        if line.id == line_id:
            result.extend((first, second))
        else:
            result.append(line)
    return result
