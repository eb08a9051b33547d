"""Post classification and orientation utilities.

This module turns the welded line network into posts:
- one post per distinct vertex, categorised END / CORNER / T / LINE
- one LINE post per interior panel boundary reported by panel fitting
- an orientation angle per post for rendering
"""

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import IdGenerator, Line, Point, Post, PostCategory, PostSource
from ..settings import EngineConfig
from .coordinates import angle, distance, lerp, point_key, points_match

logger = logging.getLogger(__name__)


def categorize_post(
    position: Point,
    lines: Sequence[Line],
    tolerance: float = 1.0,
    straight_tol_rad: float = 0.1,
    corner_tol_deg: float = 15.0,
) -> PostCategory:
    """Classify the vertex at ``position``.

    Args:
        position: Vertex in canvas units
        lines: Whole network, gate lines included
        tolerance: Per-axis match tolerance in canvas units
        straight_tol_rad: Two-way junctions within this of 0 or pi are straight
        corner_tol_deg: Two-way junctions within this of 90 degrees are corners

    Returns:
        PostCategory. Three or more structural runs always give T; a vertex
        touching a gate opening is an END; two-way bends that are neither
        straight nor square stay LINE.
    """
    touching = [
        line for line in lines
        if points_match(line.a, position, tolerance) or points_match(line.b, position, tolerance)
    ]
    panel_connections = [line for line in touching if not line.is_gate]

    if len(panel_connections) >= 3:
        return PostCategory.T
    if any(line.is_gate for line in touching):
        return PostCategory.END
    if len(panel_connections) == 1:
        return PostCategory.END

    if len(panel_connections) == 2:
        angles = []
        for line in panel_connections:
            other = line.b if points_match(line.a, position, tolerance) else line.a
            angles.append(angle(position, other) % (2 * math.pi))
        diff = abs(angles[0] - angles[1])
        normalized = min(diff, 2 * math.pi - diff)

        if normalized < straight_tol_rad or abs(normalized - math.pi) < straight_tol_rad:
            return PostCategory.LINE
        if abs(normalized - math.pi / 2) <= math.radians(corner_tol_deg):
            return PostCategory.CORNER
        logger.debug("Bend of %.1f deg at %s kept as LINE", math.degrees(normalized), position)
        return PostCategory.LINE

    return PostCategory.LINE


def junction_angle_deg(p: Point, n1: Point, n2: Point) -> Optional[float]:
    """Deviation from straight at p between neighbours n1 and n2.

    0 means the three points are collinear with p between them, 90 is a
    square corner. None if either neighbour coincides with p.
    """
    v1 = (n1[0] - p[0], n1[1] - p[1])
    v2 = (n2[0] - p[0], n2[1] - p[1])
    m1 = math.hypot(*v1)
    m2 = math.hypot(*v2)
    if m1 == 0 or m2 == 0:
        return None
    cos_theta = (v1[0] * v2[0] + v1[1] * v2[1]) / (m1 * m2)
    theta = math.degrees(math.acos(min(1.0, max(-1.0, cos_theta))))
    return 180.0 - theta


def post_neighbours(p: Point, lines: Sequence[Line], tolerance: float = 1.0) -> List[Point]:
    """Far endpoints of every line that touches p, in network order."""
    neighbours = []
    for line in lines:
        if points_match(line.a, p, tolerance):
            neighbours.append(line.b)
        elif points_match(line.b, p, tolerance):
            neighbours.append(line.a)
    return neighbours


def choose_primary_neighbour(p: Point, n1: Point, n2: Point, tolerance: float = 0.5) -> Point:
    """Pick the neighbour a post should align with.

    When both neighbours are (nearly) equally far, or sit at (nearly) the
    same vertical offset, the flatter one wins. Otherwise the nearer one.
    """
    d1 = distance(p, n1)
    d2 = distance(p, n2)
    dy1 = abs(n1[1] - p[1])
    dy2 = abs(n2[1] - p[1])

    if abs(d1 - d2) <= tolerance or abs(dy1 - dy2) <= tolerance:
        return n1 if dy1 <= dy2 else n2
    return n1 if d1 < d2 else n2


def post_orientation_deg(
    p: Point,
    neighbours: Sequence[Point],
    category: PostCategory,
    tolerance: float = 0.5,
) -> float:
    if not neighbours:
        return 0.0
    if len(neighbours) == 1:
        return math.degrees(angle(p, neighbours[0]))

    n1, n2 = neighbours[0], neighbours[1]
    if category == PostCategory.CORNER:
        d1 = distance(p, n1)
        d2 = distance(p, n2)
        if d1 > 0 and d2 > 0:
            bx = (n1[0] - p[0]) / d1 + (n2[0] - p[0]) / d2
            by = (n1[1] - p[1]) / d1 + (n2[1] - p[1]) / d2
            if math.hypot(bx, by) > 1e-9:
                return math.degrees(math.atan2(by, bx))

    primary = choose_primary_neighbour(p, n1, n2, tolerance)
    return math.degrees(angle(p, primary))


def line_panel_points(line: Line, panel_positions_mm: Sequence[float], mm_per_unit: float) -> List[Point]:
    """Convert panel boundary offsets (mm from ``a``) to interior points on the line."""
    length_units = distance(line.a, line.b)
    if length_units == 0 or mm_per_unit <= 0:
        return []
    points = []
    for pos_mm in panel_positions_mm:
        t = (pos_mm / mm_per_unit) / length_units
        if 0.0 < t < 1.0:
            points.append(lerp(line.a, line.b, t))
    return points


def classify_all_posts(
    lines: Sequence[Line],
    panel_positions: Mapping[str, Sequence[float]],
    mm_per_unit: float,
    ids: IdGenerator,
    config: Optional[EngineConfig] = None,
) -> List[Post]:
    """Generate every post of the network.

    Args:
        lines: Welded network
        panel_positions: Interior panel boundary offsets in mm, keyed by line id
        mm_per_unit: Scale used to place panel posts
        ids: Generator for post ids
        config: Tolerances; defaults when omitted

    Returns:
        List of Post, every vertex post first, then panel posts. A panel
        post never takes the place of a vertex post at the same rounded
        position, whichever line the vertex belongs to.
    """
    config = config or EngineConfig()
    by_key: Dict[Tuple[int, int], Post] = {}

    for line in lines:
        for point in (line.a, line.b):
            key = point_key(point)
            if key in by_key:
                continue
            category = categorize_post(
                point,
                lines,
                tolerance=config.point_match_tol,
                straight_tol_rad=config.straight_tol_rad,
                corner_tol_deg=config.corner_tol_deg,
            )
            neighbours = post_neighbours(point, lines, config.point_match_tol)
            by_key[key] = Post(
                id=ids("post"),
                position=point,
                category=category,
                source=PostSource.VERTEX,
                angle_deg=post_orientation_deg(point, neighbours, category, config.primary_neighbour_tol),
            )

    for line in lines:
        direction = math.degrees(angle(line.a, line.b))
        for point in line_panel_points(line, panel_positions.get(line.id, ()), mm_per_unit):
            key = point_key(point)
            if key in by_key:
                continue
            by_key[key] = Post(
                id=ids("post"),
                position=point,
                category=PostCategory.LINE,
                source=PostSource.PANEL,
                angle_deg=direction,
            )

    return list(by_key.values())


def is_irregular_junction(point: Point, lines: Sequence[Line], config: Optional[EngineConfig] = None) -> bool:
    """True if some pair of structural runs at point meets neither straight nor square."""
    config = config or EngineConfig()
    structural = [line for line in lines if not line.is_gate]
    neighbours = post_neighbours(point, structural, config.point_match_tol)
    straight_deg = math.degrees(config.straight_tol_rad)

    for i in range(len(neighbours)):
        for j in range(i + 1, len(neighbours)):
            dev = junction_angle_deg(point, neighbours[i], neighbours[j])
            if dev is None:
                continue
            if dev <= straight_deg or dev >= 180.0 - straight_deg:
                continue
            if abs(dev - 90.0) <= config.corner_tol_deg:
                continue
            return True
    return False


def find_t_junctions(lines: Sequence[Line], tolerance: float = 1.0) -> List[Point]:
    """Vertices where three or more structural runs meet."""
    seen = set()
    junctions = []
    for line in lines:
        for point in (line.a, line.b):
            key = point_key(point)
            if key in seen:
                continue
            seen.add(key)
            runs = [
                other for other in lines
                if not other.is_gate
                and (points_match(other.a, point, tolerance) or points_match(other.b, point, tolerance))
            ]
            if len(runs) >= 3:
                junctions.append(point)
    return junctions
