"""Gate placement and validation.

Placing a gate splits a structural run into an optional piece before the
opening, the gate line itself (tagged with the gate id) and an optional
piece after it. Sliding gates also need a straight return run beside the
opening for the leaf to slide along.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..catalog import GateSpec, default_gate_catalog
from ..models import Gate, GateType, IdGenerator, LayoutError, Line, Point
from ..settings import EngineConfig
from .coordinates import distance, points_match, unit_vector
from .network import angle_between, make_line

logger = logging.getLogger(__name__)

SPLIT_EPS_MM = 0.5


def resolve_opening_mm(
    gate_type: GateType,
    opening_mm: Optional[float] = None,
    catalog: Optional[Dict[GateType, GateSpec]] = None,
) -> float:
    """Opening width for a gate type; custom openings take the caller's width."""
    if gate_type == GateType.OPENING_CUSTOM:
        if opening_mm is None or not math.isfinite(opening_mm) or opening_mm <= 0:
            raise LayoutError("Custom opening width must be a positive length.")
        return float(opening_mm)
    catalog = catalog or default_gate_catalog()
    return catalog[gate_type].opening_mm


def make_gate(
    gate_id: str,
    gate_type: GateType,
    run_id: str,
    opening_mm: float,
    catalog: Optional[Dict[GateType, GateSpec]] = None,
    sliding_return_mm: float = 4800.0,
) -> Gate:
    catalog = catalog or default_gate_catalog()
    gate_spec = catalog[gate_type]
    leaf_count = 2 if gate_type.is_double else max(1, gate_spec.leaf_count)
    return_length = None
    if gate_type.is_sliding:
        return_length = gate_spec.return_length_mm or sliding_return_mm
    return Gate(
        id=gate_id,
        type=gate_type,
        opening_mm=opening_mm,
        run_id=run_id,
        sliding_return_direction="left",
        leaf_count=leaf_count,
        leaf_width_mm=opening_mm / leaf_count,
        return_length_mm=return_length,
    )


def is_free_end(point: Point, run_id: str, lines: Sequence[Line], tolerance: float = 1.0) -> bool:
    """True if no other structural line touches this end of the run."""
    for line in lines:
        if line.id == run_id or line.is_gate:
            continue
        if points_match(line.a, point, tolerance) or points_match(line.b, point, tolerance):
            return False
    return True


def placement_window(
    run: Line,
    lines: Sequence[Line],
    opening_mm: float,
    mm_per_unit: float,
    clearance_mm: float = 300.0,
    tolerance: float = 1.0,
) -> Tuple[float, float]:
    """Feasible range of the gate's start offset (mm from ``a``).

    Each end that continues into more structure needs ``clearance_mm``; a
    free end needs none. The window may be empty (max < min).
    """
    total_mm = distance(run.a, run.b) * mm_per_unit
    min_start = 0.0 if is_free_end(run.a, run.id, lines, tolerance) else clearance_mm
    end_clearance = 0.0 if is_free_end(run.b, run.id, lines, tolerance) else clearance_mm
    max_start = total_mm - opening_mm - end_clearance
    return min_start, max_start


def project_offset_mm(run: Line, point: Point, mm_per_unit: float) -> float:
    """Offset in mm from ``a`` of point projected onto the run, clamped to it."""
    dx = run.b[0] - run.a[0]
    dy = run.b[1] - run.a[1]
    len_sq = dx * dx + dy * dy
    if len_sq == 0:
        return 0.0
    t = ((point[0] - run.a[0]) * dx + (point[1] - run.a[1]) * dy) / len_sq
    t = max(0.0, min(1.0, t))
    return math.sqrt(len_sq) * t * mm_per_unit


@dataclass(frozen=True)
class GateSplit:
    start_mm: float
    gate_line: Line
    before: Optional[Line] = None
    after: Optional[Line] = None

    @property
    def lines(self) -> Tuple[Line, ...]:
        return tuple(line for line in (self.before, self.gate_line, self.after) if line is not None)


def plan_gate_split(
    run: Line,
    lines: Sequence[Line],
    opening_mm: float,
    gate_id: str,
    mm_per_unit: float,
    ids: IdGenerator,
    click_point: Optional[Point] = None,
    config: Optional[EngineConfig] = None,
) -> GateSplit:
    """Work out where a gate goes in a run and the lines that replace the run.

    Args:
        run: Structural line receiving the gate
        lines: Whole network, used to tell free ends from continuing ones
        opening_mm: Gate opening width
        gate_id: Id written into the gate line's ``opening`` tag
        mm_per_unit: Scale
        ids: Generator for the new line ids
        click_point: Optional point the user clicked; the opening is centred
            on its projection, clamped into the feasible window
        config: Clearance and tolerances; defaults when omitted

    Returns:
        GateSplit with the gate line and the optional pieces either side.

    Raises:
        LayoutError: with a user-facing message when the gate cannot fit.
    """
    config = config or EngineConfig()
    if run.is_gate:
        raise LayoutError("This run already holds a gate opening.")

    total_mm = distance(run.a, run.b) * mm_per_unit
    direction = unit_vector(run.a, run.b)
    if direction is None or total_mm <= 0:
        raise LayoutError("Cannot place a gate on a zero-length run.")
    if opening_mm >= total_mm:
        raise LayoutError("Gate opening exceeds run length.")

    min_start, max_start = placement_window(
        run, lines, opening_mm, mm_per_unit, config.end_clearance_mm, config.point_match_tol
    )
    if max_start < min_start:
        raise LayoutError("Insufficient space for gate with required clearance.")

    desired = (min_start + max_start) / 2
    if click_point is not None:
        desired = project_offset_mm(run, click_point, mm_per_unit) - opening_mm / 2
    start_mm = max(min_start, min(max_start, desired))
    logger.debug("Gate %s on %s at %.0f mm (window %.0f..%.0f)", gate_id, run.id, start_mm, min_start, max_start)

    def at(offset_mm: float) -> Point:
        d = offset_mm / mm_per_unit
        return Point(run.a[0] + direction[0] * d, run.a[1] + direction[1] * d)

    before_mm = max(0.0, start_mm)
    after_mm = max(0.0, total_mm - start_mm - opening_mm)
    gate_a = at(before_mm) if before_mm > SPLIT_EPS_MM else run.a
    gate_b = at(before_mm + opening_mm) if after_mm > SPLIT_EPS_MM else run.b

    before = None
    if before_mm > SPLIT_EPS_MM:
        before = make_line(ids("line"), run.a, gate_a, mm_per_unit,
                           locked_90=run.locked_90, even_spacing=run.even_spacing)
    gate_line = make_line(ids("line"), gate_a, gate_b, mm_per_unit,
                          locked_90=run.locked_90, opening=gate_id)
    after = None
    if after_mm > SPLIT_EPS_MM:
        after = make_line(ids("line"), gate_b, run.b, mm_per_unit,
                          locked_90=run.locked_90, even_spacing=run.even_spacing)

    return GateSplit(start_mm=start_mm, gate_line=gate_line, before=before, after=after)


def return_side(direction: str) -> str:
    """Map a sliding direction to the gate line end it anchors on."""
    return "a" if direction == "left" else "b"


def clear_return_length_mm(
    gate_line: Line,
    side: str,
    lines: Sequence[Line],
    tolerance: float = 1.0,
    angle_tol_deg: float = 2.0,
) -> float:
    """Length of straight structural run continuing outward from one gate end."""
    anchor = gate_line.endpoint(side)
    outward = unit_vector(gate_line.other_endpoint(side), anchor)
    if outward is None:
        return 0.0

    total = 0.0
    current = anchor
    visited = {gate_line.id}
    while True:
        step = None
        for line in lines:
            if line.id in visited or line.is_gate:
                continue
            if points_match(line.a, current, tolerance):
                far = line.b
            elif points_match(line.b, current, tolerance):
                far = line.a
            else:
                continue
            ang = angle_between(line, gate_line)
            if ang is None or ang > math.radians(angle_tol_deg):
                continue
            if (far[0] - current[0]) * outward[0] + (far[1] - current[1]) * outward[1] <= 0:
                continue
            step = (line, far)
            break

        if step is None:
            return total
        line, far = step
        visited.add(line.id)
        total += line.length_mm
        current = far


def validate_sliding_return(
    gate: Gate,
    gate_line: Line,
    lines: Sequence[Line],
    tolerance: float = 1.0,
    angle_tol_deg: float = 2.0,
) -> Optional[str]:
    """Warning text if a sliding gate lacks return space, else None."""
    if not gate.type.is_sliding:
        return None

    required = gate.return_length_mm if gate.return_length_mm is not None else 4800.0
    available = clear_return_length_mm(
        gate_line, return_side(gate.sliding_return_direction), lines, tolerance, angle_tol_deg
    )
    if available + 1e-6 < required:
        return (
            f"Sliding gate requires {required / 1000:.1f}m return space. "
            f"Adjacent run is only {available / 1000:.2f}m."
        )
    return None


@dataclass(frozen=True)
class SlidingReturn:
    start: Point
    end: Point
    center: Point


def sliding_return_geometry(gate_line: Line, side: str, return_length_units: float) -> SlidingReturn:
    """Where the slid-open leaf sits: from the anchor end, away from the opening."""
    anchor = gate_line.endpoint(side)
    outward = unit_vector(gate_line.other_endpoint(side), anchor)
    if outward is None:
        raise LayoutError("Gate line has zero length")
    end = Point(anchor[0] + outward[0] * return_length_units, anchor[1] + outward[1] * return_length_units)
    center = Point((anchor[0] + end[0]) / 2, (anchor[1] + end[1]) / 2)
    return SlidingReturn(start=anchor, end=end, center=center)
