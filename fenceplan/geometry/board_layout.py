"""Deck board layout.

Functions for packing deck boards:
- plan_boards_for_run: greedy split of one straight run into stock boards
- union_shapes: composite deck outline from several polygons
- layout_deck: rows of boards across the whole deck, optional breaker
  boards, and hidden-fixing clips at every joist crossing

Deck coordinates are millimetres. Internally the layout works in (u, v)
axes: u along the boards, v across them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from shapely.geometry import LineString, Polygon
from shapely.ops import unary_union

from ..models import Board, BoardDirection, Clip, DeckShape, IdGenerator, Point
from ..settings import EngineConfig

logger = logging.getLogger(__name__)

SPAN_MERGE_TOL_MM = 1.0


@dataclass
class BoardRunPlan:
    board_lengths: List[float] = field(default_factory=list)
    overflow_mm: float = 0.0
    waste_mm: float = 0.0


@dataclass
class DeckBoardPlan:
    rows: int = 0
    total_boards: int = 0
    total_length_mm: float = 0.0
    waste_mm: float = 0.0
    overflow_mm: float = 0.0
    area_mm2: float = 0.0
    ripped_width_mm: float = 0.0  # width of a last row narrower than a board, 0 if none
    lengths: Dict[float, int] = field(default_factory=dict)  # board length -> count


@dataclass
class DeckLayout:
    boards: List[Board] = field(default_factory=list)
    breaker_boards: List[Board] = field(default_factory=list)
    clips: List[Clip] = field(default_factory=list)
    plan: DeckBoardPlan = field(default_factory=DeckBoardPlan)


def plan_boards_for_run(
    run_length_mm: float,
    max_board_length_mm: float = 5400.0,
    max_overhang_mm: float = 50.0,
) -> BoardRunPlan:
    """Split a run into boards, full lengths first.

    The last piece is a full board when it would only overhang by
    ``max_overhang_mm`` or less (recorded as overflow); otherwise it is cut
    to the exact remaining length and the offcut counts as waste.
    """
    plan = BoardRunPlan()
    if not math.isfinite(run_length_mm) or run_length_mm <= 0:
        return plan

    remaining = run_length_mm
    while remaining > 0:
        if remaining <= max_board_length_mm:
            overhang = max_board_length_mm - remaining
            if overhang <= max_overhang_mm:
                plan.board_lengths.append(max_board_length_mm)
                plan.overflow_mm += overhang
            else:
                plan.board_lengths.append(remaining)
                plan.waste_mm += overhang
            remaining = 0
        else:
            plan.board_lengths.append(max_board_length_mm)
            remaining -= max_board_length_mm
    return plan


def merge_intervals(intervals: Sequence[Tuple[float, float]], tolerance_mm: float) -> List[Tuple[float, float]]:
    if not intervals:
        return []
    ordered = sorted(intervals)
    merged = [ordered[0]]
    for start, end in ordered[1:]:
        last_start, last_end = merged[-1]
        if start - last_end <= tolerance_mm:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def _to_uv(p: Tuple[float, float], direction: BoardDirection) -> Tuple[float, float]:
    # Swapping axes is its own inverse
    if direction == BoardDirection.VERTICAL:
        return (p[1], p[0])
    return (p[0], p[1])


def _from_uv(u: float, v: float, direction: BoardDirection) -> Point:
    x, y = _to_uv((u, v), direction)
    return Point(x, y)


def union_shapes(shapes: Sequence[DeckShape], direction: BoardDirection = BoardDirection.HORIZONTAL):
    """Union of all valid deck polygons, expressed in (u, v) axes."""
    polygons = []
    for shape in shapes:
        if len(shape.points) < 3:
            logger.debug("Deck shape %s has fewer than 3 points, skipped", shape.id)
            continue
        poly = Polygon([_to_uv(p, direction) for p in shape.points])
        if not poly.is_valid:
            poly = poly.buffer(0)
        if poly.is_empty or poly.area <= 0:
            logger.debug("Deck shape %s is degenerate, skipped", shape.id)
            continue
        polygons.append(poly)

    if not polygons:
        return Polygon()
    return unary_union(polygons)


def scan_spans(region, v: float, u_min: float, u_max: float) -> List[Tuple[float, float]]:
    """Intervals of u where the scanline at v lies inside region."""
    scan = LineString([(u_min - 1.0, v), (u_max + 1.0, v)])
    inter = region.intersection(scan)

    spans = []
    for geom in getattr(inter, 'geoms', [inter]):
        if geom.is_empty or geom.geom_type != 'LineString':
            continue
        us = [c[0] for c in geom.coords]
        spans.append((min(us), max(us)))
    return merge_intervals(spans, SPAN_MERGE_TOL_MM)


def _split_at_breakers(span: Tuple[float, float], breakers: Sequence[float]) -> List[Tuple[float, float]]:
    cuts = [u for u in breakers if span[0] < u < span[1]]
    edges = [span[0]] + cuts + [span[1]]
    return [(edges[i], edges[i + 1]) for i in range(len(edges) - 1)]


def _pack_span(
    span: Tuple[float, float],
    v_center: float,
    run_id: str,
    kind: str,
    direction: BoardDirection,
    config: EngineConfig,
    ids: IdGenerator,
    plan: DeckBoardPlan,
    along_v: bool = False,
) -> List[Board]:
    run_plan = plan_boards_for_run(span[1] - span[0], config.max_board_length_mm, config.max_overhang_mm)
    plan.waste_mm += run_plan.waste_mm
    plan.overflow_mm += run_plan.overflow_mm

    boards = []
    cursor = span[0]
    count = len(run_plan.board_lengths)
    for index, length in enumerate(run_plan.board_lengths):
        if along_v:
            start = _from_uv(v_center, cursor, direction)
            end = _from_uv(v_center, cursor + length, direction)
        else:
            start = _from_uv(cursor, v_center, direction)
            end = _from_uv(cursor + length, v_center, direction)
        boards.append(Board(
            id=ids("board"),
            run_id=run_id,
            start=start,
            end=end,
            length_mm=length,
            kind=kind,
            segment_index=index,
            segment_count=count,
        ))
        plan.lengths[length] = plan.lengths.get(length, 0) + 1
        plan.total_length_mm += length
        cursor += length
    return boards


def layout_deck(
    shapes: Sequence[DeckShape],
    direction: BoardDirection,
    ids: IdGenerator,
    config: Optional[EngineConfig] = None,
    breaker_boards: bool = False,
) -> DeckLayout:
    """Lay boards, breaker boards and clips over a composite deck.

    Args:
        shapes: Deck polygons in mm; overlapping or touching shapes are unioned
            so boards run straight across them
        direction: Board axis
        ids: Generator for board and clip ids
        config: Board, gap and joist dimensions; defaults when omitted
        breaker_boards: Interrupt long rows at every max board length with a
            board laid across the deck

    Returns:
        DeckLayout with boards in row order and clips ordered by joist, then
        by row boundary.
    """
    config = config or EngineConfig()
    layout = DeckLayout()
    region = union_shapes(shapes, direction)
    if region.is_empty:
        return layout

    u_min, v_min, u_max, v_max = region.bounds
    layout.plan.area_mm2 = region.area
    pitch = config.board_width_mm + config.board_gap_mm

    breakers: List[float] = []
    if breaker_boards:
        u = u_min + config.max_board_length_mm
        while u < u_max:
            breakers.append(u)
            u += config.max_board_length_mm

    # Rows of field boards
    rows: List[List[Board]] = []
    i = 0
    while v_min + i * pitch < v_max:
        row_start = v_min + i * pitch
        width = min(config.board_width_mm, v_max - row_start)
        if width < config.board_width_mm:
            logger.debug("Row %d ripped to %.1f mm", i + 1, width)
            layout.plan.ripped_width_mm = width
        v_center = row_start + width / 2
        row_boards: List[Board] = []
        for span in scan_spans(region, v_center, u_min, u_max):
            for piece in _split_at_breakers(span, breakers):
                row_boards.extend(
                    _pack_span(piece, v_center, f"row-{i + 1}", "field", direction, config, ids, layout.plan)
                )
        rows.append(row_boards)
        layout.boards.extend(row_boards)
        i += 1
    layout.plan.rows = sum(1 for row in rows if row)

    # Breaker boards run across the rows at every breaker line
    for k, u in enumerate(breakers, start=1):
        cross = region.intersection(LineString([(u, v_min - 1.0), (u, v_max + 1.0)]))
        for geom in getattr(cross, 'geoms', [cross]):
            if geom.is_empty or geom.geom_type != 'LineString':
                continue
            vs = [c[1] for c in geom.coords]
            layout.breaker_boards.extend(
                _pack_span((min(vs), max(vs)), u, f"breaker-{k}", "breaker", direction,
                           config, ids, layout.plan, along_v=True)
            )

    layout.clips = _place_clips(rows, u_min, u_max, v_min, pitch, direction, config, ids)
    layout.plan.total_boards = len(layout.boards) + len(layout.breaker_boards)
    return layout


def _board_span_u(board: Board, direction: BoardDirection) -> Tuple[float, float]:
    u1 = _to_uv(board.start, direction)[0]
    u2 = _to_uv(board.end, direction)[0]
    return (min(u1, u2), max(u1, u2))


def _place_clips(
    rows: List[List[Board]],
    u_min: float,
    u_max: float,
    v_min: float,
    pitch: float,
    direction: BoardDirection,
    config: EngineConfig,
    ids: IdGenerator,
) -> List[Clip]:
    """One clip per joist crossing of each row gap, holding one or two boards."""
    if config.joist_spacing_mm <= 0:
        logger.warning("Joist spacing must be positive, no clips placed")
        return []

    spans = [[_board_span_u(b, direction) for b in row] for row in rows]

    def boards_at(row: int, u: float) -> int:
        if row < 0 or row >= len(spans):
            return 0
        return sum(1 for start, end in spans[row] if start <= u <= end)

    clips = []
    k = 0
    while u_min + k * config.joist_spacing_mm <= u_max:
        u = u_min + k * config.joist_spacing_mm
        for j in range(len(rows) + 1):
            count = boards_at(j - 1, u) + boards_at(j, u)
            if count == 0:
                continue
            v = v_min + j * pitch - config.board_gap_mm / 2
            clips.append(Clip(id=ids("clip"), position=_from_uv(u, v, direction), board_count=count))
        k += 1
    return clips
