"""Layout engine controller.

``LayoutEngine`` owns one :class:`EngineState` and is the only writer to
it. Every public operation either succeeds, records an undo snapshot and
recomputes all derived data, or is rejected with a timestamped warning and
leaves the state untouched. Public methods never raise on bad geometry.
"""

import logging
import math
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .catalog import GateSpec, default_gate_catalog
from .geometry.board_layout import layout_deck
from .geometry.coordinates import distance, quantize
from .geometry.gates import make_gate, plan_gate_split, resolve_opening_mm, validate_sliding_return
from .geometry.network import (
    make_line,
    merge_collinear,
    normalize_network,
    rescale_lengths,
    resize_line,
    split_line,
    weld_endpoints,
)
from .geometry.panel_fitting import fit_panels
from .geometry.post_classification import classify_all_posts, find_t_junctions, is_irregular_junction
from .geometry.snapping import find_snap_on_segment, resolve_snap
from .models import (
    BoardDirection,
    DeckShape,
    GateType,
    IdGenerator,
    LayoutError,
    Leftover,
    Line,
    Point,
    WarningMsg,
)
from .serialization import dump_state, load_state
from .settings import EngineConfig
from .state import EngineState, History

logger = logging.getLogger(__name__)


class LayoutEngine:
    def __init__(
        self,
        mm_per_unit: float = 10.0,
        config: Optional[EngineConfig] = None,
        gate_catalog: Optional[Dict[GateType, GateSpec]] = None,
    ):
        self.config = config or EngineConfig()
        self.gate_catalog = gate_catalog or default_gate_catalog()
        self.state = EngineState(mm_per_unit=mm_per_unit)
        self.ids = IdGenerator()
        self.history = History()
        self.history.save_state(self.state.snapshot())

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def mm_per_unit(self) -> float:
        return self.state.mm_per_unit

    @property
    def lines(self):
        return list(self.state.lines)

    @property
    def gates(self):
        return list(self.state.gates)

    @property
    def posts(self):
        return list(self.state.posts)

    @property
    def panels(self):
        return list(self.state.panels)

    @property
    def leftovers(self):
        return list(self.state.leftovers)

    @property
    def boards(self):
        return list(self.state.boards)

    @property
    def clips(self):
        return list(self.state.clips)

    @property
    def warnings(self) -> List[WarningMsg]:
        return self.state.warnings

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _warn(self, text: str, run_id: Optional[str] = None) -> None:
        logger.info("Rejected: %s", text)
        self.state.session_warnings.append(
            WarningMsg(id=self.ids("warn"), text=text, timestamp=time.time(), run_id=run_id)
        )

    def _commit(self) -> None:
        self.history.save_state(self.state.snapshot())
        self.recalculate()

    def _bad_points(self, *points) -> bool:
        """Warn and return True if any coordinate is NaN or infinite."""
        for point in points:
            if not all(math.isfinite(c) for c in point):
                self._warn(f"Invalid point {tuple(point)!r}; coordinates must be finite numbers.")
                return True
        return False

    def _too_short(self, length_mm: float) -> bool:
        if not math.isfinite(length_mm):
            self._warn(f"Invalid length {length_mm!r}; it must be a finite number.")
            return True
        if length_mm < self.config.min_line_length_mm:
            self._warn(
                f"Line too short ({length_mm / 1000:.2f}m). "
                f"Minimum length is {self.config.min_line_length_mm / 1000:.1f}m."
            )
            return True
        return False

    def _snap(self, point: Point):
        snap = resolve_snap(
            point,
            self.state.lines,
            self.state.mm_per_unit,
            self.config.endpoint_snap_mm,
            self.config.segment_snap_mm,
        )
        if snap.kind == "free":
            return replace(snap, point=quantize(point, self.config.quantize_step_mm, self.state.mm_per_unit))
        return snap

    def _split_under(self, lines: List[Line], point: Point) -> List[Line]:
        """Split the structural line whose interior holds point, if any."""
        hit = find_snap_on_segment(point, [l for l in lines if not l.is_gate], self.config.merge_endpoint_eps)
        if hit is None or hit.kind != "segment":
            return lines
        try:
            return split_line(lines, hit.line_id, hit.t, self.ids("line"), self.state.mm_per_unit)
        except LayoutError as e:
            logger.debug("Not splitting %s at snapped point: %s", hit.line_id, e)
            return lines

    # ------------------------------------------------------------------
    # Line operations
    # ------------------------------------------------------------------
    def add_line(self, a: Point, b: Point, snap: bool = False) -> Optional[str]:
        """Add a run from a to b; returns the id of the line holding it, or None.

        With ``snap`` the endpoints snap to nearby endpoints or segments and a
        segment hit splits that line so the junction becomes a real vertex.
        """
        a, b = Point(*a), Point(*b)
        if self._bad_points(a, b):
            return None
        snap_hits = []
        if snap:
            snap_a = self._snap(a)
            snap_b = self._snap(b)
            a, b = snap_a.point, snap_b.point
            snap_hits = [s.point for s in (snap_a, snap_b) if s.kind == "segment"]

        mm = self.state.mm_per_unit
        if self._too_short(distance(a, b) * mm):
            return None

        lines = list(self.state.lines)
        for point in snap_hits:
            lines = self._split_under(lines, point)

        line_id = self.ids("line")
        lines.append(make_line(line_id, a, b, mm))
        order = {line.id: i for i, line in enumerate(lines)}
        lines, merged = merge_collinear(
            lines, line_id, mm, self.config.merge_endpoint_eps, self.config.merge_angle_tol_deg
        )
        if merged:
            logger.debug("New line %s merged with a collinear neighbour", line_id)
        lines = weld_endpoints(lines, None, order, mm, self.config.merge_endpoint_eps)

        self.state.lines = lines
        self._commit()
        return line_id

    def update_line(self, line_id: str, new_length_mm: float) -> bool:
        """Resize a structural line from ``a`` and drag connected runs along."""
        if self._too_short(new_length_mm):
            return False
        target = self.state.line(line_id)
        if target is None:
            logger.debug("update_line: unknown line %s", line_id)
            return False
        if target.is_gate:
            self._warn("Gate openings cannot be resized. Delete the gate and add it again.", line_id)
            return False

        mm = self.state.mm_per_unit
        order = {line.id: i for i, line in enumerate(self.state.lines)}
        try:
            lines = resize_line(self.state.lines, line_id, new_length_mm, mm, self.config.propagation_tol)
        except LayoutError as e:
            self._warn(str(e), line_id)
            return False

        self.state.lines = normalize_network(
            lines, line_id, mm, order, self.config.merge_endpoint_eps, self.config.merge_angle_tol_deg
        )
        self._commit()
        return True

    def delete_line(self, line_id: str) -> bool:
        target = self.state.line(line_id)
        if target is None:
            logger.debug("delete_line: unknown line %s", line_id)
            return False

        remaining = [line for line in self.state.lines if line.id != line_id]
        self.state.gates = [
            gate for gate in self.state.gates
            if gate.run_id != line_id and gate.id != target.gate_id
        ]
        self.state.lines = normalize_network(
            remaining, None, self.state.mm_per_unit, None,
            self.config.merge_endpoint_eps, self.config.merge_angle_tol_deg,
        )
        self._commit()
        return True

    def split_line(self, line_id: str, t: float) -> Optional[str]:
        """Split a line at parameter t; returns the id of the second piece."""
        if self.state.line(line_id) is None:
            logger.debug("split_line: unknown line %s", line_id)
            return None
        new_id = self.ids("line")
        try:
            self.state.lines = split_line(self.state.lines, line_id, t, new_id, self.state.mm_per_unit)
        except LayoutError as e:
            self._warn(str(e), line_id)
            return None
        self._commit()
        return new_id

    def toggle_even_spacing(self, line_id: str) -> bool:
        target = self.state.line(line_id)
        if target is None or target.is_gate:
            logger.debug("toggle_even_spacing: no structural line %s", line_id)
            return False
        updated = replace(target, even_spacing=not target.even_spacing)
        self.state.lines = [updated if line.id == line_id else line for line in self.state.lines]
        self._commit()
        return True

    def set_scale(self, mm_per_unit: float) -> bool:
        """Change the canvas scale; points stay, real-world lengths follow."""
        if not math.isfinite(mm_per_unit) or mm_per_unit <= 0:
            self._warn(f"Invalid scale {mm_per_unit!r}; it must be a positive number.")
            return False
        if abs(mm_per_unit - self.state.mm_per_unit) < self.config.rescale_min_change:
            return False
        self.state.mm_per_unit = mm_per_unit
        self.state.lines = rescale_lengths(self.state.lines, mm_per_unit)
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------
    def add_gate(
        self,
        run_id: str,
        gate_type: Union[GateType, str],
        click_point: Optional[Point] = None,
        opening_mm: Optional[float] = None,
    ) -> Optional[str]:
        """Place a gate in a run; returns the gate id, or None if rejected."""
        try:
            gate_type = GateType(gate_type)
        except ValueError:
            self._warn(f"Unknown gate type {gate_type!r}.", run_id)
            return None

        run = self.state.line(run_id)
        if run is None or run.is_gate:
            logger.debug("add_gate: no structural line %s", run_id)
            return None
        if click_point is not None and self._bad_points(click_point):
            return None

        mm = self.state.mm_per_unit
        try:
            opening = resolve_opening_mm(gate_type, opening_mm, self.gate_catalog)
            gate_id = self.ids("gate")
            split = plan_gate_split(
                run, self.state.lines, opening, gate_id, mm, self.ids,
                click_point=Point(*click_point) if click_point is not None else None,
                config=self.config,
            )
        except LayoutError as e:
            self._warn(str(e), run_id)
            return None

        lines: List[Line] = []
        for line in self.state.lines:
            if line.id == run_id:
                lines.extend(split.lines)
            else:
                lines.append(line)

        gate = make_gate(
            gate_id, gate_type, split.gate_line.id, opening,
            self.gate_catalog, self.config.sliding_return_mm,
        )
        self.state.lines = lines
        self.state.gates = self.state.gates + [gate]
        self._commit()
        return gate_id

    def update_gate_return_direction(self, gate_id: str, direction: str) -> bool:
        if direction not in ("left", "right"):
            self._warn(f"Sliding direction must be 'left' or 'right', got {direction!r}.")
            return False
        gate = self.state.gate(gate_id)
        if gate is None:
            logger.debug("update_gate_return_direction: unknown gate %s", gate_id)
            return False
        updated = replace(gate, sliding_return_direction=direction)
        self.state.gates = [updated if g.id == gate_id else g for g in self.state.gates]
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Decking
    # ------------------------------------------------------------------
    def add_deck_shape(self, points: Sequence[Tuple[float, float]]) -> Optional[str]:
        """Add a deck polygon (points in mm); returns its id."""
        pts = tuple(Point(*p) for p in points)
        if len(pts) < 3:
            self._warn("A deck shape needs at least three points.")
            return None
        if self._bad_points(*pts):
            return None
        area2 = sum(
            pts[i][0] * pts[(i + 1) % len(pts)][1] - pts[(i + 1) % len(pts)][0] * pts[i][1]
            for i in range(len(pts))
        )
        if abs(area2) < 1e-9:
            self._warn("Deck shape has no area.")
            return None

        shape_id = self.ids("shape")
        self.state.deck_shapes = self.state.deck_shapes + [DeckShape(id=shape_id, points=pts)]
        self._commit()
        return shape_id

    def delete_deck_shape(self, shape_id: str) -> bool:
        if not any(s.id == shape_id for s in self.state.deck_shapes):
            logger.debug("delete_deck_shape: unknown shape %s", shape_id)
            return False
        self.state.deck_shapes = [s for s in self.state.deck_shapes if s.id != shape_id]
        self._commit()
        return True

    def set_board_direction(self, direction: Union[BoardDirection, str]) -> bool:
        try:
            direction = BoardDirection(direction)
        except ValueError:
            self._warn(f"Unknown board direction {direction!r}.")
            return False
        if direction == self.state.board_direction:
            return False
        self.state.board_direction = direction
        self._commit()
        return True

    def set_breaker_boards(self, enabled: bool) -> bool:
        if bool(enabled) == self.state.use_breaker_boards:
            return False
        self.state.use_breaker_boards = bool(enabled)
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    def recalculate(self) -> None:
        """Rebuild posts, panels, leftovers, deck boards, clips and layout warnings.

        Derived ids come from a fresh generator and the leftover pool starts
        empty, so the same source state always yields the same output.
        """
        state = self.state
        config = self.config
        mm = state.mm_per_unit
        derived = IdGenerator()
        notes: List[Tuple[str, Optional[str]]] = []

        pool: List[Leftover] = []
        panels = []
        positions: Dict[str, List[float]] = {}
        for line in state.lines:
            if line.is_gate:
                continue
            result = fit_panels(line.id, line.length_mm, line.even_spacing, pool, derived, config)
            panels.extend(result.segments)
            positions[line.id] = result.panel_positions
            pool.extend(result.new_leftovers)
            notes.extend((text, line.id) for text in result.warnings)

        posts = classify_all_posts(state.lines, positions, mm, derived, config)

        for point in find_t_junctions(state.lines, config.point_match_tol):
            logger.warning("T junction with more than 2 runs at (%.1f, %.1f)", point[0], point[1])
            notes.append((
                f"T-junction with more than 2 runs detected at ({point[0]:.0f}, {point[1]:.0f}). "
                "Check the post type.",
                None,
            ))
            if is_irregular_junction(point, state.lines, config):
                logger.warning("Irregular junction at (%.1f, %.1f) classified as T", point[0], point[1])
                notes.append((f"Irregular junction at ({point[0]:.0f}, {point[1]:.0f}) uses a T post.", None))

        for gate in state.gates:
            gate_line = state.line(gate.run_id)
            if gate_line is None:
                logger.warning("Gate %s has no opening line", gate.id)
                continue
            text = validate_sliding_return(
                gate, gate_line, state.lines, config.point_match_tol, config.merge_angle_tol_deg
            )
            if text:
                notes.append((text, gate_line.id))

        deck = layout_deck(
            state.deck_shapes, state.board_direction, derived, config, state.use_breaker_boards
        )

        now = time.time()
        state.posts = posts
        state.panels = panels
        state.leftovers = pool
        state.panel_positions = positions
        state.boards = deck.boards
        state.breaker_boards = deck.breaker_boards
        state.clips = deck.clips
        state.deck_plan = deck.plan
        state.layout_warnings = [
            WarningMsg(id=derived("notice"), text=text, timestamp=now, run_id=run_id)
            for text, run_id in notes
        ]

    # ------------------------------------------------------------------
    # History and persistence
    # ------------------------------------------------------------------
    def undo(self) -> bool:
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self.state.restore(snapshot)
        self.recalculate()
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self.state.restore(snapshot)
        self.recalculate()
        return True

    def clear(self) -> None:
        """Drop every line, gate and deck shape (undoable)."""
        self.state.lines = []
        self.state.gates = []
        self.state.deck_shapes = []
        self._commit()

    def to_dict(self) -> Dict[str, Any]:
        return dump_state(self.state)

    def load_dict(self, data: Dict[str, Any]) -> None:
        """Replace the source state from a persisted document.

        Raises:
            SerializationError: if the document is malformed.
        """
        snapshot = load_state(data)
        self.state.restore(snapshot)
        for line in self.state.lines:
            self.ids.observe(line.id)
        for gate in self.state.gates:
            self.ids.observe(gate.id)
        for shape in self.state.deck_shapes:
            self.ids.observe(shape.id)
        self.history.clear()
        self.history.save_state(self.state.snapshot())
        self.recalculate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config: Optional[EngineConfig] = None) -> "LayoutEngine":
        engine = cls(config=config)
        engine.load_dict(data)
        return engine
