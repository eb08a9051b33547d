"""Engine state and undo history."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .geometry.board_layout import DeckBoardPlan
from .models import (
    Board,
    BoardDirection,
    Clip,
    DeckShape,
    Gate,
    Leftover,
    Line,
    PanelSegment,
    Post,
    WarningMsg,
)


@dataclass
class EngineState:
    """Everything the engine owns.

    The first block is source state, edited by engine operations and
    persisted. The rest is derived and rebuilt by ``recalculate``.
    """

    mm_per_unit: float = 10.0
    lines: List[Line] = field(default_factory=list)
    gates: List[Gate] = field(default_factory=list)
    deck_shapes: List[DeckShape] = field(default_factory=list)
    board_direction: BoardDirection = BoardDirection.HORIZONTAL
    use_breaker_boards: bool = False

    # Derived
    posts: List[Post] = field(default_factory=list)
    panels: List[PanelSegment] = field(default_factory=list)
    leftovers: List[Leftover] = field(default_factory=list)
    panel_positions: Dict[str, List[float]] = field(default_factory=dict)
    boards: List[Board] = field(default_factory=list)
    breaker_boards: List[Board] = field(default_factory=list)
    clips: List[Clip] = field(default_factory=list)
    deck_plan: DeckBoardPlan = field(default_factory=DeckBoardPlan)
    layout_warnings: List[WarningMsg] = field(default_factory=list)

    # Rejected operations, kept for the whole session
    session_warnings: List[WarningMsg] = field(default_factory=list)

    def line(self, line_id: str) -> Optional[Line]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def gate(self, gate_id: str) -> Optional[Gate]:
        for gate in self.gates:
            if gate.id == gate_id:
                return gate
        return None

    def gate_for_line(self, line_id: str) -> Optional[Gate]:
        line = self.line(line_id)
        if line is None or line.gate_id is None:
            return None
        return self.gate(line.gate_id)

    @property
    def warnings(self) -> List[WarningMsg]:
        return self.session_warnings + self.layout_warnings

    def snapshot(self) -> dict:
        """Source state only; derived data is recomputed after a restore."""
        return {
            "mm_per_unit": self.mm_per_unit,
            "lines": list(self.lines),
            "gates": list(self.gates),
            "deck_shapes": list(self.deck_shapes),
            "board_direction": self.board_direction,
            "use_breaker_boards": self.use_breaker_boards,
        }

    def restore(self, snapshot: dict) -> None:
        self.mm_per_unit = snapshot["mm_per_unit"]
        self.lines = list(snapshot["lines"])
        self.gates = list(snapshot["gates"])
        self.deck_shapes = list(snapshot.get("deck_shapes", []))
        self.board_direction = snapshot.get("board_direction", BoardDirection.HORIZONTAL)
        self.use_breaker_boards = bool(snapshot.get("use_breaker_boards", False))


class History:
    """Undo/redo stacks of state snapshots.

    ``history[-1]`` is always the current state, so undo needs at least two
    entries. Saving a new state drops the redo tail.
    """

    def __init__(self):
        self.history: List[dict] = []
        self.future: List[dict] = []

    def save_state(self, snapshot: dict) -> None:
        self.history.append(snapshot)
        self.future.clear()

    def can_undo(self) -> bool:
        return len(self.history) >= 2

    def can_redo(self) -> bool:
        return len(self.future) > 0

    def undo(self) -> Optional[dict]:
        if not self.can_undo():
            return None
        self.future.append(self.history.pop())
        return self.history[-1]

    def redo(self) -> Optional[dict]:
        if not self.can_redo():
            return None
        state = self.future.pop()
        self.history.append(state)
        return state

    def clear(self) -> None:
        self.history.clear()
        self.future.clear()
