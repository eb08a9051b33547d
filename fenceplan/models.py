from dataclasses import dataclass
from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple


class LayoutError(ValueError):
    """Raised by geometry helpers for inputs that cannot be laid out."""


class Point(NamedTuple):
    x: float
    y: float


class PostCategory(str, Enum):
    END = "end"
    CORNER = "corner"
    T = "t"
    LINE = "line"


class PostSource(str, Enum):
    VERTEX = "vertex"
    PANEL = "panel"


class GateType(str, Enum):
    SINGLE_900 = "single_900"
    SINGLE_1800 = "single_1800"
    DOUBLE_900 = "double_900"
    DOUBLE_1800 = "double_1800"
    SLIDING_4800 = "sliding_4800"
    OPENING_CUSTOM = "opening_custom"

    @property
    def is_sliding(self) -> bool:
        return self.value.startswith("sliding")

    @property
    def is_double(self) -> bool:
        return self.value.startswith("double")


class BoardDirection(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class Line:
    id: str
    a: Point
    b: Point
    length_mm: float
    locked_90: bool = False
    even_spacing: bool = False
    # Gate id when this line is a gate opening, None for purchasable stock
    opening: Optional[str] = None

    @property
    def gate_id(self) -> Optional[str]:
        return self.opening

    @property
    def is_gate(self) -> bool:
        return self.opening is not None

    def endpoint(self, end: str) -> Point:
        return self.a if end == "a" else self.b

    def other_endpoint(self, end: str) -> Point:
        return self.b if end == "a" else self.a


@dataclass(frozen=True)
class Gate:
    id: str
    type: GateType
    opening_mm: float
    run_id: str
    sliding_return_direction: str = "left"  # "left" -> side a, "right" -> side b
    leaf_count: int = 1
    leaf_width_mm: float = 0.0
    return_length_mm: Optional[float] = None


@dataclass(frozen=True)
class Post:
    id: str
    position: Point
    category: PostCategory
    source: PostSource = PostSource.VERTEX
    angle_deg: float = 0.0


@dataclass
class Leftover:
    id: str
    length_mm: float
    source_run_id: Optional[str] = None
    consumed: bool = False


@dataclass(frozen=True)
class PanelSegment:
    id: str
    run_id: str
    start_offset_mm: float
    length_mm: float
    uses_leftover_id: Optional[str] = None
    is_remainder: bool = False

    @property
    def end_offset_mm(self) -> float:
        return self.start_offset_mm + self.length_mm


@dataclass(frozen=True)
class Board:
    id: str
    run_id: str
    start: Point
    end: Point
    length_mm: float
    kind: str = "field"  # "field" or "breaker"
    segment_index: int = 0
    segment_count: int = 1


@dataclass(frozen=True)
class Clip:
    id: str
    position: Point
    board_count: int


@dataclass(frozen=True)
class DeckShape:
    id: str
    points: Tuple[Point, ...]


@dataclass(frozen=True)
class WarningMsg:
    id: str
    text: str
    timestamp: float
    run_id: Optional[str] = None


class IdGenerator:
    """Deterministic prefixed ids (``line-1``, ``gate-1``, ...).

    Replaying the same operations on a fresh generator yields the same ids.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}

    def __call__(self, prefix: str) -> str:
        n = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = n
        return f"{prefix}-{n}"

    def observe(self, identifier: str) -> None:
        """Make sure later ids never collide with an already issued one."""
        prefix, _, suffix = identifier.rpartition("-")
        if not prefix or not suffix.isdigit():
            return
        self._counters[prefix] = max(self._counters.get(prefix, 0), int(suffix))


"""Data models only. Layout logic lives in fenceplan/geometry/*"""

__all__ = [
    "LayoutError",
    "Point",
    "PostCategory",
    "PostSource",
    "GateType",
    "BoardDirection",
    "Line",
    "Gate",
    "Post",
    "Leftover",
    "PanelSegment",
    "Board",
    "Clip",
    "DeckShape",
    "WarningMsg",
    "IdGenerator",
]
