"""JSON persistence of the engine's source state.

Only source state is written: scale, lines, gates, deck shapes and board
settings. Posts, panels, leftovers, boards and clips are always rebuilt by
``LayoutEngine.recalculate`` after loading, so a document never carries
stale derived data.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .geometry.network import make_line
from .models import BoardDirection, DeckShape, Gate, GateType, Line, Point
from .state import EngineState

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class SerializationError(ValueError):
    """Raised for documents that cannot be turned back into engine state."""


def _point(p: Point) -> List[float]:
    return [float(p[0]), float(p[1])]


def _line_to_dict(line: Line) -> Dict[str, Any]:
    return {
        "id": line.id,
        "a": _point(line.a),
        "b": _point(line.b),
        "length_mm": line.length_mm,
        "locked_90": line.locked_90,
        "even_spacing": line.even_spacing,
        "opening": line.opening,
    }


def _gate_to_dict(gate: Gate) -> Dict[str, Any]:
    return {
        "id": gate.id,
        "type": gate.type.value,
        "opening_mm": gate.opening_mm,
        "run_id": gate.run_id,
        "sliding_return_direction": gate.sliding_return_direction,
        "leaf_count": gate.leaf_count,
        "leaf_width_mm": gate.leaf_width_mm,
        "return_length_mm": gate.return_length_mm,
    }


def dump_state(state: EngineState) -> Dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "mm_per_unit": state.mm_per_unit,
        "lines": [_line_to_dict(line) for line in state.lines],
        "gates": [_gate_to_dict(gate) for gate in state.gates],
        "board_direction": state.board_direction.value,
        "breaker_boards": state.use_breaker_boards,
        "shapes": [
            {"id": shape.id, "points": [_point(p) for p in shape.points]}
            for shape in state.deck_shapes
        ],
    }


def load_state(data: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a persisted document into an EngineState snapshot.

    Line lengths are recomputed from the stored points and scale, so a
    hand-edited document cannot put a length out of step with its points.

    Raises:
        SerializationError: on a missing key, wrong type or unknown version.
    """
    if not isinstance(data, dict):
        raise SerializationError("Document must be a JSON object")
    version = data.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise SerializationError(f"Unsupported document version {version!r}")

    try:
        mm_per_unit = float(data["mm_per_unit"])
        if mm_per_unit <= 0:
            raise SerializationError(f"Invalid scale {mm_per_unit!r}")

        lines = [
            make_line(
                str(item["id"]),
                Point(*map(float, item["a"])),
                Point(*map(float, item["b"])),
                mm_per_unit,
                locked_90=bool(item.get("locked_90", False)),
                even_spacing=bool(item.get("even_spacing", False)),
                opening=item.get("opening"),
            )
            for item in data.get("lines", [])
        ]

        gates = []
        for item in data.get("gates", []):
            leaf_count = int(item.get("leaf_count", 1))
            opening_mm = float(item["opening_mm"])
            return_length = item.get("return_length_mm")
            gates.append(Gate(
                id=str(item["id"]),
                type=GateType(item["type"]),
                opening_mm=opening_mm,
                run_id=str(item["run_id"]),
                sliding_return_direction=item.get("sliding_return_direction", "left"),
                leaf_count=leaf_count,
                leaf_width_mm=float(item.get("leaf_width_mm", opening_mm / leaf_count)),
                return_length_mm=float(return_length) if return_length is not None else None,
            ))

        shapes = [
            DeckShape(
                id=str(item["id"]),
                points=tuple(Point(*map(float, p)) for p in item["points"]),
            )
            for item in data.get("shapes", [])
        ]
        board_direction = BoardDirection(data.get("board_direction", BoardDirection.HORIZONTAL.value))
    except SerializationError:
        raise
    except (KeyError, TypeError, ValueError, ZeroDivisionError) as e:
        raise SerializationError(f"Malformed document: {e!r}") from e

    gate_lines = {line.opening for line in lines if line.opening is not None}
    for gate in gates:
        if gate.id not in gate_lines:
            logger.warning("Gate %s has no opening line in the document", gate.id)

    return {
        "mm_per_unit": mm_per_unit,
        "lines": lines,
        "gates": gates,
        "deck_shapes": shapes,
        "board_direction": board_direction,
        "use_breaker_boards": bool(data.get("breaker_boards", False)),
    }


def dumps(state: EngineState, **kwargs) -> str:
    return json.dumps(dump_state(state), **kwargs)


def loads(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Invalid JSON: {e}") from e
    return load_state(data)


def save_file(state: EngineState, path: Union[str, Path]) -> None:
    Path(path).write_text(dumps(state, ensure_ascii=False, indent=2), encoding="utf-8")


def load_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a project file written by ``save_file``.

    Raises:
        SerializationError: if the file is not a valid document.
        OSError: if the file cannot be read.
    """
    return loads(Path(path).read_text(encoding="utf-8"))
