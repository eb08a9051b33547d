"""Cutting list and material quantity rules.

This module turns the engine's derived collections into quantities a
pricing layer or a quote document can consume, keeping the counting rules
explicit and testable. It never looks up prices.

High-level contract
- Input: an EngineState after ``recalculate``.
- Output of ``estimate_quantities``: Dict[str, float] mapping material
  code -> non-negative quantity. Zero quantities are omitted.

Rules (current):
- Posts: 'post_end', 'post_corner', 'post_t', 'post_line' <- posts per category
- Panels: 'panel' <- panel segments needing fresh stock
- Gates: 'gate_<type>' <- one per gate
- Deck boards: 'deck_board' <- field plus breaker boards
- Clips: 'deck_clip' <- one per clip, 'deck_clip_edge' for single-board clips
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from .geometry.panel_fitting import count_purchased_panels
from .models import PostCategory
from .state import EngineState


PANEL_LENGTH_ROUND_MM = 100


@dataclass
class GateRecord:
    gate_id: str
    type: str
    opening_mm: float
    leaf_count: int
    leaf_width_mm: float
    sliding_return_direction: str


@dataclass
class CutList:
    post_counts: Dict[str, int] = field(default_factory=dict)
    panel_cuts: Dict[int, int] = field(default_factory=dict)  # length rounded to 100 mm -> count
    purchased_panels: int = 0
    leftovers_used: int = 0
    gates: List[GateRecord] = field(default_factory=list)
    deck_boards: Dict[float, int] = field(default_factory=dict)  # board length -> count
    breaker_boards: int = 0
    clip_count: int = 0
    deck_waste_mm: float = 0.0
    deck_overflow_mm: float = 0.0


def round_cut_length(length_mm: float, step_mm: int = PANEL_LENGTH_ROUND_MM) -> int:
    return int(round(length_mm / step_mm) * step_mm)


def summarize(state: EngineState) -> CutList:
    """Aggregate the derived plan into a cutting list."""
    cut_list = CutList()

    categories = Counter(post.category.value for post in state.posts)
    cut_list.post_counts = {c.value: categories.get(c.value, 0) for c in PostCategory}

    cut_list.panel_cuts = dict(sorted(Counter(round_cut_length(seg.length_mm) for seg in state.panels).items()))
    cut_list.purchased_panels = count_purchased_panels(state.panels)
    cut_list.leftovers_used = sum(1 for seg in state.panels if seg.uses_leftover_id is not None)

    for gate in state.gates:
        cut_list.gates.append(GateRecord(
            gate_id=gate.id,
            type=gate.type.value,
            opening_mm=gate.opening_mm,
            leaf_count=gate.leaf_count,
            leaf_width_mm=gate.leaf_width_mm,
            sliding_return_direction=gate.sliding_return_direction,
        ))

    boards = Counter(board.length_mm for board in state.boards + state.breaker_boards)
    cut_list.deck_boards = dict(sorted(boards.items()))
    cut_list.breaker_boards = len(state.breaker_boards)
    cut_list.clip_count = len(state.clips)
    cut_list.deck_waste_mm = state.deck_plan.waste_mm
    cut_list.deck_overflow_mm = state.deck_plan.overflow_mm
    return cut_list


def estimate_quantities(state: EngineState) -> Dict[str, float]:
    """Return {material_code: quantity} for the current plan."""
    quantities: Dict[str, float] = {}
    cut_list = summarize(state)

    # Posts
    for category, count in cut_list.post_counts.items():
        if count > 0:
            quantities[f"post_{category}"] = float(count)

    # Panels
    if cut_list.purchased_panels > 0:
        quantities["panel"] = float(cut_list.purchased_panels)

    # Gates
    for record in cut_list.gates:
        code = f"gate_{record.type}"
        quantities[code] = quantities.get(code, 0.0) + 1.0

    # Decking
    board_total = sum(cut_list.deck_boards.values())
    if board_total > 0:
        quantities["deck_board"] = float(board_total)
    if cut_list.clip_count > 0:
        quantities["deck_clip"] = float(cut_list.clip_count)
    edge_clips = sum(1 for clip in state.clips if clip.board_count == 1)
    if edge_clips > 0:
        quantities["deck_clip_edge"] = float(edge_clips)

    return quantities
