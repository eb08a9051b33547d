"""Tests for fenceplan/engine.py."""
import json

import pytest

from fenceplan.engine import LayoutEngine
from fenceplan.geometry.coordinates import distance
from fenceplan.models import GateType, Point, PostCategory


def assert_lengths_match_points(engine):
    for ln in engine.lines:
        assert abs(ln.length_mm - distance(ln.a, ln.b) * engine.mm_per_unit) < 1e-6


def post_at(engine, x, y):
    for post in engine.posts:
        if abs(post.position.x - x) < 1e-6 and abs(post.position.y - y) < 1e-6:
            return post
    return None


# --- lines ---

def test_min_length_rejection(engine):
    assert engine.add_line((0, 0), (200, 0)) is None
    assert engine.lines == []
    assert len(engine.warnings) == 1
    assert "too short" in engine.warnings[0].text


def test_add_line(engine):
    line_id = engine.add_line((0, 0), (1000, 0))
    assert line_id == "line-1"
    assert engine.lines[0].length_mm == 1000
    assert engine.lines[0].locked_90
    assert post_at(engine, 0, 0).category == PostCategory.END


def test_collinear_add_merges_into_new_line(engine):
    engine.add_line((0, 0), (1000, 0))
    line_id = engine.add_line((1000, 0), (2500, 0))
    assert [ln.id for ln in engine.lines] == [line_id]
    assert engine.lines[0].length_mm == 2500


def test_update_line_drags_connected_runs(engine):
    first = engine.add_line((0, 0), (1000, 0))
    second = engine.add_line((1000, 0), (1000, 1000))
    assert engine.update_line(first, 1500)
    moved = engine.state.line(second)
    assert moved.a == Point(1500, 0)
    assert moved.length_mm == pytest.approx(1000)
    assert post_at(engine, 1500, 0).category == PostCategory.CORNER
    assert_lengths_match_points(engine)


def test_update_line_rejections(engine):
    line_id = engine.add_line((0, 0), (1000, 0))
    assert not engine.update_line(line_id, 200)
    assert len(engine.warnings) == 1
    assert not engine.update_line("line-99", 2000)
    assert len(engine.warnings) == 1
    assert engine.lines[0].length_mm == 1000


def test_split_at_snapped_point_makes_t_post(engine):
    engine.add_line((0, 0), (4000, 0))
    engine.add_line((2000, 50), (2000, 2000), snap=True)
    assert len(engine.lines) == 3
    assert post_at(engine, 2000, 0).category == PostCategory.T


def test_t_junction_is_reported(engine):
    engine.add_line((0, 0), (6000, 0))
    engine.add_line((3000, 0), (3000, 2000), snap=True)
    assert post_at(engine, 3000, 0).category == PostCategory.T
    assert len(engine.warnings) == 1
    assert "T-junction with more than 2 runs" in engine.warnings[0].text
    assert engine.warnings[0].id.startswith("notice-")


def test_non_finite_input_is_rejected(engine):
    line_id = engine.add_line((0, 0), (3000, 0))
    before = engine.lines
    nan, inf = float("nan"), float("inf")

    assert engine.update_line(line_id, nan) is False
    assert engine.update_line(line_id, inf) is False
    assert engine.add_line((0, 0), (inf, 0)) is None
    assert engine.add_line((nan, 0), (1000, 0)) is None
    assert engine.add_gate(line_id, "single_900", click_point=(nan, 0)) is None
    assert engine.add_deck_shape([(0, 0), (inf, 0), (0, 100)]) is None

    assert engine.lines == before
    assert engine.gates == []
    assert len(engine.warnings) == 6
    assert engine.undo()
    assert engine.lines == []


def test_split_line_rejects_bad_parameter(engine):
    line_id = engine.add_line((0, 0), (4000, 0))
    assert engine.split_line(line_id, 1.5) is None
    assert len(engine.warnings) == 1
    assert engine.split_line(line_id, 0.5) is not None
    assert len(engine.lines) == 2


def test_toggle_even_spacing(engine):
    line_id = engine.add_line((0, 0), (3000, 0))
    assert [s.length_mm for s in engine.panels] == [2390, pytest.approx(610)]
    assert engine.toggle_even_spacing(line_id)
    assert engine.lines[0].even_spacing
    assert [s.length_mm for s in engine.panels] == [1500, 1500]


def test_set_scale_keeps_lengths_consistent():
    engine = LayoutEngine(mm_per_unit=10.0)
    engine.add_line((0, 0), (100, 0))
    assert engine.lines[0].length_mm == 1000
    assert engine.set_scale(20.0)
    assert engine.lines[0].length_mm == 2000
    assert not engine.set_scale(20.00001)
    assert not engine.set_scale(0)
    assert_lengths_match_points(engine)


def test_leftover_reuse_across_runs(engine):
    engine.add_line((0, 0), (3000, 0))
    engine.add_line((0, 5000), (3000, 5000))
    second_run = engine.lines[1].id
    remainder = [s for s in engine.panels if s.run_id == second_run and s.is_remainder][0]
    assert remainder.uses_leftover_id == "leftover-1"
    assert [lo.consumed for lo in engine.leftovers] == [True, False]
    assert engine.leftovers[1].length_mm == pytest.approx(570)


# --- gates ---

def test_clearance_window_rejection(u_shape_engine):
    before = u_shape_engine.lines
    warnings = len(u_shape_engine.warnings)
    assert u_shape_engine.add_gate("line-2", GateType.SINGLE_1800) is None
    assert u_shape_engine.lines == before
    assert u_shape_engine.gates == []
    assert len(u_shape_engine.warnings) == warnings + 1
    assert "clearance" in u_shape_engine.warnings[-1].text


def test_add_gate_splits_run(engine):
    run = engine.add_line((0, 0), (6000, 0))
    gate_id = engine.add_gate(run, "single_900")
    assert gate_id == "gate-1"
    assert [ln.length_mm for ln in engine.lines] == [
        pytest.approx(2550), pytest.approx(900), pytest.approx(2550),
    ]
    gate_line = engine.lines[1]
    assert gate_line.gate_id == gate_id
    assert engine.gates[0].run_id == gate_line.id
    assert post_at(engine, 2550, 0).category == PostCategory.END
    assert all(s.run_id != gate_line.id for s in engine.panels)


def test_gate_immunity(engine):
    run = engine.add_line((0, 0), (6000, 0))
    gate_id = engine.add_gate(run, GateType.SINGLE_900)
    before_piece = engine.lines[0]

    engine.add_line((6000, 0), (7000, 0))
    assert engine.update_line(before_piece.id, 3000)

    gated = [ln for ln in engine.lines if ln.is_gate]
    assert len(gated) == 1
    assert gated[0].gate_id == gate_id
    assert gated[0].length_mm == pytest.approx(900)
    assert gated[0].a.x == pytest.approx(3000)
    assert_lengths_match_points(engine)


def test_gate_line_cannot_be_resized(engine):
    run = engine.add_line((0, 0), (6000, 0))
    engine.add_gate(run, GateType.SINGLE_900)
    gate_line = engine.lines[1]
    assert not engine.update_line(gate_line.id, 1200)
    assert engine.lines[1] == gate_line
    assert len(engine.warnings) == 1


def test_delete_gate_line_removes_gate(engine):
    run = engine.add_line((0, 0), (6000, 0))
    engine.add_gate(run, GateType.SINGLE_900)
    assert engine.delete_line(engine.lines[1].id)
    assert engine.gates == []
    assert len(engine.lines) == 2


def test_custom_gate(engine):
    run = engine.add_line((0, 0), (6000, 0))
    assert engine.add_gate(run, GateType.OPENING_CUSTOM) is None
    assert len(engine.warnings) == 1
    gate_id = engine.add_gate(run, GateType.OPENING_CUSTOM, opening_mm=1200)
    assert engine.state.gate(gate_id).opening_mm == 1200


def test_bad_gate_calls_are_safe(engine):
    run = engine.add_line((0, 0), (6000, 0))
    assert engine.add_gate(run, "bogus") is None
    assert engine.add_gate("line-99", GateType.SINGLE_900) is None
    assert len(engine.lines) == 1


def test_sliding_gate_warning_and_direction(engine):
    run = engine.add_line((0, 0), (6000, 0))
    gate_id = engine.add_gate(run, GateType.SLIDING_4800)
    assert any("Sliding gate requires" in w.text for w in engine.warnings)

    assert engine.update_gate_return_direction(gate_id, "right")
    assert engine.state.gate(gate_id).sliding_return_direction == "right"
    assert not engine.update_gate_return_direction(gate_id, "up")


# --- decking ---

def test_deck_shapes(engine):
    shape_id = engine.add_deck_shape([(0, 0), (1000, 0), (1000, 286), (0, 286)])
    assert shape_id == "shape-1"
    assert len(engine.boards) == 2
    assert len(engine.clips) == 9

    assert engine.set_board_direction("vertical")
    assert all(b.start.x == b.end.x for b in engine.boards)

    assert engine.add_deck_shape([(0, 0), (10, 0)]) is None
    assert engine.delete_deck_shape(shape_id)
    assert engine.boards == []


# --- history ---

def test_undo_redo(engine):
    engine.add_line((0, 0), (1000, 0))
    engine.add_line((0, 0), (0, 1000))
    assert len(engine.lines) == 2

    assert engine.undo()
    assert len(engine.lines) == 1
    assert engine.redo()
    assert len(engine.lines) == 2

    engine.undo()
    engine.add_line((5000, 0), (6000, 0))
    assert not engine.can_redo()


def test_undo_restores_gates(engine):
    run = engine.add_line((0, 0), (6000, 0))
    engine.add_gate(run, GateType.SINGLE_900)
    engine.undo()
    assert engine.gates == []
    assert [ln.id for ln in engine.lines] == [run]


def test_clear_is_undoable(engine):
    engine.add_line((0, 0), (1000, 0))
    engine.clear()
    assert engine.lines == []
    engine.undo()
    assert len(engine.lines) == 1


# --- persistence ---

def test_round_trip_reproduces_derived_state(engine):
    engine.add_line((0, 0), (6000, 0))
    engine.add_line((6000, 0), (6000, 4000))
    engine.add_line((6000, 4000), (1000, 5000))
    engine.add_gate(engine.lines[0].id, GateType.DOUBLE_900, click_point=Point(3000, 10))
    engine.add_deck_shape([(0, 0), (3000, 0), (3000, 2000), (0, 2000)])

    data = json.loads(json.dumps(engine.to_dict()))
    restored = LayoutEngine.from_dict(data)

    assert restored.posts == engine.posts
    assert restored.panels == engine.panels
    assert restored.clips == engine.clips
    assert restored.lines == engine.lines


def test_loaded_ids_do_not_collide(engine):
    engine.add_line((0, 0), (1000, 0))
    restored = LayoutEngine.from_dict(engine.to_dict())
    new_id = restored.add_line((0, 3000), (1000, 3000))
    assert new_id == "line-2"
