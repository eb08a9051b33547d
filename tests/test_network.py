"""Tests for fenceplan/geometry/network.py."""
import pytest

from fenceplan.geometry.coordinates import distance
from fenceplan.geometry.network import (
    make_line,
    angle_between,
    overlap_on_axis,
    merge_collinear,
    merge_connected,
    weld_endpoints,
    normalize_network,
    propagate_move,
    resize_line,
    split_line,
    rescale_lengths,
    is_merge_blocked,
)
from fenceplan.models import LayoutError, Point


def assert_lengths_match_points(lines, mm_per_unit=1.0):
    for ln in lines:
        assert abs(ln.length_mm - distance(ln.a, ln.b) * mm_per_unit) < 1e-6


# --- make_line ---

def test_make_line_derives_length_and_lock():
    ln = make_line("line-1", (0, 0), (3, 4), 10.0)
    assert ln.length_mm == 50.0
    assert not ln.locked_90
    assert make_line("line-2", (0, 0), (10, 0), 1.0).locked_90


def test_angle_between_degenerate_is_none(line):
    assert angle_between(line("a", (0, 0), (0, 0)), line("b", (0, 0), (1, 0))) is None


def test_overlap_on_axis(line):
    assert overlap_on_axis(line("a", (0, 0), (100, 0)), line("b", (100, 0), (200, 0)), 0.25)
    assert not overlap_on_axis(line("a", (0, 0), (100, 0)), line("b", (150, 0), (200, 0)), 0.25)


# --- merge_collinear ---

def test_merge_collinear_keeps_seed_id(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100, 0), (250, 0))]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert changed
    assert len(merged) == 1
    assert merged[0].id == "line-2"
    assert {merged[0].a, merged[0].b} == {Point(0, 0), Point(250, 0)}
    assert merged[0].length_mm == 250.0


def test_merge_collinear_antiparallel(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (250, 0), (100, 0))]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert changed
    assert merged[0].length_mm == 250.0


def test_merge_within_angle_tolerance(line):
    # ~1.15 degrees
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100, 0), (200, 2))]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert changed
    assert len(merged) == 1


def test_no_merge_beyond_angle_tolerance(line):
    # ~5.7 degrees
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100, 0), (200, 10))]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert not changed
    assert merged == lines


def test_no_merge_when_folding_back(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100, 0), (50, 0))]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert not changed


def test_gated_lines_never_merge(line):
    gate = line("line-1", (0, 0), (100, 0), opening="gate-1")
    stock = line("line-2", (100, 0), (250, 0))
    assert is_merge_blocked(gate, stock)
    merged, changed = merge_collinear([gate, stock], "line-2", 1.0)
    assert not changed
    assert merged[0].opening == "gate-1"


def test_no_merge_through_t_junction(line):
    lines = [
        line("line-1", (0, 0), (100, 0)),
        line("line-3", (100, 0), (100, 100)),
        line("line-2", (100, 0), (200, 0)),
    ]
    merged, changed = merge_collinear(lines, "line-2", 1.0)
    assert not changed
    assert len(merged) == 3


def test_merge_connected_prefers_primary_id(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100, 0), (300, 0))]
    merged = merge_connected(lines, "line-2", {"line-1": 0, "line-2": 1}, 1.0)
    assert [ln.id for ln in merged] == ["line-2"]

    merged = merge_connected(lines, None, {"line-1": 0, "line-2": 1}, 1.0)
    assert [ln.id for ln in merged] == ["line-1"]


# --- weld_endpoints ---

def test_weld_snaps_to_earliest_line(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100.2, 0.1), (100.2, 100))]
    welded = weld_endpoints(lines, None, {"line-1": 0, "line-2": 1}, 1.0)
    assert welded[0] == lines[0]
    assert welded[1].a == Point(100, 0)
    assert_lengths_match_points(welded)


def test_weld_primary_wins(line):
    lines = [line("line-1", (0, 0), (100, 0)), line("line-2", (100.2, 0.1), (100.2, 100))]
    welded = weld_endpoints(lines, "line-2", {"line-1": 0, "line-2": 1}, 1.0)
    assert welded[0].b == Point(100.2, 0.1)
    assert welded[1] == lines[1]


def test_weld_skips_gates(line):
    lines = [line("line-1", (0, 0), (100, 0), opening="gate-1"), line("line-2", (100.2, 0.1), (100.2, 100))]
    welded = weld_endpoints(lines, None, {"line-1": 0, "line-2": 1}, 1.0)
    assert welded == lines


# --- normalize_network ---

def test_normalize_is_idempotent(line):
    lines = [
        line("line-1", (0, 0), (1000, 0)),
        line("line-2", (1000.1, 0.1), (2000, 0)),
        line("line-3", (2000, 0.2), (2000, 1000)),
        line("line-4", (2000, 1000), (1000, 1000), opening="gate-1"),
        line("line-5", (1000, 1000), (0, 1000)),
        line("line-6", (0, 1000), (0, 0.1)),
    ]
    once = normalize_network(lines, None, 1.0)
    twice = normalize_network(once, None, 1.0)
    assert once == twice
    assert_lengths_match_points(once)
    assert sum(1 for ln in once if ln.opening == "gate-1") == 1


# --- propagation ---

def test_propagate_open_chain(l_shape):
    moved = propagate_move(l_shape, "line-1", Point(1000, 0), Point(1500, 0), 1.0)
    assert moved[1].a == Point(1500, 0)
    assert moved[1].b == Point(1500, 1000)
    assert moved[1].length_mm == 1000.0


def test_propagate_cycle_moves_each_line_once(line):
    square = [
        line("line-1", (0, 0), (1000, 0)),
        line("line-2", (1000, 0), (1000, 1000)),
        line("line-3", (1000, 1000), (0, 1000)),
        line("line-4", (0, 1000), (0, 0)),
    ]
    resized = resize_line(square, "line-1", 1500, 1.0)
    assert resized[0].b == Point(1500, 0)
    assert resized[0].length_mm == pytest.approx(1500)
    for ln in resized[1:]:
        assert ln.length_mm == pytest.approx(1000)
    assert_lengths_match_points(resized)


def test_resize_zero_length_raises(line):
    with pytest.raises(LayoutError, match="zero length"):
        resize_line([line("line-1", (0, 0), (0, 0))], "line-1", 500, 1.0)


# --- split / rescale ---

def test_split_line(line):
    lines = [line("line-1", (0, 0), (1000, 0))]
    first, second = split_line(lines, "line-1", 0.25, "line-9", 1.0)
    assert first.id == "line-1"
    assert second.id == "line-9"
    assert first.b == second.a == Point(250, 0)
    assert first.length_mm == 250.0
    assert second.length_mm == 750.0


def test_split_rejects_bad_parameter_and_gates(line):
    with pytest.raises(LayoutError):
        split_line([line("line-1", (0, 0), (1000, 0))], "line-1", 1.0, "line-9", 1.0)
    with pytest.raises(LayoutError):
        split_line([line("line-1", (0, 0), (1000, 0), opening="gate-1")], "line-1", 0.5, "line-9", 1.0)


def test_rescale_lengths(line):
    rescaled = rescale_lengths([line("line-1", (0, 0), (100, 0))], 20.0)
    assert rescaled[0].length_mm == 2000.0
    assert rescaled[0].a == Point(0, 0)
