"""Tests for fenceplan/geometry/coordinates.py."""
import math

from fenceplan.geometry.coordinates import (
    distance,
    angle,
    length_mm,
    tolerance_units,
    quantize,
    points_match,
    point_key,
    unit_vector,
    is_orthogonal,
    snap_to_90,
    snap_angle,
)
from fenceplan.models import Point


def test_distance_and_length():
    assert distance((0, 0), (3, 4)) == 5.0
    assert length_mm((0, 0), (3, 4), 10.0) == 50.0


def test_angle_points_down_positive_y():
    assert abs(angle((0, 0), (0, 1)) - math.pi / 2) < 1e-12


def test_tolerance_units():
    assert tolerance_units(200, 10.0) == 20.0
    assert tolerance_units(200, 0.0) == 0.0
    assert tolerance_units(200, float("nan")) == 0.0


# --- quantize ---

def test_quantize_rounds_to_real_world_step():
    assert quantize((12.4, 7.6), 5, 1.0) == Point(10, 10)


def test_quantize_step_converted_through_scale():
    # 100 mm at 10 mm/unit is a 10 unit grid
    p = quantize((14, 26), 100, 10.0)
    assert abs(p.x - 10) < 1e-12
    assert abs(p.y - 30) < 1e-12


def test_quantize_invalid_inputs_leave_point():
    assert quantize((1.3, 2.7), 0, 1.0) == Point(1.3, 2.7)
    assert quantize((1.3, 2.7), 5, -1.0) == Point(1.3, 2.7)
    assert quantize((1.3, 2.7), float("inf"), 1.0) == Point(1.3, 2.7)


def test_points_match_is_per_axis():
    assert points_match((0, 0), (0.9, 0.9), 1.0)
    assert not points_match((0, 0), (1.0, 0), 1.0)


def test_point_key_rounds():
    assert point_key((10.4, -3.6)) == (10, -4)


def test_unit_vector_degenerate():
    assert unit_vector((1, 1), (1, 1)) is None
    assert unit_vector((0, 0), (0, 5)) == (0.0, 1.0)


def test_is_orthogonal():
    assert is_orthogonal((0, 0), (0.005, 10))
    assert is_orthogonal((0, 0), (10, 0))
    assert not is_orthogonal((0, 0), (1, 1))


def test_snap_to_90_keeps_dominant_axis():
    assert snap_to_90((0, 0), (10, 3)) == Point(10, 0)
    assert snap_to_90((0, 0), (2, 9)) == Point(0, 9)


def test_snap_angle_keeps_distance():
    p = snap_angle((0, 0), (10, 9))
    d = math.hypot(10, 9)
    assert abs(p.x - d * math.cos(math.pi / 4)) < 1e-9
    assert abs(p.y - d * math.sin(math.pi / 4)) < 1e-9


def test_snap_angle_to_axis():
    p = snap_angle((0, 0), (10, 1))
    assert abs(p.x - math.hypot(10, 1)) < 1e-9
    assert abs(p.y) < 1e-9
