"""Shared fixtures for fenceplan tests."""
import pytest

from fenceplan.engine import LayoutEngine
from fenceplan.geometry.network import make_line
from fenceplan.models import IdGenerator
from fenceplan.settings import EngineConfig


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def ids():
    return IdGenerator()


@pytest.fixture
def engine():
    """Engine where one canvas unit is one millimetre."""
    return LayoutEngine(mm_per_unit=1.0)


@pytest.fixture
def line():
    """Factory for lines at 1 mm per unit."""
    def _make(line_id, a, b, opening=None, mm_per_unit=1.0):
        return make_line(line_id, a, b, mm_per_unit, opening=opening)
    return _make


@pytest.fixture
def l_shape(line):
    """Two runs meeting at a square corner at (1000, 0)."""
    return [
        line("line-1", (0, 0), (1000, 0)),
        line("line-2", (1000, 0), (1000, 1000)),
    ]


@pytest.fixture
def u_shape_engine(engine):
    """A 2000 mm run with both ends continuing into more fence."""
    engine.add_line((0, 1000), (0, 0))
    engine.add_line((0, 0), (2000, 0))
    engine.add_line((2000, 0), (2000, 1000))
    return engine
