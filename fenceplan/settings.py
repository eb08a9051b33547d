"""Engine configuration.

All tunable constants of the layout engine live in :class:`EngineConfig`.
The config can be persisted to an INI file through ``QSettings`` so an
application can keep per-user tolerances next to its other preferences.
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Union

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    # Network
    min_line_length_mm: float = 300.0
    merge_endpoint_eps: float = 0.25     # canvas units
    merge_angle_tol_deg: float = 2.0
    propagation_tol: float = 0.1         # canvas units
    point_match_tol: float = 1.0         # canvas units, posts and gates
    rescale_min_change: float = 0.0001

    # Posts
    straight_tol_rad: float = 0.1
    corner_tol_deg: float = 15.0
    primary_neighbour_tol: float = 0.5   # canvas units

    # Panels
    panel_length_mm: float = 2390.0
    cut_buffer_mm: float = 300.0
    min_leftover_mm: float = 300.0
    remainder_eps_mm: float = 0.5
    auto_even_spacing: bool = True

    # Gates
    end_clearance_mm: float = 300.0
    sliding_return_mm: float = 4800.0

    # Decking
    max_board_length_mm: float = 5400.0
    max_overhang_mm: float = 50.0
    board_width_mm: float = 140.0
    board_gap_mm: float = 3.0
    joist_spacing_mm: float = 450.0

    # Snapping
    endpoint_snap_mm: float = 200.0
    segment_snap_mm: float = 100.0
    quantize_step_mm: float = 1.0


# Settings groups, keyed by the first field of each group
_GROUPS = {
    "min_line_length_mm": "network",
    "straight_tol_rad": "posts",
    "panel_length_mm": "panels",
    "end_clearance_mm": "gates",
    "max_board_length_mm": "decking",
    "endpoint_snap_mm": "snapping",
}


def _settings_keys() -> Dict[str, str]:
    keys = {}
    group = "network"
    for f in fields(EngineConfig):
        group = _GROUPS.get(f.name, group)
        keys[f.name] = f"{group}/{f.name}"
    return keys


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load an EngineConfig from an INI file, falling back to defaults."""
    config = EngineConfig()
    if not Path(path).exists():
        logger.debug("No engine settings at %s, using defaults", path)
        return config

    settings = QSettings(str(path), QSettings.IniFormat)
    values = {}
    for f in fields(EngineConfig):
        key = _settings_keys()[f.name]
        default = getattr(config, f.name)
        try:
            values[f.name] = settings.value(key, default, type=type(default))
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring invalid setting %s: %s", key, e)
    return replace(config, **values)


def save_config(config: EngineConfig, path: Union[str, Path]) -> None:
    """Write every EngineConfig field to an INI file."""
    settings = QSettings(str(path), QSettings.IniFormat)
    for f in fields(EngineConfig):
        settings.setValue(_settings_keys()[f.name], getattr(config, f.name))
    settings.sync()
