"""Embedded default product catalog.

Modify GATE_DEFAULTS to add or update built-in gate types.
Prices are not kept here; the pricing layer matches on the gate type values.
"""
from dataclasses import dataclass
from typing import Dict

from .models import GateType


@dataclass(frozen=True)
class GateSpec:
    type: GateType
    name: str
    opening_mm: float
    leaf_count: int
    return_length_mm: float = 0.0  # sliding gates only


# (type, name, opening_mm, leaf_count, return_length_mm)
GATE_DEFAULTS = [
    (GateType.SINGLE_900,     "Single gate 900",   900.0,  1, 0.0),
    (GateType.SINGLE_1800,    "Single gate 1800",  1800.0, 1, 0.0),
    (GateType.DOUBLE_900,     "Double gate 2x900", 1800.0, 2, 0.0),
    (GateType.DOUBLE_1800,    "Double gate 2x1800", 3600.0, 2, 0.0),
    (GateType.SLIDING_4800,   "Sliding gate 4800", 4800.0, 1, 4800.0),
    (GateType.OPENING_CUSTOM, "Custom opening",    0.0,    1, 0.0),  # width supplied by the user
]


def default_gate_catalog() -> Dict[GateType, GateSpec]:
    return {
        gate_type: GateSpec(
            type=gate_type,
            name=name,
            opening_mm=opening,
            leaf_count=leaves,
            return_length_mm=ret,
        )
        for gate_type, name, opening, leaves, ret in GATE_DEFAULTS
    }
