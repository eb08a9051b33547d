"""Fence panel fitting with offcut reuse.

A run is packed into stock panels (2390 mm by default). Cut pieces draw on
the largest unconsumed leftover that still covers the cut plus the saw
buffer; whatever is left of the source becomes a new leftover when it is
long enough to be reused.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import IdGenerator, Leftover, PanelSegment
from ..settings import EngineConfig

logger = logging.getLogger(__name__)


@dataclass
class PanelFitResult:
    segments: List[PanelSegment] = field(default_factory=list)
    panel_positions: List[float] = field(default_factory=list)  # interior boundaries, mm from a
    new_leftovers: List[Leftover] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def find_leftover_for_cut(
    required_mm: float,
    leftovers: Sequence[Leftover],
    cut_buffer_mm: float = 300.0,
) -> Optional[Leftover]:
    """Largest unconsumed leftover at least ``required + buffer`` long."""
    available = sorted(
        (lo for lo in leftovers if not lo.consumed),
        key=lambda lo: lo.length_mm,
        reverse=True,
    )
    for leftover in available:
        if leftover.length_mm >= required_mm + cut_buffer_mm:
            return leftover
    return None


def _cut_piece(
    run_id: str,
    cut_mm: float,
    leftovers: Sequence[Leftover],
    config: EngineConfig,
    ids: IdGenerator,
    result: PanelFitResult,
) -> Optional[str]:
    """Source one cut piece; returns the leftover id used, None for fresh stock."""
    leftover = find_leftover_for_cut(cut_mm, leftovers, config.cut_buffer_mm)
    if leftover is not None:
        leftover.consumed = True
        source_mm = leftover.length_mm
    else:
        source_mm = config.panel_length_mm

    offcut = source_mm - cut_mm - config.cut_buffer_mm
    if offcut >= config.min_leftover_mm:
        result.new_leftovers.append(
            Leftover(id=ids("leftover"), length_mm=offcut, source_run_id=run_id)
        )
    return leftover.id if leftover is not None else None


def fit_panels(
    run_id: str,
    length_mm: float,
    even_spacing: bool,
    leftovers: Sequence[Leftover],
    ids: IdGenerator,
    config: Optional[EngineConfig] = None,
) -> PanelFitResult:
    """Pack one run into panel segments.

    Args:
        run_id: Line id the segments belong to
        length_mm: Run length
        even_spacing: Split the run into equal units instead of full panels
            plus a remainder
        leftovers: Pool of offcuts from earlier runs; consumed entries are
            marked in place
        ids: Generator for segment and leftover ids
        config: Stock and buffer sizes; defaults when omitted

    Returns:
        PanelFitResult. Offcuts produced here are returned in
        ``new_leftovers`` and are not available to this same run.
    """
    config = config or EngineConfig()
    result = PanelFitResult()
    panel = config.panel_length_mm

    if length_mm < config.min_leftover_mm:
        result.warnings.append(
            f"Run is too short for a panel ({length_mm / 1000:.2f}m)."
        )
        return result

    num_panels = math.floor(length_mm / panel)
    remainder = length_mm - num_panels * panel
    if remainder < config.remainder_eps_mm:
        remainder = 0.0

    if not even_spacing and config.auto_even_spacing and 0 < remainder < config.min_leftover_mm:
        logger.info("Run %s: %.0f mm remainder, switching to even spacing", run_id, remainder)
        even_spacing = True

    if even_spacing:
        count = max(1, math.ceil(length_mm / panel))
        spacing = length_mm / count
        for i in range(count):
            used = None
            if spacing < panel:
                used = _cut_piece(run_id, spacing, leftovers, config, ids, result)
            result.segments.append(PanelSegment(
                id=ids("seg"),
                run_id=run_id,
                start_offset_mm=i * spacing,
                length_mm=spacing,
                uses_leftover_id=used,
            ))
            if i > 0:
                result.panel_positions.append(i * spacing)
        return result

    for i in range(num_panels):
        result.segments.append(PanelSegment(
            id=ids("seg"),
            run_id=run_id,
            start_offset_mm=i * panel,
            length_mm=panel,
        ))
        if i > 0:
            result.panel_positions.append(i * panel)

    if remainder > 0:
        if remainder < config.min_leftover_mm:
            result.warnings.append(
                f"Short segment ({remainder / 1000:.2f}m) detected. "
                "Consider enabling even spacing or extending the run."
            )
        if num_panels > 0:
            result.panel_positions.append(num_panels * panel)
        used = _cut_piece(run_id, remainder, leftovers, config, ids, result)
        result.segments.append(PanelSegment(
            id=ids("seg"),
            run_id=run_id,
            start_offset_mm=num_panels * panel,
            length_mm=remainder,
            uses_leftover_id=used,
            is_remainder=True,
        ))

    return result


def count_purchased_panels(segments: Sequence[PanelSegment]) -> int:
    """Segments that need fresh stock (not cut from a leftover)."""
    return sum(1 for seg in segments if seg.uses_leftover_id is None)
