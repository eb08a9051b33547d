"""Geometry package.

This package provides the layout algorithms of the fence and deck planner:
- Coordinates and snapping (distances, quantisation, snap resolution)
- Line network (merge, weld, propagation, split)
- Post classification (END / CORNER / T / LINE, orientation)
- Panel fitting (stock panels with offcut reuse)
- Board layout (deck boards, breaker boards, clips)
- Gates (placement window, run split, sliding return)
"""

from .coordinates import (
    distance,
    angle,
    length_mm,
    quantize,
    snap_to_90,
    snap_angle,
    is_orthogonal,
    tolerance_units,
)
from .snapping import (
    SnapResult,
    find_snap_point,
    find_snap_on_segment,
    resolve_snap,
)
from .network import (
    make_line,
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
from .post_classification import (
    categorize_post,
    classify_all_posts,
    choose_primary_neighbour,
    junction_angle_deg,
    post_neighbours,
    post_orientation_deg,
    find_t_junctions,
    is_irregular_junction,
)
from .panel_fitting import (
    PanelFitResult,
    fit_panels,
    find_leftover_for_cut,
    count_purchased_panels,
)
from .board_layout import (
    BoardRunPlan,
    DeckBoardPlan,
    DeckLayout,
    plan_boards_for_run,
    union_shapes,
    layout_deck,
)
from .gates import (
    GateSplit,
    SlidingReturn,
    resolve_opening_mm,
    make_gate,
    placement_window,
    plan_gate_split,
    validate_sliding_return,
    sliding_return_geometry,
)

__all__ = [
    # Coordinates
    'distance',
    'angle',
    'length_mm',
    'quantize',
    'snap_to_90',
    'snap_angle',
    'is_orthogonal',
    'tolerance_units',
    # Snapping
    'SnapResult',
    'find_snap_point',
    'find_snap_on_segment',
    'resolve_snap',
    # Network
    'make_line',
    'merge_collinear',
    'merge_connected',
    'weld_endpoints',
    'normalize_network',
    'propagate_move',
    'resize_line',
    'split_line',
    'rescale_lengths',
    'is_merge_blocked',
    # Posts
    'categorize_post',
    'classify_all_posts',
    'choose_primary_neighbour',
    'junction_angle_deg',
    'post_neighbours',
    'post_orientation_deg',
    'find_t_junctions',
    'is_irregular_junction',
    # Panels
    'PanelFitResult',
    'fit_panels',
    'find_leftover_for_cut',
    'count_purchased_panels',
    # Decking
    'BoardRunPlan',
    'DeckBoardPlan',
    'DeckLayout',
    'plan_boards_for_run',
    'union_shapes',
    'layout_deck',
    # Gates
    'GateSplit',
    'SlidingReturn',
    'resolve_opening_mm',
    'make_gate',
    'placement_window',
    'plan_gate_split',
    'validate_sliding_return',
    'sliding_return_geometry',
]
