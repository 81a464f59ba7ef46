"""Grid geometry, pathfinding and movement planning."""

from .grid import (
    NEIGHBOUR_OFFSETS,
    BarrierSet,
    Direction,
    GridCell,
    NeighbourOffset,
    as_cells,
    build_barrier_set,
    chebyshev,
    in_bounds,
)
from .pathfinding import (
    CARDINAL_COST,
    DIAGONAL_COST,
    find_adjacent_cell,
    find_path,
)
from .movement import (
    WalkPlan,
    plan_walk,
    to_directions,
    to_pixels,
    truncate_path,
)

__all__ = [
    "NEIGHBOUR_OFFSETS",
    "BarrierSet",
    "Direction",
    "GridCell",
    "NeighbourOffset",
    "as_cells",
    "build_barrier_set",
    "chebyshev",
    "in_bounds",
    "CARDINAL_COST",
    "DIAGONAL_COST",
    "find_adjacent_cell",
    "find_path",
    "WalkPlan",
    "plan_walk",
    "to_directions",
    "to_pixels",
    "truncate_path",
]
