"""A* search over the bounded 8-directional grid."""

from __future__ import annotations

from typing import Dict, List, Optional

from .grid import NEIGHBOUR_OFFSETS, BarrierSet, GridCell, chebyshev, in_bounds

CARDINAL_COST = 1.0
# Literal approximation of sqrt(2), not math.sqrt(2).
DIAGONAL_COST = 1.414

DEFAULT_GRID_SIZE = 50


def find_path(
    start: GridCell,
    goal: GridCell,
    barriers: BarrierSet,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> List[GridCell]:
    """Return the cells from ``start`` to ``goal`` (inclusive), or ``[]``.

    Uses A* with the Chebyshev heuristic. Diagonal steps cost ``DIAGONAL_COST``
    (> 1), so the heuristic never overestimates and the returned path is
    optimal under these costs. An empty list is the normal "unreachable"
    result; the search never raises for blocked or enclosed goals.

    The frontier is selected by a linear scan over an insertion-ordered dict,
    keeping the first-inserted cell among equal ``f`` scores. That makes the
    result fully deterministic. The scan is O(V) per pop, which is fine for
    grids of a few thousand cells.
    """

    start = GridCell(*start)
    goal = GridCell(*goal)

    # Trivial case: already at goal. Return single-cell path.
    if start == goal:
        return [start]
    # A barrier goal can never be entered, even when it is one step away.
    if goal in barriers:
        return []

    g_score: Dict[GridCell, float] = {start: 0.0}
    f_score: Dict[GridCell, float] = {start: float(chebyshev(start, goal))}
    came_from: Dict[GridCell, GridCell] = {}

    # dict keys double as an ordered set. Re-assigning an existing key keeps
    # its original slot, so a relaxed cell does not lose its place in line.
    open_set: Dict[GridCell, None] = {start: None}

    while open_set:
        current: Optional[GridCell] = None
        lowest_f = float("inf")
        for cell in open_set:
            f = f_score.get(cell, float("inf"))
            # Strict comparison: the earliest-inserted cell wins ties.
            if f < lowest_f:
                lowest_f = f
                current = cell

        if current is None:  # pragma: no cover - every open cell has a finite f
            break

        if current == goal:
            return _reconstruct(came_from, goal)

        del open_set[current]
        current_g = g_score[current]

        for offset in NEIGHBOUR_OFFSETS:
            neighbour = GridCell(current.x + offset.dx, current.y + offset.dy)

            if not in_bounds(neighbour, grid_size):
                continue
            if neighbour in barriers:
                continue

            if offset.is_diagonal:
                # Both orthogonal cells next to the step must be clear, otherwise
                # the move would squeeze through the corner of a barrier.
                if (
                    GridCell(current.x + offset.dx, current.y) in barriers
                    or GridCell(current.x, current.y + offset.dy) in barriers
                ):
                    continue
                move_cost = DIAGONAL_COST
            else:
                move_cost = CARDINAL_COST

            tentative_g = current_g + move_cost
            if tentative_g < g_score.get(neighbour, float("inf")):
                came_from[neighbour] = current
                g_score[neighbour] = tentative_g
                f_score[neighbour] = tentative_g + chebyshev(neighbour, goal)
                open_set[neighbour] = None

    # Frontier exhausted without reaching the goal - no path exists
    return []


def _reconstruct(came_from: Dict[GridCell, GridCell], goal: GridCell) -> List[GridCell]:
    path = [goal]
    cell = goal
    while cell in came_from:
        cell = came_from[cell]
        path.append(cell)
    path.reverse()
    return path


def find_adjacent_cell(
    target: GridCell,
    barriers: BarrierSet,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> Optional[GridCell]:
    """Return the first walkable neighbour of ``target`` in expansion order.

    ``target`` is usually a terminal, which is itself a barrier; the returned
    cell is where the bot stands to "use" it. Returns ``None`` when every
    neighbour is blocked or off the grid.
    """

    for offset in NEIGHBOUR_OFFSETS:
        cell = GridCell(target[0] + offset.dx, target[1] + offset.dy)
        if in_bounds(cell, grid_size) and cell not in barriers:
            return cell
    return None
