"""Grid geometry primitives.

The world is a bounded square grid addressed by integer ``(x, y)`` cells with
``y`` growing downward (screen coordinates). Movement is 8-directional, and the
direction names match the client's renderer so they can be sent over the wire
unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, List, NamedTuple, Sequence, Tuple


class GridCell(NamedTuple):
    """An immutable integer grid coordinate."""

    x: int
    y: int


class Direction(str, Enum):
    """Facing/step direction understood by the client."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    UP_LEFT = "upLeft"
    UP_RIGHT = "upRight"
    DOWN_LEFT = "downLeft"
    DOWN_RIGHT = "downRight"
    NONE = "none"


class NeighbourOffset(NamedTuple):
    dx: int
    dy: int
    direction: Direction

    @property
    def is_diagonal(self) -> bool:
        return self.dx != 0 and self.dy != 0


# Expansion order matters: the search and find_adjacent_cell both walk this
# list, and the order decides which of several equal candidates wins.
NEIGHBOUR_OFFSETS: Tuple[NeighbourOffset, ...] = (
    NeighbourOffset(0, -1, Direction.UP),
    NeighbourOffset(0, 1, Direction.DOWN),
    NeighbourOffset(-1, 0, Direction.LEFT),
    NeighbourOffset(1, 0, Direction.RIGHT),
    NeighbourOffset(-1, -1, Direction.UP_LEFT),
    NeighbourOffset(1, -1, Direction.UP_RIGHT),
    NeighbourOffset(-1, 1, Direction.DOWN_LEFT),
    NeighbourOffset(1, 1, Direction.DOWN_RIGHT),
)

BarrierSet = FrozenSet[GridCell]


def build_barrier_set(barriers: Iterable[Sequence[int]]) -> BarrierSet:
    """Build an O(1) membership index from ``[x, y]`` pairs.

    Built once per map; every consumer (search, wander sampling, adjacent-cell
    lookup) shares the same frozen set instead of rebuilding it per walk.
    """

    return frozenset(GridCell(int(pair[0]), int(pair[1])) for pair in barriers)


def in_bounds(cell: Tuple[int, int], grid_size: int) -> bool:
    x, y = cell
    return 0 <= x < grid_size and 0 <= y < grid_size


def chebyshev(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    """Chebyshev distance ``max(|dx|, |dy|)`` between two cells."""

    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def as_cells(pairs: Iterable[Sequence[int]]) -> List[GridCell]:
    return [GridCell(int(pair[0]), int(pair[1])) for pair in pairs]
