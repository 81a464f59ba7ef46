"""Turn cell paths into what the client animates: directions and pixels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .grid import NEIGHBOUR_OFFSETS, Direction, GridCell
from ..schemas import PixelPoint

_DIRECTION_BY_DELTA = {(o.dx, o.dy): o.direction for o in NEIGHBOUR_OFFSETS}


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def to_directions(path: Sequence[GridCell]) -> List[Direction]:
    """Return one direction per step (``len(path) - 1`` entries).

    Deltas are reduced to their sign, so a well-formed path always maps to one
    of the eight directions. A zero delta (repeated cell) maps to
    ``Direction.NONE`` rather than failing.
    """

    directions: List[Direction] = []
    for prev, cell in zip(path, path[1:]):
        delta = (_sign(cell[0] - prev[0]), _sign(cell[1] - prev[1]))
        directions.append(_DIRECTION_BY_DELTA.get(delta, Direction.NONE))
    return directions


def to_pixels(path: Sequence[GridCell], cell_size: int) -> List[PixelPoint]:
    return [PixelPoint(x=cell[0] * cell_size, y=cell[1] * cell_size) for cell in path]


def truncate_path(path: Sequence[GridCell], max_steps: Optional[int]) -> List[GridCell]:
    """Keep at most ``max_steps`` steps (``max_steps + 1`` cells).

    The last cell of the result, not the original goal, is where the walker
    ends up once the walk completes.
    """

    if max_steps is None or len(path) <= max_steps + 1:
        return list(path)
    return list(path[: max_steps + 1])


@dataclass(frozen=True)
class WalkPlan:
    """A path ready to publish, plus what committing it means."""

    cells: List[GridCell]
    directions: List[Direction]
    points: List[PixelPoint]

    @property
    def steps(self) -> int:
        return len(self.directions)

    @property
    def destination(self) -> GridCell:
        return self.cells[-1]

    def duration(self, step_seconds: float) -> float:
        """Seconds the client needs to animate the whole walk."""

        return self.steps * step_seconds


def plan_walk(
    path: Sequence[GridCell],
    cell_size: int,
    *,
    max_steps: Optional[int] = None,
) -> WalkPlan:
    cells = truncate_path(path, max_steps)
    return WalkPlan(
        cells=cells,
        directions=to_directions(cells),
        points=to_pixels(cells, cell_size),
    )
