"""Per-session mutable state shared by the bot's behaviors.

A ``WorldState`` and the tracked-session table belong to exactly one room
session. They are created when the session starts and handed by reference to
every behavior; nothing here is module-global, so two rooms never share map
or position data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .environment import BarrierSet, GridCell, as_cells, build_barrier_set
from .schemas import MapInfoMessage


@dataclass(frozen=True)
class MapInfo:
    """Immutable snapshot of the current map. Replaced wholesale on update."""

    map_id: str
    barriers: BarrierSet
    terminals: List[GridCell]
    spawn_point: GridCell
    grid_size: int
    cell_size: int

    @classmethod
    def from_message(
        cls,
        message: MapInfoMessage,
        *,
        default_grid_size: int,
        default_cell_size: int,
    ) -> "MapInfo":
        return cls(
            map_id=message.map_id,
            barriers=build_barrier_set(message.barriers),
            terminals=as_cells(message.terminals),
            spawn_point=GridCell(*message.spawn_point),
            grid_size=message.grid_size or default_grid_size,
            cell_size=message.cell_size or default_cell_size,
        )


@dataclass
class WorldState:
    """Current map (if any) and the bot's grid position.

    Only two things mutate it: a map update (``apply_map``) and a completed
    walk (``commit_position``).
    """

    position: GridCell
    map: Optional[MapInfo] = None

    def apply_map(self, map_info: MapInfo) -> None:
        self.map = map_info
        self.position = map_info.spawn_point

    def commit_position(self, cell: GridCell) -> None:
        self.position = GridCell(*cell)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TrackedSession:
    """A player working at a challenge terminal."""

    session_id: str
    display_name: str
    terminal: GridCell
    challenge_id: Optional[str] = None
    challenge_title: Optional[str] = None
    challenge_description: Optional[str] = None
    opened_at: datetime = field(default_factory=_utcnow)
    proactive_offered: bool = False
    help_request_active: bool = False

    def elapsed_seconds(self, now: datetime) -> float:
        return (now - self.opened_at).total_seconds()


# Keyed by participant identity.
SessionTable = Dict[str, TrackedSession]
