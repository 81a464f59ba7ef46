"""Autonomous wandering.

Picks random walkable destinations near the bot, pathfinds to them, publishes
the whole path so the client can animate it smoothly, then pauses before
repeating. Each ``WanderTask`` owns one cancellation token; cancelling it is
the only way to stop the loop, and the loop never restarts itself.

State machine::

    WAITING_FOR_MAP -> WALKING -> PAUSING -> WALKING -> ...
            \\              |          |
             +-------------+----------+--> CANCELLED
"""

from __future__ import annotations

import asyncio
import random
from enum import Enum
from typing import Optional, Sequence

from ..cancellation import CancellationToken, cancellable_sleep
from ..config import BehaviorTiming
from ..environment import Direction, GridCell, chebyshev, find_path, plan_walk
from ..logging_utils import log_deterministic, log_error, log_info
from ..schemas import MovementUpdate, PixelPoint
from ..transport import TOPIC_POSITION, Publisher, publish_payload
from ..world import MapInfo, WorldState


class WanderState(Enum):
    WAITING_FOR_MAP = "waiting_for_map"
    WALKING = "walking"
    PAUSING = "pausing"
    CANCELLED = "cancelled"


def pick_random_destination(
    current: GridCell,
    map_info: MapInfo,
    rng: random.Random,
    *,
    max_distance: int,
    attempts: int = 20,
) -> Optional[GridCell]:
    """Sample a walkable cell within ``max_distance`` (Chebyshev) of ``current``.

    Samples uniformly over the whole grid and rejects candidates, so the
    number of tries is bounded by ``attempts``. Returns ``None`` when every
    sample was rejected; the caller backs off and tries again later.
    """

    for _ in range(attempts):
        candidate = GridCell(rng.randrange(map_info.grid_size), rng.randrange(map_info.grid_size))
        if candidate == current:
            continue
        if candidate in map_info.barriers:
            continue
        # Keep walks short and natural
        if chebyshev(candidate, current) > max_distance:
            continue
        return candidate
    return None


async def publish_walk(
    publisher: Publisher,
    identity: str,
    points: Sequence[PixelPoint],
    directions: Sequence[Direction],
) -> None:
    """Publish a full movement path on the position topic (unreliable)."""

    update = MovementUpdate(
        player_id=identity,
        points=list(points),
        directions=[d.value for d in directions],
    )
    await publish_payload(publisher, TOPIC_POSITION, update, reliable=False)


class WanderTask:
    """One run of the wandering loop, bound to a single cancellation token."""

    def __init__(
        self,
        world: WorldState,
        publisher: Publisher,
        *,
        identity: str,
        timing: BehaviorTiming,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.world = world
        self.publisher = publisher
        self.identity = identity
        self.timing = timing
        self.rng = rng or random.Random()
        self.token = CancellationToken("wander")
        self.state = WanderState.WAITING_FOR_MAP
        self.walks_completed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> "WanderTask":
        """Schedule the loop on the running event loop and return ``self``."""

        self._task = asyncio.create_task(self.run(), name="wander")
        return self

    def cancel(self) -> None:
        self.token.cancel()

    async def run(self) -> None:
        try:
            await self._loop()
        except Exception as exc:
            # The next approach flow starts a fresh loop
            log_error(f"[Wander] Loop error: {exc!r}")
        finally:
            self.state = WanderState.CANCELLED
            log_info("[Wander] Wandering loop stopped")

    async def _loop(self) -> None:
        timing = self.timing
        token = self.token

        log_info("[Wander] Wandering loop started - waiting for map-info...")
        self.state = WanderState.WAITING_FOR_MAP
        while self.world.map is None:
            if not await cancellable_sleep(timing.map_poll_interval, token):
                return

        map_info = self.world.map
        log_info(
            f"[Wander] Map loaded: {map_info.map_id}. Starting to wander "
            f"({len(map_info.barriers)} barriers, grid {map_info.grid_size}x{map_info.grid_size})"
        )

        while not token.cancelled:
            # Re-read every iteration so a new map takes effect on the next walk
            map_info = self.world.map
            self.state = WanderState.WALKING
            start = self.world.position

            destination = pick_random_destination(
                start,
                map_info,
                self.rng,
                max_distance=timing.max_path_length,
                attempts=timing.destination_attempts,
            )
            if destination is None:
                if not await cancellable_sleep(timing.no_destination_backoff, token):
                    break
                continue

            path = find_path(start, destination, map_info.barriers, map_info.grid_size)
            if len(path) < 2:
                # Unreachable destination, or already there
                if not await cancellable_sleep(timing.no_path_backoff, token):
                    break
                continue

            plan = plan_walk(path, map_info.cell_size, max_steps=timing.max_path_length)
            log_deterministic(
                f"[Wander] Walking from ({start.x},{start.y}) -> "
                f"({plan.destination.x},{plan.destination.y}) ({plan.steps} steps)"
            )

            try:
                await publish_walk(self.publisher, self.identity, plan.points, plan.directions)
            except Exception as exc:
                log_error(f"[Wander] Failed to publish path: {exc}")
                if not await cancellable_sleep(timing.retry_backoff, token):
                    break
                continue

            # Wait for the client to finish animating. Cancelled mid-walk means
            # the walk is abandoned and the position stays where it was.
            if not await cancellable_sleep(plan.duration(timing.step_duration), token):
                break

            # A map update during the walk already reset the position to the
            # new spawn; the old path's endpoint means nothing on the new map.
            if self.world.map is map_info:
                self.world.commit_position(plan.destination)
                self.walks_completed += 1

            self.state = WanderState.PAUSING
            pause = self.rng.uniform(timing.min_pause, timing.max_pause)
            if not await cancellable_sleep(pause, token):
                break
