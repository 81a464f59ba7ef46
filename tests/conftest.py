"""Shared fakes for the behavior tests."""

from __future__ import annotations

import asyncio
import random
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import pytest

from wayfarer.config import BehaviorTiming
from wayfarer.environment import GridCell, build_barrier_set
from wayfarer.llm_utils import TextGenerator
from wayfarer.schemas import ChatTurn
from wayfarer.transport import InMemoryPublisher
from wayfarer.world import MapInfo

# Every sleep short enough that full walk/linger cycles take milliseconds.
TINY_TIMING = BehaviorTiming(
    step_duration=0.001,
    min_pause=0.001,
    max_pause=0.002,
    map_poll_interval=0.001,
    no_destination_backoff=0.001,
    no_path_backoff=0.001,
    retry_backoff=0.001,
    linger=0.001,
    stuck_threshold=0.05,
    stuck_scan_interval=0.005,
)


class ScriptedGenerator(TextGenerator):
    """Returns canned replies in order (repeating the last one).

    With ``release`` set, every call blocks until the event is set, which
    lets tests hold a flow inside text generation.
    """

    def __init__(
        self,
        replies: Union[str, Sequence[str]] = "scripted reply",
        *,
        release: Optional[asyncio.Event] = None,
    ) -> None:
        self.replies: List[str] = [replies] if isinstance(replies, str) else list(replies)
        self.release = release
        self.calls: List[Tuple[str, List[ChatTurn]]] = []

    async def generate(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        self.calls.append((system_prompt, list(messages)))
        if self.release is not None:
            await self.release.wait()
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]


class FailingGenerator(TextGenerator):
    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        self.calls += 1
        raise RuntimeError("provider unavailable")


def make_map(
    *,
    barriers: Iterable[Tuple[int, int]] = (),
    terminals: Iterable[Tuple[int, int]] = (),
    spawn: Tuple[int, int] = (2, 2),
    grid_size: int = 10,
    cell_size: int = 32,
    map_id: str = "test-map",
) -> MapInfo:
    terminal_cells = [GridCell(*t) for t in terminals]
    return MapInfo(
        map_id=map_id,
        # Terminals are always barriers on real maps
        barriers=build_barrier_set(list(barriers) + terminal_cells),
        terminals=terminal_cells,
        spawn_point=GridCell(*spawn),
        grid_size=grid_size,
        cell_size=cell_size,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the running loop until it holds or time runs out."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def publisher() -> InMemoryPublisher:
    return InMemoryPublisher()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)
