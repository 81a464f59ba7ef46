"""Tests for the wandering loop."""

from __future__ import annotations

import contextlib
import dataclasses
import io
import random

import pytest

from conftest import TINY_TIMING, make_map, wait_until
from wayfarer.behaviors import WanderState, WanderTask, pick_random_destination
from wayfarer.environment import GridCell, chebyshev
from wayfarer.transport import TOPIC_POSITION
from wayfarer.world import WorldState


def test_destination_respects_distance_and_barriers():
    map_info = make_map(barriers=[(x, 4) for x in range(10)], grid_size=10)
    rng = random.Random(3)
    current = GridCell(1, 1)

    for _ in range(50):
        candidate = pick_random_destination(current, map_info, rng, max_distance=3)
        if candidate is None:
            continue
        assert candidate != current
        assert candidate not in map_info.barriers
        assert chebyshev(candidate, current) <= 3


def test_destination_none_when_nothing_walkable():
    current = GridCell(1, 1)
    barriers = [(x, y) for x in range(3) for y in range(3) if (x, y) != current]
    map_info = make_map(barriers=barriers, spawn=(1, 1), grid_size=3)

    assert pick_random_destination(current, map_info, random.Random(1), max_distance=5) is None


@pytest.mark.asyncio
async def test_waits_for_map_then_walks(publisher, rng):
    world = WorldState(position=GridCell(25, 25))
    wander = WanderTask(world, publisher, identity="bot-claude", timing=TINY_TIMING, rng=rng).start()

    await wait_until(lambda: wander.state is WanderState.WAITING_FOR_MAP)
    assert publisher.packets == []

    world.apply_map(make_map(spawn=(5, 5)))
    await wait_until(lambda: wander.walks_completed >= 2)

    wander.cancel()
    await wander.task

    updates = publisher.decoded(TOPIC_POSITION)
    assert updates
    for update in updates:
        assert update["playerId"] == "bot-claude"
        assert len(update["points"]) == len(update["directions"]) + 1
        assert len(update["directions"]) <= TINY_TIMING.max_path_length
    assert all(packet.reliable is False for packet in publisher.packets)
    assert wander.state is WanderState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_mid_walk_keeps_position(publisher, rng):
    timing = dataclasses.replace(TINY_TIMING, step_duration=5.0)
    world = WorldState(position=GridCell(5, 5))
    world.apply_map(make_map(spawn=(5, 5)))
    wander = WanderTask(world, publisher, identity="bot-claude", timing=timing, rng=rng).start()

    await wait_until(lambda: len(publisher.packets) == 1)
    wander.cancel()
    await wander.task

    assert world.position == GridCell(5, 5)
    assert wander.walks_completed == 0
    assert len(publisher.packets) == 1


@pytest.mark.asyncio
async def test_completed_walk_commits_last_published_cell(publisher, rng):
    timing = dataclasses.replace(TINY_TIMING, min_pause=10.0, max_pause=10.0)
    world = WorldState(position=GridCell(5, 5))
    world.apply_map(make_map(spawn=(5, 5), cell_size=32))
    wander = WanderTask(world, publisher, identity="bot-claude", timing=timing, rng=rng).start()

    await wait_until(lambda: wander.state is WanderState.PAUSING)
    wander.cancel()
    await wander.task

    last_point = publisher.decoded(TOPIC_POSITION)[-1]["points"][-1]
    assert world.position == GridCell(last_point["x"] // 32, last_point["y"] // 32)
    assert wander.walks_completed == 1


@pytest.mark.asyncio
async def test_publish_failure_is_logged_and_retried(publisher, rng):
    publisher.fail_next = 1
    world = WorldState(position=GridCell(5, 5))
    world.apply_map(make_map(spawn=(5, 5)))

    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        wander = WanderTask(world, publisher, identity="bot-claude", timing=TINY_TIMING, rng=rng).start()
        await wait_until(lambda: wander.walks_completed >= 1)
        wander.cancel()
        await wander.task

    output = buffer.getvalue()
    assert "[!]" in output
    assert "Failed to publish path" in output
    assert "[Wander] Wandering loop stopped" in output


@pytest.mark.asyncio
async def test_map_change_mid_walk_discards_old_destination(publisher, rng):
    timing = dataclasses.replace(TINY_TIMING, step_duration=0.02, min_pause=10.0, max_pause=10.0)
    world = WorldState(position=GridCell(5, 5))
    world.apply_map(make_map(spawn=(5, 5)))
    wander = WanderTask(world, publisher, identity="bot-claude", timing=timing, rng=rng).start()

    await wait_until(lambda: len(publisher.packets) == 1)
    world.apply_map(make_map(spawn=(8, 8), map_id="second-map"))
    await wait_until(lambda: wander.state is WanderState.PAUSING)
    wander.cancel()
    await wander.task

    assert world.position == GridCell(8, 8)
    assert wander.walks_completed == 0
