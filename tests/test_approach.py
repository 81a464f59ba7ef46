"""Tests for help-request and proactive approach flows."""

from __future__ import annotations

import asyncio
import contextlib
import io
from typing import Any, Callable, List, Optional

import pytest

from conftest import TINY_TIMING, FailingGenerator, ScriptedGenerator, make_map, wait_until
from wayfarer.behaviors import ApproachCoordinator
from wayfarer.environment import GridCell
from wayfarer.llm_utils import TextGenerator
from wayfarer.prompts import HINT_FALLBACK, NUDGE_FALLBACK
from wayfarer.schemas import HelpRequestMessage
from wayfarer.transport import TOPIC_CHAT_RESPONSE, TOPIC_HELP_RESPONSE, TOPIC_POSITION
from wayfarer.world import TrackedSession, WorldState

TERMINAL = GridCell(8, 8)


def _coordinator(
    publisher,
    rng,
    generator: TextGenerator,
    *,
    with_map: bool = True,
    position: GridCell = GridCell(2, 2),
) -> ApproachCoordinator:
    world = WorldState(position=position)
    if with_map:
        world.apply_map(make_map(terminals=[TERMINAL], spawn=tuple(position)))
    return ApproachCoordinator(
        world,
        {},
        publisher,
        generator,
        identity="bot-claude",
        bot_name="Clawd",
        timing=TINY_TIMING,
        rng=rng,
    )


def _request(request_id: str = "req-1", code: Optional[str] = "print('hi')") -> HelpRequestMessage:
    return HelpRequestMessage(
        id=request_id,
        terminalX=TERMINAL.x,
        terminalY=TERMINAL.y,
        senderName="Alice",
        challengeTitle="FizzBuzz",
        challengeDescription="Print numbers",
        code=code,
    )


def _track(coordinator: ApproachCoordinator, session_id: str = "alice") -> TrackedSession:
    session = TrackedSession(
        session_id=session_id,
        display_name=session_id.title(),
        terminal=TERMINAL,
        challenge_title="FizzBuzz",
    )
    coordinator.sessions[session_id] = session
    return session


class FlowRecordingGenerator(ScriptedGenerator):
    """Scripted generator that samples some coordinator state on every call."""

    def __init__(self, observe: Callable[[], Any], replies="scripted reply", **kwargs) -> None:
        super().__init__(replies, **kwargs)
        self.observe = observe
        self.observed: List[Any] = []

    async def generate(self, system_prompt, messages):
        self.observed.append(self.observe())
        return await super().generate(system_prompt, messages)


@pytest.mark.asyncio
async def test_help_request_walks_then_publishes_hint(publisher, rng):
    generator = ScriptedGenerator("Think about modulo.")
    coordinator = _coordinator(publisher, rng, generator)

    task = coordinator.request_help(_request())
    await task

    walk = publisher.decoded(TOPIC_POSITION)[0]
    assert walk["points"][0] == {"x": 64, "y": 64}
    assert walk["points"][-1] == {"x": 8 * 32, "y": 7 * 32}
    # Adjacent cell is the first walkable neighbour in expansion order (up)
    assert coordinator.world.position == GridCell(8, 7)

    hints = publisher.decoded(TOPIC_HELP_RESPONSE)
    assert len(hints) == 1
    assert hints[0]["type"] == "help-response"
    assert hints[0]["requestId"] == "req-1"
    assert hints[0]["hint"] == "Think about modulo."
    assert hints[0]["timestamp"].endswith("Z")

    system_prompt, messages = generator.calls[0]
    assert "Clawd" in system_prompt
    assert 'Challenge: "FizzBuzz"' in messages[0].content
    assert "print('hi')" in messages[0].content

    # Wandering resumes once the flow is done
    assert coordinator.wander is not None
    assert not coordinator.wander.token.cancelled
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_request_cancels_wandering_synchronously(publisher, rng):
    coordinator = _coordinator(publisher, rng, ScriptedGenerator())
    wander = coordinator.restart_wandering()

    task = coordinator.request_help(_request())

    assert wander.token.cancelled
    await task
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_request_marks_tracked_session(publisher, rng):
    coordinator = _coordinator(publisher, rng, ScriptedGenerator())
    session = _track(coordinator)

    task = coordinator.request_help(_request(), "alice")

    assert session.help_request_active
    await task
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_without_map_answers_from_current_position(publisher, rng):
    coordinator = _coordinator(publisher, rng, ScriptedGenerator("hint"), with_map=False)

    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        await coordinator.request_help(_request())

    assert publisher.decoded(TOPIC_POSITION) == []
    assert publisher.decoded(TOPIC_HELP_RESPONSE)[0]["hint"] == "hint"
    assert "[?]" in buffer.getvalue()
    assert "No map data" in buffer.getvalue()
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_when_already_adjacent_skips_walk(publisher, rng):
    release = asyncio.Event()
    generator = ScriptedGenerator(release=release)
    coordinator = _coordinator(publisher, rng, generator, position=GridCell(7, 7))

    task = coordinator.request_help(_request())
    # Wandering restarts once the flow exits, so inspect while it is generating
    await wait_until(lambda: len(generator.calls) == 1)
    await asyncio.sleep(0.01)

    assert publisher.decoded(TOPIC_POSITION) == []
    assert coordinator.world.position == GridCell(7, 7)

    release.set()
    await task
    assert len(publisher.decoded(TOPIC_HELP_RESPONSE)) == 1
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_generation_failure_sends_fallback(publisher, rng):
    coordinator = _coordinator(publisher, rng, FailingGenerator())

    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        await coordinator.request_help(_request())

    assert publisher.decoded(TOPIC_HELP_RESPONSE)[0]["hint"] == HINT_FALLBACK
    assert "[!]" in buffer.getvalue()
    assert coordinator.wander is not None
    await coordinator.close()


@pytest.mark.asyncio
async def test_concurrent_help_requests_run_one_at_a_time(publisher, rng):
    generator = FlowRecordingGenerator(
        lambda: len(publisher.decoded(TOPIC_HELP_RESPONSE)), ["first", "second"]
    )
    coordinator = _coordinator(publisher, rng, generator)

    first = coordinator.request_help(_request("req-1"))
    second = coordinator.request_help(_request("req-2"))
    await asyncio.gather(first, second)

    # The second hint is only generated after the first one went out
    assert generator.observed == [0, 1]
    assert [h["requestId"] for h in publisher.decoded(TOPIC_HELP_RESPONSE)] == ["req-1", "req-2"]
    await coordinator.close()


@pytest.mark.asyncio
async def test_proactive_approach_sends_nudge(publisher, rng):
    generator = ScriptedGenerator("Need a hand with FizzBuzz?")
    coordinator = _coordinator(publisher, rng, generator)
    session = _track(coordinator)

    assert coordinator.offer_proactive(session) is True
    await wait_until(lambda: not coordinator.proactive_active)

    nudges = publisher.decoded(TOPIC_CHAT_RESPONSE)
    assert len(nudges) == 1
    assert nudges[0]["proactive"] is True
    assert nudges[0]["id"].startswith("proactive-alice-")
    assert nudges[0]["senderName"] == "Clawd"
    assert nudges[0]["text"] == "Need a hand with FizzBuzz?"
    assert "messageId" not in nudges[0]
    assert session.proactive_offered
    approach_walk = publisher.decoded(TOPIC_POSITION)[0]
    assert approach_walk["points"][-1] == {"x": 8 * 32, "y": 7 * 32}
    assert "Alice" in generator.calls[0][1][0].content
    await coordinator.close()


@pytest.mark.asyncio
async def test_proactive_offer_cancels_wandering_synchronously(publisher, rng):
    coordinator = _coordinator(publisher, rng, ScriptedGenerator())
    session = _track(coordinator)
    wander = coordinator.restart_wandering()

    assert coordinator.offer_proactive(session) is True
    assert wander.token.cancelled

    await wait_until(lambda: not coordinator.proactive_active)
    # The only walk before the nudge is the approach itself
    walks = publisher.decoded(TOPIC_POSITION)
    assert walks[0]["points"][-1] == {"x": 8 * 32, "y": 7 * 32}
    await coordinator.close()


@pytest.mark.asyncio
async def test_proactive_failure_sends_fallback_nudge(publisher, rng):
    coordinator = _coordinator(publisher, rng, FailingGenerator())
    session = _track(coordinator)

    coordinator.offer_proactive(session)
    await wait_until(lambda: not coordinator.proactive_active)

    assert publisher.decoded(TOPIC_CHAT_RESPONSE)[0]["text"] == NUDGE_FALLBACK
    await coordinator.close()


@pytest.mark.asyncio
async def test_proactive_without_map_marks_session_offered(publisher, rng):
    coordinator = _coordinator(publisher, rng, ScriptedGenerator(), with_map=False)
    session = _track(coordinator)

    coordinator.offer_proactive(session)
    await wait_until(lambda: not coordinator.proactive_active)

    assert session.proactive_offered
    assert publisher.packets == []
    await coordinator.close()


@pytest.mark.asyncio
async def test_offer_refused_while_help_is_pending(publisher, rng):
    release = asyncio.Event()
    coordinator = _coordinator(publisher, rng, ScriptedGenerator(release=release))
    session = _track(coordinator)

    task = coordinator.request_help(_request())

    assert coordinator.gate_is_free is False
    assert coordinator.offer_proactive(session) is False

    release.set()
    await task
    await asyncio.sleep(0.01)
    assert publisher.decoded(TOPIC_CHAT_RESPONSE) == []
    await coordinator.close()


@pytest.mark.asyncio
async def test_second_offer_refused_while_first_is_pending(publisher, rng):
    release = asyncio.Event()
    coordinator = _coordinator(publisher, rng, ScriptedGenerator(release=release))
    alice = _track(coordinator, "alice")
    bob = _track(coordinator, "bob")

    assert coordinator.offer_proactive(alice) is True
    assert coordinator.offer_proactive(bob) is False

    release.set()
    await wait_until(lambda: not coordinator.proactive_active)
    await coordinator.close()


@pytest.mark.asyncio
async def test_help_request_preempts_proactive_approach(publisher, rng):
    release = asyncio.Event()
    coordinator = _coordinator(publisher, rng, ScriptedGenerator())
    coordinator.generator = FlowRecordingGenerator(
        lambda: coordinator.active_flow, "hint", release=release
    )
    session = _track(coordinator)

    coordinator.offer_proactive(session)
    # Hold the proactive flow inside generation
    await wait_until(lambda: coordinator.active_flow == "proactive" and len(coordinator.generator.calls) == 1)

    task = coordinator.request_help(_request())
    release.set()
    await task

    assert coordinator.generator.observed == ["proactive", "help"]
    assert publisher.decoded(TOPIC_CHAT_RESPONSE) == []
    assert publisher.decoded(TOPIC_HELP_RESPONSE)[0]["hint"] == "hint"
    assert not session.proactive_offered
    await coordinator.close()


@pytest.mark.asyncio
async def test_proactive_skipped_when_player_leaves_during_generation(publisher, rng):
    release = asyncio.Event()
    coordinator = _coordinator(publisher, rng, ScriptedGenerator(release=release))
    session = _track(coordinator)

    coordinator.offer_proactive(session)
    await wait_until(lambda: len(coordinator.generator.calls) == 1)

    del coordinator.sessions["alice"]
    release.set()
    await wait_until(lambda: not coordinator.proactive_active)

    assert publisher.decoded(TOPIC_CHAT_RESPONSE) == []
    await coordinator.close()


@pytest.mark.asyncio
async def test_close_stops_flows_and_wandering(publisher, rng):
    release = asyncio.Event()
    coordinator = _coordinator(publisher, rng, ScriptedGenerator(release=release))
    coordinator.restart_wandering()
    task = coordinator.request_help(_request())
    await wait_until(lambda: coordinator.active_flow == "help")

    await asyncio.wait_for(coordinator.close(), timeout=1.0)

    assert task.done()
    assert coordinator.wander.task.done()
    assert publisher.decoded(TOPIC_HELP_RESPONSE) == []
    assert coordinator.restart_wandering() is None
    assert coordinator.gate_is_free is False
