"""
Offline Room - the tutor bot without a real-time server
========================================================

WHAT THIS SHOWS:
- A BotSession fed scripted data-channel packets
- Wandering, a help request, a stuck player and a chat message
- Everything the bot publishes, decoded from an in-memory publisher

Runs without an API key by default. Pass --llm to use the configured provider.

RUN:
    python -m examples.offline_room.run
    python -m examples.offline_room.run --llm --seed 3
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
from typing import Sequence

from wayfarer import BehaviorTiming, BotSession, Config, InMemoryPublisher, LLMTextGenerator
from wayfarer.llm_utils import TextGenerator
from wayfarer.schemas import ChatTurn
from wayfarer.transport import (
    TOPIC_CHAT,
    TOPIC_HELP_REQUEST,
    TOPIC_MAP_INFO,
    TOPIC_TERMINAL_ACTIVITY,
)


class CannedGenerator(TextGenerator):
    """Deterministic stand-in so the demo runs offline."""

    async def generate(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        await asyncio.sleep(0.3)  # pretend to think
        last = messages[-1].content.splitlines()[0]
        return f"(canned reply to: {last[:40]})"


# Walls around a small room with two terminals on the north wall
ROOM_SIZE = 16
TERMINALS = [[4, 1], [11, 1]]
BARRIERS = (
    [[x, 0] for x in range(ROOM_SIZE)]
    + [[x, ROOM_SIZE - 1] for x in range(ROOM_SIZE)]
    + [[0, y] for y in range(ROOM_SIZE)]
    + [[ROOM_SIZE - 1, y] for y in range(ROOM_SIZE)]
    + TERMINALS
)


def packet(data: dict) -> bytes:
    return json.dumps(data).encode("utf-8")


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Offline tutor bot room")
    parser.add_argument("--llm", action="store_true", help="Use the configured LLM provider")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible wandering")
    parser.add_argument("--seconds", type=float, default=6.0, help="How long to let the room run")
    return parser.parse_args()


async def run_room(*, use_llm: bool, seed: int | None, seconds: float) -> InMemoryPublisher:
    if use_llm:
        Config.validate()
        generator: TextGenerator = LLMTextGenerator()
    else:
        generator = CannedGenerator()

    # Fast timings so every behavior shows up within a few seconds
    timing = BehaviorTiming(
        step_duration=0.05,
        min_pause=0.2,
        max_pause=0.5,
        linger=0.5,
        stuck_threshold=2.0,
        stuck_scan_interval=0.5,
        max_path_length=6,
    )
    publisher = InMemoryPublisher()
    session = BotSession(
        publisher,
        generator,
        timing=timing,
        rng=random.Random(seed) if seed is not None else None,
    )

    await session.start()
    session.handle_data(
        TOPIC_MAP_INFO,
        packet(
            {
                "mapId": "offline-room",
                "barriers": BARRIERS,
                "terminals": TERMINALS,
                "spawnPoint": [8, 8],
                "gridSize": ROOM_SIZE,
                "cellSize": 32,
            }
        ),
        participant_identity="alice",
    )
    await asyncio.sleep(1.0)

    # Bob opens a terminal and never asks; stuck detection notices him later
    session.handle_data(
        TOPIC_TERMINAL_ACTIVITY,
        packet(
            {
                "action": "open",
                "playerId": "bob",
                "playerName": "Bob",
                "challengeId": "reverse-string",
                "challengeTitle": "Reverse a String",
                "terminalX": 11,
                "terminalY": 1,
            }
        ),
        participant_identity="bob",
    )

    session.handle_data(
        TOPIC_HELP_REQUEST,
        packet(
            {
                "id": "help-1",
                "senderName": "Alice",
                "terminalX": 4,
                "terminalY": 1,
                "challengeTitle": "FizzBuzz",
                "challengeDescription": "Print 1..100 with Fizz/Buzz substitutions",
                "code": "for i in range(100):\n    print(i)",
            }
        ),
        participant_identity="alice",
    )
    session.handle_data(
        TOPIC_CHAT,
        packet({"id": "chat-1", "senderName": "Carol", "text": "What's a list comprehension?"}),
        participant_identity="carol",
    )
    # Dropped with a warning: not valid JSON
    session.handle_data(TOPIC_CHAT, b"{oops", participant_identity="carol")

    await asyncio.sleep(seconds)
    await session.stop()
    return publisher


async def main(args: argparse.Namespace) -> None:
    """Main entry point."""
    publisher = await run_room(use_llm=args.llm, seed=args.seed, seconds=args.seconds)

    print(f"\n{'='*80}")
    print(f"Published {len(publisher.packets)} packets")
    print(f"{'='*80}")
    for item in publisher.packets:
        payload = item.decode()
        if item.topic == "position":
            summary = f"{len(payload['directions'])} steps -> {payload['points'][-1]}"
        else:
            summary = payload.get("hint") or payload.get("text")
        print(f"  [{item.topic}] {summary}")


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
