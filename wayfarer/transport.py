"""
Publisher interface for the real-time data channel.

The bot never owns a connection. Whatever hosts it (a room agent worker, a
websocket bridge, a test) injects a ``Publisher`` and feeds inbound packets to
``BotSession.handle_data``. Two implementations ship here:

1. ``Publisher`` - abstract interface every transport adapter implements
2. ``InMemoryPublisher`` - records packets in a list (tests, offline demos)

Usage pattern:
    publisher = InMemoryPublisher()
    await publish_payload(publisher, TOPIC_POSITION, update, reliable=False)
    publisher.decoded(TOPIC_POSITION)  # -> [{"playerId": ..., "points": [...]}]
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .schemas import WireModel

# Inbound topics
TOPIC_MAP_INFO = "map-info"
TOPIC_TERMINAL_ACTIVITY = "terminal-activity"
TOPIC_HELP_REQUEST = "help-request"
TOPIC_CHAT = "chat"

# Outbound topics
TOPIC_POSITION = "position"
TOPIC_CHAT_RESPONSE = "chat-response"
TOPIC_HELP_RESPONSE = "help-response"


class Publisher(ABC):
    """Abstract sink for outbound data-channel packets.

    ``publish`` may suspend and may raise; callers treat failures as transient
    and decide for themselves whether to retry.
    """

    @abstractmethod
    async def publish(self, topic: str, data: bytes, *, reliable: bool) -> None:
        """Send ``data`` on ``topic``.

        Args:
            topic: Data-channel topic name
            data: UTF-8 encoded JSON payload
            reliable: Whether the transport should guarantee delivery.
                Movement updates are sent unreliably; responses reliably.
        """


@dataclass
class PublishedPacket:
    topic: str
    data: bytes
    reliable: bool

    def decode(self) -> Dict[str, Any]:
        return json.loads(self.data.decode("utf-8"))


class InMemoryPublisher(Publisher):
    """Publisher that keeps every packet in memory.

    Set ``fail_next`` to make the next N publishes raise ``ConnectionError``,
    which is how tests exercise the transient-failure paths.
    """

    def __init__(self) -> None:
        self.packets: List[PublishedPacket] = []
        self.fail_next = 0

    async def publish(self, topic: str, data: bytes, *, reliable: bool) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ConnectionError(f"simulated publish failure on '{topic}'")
        self.packets.append(PublishedPacket(topic=topic, data=data, reliable=reliable))

    def decoded(self, topic: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return decoded payloads, optionally filtered by topic."""

        return [p.decode() for p in self.packets if topic is None or p.topic == topic]


async def publish_payload(
    publisher: Publisher,
    topic: str,
    payload: WireModel,
    *,
    reliable: bool,
) -> None:
    """Serialize a wire model with camelCase keys and publish it."""

    await publisher.publish(topic, payload.to_wire(), reliable=reliable)
