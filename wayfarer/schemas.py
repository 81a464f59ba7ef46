"""
Pydantic schemas for everything that crosses the data channel.

Inbound models validate the JSON that clients publish (map info, terminal
activity, help requests, chat). Anything that fails validation is dropped by
the session before it can touch world state.

Outbound models describe what the bot publishes. Field names are snake_case in
Python and camelCase on the wire (via aliases) so the client contract stays
unchanged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WireModel(BaseModel):
    """Base for wire payloads: accept both alias and field names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> bytes:
        """Serialize with camelCase keys, omitting unset optionals."""

        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================================================
# Inbound events
# ============================================================================


class MapInfoMessage(WireModel):
    """Map layout published by a client when it loads a map."""

    map_id: str = Field(..., alias="mapId")
    barriers: List[Tuple[int, int]] = Field(default_factory=list)
    terminals: List[Tuple[int, int]] = Field(default_factory=list)
    spawn_point: Tuple[int, int] = Field(..., alias="spawnPoint")
    # Zero or missing sizes fall back to the configured defaults.
    grid_size: Optional[int] = Field(None, alias="gridSize", ge=0)
    cell_size: Optional[int] = Field(None, alias="cellSize", ge=0)


class TerminalActivityMessage(WireModel):
    """A player opened or closed a challenge terminal's editor."""

    action: Literal["open", "close"]
    player_id: Optional[str] = Field(None, alias="playerId")
    player_name: Optional[str] = Field(None, alias="playerName")
    challenge_id: Optional[str] = Field(None, alias="challengeId")
    challenge_title: Optional[str] = Field(None, alias="challengeTitle")
    challenge_description: Optional[str] = Field(None, alias="challengeDescription")
    terminal_x: Optional[int] = Field(None, alias="terminalX")
    terminal_y: Optional[int] = Field(None, alias="terminalY")

    @model_validator(mode="after")
    def _open_needs_terminal(self) -> "TerminalActivityMessage":
        if self.action == "open" and (self.terminal_x is None or self.terminal_y is None):
            raise ValueError("terminal-activity 'open' requires terminalX and terminalY")
        return self


class HelpRequestMessage(WireModel):
    """A player asked the bot for a hint at a specific terminal."""

    request_id: str = Field(..., alias="id", min_length=1)
    terminal_x: int = Field(..., alias="terminalX")
    terminal_y: int = Field(..., alias="terminalY")
    sender_name: Optional[str] = Field(None, alias="senderName")
    challenge_title: Optional[str] = Field(None, alias="challengeTitle")
    challenge_description: Optional[str] = Field(None, alias="challengeDescription")
    code: Optional[str] = None


class ChatMessage(WireModel):
    """A chat line, or a challenge submission when ``challenge_id`` is set."""

    message_id: str = Field(..., alias="id", min_length=1)
    text: str = Field(..., min_length=1)
    sender_name: Optional[str] = Field(None, alias="senderName")
    challenge_id: Optional[str] = Field(None, alias="challengeId")


# ============================================================================
# Outbound payloads
# ============================================================================


class PixelPoint(WireModel):
    x: int
    y: int


class MovementUpdate(WireModel):
    """Full walk for the client to animate; one direction per step."""

    player_id: str = Field(..., alias="playerId")
    points: List[PixelPoint]
    directions: List[str]


class HelpResponse(WireModel):
    type: Literal["help-response"] = "help-response"
    request_id: str = Field(..., alias="requestId")
    hint: str
    timestamp: str = Field(default_factory=utc_timestamp)


class ChatResponse(WireModel):
    type: Literal["chat-response"] = "chat-response"
    id: str
    message_id: Optional[str] = Field(None, alias="messageId")
    text: str
    sender_name: str = Field(..., alias="senderName")
    proactive: Optional[bool] = None
    challenge_id: Optional[str] = Field(None, alias="challengeId")
    challenge_result: Optional[Literal["pass", "fail"]] = Field(None, alias="challengeResult")
    timestamp: str = Field(default_factory=utc_timestamp)


# ============================================================================
# Text generation
# ============================================================================


class ChatTurn(BaseModel):
    """One turn of conversation handed to the text generator."""

    role: Literal["user", "assistant"]
    content: str


__all__ = [
    "WireModel",
    "utc_timestamp",
    "MapInfoMessage",
    "TerminalActivityMessage",
    "HelpRequestMessage",
    "ChatMessage",
    "PixelPoint",
    "MovementUpdate",
    "HelpResponse",
    "ChatResponse",
    "ChatTurn",
]
