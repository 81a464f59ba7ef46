import json

import pytest
from pydantic import ValidationError

from wayfarer.schemas import (
    ChatMessage,
    ChatResponse,
    HelpRequestMessage,
    MapInfoMessage,
    MovementUpdate,
    PixelPoint,
    TerminalActivityMessage,
)


def test_map_info_reads_camel_case():
    message = MapInfoMessage.model_validate(
        {
            "mapId": "lobby",
            "barriers": [[1, 2], [3, 4]],
            "terminals": [[3, 4]],
            "spawnPoint": [5, 6],
            "gridSize": 40,
        }
    )

    assert message.map_id == "lobby"
    assert message.barriers == [(1, 2), (3, 4)]
    assert message.spawn_point == (5, 6)
    assert message.grid_size == 40
    assert message.cell_size is None


def test_map_info_requires_spawn_point():
    with pytest.raises(ValidationError):
        MapInfoMessage.model_validate({"mapId": "lobby", "barriers": []})


def test_terminal_open_requires_coordinates():
    with pytest.raises(ValidationError):
        TerminalActivityMessage.model_validate({"action": "open", "playerId": "alice"})

    closed = TerminalActivityMessage.model_validate({"action": "close", "playerId": "alice"})
    assert closed.terminal_x is None


def test_terminal_rejects_unknown_action():
    with pytest.raises(ValidationError):
        TerminalActivityMessage.model_validate({"action": "toggle", "terminalX": 1, "terminalY": 1})


def test_help_request_requires_id_and_terminal():
    with pytest.raises(ValidationError):
        HelpRequestMessage.model_validate({"id": "", "terminalX": 1, "terminalY": 1})
    with pytest.raises(ValidationError):
        HelpRequestMessage.model_validate({"id": "r1", "terminalX": 1})


def test_chat_message_rejects_empty_text():
    with pytest.raises(ValidationError):
        ChatMessage.model_validate({"id": "m1", "text": ""})


def test_chat_response_wire_format_omits_unset_fields():
    payload = json.loads(
        ChatResponse(id="m1-response", message_id="m1", text="hi", sender_name="Clawd").to_wire()
    )

    assert payload["type"] == "chat-response"
    assert payload["messageId"] == "m1"
    assert payload["senderName"] == "Clawd"
    assert payload["timestamp"].endswith("Z")
    assert "proactive" not in payload
    assert "challengeResult" not in payload


def test_movement_update_wire_format():
    update = MovementUpdate(
        player_id="bot-claude",
        points=[PixelPoint(x=0, y=0), PixelPoint(x=32, y=0)],
        directions=["right"],
    )

    assert json.loads(update.to_wire()) == {
        "playerId": "bot-claude",
        "points": [{"x": 0, "y": 0}, {"x": 32, "y": 0}],
        "directions": ["right"],
    }


def test_map_info_rejects_negative_sizes():
    base = {"mapId": "lobby", "spawnPoint": [1, 1]}

    with pytest.raises(ValidationError):
        MapInfoMessage.model_validate({**base, "gridSize": -5})
    with pytest.raises(ValidationError):
        MapInfoMessage.model_validate({**base, "cellSize": -1})
    assert MapInfoMessage.model_validate({**base, "gridSize": 0}).grid_size == 0
