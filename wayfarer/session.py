"""
Per-room bot session.

``BotSession`` is the context object that owns everything one room needs:
world state, the tracked-session table, the approach coordinator (and through
it the wander slot), stuck detection and the chat responder. A transport
adapter creates one per room, calls ``start()``, feeds every inbound packet to
``handle_data`` and calls ``stop()`` when the room goes away.

Usage pattern:
    session = BotSession(publisher, LLMTextGenerator())
    await session.start()
    session.handle_data("map-info", payload_bytes, participant_identity="alice")
    ...
    await session.stop()
"""

from __future__ import annotations

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from pydantic import ValidationError

from .behaviors import ApproachCoordinator, StuckDetectionTask
from .chat import ChatResponder
from .config import BehaviorTiming, Config
from .environment import GridCell
from .llm_utils import TextGenerator
from .logging_utils import log_error, log_info, log_success, log_warning
from .prompts import PromptLibrary
from .schemas import (
    ChatMessage,
    HelpRequestMessage,
    MapInfoMessage,
    MovementUpdate,
    PixelPoint,
    TerminalActivityMessage,
)
from .transport import (
    TOPIC_CHAT,
    TOPIC_HELP_REQUEST,
    TOPIC_MAP_INFO,
    TOPIC_POSITION,
    TOPIC_TERMINAL_ACTIVITY,
    Publisher,
    publish_payload,
)
from .world import MapInfo, SessionTable, TrackedSession, WorldState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BotSession:
    """Everything the bot knows and does in one room."""

    def __init__(
        self,
        publisher: Publisher,
        generator: TextGenerator,
        *,
        timing: Optional[BehaviorTiming] = None,
        identity: Optional[str] = None,
        bot_name: Optional[str] = None,
        default_grid_size: Optional[int] = None,
        default_cell_size: Optional[int] = None,
        default_spawn: Optional[GridCell] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
        prompts: Optional[PromptLibrary] = None,
    ) -> None:
        self.publisher = publisher
        self.timing = timing or BehaviorTiming.from_config()
        self.identity = identity or Config.BOT_IDENTITY
        self.bot_name = bot_name or Config.BOT_DISPLAY_NAME
        self.default_grid_size = default_grid_size or Config.DEFAULT_GRID_SIZE
        self.default_cell_size = default_cell_size or Config.DEFAULT_CELL_SIZE
        self.clock = clock

        spawn = default_spawn or GridCell(Config.DEFAULT_SPAWN_X, Config.DEFAULT_SPAWN_Y)
        self.world = WorldState(position=spawn)
        self.sessions: SessionTable = {}

        self.coordinator = ApproachCoordinator(
            self.world,
            self.sessions,
            publisher,
            generator,
            identity=self.identity,
            bot_name=self.bot_name,
            timing=self.timing,
            rng=rng,
            prompts=prompts,
        )
        self.chat = ChatResponder(publisher, generator, bot_name=self.bot_name, prompts=prompts)
        self.stuck_detection = StuckDetectionTask(
            self.sessions,
            self.coordinator.offer_proactive,
            gate_is_free=lambda: self.coordinator.gate_is_free,
            timing=self.timing,
            clock=clock,
        )

        self._tasks: Set[asyncio.Task] = set()
        self._handlers: Dict[str, Callable[[Dict[str, Any], Optional[str]], None]] = {
            TOPIC_MAP_INFO: self._on_map_info,
            TOPIC_TERMINAL_ACTIVITY: self._on_terminal_activity,
            TOPIC_HELP_REQUEST: self._on_help_request,
            TOPIC_CHAT: self._on_chat,
        }
        self.started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Publish the initial position and start wandering and stuck detection."""

        if self.started:
            return
        self.started = True
        try:
            await self.publish_position()
        except Exception as exc:
            log_error(f"[Position] Failed to publish initial position: {exc}")
        # Waits for map-info internally
        self.coordinator.restart_wandering()
        self.stuck_detection.start()
        log_success("[Session] Ready and listening")

    async def stop(self) -> None:
        """Cancel every behavior and wait for all of them to finish."""

        log_info("[Session] Stopping")
        self.stuck_detection.cancel()
        await self.coordinator.close()

        pending = list(self._tasks)
        if self.stuck_detection.task is not None:
            pending.append(self.stuck_detection.task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def publish_position(self) -> None:
        """Publish the current position as a single-point movement update."""

        cell_size = self.world.map.cell_size if self.world.map else self.default_cell_size
        position = self.world.position
        update = MovementUpdate(
            player_id=self.identity,
            points=[PixelPoint(x=position.x * cell_size, y=position.y * cell_size)],
            directions=["none"],
        )
        await publish_payload(self.publisher, TOPIC_POSITION, update, reliable=False)
        log_info(
            f"[Position] Published: grid({position.x},{position.y}) -> "
            f"pixel({position.x * cell_size},{position.y * cell_size})"
        )

    def _spawn(self, coro: Awaitable[None], scope: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                log_error(f"[{scope}] Background task failed: {finished.exception()!r}")

        task.add_done_callback(_done)
        return task

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def handle_data(
        self,
        topic: Optional[str],
        payload: bytes,
        participant_identity: Optional[str] = None,
    ) -> None:
        """Dispatch one inbound data packet. Never raises for bad payloads."""

        if participant_identity == self.identity:
            return

        handler = self._handlers.get(topic or "")
        if handler is None:
            return

        try:
            message = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            log_warning(f"[Session] Dropping unparsable '{topic}' payload: {exc}")
            return
        if not isinstance(message, dict):
            log_warning(f"[Session] Dropping non-object '{topic}' payload")
            return

        try:
            handler(message, participant_identity)
        except ValidationError as exc:
            log_warning(
                f"[Session] Dropping malformed '{topic}' payload: "
                f"{exc.error_count()} validation error(s)"
            )

    def on_participant_disconnected(self, identity: str) -> None:
        log_info(f"[Session] Participant left: {identity}")
        self.sessions.pop(identity, None)

    def _on_map_info(self, message: Dict[str, Any], participant_identity: Optional[str]) -> None:
        parsed = MapInfoMessage.model_validate(message)
        map_info = MapInfo.from_message(
            parsed,
            default_grid_size=self.default_grid_size,
            default_cell_size=self.default_cell_size,
        )
        self.world.apply_map(map_info)
        log_info(
            f"[Map] Received map-info: {map_info.map_id} ({len(map_info.barriers)} barriers, "
            f"{len(map_info.terminals)} terminals, spawn: "
            f"{map_info.spawn_point.x},{map_info.spawn_point.y})"
        )

        async def _republish() -> None:
            try:
                await self.publish_position()
            except Exception as exc:
                log_error(f"[Position] Failed to publish: {exc}")

        self._spawn(_republish(), "Position")

    def _on_terminal_activity(
        self,
        message: Dict[str, Any],
        participant_identity: Optional[str],
    ) -> None:
        parsed = TerminalActivityMessage.model_validate(message)
        # Participant identity is canonical so disconnect cleanup matches
        identity = participant_identity or parsed.player_id
        if not identity:
            log_warning("[Terminal] Dropping terminal-activity without a player identity")
            return

        if parsed.action == "open":
            self.sessions[identity] = TrackedSession(
                session_id=identity,
                display_name=parsed.player_name or "Unknown",
                terminal=GridCell(parsed.terminal_x, parsed.terminal_y),
                challenge_id=parsed.challenge_id,
                challenge_title=parsed.challenge_title,
                challenge_description=parsed.challenge_description,
                opened_at=self.clock(),
            )
            log_info(
                f'[Terminal] {parsed.player_name or identity} opened editor for '
                f'"{parsed.challenge_title}" at ({parsed.terminal_x},{parsed.terminal_y})'
            )
        else:
            self.sessions.pop(identity, None)
            log_info(f"[Terminal] {identity} closed editor")

    def _on_help_request(
        self,
        message: Dict[str, Any],
        participant_identity: Optional[str],
    ) -> None:
        parsed = HelpRequestMessage.model_validate(message)
        self.coordinator.request_help(parsed, participant_identity)

    def _on_chat(self, message: Dict[str, Any], participant_identity: Optional[str]) -> None:
        parsed = ChatMessage.model_validate(message)
        sender_name = parsed.sender_name or participant_identity or "Unknown"
        self._spawn(self.chat.handle(parsed, sender_name), "Chat")
