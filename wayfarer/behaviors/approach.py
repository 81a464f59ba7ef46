"""Walking over to players: help requests and proactive check-ins.

The coordinator is the only thing that starts or stops wandering, and it
guarantees that wandering and approach flows never overlap:

- Entering a flow cancels the current wander token synchronously, before the
  flow's first ``await``.
- Leaving a flow, however it ends, starts a fresh ``WanderTask``.
- An ``asyncio.Lock`` (the approach gate) admits one flow at a time. Help
  requests queue on it; proactive approaches only ever try it and give up if
  it is taken.
- A help request cancels an in-flight proactive approach. A proactive
  approach never preempts a help request.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Awaitable, Optional, Set

from ..cancellation import CancellationToken, cancellable_sleep, run_cancellable
from ..config import BehaviorTiming
from ..environment import GridCell, chebyshev, find_adjacent_cell, find_path, plan_walk
from ..llm_utils import TextGenerator, generate_or_fallback
from ..logging_utils import log_deterministic, log_error, log_info, log_success, log_warning
from ..prompts import (
    DEFAULT_PROMPTS,
    HINT_FALLBACK,
    NUDGE_FALLBACK,
    PromptLibrary,
    code_section,
    render_prompt,
)
from ..schemas import ChatResponse, ChatTurn, HelpRequestMessage, HelpResponse
from ..transport import TOPIC_CHAT_RESPONSE, TOPIC_HELP_RESPONSE, Publisher, publish_payload
from ..world import MapInfo, SessionTable, TrackedSession, WorldState
from .wander import WanderTask, publish_walk


class ApproachCoordinator:
    """Owns the wander slot, the approach gate and every approach flow."""

    def __init__(
        self,
        world: WorldState,
        sessions: SessionTable,
        publisher: Publisher,
        generator: TextGenerator,
        *,
        identity: str,
        bot_name: str,
        timing: BehaviorTiming,
        rng: Optional[random.Random] = None,
        prompts: Optional[PromptLibrary] = None,
    ) -> None:
        self.world = world
        self.sessions = sessions
        self.publisher = publisher
        self.generator = generator
        self.identity = identity
        self.bot_name = bot_name
        self.timing = timing
        self.rng = rng or random.Random()
        self.prompts = prompts or DEFAULT_PROMPTS

        # The single slot holding "the" wander task. Replaced synchronously.
        self.wander: Optional[WanderTask] = None

        self._gate = asyncio.Lock()
        self._proactive_token: Optional[CancellationToken] = None
        self._flow_tokens: Set[CancellationToken] = set()
        self._pending_help = 0
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        # "help", "proactive" or None while the gate is held
        self.active_flow: Optional[str] = None

    # ------------------------------------------------------------------
    # Wander slot
    # ------------------------------------------------------------------

    def cancel_wandering(self) -> None:
        if self.wander is not None:
            self.wander.cancel()

    def restart_wandering(self) -> Optional[WanderTask]:
        """Cancel the current wander task and start a fresh one.

        Does nothing once the coordinator is closed.
        """

        self.cancel_wandering()
        if self._closed:
            return None
        self.wander = WanderTask(
            self.world,
            self.publisher,
            identity=self.identity,
            timing=self.timing,
            rng=self.rng,
        ).start()
        return self.wander

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def gate_is_free(self) -> bool:
        """True when no flow runs, none is queued and no approach is pending."""

        return (
            not self._closed
            and not self._gate.locked()
            and self._pending_help == 0
            and self._proactive_token is None
        )

    @property
    def proactive_active(self) -> bool:
        return self._proactive_token is not None

    def _spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Help requests
    # ------------------------------------------------------------------

    def request_help(
        self,
        request: HelpRequestMessage,
        requester_id: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Start a help-request flow. Synchronous up to spawning the flow task.

        Marks the requester's tracked session so stuck detection leaves it
        alone, cancels any proactive approach and cancels wandering before
        returning, so nothing else moves the bot in the meantime.
        """

        if self._closed:
            return None

        log_info(
            f"[Help] Request {request.request_id} from {request.sender_name or 'Unknown'} "
            f"for terminal at ({request.terminal_x},{request.terminal_y})"
        )

        tracked = self.sessions.get(requester_id) if requester_id else None
        if tracked is not None:
            tracked.help_request_active = True

        if self._proactive_token is not None:
            log_info("[Help] Aborting proactive approach for incoming help request")
            self._proactive_token.cancel()

        self.cancel_wandering()

        token = CancellationToken(f"help:{request.request_id}")
        self._flow_tokens.add(token)
        self._pending_help += 1
        return self._spawn(self._help_flow(request, token), f"help:{request.request_id}")

    async def _help_flow(self, request: HelpRequestMessage, token: CancellationToken) -> None:
        try:
            async with self._gate:
                self.active_flow = "help"
                try:
                    await self._run_help(request, token)
                except Exception as exc:
                    log_error(f"[Help] Error handling help request {request.request_id}: {exc!r}")
                finally:
                    self.active_flow = None
        finally:
            self._pending_help -= 1
            self._flow_tokens.discard(token)
        # Released the gate first: a queued help request resumes before the
        # new wander task takes its first step, and cancels it.
        self.restart_wandering()

    async def _run_help(self, request: HelpRequestMessage, token: CancellationToken) -> None:
        # A previous flow may have restarted wandering while we were queued.
        self.cancel_wandering()

        rendered = render_prompt(
            self.prompts.get("help_hint"),
            bot_name=self.bot_name,
            challenge_title=request.challenge_title or "",
            challenge_description=request.challenge_description or "",
            code_section=code_section(request.code),
        )
        map_info = self.world.map
        target = GridCell(request.terminal_x, request.terminal_y)
        target_cell = (
            find_adjacent_cell(target, map_info.barriers, map_info.grid_size)
            if map_info is not None
            else None
        )

        # Generation is slow; run it while walking.
        hint_task = asyncio.ensure_future(
            generate_or_fallback(
                self.generator,
                system_prompt=rendered.system,
                messages=[ChatTurn(role="user", content=rendered.user)],
                fallback=HINT_FALLBACK,
                scope="Help",
            )
        )
        try:
            if map_info is None:
                log_warning("[Help] No map data available, sending hint from current position")
            elif target_cell is None:
                log_warning(
                    "[Help] No walkable cell adjacent to terminal, sending hint from current position"
                )
            elif chebyshev(self.world.position, target) <= 1:
                log_info("[Help] Already adjacent to terminal, skipping walk")
            elif not await self._walk_to(target_cell, map_info, token, scope="Help"):
                log_info(f"[Help] Walk for {request.request_id} cancelled")
                return

            completed, hint = await run_cancellable(hint_task, token)
            if not completed:
                log_info(f"[Help] Request {request.request_id} cancelled while generating")
                return
        finally:
            if not hint_task.done():
                hint_task.cancel()

        await self._publish_hint(request, hint)

        if map_info is None:
            # Nothing to stand next to; go straight back to wandering
            return

        # Linger near the terminal before wandering off again
        await cancellable_sleep(self.timing.linger, token)

    async def _publish_hint(self, request: HelpRequestMessage, hint: str) -> None:
        payload = HelpResponse(request_id=request.request_id, hint=hint)
        try:
            await publish_payload(self.publisher, TOPIC_HELP_RESPONSE, payload, reliable=True)
        except Exception as exc:
            log_error(f"[Help] Failed to publish hint for {request.request_id}: {exc}")
            return
        log_success(f'[Help] Sent hint for {request.request_id}: "{hint[:60]}..."')

    # ------------------------------------------------------------------
    # Proactive approaches
    # ------------------------------------------------------------------

    def offer_proactive(self, session: TrackedSession) -> bool:
        """Start a proactive approach to ``session`` if nothing else is running.

        Returns False without side effects when the gate is taken, a help
        request is queued or another proactive approach is pending. On
        success wandering is cancelled before this returns.
        """

        if not self.gate_is_free:
            return False

        token = CancellationToken(f"proactive:{session.session_id}")
        self._proactive_token = token
        self._flow_tokens.add(token)
        self.cancel_wandering()
        self._spawn(self._proactive_flow(session, token), f"proactive:{session.session_id}")
        return True

    async def _proactive_flow(self, session: TrackedSession, token: CancellationToken) -> None:
        entered = False
        try:
            # A help request may have arrived between the offer and this task
            # starting. In that case it already owns (or is queued on) the gate.
            if token.cancelled or self._gate.locked() or self._pending_help:
                log_info("[Proactive] Preempted before starting, skipping approach")
                return

            async with self._gate:
                entered = True
                self.active_flow = "proactive"
                try:
                    await self._run_proactive(session, token)
                except Exception as exc:
                    log_error(f"[Proactive] Error approaching {session.display_name}: {exc!r}")
                finally:
                    self.active_flow = None
        finally:
            if self._proactive_token is token:
                self._proactive_token = None
            self._flow_tokens.discard(token)

        if entered:
            self.restart_wandering()

    def _still_wanted(self, session: TrackedSession, token: CancellationToken) -> bool:
        return not token.cancelled and session.session_id in self.sessions

    async def _run_proactive(self, session: TrackedSession, token: CancellationToken) -> None:
        self.cancel_wandering()

        log_info(
            f"[Proactive] Approaching {session.display_name} at terminal "
            f"({session.terminal.x},{session.terminal.y})"
        )

        map_info = self.world.map
        if map_info is None:
            log_warning("[Proactive] No map data, skipping approach")
            session.proactive_offered = True
            return

        target_cell = find_adjacent_cell(session.terminal, map_info.barriers, map_info.grid_size)
        if (
            target_cell is not None
            and not token.cancelled
            and chebyshev(self.world.position, session.terminal) > 1
        ):
            if not await self._walk_to(target_cell, map_info, token, scope="Proactive"):
                log_info("[Proactive] Walk aborted")
                return

        if not self._still_wanted(session, token):
            log_info("[Proactive] Player left terminal or approach aborted, skipping nudge")
            return

        rendered = render_prompt(
            self.prompts.get("proactive_nudge"),
            bot_name=self.bot_name,
            player_name=session.display_name,
            challenge_title=session.challenge_title or "",
        )
        completed, nudge = await run_cancellable(
            generate_or_fallback(
                self.generator,
                system_prompt=rendered.system,
                messages=[ChatTurn(role="user", content=rendered.user)],
                fallback=NUDGE_FALLBACK,
                scope="Proactive",
            ),
            token,
        )
        # Generation can take seconds; the player may have left or a help
        # request may have arrived in the meantime.
        if not completed or not self._still_wanted(session, token):
            log_info("[Proactive] Aborted during generation, skipping nudge")
            return

        payload = ChatResponse(
            id=f"proactive-{session.session_id}-{int(time.time() * 1000)}",
            text=nudge,
            sender_name=self.bot_name,
            proactive=True,
        )
        try:
            await publish_payload(self.publisher, TOPIC_CHAT_RESPONSE, payload, reliable=True)
            log_success(f'[Proactive] Sent nudge to {session.display_name}: "{nudge[:60]}..."')
        except Exception as exc:
            log_error(f"[Proactive] Failed to send nudge: {exc}")

        session.proactive_offered = True

        await cancellable_sleep(self.timing.linger, token)

    # ------------------------------------------------------------------
    # Shared walking
    # ------------------------------------------------------------------

    async def _walk_to(
        self,
        target_cell: GridCell,
        map_info: MapInfo,
        token: CancellationToken,
        *,
        scope: str,
    ) -> bool:
        """Walk to ``target_cell``; False if ``token`` fired before arrival.

        An unreachable target is not an error: the bot stays put and the flow
        continues from where it stands.
        """

        start = self.world.position
        path = find_path(start, target_cell, map_info.barriers, map_info.grid_size)
        if len(path) < 2:
            log_warning(f"[{scope}] No path to ({target_cell.x},{target_cell.y}), staying put")
            return True

        plan = plan_walk(path, map_info.cell_size)
        log_deterministic(
            f"[{scope}] Walking to terminal: ({start.x},{start.y}) -> "
            f"({target_cell.x},{target_cell.y}) ({plan.steps} steps)"
        )

        try:
            await publish_walk(self.publisher, self.identity, plan.points, plan.directions)
        except Exception as exc:
            log_error(f"[{scope}] Failed to publish path: {exc}")

        if not await cancellable_sleep(plan.duration(self.timing.step_duration), token):
            return False

        if self.world.map is map_info:
            self.world.commit_position(plan.destination)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop wandering and every flow, then wait for them to finish."""

        self._closed = True
        self.cancel_wandering()
        for token in list(self._flow_tokens):
            token.cancel()

        pending = list(self._tasks)
        if self.wander is not None and self.wander.task is not None:
            pending.append(self.wander.task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
