"""Periodic detection of players who look stuck at a terminal."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from ..cancellation import CancellationToken, cancellable_sleep
from ..config import BehaviorTiming
from ..logging_utils import log_error, log_info
from ..world import SessionTable, TrackedSession

# Invoked with the stuck session; returns True if an approach actually started.
ApproachCallback = Callable[[TrackedSession], bool]
GateProbe = Callable[[], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def find_stuck_session(
    sessions: SessionTable,
    now: datetime,
    threshold_seconds: float,
) -> Optional[TrackedSession]:
    """Return the first session open longer than the threshold and not yet helped."""

    for session in sessions.values():
        if session.proactive_offered or session.help_request_active:
            continue
        if session.elapsed_seconds(now) > threshold_seconds:
            return session
    return None


class StuckDetectionTask:
    """Scans tracked sessions every ``stuck_scan_interval`` seconds.

    At most one approach attempt per scan, and only while the approach gate is
    free. The callback is expected to return immediately (it spawns the flow);
    the scan never waits for an approach to finish.
    """

    def __init__(
        self,
        sessions: SessionTable,
        on_stuck: ApproachCallback,
        *,
        gate_is_free: GateProbe,
        timing: BehaviorTiming,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.sessions = sessions
        self.on_stuck = on_stuck
        self.gate_is_free = gate_is_free
        self.timing = timing
        self.clock = clock
        self.token = CancellationToken("stuck-detection")
        self.scans = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> "StuckDetectionTask":
        self._task = asyncio.create_task(self.run(), name="stuck-detection")
        return self

    def cancel(self) -> None:
        self.token.cancel()

    def scan_once(self) -> Optional[TrackedSession]:
        """Run one scan; return the session an approach was started for, if any."""

        self.scans += 1
        if not self.gate_is_free():
            return None
        session = find_stuck_session(self.sessions, self.clock(), self.timing.stuck_threshold)
        if session is None:
            return None
        log_info(
            f"[Stuck] {session.display_name} has been at terminal "
            f"({session.terminal.x},{session.terminal.y}) for "
            f"{session.elapsed_seconds(self.clock()):.0f}s"
        )
        if self.on_stuck(session):
            return session
        return None

    async def run(self) -> None:
        log_info("[Stuck] Stuck detection started")
        try:
            while await cancellable_sleep(self.timing.stuck_scan_interval, self.token):
                try:
                    self.scan_once()
                except Exception as exc:
                    log_error(f"[Stuck] Scan failed: {exc!r}")
        finally:
            log_info("[Stuck] Stuck detection stopped")
