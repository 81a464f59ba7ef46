"""Cooperative cancellation for the bot's behaviors.

Every suspension point in a behavior takes a ``CancellationToken``. Waits
resolve to a boolean (``True`` = ran to completion, ``False`` = cancelled)
instead of raising, so callers branch on the result rather than unwinding
through ``asyncio.CancelledError``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal. Once cancelled, always cancelled."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Signal the token and fire pending wake-ups. Repeat calls are no-ops."""

        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        if self._event is not None:
            self._event.set()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a one-shot wake-up; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """

        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""

        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken({self.name!r}, {state})"


def _settle(waiter: "asyncio.Future[bool]", value: bool) -> None:
    if not waiter.done():
        waiter.set_result(value)


async def cancellable_sleep(seconds: float, token: CancellationToken) -> bool:
    """Sleep for ``seconds`` unless ``token`` fires first.

    Returns ``True`` when the full duration elapsed and ``False`` when the
    token was (or already is) cancelled.
    """

    if token.cancelled:
        return False

    loop = asyncio.get_running_loop()
    waiter: asyncio.Future[bool] = loop.create_future()
    timer = loop.call_later(max(seconds, 0.0), _settle, waiter, True)
    unregister = token.add_callback(lambda: _settle(waiter, False))
    try:
        return await waiter
    finally:
        timer.cancel()
        unregister()


async def run_cancellable(
    awaitable: Awaitable[T],
    token: CancellationToken,
) -> Tuple[bool, Optional[T]]:
    """Await ``awaitable`` unless ``token`` fires first.

    Returns ``(True, result)`` on completion and ``(False, None)`` when
    cancelled. A cancelled run also cancels the underlying task so nothing
    keeps running in the background. Exceptions from ``awaitable`` propagate.
    """

    if token.cancelled:
        if asyncio.isfuture(awaitable):
            awaitable.cancel()
        elif asyncio.iscoroutine(awaitable):
            awaitable.close()
        return False, None

    task = asyncio.ensure_future(awaitable)
    loop = asyncio.get_running_loop()
    waiter: asyncio.Future[bool] = loop.create_future()
    unregister = token.add_callback(lambda: _settle(waiter, False))
    task.add_done_callback(lambda _: _settle(waiter, True))
    try:
        completed = await waiter
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        unregister()

    if not completed:
        task.cancel()
        return False, None
    return True, task.result()
