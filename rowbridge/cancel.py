"""Cancellation token threaded through every suspension point of one invocation."""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from rowbridge.errors import Cancelled

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal. cancel() is idempotent; run() races an awaitable against it."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._event.set()

    def cancel_after(self, delay: float) -> None:
        """Fire the token after delay seconds (deadline). Must be called from a running loop."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(delay, self.cancel)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled()

    async def run(self, aw: Awaitable[T]) -> T:
        """Await aw unless the token fires first; then aw is cancelled and Cancelled is raised."""
        task = asyncio.ensure_future(aw)
        if self.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise Cancelled()
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        if task.done():
            waiter.cancel()
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise Cancelled()
