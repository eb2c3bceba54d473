"""Single-producer, single-consumer row channel between the bridge task and the caller."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from rowbridge.cancel import CancelToken
from rowbridge.errors import Cancelled
from rowbridge.types import Record

logger = logging.getLogger(__name__)


class RowChannel:
    """
    Bounded channel of output rows. The producer sends rows and closes exactly once;
    the consumer iterates with ``async for`` until close. Rows queued before close are
    still delivered. Data rows are dropped once the token fires; the terminal row is
    still delivered unless the consumer detached with aclose(), which also cancels the
    invocation.
    """

    def __init__(self, cancel: CancelToken, *, capacity: int = 16) -> None:
        self._queue: asyncio.Queue[Record] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self._cancel = cancel
        self._detached = CancelToken()
        self._task: asyncio.Task[Any] | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    def attach(self, task: asyncio.Task[Any]) -> None:
        """Keep a reference to the producer task so it is not garbage collected."""
        self._task = task

    async def send(self, row: Record, *, terminal: bool = False) -> bool:
        """
        Queue one row. Returns False (row dropped) if the consumer detached, or, for
        data rows, if the invocation was cancelled. A terminal row only waits on the consumer.
        """
        if self._closed.is_set():
            raise RuntimeError("send on closed channel")
        guard = self._detached if terminal else self._cancel
        if guard.cancelled:
            return False
        try:
            await guard.run(self._queue.put(row))
        except Cancelled:
            return False
        return True

    def close(self) -> None:
        if self._closed.is_set():
            raise RuntimeError("channel already closed")
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def aclose(self) -> None:
        """Consumer side: stop the invocation, drop anything not yet read, wait for close."""
        self._detached.cancel()
        self._cancel.cancel()
        await self._closed.wait()

    def __aiter__(self) -> RowChannel:
        return self

    async def __anext__(self) -> Record:
        while True:
            if self._detached.cancelled:
                raise StopAsyncIteration
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._closed.is_set():
                raise StopAsyncIteration
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()
