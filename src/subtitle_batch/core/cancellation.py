"""Cooperative per-task cancellation."""

import asyncio
from typing import Awaitable, Callable, Optional

from ..exceptions import TaskCancelledError

SleepFunc = Callable[[float], Awaitable[None]]


class CancellationToken:
    """
    Cancellation flag shared between a task's owner and its pipeline.

    Waits (backoff delays, poll intervals) are interrupted as soon as the token
    is cancelled. A network call already in flight finishes or times out at the
    transport layer; the token is checked again before the next attempt.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Task cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError(self.reason or "Task cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float, sleep: SleepFunc = asyncio.sleep) -> None:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Raises:
            TaskCancelledError: If the token is cancelled before or during the wait.
        """
        self.raise_if_cancelled()

        sleeper = asyncio.ensure_future(sleep(delay))
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, waiter):
                if not fut.done():
                    fut.cancel()

        self.raise_if_cancelled()
        # Surface errors from a custom sleep function
        sleeper.result()
