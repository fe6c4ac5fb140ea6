# review_pipeline/llm/cancellation.py
"""Caller-controlled cancellation and deadlines for a review run."""

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from review_pipeline.errors import ReviewCancelledError

T = TypeVar("T")


class CancelToken:
    """
    Cancellation signal with an optional deadline.

    The request client races each blocking step (HTTP attempt, backoff sleep)
    against this token; whichever finishes first wins.
    """

    def __init__(self, deadline: float | None = None):
        """
        Args:
            deadline: Absolute time.monotonic() value after which the run is
                cancelled (None = no deadline)
        """
        self.deadline = deadline
        self._event = asyncio.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline (None = no deadline)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def _reason(self) -> str:
        if self._event.is_set():
            return "Review cancelled by caller"
        return "Review deadline exceeded"

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        Raises:
            ReviewCancelledError: If cancelled or past the deadline; the
                awaitable is cancelled and awaited before raising.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ReviewCancelledError(self._reason())

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.create_task(self._event.wait())

        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        waiter.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
        raise ReviewCancelledError(self._reason())

    async def sleep(self, seconds: float) -> None:
        """Cancellable asyncio.sleep."""
        await self.run(asyncio.sleep(seconds))
