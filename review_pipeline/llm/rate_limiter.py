# review_pipeline/llm/rate_limiter.py
"""
Process-local fixed-window rate limiter for completion requests.

State lives in one RateWindow owned by one RateLimiter; nothing is shared
across processes. Replace with an external counter behind the same
check_and_reserve/commit interface for multi-host deployments.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from review_pipeline.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass
class RateWindow:
    """Request/token counters for the current window."""

    request_count: int = 0
    token_count: int = 0
    window_start: float = 0.0


@dataclass(frozen=True)
class Reservation:
    """Quota taken by check_and_reserve, reconciled by commit."""

    tokens: int
    window_start: float


class RateLimiter:
    """
    Sliding-window request and token quota.

    All window mutations happen under an asyncio.Lock, so one instance can be
    shared by concurrent pipelines in the same event loop.
    """

    def __init__(
        self,
        max_requests_per_window: int = 60,
        max_tokens_per_window: int = 150_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests_per_window: Requests allowed per 60 s window
            max_tokens_per_window: Tokens allowed per 60 s window
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.max_requests = max_requests_per_window
        self.max_tokens = max_tokens_per_window
        self._clock = clock
        self._lock = asyncio.Lock()
        self.window = RateWindow(window_start=clock())

    def _roll_window(self, now: float) -> None:
        if now - self.window.window_start >= WINDOW_SECONDS:
            self.window.request_count = 0
            self.window.token_count = 0
            self.window.window_start = now

    async def check_and_reserve(self, estimated_tokens: int) -> Reservation:
        """
        Reserve one request and `estimated_tokens` tokens.

        Raises:
            RateLimitExceeded: If the window's request or token quota is used
                up. Carries the seconds left until the window resets.
        """
        async with self._lock:
            now = self._clock()
            self._roll_window(now)
            retry_after = max(0.0, WINDOW_SECONDS - (now - self.window.window_start))

            if self.window.request_count >= self.max_requests:
                raise RateLimitExceeded(
                    f"Rate limit exceeded ({self.window.request_count}/{self.max_requests} "
                    f"requests). Please wait {retry_after:.0f} seconds.",
                    retry_after=retry_after,
                )

            if self.window.token_count + estimated_tokens >= self.max_tokens:
                raise RateLimitExceeded(
                    f"Token rate limit exceeded ({self.window.token_count} + "
                    f"{estimated_tokens} of {self.max_tokens} tokens). "
                    f"Please wait {retry_after:.0f} seconds.",
                    retry_after=retry_after,
                )

            self.window.request_count += 1
            self.window.token_count += estimated_tokens
            return Reservation(tokens=estimated_tokens, window_start=self.window.window_start)

    async def commit(self, reservation: Reservation, actual_tokens: int) -> None:
        """
        Reconcile a reservation with the tokens actually used.

        Counters never decrease within a window: usage below the estimate
        keeps the reservation, usage above it adds the difference. If the
        window rolled since the reservation, the actual usage counts against
        the new window.
        """
        async with self._lock:
            self._roll_window(self._clock())

            if self.window.window_start == reservation.window_start:
                self.window.token_count += max(0, actual_tokens - reservation.tokens)
            else:
                self.window.token_count += max(0, actual_tokens)

            logger.debug(
                f"Rate window: {self.window.request_count} requests, "
                f"{self.window.token_count} tokens"
            )

    def snapshot(self) -> RateWindow:
        """Copy of the current window counters."""
        return RateWindow(
            request_count=self.window.request_count,
            token_count=self.window.token_count,
            window_start=self.window.window_start,
        )
