# review_pipeline/llm/retry.py
"""Error classification and exponential-backoff retry policy for completion requests."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from review_pipeline.config.schema import RetryConfig
from review_pipeline.errors import ErrorClass

logger = logging.getLogger(__name__)

# 429 is deliberately fatal: the caller owns backoff-and-resubmit for rate limits
_AUTH_STATUSES = frozenset({401, 403})
_RATE_LIMIT_STATUS = 429


class InvalidEnvelopeError(Exception):
    """A 2xx response whose body is not a JSON object."""


def classify_error(exception: BaseException) -> ErrorClass:
    """
    Map a failed attempt to its retry class.

    - 401/403 -> fatal-auth
    - 429 -> fatal-rate-limited
    - 5xx -> transient
    - 400 and any other 4xx -> fatal-request
    - Network errors, timeouts, unparseable success bodies -> transient
    - Anything else (programmatic/validation errors) -> fatal-request
    """
    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        if status in _AUTH_STATUSES:
            return ErrorClass.FATAL_AUTH
        if status == _RATE_LIMIT_STATUS:
            return ErrorClass.FATAL_RATE_LIMITED
        if status >= 500:
            return ErrorClass.TRANSIENT
        return ErrorClass.FATAL_REQUEST

    if isinstance(exception, httpx.UnsupportedProtocol):
        return ErrorClass.FATAL_REQUEST

    if isinstance(
        exception,
        (httpx.RequestError, ConnectionError, TimeoutError, InvalidEnvelopeError),
    ):
        return ErrorClass.TRANSIENT

    return ErrorClass.FATAL_REQUEST


def is_retryable(exception: BaseException) -> bool:
    """Returns True if the exception should be retried."""
    return classify_error(exception) is ErrorClass.TRANSIENT


def build_retrying(
    config: RetryConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    """
    Build the tenacity controller for one request.

    Runs at most max_retries + 1 attempts. Before attempt n (n >= 2) it waits
    retry_delay * backoff_multiplier ** (n - 2), optionally capped at
    max_retry_delay. Only transient errors are retried; fatal errors are
    re-raised as-is, and exhaustion raises tenacity.RetryError.
    """
    wait_kwargs: dict[str, float] = {
        "multiplier": config.retry_delay,
        "exp_base": config.backoff_multiplier,
    }
    if config.max_retry_delay is not None:
        wait_kwargs["max"] = config.max_retry_delay

    return AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(**wait_kwargs),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
