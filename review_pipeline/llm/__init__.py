# review_pipeline/llm/__init__.py
"""Completion client with rate limiting, retry policy and cancellation."""

from .cancellation import CancelToken
from .client import PreparedRequest, RequestAttempt, ReviewClient, ReviewResponse
from .prompts import ReviewContext, build_messages, build_system_prompt
from .rate_limiter import WINDOW_SECONDS, RateLimiter, RateWindow, Reservation
from .retry import InvalidEnvelopeError, build_retrying, classify_error, is_retryable

__all__ = [
    "ReviewClient",
    "ReviewResponse",
    "RequestAttempt",
    "PreparedRequest",
    "ReviewContext",
    "build_messages",
    "build_system_prompt",
    "RateLimiter",
    "RateWindow",
    "Reservation",
    "WINDOW_SECONDS",
    "CancelToken",
    "InvalidEnvelopeError",
    "build_retrying",
    "classify_error",
    "is_retryable",
]
