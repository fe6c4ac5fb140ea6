# review_pipeline/errors.py
"""
Pipeline error hierarchy.

Every failure that aborts a review run is a PipelineError carrying a
distinguishable `kind`, so callers can decide whether to fail a build, warn,
or resubmit later. Malformed model output is never raised; it becomes a
ReviewResult with overall_status=ERROR instead.
"""

from enum import Enum
from typing import Any


class PipelineErrorKind(str, Enum):
    """Distinguishable reasons a review run can fail outright."""

    NO_FILES_FIT = "no_files_fit"
    BUDGET_EXCEEDED = "budget_exceeded"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    INVALID_REQUEST = "invalid_request"
    EXHAUSTED_RETRIES = "exhausted_retries"
    CANCELLED = "cancelled"


class ErrorClass(str, Enum):
    """Retry classification of a single failed request attempt."""

    TRANSIENT = "transient"
    FATAL_AUTH = "fatal-auth"
    FATAL_REQUEST = "fatal-request"
    FATAL_RATE_LIMITED = "fatal-rate-limited"


class PipelineError(Exception):
    """Base exception for review pipeline failures."""

    kind: PipelineErrorKind = PipelineErrorKind.INVALID_REQUEST

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class NoFilesFitError(PipelineError):
    """No candidate file survived budget optimization."""

    kind = PipelineErrorKind.NO_FILES_FIT


class BudgetExceededError(PipelineError):
    """The optimized file set still violates a size limit."""

    kind = PipelineErrorKind.BUDGET_EXCEEDED

    def __init__(self, reason: str, recommendations: list[str]):
        message = f"Budget exceeded ({reason})"
        if recommendations:
            message += ": " + "; ".join(recommendations)
        super().__init__(message, {"reason": reason, "recommendations": recommendations})
        self.reason = reason
        self.recommendations = recommendations


class RateLimitExceeded(PipelineError):
    """
    Local rate-limit window is full.

    Never retried by the client: the window cannot change until it rolls,
    so the caller owns the decision to resubmit after `retry_after` seconds.
    """

    kind = PipelineErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: float):
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class FatalRequestError(PipelineError):
    """Request failed with an error class that must not be retried."""

    def __init__(
        self,
        message: str,
        error_class: ErrorClass,
        status_code: int | None = None,
    ):
        super().__init__(
            message, {"error_class": error_class.value, "status_code": status_code}
        )
        self.error_class = error_class
        self.status_code = status_code
        if error_class is ErrorClass.FATAL_AUTH:
            self.kind = PipelineErrorKind.AUTH
        elif error_class is ErrorClass.FATAL_RATE_LIMITED:
            self.kind = PipelineErrorKind.RATE_LIMITED
        else:
            self.kind = PipelineErrorKind.INVALID_REQUEST


class ExhaustedRetriesError(PipelineError):
    """All attempts failed with transient errors."""

    kind = PipelineErrorKind.EXHAUSTED_RETRIES

    def __init__(self, attempts: int, last_error: BaseException | None):
        message = f"Request failed after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, {"attempts": attempts, "last_error": str(last_error)})
        self.attempts = attempts
        self.last_error = last_error


class ReviewCancelledError(PipelineError):
    """Caller cancelled the run or its deadline passed."""

    kind = PipelineErrorKind.CANCELLED
