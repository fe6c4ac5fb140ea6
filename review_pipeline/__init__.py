# review_pipeline/__init__.py
"""
Bounded LLM code review pipeline.

Fits candidate files into a token/byte budget, sends them to an
OpenAI-compatible completion API under a rate limiter with retry/backoff,
and validates the model's JSON answer into a ReviewResult.
"""

from review_pipeline.budget import BudgetOptimizer, OptimizeOptions, ReviewFile, TokenEstimator
from review_pipeline.config import Budget, ReviewConfig, load_config
from review_pipeline.errors import (
    BudgetExceededError,
    ErrorClass,
    ExhaustedRetriesError,
    FatalRequestError,
    NoFilesFitError,
    PipelineError,
    PipelineErrorKind,
    RateLimitExceeded,
    ReviewCancelledError,
)
from review_pipeline.llm import CancelToken, RateLimiter, ReviewClient, ReviewContext
from review_pipeline.pipeline import ReviewOutcome, ReviewPipeline
from review_pipeline.review import Issue, ResponseValidator, ReviewResult

__version__ = "0.1.0"

__all__ = [
    "ReviewPipeline",
    "ReviewOutcome",
    "ReviewClient",
    "ReviewContext",
    "RateLimiter",
    "CancelToken",
    "BudgetOptimizer",
    "OptimizeOptions",
    "TokenEstimator",
    "ReviewFile",
    "Budget",
    "ReviewConfig",
    "load_config",
    "ResponseValidator",
    "ReviewResult",
    "Issue",
    "PipelineError",
    "PipelineErrorKind",
    "ErrorClass",
    "NoFilesFitError",
    "BudgetExceededError",
    "RateLimitExceeded",
    "FatalRequestError",
    "ExhaustedRetriesError",
    "ReviewCancelledError",
]
