# review_pipeline/review/__init__.py
"""Review result schemas and the total response validator."""

from .schemas import (
    CATEGORIES,
    OVERALL_STATUSES,
    SEVERITIES,
    Issue,
    Recommendations,
    ReviewResult,
    ReviewSummary,
    TokenUsage,
)
from .validator import NO_JSON_MESSAGE, ResponseValidator, find_json_object

__all__ = [
    "ResponseValidator",
    "find_json_object",
    "NO_JSON_MESSAGE",
    "ReviewResult",
    "ReviewSummary",
    "Issue",
    "Recommendations",
    "TokenUsage",
    "OVERALL_STATUSES",
    "SEVERITIES",
    "CATEGORIES",
]
