# review_pipeline/config/__init__.py
"""Configuration system for review-pipeline."""

from .loader import get_config_path, load_config
from .schema import (
    Budget,
    LLMConfig,
    LoggingConfig,
    OptimizerConfig,
    RateLimitConfig,
    RetryConfig,
    ReviewConfig,
)

__all__ = [
    "ReviewConfig",
    "LLMConfig",
    "Budget",
    "RetryConfig",
    "RateLimitConfig",
    "OptimizerConfig",
    "LoggingConfig",
    "load_config",
    "get_config_path",
]
