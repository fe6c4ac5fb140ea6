# review_pipeline/config/schema.py
"""
Pydantic configuration models for review-pipeline.

All models use extra="ignore" to allow unknown YAML keys without crashing.
Budget, retry and rate-limit settings are frozen once constructed.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LLMConfig(BaseModel):
    """Chat-completion service configuration."""

    model_config = ConfigDict(extra="ignore")

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL (without /chat/completions)",
    )
    model: str = Field(default="gpt-4", description="Model used for review")
    api_key: str | None = Field(
        default=None,
        description="API key (None = read REVIEW_PIPELINE_API_KEY / OPENAI_API_KEY)",
    )
    timeout: float = Field(
        default=300.0, gt=0, description="Per-attempt request timeout in seconds"
    )
    temperature: float = Field(
        default=0.1, ge=0.0, le=2.0, description="Sampling temperature"
    )


class Budget(BaseModel):
    """Token and byte ceiling for a single review request."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    max_tokens: int = Field(default=4000, gt=0, description="Model token ceiling")
    reserved_tokens: int = Field(
        default=500, ge=0, description="Tokens held back for prompt overhead and response"
    )
    max_file_size_bytes: int = Field(
        default=1024 * 1024, gt=0, description="Per-file size limit"
    )
    max_total_size_bytes: int = Field(
        default=5 * 1024 * 1024, gt=0, description="Total request size limit"
    )
    tokens_per_char: float = Field(
        default=0.25, gt=0.0, description="Estimated tokens per character"
    )
    price_per_k_tokens: float = Field(
        default=0.03, ge=0.0, description="USD per 1000 input tokens"
    )

    @model_validator(mode="after")
    def _reserved_below_max(self) -> "Budget":
        if self.reserved_tokens >= self.max_tokens:
            raise ValueError(
                f"reserved_tokens ({self.reserved_tokens}) must be less than "
                f"max_tokens ({self.max_tokens})"
            )
        return self

    @property
    def available_tokens(self) -> int:
        """Tokens left for file content after the reservation."""
        return self.max_tokens - self.reserved_tokens


class RetryConfig(BaseModel):
    """Retry/backoff policy for transient request failures."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    max_retries: int = Field(
        default=3, ge=0, description="Retries after the first attempt"
    )
    retry_delay: float = Field(
        default=1.0, ge=0.0, description="Base delay in seconds before the first retry"
    )
    backoff_multiplier: float = Field(
        default=2.0, ge=1.0, description="Delay multiplier per subsequent retry"
    )
    max_retry_delay: float | None = Field(
        default=None, ge=0.0, description="Upper bound on a single delay (None = unbounded)"
    )


class RateLimitConfig(BaseModel):
    """Process-local sliding-window quota."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    requests_per_minute: int = Field(default=60, gt=0)
    tokens_per_minute: int = Field(default=150_000, gt=0)


class OptimizerConfig(BaseModel):
    """File selection defaults for budget optimization."""

    model_config = ConfigDict(extra="ignore")

    exclude_patterns: list[str] = Field(
        default_factory=list, description="Substrings that exclude a path"
    )
    include_patterns: list[str] = Field(
        default_factory=list, description="If non-empty, a path must contain one of these"
    )
    max_tokens_per_file: int | None = Field(
        default=None, gt=0, description="Per-file token cap (None = half of budget.max_tokens)"
    )


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    model_config = ConfigDict(extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    json_output: bool = Field(
        default=True, description="Emit one JSON object per log line on stderr"
    )


class ReviewConfig(BaseModel):
    """Root configuration for review-pipeline."""

    model_config = ConfigDict(extra="ignore")

    llm: LLMConfig = Field(default_factory=LLMConfig)
    budget: Budget = Field(default_factory=Budget)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
