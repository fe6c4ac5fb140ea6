# review_pipeline/review/schemas.py
"""
Pydantic schemas for validated review results.

Result models use extra="allow": keys the model emits beyond the known
fields are kept, so a valid response round-trips verbatim through
ReviewResult.to_payload().
"""

from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

OverallStatus = Literal["PASS", "FAIL", "WARNING", "ERROR"]
Severity = Literal["HIGH", "MEDIUM", "LOW"]
Category = Literal["SECURITY", "LOGIC", "PERFORMANCE", "STANDARDS", "MAINTAINABILITY"]

OVERALL_STATUSES: tuple[str, ...] = get_args(OverallStatus)
SEVERITIES: tuple[str, ...] = get_args(Severity)
CATEGORIES: tuple[str, ...] = get_args(Category)


class Issue(BaseModel):
    """One finding reported by the model. Never mutated after validation."""

    model_config = ConfigDict(extra="allow", frozen=True)

    file: str = Field(default="", description="Path of the file the finding refers to")
    line: int | None = Field(default=None, ge=0, description="Line number, if known")
    severity: Severity
    category: Category
    title: str = Field(default="", description="Brief issue title")
    description: str = Field(default="", description="Detailed description")
    recommendation: str | None = Field(default=None, description="Suggested fix")
    code_snippet: str | None = Field(default=None, description="Relevant code")


class ReviewSummary(BaseModel):
    """Overall verdict plus the model's own issue counts."""

    model_config = ConfigDict(extra="allow")

    overall_status: OverallStatus
    total_issues: int | None = None
    high_severity: int | None = None
    medium_severity: int | None = None
    low_severity: int | None = None


class Recommendations(BaseModel):
    """Follow-up actions suggested by the model."""

    model_config = ConfigDict(extra="allow")

    immediate_actions: list[str] = Field(default_factory=list)
    long_term_improvements: list[str] = Field(default_factory=list)


class TokenUsage(BaseModel):
    """Token usage of one completion request."""

    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    estimated: bool = Field(
        default=False, description="True when the service reported no usage and this is an estimate"
    )


class ReviewResult(BaseModel):
    """Validated outcome of one review: findings, or an explicit ERROR status."""

    model_config = ConfigDict(extra="allow")

    summary: ReviewSummary
    issues: list[Issue] = Field(default_factory=list)
    recommendations: Recommendations = Field(default_factory=Recommendations)
    usage: TokenUsage | None = None
    parse_error: str | None = None

    @model_validator(mode="after")
    def _error_iff_parse_error(self) -> "ReviewResult":
        is_error = self.summary.overall_status == "ERROR"
        if is_error != (self.parse_error is not None):
            raise ValueError("overall_status must be ERROR exactly when parse_error is set")
        return self

    @classmethod
    def error(cls, message: str) -> "ReviewResult":
        """Deterministic fallback for unusable model output."""
        return cls(
            summary=ReviewSummary(
                overall_status="ERROR",
                total_issues=0,
                high_severity=0,
                medium_severity=0,
                low_severity=0,
            ),
            issues=[],
            recommendations=Recommendations(
                immediate_actions=["Review response parsing failed"],
                long_term_improvements=["Check AI response format"],
            ),
            parse_error=message,
        )

    @property
    def overall_status(self) -> str:
        return self.summary.overall_status

    def severity_counts(self) -> dict[str, int]:
        """Issue counts per severity, derived from the issues themselves."""
        counts = {severity: 0 for severity in SEVERITIES}
        for issue in self.issues:
            counts[issue.severity] += 1
        return counts

    def with_usage(self, usage: TokenUsage) -> "ReviewResult":
        return self.model_copy(update={"usage": usage})

    def to_payload(self) -> dict[str, Any]:
        """The result as the model emitted it (usage excluded)."""
        return self.model_dump(mode="json", exclude_unset=True, exclude={"usage"})
