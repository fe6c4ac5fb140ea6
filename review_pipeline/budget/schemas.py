# review_pipeline/budget/schemas.py
"""
Pydantic schemas for candidate files and budget analysis results.

All models use extra="ignore" for forward compatibility.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

LimitReason = Literal["oversized_files", "size_limit_exceeded", "token_limit_exceeded"]
ExclusionReason = Literal["excluded_by_pattern", "token_limit", "budget_exhausted"]


class ReviewFile(BaseModel):
    """A candidate source file. Immutable; truncation produces a copy."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    path: str = Field(description="Repository-relative path, unique within a request")
    content: str | None = Field(default=None, description="File text (may be missing)")
    size_bytes: int = Field(default=0, ge=0, description="Size on disk in bytes")
    truncated: bool = Field(default=False, description="True for optimizer-truncated copies")
    original_tokens: int | None = Field(
        default=None, ge=0, description="Token estimate before truncation"
    )

    @classmethod
    def from_text(cls, path: str, content: str) -> "ReviewFile":
        """Build a file whose size is the UTF-8 length of its content."""
        return cls(path=path, content=content, size_bytes=len(content.encode("utf-8")))


class FileTokens(BaseModel):
    """Per-file token/size measurement."""

    model_config = ConfigDict(extra="ignore")

    path: str
    tokens: int = Field(ge=0)
    size_bytes: int = Field(ge=0)
    content_length: int = Field(ge=0)


class OversizedFile(BaseModel):
    """A file whose size exceeds the per-file limit."""

    model_config = ConfigDict(extra="ignore")

    path: str
    size_bytes: int
    max_size_bytes: int
    tokens: int


class BudgetAnalysis(BaseModel):
    """Token and size totals for a file set."""

    model_config = ConfigDict(extra="ignore")

    total_tokens: int = 0
    per_file: list[FileTokens] = Field(default_factory=list)
    oversized_files: list[OversizedFile] = Field(default_factory=list)
    total_size_bytes: int = 0
    estimated_cost: float = 0.0


class LimitCheck(BaseModel):
    """Outcome of checking a file set against a budget."""

    model_config = ConfigDict(extra="ignore")

    within_limits: bool
    reason: LimitReason | None = None
    available_tokens: int
    used_tokens: int
    utilization: float = Field(description="(used + reserved) / max_tokens, in percent")
    recommendations: list[str] = Field(default_factory=list)
    analysis: BudgetAnalysis


class OptimizeOptions(BaseModel):
    """File selection options for a single optimize() call."""

    model_config = ConfigDict(extra="ignore")

    exclude_patterns: list[str] = Field(default_factory=list)
    include_patterns: list[str] = Field(default_factory=list)
    max_tokens_per_file: int | None = Field(default=None, gt=0)


class ExcludedFile(BaseModel):
    """A file left out of the request, with the reason."""

    model_config = ConfigDict(extra="ignore")

    path: str
    reason: ExclusionReason
    tokens: int = 0
    size_bytes: int = 0


class OptimizationResult(BaseModel):
    """Files selected for the request and files left out."""

    model_config = ConfigDict(extra="ignore")

    optimized: list[ReviewFile] = Field(default_factory=list)
    excluded: list[ExcludedFile] = Field(default_factory=list)
    total_tokens: int = 0
    optimization_applied: bool = False


class FileChunk(BaseModel):
    """One independently reviewable slice of a large file set."""

    model_config = ConfigDict(extra="ignore")

    files: list[ReviewFile]
    total_size_bytes: int
    estimated_tokens: int

    @property
    def file_count(self) -> int:
        return len(self.files)


class FileUsage(BaseModel):
    """Per-file row of a usage report."""

    model_config = ConfigDict(extra="ignore")

    path: str
    tokens: int
    size: str
    content_length: int
    token_density: float


class UsageReport(BaseModel):
    """Human-oriented token usage report for a file set."""

    model_config = ConfigDict(extra="ignore")

    total_files: int
    total_tokens: int
    total_size: str
    estimated_cost: float
    utilization: float
    files: list[FileUsage] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
