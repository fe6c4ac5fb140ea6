# review_pipeline/budget/__init__.py
"""
Budget subsystem: token estimation and file-set optimization.

Provides:
- Character-ratio token and cost estimates
- Limit checks against a Budget (tokens, per-file and total bytes)
- Importance-ordered selection with line-granular truncation
"""

from .optimizer import TRUNCATION_MARKER, BudgetOptimizer, format_bytes
from .schemas import (
    BudgetAnalysis,
    ExcludedFile,
    FileChunk,
    LimitCheck,
    OptimizationResult,
    OptimizeOptions,
    ReviewFile,
    UsageReport,
)
from .tokens import TokenEstimator

__all__ = [
    "BudgetOptimizer",
    "TokenEstimator",
    "TRUNCATION_MARKER",
    "format_bytes",
    "ReviewFile",
    "BudgetAnalysis",
    "LimitCheck",
    "OptimizeOptions",
    "OptimizationResult",
    "ExcludedFile",
    "FileChunk",
    "UsageReport",
]
