# review_pipeline/budget/optimizer.py
"""
Budget analysis and optimization of candidate file sets.

Decides which file content can be sent at all: measures token/byte totals,
checks them against a Budget, and selects, orders and truncates files so the
outgoing request fits. Files are never mutated; truncation yields copies.
"""

import logging
from collections.abc import Sequence
from pathlib import PurePosixPath

from review_pipeline.config.schema import Budget

from .schemas import (
    BudgetAnalysis,
    ExcludedFile,
    FileChunk,
    FileTokens,
    FileUsage,
    LimitCheck,
    OptimizationResult,
    OptimizeOptions,
    OversizedFile,
    ReviewFile,
    UsageReport,
)
from .tokens import TokenEstimator

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [truncated: remaining lines exceed the review token budget]"

HIGH_UTILIZATION_PERCENT = 80.0
HIGH_COST_USD = 0.10

_GENERATED_DIRS = frozenset(
    {
        "node_modules",
        "vendor",
        "third_party",
        "dist",
        "build",
        "site-packages",
        "__pycache__",
        ".venv",
        "generated",
    }
)
_GENERATED_SUFFIXES = (".min.js", ".min.css", ".map", ".lock", "_pb2.py")
_TEST_DIRS = frozenset({"test", "tests", "spec", "__tests__"})


def is_generated_path(path: str) -> bool:
    """True for vendored, build-output or dependency paths."""
    parts = PurePosixPath(path.replace("\\", "/")).parts
    if any(part in _GENERATED_DIRS for part in parts[:-1]):
        return True
    return path.endswith(_GENERATED_SUFFIXES)


def is_test_path(path: str) -> bool:
    """True for test files and files under test directories."""
    pure = PurePosixPath(path.replace("\\", "/"))
    if any(part in _TEST_DIRS for part in pure.parts[:-1]):
        return True
    name = pure.name
    return (
        name.startswith("test_")
        or pure.stem.endswith("_test")
        or ".test." in name
        or ".spec." in name
    )


def _fitting_line_count(
    lines: list[str], max_tokens: int, estimator: TokenEstimator, extra_length: int
) -> int:
    """Number of leading lines whose joined length plus `extra_length` fits `max_tokens`."""
    kept = 0
    length = 0
    for line in lines:
        candidate = length + len(line) + (1 if kept else 0)
        if estimator.tokens_for_length(candidate + extra_length) > max_tokens:
            break
        length = candidate
        kept += 1
    return kept


def format_bytes(size: int) -> str:
    """Format a byte count as a human-readable string (e.g. '1.5 KB')."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


class BudgetOptimizer:
    """
    Scores, filters and truncates files to fit a token/byte budget.

    Stateless: every operation takes the Budget it should be evaluated
    against, so one optimizer can serve budgets of different models.
    """

    def importance(self, file: ReviewFile) -> float:
        """
        Review value per token heuristic (higher is reviewed first).

        Starts at 1.0; generated/dependency paths lose 0.4, test paths lose
        0.2, and larger files lose up to 0.3 in proportion to their length.
        """
        score = 1.0
        if is_generated_path(file.path):
            score -= 0.4
        if is_test_path(file.path):
            score -= 0.2
        score -= min(0.3, len(file.content or "") / 50_000)
        return score

    def analyze(self, files: Sequence[ReviewFile], budget: Budget) -> BudgetAnalysis:
        """Compute per-file and total token/size figures. Oversized files are reported, not removed."""
        estimator = TokenEstimator.from_budget(budget)
        per_file: list[FileTokens] = []
        oversized: list[OversizedFile] = []
        total_tokens = 0
        total_size = 0

        for file in files:
            content = file.content or ""
            tokens = estimator.estimate_tokens(content)
            total_tokens += tokens
            total_size += file.size_bytes

            per_file.append(
                FileTokens(
                    path=file.path,
                    tokens=tokens,
                    size_bytes=file.size_bytes,
                    content_length=len(content),
                )
            )

            if file.size_bytes > budget.max_file_size_bytes:
                oversized.append(
                    OversizedFile(
                        path=file.path,
                        size_bytes=file.size_bytes,
                        max_size_bytes=budget.max_file_size_bytes,
                        tokens=tokens,
                    )
                )

        return BudgetAnalysis(
            total_tokens=total_tokens,
            per_file=per_file,
            oversized_files=oversized,
            total_size_bytes=total_size,
            estimated_cost=estimator.estimate_cost(total_tokens),
        )

    def check_limits(self, files: Sequence[ReviewFile], budget: Budget) -> LimitCheck:
        """
        Check a file set against the budget.

        The reported reason is the first failing check in the order
        oversized_files, size_limit_exceeded, token_limit_exceeded; every
        failing check contributes a recommendation.
        """
        analysis = self.analyze(files, budget)
        available = budget.available_tokens
        used = analysis.total_tokens
        utilization = (used + budget.reserved_tokens) / budget.max_tokens * 100

        reason = None
        recommendations: list[str] = []

        if analysis.oversized_files:
            reason = "oversized_files"
            listed = ", ".join(
                f"{f.path} ({f.size_bytes} bytes)" for f in analysis.oversized_files
            )
            recommendations.append(
                f"{len(analysis.oversized_files)} file(s) exceed the "
                f"{budget.max_file_size_bytes} byte per-file limit: {listed}"
            )

        if analysis.total_size_bytes > budget.max_total_size_bytes:
            reason = reason or "size_limit_exceeded"
            recommendations.append(
                f"Total size exceeded: {analysis.total_size_bytes} bytes used, "
                f"{budget.max_total_size_bytes} bytes allowed"
            )

        if used > available:
            reason = reason or "token_limit_exceeded"
            recommendations.append(
                f"Token limit exceeded: {used} tokens used, {available} available"
            )

        if utilization > HIGH_UTILIZATION_PERCENT:
            recommendations.append(
                f"High token utilization ({utilization:.0f}%) - consider splitting the review"
            )

        return LimitCheck(
            within_limits=reason is None,
            reason=reason,
            available_tokens=available,
            used_tokens=used,
            utilization=utilization,
            recommendations=recommendations,
            analysis=analysis,
        )

    @staticmethod
    def _excluded_by_pattern(path: str, options: OptimizeOptions) -> bool:
        if options.include_patterns and not any(
            pattern in path for pattern in options.include_patterns
        ):
            return True
        return any(pattern in path for pattern in options.exclude_patterns)

    def optimize(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        options: OptimizeOptions | None = None,
    ) -> OptimizationResult:
        """
        Select the files to send, most important first.

        Steps:
        1. Drop duplicate paths (first wins) and pattern-excluded files
        2. Stable sort by descending importance
        3. Include each file whole if it fits the remaining budget and the
           per-file cap, else a truncated copy, else exclude it
        4. Once the budget is used up, exclude everything that is left

        Returns:
            OptimizationResult; optimization_applied is True iff a file was truncated
        """
        options = options or OptimizeOptions()
        estimator = TokenEstimator.from_budget(budget)

        optimized: list[ReviewFile] = []
        excluded: list[ExcludedFile] = []
        candidates: list[ReviewFile] = []
        seen: set[str] = set()

        for file in files:
            if file.path in seen:
                logger.warning(f"Duplicate path in review request ignored: {file.path}")
                continue
            seen.add(file.path)

            if self._excluded_by_pattern(file.path, options):
                excluded.append(
                    ExcludedFile(
                        path=file.path,
                        reason="excluded_by_pattern",
                        tokens=estimator.estimate_tokens(file.content),
                        size_bytes=file.size_bytes,
                    )
                )
                continue
            candidates.append(file)

        ranked = sorted(candidates, key=self.importance, reverse=True)

        total_tokens = 0
        applied = False
        available = budget.available_tokens

        for file in ranked:
            tokens = estimator.estimate_tokens(file.content)
            remaining = available - total_tokens

            if remaining <= 0:
                excluded.append(
                    ExcludedFile(
                        path=file.path,
                        reason="budget_exhausted",
                        tokens=tokens,
                        size_bytes=file.size_bytes,
                    )
                )
                continue

            limit = remaining
            if options.max_tokens_per_file is not None:
                limit = min(options.max_tokens_per_file, remaining)

            if tokens <= limit:
                optimized.append(file)
                total_tokens += tokens
                continue

            truncated = self.truncate(file, limit, estimator)
            if truncated is not None and estimator.estimate_tokens(truncated.content) > remaining:
                # a first-line-only truncation can exceed the remaining budget by its marker
                truncated = None
            if truncated is None:
                logger.info(f"Excluding {file.path}: {tokens} tokens, limit {limit}")
                excluded.append(
                    ExcludedFile(
                        path=file.path,
                        reason="token_limit",
                        tokens=tokens,
                        size_bytes=file.size_bytes,
                    )
                )
                continue

            truncated_tokens = estimator.estimate_tokens(truncated.content)
            logger.info(f"Truncated {file.path} from {tokens} to {truncated_tokens} tokens")
            optimized.append(truncated)
            total_tokens += truncated_tokens
            applied = True

        return OptimizationResult(
            optimized=optimized,
            excluded=excluded,
            total_tokens=total_tokens,
            optimization_applied=applied,
        )

    def truncate(
        self, file: ReviewFile, max_tokens: int, estimator: TokenEstimator
    ) -> ReviewFile | None:
        """
        Fit a file into `max_tokens`.

        Returns the same instance if it already fits, a truncated copy if a
        line prefix fits, or None if not even the first line fits.
        """
        content = file.content or ""
        tokens = estimator.estimate_tokens(content)
        if tokens <= max_tokens:
            return file

        text = self.truncate_lines(content, max_tokens, estimator)
        if text is None:
            return None

        return file.model_copy(
            update={
                "content": text,
                "size_bytes": len(text.encode("utf-8")),
                "truncated": True,
                "original_tokens": tokens,
            }
        )

    @staticmethod
    def truncate_lines(
        content: str, max_tokens: int, estimator: TokenEstimator
    ) -> str | None:
        """
        Keep the longest prefix of whole lines that fits, then append the marker.

        The marker line is counted against `max_tokens` when possible. If no
        line fits together with the marker but the first line fits alone,
        the prefix is measured without it (the result then exceeds the limit
        by the marker). None only when not even the first line fits.
        """
        lines = content.split("\n")

        kept = _fitting_line_count(lines, max_tokens, estimator, 1 + len(TRUNCATION_MARKER))
        if kept == 0:
            kept = _fitting_line_count(lines, max_tokens, estimator, 0)
        if kept == 0:
            return None

        return "\n".join(lines[:kept]) + "\n" + TRUNCATION_MARKER

    def split_into_chunks(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        max_files_per_chunk: int = 50,
    ) -> list[FileChunk]:
        """
        Partition files into independently reviewable chunks.

        Files are packed smallest first; a chunk is closed when the next file
        would exceed the available tokens, the total byte limit or the file
        count. A single file that exceeds a limit on its own gets its own chunk.
        """
        if max_files_per_chunk < 1:
            raise ValueError("max_files_per_chunk must be at least 1")

        estimator = TokenEstimator.from_budget(budget)
        chunks: list[FileChunk] = []
        current: list[ReviewFile] = []
        current_size = 0
        current_tokens = 0

        for file in sorted(files, key=lambda f: f.size_bytes):
            tokens = estimator.estimate_tokens(file.content)
            would_exceed = (
                current_size + file.size_bytes > budget.max_total_size_bytes
                or current_tokens + tokens > budget.available_tokens
                or len(current) >= max_files_per_chunk
            )

            if would_exceed and current:
                chunks.append(
                    FileChunk(
                        files=current,
                        total_size_bytes=current_size,
                        estimated_tokens=current_tokens,
                    )
                )
                current, current_size, current_tokens = [], 0, 0

            current.append(file)
            current_size += file.size_bytes
            current_tokens += tokens

        if current:
            chunks.append(
                FileChunk(
                    files=current,
                    total_size_bytes=current_size,
                    estimated_tokens=current_tokens,
                )
            )

        return chunks

    def usage_report(self, analysis: BudgetAnalysis, budget: Budget) -> UsageReport:
        """Summarize an analysis for display, with cost/utilization recommendations."""
        recommendations: list[str] = []

        if analysis.total_tokens > budget.max_tokens * HIGH_UTILIZATION_PERCENT / 100:
            recommendations.append(
                "High token usage - consider splitting the review into smaller chunks"
            )
        if analysis.oversized_files:
            recommendations.append(
                f"Exclude {len(analysis.oversized_files)} oversized file(s) from review"
            )
        if analysis.estimated_cost > HIGH_COST_USD:
            recommendations.append(
                f"Estimated cost: ${analysis.estimated_cost:.2f} - consider optimizing for cost"
            )

        return UsageReport(
            total_files=len(analysis.per_file),
            total_tokens=analysis.total_tokens,
            total_size=format_bytes(analysis.total_size_bytes),
            estimated_cost=analysis.estimated_cost,
            utilization=analysis.total_tokens / budget.max_tokens * 100,
            files=[
                FileUsage(
                    path=f.path,
                    tokens=f.tokens,
                    size=format_bytes(f.size_bytes),
                    content_length=f.content_length,
                    token_density=f.tokens / f.content_length if f.content_length else 0.0,
                )
                for f in analysis.per_file
            ],
            recommendations=recommendations,
        )
