# review_pipeline/pipeline.py
"""
Review pipeline orchestrator.

optimize files -> dispatch request -> validate response, returning one
ReviewOutcome per run. Budget, auth, rate-limit, exhausted-retry and
cancellation failures raise PipelineError subclasses; unusable model output
comes back as a ReviewResult with overall_status=ERROR.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx

from review_pipeline.budget import (
    BudgetOptimizer,
    LimitCheck,
    OptimizationResult,
    OptimizeOptions,
    ReviewFile,
    TokenEstimator,
)
from review_pipeline.config.schema import Budget, ReviewConfig
from review_pipeline.errors import BudgetExceededError
from review_pipeline.llm import CancelToken, RateLimiter, RequestAttempt, ReviewClient, ReviewContext
from review_pipeline.review import ReviewResult

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    """
    Result of one pipeline run.

    Attributes:
        result: Validated review result (may have overall_status=ERROR)
        optimization: Which files were sent, truncated or left out
        limit_check: Budget check of the candidate files before optimization
        attempts: Request attempts made, in order
        elapsed_seconds: Wall time of the run
        estimated_cost: Estimated USD cost of the input tokens sent
        model: Model name reported by the service, if any
    """

    result: ReviewResult
    optimization: OptimizationResult
    limit_check: LimitCheck
    attempts: list[RequestAttempt] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    estimated_cost: float = 0.0
    model: str | None = None

    @property
    def overall_status(self) -> str:
        return self.result.overall_status


class ReviewPipeline:
    """Runs one bounded review request per call to run()."""

    def __init__(
        self,
        client: ReviewClient,
        budget: Budget | None = None,
        options: OptimizeOptions | None = None,
    ):
        self.client = client
        self.budget = budget or Budget()
        self.options = options or OptimizeOptions()

    @classmethod
    def from_config(
        cls,
        config: ReviewConfig,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> "ReviewPipeline":
        """
        Build a pipeline (and its client) from configuration.

        Pass `rate_limiter` to share one quota between pipelines; otherwise
        each pipeline gets its own.
        """
        limiter = rate_limiter or RateLimiter(
            max_requests_per_window=config.rate_limit.requests_per_minute,
            max_tokens_per_window=config.rate_limit.tokens_per_minute,
        )
        client = ReviewClient(
            llm=config.llm,
            retry=config.retry,
            rate_limiter=limiter,
            http_client=http_client,
        )
        per_file = config.optimizer.max_tokens_per_file
        if per_file is None:
            per_file = max(1, config.budget.max_tokens // 2)
        options = OptimizeOptions(
            exclude_patterns=config.optimizer.exclude_patterns,
            include_patterns=config.optimizer.include_patterns,
            max_tokens_per_file=per_file,
        )
        return cls(client=client, budget=config.budget, options=options)

    @property
    def optimizer(self) -> BudgetOptimizer:
        return self.client.optimizer

    async def run(
        self,
        files: Sequence[ReviewFile],
        context: ReviewContext | None = None,
        cancel: CancelToken | None = None,
    ) -> ReviewOutcome:
        """
        Review the candidate files.

        Raises:
            NoFilesFitError: If no file fits the budget
            BudgetExceededError: If the optimized set still breaks a size limit
            RateLimitExceeded, FatalRequestError, ExhaustedRetriesError,
            ReviewCancelledError: See ReviewClient.dispatch
        """
        start = time.monotonic()

        limit_check = self.optimizer.check_limits(files, self.budget)
        if not limit_check.within_limits:
            logger.info(
                f"Candidate files exceed budget ({limit_check.reason}); optimizing: "
                + "; ".join(limit_check.recommendations)
            )

        optimization = self.client.prepare(files, self.budget, self.options)

        gate = self.optimizer.check_limits(optimization.optimized, self.budget)
        if not gate.within_limits:
            raise BudgetExceededError(gate.reason or "budget_exceeded", gate.recommendations)

        logger.info(
            f"Optimized {len(files)} file(s): {len(optimization.optimized)} sent, "
            f"{len(optimization.excluded)} excluded, truncated={optimization.optimization_applied}"
        )

        response = await self.client.dispatch(
            optimization.optimized, self.budget, context, cancel
        )

        estimator = TokenEstimator.from_budget(self.budget)
        return ReviewOutcome(
            result=response.result,
            optimization=optimization,
            limit_check=limit_check,
            attempts=response.attempts,
            elapsed_seconds=round(time.monotonic() - start, 3),
            estimated_cost=estimator.estimate_cost(optimization.total_tokens),
            model=response.model,
        )

    async def close(self):
        await self.client.close()
