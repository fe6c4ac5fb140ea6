# review_pipeline/llm/client.py
"""
Rate-limited, retrying client for OpenAI-compatible chat completions.

Builds the review request from an optimized file set, dispatches it under
the RateLimiter with exponential backoff, and hands the completion text to
the ResponseValidator.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
from tenacity import RetryError

from review_pipeline.budget import BudgetOptimizer, OptimizationResult, OptimizeOptions, ReviewFile
from review_pipeline.budget.tokens import TokenEstimator
from review_pipeline.config.schema import Budget, LLMConfig, RetryConfig
from review_pipeline.errors import (
    ErrorClass,
    ExhaustedRetriesError,
    FatalRequestError,
    NoFilesFitError,
    PipelineError,
)
from review_pipeline.review import ResponseValidator, ReviewResult, TokenUsage

from .cancellation import CancelToken
from .prompts import ReviewContext, build_messages
from .rate_limiter import RateLimiter
from .retry import InvalidEnvelopeError, build_retrying, classify_error

logger = logging.getLogger(__name__)

USER_AGENT = "review-pipeline/0.1.0"


@dataclass
class RequestAttempt:
    """One try of the completion request."""

    attempt_number: int
    started_at: float
    outcome: Literal["success", "error"] = "error"
    error_class: ErrorClass | None = None
    error: str | None = None


@dataclass
class PreparedRequest:
    """Request body plus the input token estimate used for quota."""

    payload: dict[str, Any]
    input_tokens: int


@dataclass
class ReviewResponse:
    """Validated result of a dispatched request and how it was obtained."""

    result: ReviewResult
    attempts: list[RequestAttempt] = field(default_factory=list)
    model: str | None = None
    raw_content: str = ""


def _api_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or "Unknown error")
    return "Unknown error"


def extract_content(envelope: dict[str, Any]) -> str:
    """choices[0].message.content, or "" if the envelope has none."""
    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def extract_usage(envelope: dict[str, Any]) -> TokenUsage | None:
    usage = envelope.get("usage")
    if not isinstance(usage, dict):
        return None
    try:
        parsed = TokenUsage.model_validate(usage)
    except ValueError:
        logger.warning(f"Ignoring malformed usage block: {usage}")
        return None
    if not parsed.total_tokens:
        parsed = parsed.model_copy(
            update={"total_tokens": parsed.prompt_tokens + parsed.completion_tokens}
        )
    return parsed


class ReviewClient:
    """
    Async code review client for an OpenAI-compatible completion API.

    Handles:
    - Budget optimization of the candidate files
    - Request payload and response-token ceiling
    - Sliding-window rate limiting (never retried)
    - Exponential backoff for transient failures only
    - Total response validation
    """

    RESPONSE_TOKEN_FLOOR = 2000
    RESPONSE_TOKEN_RATIO = 0.5

    def __init__(
        self,
        llm: LLMConfig,
        retry: RetryConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        optimizer: BudgetOptimizer | None = None,
        validator: ResponseValidator | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize review client.

        Args:
            llm: Service endpoint, model, key and per-attempt timeout
            retry: Backoff policy (defaults to RetryConfig())
            rate_limiter: Quota tracker; one per client unless shared deliberately
            optimizer: File selection (defaults to BudgetOptimizer())
            validator: Response validation (defaults to ResponseValidator())
            http_client: Pre-built httpx client (lazy-created otherwise)
            sleep: Backoff sleep used when no CancelToken is supplied

        Raises:
            ValueError: If no API key is configured
        """
        if not llm.api_key:
            raise ValueError(
                "API key is required (set llm.api_key, REVIEW_PIPELINE_API_KEY or OPENAI_API_KEY)"
            )

        self.llm = llm
        self.retry = retry or RetryConfig()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.optimizer = optimizer or BudgetOptimizer()
        self.validator = validator or ResponseValidator()
        self._http = http_client
        self._owns_http = http_client is None
        self._sleep = sleep

    @property
    def http(self) -> httpx.AsyncClient:
        """Lazy-loaded httpx client."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.llm.timeout))
        return self._http

    @property
    def endpoint(self) -> str:
        return f"{self.llm.base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.llm.api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def prepare(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        options: OptimizeOptions | None = None,
    ) -> OptimizationResult:
        """
        Optimize the candidate files for the budget.

        Raises:
            NoFilesFitError: If files were given but none survived optimization
        """
        optimization = self.optimizer.optimize(files, budget, options)
        if files and not optimization.optimized:
            reasons = sorted({e.reason for e in optimization.excluded})
            raise NoFilesFitError(
                f"None of {len(files)} file(s) fit the review budget "
                f"({budget.available_tokens} tokens available)",
                {"excluded": [e.model_dump() for e in optimization.excluded], "reasons": reasons},
            )
        return optimization

    def response_token_ceiling(self, input_tokens: int, budget: Budget) -> int:
        """max(2000, half the input estimate), capped at budget.max_tokens."""
        wanted = max(self.RESPONSE_TOKEN_FLOOR, int(input_tokens * self.RESPONSE_TOKEN_RATIO))
        return min(wanted, budget.max_tokens)

    def build_request(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        context: ReviewContext | None = None,
    ) -> PreparedRequest:
        """Chat completion body for the given (already optimized) files."""
        messages = build_messages(files, context or ReviewContext())
        estimator = TokenEstimator.from_budget(budget)
        input_tokens = sum(estimator.estimate_tokens(m["content"]) for m in messages)

        payload = {
            "model": self.llm.model,
            "messages": messages,
            "max_tokens": self.response_token_ceiling(input_tokens, budget),
            "temperature": self.llm.temperature,
            "stream": False,
        }
        return PreparedRequest(payload=payload, input_tokens=input_tokens)

    async def _send(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Single POST. Raises httpx errors or InvalidEnvelopeError."""
        response = await self.http.post(self.endpoint, json=payload, headers=self._headers())
        if response.is_error:
            raise httpx.HTTPStatusError(
                f"API error {response.status_code}: {_api_error_message(response)}",
                request=response.request,
                response=response,
            )

        try:
            envelope = response.json()
        except ValueError as e:
            raise InvalidEnvelopeError(f"Failed to parse response: {e}") from e

        if not isinstance(envelope, dict):
            raise InvalidEnvelopeError("Response body is not a JSON object")
        return envelope

    async def _execute(
        self, request: PreparedRequest, cancel: CancelToken | None
    ) -> tuple[dict[str, Any], list[RequestAttempt]]:
        """
        Run the attempt loop.

        Raises:
            FatalRequestError: On the first non-transient failure
            ExhaustedRetriesError: If every attempt failed transiently
            ReviewCancelledError: If the token fires during an attempt or sleep
        """
        attempts: list[RequestAttempt] = []
        sleep = cancel.sleep if cancel is not None else self._sleep
        retrying = build_retrying(self.retry, sleep=sleep)
        envelope: dict[str, Any] = {}

        try:
            async for attempt in retrying:
                with attempt:
                    record = RequestAttempt(
                        attempt_number=attempt.retry_state.attempt_number,
                        started_at=time.time(),
                    )
                    attempts.append(record)
                    try:
                        if cancel is not None:
                            envelope = await cancel.run(self._send(request.payload))
                        else:
                            envelope = await self._send(request.payload)
                    except PipelineError as e:
                        record.error = str(e)
                        raise
                    except Exception as e:
                        record.error_class = classify_error(e)
                        record.error = str(e)
                        logger.warning(
                            f"Request attempt {record.attempt_number} failed "
                            f"({record.error_class.value}): {e}"
                        )
                        raise
                    record.outcome = "success"

        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"Review request failed after {len(attempts)} attempts: {last_error}")
            raise ExhaustedRetriesError(len(attempts), last_error) from last_error

        except PipelineError:
            raise

        except Exception as e:
            error_class = classify_error(e)
            status_code = None
            if isinstance(e, httpx.HTTPStatusError):
                status_code = e.response.status_code
            logger.error(f"Review request failed ({error_class.value}), not retrying: {e}")
            raise FatalRequestError(str(e), error_class, status_code) from e

        return envelope, attempts

    async def dispatch(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        context: ReviewContext | None = None,
        cancel: CancelToken | None = None,
    ) -> ReviewResponse:
        """
        Send optimized files for review and validate the answer.

        Raises:
            RateLimitExceeded: If the local quota is used up (not retried)
            FatalRequestError, ExhaustedRetriesError, ReviewCancelledError
        """
        request = self.build_request(files, budget, context)
        reservation = await self.rate_limiter.check_and_reserve(request.input_tokens)

        logger.info(
            f"Dispatching review: model={self.llm.model}, files={len(files)}, "
            f"input_tokens~{request.input_tokens}, max_tokens={request.payload['max_tokens']}"
        )
        try:
            envelope, attempts = await self._execute(request, cancel)
        except PipelineError:
            # No commit: the reserved estimate stays counted for this window
            logger.debug(
                f"Request failed; reservation of {reservation.tokens} tokens kept"
            )
            raise

        usage = extract_usage(envelope)
        if usage is None:
            usage = TokenUsage(
                prompt_tokens=request.input_tokens,
                total_tokens=request.input_tokens,
                estimated=True,
            )
        await self.rate_limiter.commit(reservation, usage.total_tokens)

        content = extract_content(envelope)
        result = self.validator.parse(content).with_usage(usage)
        logger.info(
            f"Review completed: status={result.overall_status}, issues={len(result.issues)}, "
            f"tokens={usage.total_tokens}, attempts={len(attempts)}"
        )
        return ReviewResponse(
            result=result,
            attempts=attempts,
            model=envelope.get("model") if isinstance(envelope.get("model"), str) else None,
            raw_content=content,
        )

    async def review(
        self,
        files: Sequence[ReviewFile],
        budget: Budget,
        context: ReviewContext | None = None,
        options: OptimizeOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> ReviewResult:
        """
        Optimize, dispatch and validate in one call.

        Returns:
            ReviewResult (status ERROR if the model's output was unusable)

        Raises:
            NoFilesFitError: If no file fits; nothing is sent
            RateLimitExceeded, FatalRequestError, ExhaustedRetriesError,
            ReviewCancelledError
        """
        optimization = self.prepare(files, budget, options)
        response = await self.dispatch(optimization.optimized, budget, context, cancel)
        return response.result

    async def close(self):
        """Close the httpx client if this client created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
