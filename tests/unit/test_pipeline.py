# tests/unit/test_pipeline.py
"""Unit tests for ReviewPipeline orchestration."""

import json

import httpx
import pytest

from review_pipeline.budget import OptimizeOptions, ReviewFile
from review_pipeline.config import Budget, LLMConfig, RateLimitConfig, ReviewConfig
from review_pipeline.errors import BudgetExceededError, NoFilesFitError, PipelineErrorKind
from review_pipeline.llm import RateLimiter, ReviewClient
from review_pipeline.pipeline import ReviewPipeline

REVIEW = {
    "summary": {"overall_status": "FAIL", "total_issues": 1, "high_severity": 1},
    "issues": [
        {
            "file": "src/auth.py",
            "line": 3,
            "severity": "HIGH",
            "category": "SECURITY",
            "title": "Hardcoded secret",
            "description": "API token committed to source",
        }
    ],
    "recommendations": {"immediate_actions": ["Rotate the token"]},
}


def _handler(requests: list):
    def handle(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "model": "gpt-4",
                "choices": [{"message": {"role": "assistant", "content": json.dumps(REVIEW)}}],
                "usage": {"prompt_tokens": 300, "completion_tokens": 100, "total_tokens": 400},
            },
        )

    return handle


async def _noop_sleep(seconds: float) -> None:
    return None


def _make_pipeline(requests: list, budget=None, options=None) -> ReviewPipeline:
    client = ReviewClient(
        llm=LLMConfig(base_url="https://llm.test/v1", api_key="test-key"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_handler(requests))),
        sleep=_noop_sleep,
    )
    return ReviewPipeline(client, budget=budget, options=options)


class TestRun:
    @pytest.mark.asyncio
    async def test_full_run(self):
        requests = []
        pipeline = _make_pipeline(requests)
        files = [
            ReviewFile.from_text("src/auth.py", "TOKEN = 'abc'\n"),
            ReviewFile.from_text("tests/test_auth.py", "def test_x():\n    pass\n"),
        ]

        outcome = await pipeline.run(files)

        assert outcome.overall_status == "FAIL"
        assert outcome.result.issues[0].category == "SECURITY"
        assert len(outcome.optimization.optimized) == 2
        assert outcome.limit_check.within_limits is True
        assert len(outcome.attempts) == 1
        assert outcome.model == "gpt-4"
        assert outcome.estimated_cost > 0
        assert len(requests) == 1

        messages = json.loads(requests[0].content)["messages"]
        assert messages[2]["content"].startswith("File: src/auth.py")

    @pytest.mark.asyncio
    async def test_oversized_candidates_are_optimized(self):
        requests = []
        budget = Budget(max_tokens=1000, reserved_tokens=200)
        pipeline = _make_pipeline(requests, budget=budget)
        big = ReviewFile.from_text("src/big.py", "\n".join("z" * 60 for _ in range(200)))

        outcome = await pipeline.run([big])

        assert outcome.limit_check.reason == "token_limit_exceeded"
        assert outcome.optimization.optimization_applied is True
        assert outcome.optimization.total_tokens <= budget.available_tokens
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_options_applied(self):
        requests = []
        pipeline = _make_pipeline(requests, options=OptimizeOptions(exclude_patterns=["tests/"]))
        files = [
            ReviewFile.from_text("src/auth.py", "x = 1\n"),
            ReviewFile.from_text("tests/test_auth.py", "y = 2\n"),
        ]

        outcome = await pipeline.run(files)

        assert [f.path for f in outcome.optimization.optimized] == ["src/auth.py"]
        assert outcome.optimization.excluded[0].reason == "excluded_by_pattern"

    @pytest.mark.asyncio
    async def test_budget_gate_blocks_oversized_file(self):
        requests = []
        pipeline = _make_pipeline(requests)
        oversized = ReviewFile(path="data/dump.sql", content="SELECT 1;", size_bytes=2 * 1024 * 1024)

        with pytest.raises(BudgetExceededError) as exc_info:
            await pipeline.run([oversized])

        assert exc_info.value.reason == "oversized_files"
        assert exc_info.value.kind is PipelineErrorKind.BUDGET_EXCEEDED
        assert requests == []

    @pytest.mark.asyncio
    async def test_no_files_fit(self):
        requests = []
        pipeline = _make_pipeline(requests, budget=Budget(max_tokens=200, reserved_tokens=150))

        with pytest.raises(NoFilesFitError):
            await pipeline.run([ReviewFile.from_text("a.py", "q" * 5000)])

        assert requests == []


class TestFromConfig:
    def test_builds_client_from_config(self):
        config = ReviewConfig(
            llm=LLMConfig(api_key="k", model="gpt-4o"),
            budget=Budget(max_tokens=8000),
            rate_limit=RateLimitConfig(requests_per_minute=5, tokens_per_minute=1000),
        )

        pipeline = ReviewPipeline.from_config(config)

        assert pipeline.budget.max_tokens == 8000
        assert pipeline.client.llm.model == "gpt-4o"
        assert pipeline.client.rate_limiter.max_requests == 5
        assert pipeline.client.rate_limiter.max_tokens == 1000

    def test_per_file_cap_defaults_to_half_budget(self):
        config = ReviewConfig(llm=LLMConfig(api_key="k"), budget=Budget(max_tokens=6000))

        pipeline = ReviewPipeline.from_config(config)

        assert pipeline.options.max_tokens_per_file == 3000

    def test_explicit_per_file_cap_kept(self):
        config = ReviewConfig(
            llm=LLMConfig(api_key="k"), optimizer={"max_tokens_per_file": 750}
        )

        pipeline = ReviewPipeline.from_config(config)

        assert pipeline.options.max_tokens_per_file == 750

    def test_shared_rate_limiter(self):
        config = ReviewConfig(llm=LLMConfig(api_key="k"))
        limiter = RateLimiter()

        first = ReviewPipeline.from_config(config, rate_limiter=limiter)
        second = ReviewPipeline.from_config(config, rate_limiter=limiter)

        assert first.client.rate_limiter is second.client.rate_limiter

    def test_missing_api_key(self):
        with pytest.raises(ValueError):
            ReviewPipeline.from_config(ReviewConfig())
