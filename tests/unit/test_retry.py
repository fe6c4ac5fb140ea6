# tests/unit/test_retry.py
"""Unit tests for error classification and the backoff policy."""

import httpx
import pytest
from tenacity import RetryError

from review_pipeline.config import RetryConfig
from review_pipeline.errors import ErrorClass
from review_pipeline.llm import InvalidEnvelopeError, build_retrying, classify_error, is_retryable


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"API error {status}", request=request, response=response)


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestClassifyError:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth(self, status):
        assert classify_error(_status_error(status)) is ErrorClass.FATAL_AUTH

    def test_rate_limited_is_fatal(self):
        assert classify_error(_status_error(429)) is ErrorClass.FATAL_RATE_LIMITED
        assert not is_retryable(_status_error(429))

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors_are_transient(self, status):
        assert classify_error(_status_error(status)) is ErrorClass.TRANSIENT

    @pytest.mark.parametrize("status", [400, 404, 422])
    def test_client_errors(self, status):
        assert classify_error(_status_error(status)) is ErrorClass.FATAL_REQUEST

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            ConnectionResetError("reset"),
            TimeoutError(),
            InvalidEnvelopeError("not json"),
        ],
    )
    def test_network_failures_are_transient(self, exc):
        assert classify_error(exc) is ErrorClass.TRANSIENT
        assert is_retryable(exc)

    def test_unsupported_protocol(self):
        assert classify_error(httpx.UnsupportedProtocol("ftp")) is ErrorClass.FATAL_REQUEST

    def test_programming_errors_are_fatal(self):
        assert classify_error(KeyError("x")) is ErrorClass.FATAL_REQUEST


class TestBuildRetrying:
    @pytest.mark.asyncio
    async def test_exponential_delays_then_exhaustion(self):
        sleep = SleepRecorder()
        retrying = build_retrying(
            RetryConfig(max_retries=3, retry_delay=1.0, backoff_multiplier=2.0), sleep=sleep
        )
        attempts = 0

        with pytest.raises(RetryError):
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    raise httpx.ConnectError("down")

        assert attempts == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_max_retry_delay_caps_waits(self):
        sleep = SleepRecorder()
        retrying = build_retrying(
            RetryConfig(max_retries=3, retry_delay=1.0, backoff_multiplier=3.0, max_retry_delay=5.0),
            sleep=sleep,
        )

        with pytest.raises(RetryError):
            async for attempt in retrying:
                with attempt:
                    raise httpx.ConnectError("down")

        assert sleep.delays == [1.0, 3.0, 5.0]

    @pytest.mark.asyncio
    async def test_fatal_error_raised_without_retry(self):
        sleep = SleepRecorder()
        retrying = build_retrying(RetryConfig(max_retries=3), sleep=sleep)
        attempts = 0

        with pytest.raises(httpx.HTTPStatusError):
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    raise _status_error(400)

        assert attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_retries_is_single_attempt(self):
        retrying = build_retrying(RetryConfig(max_retries=0), sleep=SleepRecorder())
        attempts = 0

        with pytest.raises(RetryError):
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    raise httpx.ConnectError("down")

        assert attempts == 1
