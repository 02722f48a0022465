"""Tests for retry and upstream call helpers."""

import asyncio

import pytest

from crypto_balance_tracker.core.exceptions import UpstreamFetchError, ValidationError
from crypto_balance_tracker.rpc.retry import RetryConfig, async_retry, call_upstream


def test_get_delay_backs_off_exponentially():
    """Delays double per attempt and are capped."""
    config = RetryConfig(base_delay=1.0, max_delay=5.0, exponential_base=2.0)

    assert [config.get_delay(attempt) for attempt in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_async_retry_succeeds_after_failures():
    attempts = 0

    @async_retry(RetryConfig(max_retries=3, base_delay=0))
    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise UpstreamFetchError("temporary")
        return "ok"

    assert await flaky() == "ok"
    assert attempts == 3


@pytest.mark.asyncio
async def test_async_retry_gives_up():
    """The last failure propagates once retries are exhausted."""
    attempts = 0

    @async_retry(RetryConfig(max_retries=2, base_delay=0))
    async def always_fails():
        nonlocal attempts
        attempts += 1
        raise UpstreamFetchError(f"attempt {attempts}")

    with pytest.raises(UpstreamFetchError, match="attempt 3"):
        await always_fails()


@pytest.mark.asyncio
async def test_async_retry_ignores_other_errors():
    """Only the configured exception types are retried."""
    attempts = 0

    @async_retry(RetryConfig(max_retries=3, base_delay=0))
    async def invalid():
        nonlocal attempts
        attempts += 1
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await invalid()
    assert attempts == 1


@pytest.mark.asyncio
async def test_call_upstream_returns_result():
    async def fetch():
        return 42

    assert await call_upstream(fetch(), timeout=1.0, description="answer") == 42


@pytest.mark.asyncio
async def test_call_upstream_timeout():
    """Slow calls are abandoned and reported as upstream failures."""

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(UpstreamFetchError, match="price of ETH timed out after 0.01s"):
        await call_upstream(slow(), timeout=0.01, description="price of ETH")


@pytest.mark.asyncio
async def test_call_upstream_wraps_unexpected_errors():
    async def broken():
        raise RuntimeError("socket closed")

    with pytest.raises(UpstreamFetchError, match="balance failed: socket closed") as excinfo:
        await call_upstream(broken(), timeout=None, description="balance")

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_call_upstream_keeps_upstream_errors():
    error = UpstreamFetchError("node unavailable")

    async def failing():
        raise error

    with pytest.raises(UpstreamFetchError) as excinfo:
        await call_upstream(failing(), timeout=None, description="balance")

    assert excinfo.value is error
