"""Tests for RetryPolicy."""

from __future__ import annotations

import asyncio
import time

import pytest

from hireflow_notifications.exceptions import ConfigurationError
from hireflow_notifications.retry import RetryPolicy


def test_defaults() -> None:
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.backoff == (1.0, 3.0)


def test_should_retry() -> None:
    policy = RetryPolicy(max_attempts=3)
    assert policy.should_retry(1) is True
    assert policy.should_retry(2) is True
    assert policy.should_retry(3) is False
    assert policy.should_retry(0) is False


def test_delay_indexed_by_failed_attempt() -> None:
    policy = RetryPolicy()
    assert policy.delay_for_attempt(1) == 1.0
    assert policy.delay_for_attempt(2) == 3.0
    assert policy.delay_for_attempt(3) == 0.0
    assert policy.delay_for_attempt(0) == 0.0


def test_schedule_length_must_match_attempts() -> None:
    with pytest.raises(ConfigurationError, match="backoff schedule needs 2"):
        RetryPolicy(max_attempts=3, backoff=(1.0, 3.0, 10.0))
    with pytest.raises(ConfigurationError, match="backoff schedule needs 0"):
        RetryPolicy(max_attempts=1, backoff=(1.0,))
    assert RetryPolicy(max_attempts=1, backoff=()).should_retry(1) is False


def test_invalid_values_raise() -> None:
    with pytest.raises(ConfigurationError, match=r"max_attempts"):
        RetryPolicy(max_attempts=0, backoff=())
    with pytest.raises(ConfigurationError, match=">= 0"):
        RetryPolicy(max_attempts=2, backoff=(-1.0,))


@pytest.mark.asyncio
async def test_wait_completes_when_not_cancelled() -> None:
    policy = RetryPolicy(max_attempts=2, backoff=(0.01,))
    t0 = time.monotonic()
    assert await policy.wait_before_retry(1, asyncio.Event()) is True
    assert time.monotonic() - t0 >= 0.01


@pytest.mark.asyncio
async def test_wait_interrupted_by_cancellation() -> None:
    policy = RetryPolicy(max_attempts=2, backoff=(5.0,))
    cancelled = asyncio.Event()
    asyncio.get_running_loop().call_later(0.02, cancelled.set)
    t0 = time.monotonic()
    assert await policy.wait_before_retry(1, cancelled) is False
    assert time.monotonic() - t0 < 1.0


@pytest.mark.asyncio
async def test_wait_returns_immediately_if_already_cancelled() -> None:
    cancelled = asyncio.Event()
    cancelled.set()
    assert await RetryPolicy().wait_before_retry(1, cancelled) is False
