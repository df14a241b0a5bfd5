from __future__ import annotations

import pytest

from app.ai.backoff import RetryPolicy, retry_with_backoff
from app.ai.circuit_breaker import CircuitOpenError
from app.ai.errors import TransientDependencyError, is_output_error, is_transient_error


class RateLimited(Exception):
  code = 429


def test_delay_doubles_and_caps() -> None:
  policy = RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=0)

  assert [policy.delay_for(attempt) for attempt in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


def test_jitter_stays_within_quarter() -> None:
  policy = RetryPolicy(base_delay=4.0, max_delay=30.0)

  assert policy.delay_for(0, rng=lambda low, high: high) == 5.0
  assert policy.delay_for(0, rng=lambda low, high: low) == 3.0


def test_error_classification() -> None:
  assert is_transient_error(RateLimited("slow down"))
  assert is_transient_error(TimeoutError())
  assert is_transient_error(RuntimeError("503 Service Unavailable"))
  assert not is_transient_error(ValueError("Unsupported Gemini model 'x'."))
  assert is_output_error(ValueError("Gemini returned invalid JSON: expected an object"))


@pytest.mark.anyio
async def test_retries_transient_errors_then_succeeds() -> None:
  sleeps: list[float] = []
  attempts = {"count": 0}

  async def _sleep(delay: float) -> None:
    sleeps.append(delay)

  async def _call() -> str:
    attempts["count"] += 1
    if attempts["count"] < 3:
      raise RateLimited("rate limit")
    return "done"

  result = await retry_with_backoff(_call, policy=RetryPolicy(max_retries=3, jitter=0), sleep=_sleep)

  assert result == "done"
  assert sleeps == [1.0, 2.0]


@pytest.mark.anyio
async def test_exhausted_budget_raises_transient_error() -> None:
  async def _sleep(delay: float) -> None:
    return None

  async def _call() -> str:
    raise RateLimited("rate limit")

  with pytest.raises(TransientDependencyError):
    await retry_with_backoff(_call, policy=RetryPolicy(max_retries=2, jitter=0), sleep=_sleep)


@pytest.mark.anyio
async def test_non_transient_and_breaker_errors_are_not_retried() -> None:
  calls = {"count": 0}

  async def _sleep(delay: float) -> None:
    raise AssertionError("should not sleep")

  async def _bad_request() -> str:
    calls["count"] += 1
    raise ValueError("bad request")

  async def _open() -> str:
    calls["count"] += 1
    raise CircuitOpenError("vision", 30)

  with pytest.raises(ValueError):
    await retry_with_backoff(_bad_request, sleep=_sleep)
  with pytest.raises(CircuitOpenError):
    await retry_with_backoff(_open, sleep=_sleep)
  assert calls["count"] == 2
