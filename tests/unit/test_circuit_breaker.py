from __future__ import annotations

import asyncio

import pytest

from app.ai.circuit_breaker import CircuitBreaker, CircuitOpenError


class FakeClock:
  def __init__(self) -> None:
    self.now = 1000.0

  def __call__(self) -> float:
    return self.now


async def _ok() -> str:
  return "ok"


async def _boom() -> str:
  raise RuntimeError("vision backend unavailable")


async def _fail(breaker: CircuitBreaker, times: int) -> None:
  for _ in range(times):
    with pytest.raises(RuntimeError):
      await breaker.call(_boom)


@pytest.mark.anyio
async def test_opens_after_consecutive_failures_and_rejects_fast() -> None:
  clock = FakeClock()
  breaker = CircuitBreaker("vision", failure_threshold=3, cooldown_seconds=120, clock=clock)

  await _fail(breaker, 3)
  assert breaker.state == "open"

  calls = []

  async def _tracked() -> str:
    calls.append(1)
    return "ok"

  with pytest.raises(CircuitOpenError) as excinfo:
    await breaker.call(_tracked)
  assert calls == []
  assert excinfo.value.retry_after == pytest.approx(120)
  assert breaker.stats().total_rejections == 1


@pytest.mark.anyio
async def test_success_resets_failure_streak() -> None:
  breaker = CircuitBreaker("vision", failure_threshold=3, clock=FakeClock())

  await _fail(breaker, 2)
  assert await breaker.call(_ok) == "ok"
  await _fail(breaker, 2)

  assert breaker.state == "closed"
  assert breaker.stats().consecutive_failures == 2


@pytest.mark.anyio
async def test_half_open_trial_success_closes() -> None:
  clock = FakeClock()
  breaker = CircuitBreaker("vision", failure_threshold=1, cooldown_seconds=60, clock=clock)
  await _fail(breaker, 1)

  clock.now += 61
  assert breaker.state == "half-open"
  assert await breaker.call(_ok) == "ok"
  assert breaker.state == "closed"


@pytest.mark.anyio
async def test_half_open_trial_failure_reopens() -> None:
  clock = FakeClock()
  breaker = CircuitBreaker("vision", failure_threshold=1, cooldown_seconds=60, clock=clock)
  await _fail(breaker, 1)

  clock.now += 61
  await _fail(breaker, 1)

  assert breaker.state == "open"
  with pytest.raises(CircuitOpenError):
    await breaker.call(_ok)


@pytest.mark.anyio
async def test_call_admitted_before_opening_cannot_close_breaker() -> None:
  clock = FakeClock()
  breaker = CircuitBreaker("vision", failure_threshold=3, cooldown_seconds=120, clock=clock)
  release = asyncio.Event()

  async def _slow() -> str:
    await release.wait()
    return "late"

  slow = asyncio.create_task(breaker.call(_slow))
  await asyncio.sleep(0)
  await _fail(breaker, 3)
  assert breaker.state == "open"

  release.set()
  assert await slow == "late"

  assert breaker.state == "open"
  assert breaker.stats().consecutive_failures == 3
  with pytest.raises(CircuitOpenError):
    await breaker.call(_ok)

  clock.now += 121
  assert breaker.state == "half-open"
  assert await breaker.call(_ok) == "ok"
  assert breaker.state == "closed"


@pytest.mark.anyio
async def test_late_failure_does_not_restart_cooldown() -> None:
  clock = FakeClock()
  breaker = CircuitBreaker("vision", failure_threshold=1, cooldown_seconds=60, clock=clock)
  release = asyncio.Event()

  async def _slow_boom() -> str:
    await release.wait()
    raise RuntimeError("late timeout")

  slow = asyncio.create_task(breaker.call(_slow_boom))
  await asyncio.sleep(0)
  await _fail(breaker, 1)
  opened_at = breaker.stats().opened_at

  clock.now += 30
  release.set()
  with pytest.raises(RuntimeError):
    await slow

  assert breaker.stats().opened_at == opened_at
  clock.now += 31
  assert breaker.state == "half-open"


@pytest.mark.anyio
async def test_reset_closes_open_breaker() -> None:
  breaker = CircuitBreaker("vision", failure_threshold=1, clock=FakeClock())
  await _fail(breaker, 1)

  await breaker.reset()

  assert breaker.state == "closed"
  assert await breaker.call(_ok) == "ok"


def test_threshold_must_be_positive() -> None:
  with pytest.raises(ValueError):
    CircuitBreaker("vision", failure_threshold=0)
