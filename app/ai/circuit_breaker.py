"""Circuit breaker guarding calls to a flaky external dependency."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, TypeVar

T = TypeVar("T")
BreakerState = Literal["closed", "open", "half-open"]

logger = logging.getLogger(__name__)


class CircuitOpenError(RuntimeError):
  """Raised when a call is short-circuited by an open breaker."""

  def __init__(self, name: str, retry_after: float) -> None:
    super().__init__(f"Circuit breaker '{name}' is open; retry in {retry_after:.0f}s.")
    self.name = name
    self.retry_after = retry_after


@dataclass(frozen=True)
class BreakerStats:
  """Point-in-time snapshot of a breaker."""

  name: str
  state: BreakerState
  consecutive_failures: int
  total_calls: int
  total_failures: int
  total_rejections: int
  opened_at: float | None


class CircuitBreaker:
  """Closed, open and half-open state machine shared across all courses.

  Consecutive failures at or above ``failure_threshold`` open the breaker. After
  ``cooldown_seconds`` the next call is let through as the single half-open trial.
  """

  def __init__(self, name: str, *, failure_threshold: int = 3, cooldown_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic) -> None:
    if failure_threshold < 1:
      raise ValueError("failure_threshold must be at least 1.")
    self.name = name
    self._failure_threshold = failure_threshold
    self._cooldown_seconds = cooldown_seconds
    self._clock = clock
    self._lock = asyncio.Lock()
    self._state: BreakerState = "closed"
    self._consecutive_failures = 0
    self._opened_at: float | None = None
    self._trial_in_flight = False
    self._total_calls = 0
    self._total_failures = 0
    self._total_rejections = 0

  @property
  def state(self) -> BreakerState:
    # Report half-open as soon as the cooldown has elapsed, before the trial starts.
    if self._state == "open" and self._cooldown_elapsed():
      return "half-open"
    return self._state

  def _cooldown_elapsed(self) -> bool:
    return self._opened_at is not None and self._clock() - self._opened_at >= self._cooldown_seconds

  def _retry_after(self) -> float:
    if self._opened_at is None:
      return 0.0
    return max(0.0, self._cooldown_seconds - (self._clock() - self._opened_at))

  async def _before_call(self) -> bool:
    """Admit or reject a call; returns True when it is the half-open trial."""
    async with self._lock:
      self._total_calls += 1
      if self._state == "open" and self._cooldown_elapsed():
        self._state = "half-open"
        logger.info("Circuit breaker '%s' half-open; allowing one trial call.", self.name)
      if self._state == "open" or (self._state == "half-open" and self._trial_in_flight):
        self._total_rejections += 1
        raise CircuitOpenError(self.name, self._retry_after())
      if self._state == "half-open":
        self._trial_in_flight = True
        return True
      return False

  async def _on_success(self, trial: bool) -> None:
    async with self._lock:
      if not trial:
        # Calls admitted before the breaker opened do not count once it has.
        if self._state == "closed":
          self._consecutive_failures = 0
        return
      self._trial_in_flight = False
      self._state = "closed"
      self._consecutive_failures = 0
      self._opened_at = None
      logger.info("Circuit breaker '%s' closed after successful trial.", self.name)

  async def _on_failure(self, trial: bool) -> None:
    async with self._lock:
      self._total_failures += 1
      if trial:
        self._trial_in_flight = False
        self._consecutive_failures += 1
        self._open()
        return
      if self._state != "closed":
        return
      self._consecutive_failures += 1
      if self._consecutive_failures >= self._failure_threshold:
        self._open()

  def _open(self) -> None:
    self._state = "open"
    self._opened_at = self._clock()
    logger.warning("Circuit breaker '%s' opened after %d consecutive failures.", self.name, self._consecutive_failures)

  async def call(self, func: Callable[[], Awaitable[T]]) -> T:
    """Invoke ``func`` through the breaker, recording its outcome."""
    trial = await self._before_call()
    try:
      result = await func()
    except asyncio.CancelledError:
      # A cancelled trial proves nothing; let the next caller retry it.
      if trial:
        self._trial_in_flight = False
      raise
    except Exception:
      await self._on_failure(trial)
      raise
    await self._on_success(trial)
    return result

  async def reset(self) -> None:
    """Force the breaker closed and clear its failure count."""
    async with self._lock:
      self._state = "closed"
      self._consecutive_failures = 0
      self._opened_at = None
      self._trial_in_flight = False
    logger.info("Circuit breaker '%s' reset.", self.name)

  def stats(self) -> BreakerStats:
    return BreakerStats(
      name=self.name,
      state=self.state,
      consecutive_failures=self._consecutive_failures,
      total_calls=self._total_calls,
      total_failures=self._total_failures,
      total_rejections=self._total_rejections,
      opened_at=self._opened_at,
    )
