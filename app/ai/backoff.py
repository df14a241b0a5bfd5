"""Retry logic with exponential backoff for transient dependency errors."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from app.ai.circuit_breaker import CircuitOpenError
from app.ai.errors import TransientDependencyError, is_transient_error

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
  """Bounded exponential backoff settings."""

  max_retries: int = 3
  base_delay: float = 1.0
  max_delay: float = 30.0
  jitter: float = 0.25

  def delay_for(self, attempt: int, *, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Return the sleep before retry ``attempt`` (0-based)."""
    delay = min(self.base_delay * (2**attempt), self.max_delay)
    if self.jitter:
      # Add +/-25% jitter to avoid synchronized retries across jobs.
      spread = delay * self.jitter
      delay += rng(-spread, spread)
    return max(0.0, min(delay, self.max_delay))


DEFAULT_POLICY = RetryPolicy()
FAST_POLICY = RetryPolicy(max_retries=2, base_delay=0.5, max_delay=5.0)


async def retry_with_backoff(func: Callable[[], Awaitable[T]], *, policy: RetryPolicy = DEFAULT_POLICY, operation: str = "ai_call", sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> T:
  """
  Execute ``func`` and retry transient failures.

  Breaker rejections and non-transient errors are raised immediately. Once the budget is
  spent the last transient error is raised as ``TransientDependencyError``.
  """
  attempt = 0
  while True:
    try:
      return await func()
    except CircuitOpenError:
      raise
    except Exception as exc:
      if not is_transient_error(exc):
        raise
      if attempt >= policy.max_retries:
        logger.error("Transient failure persisted: operation=%s attempts=%d error=%s", operation, attempt + 1, exc)
        if isinstance(exc, TransientDependencyError):
          raise
        raise TransientDependencyError(f"{operation} failed after {attempt + 1} attempts: {exc}") from exc
      delay = policy.delay_for(attempt)
      logger.warning("Retry attempt %d/%d for %s in %.1fs. Error: %s", attempt + 1, policy.max_retries, operation, delay, exc)
      await sleep(delay)
      attempt += 1
