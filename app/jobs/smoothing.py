"""Client-facing progress smoothing between persisted checkpoints.

Persisted progress jumps when a pass finishes. Polling clients interpolate between
checkpoints so the bar keeps moving, without ever running ahead of the next real
checkpoint or going backwards.
"""

from __future__ import annotations

import time
from collections.abc import Callable

ADVANCE_PER_SECOND = 0.5
MAX_LEAD = 5.0
SMOOTHING_CEILING = 95.0
# Smoothed values stay this far below the next checkpoint.
THRESHOLD_GAP = 0.01


def smooth_progress(last_checkpoint: float, seconds_since_checkpoint: float, next_threshold: float | None = None, *, previous: float = 0.0, completed: bool = False) -> float:
  """Return the displayed progress for a poll.

  The value advances from ``last_checkpoint`` at a fixed rate and is capped at the
  lowest of just under ``next_threshold``, five points past the checkpoint, and 95.
  Only a persisted checkpoint reaches the threshold. The value never drops below
  ``previous`` or the checkpoint itself.
  """
  if completed:
    return 100.0

  checkpoint = min(100.0, max(0.0, last_checkpoint))
  cap = min(checkpoint + MAX_LEAD, SMOOTHING_CEILING)
  if next_threshold is not None:
    cap = min(cap, next_threshold - THRESHOLD_GAP)
  cap = max(cap, checkpoint)

  advanced = checkpoint + max(0.0, seconds_since_checkpoint) * ADVANCE_PER_SECOND
  return round(max(previous, checkpoint, min(advanced, cap)), 2)


class ProgressSmoother:
  """Track the last displayed value for one run and smooth successive polls."""

  def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
    self._clock = clock
    self._checkpoint = 0.0
    self._checkpoint_at = clock()
    self._displayed = 0.0

  @property
  def displayed(self) -> float:
    return self._displayed

  def update(self, checkpoint: float, *, next_threshold: float | None = None, completed: bool = False) -> float:
    """Feed the latest persisted progress and return the value to display."""
    if checkpoint != self._checkpoint:
      self._checkpoint = checkpoint
      self._checkpoint_at = self._clock()
    elapsed = self._clock() - self._checkpoint_at
    self._displayed = smooth_progress(self._checkpoint, elapsed, next_threshold, previous=self._displayed, completed=completed)
    return self._displayed

  def reset(self) -> None:
    """Start a new run; only then may the displayed value go back to zero."""
    self._checkpoint = 0.0
    self._checkpoint_at = self._clock()
    self._displayed = 0.0
