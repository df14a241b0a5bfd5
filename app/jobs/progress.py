"""Serialized, monotonic progress writes for content generation status rows."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.jobs.models import ContentKind, ContentStatus, now_iso
from app.jobs.steps import STEP_PLANS, StepPlan
from app.storage.courses_repo import CoursesRepository

logger = logging.getLogger(__name__)

_PROGRESS_EXTRAS = frozenset({"section_index", "total_sections", "partial_content"})


class ContentProgressWriter:
  """Single writer for one (course, kind) status row during a run.

  Concurrent section tasks share one writer. Each write is a read-modify-write under
  an ``asyncio.Lock`` so updates are never lost, and the reported value never drops
  below what this run already reported.
  """

  def __init__(self, repo: CoursesRepository, course_id: str, kind: ContentKind, *, plan: StepPlan | None = None, guard: Callable[[], Awaitable[None]] | None = None) -> None:
    self._repo = repo
    self._course_id = course_id
    self._kind = kind
    self._plan = plan or STEP_PLANS[kind]
    self._guard = guard
    self._lock = asyncio.Lock()
    self._progress = 0.0

  @property
  def kind(self) -> ContentKind:
    return self._kind

  @property
  def progress(self) -> float:
    return self._progress

  async def _check(self) -> None:
    if self._guard is not None:
      await self._guard()

  async def start(self) -> None:
    """Open a new run: status ``generating`` at zero progress."""
    async with self._lock:
      await self._check()
      self._progress = 0.0
      await self._repo.update_content_status(
        self._course_id,
        self._kind,
        status="generating",
        progress=0.0,
        current_step=self._plan.steps[0].name,
        error_message=None,
        started_at=now_iso(),
        completed_at=None,
        content=None,
        partial_content=None,
        section_index=None,
        total_sections=None,
      )

  async def advance(self, step: str, fraction: float = 1.0, **extra: Any) -> float:
    """Report ``fraction`` of the work inside ``step``."""
    return await self.report(self._plan.progress_for(step, fraction), step, **extra)

  async def report(self, progress: float, step: str | None = None, **extra: Any) -> float:
    unknown = set(extra) - _PROGRESS_EXTRAS
    if unknown:
      raise ValueError(f"Unsupported progress fields: {sorted(unknown)}")
    async with self._lock:
      value = max(self._progress, min(100.0, max(0.0, float(progress))))
      await self._check()
      await self._repo.update_content_status(self._course_id, self._kind, progress=value, current_step=step or self._plan.current_step(value), **extra)
      self._progress = value
      logger.debug("Progress course=%s kind=%s step=%s progress=%.2f", self._course_id, self._kind, step, value)
      return value

  async def finish(self, status: ContentStatus, *, content: str | None = None) -> None:
    """Close the run at 100%."""
    async with self._lock:
      await self._check()
      self._progress = 100.0
      await self._repo.update_content_status(self._course_id, self._kind, status=status, progress=100.0, current_step="completed", completed_at=now_iso(), content=content, partial_content=None)

  async def fail(self, message: str) -> None:
    """Record a failed run, keeping the progress reached so far."""
    async with self._lock:
      await self._repo.update_content_status(self._course_id, self._kind, status="failed", current_step="failed", error_message=message, completed_at=now_iso())
