"""Storage interfaces for course generation jobs."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import JobRecord, JobStage, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def claim_job(self, course_id: str, *, job_id: str, stale_seconds: float, restart_succeeded: bool = True) -> tuple[JobRecord, bool]:
    """Atomically reuse a running job or reset/create one in ``pending``.

    Returns the job and whether a new run should be scheduled. A job that is still
    running is returned unchanged. When ``restart_succeeded`` is false a succeeded job
    is returned unchanged as well.
    """

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def get_job_for_course(self, course_id: str) -> JobRecord | None:
    """Fetch the job attached to a course."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    stage: JobStage | None = None,
    attempts: int | None = None,
    error_message: str | None = None,
    result_json: dict[str, Any] | None = None,
  ) -> JobRecord | None:
    """Apply partial updates to a job and refresh ``updated_at``."""
