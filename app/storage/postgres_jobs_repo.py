"""Postgres-backed repository for course generation jobs using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from app.core.database import get_session_factory
from app.jobs.models import JobRecord, JobStage, JobStatus, now_iso
from app.schema.courses import Course
from app.schema.jobs import PipelineJob
from app.storage.jobs_repo import JobsRepository


class PostgresJobsRepository(JobsRepository):
  """Persist jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def claim_job(self, course_id: str, *, job_id: str, stale_seconds: float, restart_succeeded: bool = True) -> tuple[JobRecord, bool]:
    async with self._session_factory() as session:
      # Lock the course row so concurrent triggers for the same course serialize here.
      course = (await session.execute(select(Course).where(Course.course_id == course_id).with_for_update())).scalar_one_or_none()
      if course is None:
        raise LookupError(f"Course {course_id} not found")

      row = (await session.execute(select(PipelineJob).where(PipelineJob.course_id == course_id).with_for_update())).scalar_one_or_none()
      timestamp = now_iso()
      if row is not None:
        existing = self._model_to_record(row)
        if existing.is_running(stale_seconds, now=timestamp) or (existing.status == "succeeded" and not restart_succeeded):
          await session.rollback()
          return existing, False
        row.status = "pending"
        row.stage = None
        row.error_message = None
        row.result_json = None
        row.updated_at = timestamp
      else:
        row = PipelineJob(job_id=job_id, course_id=course_id, status="pending", stage=None, attempts=0, created_at=timestamp, updated_at=timestamp)
        session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row), True

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(PipelineJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_job_for_course(self, course_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(select(PipelineJob).where(PipelineJob.course_id == course_id))).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

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
    async with self._session_factory() as session:
      row = await session.get(PipelineJob, job_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if stage is not None:
        row.stage = stage
      if attempts is not None:
        row.attempts = attempts
      if error_message is not None:
        row.error_message = error_message
      if result_json is not None:
        row.result_json = result_json
      row.updated_at = now_iso()
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  def _model_to_record(self, row: PipelineJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      course_id=row.course_id,
      status=row.status,
      stage=row.stage,
      attempts=int(row.attempts or 0),
      error_message=row.error_message,
      result_json=row.result_json,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )
