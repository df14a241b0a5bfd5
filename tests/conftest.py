"""Shared fixtures: in-memory repositories and scripted AI doubles."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from typing import Any

# Ensure required settings are available before importing the app.
os.environ.setdefault("COURSEGEN_ALLOWED_ORIGINS", "http://localhost")

import pytest  # noqa: E402

from app.ai.providers.base import AIModel, Attachment, StructuredModelResponse  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.jobs.models import CONTENT_KINDS, ContentStatusRecord, CourseRecord, FlashcardRecord, GraphicRecord, JobRecord, QuestionRecord, SectionRecord, now_iso  # noqa: E402
from app.storage.graphics_repo import needs_reanalysis  # noqa: E402


class InMemoryJobsRepo:
  """In-memory jobs repository mirroring the Postgres claim semantics."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}

  async def claim_job(self, course_id: str, *, job_id: str, stale_seconds: float, restart_succeeded: bool = True) -> tuple[JobRecord, bool]:
    timestamp = now_iso()
    existing = next((job for job in self.jobs.values() if job.course_id == course_id), None)
    if existing is not None:
      if existing.is_running(stale_seconds, now=timestamp) or (existing.status == "succeeded" and not restart_succeeded):
        return existing, False
      reset = replace(existing, status="pending", stage=None, error_message=None, result_json=None, updated_at=timestamp)
      self.jobs[existing.job_id] = reset
      return reset, True
    record = JobRecord(job_id=job_id, course_id=course_id, status="pending", created_at=timestamp, updated_at=timestamp)
    self.jobs[job_id] = record
    return record, True

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self.jobs.get(job_id)

  async def get_job_for_course(self, course_id: str) -> JobRecord | None:
    return next((job for job in self.jobs.values() if job.course_id == course_id), None)

  async def update_job(self, job_id: str, **kwargs: Any) -> JobRecord | None:
    record = self.jobs.get(job_id)
    if record is None:
      return None
    updated = replace(record, updated_at=now_iso(), **{key: value for key, value in kwargs.items() if value is not None})
    self.jobs[job_id] = updated
    return updated

  def seed(self, record: JobRecord) -> JobRecord:
    self.jobs[record.job_id] = record
    return record


class InMemoryCoursesRepo:
  """In-memory courses repository."""

  def __init__(self) -> None:
    self.courses: dict[str, CourseRecord] = {}
    self.pages: dict[str, list[str]] = {}
    self.sections: dict[str, list[SectionRecord]] = {}
    self.questions: dict[str, list[QuestionRecord]] = {}
    self.flashcards: dict[str, list[FlashcardRecord]] = {}
    self.statuses: dict[tuple[str, str], ContentStatusRecord] = {}
    self.status_writes: list[tuple[str, dict[str, Any]]] = []

  async def create_course(self, record: CourseRecord, pages: list[str]) -> None:
    self.courses[record.course_id] = record
    self.pages[record.course_id] = list(pages)
    for kind in CONTENT_KINDS:
      self.statuses[(record.course_id, kind)] = ContentStatusRecord(course_id=record.course_id, kind=kind)

  async def get_course(self, course_id: str) -> CourseRecord | None:
    return self.courses.get(course_id)

  async def get_pages(self, course_id: str) -> list[str]:
    return list(self.pages.get(course_id, []))

  async def update_course(self, course_id: str, *, status: str) -> CourseRecord | None:
    record = self.courses.get(course_id)
    if record is None:
      return None
    self.courses[course_id] = replace(record, status=status, updated_at=now_iso())
    return self.courses[course_id]

  async def replace_sections(self, course_id: str, sections: list[SectionRecord]) -> None:
    self.sections[course_id] = list(sections)

  async def list_sections(self, course_id: str) -> list[SectionRecord]:
    return sorted(self.sections.get(course_id, []), key=lambda record: record.position)

  async def update_section(self, course_id: str, section_id: str, *, status: str | None = None, inventory: dict[str, list[str]] | None = None) -> None:
    records = self.sections.get(course_id, [])
    for position, record in enumerate(records):
      if record.section_id == section_id:
        changes = {key: value for key, value in {"status": status, "inventory": inventory}.items() if value is not None}
        records[position] = replace(record, **changes)

  async def fail_processing_sections(self, course_id: str) -> int:
    records = self.sections.get(course_id, [])
    changed = 0
    for position, record in enumerate(records):
      if record.status == "processing":
        records[position] = replace(record, status="failed")
        changed += 1
    return changed

  async def add_section_artifacts(self, course_id: str, section_id: str, questions: list[QuestionRecord], flashcards: list[FlashcardRecord]) -> None:
    self.questions[course_id] = [item for item in self.questions.get(course_id, []) if item.section_id != section_id] + list(questions)
    self.flashcards[course_id] = [item for item in self.flashcards.get(course_id, []) if item.section_id != section_id] + list(flashcards)

  async def clear_artifacts(self, course_id: str) -> None:
    self.questions[course_id] = []
    self.flashcards[course_id] = []

  async def count_questions(self, course_id: str) -> int:
    return len(self.questions.get(course_id, []))

  async def count_flashcards(self, course_id: str) -> int:
    return len(self.flashcards.get(course_id, []))

  async def list_questions(self, course_id: str) -> list[QuestionRecord]:
    return list(self.questions.get(course_id, []))

  async def list_flashcards(self, course_id: str) -> list[FlashcardRecord]:
    return list(self.flashcards.get(course_id, []))

  async def get_content_status(self, course_id: str, kind: str) -> ContentStatusRecord | None:
    return self.statuses.get((course_id, kind))

  async def update_content_status(self, course_id: str, kind: str, **fields: Any) -> ContentStatusRecord | None:
    record = self.statuses.get((course_id, kind)) or ContentStatusRecord(course_id=course_id, kind=kind)
    self.statuses[(course_id, kind)] = replace(record, **fields)
    self.status_writes.append((kind, dict(fields)))
    return self.statuses[(course_id, kind)]

  async def reset_content_statuses(self, course_id: str) -> None:
    for kind in CONTENT_KINDS:
      self.statuses[(course_id, kind)] = ContentStatusRecord(course_id=course_id, kind=kind)

  def seed(self, course_id: str, pages: list[str], *, title: str = "Course", status: str = "pending") -> CourseRecord:
    timestamp = now_iso()
    record = CourseRecord(course_id=course_id, title=title, status=status, page_count=len(pages), created_at=timestamp, updated_at=timestamp)
    self.courses[course_id] = record
    self.pages[course_id] = list(pages)
    for kind in CONTENT_KINDS:
      self.statuses[(course_id, kind)] = ContentStatusRecord(course_id=course_id, kind=kind)
    return record


class InMemoryGraphicsRepo:
  """In-memory graphics repository."""

  def __init__(self) -> None:
    self.graphics: dict[str, GraphicRecord] = {}

  async def add_graphics(self, records: list[GraphicRecord]) -> None:
    for record in records:
      self.graphics[record.graphic_id] = record

  async def list_graphics(self, course_id: str) -> list[GraphicRecord]:
    return sorted((record for record in self.graphics.values() if record.course_id == course_id), key=lambda record: record.page_number)

  async def list_for_reanalysis(self, course_id: str, *, limit: int) -> list[GraphicRecord]:
    return [record for record in await self.list_graphics(course_id) if needs_reanalysis(record)][:limit]

  async def update_analysis(self, graphic_id: str, **fields: Any) -> GraphicRecord | None:
    record = self.graphics.get(graphic_id)
    if record is None:
      return None
    self.graphics[graphic_id] = replace(record, **fields)
    return self.graphics[graphic_id]


Responder = Callable[[str, dict[str, Any], list[Attachment] | None], Awaitable[dict[str, Any]]]


class ScriptedModel(AIModel):
  """Model double that replays queued results; exceptions in the queue are raised."""

  def __init__(self, results: list[Any] | None = None, *, responder: Responder | None = None, name: str = "scripted") -> None:
    self.name = name
    self.supports_vision = True
    self._results = list(results or [])
    self._responder = responder
    self.calls: list[str] = []

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, attachments: list[Attachment] | None = None) -> StructuredModelResponse:
    self.calls.append(prompt)
    if self._responder is not None:
      return StructuredModelResponse(content=await self._responder(prompt, schema, attachments))
    result = self._results.pop(0)
    if isinstance(result, BaseException):
      raise result
    return StructuredModelResponse(content=result)


PassHandler = Callable[[Mapping[str, Any]], Any]


class FakePassRunner:
  """Runner double keyed by pass name; handlers return contract models or raise."""

  def __init__(self, handlers: dict[str, PassHandler]) -> None:
    self._handlers = handlers
    self.calls: list[str] = []

  async def run(self, spec: Any, payload: Mapping[str, Any], *, attachments: list[Attachment] | None = None) -> Any:
    self.calls.append(spec.name)
    result = self._handlers[spec.name](payload)
    if isinstance(result, Awaitable):
      result = await result
    return result


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), max_concurrent_sections=2, stale_job_seconds=300, completeness_threshold=70.0)


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def courses_repo() -> InMemoryCoursesRepo:
  return InMemoryCoursesRepo()


@pytest.fixture
def graphics_repo() -> InMemoryGraphicsRepo:
  return InMemoryGraphicsRepo()


@pytest.fixture
def scripted_model() -> type[ScriptedModel]:
  return ScriptedModel


@pytest.fixture
def fake_runner() -> type[FakePassRunner]:
  return FakePassRunner
