"""Postgres-backed repository for courses, outlines, artifacts and status rows."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select, update

from app.core.database import get_session_factory
from app.jobs.models import CONTENT_KINDS, ContentKind, ContentStatusRecord, CourseRecord, CourseStatus, FlashcardRecord, QuestionRecord, SectionRecord, SectionStatus
from app.schema.courses import ContentGenerationStatus, Course, CourseDocument, CourseSection, Flashcard, GeneratedQuestion
from app.storage.courses_repo import CoursesRepository

_STATUS_FIELDS = frozenset(
  {"status", "progress", "current_step", "error_message", "started_at", "completed_at", "content", "partial_content", "section_index", "total_sections"}
)


class PostgresCoursesRepository(CoursesRepository):
  """Persist courses and their generated content to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_course(self, record: CourseRecord, pages: list[str]) -> None:
    async with self._session_factory() as session:
      session.add(Course(course_id=record.course_id, title=record.title, status=record.status, page_count=record.page_count))
      # Flush the parent row before children reference it.
      await session.flush()
      session.add(CourseDocument(course_id=record.course_id, pages=list(pages)))
      for kind in CONTENT_KINDS:
        session.add(ContentGenerationStatus(course_id=record.course_id, kind=kind, status="pending", progress=0))
      await session.commit()

  async def get_course(self, course_id: str) -> CourseRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Course, course_id)
      if row is None:
        return None
      return self._course_to_record(row)

  async def get_pages(self, course_id: str) -> list[str]:
    async with self._session_factory() as session:
      row = await session.get(CourseDocument, course_id)
      if row is None:
        return []
      return [str(page) for page in row.pages]

  async def update_course(self, course_id: str, *, status: CourseStatus) -> CourseRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Course, course_id)
      if row is None:
        return None
      row.status = status
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._course_to_record(row)

  async def replace_sections(self, course_id: str, sections: list[SectionRecord]) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(CourseSection).where(CourseSection.course_id == course_id))
      for record in sections:
        session.add(
          CourseSection(
            course_id=course_id,
            section_id=record.section_id,
            parent_id=record.parent_id,
            position=record.position,
            title=record.title,
            level=record.level,
            page_start=record.page_start,
            page_end=record.page_end,
            anchor_page=record.anchor_page,
            start_marker=record.start_marker,
            end_marker=record.end_marker,
            inventory=record.inventory,
            status=record.status,
          )
        )
      await session.commit()

  async def list_sections(self, course_id: str) -> list[SectionRecord]:
    async with self._session_factory() as session:
      stmt = select(CourseSection).where(CourseSection.course_id == course_id).order_by(CourseSection.position.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._section_to_record(row) for row in rows]

  async def update_section(self, course_id: str, section_id: str, *, status: SectionStatus | None = None, inventory: dict[str, list[str]] | None = None) -> None:
    async with self._session_factory() as session:
      row = await session.get(CourseSection, (course_id, section_id))
      if row is None:
        return
      if status is not None:
        row.status = status
      if inventory is not None:
        row.inventory = inventory
      session.add(row)
      await session.commit()

  async def fail_processing_sections(self, course_id: str) -> int:
    async with self._session_factory() as session:
      stmt = update(CourseSection).where(CourseSection.course_id == course_id, CourseSection.status == "processing").values(status="failed")
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  async def add_section_artifacts(self, course_id: str, section_id: str, questions: list[QuestionRecord], flashcards: list[FlashcardRecord]) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(GeneratedQuestion).where(GeneratedQuestion.course_id == course_id, GeneratedQuestion.section_id == section_id))
      await session.execute(delete(Flashcard).where(Flashcard.course_id == course_id, Flashcard.section_id == section_id))
      for question in questions:
        session.add(GeneratedQuestion(course_id=course_id, section_id=section_id, question=question.question, options=question.options, answer_index=question.answer_index, explanation=question.explanation))
      for card in flashcards:
        session.add(Flashcard(course_id=course_id, section_id=section_id, front=card.front, back=card.back))
      await session.commit()

  async def clear_artifacts(self, course_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(GeneratedQuestion).where(GeneratedQuestion.course_id == course_id))
      await session.execute(delete(Flashcard).where(Flashcard.course_id == course_id))
      await session.commit()

  async def count_questions(self, course_id: str) -> int:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(GeneratedQuestion).where(GeneratedQuestion.course_id == course_id))
      return int(total or 0)

  async def count_flashcards(self, course_id: str) -> int:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(Flashcard).where(Flashcard.course_id == course_id))
      return int(total or 0)

  async def list_questions(self, course_id: str) -> list[QuestionRecord]:
    async with self._session_factory() as session:
      result = await session.execute(select(GeneratedQuestion).where(GeneratedQuestion.course_id == course_id).order_by(GeneratedQuestion.id))
      return [
        QuestionRecord(course_id=row.course_id, section_id=row.section_id, question=row.question, options=list(row.options), answer_index=row.answer_index, explanation=row.explanation)
        for row in result.scalars().all()
      ]

  async def list_flashcards(self, course_id: str) -> list[FlashcardRecord]:
    async with self._session_factory() as session:
      result = await session.execute(select(Flashcard).where(Flashcard.course_id == course_id).order_by(Flashcard.id))
      return [FlashcardRecord(course_id=row.course_id, section_id=row.section_id, front=row.front, back=row.back) for row in result.scalars().all()]

  async def get_content_status(self, course_id: str, kind: ContentKind) -> ContentStatusRecord | None:
    async with self._session_factory() as session:
      row = await self._status_row(session, course_id, kind)
      if row is None:
        return None
      return self._status_to_record(row)

  async def update_content_status(self, course_id: str, kind: ContentKind, **fields: Any) -> ContentStatusRecord | None:
    unknown = set(fields) - _STATUS_FIELDS
    if unknown:
      raise ValueError(f"Unknown content status fields: {sorted(unknown)}")
    async with self._session_factory() as session:
      row = await self._status_row(session, course_id, kind)
      if row is None:
        row = ContentGenerationStatus(course_id=course_id, kind=kind, status="pending", progress=0)
      for name, value in fields.items():
        setattr(row, name, value)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._status_to_record(row)

  async def reset_content_statuses(self, course_id: str) -> None:
    async with self._session_factory() as session:
      for kind in CONTENT_KINDS:
        row = await self._status_row(session, course_id, kind)
        if row is None:
          row = ContentGenerationStatus(course_id=course_id, kind=kind)
        row.status = "pending"
        row.progress = 0
        row.current_step = None
        row.error_message = None
        row.started_at = None
        row.completed_at = None
        row.content = None
        row.partial_content = None
        row.section_index = None
        row.total_sections = None
        session.add(row)
      await session.commit()

  async def _status_row(self, session: Any, course_id: str, kind: str) -> ContentGenerationStatus | None:
    stmt = select(ContentGenerationStatus).where(ContentGenerationStatus.course_id == course_id, ContentGenerationStatus.kind == kind).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()

  def _course_to_record(self, row: Course) -> CourseRecord:
    return CourseRecord(
      course_id=row.course_id,
      title=row.title,
      status=row.status,
      page_count=int(row.page_count),
      created_at=row.created_at.isoformat() if row.created_at is not None else "",
      updated_at=row.updated_at.isoformat() if row.updated_at is not None else "",
    )

  def _section_to_record(self, row: CourseSection) -> SectionRecord:
    return SectionRecord(
      section_id=row.section_id,
      course_id=row.course_id,
      position=int(row.position),
      title=row.title,
      level=row.level,
      page_start=int(row.page_start),
      page_end=int(row.page_end),
      start_marker=row.start_marker or "",
      end_marker=row.end_marker or "",
      anchor_page=row.anchor_page,
      parent_id=row.parent_id,
      inventory=dict(row.inventory or {}),
      status=row.status,
    )

  def _status_to_record(self, row: ContentGenerationStatus) -> ContentStatusRecord:
    return ContentStatusRecord(
      course_id=row.course_id,
      kind=row.kind,
      status=row.status,
      progress=float(row.progress or 0),
      current_step=row.current_step,
      error_message=row.error_message,
      started_at=row.started_at,
      completed_at=row.completed_at,
      content=row.content,
      partial_content=row.partial_content,
      section_index=row.section_index,
      total_sections=row.total_sections,
    )
