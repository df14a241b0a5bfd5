"""Storage interfaces for courses, their outline, generated artifacts and status rows."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import ContentKind, ContentStatusRecord, CourseRecord, CourseStatus, FlashcardRecord, QuestionRecord, SectionRecord, SectionStatus


class CoursesRepository(Protocol):
  """Repository contract for course persistence."""

  async def create_course(self, record: CourseRecord, pages: list[str]) -> None:
    """Persist a course, its document pages and pending status rows."""

  async def get_course(self, course_id: str) -> CourseRecord | None:
    """Fetch a course by identifier."""

  async def get_pages(self, course_id: str) -> list[str]:
    """Return the immutable page texts of a course document."""

  async def update_course(self, course_id: str, *, status: CourseStatus) -> CourseRecord | None:
    """Update the course lifecycle status."""

  async def replace_sections(self, course_id: str, sections: list[SectionRecord]) -> None:
    """Replace the persisted outline of a course."""

  async def list_sections(self, course_id: str) -> list[SectionRecord]:
    """Return the outline ordered by position."""

  async def update_section(self, course_id: str, section_id: str, *, status: SectionStatus | None = None, inventory: dict[str, list[str]] | None = None) -> None:
    """Apply partial updates to one section."""

  async def fail_processing_sections(self, course_id: str) -> int:
    """Mark sections still ``processing`` as ``failed`` and return how many changed."""

  async def add_section_artifacts(self, course_id: str, section_id: str, questions: list[QuestionRecord], flashcards: list[FlashcardRecord]) -> None:
    """Replace the questions and flashcards generated for one section."""

  async def clear_artifacts(self, course_id: str) -> None:
    """Delete every generated question and flashcard of a course."""

  async def count_questions(self, course_id: str) -> int:
    """Count the questions persisted for a course."""

  async def count_flashcards(self, course_id: str) -> int:
    """Count the flashcards persisted for a course."""

  async def list_questions(self, course_id: str) -> list[QuestionRecord]:
    """Return the questions of a course in insertion order."""

  async def list_flashcards(self, course_id: str) -> list[FlashcardRecord]:
    """Return the flashcards of a course in insertion order."""

  async def get_content_status(self, course_id: str, kind: ContentKind) -> ContentStatusRecord | None:
    """Fetch the status row for one artifact kind."""

  async def update_content_status(self, course_id: str, kind: ContentKind, **fields: Any) -> ContentStatusRecord | None:
    """Overwrite the given fields of a status row. ``None`` values are written as-is."""

  async def reset_content_statuses(self, course_id: str) -> None:
    """Reset every status row of a course to ``pending`` with zero progress."""
