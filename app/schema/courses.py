from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class Course(Base):
  """A course built from one uploaded document."""

  __tablename__ = "courses"

  course_id: Mapped[str] = mapped_column(String, primary_key=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)
  page_count: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CourseDocument(Base):
  """Immutable page texts of a course document."""

  __tablename__ = "course_documents"

  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), primary_key=True)
  pages: Mapped[list[str]] = mapped_column(JSONB, nullable=False)


class CourseSection(Base):
  __tablename__ = "course_sections"
  __table_args__ = (UniqueConstraint("course_id", "position", name="ux_course_sections_position"),)

  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), primary_key=True)
  section_id: Mapped[str] = mapped_column(String, primary_key=True)
  parent_id: Mapped[str | None] = mapped_column(String, nullable=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  level: Mapped[str] = mapped_column(String, nullable=False)
  page_start: Mapped[int] = mapped_column(Integer, nullable=False)
  page_end: Mapped[int] = mapped_column(Integer, nullable=False)
  anchor_page: Mapped[int | None] = mapped_column(Integer, nullable=True)
  start_marker: Mapped[str] = mapped_column(Text, nullable=False, default="")
  end_marker: Mapped[str] = mapped_column(Text, nullable=False, default="")
  inventory: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")


class ContentGenerationStatus(Base):
  """Polled progress row for one artifact kind of a course."""

  __tablename__ = "content_generation_status"
  __table_args__ = (UniqueConstraint("course_id", "kind", name="ux_content_generation_status_course_kind"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
  progress: Mapped[float] = mapped_column(Float, nullable=False, default=0)
  current_step: Mapped[str | None] = mapped_column(String, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
  content: Mapped[str | None] = mapped_column(Text, nullable=True)
  partial_content: Mapped[str | None] = mapped_column(Text, nullable=True)
  section_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  total_sections: Mapped[int | None] = mapped_column(Integer, nullable=True)


class GeneratedQuestion(Base):
  __tablename__ = "generated_questions"
  __table_args__ = (Index("ix_generated_questions_course_section", "course_id", "section_id"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False)
  section_id: Mapped[str] = mapped_column(String, nullable=False)
  question: Mapped[str] = mapped_column(Text, nullable=False)
  options: Mapped[list[str]] = mapped_column(JSONB, nullable=False)
  answer_index: Mapped[int] = mapped_column(Integer, nullable=False)
  explanation: Mapped[str | None] = mapped_column(Text, nullable=True)


class Flashcard(Base):
  __tablename__ = "flashcards"
  __table_args__ = (Index("ix_flashcards_course_section", "course_id", "section_id"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False)
  section_id: Mapped[str] = mapped_column(String, nullable=False)
  front: Mapped[str] = mapped_column(Text, nullable=False)
  back: Mapped[str] = mapped_column(Text, nullable=False)
