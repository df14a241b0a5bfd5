from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class ExtractedGraphic(Base):
  """A figure extracted from a course document with its latest vision analysis."""

  __tablename__ = "extracted_graphics"
  __table_args__ = (Index("ix_extracted_graphics_course_page", "course_id", "page_number"),)

  graphic_id: Mapped[str] = mapped_column(String, primary_key=True)
  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False)
  section_id: Mapped[str | None] = mapped_column(String, nullable=True)
  page_number: Mapped[int] = mapped_column(Integer, nullable=False)
  graphic_type: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0)
  elements: Mapped[list[str] | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  suggestions: Mapped[list[str] | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  related_concepts: Mapped[list[str] | None] = mapped_column(JSONB(none_as_null=True), nullable=True)
  image_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
  mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
