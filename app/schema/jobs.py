from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_UTC_NOW = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class PipelineJob(Base):
  """The generation job of a course; at most one row per course."""

  __tablename__ = "pipeline_jobs"

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  course_id: Mapped[str] = mapped_column(ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False, unique=True)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  stage: Mapped[str | None] = mapped_column(String, nullable=True)
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
