"""Create course generation tables.

Revision ID: 7c1e5a2d9f40
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "7c1e5a2d9f40"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "courses",
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("page_count", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("course_id"),
  )
  op.create_index(op.f("ix_courses_status"), "courses", ["status"], unique=False)

  op.create_table(
    "course_documents",
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("pages", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("course_id"),
  )

  op.create_table(
    "course_sections",
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("parent_id", sa.String(), nullable=True),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("level", sa.String(), nullable=False),
    sa.Column("page_start", sa.Integer(), nullable=False),
    sa.Column("page_end", sa.Integer(), nullable=False),
    sa.Column("anchor_page", sa.Integer(), nullable=True),
    sa.Column("start_marker", sa.Text(), nullable=False),
    sa.Column("end_marker", sa.Text(), nullable=False),
    sa.Column("inventory", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("course_id", "section_id"),
    sa.UniqueConstraint("course_id", "position", name="ux_course_sections_position"),
  )

  op.create_table(
    "content_generation_status",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress", sa.Float(), nullable=False),
    sa.Column("current_step", sa.String(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.Column("content", sa.Text(), nullable=True),
    sa.Column("partial_content", sa.Text(), nullable=True),
    sa.Column("section_index", sa.Integer(), nullable=True),
    sa.Column("total_sections", sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("course_id", "kind", name="ux_content_generation_status_course_kind"),
  )
  op.create_index(op.f("ix_content_generation_status_course_id"), "content_generation_status", ["course_id"], unique=False)

  op.create_table(
    "generated_questions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("question", sa.Text(), nullable=False),
    sa.Column("options", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("answer_index", sa.Integer(), nullable=False),
    sa.Column("explanation", sa.Text(), nullable=True),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_generated_questions_course_section", "generated_questions", ["course_id", "section_id"], unique=False)

  op.create_table(
    "flashcards",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("front", sa.Text(), nullable=False),
    sa.Column("back", sa.Text(), nullable=False),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_flashcards_course_section", "flashcards", ["course_id", "section_id"], unique=False)

  op.create_table(
    "pipeline_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("stage", sa.String(), nullable=True),
    sa.Column("attempts", sa.Integer(), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("job_id"),
    sa.UniqueConstraint("course_id"),
  )
  op.create_index(op.f("ix_pipeline_jobs_status"), "pipeline_jobs", ["status"], unique=False)

  op.create_table(
    "extracted_graphics",
    sa.Column("graphic_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=True),
    sa.Column("page_number", sa.Integer(), nullable=False),
    sa.Column("graphic_type", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("confidence", sa.Float(), nullable=False),
    sa.Column("elements", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("suggestions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("related_concepts", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("image_uri", sa.Text(), nullable=True),
    sa.Column("mime_type", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["course_id"], ["courses.course_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("graphic_id"),
  )
  op.create_index("ix_extracted_graphics_course_page", "extracted_graphics", ["course_id", "page_number"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_extracted_graphics_course_page", table_name="extracted_graphics")
  op.drop_table("extracted_graphics")
  op.drop_index(op.f("ix_pipeline_jobs_status"), table_name="pipeline_jobs")
  op.drop_table("pipeline_jobs")
  op.drop_index("ix_flashcards_course_section", table_name="flashcards")
  op.drop_table("flashcards")
  op.drop_index("ix_generated_questions_course_section", table_name="generated_questions")
  op.drop_table("generated_questions")
  op.drop_index(op.f("ix_content_generation_status_course_id"), table_name="content_generation_status")
  op.drop_table("content_generation_status")
  op.drop_table("course_sections")
  op.drop_table("course_documents")
  op.drop_index(op.f("ix_courses_status"), table_name="courses")
  op.drop_table("courses")
