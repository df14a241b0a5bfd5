"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_course_id() -> str:
  """Return a new course identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_graphic_id() -> str:
  """Return a new extracted graphic identifier."""
  return str(uuid.uuid4())
