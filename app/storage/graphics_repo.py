"""Storage interfaces for extracted graphics."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import GraphicRecord

REANALYSIS_CONFIDENCE = 0.9


def needs_reanalysis(record: GraphicRecord) -> bool:
  """Low-confidence graphics and graphics without element analysis are re-run."""
  return record.confidence < REANALYSIS_CONFIDENCE or record.elements is None


class GraphicsRepository(Protocol):
  """Repository contract for extracted graphics."""

  async def add_graphics(self, records: list[GraphicRecord]) -> None:
    """Persist newly extracted graphics."""

  async def list_graphics(self, course_id: str) -> list[GraphicRecord]:
    """Return every graphic of a course ordered by page."""

  async def list_for_reanalysis(self, course_id: str, *, limit: int) -> list[GraphicRecord]:
    """Return graphics matching ``needs_reanalysis`` ordered by page, up to ``limit``."""

  async def update_analysis(
    self,
    graphic_id: str,
    *,
    graphic_type: str,
    confidence: float,
    description: str,
    elements: list[str],
    suggestions: list[str],
    related_concepts: list[str],
  ) -> GraphicRecord | None:
    """Overwrite the analysis fields of one graphic."""
