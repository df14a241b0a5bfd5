"""Repository for extracted graphics using PostgreSQL."""

from __future__ import annotations

from sqlalchemy import or_, select

from app.core.database import get_session_factory
from app.jobs.models import GraphicRecord
from app.schema.graphics import ExtractedGraphic
from app.storage.graphics_repo import REANALYSIS_CONFIDENCE, GraphicsRepository


class PostgresGraphicsRepository(GraphicsRepository):
  """Persist and retrieve extracted graphics from Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def add_graphics(self, records: list[GraphicRecord]) -> None:
    async with self._session_factory() as session:
      for record in records:
        session.add(
          ExtractedGraphic(
            graphic_id=record.graphic_id,
            course_id=record.course_id,
            section_id=record.section_id,
            page_number=record.page_number,
            graphic_type=record.graphic_type,
            description=record.description,
            confidence=record.confidence,
            elements=record.elements,
            suggestions=record.suggestions,
            related_concepts=record.related_concepts,
            image_uri=record.image_uri,
            mime_type=record.mime_type,
          )
        )
      await session.commit()

  async def list_graphics(self, course_id: str) -> list[GraphicRecord]:
    async with self._session_factory() as session:
      stmt = select(ExtractedGraphic).where(ExtractedGraphic.course_id == course_id).order_by(ExtractedGraphic.page_number.asc(), ExtractedGraphic.graphic_id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def list_for_reanalysis(self, course_id: str, *, limit: int) -> list[GraphicRecord]:
    async with self._session_factory() as session:
      # Same predicate as needs_reanalysis(); the JSONB columns store None as SQL NULL.
      stmt = (
        select(ExtractedGraphic)
        .where(ExtractedGraphic.course_id == course_id, or_(ExtractedGraphic.confidence < REANALYSIS_CONFIDENCE, ExtractedGraphic.elements.is_(None)))
        .order_by(ExtractedGraphic.page_number.asc(), ExtractedGraphic.graphic_id.asc())
        .limit(limit)
      )
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

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
    async with self._session_factory() as session:
      row = await session.get(ExtractedGraphic, graphic_id)
      if row is None:
        return None
      row.graphic_type = graphic_type
      row.confidence = confidence
      row.description = description
      row.elements = elements
      row.suggestions = suggestions
      row.related_concepts = related_concepts
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  def _model_to_record(self, row: ExtractedGraphic) -> GraphicRecord:
    return GraphicRecord(
      graphic_id=row.graphic_id,
      course_id=row.course_id,
      section_id=row.section_id,
      page_number=int(row.page_number),
      graphic_type=row.graphic_type,
      description=row.description,
      confidence=float(row.confidence or 0),
      elements=row.elements,
      suggestions=row.suggestions,
      related_concepts=row.related_concepts,
      image_uri=row.image_uri,
      mime_type=row.mime_type,
    )
