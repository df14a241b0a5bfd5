import asyncio
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import asdict
from typing import Any

from fastapi import HTTPException, status

from app.ai.backoff import FAST_POLICY
from app.ai.circuit_breaker import CircuitBreaker, CircuitOpenError
from app.ai.errors import PassFailedError
from app.ai.passes import GRAPHIC_ANALYSIS_PASS, GenerationPassRunner
from app.ai.providers.base import Attachment
from app.ai.router import get_text_model, get_vision_model
from app.api.models import GraphicResponse, GraphicsListResponse, GraphicsStats, ReanalyzeResponse
from app.config import Settings
from app.jobs.models import GraphicRecord
from app.storage.factory import _get_courses_repo, _get_graphics_repo
from app.storage.graphics_repo import GraphicsRepository, needs_reanalysis

logger = logging.getLogger(__name__)

PAGE_CONTEXT_CHARS = 4000


def select_for_reanalysis(graphics: Iterable[GraphicRecord]) -> list[GraphicRecord]:
  """Return exactly the graphics whose analysis is low-confidence or missing elements."""
  return [record for record in graphics if needs_reanalysis(record)]


def graphics_stats(graphics: Sequence[GraphicRecord]) -> dict[str, Any]:
  return {"total": len(graphics), "needs_reanalysis": len(select_for_reanalysis(graphics)), "by_type": dict(Counter(record.graphic_type for record in graphics))}


class GraphicsReanalyzer:
  """Re-run vision analysis over a course's weak graphics in small batches."""

  def __init__(self, *, repo: GraphicsRepository, runner: GenerationPassRunner, batch_size: int = 5, max_graphics: int = 50) -> None:
    self._repo = repo
    self._runner = runner
    self._batch_size = max(1, batch_size)
    self._max_graphics = max(1, max_graphics)

  async def reanalyze(self, course_id: str, *, pages: Sequence[str] = ()) -> int:
    """Return how many graphics were updated. Failed graphics keep their record."""
    candidates = await self._repo.list_for_reanalysis(course_id, limit=self._max_graphics)
    updated = 0
    for start in range(0, len(candidates), self._batch_size):
      batch = candidates[start : start + self._batch_size]
      results = await asyncio.gather(*(self._analyze(record, pages) for record in batch))
      updated += sum(1 for result in results if result)
    logger.info("Reanalysis course=%s candidates=%d updated=%d", course_id, len(candidates), updated)
    return updated

  async def _analyze(self, record: GraphicRecord, pages: Sequence[str]) -> bool:
    page_text = pages[record.page_number - 1][:PAGE_CONTEXT_CHARS] if 0 < record.page_number <= len(pages) else ""
    payload = {
      "graphic": {"id": record.graphic_id, "pageNumber": record.page_number, "type": record.graphic_type, "description": record.description},
      "page_text": page_text,
    }
    attachments = [Attachment(uri=record.image_uri, mime_type=record.mime_type or "image/png")] if record.image_uri else None
    try:
      analysis = await self._runner.run(GRAPHIC_ANALYSIS_PASS, payload, attachments=attachments)
    except CircuitOpenError as exc:
      logger.warning("Skipping graphic %s: %s", record.graphic_id, exc)
      return False
    except PassFailedError as exc:
      logger.warning("Reanalysis failed for graphic %s: %s", record.graphic_id, exc)
      return False

    await self._repo.update_analysis(
      record.graphic_id,
      graphic_type=analysis.graphic_type,
      confidence=analysis.confidence,
      description=analysis.description,
      elements=list(analysis.elements),
      suggestions=list(analysis.suggestions),
      related_concepts=list(analysis.related_concepts),
    )
    return True


def _graphic_response(record: GraphicRecord) -> GraphicResponse:
  return GraphicResponse(
    id=record.graphic_id,
    page_number=record.page_number,
    section_id=record.section_id,
    graphic_type=record.graphic_type,
    description=record.description,
    confidence=record.confidence,
    elements=record.elements,
    suggestions=record.suggestions,
    related_concepts=record.related_concepts,
    needs_reanalysis=needs_reanalysis(record),
  )


def _build_reanalysis_runner(settings: Settings, breaker: CircuitBreaker) -> GenerationPassRunner:
  return GenerationPassRunner(
    text_model=get_text_model(settings),
    vision_model=get_vision_model(settings),
    breaker=breaker,
    retry_policy=FAST_POLICY,
    schema_retries=settings.ai_schema_retries,
    timeout_seconds=settings.ai_timeout_seconds,
  )


async def list_graphics(course_id: str, settings: Settings, *, debug: bool = False, breaker: CircuitBreaker | None = None) -> GraphicsListResponse:
  """Return the extracted graphics of a course, with stats in debug mode."""
  if await _get_courses_repo(settings).get_course(course_id) is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found.")

  records = await _get_graphics_repo(settings).list_graphics(course_id)
  stats = None
  if debug:
    stats = GraphicsStats(**graphics_stats(records), breaker=asdict(breaker.stats()) if breaker is not None else None)
  return GraphicsListResponse(course_id=course_id, graphics=[_graphic_response(record) for record in records], stats=stats)


async def reanalyze_graphics(course_id: str, settings: Settings, breaker: CircuitBreaker) -> ReanalyzeResponse:
  """Reset the vision breaker and re-run analysis for weak graphics."""
  courses = _get_courses_repo(settings)
  if await courses.get_course(course_id) is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found.")

  # Reanalysis always starts from a closed breaker.
  await breaker.reset()
  repo = _get_graphics_repo(settings)
  pending = await repo.list_for_reanalysis(course_id, limit=settings.graphics_max_reanalyze)
  if not pending:
    return ReanalyzeResponse(success=True, reanalyzed=0, message="No graphics need reanalysis.")

  reanalyzer = GraphicsReanalyzer(repo=repo, runner=_build_reanalysis_runner(settings, breaker), batch_size=settings.graphics_batch_size, max_graphics=settings.graphics_max_reanalyze)
  updated = await reanalyzer.reanalyze(course_id, pages=await courses.get_pages(course_id))
  return ReanalyzeResponse(success=updated > 0, reanalyzed=updated, message=f"Reanalyzed {updated} of {len(pending)} graphics.")
