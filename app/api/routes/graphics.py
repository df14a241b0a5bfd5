import logging

from fastapi import APIRouter, Depends, Query

from app.ai.circuit_breaker import CircuitBreaker
from app.api.deps import get_vision_breaker
from app.api.models import GraphicsListResponse, ReanalyzeResponse
from app.config import Settings, get_settings
from app.services import graphics as graphics_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.graphics")


@router.get("/{course_id}/graphics", response_model=GraphicsListResponse, response_model_exclude_none=True)
async def list_graphics(  # noqa: B008
  course_id: str,
  debug: bool = Query(default=False, description="Include reanalysis stats and breaker state."),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  breaker: CircuitBreaker = Depends(get_vision_breaker),  # noqa: B008
) -> GraphicsListResponse:
  """List extracted graphics for a course."""
  return await graphics_service.list_graphics(course_id, settings, debug=debug, breaker=breaker)


@router.post("/{course_id}/graphics/reanalyze", response_model=ReanalyzeResponse)
async def reanalyze(  # noqa: B008
  course_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  breaker: CircuitBreaker = Depends(get_vision_breaker),  # noqa: B008
) -> ReanalyzeResponse:
  """Reset the vision breaker and reanalyze low-confidence graphics."""
  return await graphics_service.reanalyze_graphics(course_id, settings, breaker)
