import logging
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends

from app.ai.circuit_breaker import CircuitBreaker
from app.api.deps import get_vision_breaker
from app.api.models import (
  CreateCourseRequest,
  CreateCourseResponse,
  FlashcardsResponse,
  ForceStopResponse,
  GenerateResponse,
  GenerationStatusResponse,
  QuestionsResponse,
  RetryResponse,
  SectionsResponse,
)
from app.config import Settings, get_settings
from app.services import courses as course_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.courses")


@router.post("", response_model=CreateCourseResponse)
async def create_course(  # noqa: B008
  request: CreateCourseRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> CreateCourseResponse:
  """Create a course from the page texts of its document."""
  return await course_service.create_course(request, settings)


@router.post("/{course_id}/generate", response_model=GenerateResponse)
async def generate(  # noqa: B008
  course_id: str,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  breaker: CircuitBreaker = Depends(get_vision_breaker),  # noqa: B008
) -> GenerateResponse:
  """Start generation in the background, or return the run already in progress."""
  return await course_service.trigger_generation(course_id, settings, background_tasks, breaker)


@router.get("/{course_id}/generation/{kind}", response_model=GenerationStatusResponse)
async def get_generation_status(  # noqa: B008
  course_id: str,
  kind: Literal["quiz", "note"],
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> GenerationStatusResponse:
  """Poll the progress of one artifact kind."""
  return await course_service.get_generation_status(course_id, kind, settings)


@router.get("/{course_id}/sections", response_model=SectionsResponse)
async def list_sections(  # noqa: B008
  course_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> SectionsResponse:
  """Return the detected outline."""
  return await course_service.list_sections(course_id, settings)


@router.get("/{course_id}/questions", response_model=QuestionsResponse)
async def list_questions(  # noqa: B008
  course_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> QuestionsResponse:
  """Return the generated quiz questions."""
  return await course_service.list_questions(course_id, settings)


@router.get("/{course_id}/flashcards", response_model=FlashcardsResponse)
async def list_flashcards(  # noqa: B008
  course_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> FlashcardsResponse:
  """Return the generated flashcards."""
  return await course_service.list_flashcards(course_id, settings)


@router.post("/{course_id}/force-stop", response_model=ForceStopResponse)
async def force_stop(  # noqa: B008
  course_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> ForceStopResponse:
  """Stop generation and keep the artifacts produced so far."""
  return await course_service.force_stop(course_id, settings)


@router.post("/{course_id}/retry", response_model=RetryResponse)
async def retry(  # noqa: B008
  course_id: str,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  breaker: CircuitBreaker = Depends(get_vision_breaker),  # noqa: B008
) -> RetryResponse:
  """Restart a failed, partial or stuck course."""
  return await course_service.retry_course(course_id, settings, background_tasks, breaker)
