import logging

from fastapi import BackgroundTasks, HTTPException, status

from app.ai.backoff import RetryPolicy
from app.ai.circuit_breaker import CircuitBreaker
from app.ai.passes import GenerationPassRunner
from app.ai.router import get_text_model, get_vision_model
from app.api.models import (
  CreateCourseRequest,
  CreateCourseResponse,
  FlashcardResponse,
  FlashcardsResponse,
  ForceStopResponse,
  GenerateResponse,
  GenerationStatusResponse,
  PageRangeResponse,
  QuestionResponse,
  QuestionsResponse,
  RetryResponse,
  SectionResponse,
  SectionsResponse,
)
from app.config import Settings
from app.jobs.models import ContentKind, CourseRecord, GraphicRecord, SectionRecord, now_iso, seconds_between
from app.jobs.orchestrator import CourseNotFoundError, JobOrchestrator
from app.storage.factory import _get_courses_repo, _get_graphics_repo, _get_jobs_repo
from app.utils.ids import generate_course_id, generate_graphic_id

logger = logging.getLogger(__name__)

_COURSE_NOT_FOUND_MSG = "Course not found."


def _build_runner(settings: Settings, breaker: CircuitBreaker | None) -> GenerationPassRunner:
  """Build the pass runner for the configured models."""
  return GenerationPassRunner(
    text_model=get_text_model(settings),
    vision_model=get_vision_model(settings),
    breaker=breaker,
    retry_policy=RetryPolicy(max_retries=settings.ai_max_retries),
    schema_retries=settings.ai_schema_retries,
    timeout_seconds=settings.ai_timeout_seconds,
  )


def _build_orchestrator(settings: Settings, runner: GenerationPassRunner | None = None) -> JobOrchestrator:
  return JobOrchestrator(settings=settings, jobs_repo=_get_jobs_repo(settings), courses_repo=_get_courses_repo(settings), graphics_repo=_get_graphics_repo(settings), runner=runner)


def _not_found() -> HTTPException:
  return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_COURSE_NOT_FOUND_MSG)


async def create_course(request: CreateCourseRequest, settings: Settings) -> CreateCourseResponse:
  """Persist a course document and its already-extracted graphics."""
  for graphic in request.graphics:
    if graphic.page_number > len(request.pages):
      raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Graphic page {graphic.page_number} is beyond the last page.")

  course_id = generate_course_id()
  timestamp = now_iso()
  record = CourseRecord(course_id=course_id, title=request.title.strip(), status="pending", page_count=len(request.pages), created_at=timestamp, updated_at=timestamp)
  await _get_courses_repo(settings).create_course(record, list(request.pages))

  if request.graphics:
    graphics = [
      GraphicRecord(
        graphic_id=generate_graphic_id(),
        course_id=course_id,
        page_number=graphic.page_number,
        graphic_type=graphic.graphic_type,
        description=graphic.description,
        confidence=graphic.confidence,
        elements=graphic.elements,
        image_uri=graphic.image_uri,
        mime_type=graphic.mime_type,
      )
      for graphic in request.graphics
    ]
    await _get_graphics_repo(settings).add_graphics(graphics)

  logger.info("Course %s created pages=%d graphics=%d", course_id, len(request.pages), len(request.graphics))
  return CreateCourseResponse(course_id=course_id, page_count=len(request.pages))


async def trigger_generation(course_id: str, settings: Settings, background_tasks: BackgroundTasks, breaker: CircuitBreaker | None) -> GenerateResponse:
  """Start generation for a course, or return the run already in progress."""
  orchestrator = _build_orchestrator(settings, _build_runner(settings, breaker))
  try:
    result = await orchestrator.trigger(course_id)
  except CourseNotFoundError as exc:
    raise _not_found() from exc

  if result.created:
    background_tasks.add_task(orchestrator.run_passes, result.job_id)
  return GenerateResponse(job_id=result.job_id, already_running=not result.created)


async def retry_course(course_id: str, settings: Settings, background_tasks: BackgroundTasks, breaker: CircuitBreaker | None) -> RetryResponse:
  """Restart a failed, partial or stuck course."""
  orchestrator = _build_orchestrator(settings, _build_runner(settings, breaker))
  try:
    result = await orchestrator.retry(course_id)
  except CourseNotFoundError as exc:
    raise _not_found() from exc

  if result.restarted and result.job_id is not None:
    background_tasks.add_task(orchestrator.run_passes, result.job_id)
  return RetryResponse(success=result.restarted, message=result.message, job_id=result.job_id)


async def force_stop(course_id: str, settings: Settings) -> ForceStopResponse:
  """Stop generation and keep what was produced so far."""
  try:
    result = await _build_orchestrator(settings).force_stop(course_id)
  except CourseNotFoundError as exc:
    raise _not_found() from exc

  if result.stopped:
    message = f"Generation stopped with {result.questions_generated} question(s) generated."
  else:
    message = "Generation is not running."
  return ForceStopResponse(success=result.stopped, message=message, status=result.status, questions_generated=result.questions_generated)


async def get_generation_status(course_id: str, kind: ContentKind, settings: Settings) -> GenerationStatusResponse:
  """Return the polled status of one artifact kind."""
  repo = _get_courses_repo(settings)
  record = await repo.get_content_status(course_id, kind)
  if record is None:
    if await repo.get_course(course_id) is None:
      raise _not_found()
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation status not found.")

  elapsed = seconds_between(record.started_at, record.completed_at) if record.started_at else 0.0
  if kind == "quiz":
    has_content = await repo.count_questions(course_id) > 0
  else:
    has_content = bool(record.content or record.partial_content)

  return GenerationStatusResponse(
    status=record.status,
    progress=record.progress,
    current_step=record.current_step,
    section_index=record.section_index,
    total_sections=record.total_sections,
    error_message=record.error_message,
    started_at=record.started_at,
    completed_at=record.completed_at,
    elapsed_seconds=round(elapsed, 1),
    has_content=has_content,
    content=record.content if record.status in ("ready", "partial") else None,
    partial_content=record.partial_content if record.status == "generating" else None,
  )


def _section_tree(records: list[SectionRecord]) -> list[SectionResponse]:
  chapters: list[SectionResponse] = []
  by_id: dict[str, SectionResponse] = {}
  for record in records:
    node = SectionResponse(
      id=record.section_id,
      title=record.title,
      level="subsection" if record.level == "subsection" else "chapter",
      page_range=PageRangeResponse(start=record.page_start, end=record.page_end),
      anchor_page=record.anchor_page,
      start_marker=record.start_marker,
      end_marker=record.end_marker,
      status=record.status,
      content_types=record.inventory,
    )
    by_id[record.section_id] = node
    parent = by_id.get(record.parent_id) if record.parent_id else None
    if parent is None:
      chapters.append(node)
    else:
      parent.children.append(node)
  return chapters


async def list_sections(course_id: str, settings: Settings) -> SectionsResponse:
  """Return the persisted outline of a course."""
  repo = _get_courses_repo(settings)
  if await repo.get_course(course_id) is None:
    raise _not_found()
  return SectionsResponse(course_id=course_id, sections=_section_tree(await repo.list_sections(course_id)))


async def list_questions(course_id: str, settings: Settings) -> QuestionsResponse:
  """Return the generated quiz questions of a course."""
  repo = _get_courses_repo(settings)
  if await repo.get_course(course_id) is None:
    raise _not_found()
  records = await repo.list_questions(course_id)
  questions = [QuestionResponse(section_id=record.section_id, question=record.question, options=record.options, answer_index=record.answer_index, explanation=record.explanation) for record in records]
  return QuestionsResponse(course_id=course_id, questions=questions)


async def list_flashcards(course_id: str, settings: Settings) -> FlashcardsResponse:
  repo = _get_courses_repo(settings)
  if await repo.get_course(course_id) is None:
    raise _not_found()
  records = await repo.list_flashcards(course_id)
  return FlashcardsResponse(course_id=course_id, flashcards=[FlashcardResponse(section_id=record.section_id, front=record.front, back=record.back) for record in records])
