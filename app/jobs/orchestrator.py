"""Job state machine driving the generation passes for a course.

A course owns at most one job row. ``trigger`` and ``retry`` claim that row under a
course-level lock, ``run_passes`` executes the passes in order in a background task,
and ``force_stop`` finalizes whatever was persisted so far. The running task re-reads
the job before every write and stops as soon as the job is no longer its own
``processing`` attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
from typing import Any

from app.ai.circuit_breaker import CircuitOpenError
from app.ai.contracts import GraphicsManifestItem, SectionContent, SectionInventory
from app.ai.errors import JobStoppedError, PassFailedError
from app.ai.passes import COMPLETENESS_PASS, GRAPHICS_PASS, SECTION_PASS, STRUCTURE_PASS, GenerationPassRunner
from app.ai.providers.base import Attachment
from app.config import Settings
from app.jobs.models import FlashcardRecord, GraphicRecord, JobStage, QuestionRecord, RetryResult, SectionRecord, StopResult, TriggerResult, now_iso
from app.jobs.progress import ContentProgressWriter
from app.storage.courses_repo import CoursesRepository
from app.storage.graphics_repo import GraphicsRepository
from app.storage.jobs_repo import JobsRepository
from app.structure.detector import StructureDetector, section_text
from app.structure.models import Section
from app.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000
STOP_MESSAGE = "Generation stopped by user."


class CourseNotFoundError(LookupError):
  def __init__(self, course_id: str) -> None:
    super().__init__(f"Course {course_id} not found.")
    self.course_id = course_id


@dataclass
class _Run:
  job_id: str
  course_id: str
  attempt: int
  quiz: ContentProgressWriter
  note: ContentProgressWriter


def rebind_manifest(sections: Sequence[Section], manifest: Sequence[GraphicsManifestItem]) -> list[GraphicsManifestItem]:
  """Bind every manifest item to a chapter id.

  Subsection ids resolve to their chapter; unknown ids resolve to the chapter whose
  page range holds the item's page.
  """
  owners = {section.id: section.id for section in sections}
  for section in sections:
    for child in section.subsections:
      owners[child.id] = section.id

  rebound: list[GraphicsManifestItem] = []
  for item in manifest:
    owner = owners.get(item.section_id)
    if owner is None:
      owner = next((section.id for section in sections if item.page_number in section.page_range), sections[-1].id)
    rebound.append(item if owner == item.section_id else item.model_copy(update={"section_id": owner}))
  return rebound


def _section_records(course_id: str, sections: Sequence[Section]) -> list[SectionRecord]:
  records: list[SectionRecord] = []

  def _append(section: Section, parent_id: str | None) -> None:
    records.append(
      SectionRecord(
        section_id=section.id,
        course_id=course_id,
        position=len(records),
        title=section.title,
        level=section.level,
        page_start=section.page_range.start,
        page_end=section.page_range.end,
        start_marker=section.start_marker,
        end_marker=section.end_marker,
        anchor_page=section.anchor_page,
        parent_id=parent_id,
      )
    )

  for chapter in sections:
    _append(chapter, None)
    for child in chapter.subsections:
      _append(child, chapter.id)
  return records


def _outline(sections: Sequence[Section]) -> list[dict[str, Any]]:
  return [
    {
      "id": section.id,
      "title": section.title,
      "pageRange": {"start": section.page_range.start, "end": section.page_range.end},
      "subsections": [{"id": child.id, "title": child.title} for child in section.subsections],
    }
    for section in sections
  ]


def _document_text(pages: Sequence[str], sections: Sequence[Section], budget: int) -> str:
  """Return page-tagged text where each chapter gets an equal share of ``budget``."""
  share = max(1, budget // max(len(sections), 1))
  blocks: list[str] = []
  for section in sections:
    numbers = range(section.page_range.start, min(section.page_range.end, len(pages)) + 1)
    text = "\n\n".join(f"[Page {number}]\n{pages[number - 1]}" for number in numbers)
    blocks.append(f"[Section {section.id}: {section.title}]\n{text}"[:share])
  return "\n\n".join(blocks)


def _section_note(section: Section, content: SectionContent) -> str:
  body = content.note_markdown.strip()
  if body.startswith("#"):
    return body
  return f"## {section.title}\n\n{body}"


def _graphic_summary(record: GraphicRecord) -> dict[str, Any]:
  return {"id": record.graphic_id, "pageNumber": record.page_number, "type": record.graphic_type, "description": record.description, "sectionId": record.section_id}


def _error_message(exc: BaseException) -> str:
  message = str(exc) or type(exc).__name__
  return message[:MAX_ERROR_LENGTH]


class JobOrchestrator:
  """Own the job state machine of every course."""

  def __init__(
    self,
    *,
    settings: Settings,
    jobs_repo: JobsRepository,
    courses_repo: CoursesRepository,
    graphics_repo: GraphicsRepository,
    runner: GenerationPassRunner | None = None,
    detector: StructureDetector | None = None,
  ) -> None:
    self._settings = settings
    self._jobs = jobs_repo
    self._courses = courses_repo
    self._graphics = graphics_repo
    self._runner = runner
    self._detector = detector or StructureDetector()

  async def _require_course(self, course_id: str) -> None:
    if await self._courses.get_course(course_id) is None:
      raise CourseNotFoundError(course_id)

  async def _reset_for_run(self, course_id: str) -> None:
    await self._courses.update_course(course_id, status="pending")
    await self._courses.reset_content_statuses(course_id)

  async def trigger(self, course_id: str) -> TriggerResult:
    """Return the running job of a course, or reset/create one in ``pending``.

    The caller schedules ``run_passes`` only when ``created`` is true.
    """
    await self._require_course(course_id)
    job, created = await self._jobs.claim_job(course_id, job_id=generate_job_id(), stale_seconds=self._settings.stale_job_seconds)
    if not created:
      logger.info("Job %s already running for course %s (status=%s)", job.job_id, course_id, job.status)
      return TriggerResult(job_id=job.job_id, created=False)

    await self._reset_for_run(course_id)
    logger.info("Job %s queued for course %s", job.job_id, course_id)
    return TriggerResult(job_id=job.job_id, created=True)

  async def retry(self, course_id: str) -> RetryResult:
    """Restart a failed, partial or stuck course; succeeded courses are left alone."""
    course = await self._courses.get_course(course_id)
    if course is None:
      raise CourseNotFoundError(course_id)
    if course.status == "ready":
      return RetryResult(restarted=False, message="Course already processed")

    job, created = await self._jobs.claim_job(course_id, job_id=generate_job_id(), stale_seconds=self._settings.stale_job_seconds, restart_succeeded=False)
    if not created:
      if job.status == "succeeded":
        return RetryResult(restarted=False, message="Course already processed", job_id=job.job_id)
      return RetryResult(restarted=False, message="Course is still processing", job_id=job.job_id)

    await self._reset_for_run(course_id)
    logger.info("Job %s restarted for course %s after %d attempt(s)", job.job_id, course_id, job.attempts)
    return RetryResult(restarted=True, message="Course processing restarted", job_id=job.job_id)

  async def force_stop(self, course_id: str) -> StopResult:
    """Finalize a generating course from what has been persisted so far.

    Idempotent: once no status row is ``generating`` the current state is returned.
    """
    course = await self._courses.get_course(course_id)
    if course is None:
      raise CourseNotFoundError(course_id)

    quiz = await self._courses.get_content_status(course_id, "quiz")
    note = await self._courses.get_content_status(course_id, "note")
    questions = await self._courses.count_questions(course_id)
    generating = [record for record in (quiz, note) if record is not None and record.status == "generating"]
    if not generating:
      current = quiz.status if quiz is not None else course.status
      return StopResult(stopped=False, status=current, questions_generated=questions)

    # Flip the job first so the background run stops before its next write.
    job = await self._jobs.get_job_for_course(course_id)
    if job is not None and job.status in ("pending", "processing"):
      await self._jobs.update_job(job.job_id, status="failed", stage="stopped", error_message=STOP_MESSAGE)

    completed_at = now_iso()
    quiz_status = "partial" if questions > 0 else "failed"
    if quiz is not None and quiz.status == "generating":
      await self._courses.update_content_status(
        course_id, "quiz", status=quiz_status, progress=100.0, current_step="stopped", completed_at=completed_at, error_message=None if questions else STOP_MESSAGE
      )
    if note is not None and note.status == "generating":
      has_partial = bool(note.partial_content and note.partial_content.strip())
      await self._courses.update_content_status(
        course_id,
        "note",
        status="partial" if has_partial else "failed",
        progress=100.0,
        current_step="stopped",
        completed_at=completed_at,
        content=note.partial_content if has_partial else None,
        error_message=None if has_partial else STOP_MESSAGE,
      )

    failed_sections = await self._courses.fail_processing_sections(course_id)
    await self._courses.update_course(course_id, status=quiz_status)
    logger.info("Force-stopped course %s status=%s questions=%d failed_sections=%d", course_id, quiz_status, questions, failed_sections)
    return StopResult(stopped=True, status=quiz_status, questions_generated=questions)

  async def run_passes(self, job_id: str) -> None:
    """Run every pass for a pending job. Never raises; failures are persisted."""
    job = await self._jobs.get_job(job_id)
    if job is None:
      logger.warning("Job %s not found; nothing to run", job_id)
      return
    if job.status != "pending":
      logger.info("Skipping job %s in status %s", job_id, job.status)
      return

    attempt = job.attempts + 1
    await self._jobs.update_job(job_id, status="processing", stage="structure", attempts=attempt)
    guard = partial(self._ensure_current, job_id, attempt)
    run = _Run(
      job_id=job_id,
      course_id=job.course_id,
      attempt=attempt,
      quiz=ContentProgressWriter(self._courses, job.course_id, "quiz", guard=guard),
      note=ContentProgressWriter(self._courses, job.course_id, "note", guard=guard),
    )
    logger.info("Job %s started for course %s (attempt %d)", job_id, job.course_id, attempt)

    try:
      await self._execute(run)
    except JobStoppedError:
      logger.info("Job %s stopped before completion", job_id)
    except Exception as exc:
      logger.error("Job %s failed: %s", job_id, exc, exc_info=True)
      await self._fail(run, exc)

  async def _ensure_current(self, job_id: str, attempt: int) -> None:
    job = await self._jobs.get_job(job_id)
    if job is None or job.status != "processing" or job.attempts != attempt:
      raise JobStoppedError(f"Job {job_id} is no longer processing attempt {attempt}.")

  async def _set_stage(self, run: _Run, stage: JobStage) -> None:
    await self._ensure_current(run.job_id, run.attempt)
    await self._jobs.update_job(run.job_id, stage=stage)
    logger.info("Job %s stage=%s", run.job_id, stage)

  async def _execute(self, run: _Run) -> None:
    if self._runner is None:
      raise RuntimeError("No pass runner configured for this orchestrator.")
    course_id = run.course_id
    await self._ensure_current(run.job_id, run.attempt)
    await self._courses.update_course(course_id, status="processing")
    await self._courses.clear_artifacts(course_id)
    await run.quiz.start()
    await run.note.start()

    pages = await self._courses.get_pages(course_id)
    sections = self._detector.detect(pages)
    await self._ensure_current(run.job_id, run.attempt)
    await self._courses.replace_sections(course_id, _section_records(course_id, sections))
    await run.quiz.advance("preparing")
    await run.note.advance("analyzing", 0.3)

    await self._set_stage(run, "enrichment")
    enrichment = await self._runner.run(STRUCTURE_PASS, {"outline": _outline(sections), "document": _document_text(pages, sections, self._settings.document_char_limit)})
    inventories = {section.id: SectionInventory(section_id=section.id) for section in sections}
    for inventory in enrichment.sections:
      if inventory.section_id in inventories:
        inventories[inventory.section_id] = inventory
      else:
        logger.debug("Ignoring inventory for unknown section %s", inventory.section_id)
    manifest = rebind_manifest(sections, enrichment.graphics_manifest)
    await self._ensure_current(run.job_id, run.attempt)
    for section in sections:
      await self._courses.update_section(course_id, section.id, inventory=inventories[section.id].as_content_types())
    await run.quiz.advance("analyzing")
    await run.note.advance("analyzing")

    await self._set_stage(run, "sections")
    notes, rendered = await self._generate_sections(run, pages, sections, inventories, manifest)
    note_markdown = "\n\n".join(notes)

    await self._set_stage(run, "completeness")
    await run.note.advance("verifying", 0.0)
    note_markdown, score, missing = await self._verify_completeness(course_id, inventories, note_markdown)
    await run.note.advance("verifying")
    await run.quiz.advance("verifying")

    await self._set_stage(run, "graphics")
    await run.note.advance("graphics", 0.0)
    graphics_score, graphics_issues = await self._verify_graphics(course_id, manifest, note_markdown, rendered)
    await run.note.advance("graphics")

    await self._set_stage(run, "finalizing")
    questions = await self._courses.count_questions(course_id)
    flashcards = await self._courses.count_flashcards(course_id)
    partial_run = score < self._settings.completeness_threshold
    result = {
      "sections": len(sections),
      "questions": questions,
      "flashcards": flashcards,
      "completenessScore": score,
      "missingContent": missing,
      "graphicsScore": graphics_score,
      "graphicsIssues": graphics_issues,
    }
    await run.note.finish("partial" if partial_run else "ready", content=note_markdown)
    await run.quiz.finish("ready")
    await self._ensure_current(run.job_id, run.attempt)
    await self._courses.update_course(course_id, status="partial" if partial_run else "ready")
    await self._jobs.update_job(run.job_id, status="partial" if partial_run else "succeeded", stage="completed", result_json=result)
    logger.info("Job %s finished status=%s score=%.1f questions=%d graphics_issues=%d", run.job_id, "partial" if partial_run else "succeeded", score, questions, len(graphics_issues))

  async def _generate_sections(
    self,
    run: _Run,
    pages: Sequence[str],
    sections: Sequence[Section],
    inventories: dict[str, SectionInventory],
    manifest: Sequence[GraphicsManifestItem],
  ) -> tuple[list[str], dict[str, list[str]]]:
    """Return the section notes in outline order and the manifest ids each section rendered."""
    total = len(sections)
    semaphore = asyncio.Semaphore(self._settings.max_concurrent_sections)
    failed = asyncio.Event()
    notes: dict[int, str] = {}
    rendered: dict[str, list[str]] = {}

    async def _generate(index: int, section: Section) -> None:
      async with semaphore:
        # Units still waiting when a sibling fails are skipped.
        if failed.is_set():
          return
        try:
          await self._ensure_current(run.job_id, run.attempt)
          await self._courses.update_section(run.course_id, section.id, status="processing")
          payload = {
            "section": {"id": section.id, "title": section.title, "pageRange": {"start": section.page_range.start, "end": section.page_range.end}},
            "inventory": inventories[section.id].model_dump(exclude={"section_id"}),
            "graphics": [item.model_dump() for item in manifest if item.section_id == section.id],
            "section_text": section_text(pages, section, limit=self._settings.section_char_limit),
          }
          content = await self._runner.run(SECTION_PASS, payload)

          await self._ensure_current(run.job_id, run.attempt)
          questions = [QuestionRecord(course_id=run.course_id, section_id=section.id, question=q.question, options=list(q.options), answer_index=q.answer_index, explanation=q.explanation) for q in content.questions]
          flashcards = [FlashcardRecord(course_id=run.course_id, section_id=section.id, front=card.front, back=card.back) for card in content.flashcards]
          await self._courses.add_section_artifacts(run.course_id, section.id, questions, flashcards)
          await self._courses.update_section(run.course_id, section.id, status="completed")
          # Refresh updated_at so a long section phase does not look stale.
          await self._jobs.update_job(run.job_id)

          notes[index] = _section_note(section, content)
          if content.rendered_graphics:
            rendered[section.id] = list(content.rendered_graphics)
          done = len(notes)
          partial_note = "\n\n".join(notes[position] for position in sorted(notes))
          await run.note.advance("transcribing", done / total, section_index=done, total_sections=total, partial_content=partial_note)
          await run.quiz.advance("generating", done / total)
        except Exception:
          failed.set()
          raise

    results = await asyncio.gather(*(_generate(index, section) for index, section in enumerate(sections)), return_exceptions=True)
    errors = [result for result in results if isinstance(result, BaseException)]
    if errors:
      stopped = next((error for error in errors if isinstance(error, JobStoppedError)), None)
      raise stopped or errors[0]
    return [notes[index] for index in sorted(notes)], rendered

  async def _verify_completeness(self, course_id: str, inventories: dict[str, SectionInventory], note_markdown: str) -> tuple[str, float, list[str]]:
    expected = [item for inventory in inventories.values() for item in inventory.expected_items()]
    if not expected:
      return note_markdown, 100.0, []

    questions = await self._courses.list_questions(course_id)
    flashcards = await self._courses.list_flashcards(course_id)
    payload = {
      "expected_items": expected,
      "generated_note": note_markdown,
      "generated_questions": [{"sectionId": q.section_id, "question": q.question, "answer": q.options[q.answer_index]} for q in questions],
      "generated_flashcards": [{"sectionId": card.section_id, "front": card.front, "back": card.back} for card in flashcards],
    }
    report = await self._runner.run(COMPLETENESS_PASS, payload)
    missing = list(report.missing_content) or [entry.item for entry in report.verification if entry.status == "absent"]
    supplement = (report.supplementary_content or "").strip()
    if supplement:
      note_markdown = f"{note_markdown}\n\n## Supplementary content\n\n{supplement}"
    return note_markdown, float(report.completeness_score), missing

  async def _verify_graphics(self, course_id: str, manifest: Sequence[GraphicsManifestItem], note_markdown: str, rendered: dict[str, list[str]]) -> tuple[float | None, list[str]]:
    """Check figure placement; problems are reported and never fail the job."""
    extracted = await self._graphics.list_graphics(course_id)
    if not manifest and not extracted:
      return None, []

    attachments = [Attachment(uri=record.image_uri, mime_type=record.mime_type or "image/png") for record in extracted if record.image_uri]
    payload = {"graphics_manifest": [item.model_dump() for item in manifest], "extracted_graphics": [_graphic_summary(record) for record in extracted], "rendered_graphics": rendered, "generated_note": note_markdown}
    try:
      verification = await self._runner.run(GRAPHICS_PASS, payload, attachments=attachments or None)
    except CircuitOpenError as exc:
      logger.warning("Graphics verification skipped for course %s: %s", course_id, exc)
      return None, [f"Graphics verification skipped: {exc}"]
    except PassFailedError as exc:
      logger.warning("Graphics verification failed for course %s: %s", course_id, exc)
      return None, [f"Graphics verification failed: {exc.cause}"]

    issues = [f"{item.manifest_id}: {'; '.join(item.issues) or 'missing introduction, analysis or placement'}" for item in verification.items if item.flagged or item.issues]
    return float(verification.overall_score), issues

  async def _fail(self, run: _Run, exc: BaseException) -> None:
    job = await self._jobs.get_job(run.job_id)
    if job is None or job.status != "processing" or job.attempts != run.attempt:
      logger.info("Job %s left processing before its failure was recorded", run.job_id)
      return

    message = _error_message(exc)
    failed_sections = await self._courses.fail_processing_sections(run.course_id)
    await run.quiz.fail(message)
    await run.note.fail(message)
    await self._courses.update_course(run.course_id, status="failed")
    await self._jobs.update_job(run.job_id, status="failed", error_message=message)
    logger.info("Job %s marked failed; %d in-flight section(s) marked failed", run.job_id, failed_sections)
