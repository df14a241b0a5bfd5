from __future__ import annotations

import asyncio

import pytest

from app.ai.errors import JobStoppedError
from app.jobs.progress import ContentProgressWriter
from app.jobs.smoothing import ProgressSmoother, smooth_progress
from app.jobs.steps import NOTE_STEPS, QUIZ_STEPS, ProgressStep, StepPlan


def test_step_plans_cover_zero_to_hundred() -> None:
  assert NOTE_STEPS.names == ("analyzing", "transcribing", "verifying", "graphics", "finalizing")
  assert QUIZ_STEPS.progress_for("generating", 0.5) == 50.0
  assert NOTE_STEPS.current_step(15) == "transcribing"
  assert NOTE_STEPS.completed_steps(80) == ["analyzing", "transcribing", "verifying"]
  assert NOTE_STEPS.pending_steps(80) == ["finalizing"]


def test_step_plan_rejects_gaps() -> None:
  with pytest.raises(ValueError):
    StepPlan((ProgressStep("a", 0, 40), ProgressStep("b", 50, 100)))


def test_smoothing_never_passes_next_checkpoint() -> None:
  assert smooth_progress(20, 4) == 22.0
  assert smooth_progress(20, 60) == 25.0
  assert smooth_progress(20, 60, next_threshold=23) == 22.99
  assert smooth_progress(93, 60) == 95.0
  assert smooth_progress(40, 0, previous=44) == 44.0
  assert smooth_progress(40, 0, completed=True) == 100.0


def test_smoothing_stays_below_next_threshold() -> None:
  assert smooth_progress(20, 3600, next_threshold=21) == 20.99
  # A checkpoint already at the threshold is shown as is.
  assert smooth_progress(21, 60, next_threshold=21) == 21.0

  clock = {"now": 0.0}
  smoother = ProgressSmoother(clock=lambda: clock["now"])
  smoother.update(40, next_threshold=42)
  clock["now"] = 600
  assert smoother.update(40, next_threshold=42) == 41.99
  assert smoother.update(42, next_threshold=60) == 42.0


def test_smoother_is_monotonic_until_reset() -> None:
  clock = {"now": 0.0}
  smoother = ProgressSmoother(clock=lambda: clock["now"])

  clock["now"] = 4
  assert smoother.update(10) == 10.0
  clock["now"] = 8
  assert smoother.update(10) == 12.0
  clock["now"] = 9
  # A stale read of an older checkpoint must not move the bar backwards.
  assert smoother.update(5) == 12.0

  smoother.reset()
  assert smoother.displayed == 0.0


@pytest.mark.anyio
async def test_writer_progress_is_monotonic(courses_repo) -> None:
  courses_repo.seed("c1", ["page"])
  writer = ContentProgressWriter(courses_repo, "c1", "note")

  await writer.start()
  await writer.advance("transcribing", 0.5, section_index=1, total_sections=2, partial_content="## A")
  await writer.report(10)

  record = await courses_repo.get_content_status("c1", "note")
  assert record.status == "generating"
  assert record.progress == 42.5
  assert record.current_step == "transcribing"
  assert record.partial_content == "## A"


@pytest.mark.anyio
async def test_concurrent_reports_keep_the_highest_value(courses_repo) -> None:
  courses_repo.seed("c1", ["page"])
  writer = ContentProgressWriter(courses_repo, "c1", "quiz")
  await writer.start()

  await asyncio.gather(*(writer.advance("generating", fraction) for fraction in (0.9, 0.1, 0.5, 0.3)))

  progresses = [fields["progress"] for kind, fields in courses_repo.status_writes if kind == "quiz" and "progress" in fields]
  assert progresses == sorted(progresses)
  assert (await courses_repo.get_content_status("c1", "quiz")).progress == QUIZ_STEPS.progress_for("generating", 0.9)


@pytest.mark.anyio
async def test_finish_and_fail(courses_repo) -> None:
  courses_repo.seed("c1", ["page"])
  note = ContentProgressWriter(courses_repo, "c1", "note")
  quiz = ContentProgressWriter(courses_repo, "c1", "quiz")
  await note.start()
  await quiz.start()

  await note.finish("ready", content="# Note")
  await quiz.report(30)
  await quiz.fail("boom")

  note_record = await courses_repo.get_content_status("c1", "note")
  quiz_record = await courses_repo.get_content_status("c1", "quiz")
  assert (note_record.status, note_record.progress, note_record.content) == ("ready", 100.0, "# Note")
  assert note_record.completed_at is not None
  assert (quiz_record.status, quiz_record.progress, quiz_record.error_message) == ("failed", 30.0, "boom")


@pytest.mark.anyio
async def test_guard_blocks_writes_after_stop(courses_repo) -> None:
  courses_repo.seed("c1", ["page"])
  stopped = {"value": False}

  async def _guard() -> None:
    if stopped["value"]:
      raise JobStoppedError("stopped")

  writer = ContentProgressWriter(courses_repo, "c1", "quiz", guard=_guard)
  await writer.start()
  stopped["value"] = True

  with pytest.raises(JobStoppedError):
    await writer.advance("generating", 0.5)
  assert (await courses_repo.get_content_status("c1", "quiz")).progress == 0.0


@pytest.mark.anyio
async def test_unknown_extra_fields_are_rejected(courses_repo) -> None:
  writer = ContentProgressWriter(courses_repo, "c1", "quiz")

  with pytest.raises(ValueError):
    await writer.report(10, content="nope")
