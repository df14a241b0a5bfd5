"""Domain models for course generation jobs and their persisted artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "succeeded", "partial", "failed"]
JobStage = Literal["structure", "enrichment", "sections", "completeness", "graphics", "finalizing", "completed", "stopped"]
CourseStatus = Literal["pending", "processing", "ready", "partial", "failed"]
ContentKind = Literal["quiz", "note"]
ContentStatus = Literal["pending", "generating", "ready", "partial", "failed"]
SectionStatus = Literal["pending", "processing", "completed", "failed"]

CONTENT_KINDS: tuple[ContentKind, ...] = ("quiz", "note")
ACTIVE_JOB_STATUSES: frozenset[str] = frozenset({"pending", "processing"})
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_iso() -> str:
  return datetime.now(UTC).strftime(_DATE_FORMAT)


def parse_iso(value: str) -> datetime:
  """Parse persisted ``...Z`` timestamps into aware datetimes."""
  return datetime.fromisoformat(value.replace("Z", "+00:00"))


def seconds_between(start: str, end: str | None = None) -> float:
  finish = parse_iso(end) if end else datetime.now(UTC)
  return max(0.0, (finish - parse_iso(start)).total_seconds())


@dataclass
class JobRecord:
  """The single generation job attached to a course."""

  job_id: str
  course_id: str
  status: JobStatus
  created_at: str
  updated_at: str
  stage: JobStage | None = None
  attempts: int = 0
  error_message: str | None = None
  result_json: dict[str, Any] | None = None

  def is_stale(self, stale_seconds: float, *, now: str | None = None) -> bool:
    return seconds_between(self.updated_at, now) > stale_seconds

  def is_running(self, stale_seconds: float, *, now: str | None = None) -> bool:
    """A pending or processing job that has been touched within the staleness window."""
    return self.status in ACTIVE_JOB_STATUSES and not self.is_stale(stale_seconds, now=now)


@dataclass
class CourseRecord:
  course_id: str
  title: str
  status: CourseStatus
  page_count: int
  created_at: str
  updated_at: str


@dataclass
class ContentStatusRecord:
  """Polled progress state for one artifact kind of a course."""

  course_id: str
  kind: ContentKind
  status: ContentStatus = "pending"
  progress: float = 0.0
  current_step: str | None = None
  error_message: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  content: str | None = None
  partial_content: str | None = None
  section_index: int | None = None
  total_sections: int | None = None


@dataclass
class SectionRecord:
  """A persisted outline entry; chapters are the units of per-section generation."""

  section_id: str
  course_id: str
  position: int
  title: str
  level: str
  page_start: int
  page_end: int
  start_marker: str = ""
  end_marker: str = ""
  anchor_page: int | None = None
  parent_id: str | None = None
  inventory: dict[str, list[str]] = field(default_factory=dict)
  status: SectionStatus = "pending"


@dataclass
class QuestionRecord:
  course_id: str
  section_id: str
  question: str
  options: list[str]
  answer_index: int
  explanation: str | None = None


@dataclass
class FlashcardRecord:
  course_id: str
  section_id: str
  front: str
  back: str


@dataclass
class GraphicRecord:
  """A graphic extracted from a course document along with its vision analysis."""

  graphic_id: str
  course_id: str
  page_number: int
  graphic_type: str
  description: str
  confidence: float
  elements: list[str] | None = None
  suggestions: list[str] | None = None
  related_concepts: list[str] | None = None
  image_uri: str | None = None
  mime_type: str | None = None
  section_id: str | None = None


@dataclass(frozen=True)
class TriggerResult:
  job_id: str
  created: bool


@dataclass(frozen=True)
class StopResult:
  stopped: bool
  status: str
  questions_generated: int


@dataclass(frozen=True)
class RetryResult:
  restarted: bool
  message: str
  job_id: str | None = None
