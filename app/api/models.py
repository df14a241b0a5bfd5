from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from app.jobs.models import ContentStatus

MAX_PAGES = 2000
MAX_PAGE_CHARS = 50_000


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so responses match frontend conventions."""
  parts = string.split("_")
  if not parts:
    return string
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class CamelModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class GraphicInput(CamelModel):
  """A graphic already extracted from the uploaded document."""

  page_number: int = Field(ge=1)
  image_uri: StrictStr | None = Field(default=None, min_length=1, description="Remote URI of the graphic image for the vision model.")
  mime_type: StrictStr | None = Field(default=None, description="Image MIME type, e.g. image/png.")
  graphic_type: StrictStr = Field(default="unknown", min_length=1)
  description: StrictStr = Field(default="", description="Initial description from extraction, if any.")
  confidence: float = Field(default=0.0, ge=0, le=1)
  elements: list[str] | None = None


class CreateCourseRequest(CamelModel):
  """Course creation payload: the title and the extracted text of every page."""

  title: StrictStr = Field(min_length=1, max_length=300)
  pages: list[str] = Field(min_length=1, max_length=MAX_PAGES, description="Page texts in document order.")
  graphics: list[GraphicInput] = Field(default_factory=list)
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, extra="forbid")

  @field_validator("pages")
  @classmethod
  def _page_sizes(cls, value: list[str]) -> list[str]:
    for index, page in enumerate(value, start=1):
      if len(page) > MAX_PAGE_CHARS:
        raise ValueError(f"Page {index} exceeds {MAX_PAGE_CHARS} characters.")
    return value


class CreateCourseResponse(CamelModel):
  course_id: str
  page_count: int


class GenerateResponse(CamelModel):
  job_id: str
  already_running: bool


class GenerationStatusResponse(CamelModel):
  """Polled status of one artifact kind."""

  status: ContentStatus
  progress: float = Field(ge=0, le=100)
  current_step: str | None = None
  section_index: int | None = None
  total_sections: int | None = None
  error_message: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  elapsed_seconds: float = 0
  has_content: bool = False
  content: str | None = None
  partial_content: str | None = None


class PageRangeResponse(CamelModel):
  start: int
  end: int


class SectionResponse(CamelModel):
  id: str
  title: str
  level: Literal["chapter", "subsection"]
  page_range: PageRangeResponse
  anchor_page: int | None = None
  start_marker: str
  end_marker: str
  status: str
  content_types: dict[str, list[str]] = Field(default_factory=dict)
  children: list[SectionResponse] = Field(default_factory=list)


class SectionsResponse(CamelModel):
  course_id: str
  sections: list[SectionResponse]


class QuestionResponse(CamelModel):
  section_id: str
  question: str
  options: list[str]
  answer_index: int
  explanation: str | None = None


class QuestionsResponse(CamelModel):
  course_id: str
  questions: list[QuestionResponse]


class FlashcardResponse(CamelModel):
  section_id: str
  front: str
  back: str


class FlashcardsResponse(CamelModel):
  course_id: str
  flashcards: list[FlashcardResponse]


class ForceStopResponse(CamelModel):
  success: bool
  message: str
  status: str
  questions_generated: int


class RetryResponse(CamelModel):
  success: bool
  message: str
  job_id: str | None = None


class GraphicResponse(CamelModel):
  id: str
  page_number: int
  section_id: str | None = None
  graphic_type: str
  description: str
  confidence: float
  elements: list[str] | None = None
  suggestions: list[str] | None = None
  related_concepts: list[str] | None = None
  needs_reanalysis: bool


class GraphicsStats(CamelModel):
  total: int
  needs_reanalysis: int
  by_type: dict[str, int]
  breaker: dict[str, Any] | None = None


class GraphicsListResponse(CamelModel):
  course_id: str
  graphics: list[GraphicResponse]
  stats: GraphicsStats | None = None


class ReanalyzeResponse(CamelModel):
  success: bool
  reanalyzed: int
  message: str
