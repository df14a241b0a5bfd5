"""Output contracts for the generation passes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

ContentTypeName = Literal["definitions", "formulas", "worked_examples", "exercises", "tables"]
CONTENT_TYPES: tuple[ContentTypeName, ...] = ("definitions", "formulas", "worked_examples", "exercises", "tables")
ItemStatus = Literal["present", "partial", "absent"]


class SectionInventory(BaseModel):
  """Content-type inventory for one section, produced by Pass 1."""

  section_id: str = Field(min_length=1)
  definitions: list[str] = Field(default_factory=list)
  formulas: list[str] = Field(default_factory=list)
  worked_examples: list[str] = Field(default_factory=list)
  exercises: list[str] = Field(default_factory=list)
  tables: list[str] = Field(default_factory=list)

  def as_content_types(self) -> dict[str, list[str]]:
    return {name: list(getattr(self, name)) for name in CONTENT_TYPES}

  def expected_items(self) -> list[str]:
    """Flatten the inventory into labelled items for completeness checks."""
    return [f"{name}: {label}" for name in CONTENT_TYPES for label in getattr(self, name)]


class GraphicsManifestItem(BaseModel):
  """A figure the generated content is expected to render."""

  id: str = Field(min_length=1)
  description: str = Field(min_length=1)
  type: str = Field(min_length=1)
  page_number: int = Field(ge=1)
  section_id: str = Field(min_length=1)


class StructureEnrichment(BaseModel):
  """Pass 1 output: per-section inventory and the graphics manifest."""

  sections: list[SectionInventory]
  graphics_manifest: list[GraphicsManifestItem] = Field(default_factory=list)

  @model_validator(mode="after")
  def unique_manifest_ids(self) -> StructureEnrichment:
    ids = [item.id for item in self.graphics_manifest]
    if len(ids) != len(set(ids)):
      raise ValueError("Graphics manifest ids must be unique.")
    return self


class QuizQuestion(BaseModel):
  """A multiple-choice question generated for a section."""

  question: str = Field(min_length=1)
  options: list[str] = Field(min_length=2, max_length=6)
  answer_index: int = Field(ge=0)
  explanation: str | None = None

  @model_validator(mode="after")
  def answer_in_range(self) -> QuizQuestion:
    if self.answer_index >= len(self.options):
      raise ValueError("answer_index must point at one of the options.")
    return self


class FlashcardItem(BaseModel):
  """A question/answer card generated for a section."""

  front: str = Field(min_length=1)
  back: str = Field(min_length=1)


class SectionContent(BaseModel):
  """Pass 2 output for a single section."""

  section_id: str = Field(min_length=1)
  note_markdown: str = Field(min_length=1)
  questions: list[QuizQuestion] = Field(default_factory=list)
  flashcards: list[FlashcardItem] = Field(default_factory=list)
  rendered_graphics: list[str] = Field(default_factory=list, description="Manifest ids rendered in this section.")


class VerificationItem(BaseModel):
  """Completeness status of one inventory item."""

  item: str
  status: ItemStatus
  details: str | None = None


class CompletenessReport(BaseModel):
  """Pass 3 output."""

  verification: list[VerificationItem] = Field(default_factory=list)
  completeness_score: float = Field(ge=0, le=100)
  missing_content: list[str] = Field(default_factory=list)
  supplementary_content: str | None = None


class GraphicCheck(BaseModel):
  """Pass 4 verdict for one manifest item."""

  manifest_id: str
  found: bool
  has_introduction_text: bool
  has_analysis_text: bool
  correct_section_placement: bool
  issues: list[str] = Field(default_factory=list)

  @property
  def flagged(self) -> bool:
    return not (self.found and self.has_introduction_text and self.has_analysis_text and self.correct_section_placement)


class GraphicsVerification(BaseModel):
  """Pass 4 output."""

  items: list[GraphicCheck] = Field(default_factory=list)
  overall_score: float = Field(ge=0, le=100)


class GraphicAnalysis(BaseModel):
  """Vision analysis of one extracted graphic."""

  graphic_type: str = Field(min_length=1)
  description: str = Field(min_length=1)
  confidence: float = Field(ge=0, le=1)
  elements: list[str] = Field(default_factory=list)
  suggestions: list[str] = Field(default_factory=list)
  related_concepts: list[str] = Field(default_factory=list)
