"""Value types produced by the document structure detector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SectionLevel = Literal["chapter", "subsection"]


@dataclass(frozen=True)
class PageRange:
  """Inclusive 1-based page span."""

  start: int
  end: int

  def __contains__(self, page: object) -> bool:
    return isinstance(page, int) and self.start <= page <= self.end


@dataclass(frozen=True)
class Section:
  """A detected chapter or subsection boundary over the document pages."""

  id: str
  title: str
  level: SectionLevel
  start_marker: str
  end_marker: str
  page_range: PageRange
  anchor_page: int | None = None
  content_types: dict[str, list[str]] = field(default_factory=dict, hash=False)
  subsections: tuple[Section, ...] = ()

  def to_dict(self) -> dict[str, Any]:
    """Serialize the section tree for JSON persistence."""
    return {
      "id": self.id,
      "title": self.title,
      "level": self.level,
      "startMarker": self.start_marker,
      "endMarker": self.end_marker,
      "pageRange": {"start": self.page_range.start, "end": self.page_range.end},
      "anchorPage": self.anchor_page,
      "contentTypes": dict(self.content_types),
      "subsections": [child.to_dict() for child in self.subsections],
    }


@dataclass(frozen=True)
class Line:
  """A single non-empty line with its page context."""

  page: int
  index: int
  text: str
  line_count: int
  page_width: int

  @property
  def relative_position(self) -> float:
    if self.line_count <= 1:
      return 0.0
    return self.index / (self.line_count - 1)


@dataclass(frozen=True)
class TocEntry:
  """An entry parsed from a table of contents page."""

  title: str
  page: int | None
  depth: int


@dataclass(frozen=True)
class Candidate:
  """A scored heading candidate."""

  line: Line
  score: float
  depth: int
  numbered: bool
  confirmed: bool = False

  @property
  def rank(self) -> tuple[bool, float, int]:
    # Confirmed candidates win ties on score; earlier lines win ties on both.
    return (self.confirmed, round(self.score, 6), -self.line.index)
