"""Composable heading scoring rules."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from app.structure.models import Line

HEADING_THRESHOLD = 0.6
STRONG_HEADING = 0.8

CHAPTER_KEYWORD_RE = re.compile(r"^(chapter|chapitre|part|partie|module|session|cours|unit|lesson|le[cç]on)\s+(\d+|[ivxlc]+)\b", re.IGNORECASE)
NUMBER_PREFIX_RE = re.compile(r"^(\d{1,2}(?:\.\d{1,2})*)(?:\.|\)|\s)\s*(?=\S)")
ROMAN_PREFIX_RE = re.compile(r"^[IVXLC]{1,5}[.)\-]\s+\S")
NUMBERED_TITLE_RE = re.compile(r"^\d{1,2}[.)]\s+[A-ZÀ-Ý]")
SUB_NUMBERED_RE = re.compile(r"^\d{1,2}\.\d{1,2}")
TRAILING_PUNCTUATION_RE = re.compile(r"[.;:!?,]$")
CONTENT_VERB_RE = re.compile(r"\b(is|are|was|were|has|have|est|sont|était|ont|peut|can|will)\b", re.IGNORECASE)
NOISE_RE = re.compile(r"^(the|a|an|and|or|but|le|la|les|un|une|des|et|ou|mais|de|du)\s", re.IGNORECASE)
BARE_NUMBER_RE = re.compile(r"^[\d\s.,/\-|]+$")

STRUCTURAL_WORDS = frozenset(
  {
    "introduction",
    "conclusion",
    "summary",
    "overview",
    "exercises",
    "exercise",
    "appendix",
    "references",
    "bibliography",
    "glossary",
    "résumé",
    "resume",
    "synthèse",
    "exercices",
    "annexe",
    "objectifs",
    "objectives",
    "definitions",
    "définitions",
  }
)


def numbering_depth(text: str) -> int | None:
  """Return the numeric-prefix depth of a line (``2.`` is 1, ``2.3`` is 2)."""
  match = NUMBER_PREFIX_RE.match(text.strip())
  if match is None:
    return None
  return len(match.group(1).split("."))


def _words(text: str) -> list[str]:
  return [word for word in re.split(r"\s+", text.strip()) if word]


def _alpha_words(text: str) -> list[str]:
  return [word for word in _words(text) if any(char.isalpha() for char in word)]


def is_structural(text: str) -> bool:
  """Return True when a line is a well-known structural heading word."""
  stripped = NUMBER_PREFIX_RE.sub("", text.strip()).strip().rstrip(":").lower()
  return stripped in STRUCTURAL_WORDS


@dataclass(frozen=True)
class ScoringRule:
  """A weighted heuristic contributing to a line's heading score."""

  name: str
  weight: float
  check: Callable[[Line], float]

  def __call__(self, line: Line) -> float:
    return self.weight * self.check(line)


@dataclass(frozen=True)
class RejectionRule:
  """A rule that disqualifies a line from heading candidacy."""

  name: str
  check: Callable[[Line], bool]


def _explicit_chapter(line: Line) -> float:
  return 1.0 if CHAPTER_KEYWORD_RE.match(line.text) else 0.0


def _numbered_title(line: Line) -> float:
  if SUB_NUMBERED_RE.match(line.text):
    return 0.0
  return 1.0 if NUMBERED_TITLE_RE.match(line.text) else 0.0


def _sub_numbered(line: Line) -> float:
  return 1.0 if SUB_NUMBERED_RE.match(line.text) else 0.0


def _roman(line: Line) -> float:
  return 1.0 if ROMAN_PREFIX_RE.match(line.text) else 0.0


def _length(line: Line) -> float:
  length = len(line.text)
  if length <= 40:
    return 1.0
  if length <= 80:
    return 0.4
  return -1.2


def _narrow(line: Line) -> float:
  # Relative to the widest line on the page, so dense pages still surface short headings.
  if line.page_width < 40:
    return 0.0
  return 1.0 if len(line.text) / line.page_width <= 0.6 else 0.0


def _all_caps(line: Line) -> float:
  letters = [char for char in line.text if char.isalpha()]
  if len(letters) < 4:
    return 0.0
  upper = sum(1 for char in letters if char.isupper())
  return 1.0 if upper / len(letters) >= 0.9 else 0.0


def _title_case(line: Line) -> float:
  significant = [word for word in _alpha_words(line.text) if len(word) > 3]
  if not significant or _all_caps(line):
    return 0.0
  capitalized = sum(1 for word in significant if word[0].isupper())
  return 1.0 if capitalized / len(significant) >= 0.8 else 0.0


def _top_of_page(line: Line) -> float:
  return 1.0 if line.relative_position <= 0.15 else 0.0


def _structural(line: Line) -> float:
  return 1.0 if is_structural(line.text) else 0.0


def _content_verbs(line: Line) -> float:
  return 1.0 if CONTENT_VERB_RE.search(line.text) else 0.0


def _ending(line: Line) -> float:
  return -1.0 if TRAILING_PUNCTUATION_RE.search(line.text) else 0.5


DEFAULT_RULES: tuple[ScoringRule, ...] = (
  ScoringRule("explicit_chapter", 0.7, _explicit_chapter),
  ScoringRule("numbered_title", 0.45, _numbered_title),
  ScoringRule("sub_numbered", 0.35, _sub_numbered),
  ScoringRule("roman", 0.4, _roman),
  ScoringRule("length", 0.25, _length),
  ScoringRule("narrow", 0.05, _narrow),
  ScoringRule("all_caps", 0.35, _all_caps),
  ScoringRule("title_case", 0.2, _title_case),
  ScoringRule("top_of_page", 0.15, _top_of_page),
  ScoringRule("structural", 0.15, _structural),
  ScoringRule("content_verbs", -0.2, _content_verbs),
  ScoringRule("ending", 0.1, _ending),
)


def _isolated_word(line: Line) -> bool:
  words = _words(line.text)
  return len(words) == 1 and len(line.text) < 15 and not is_structural(line.text) and numbering_depth(line.text) is None


DEFAULT_REJECTIONS: tuple[RejectionRule, ...] = (
  RejectionRule("too_long", lambda line: len(line.text) > 120),
  RejectionRule("no_letters", lambda line: not any(char.isalpha() for char in line.text)),
  RejectionRule("bare_number", lambda line: bool(BARE_NUMBER_RE.match(line.text))),
  RejectionRule("lowercase_start", lambda line: line.text[:1].islower()),
  RejectionRule("leading_article", lambda line: bool(NOISE_RE.match(line.text))),
  RejectionRule("trailing_comma", lambda line: line.text.endswith(",")),
  RejectionRule("isolated_word", _isolated_word),
)


def score_line(line: Line, rules: Sequence[ScoringRule] = DEFAULT_RULES, rejections: Sequence[RejectionRule] = DEFAULT_REJECTIONS) -> float:
  """Sum rule contributions for a line and clamp the result to [0, 1]."""
  for rejection in rejections:
    if rejection.check(line):
      return 0.0
  total = sum(rule(line) for rule in rules)
  return max(0.0, min(1.0, total))
