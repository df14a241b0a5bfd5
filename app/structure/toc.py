"""Table-of-contents parsing and heading matching."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence
from difflib import SequenceMatcher

from app.structure.models import Candidate, TocEntry
from app.structure.rules import CHAPTER_KEYWORD_RE, NUMBER_PREFIX_RE, ROMAN_PREFIX_RE, numbering_depth

TOC_SCAN_PAGES = 5
MATCH_THRESHOLD = 0.8

TOC_INDICATOR_RE = re.compile(r"^(table of contents|contents|sommaire|table des mati[eè]res|plan|index)\b", re.IGNORECASE)
# Dot leaders or a run of whitespace followed by a trailing page number.
TOC_ENTRY_RE = re.compile(r"^(?P<title>.*?[^\d\s.·_…])(?:\s*[.·_…]{2,}\s*|\s+)(?P<page>\d{1,3})$")


def normalize_title(text: str) -> str:
  """Lowercase, strip accents, numbering and punctuation for similarity checks."""
  value = unicodedata.normalize("NFKD", text)
  value = "".join(char for char in value if not unicodedata.combining(char)).strip()
  stripped = CHAPTER_KEYWORD_RE.sub("", value)
  stripped = NUMBER_PREFIX_RE.sub("", stripped)
  if ROMAN_PREFIX_RE.match(stripped):
    stripped = stripped.split(None, 1)[1]
  normalized = " ".join(re.sub(r"[^\w\s]", " ", stripped.lower()).split())
  if not normalized:
    # Bare labels such as "Chapter 3" keep their full text.
    normalized = " ".join(re.sub(r"[^\w\s]", " ", value.lower()).split())
  return normalized


def similarity(left: str, right: str) -> float:
  """Return a 0-1 similarity ratio between two normalized titles."""
  if not left or not right:
    return 0.0
  if left == right:
    return 1.0
  shorter, longer = sorted((left, right), key=len)
  # Truncated TOC titles still match their full heading.
  if len(shorter) >= 4 and len(longer) <= 2 * len(shorter) and longer.startswith(shorter):
    return 0.9
  return SequenceMatcher(None, left, right).ratio()


def parse_entry(line: str) -> TocEntry | None:
  """Parse a TOC line into an entry when it carries a trailing page number."""
  match = TOC_ENTRY_RE.match(line.strip())
  if match is None:
    return None
  title = match.group("title").strip(" .·_…")
  if not any(char.isalpha() for char in title):
    return None
  return TocEntry(title=title, page=int(match.group("page")), depth=numbering_depth(title) or 1)


def _looks_like_toc(lines: Sequence[str]) -> bool:
  if len(lines) < 3:
    return False
  entries = sum(1 for line in lines if parse_entry(line) is not None)
  return entries / len(lines) > 0.5


def find_toc(pages: Sequence[Sequence[str]]) -> tuple[list[int], list[TocEntry]]:
  """Scan the first pages for a table of contents.

  Returns the 1-based TOC page numbers and the entries parsed from them, in order.
  """
  toc_pages: list[int] = []
  entries: list[TocEntry] = []
  for page_number, lines in enumerate(pages[:TOC_SCAN_PAGES], start=1):
    has_indicator = any(TOC_INDICATOR_RE.match(line) for line in lines[:3])
    if not has_indicator and not _looks_like_toc(lines):
      continue
    page_entries = [entry for entry in (parse_entry(line) for line in lines) if entry is not None]
    # An indicator page without page numbers still lists numbered titles.
    if not page_entries and has_indicator:
      page_entries = [TocEntry(title=line, page=None, depth=numbering_depth(line) or 1) for line in lines[1:] if numbering_depth(line) is not None or CHAPTER_KEYWORD_RE.match(line)]
    if not page_entries:
      continue
    toc_pages.append(page_number)
    entries.extend(page_entries)
  return toc_pages, entries


def confirm_candidates(candidates: Sequence[Candidate], entries: Sequence[TocEntry]) -> dict[int, TocEntry]:
  """Bind each TOC entry to at most one heading candidate.

  Returns a mapping from candidate position to the confirming entry. An entry prefers the
  candidate on its target page, then the nearest page, then the earliest candidate.
  """
  normalized = [normalize_title(candidate.line.text) for candidate in candidates]
  confirmed: dict[int, TocEntry] = {}
  for entry in entries:
    entry_title = normalize_title(entry.title)
    matches = [position for position, title in enumerate(normalized) if position not in confirmed and similarity(entry_title, title) >= MATCH_THRESHOLD]
    if not matches:
      continue
    if entry.page is not None:
      target = entry.page
      matches.sort(key=lambda position: (abs(candidates[position].line.page - target), candidates[position].line.page, candidates[position].line.index))
    confirmed[matches[0]] = entry
  return confirmed
