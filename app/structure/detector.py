"""Heuristic document structure detection over ordered page texts."""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Sequence

from app.structure.models import Candidate, Line, PageRange, Section
from app.structure.rules import CHAPTER_KEYWORD_RE, DEFAULT_REJECTIONS, DEFAULT_RULES, HEADING_THRESHOLD, ROMAN_PREFIX_RE, STRONG_HEADING, RejectionRule, ScoringRule, numbering_depth, score_line
from app.structure.toc import confirm_candidates, find_toc, normalize_title

logger = logging.getLogger(__name__)

MARKER_WORDS = 20
RUNNING_HEADER_PAGES = 3
# Lines this weak are never headings, even when a TOC entry matches them.
TOC_MIN_SCORE = 0.3
FALLBACK_TITLE = "Content"

PAGE_TAG_RE = re.compile(r"\b(page|p\.)\s*\d+(\s*(/|of|sur)\s*\d+)?\b", re.IGNORECASE)


def _split_lines(page: str) -> list[str]:
  return [" ".join(raw.split()) for raw in page.splitlines() if raw.strip()]


def _repeat_key(text: str) -> str:
  return " ".join(PAGE_TAG_RE.sub("", text.lower()).split())


def _running_lines(page_lines: Sequence[Sequence[str]]) -> set[str]:
  """Return normalized lines repeated on enough pages to be headers or footers."""
  counts: Counter[str] = Counter()
  for lines in page_lines:
    counts.update({_repeat_key(line) for line in lines})
  return {key for key, count in counts.items() if key and count >= RUNNING_HEADER_PAGES}


def _leading_words(page_lines: Sequence[Sequence[str]], page_range: PageRange, *, from_line: int = 0) -> str:
  words: list[str] = []
  for page in range(page_range.start, page_range.end + 1):
    lines = page_lines[page - 1] if page - 1 < len(page_lines) else []
    offset = from_line if page == page_range.start else 0
    for line in lines[offset:]:
      words.extend(line.split())
      if len(words) >= MARKER_WORDS:
        return " ".join(words[:MARKER_WORDS])
  return " ".join(words)


def _trailing_words(page_lines: Sequence[Sequence[str]], page_range: PageRange) -> str:
  words: list[str] = []
  for page in range(page_range.end, page_range.start - 1, -1):
    lines = page_lines[page - 1] if page - 1 < len(page_lines) else []
    for line in reversed(lines):
      words = line.split() + words
      if len(words) >= MARKER_WORDS:
        return " ".join(words[-MARKER_WORDS:])
  return " ".join(words)


class StructureDetector:
  """Segment ordered page texts into an ordered chapter/subsection outline."""

  def __init__(self, rules: Sequence[ScoringRule] = DEFAULT_RULES, rejections: Sequence[RejectionRule] = DEFAULT_REJECTIONS, threshold: float = HEADING_THRESHOLD) -> None:
    self._rules = tuple(rules)
    self._rejections = tuple(rejections)
    self._threshold = threshold

  def detect(self, pages: Sequence[str]) -> list[Section]:
    """Return chapters whose page ranges partition ``[1, len(pages)]``."""
    page_lines = [_split_lines(page) for page in pages]
    page_count = max(len(page_lines), 1)

    # Parse the TOC first so its own pages never produce heading candidates.
    toc_pages, toc_entries = find_toc(page_lines)
    pool = self._score_lines(page_lines, excluded_pages=set(toc_pages))
    confirmations = confirm_candidates(pool, toc_entries)

    candidates: list[Candidate] = []
    for position, candidate in enumerate(pool):
      entry = confirmations.get(position)
      if entry is not None:
        depth = candidate.depth if candidate.numbered else entry.depth
        candidates.append(Candidate(line=candidate.line, score=candidate.score, depth=depth, numbered=candidate.numbered, confirmed=True))
      elif candidate.score >= self._threshold:
        candidates.append(candidate)

    anchors = self._select_anchors(candidates, toc_driven=len(confirmations) >= 2)
    logger.debug("Structure detection pages=%d toc_pages=%s toc_entries=%d candidates=%d anchors=%d", len(pages), toc_pages, len(toc_entries), len(candidates), len(anchors))
    if not any(depth == 1 for _, depth in anchors):
      whole = PageRange(start=1, end=page_count)
      return [Section(id="s1", title=FALLBACK_TITLE, level="chapter", start_marker=_leading_words(page_lines, whole), end_marker=_trailing_words(page_lines, whole), page_range=whole)]
    return self._build_sections(page_lines, anchors, page_count)

  def _score_lines(self, page_lines: Sequence[Sequence[str]], *, excluded_pages: set[int]) -> list[Candidate]:
    running = _running_lines(page_lines)
    pool: list[Candidate] = []
    for page_number, lines in enumerate(page_lines, start=1):
      if page_number in excluded_pages or not lines:
        continue
      page_width = max(len(line) for line in lines)
      for index, text in enumerate(lines):
        if _repeat_key(text) in running:
          continue
        line = Line(page=page_number, index=index, text=text, line_count=len(lines), page_width=page_width)
        score = score_line(line, self._rules, self._rejections)
        if score < TOC_MIN_SCORE:
          continue
        numeric_depth = numbering_depth(text)
        if numeric_depth is not None:
          depth = numeric_depth
        elif CHAPTER_KEYWORD_RE.match(text) or ROMAN_PREFIX_RE.match(text) or score >= STRONG_HEADING:
          depth = 1
        else:
          depth = 2
        pool.append(Candidate(line=line, score=score, depth=depth, numbered=numeric_depth is not None))
    return pool

  def _select_anchors(self, candidates: Sequence[Candidate], *, toc_driven: bool) -> list[tuple[Candidate, int]]:
    """Keep the best candidate per page and assign its depth."""
    best: dict[int, Candidate] = {}
    for candidate in candidates:
      current = best.get(candidate.line.page)
      if current is None or candidate.rank > current.rank:
        best[candidate.line.page] = candidate

    anchors: list[tuple[Candidate, int]] = []
    seen: set[str] = set()
    has_chapter = False
    for page in sorted(best):
      candidate = best[page]
      key = normalize_title(candidate.line.text)
      repeated = key in seen and not candidate.confirmed
      seen.add(key)
      depth = candidate.depth
      # A confirmed TOC outline defines the chapters; other strong lines become subsections.
      if toc_driven and not candidate.confirmed:
        depth = max(depth, 2)
      if repeated:
        depth = max(depth, 2)
      if depth >= 2 and not has_chapter:
        if toc_driven or repeated:
          continue
        depth = 1
      has_chapter = has_chapter or depth == 1
      anchors.append((candidate, depth))
    return anchors

  def _build_sections(self, page_lines: Sequence[Sequence[str]], anchors: Sequence[tuple[Candidate, int]], page_count: int) -> list[Section]:
    groups: list[tuple[Candidate, list[Candidate]]] = []
    for candidate, depth in anchors:
      if depth == 1:
        groups.append((candidate, []))
      else:
        groups[-1][1].append(candidate)

    sections: list[Section] = []
    for position, (chapter, children) in enumerate(groups):
      # Front matter before the first chapter folds into it.
      start = 1 if position == 0 else chapter.line.page
      end = groups[position + 1][0].line.page - 1 if position + 1 < len(groups) else page_count
      chapter_range = PageRange(start=start, end=end)
      chapter_id = f"s{position + 1}"

      subsections: list[Section] = []
      for child_position, child in enumerate(children):
        child_end = children[child_position + 1].line.page - 1 if child_position + 1 < len(children) else end
        child_range = PageRange(start=child.line.page, end=child_end)
        subsections.append(
          Section(
            id=f"{chapter_id}.{child_position + 1}",
            title=child.line.text.rstrip(":").strip(),
            level="subsection",
            start_marker=_leading_words(page_lines, child_range, from_line=child.line.index),
            end_marker=_trailing_words(page_lines, child_range),
            page_range=child_range,
            anchor_page=child.line.page,
          )
        )

      marker_range = PageRange(start=chapter.line.page, end=end)
      sections.append(
        Section(
          id=chapter_id,
          title=chapter.line.text.rstrip(":").strip(),
          level="chapter",
          start_marker=_leading_words(page_lines, marker_range, from_line=chapter.line.index),
          end_marker=_trailing_words(page_lines, chapter_range),
          page_range=chapter_range,
          anchor_page=chapter.line.page,
          subsections=tuple(subsections),
        )
      )
    return sections


def detect(pages: Sequence[str]) -> list[Section]:
  """Detect the outline of a document with the default rule set."""
  return StructureDetector().detect(pages)


def section_text(pages: Sequence[str], section: Section, *, limit: int | None = None) -> str:
  """Slice a section's source text using its markers, falling back to its page range."""
  window = " ".join(" ".join(pages[section.page_range.start - 1 : section.page_range.end]).split())
  if section.start_marker:
    start = window.find(section.start_marker)
    if start >= 0:
      window = window[start:]
  if section.end_marker:
    end = window.rfind(section.end_marker)
    if end >= 0:
      window = window[: end + len(section.end_marker)]
  if limit is not None and len(window) > limit:
    return window[:limit]
  return window
