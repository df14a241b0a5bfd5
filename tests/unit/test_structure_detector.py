from __future__ import annotations

from app.structure.detector import FALLBACK_TITLE, StructureDetector, detect, section_text
from app.structure.models import Line
from app.structure.rules import score_line

BODY = "The lecture text on this page explains the topic in several plain sentences."
OTHER = "The next paragraph continues with details that students are expected to know."


def _page(*headings: str) -> str:
  return "\n".join([*headings, BODY, OTHER, BODY])


def _assert_partition(sections, page_count: int) -> None:
  assert sections[0].page_range.start == 1
  assert sections[-1].page_range.end == page_count
  for previous, current in zip(sections, sections[1:], strict=False):
    assert current.page_range.start == previous.page_range.end + 1


def test_chapter_anchors_partition_the_whole_document() -> None:
  """Front matter folds into the first chapter and the last chapter runs to the end."""
  titles = {3: "Chapter 1 Cells", 8: "Chapter 2 Genetics", 15: "Chapter 3 Evolution", 22: "Chapter 4 Ecology"}
  pages = [_page(titles[number]) if number in titles else _page() for number in range(1, 25)]

  sections = detect(pages)

  assert [section.id for section in sections] == ["s1", "s2", "s3", "s4"]
  assert [section.anchor_page for section in sections] == [3, 8, 15, 22]
  assert [(section.page_range.start, section.page_range.end) for section in sections] == [(1, 7), (8, 14), (15, 21), (22, 24)]
  assert all(section.level == "chapter" for section in sections)
  _assert_partition(sections, 24)


def test_start_marker_begins_at_the_heading_line() -> None:
  pages = [_page(), _page("Chapter 1 Cells"), _page(), _page("Chapter 2 Genetics"), _page()]

  sections = detect(pages)

  assert sections[0].start_marker.startswith("Chapter 1 Cells")
  assert len(sections[0].start_marker.split()) == 20
  assert section_text(pages, sections[1]).startswith("Chapter 2 Genetics")


def test_no_headings_falls_back_to_single_section() -> None:
  pages = [_page() for _ in range(4)]

  sections = detect(pages)

  assert len(sections) == 1
  assert sections[0].title == FALLBACK_TITLE
  assert sections[0].id == "s1"
  assert (sections[0].page_range.start, sections[0].page_range.end) == (1, 4)


def test_empty_document_still_yields_one_section() -> None:
  sections = StructureDetector().detect([])

  assert len(sections) == 1
  assert (sections[0].page_range.start, sections[0].page_range.end) == (1, 1)


def test_numbered_subsections_nest_under_their_chapter() -> None:
  pages = [
    _page("Chapter 1 Cells"),
    _page(),
    _page("1.1 Cell Membranes"),
    _page(),
    _page(),
    _page("Chapter 2 Genetics"),
    _page(),
    _page(),
  ]

  sections = detect(pages)

  assert [section.id for section in sections] == ["s1", "s2"]
  assert (sections[0].page_range.start, sections[0].page_range.end) == (1, 5)
  children = sections[0].subsections
  assert [child.id for child in children] == ["s1.1"]
  assert children[0].title == "1.1 Cell Membranes"
  assert children[0].level == "subsection"
  assert (children[0].page_range.start, children[0].page_range.end) == (3, 5)
  _assert_partition(sections, 8)


def test_table_of_contents_drives_chapters() -> None:
  """Confirmed TOC titles become chapters; other strong lines become subsections."""
  toc = "\n".join(["Contents", "1. Foundations ........ 2", "2. Applications ........ 4", "3. Review ........ 6"])
  pages = [toc, _page("1. Foundations"), _page("Key Results Summary"), _page("2. Applications"), _page(), _page("3. Review")]

  sections = detect(pages)

  assert [section.title for section in sections] == ["1. Foundations", "2. Applications", "3. Review"]
  assert [(section.page_range.start, section.page_range.end) for section in sections] == [(1, 3), (4, 5), (6, 6)]
  assert [child.title for child in sections[0].subsections] == ["Key Results Summary"]
  _assert_partition(sections, 6)


def test_running_headers_are_ignored() -> None:
  header = "INTRODUCTION TO BIOLOGY"
  pages = [f"{header}\n{_page('Chapter 1 Cells')}", f"{header}\n{_page()}", f"{header}\n{_page('Chapter 2 Genetics')}", f"{header}\n{_page()}"]

  sections = detect(pages)

  assert [section.title for section in sections] == ["Chapter 1 Cells", "Chapter 2 Genetics"]


def test_section_text_honours_limit() -> None:
  pages = [_page("Chapter 1 Cells"), _page()]
  section = detect(pages)[0]

  assert len(section_text(pages, section, limit=40)) == 40


def test_to_dict_serializes_tree() -> None:
  pages = [_page("Chapter 1 Cells"), _page("1.1 Cell Membranes"), _page("Chapter 2 Genetics")]

  payload = detect(pages)[0].to_dict()

  assert payload["id"] == "s1"
  assert payload["pageRange"] == {"start": 1, "end": 2}
  assert payload["subsections"][0]["id"] == "s1.1"


def _long_page(*headings: str) -> str:
  return "\n".join([*headings, BODY, OTHER, BODY, OTHER, BODY, OTHER, BODY])


def test_toc_confirmation_breaks_ties_between_equal_scores() -> None:
  width = max(len(BODY), len(OTHER))
  first = Line(page=2, index=0, text="Cell Membranes", line_count=9, page_width=width)
  second = Line(page=2, index=1, text="Protein Channels", line_count=9, page_width=width)
  assert score_line(first) == score_line(second)

  body = [_long_page("Cell Membranes", "Protein Channels"), _long_page(), _long_page("Energy Transfer")]
  toc = "\n".join(["Contents", "Protein Channels ........ 2", "Energy Transfer ........ 4"])

  # Without a TOC the earlier line wins the page.
  assert detect(body)[0].title == "Cell Membranes"

  sections = detect([toc, *body])

  assert [section.title for section in sections] == ["Protein Channels", "Energy Transfer"]
  assert [section.anchor_page for section in sections] == [2, 4]
  assert sections[0].subsections == ()
  _assert_partition(sections, 4)


def test_recurring_heading_is_not_merged_across_pages() -> None:
  pages = [_page("Chapter 1 Cells"), _page("Exercises"), _page(), _page("Chapter 2 Genetics"), _page(), _page("Exercises")]

  sections = detect(pages)

  assert [(section.title, section.page_range.start, section.page_range.end) for section in sections] == [
    ("Chapter 1 Cells", 1, 1),
    ("Exercises", 2, 3),
    ("Chapter 2 Genetics", 4, 6),
  ]
  repeat = sections[2].subsections
  assert [(child.id, child.title, child.anchor_page, child.level) for child in repeat] == [("s3.1", "Exercises", 6, "subsection")]
  _assert_partition(sections, 6)
