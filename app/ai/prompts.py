"""Instruction builders for each generation pass."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any


def _render(payload: Mapping[str, Any], keys: tuple[str, ...]) -> str:
  """Append payload blocks under upper-case labels, JSON-encoding non-text values."""
  blocks: list[str] = []
  for key in keys:
    if key not in payload:
      continue
    value = payload[key]
    body = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    blocks.append(f"{key.upper()}:\n{body}")
  return "\n\n".join(blocks)


def structure_prompt(payload: Mapping[str, Any]) -> str:
  return (
    "You analyse course material. For every section in OUTLINE, list the definitions, formulas, worked examples, "
    "exercises and tables it contains, using short labels. List every figure, chart or diagram described in the text "
    "as a graphics manifest entry bound to the id of the section that contains it. Ignore running headers, page numbers "
    "and administrative metadata.\n\n" + _render(payload, ("outline", "document"))
  )


def section_prompt(payload: Mapping[str, Any]) -> str:
  return (
    "Write a complete revision note in Markdown for the SECTION TEXT only, then multiple-choice questions and flashcards "
    "covering it. Every item in INVENTORY must appear in the note. Introduce and analyse every figure in GRAPHICS and "
    "return the ids you rendered. Do not use material from other sections.\n\n" + _render(payload, ("section", "inventory", "graphics", "section_text"))
  )


def completeness_prompt(payload: Mapping[str, Any]) -> str:
  return (
    "Check the GENERATED NOTE, GENERATED QUESTIONS and GENERATED FLASHCARDS against the EXPECTED ITEMS. An item counts as "
    "covered only when the note explains it; questions and flashcards show where practice exists. Mark each item present, "
    "partial or absent, give a completeness score from 0 to 100, and when items are missing write supplementary Markdown "
    "that covers them.\n\n" + _render(payload, ("expected_items", "generated_note", "generated_questions", "generated_flashcards"))
  )


def graphics_prompt(payload: Mapping[str, Any]) -> str:
  return (
    "For each entry in GRAPHICS MANIFEST, report whether the GENERATED NOTE renders it, introduces it, analyses it, and "
    "places it in the section named by its section id. RENDERED GRAPHICS maps each section id to the manifest ids its writer "
    "reports rendering. List concrete issues and give an overall score from 0 to 100.\n\n"
    + _render(payload, ("graphics_manifest", "extracted_graphics", "rendered_graphics", "generated_note"))
  )


def graphic_analysis_prompt(payload: Mapping[str, Any]) -> str:
  return (
    "Analyse the attached course graphic. Classify it, describe it, list its visual elements, suggest how a student should "
    "read it, list related concepts, and give your confidence from 0 to 1.\n\n" + _render(payload, ("graphic", "page_text"))
  )
