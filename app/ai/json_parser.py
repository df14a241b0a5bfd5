"""Lenient JSON parsing helpers for LLM outputs."""

from __future__ import annotations

import re
from typing import Any

import msgspec

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_json_fences(raw: str) -> str:
  """Remove Markdown code fences wrapped around a JSON payload."""
  return _FENCE_RE.sub("", raw.strip())


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON with minimal recovery to keep schema retries low."""
  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return msgspec.json.decode(raw)
  except msgspec.DecodeError as exc:
    last_error = exc

  # Extract the first JSON object/array to ignore leading or trailing text.
  candidate = _extract_json_block(raw)
  if candidate is None:
    raise last_error

  try:
    return msgspec.json.decode(candidate)
  except msgspec.DecodeError:
    pass

  # Strip trailing commas that commonly appear in LLM output, letting errors propagate.
  return msgspec.json.decode(_TRAILING_COMMA_RE.sub(r"\1", candidate))


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array for recovery parsing."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  # Scan the text for a balanced payload while honoring string escapes.
  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
