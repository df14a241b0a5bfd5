"""Error taxonomy and classification helpers for generation passes."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

_TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

_TRANSIENT_HINTS: tuple[str, ...] = (
  "rate limit",
  "resource exhausted",
  "quota exceeded",
  "too many requests",
  "timeout",
  "timed out",
  "deadline exceeded",
  "econnreset",
  "etimedout",
  "enotfound",
  "connection reset",
  "connection aborted",
  "service unavailable",
  "bad gateway",
  "internal error",
)

_OUTPUT_HINTS: tuple[str, ...] = (
  "invalid json",
  "failed to parse",
  "parse json",
  "schema",
  "validation",
)


class TransientDependencyError(RuntimeError):
  """The external service timed out or asked us to slow down."""


class SchemaViolationError(RuntimeError):
  """The external service kept returning output that does not fit the pass schema."""

  def __init__(self, pass_name: str, errors: list[str]) -> None:
    super().__init__(f"Pass '{pass_name}' returned output that failed validation: {'; '.join(errors[:3])}")
    self.pass_name = pass_name
    self.errors = errors


class PassFailedError(RuntimeError):
  """A generation pass failed after exhausting its retry budget."""

  def __init__(self, pass_name: str, cause: BaseException) -> None:
    super().__init__(f"Pass '{pass_name}' failed: {cause}")
    self.pass_name = pass_name
    self.cause = cause


class JobStoppedError(RuntimeError):
  """The job left the processing state while a run was still in flight."""


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def _status_code(exc: BaseException) -> int | None:
  # google-genai APIError exposes ``code``; httpx errors carry a response.
  for attribute in ("code", "status_code", "status"):
    value = getattr(exc, attribute, None)
    if isinstance(value, int):
      return value
  response = getattr(exc, "response", None)
  value = getattr(response, "status_code", None)
  return value if isinstance(value, int) else None


def is_transient_error(exc: BaseException) -> bool:
  """Return True when an exception should be retried with backoff."""
  if isinstance(exc, TransientDependencyError | asyncio.TimeoutError | TimeoutError | ConnectionError):
    return True
  status_code = _status_code(exc)
  if status_code is not None and status_code in _TRANSIENT_STATUS_CODES:
    return True
  return _match_hint(str(exc).lower(), _TRANSIENT_HINTS)


def is_output_error(exc: BaseException) -> bool:
  """Return True when an exception indicates malformed model output."""
  return _match_hint(str(exc).lower(), _OUTPUT_HINTS)
