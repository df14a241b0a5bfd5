import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from app.config import get_settings
from app.core.json import DecimalJSONResponse

logger = logging.getLogger("uvicorn.error")

# Keys that can carry document pages or generated course text.
_REDACTED_KEYS = frozenset({"input", "body", "pages", "document", "content", "partialContent", "noteMarkdown"})


def _coerce_json_safe(value: Any) -> Any:
  """Convert values pydantic leaves in error contexts into JSON primitives."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Exceptions in ``ctx`` are reported as "Type: message".
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _redacted(value: Any) -> str:
  if isinstance(value, str):
    return f"<redacted {len(value)} chars>"
  if isinstance(value, list | tuple):
    return f"<redacted {len(value)} items>"
  return "<redacted>"


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without the submitted values.

  A rejected course creation would otherwise echo every page of the document
  back to the client and into the logs.
  """
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if isinstance(scrubbed.get("ctx"), dict):
      scrubbed["ctx"] = {key: value for key, value in scrubbed["ctx"].items() if key != "input"}
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an ``HTTPException`` detail with document and note text replaced by size markers."""
  if isinstance(detail, dict):
    return {key: _redacted(value) if key in _REDACTED_KEYS else _sanitize_http_detail(value) for key, value in detail.items()}
  if isinstance(detail, list | tuple):
    return [_sanitize_http_detail(item) for item in detail]
  return _coerce_json_safe(detail)


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Catch-all for unhandled errors; the client only sees a request id."""
  request_id = getattr(request.state, "request_id", None)
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return DecimalJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  request_id = getattr(request.state, "request_id", None)
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, errors)
  return DecimalJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """Return 4xx details as raised and hide 5xx details; logged details are always redacted."""
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail), exc_info=True)
    return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id), headers=exc.headers)

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)
