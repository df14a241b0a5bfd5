"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import json
import logging
from dataclasses import replace

import pytest
from fastapi import HTTPException, Request

from app.core.exceptions import _sanitize_http_detail, _sanitize_validation_errors, http_exception_handler


def _request() -> Request:
  return Request({"type": "http", "method": "POST", "path": "/v1/courses", "headers": [], "query_string": b""})


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and never echo page text."""
  errors = [{"type": "value_error", "loc": ("body", "pages"), "msg": "Value error, Page 3 exceeds 50000 characters.", "input": ["page one", "page two"], "ctx": {"error": ValueError("Page 3 exceeds 50000 characters."), "input": ["page one"]}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Page 3 exceeds 50000 characters."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "pages"]


def test_sanitize_http_detail_replaces_document_text_with_sizes() -> None:
  detail = {"message": "Note rejected.", "content": "## Chapter 1 Cells", "extra": [{"pages": ["one", "two"], "page": 2}]}

  assert _sanitize_http_detail(detail) == {"message": "Note rejected.", "content": "<redacted 18 chars>", "extra": [{"pages": "<redacted 2 items>", "page": 2}]}
  assert _sanitize_http_detail("Course not found.") == "Course not found."


@pytest.mark.anyio
async def test_http_exception_handler_logs_redacted_detail_and_returns_original(monkeypatch, settings, caplog) -> None:
  monkeypatch.setattr("app.core.exceptions.get_settings", lambda: replace(settings, log_http_4xx=True))
  logger = logging.getLogger("uvicorn.error")
  logger.addHandler(caplog.handler)
  caplog.set_level(logging.WARNING, logger="uvicorn.error")
  try:
    response = await http_exception_handler(_request(), HTTPException(status_code=409, detail={"message": "Conflict", "document": "Chapter 1 Cells secret text"}))
  finally:
    logger.removeHandler(caplog.handler)

  assert response.status_code == 409
  assert json.loads(response.body) == {"detail": {"message": "Conflict", "document": "Chapter 1 Cells secret text"}}
  assert "secret text" not in caplog.text
  assert "<redacted 27 chars>" in caplog.text


@pytest.mark.anyio
async def test_http_exception_handler_hides_server_error_detail(monkeypatch, settings, caplog) -> None:
  monkeypatch.setattr("app.core.exceptions.get_settings", lambda: settings)
  logger = logging.getLogger("uvicorn.error")
  logger.addHandler(caplog.handler)
  caplog.set_level(logging.ERROR, logger="uvicorn.error")
  try:
    response = await http_exception_handler(_request(), HTTPException(status_code=503, detail={"content": "partial note text"}))
  finally:
    logger.removeHandler(caplog.handler)

  assert response.status_code == 503
  assert json.loads(response.body) == {"detail": "Internal Server Error"}
  assert "partial note text" not in caplog.text
