"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
from typing import Any, Final, cast

import msgspec
from google import genai
from google.genai import types

from app.ai.json_parser import parse_json_with_fallback
from app.ai.providers.base import AIModel, Attachment, Provider, StructuredModelResponse

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client with structured output support."""

  def __init__(self, name: str, api_key: str | None = None) -> None:
    self.name: str = name
    self.supports_vision = True
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")
    self._client = genai.Client(api_key=api_key)

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, attachments: list[Attachment] | None = None) -> StructuredModelResponse:
    """Generate structured JSON output using Gemini's JSON mode."""
    contents: list[Any] = [types.Part.from_uri(file_uri=item.uri, mime_type=item.mime_type) for item in attachments or []]
    contents.append(prompt)

    # Use the async client to avoid blocking the event loop; retries are owned by the pass runner.
    response = await self._client.aio.models.generate_content(model=self.name, contents=contents, config={"response_mime_type": "application/json", "response_json_schema": schema})
    logger.debug("Gemini structured response (raw):\n%s", response.text)

    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}

    # Parse the model response with a lenient fallback to reduce retry churn.
    try:
      parsed = parse_json_with_fallback(self.strip_json_fences(response.text or ""))
    except msgspec.DecodeError as exc:
      raise ValueError(f"Gemini returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
      raise ValueError("Gemini returned invalid JSON: expected an object")
    return StructuredModelResponse(content=cast(dict[str, Any], parsed), usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
