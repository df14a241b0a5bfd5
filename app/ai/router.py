"""Routing utilities for provider/model selection."""

from __future__ import annotations

from app.ai.providers.base import AIModel, Provider
from app.ai.providers.gemini import GeminiProvider
from app.config import Settings


def get_provider(settings: Settings) -> Provider:
  """Return the configured provider instance."""
  return GeminiProvider(api_key=settings.gemini_api_key)


def get_text_model(settings: Settings) -> AIModel:
  """Return the model used for text generation passes."""
  return get_provider(settings).get_model(settings.text_model)


def get_vision_model(settings: Settings) -> AIModel:
  """Return the model used for graphics analysis and verification."""
  model = get_provider(settings).get_model(settings.vision_model)
  if not model.supports_vision:
    raise ValueError(f"Model '{model.name}' does not accept image input.")
  return model
