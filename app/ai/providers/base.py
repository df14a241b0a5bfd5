"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from app.ai.json_parser import strip_json_fences


@dataclass(frozen=True)
class Attachment:
  """A remote image or document the model should look at."""

  uri: str
  mime_type: str


@dataclass
class StructuredModelResponse:
  """Structured model response structure."""

  content: dict[str, Any]
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  supports_vision: bool = False

  @abstractmethod
  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, attachments: list[Attachment] | None = None) -> StructuredModelResponse:
    """Generate output that conforms to the provided JSON schema."""

  @staticmethod
  def strip_json_fences(raw: str) -> str:
    return strip_json_fences(raw)


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
