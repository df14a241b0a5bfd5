"""Provider implementations."""

from app.ai.providers.base import AIModel, Attachment, Provider, StructuredModelResponse
from app.ai.providers.gemini import GeminiModel, GeminiProvider

__all__ = ["AIModel", "Attachment", "Provider", "StructuredModelResponse", "GeminiModel", "GeminiProvider"]
