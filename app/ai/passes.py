"""Schema-validated execution of generation passes against the external model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from app.ai import prompts
from app.ai.backoff import DEFAULT_POLICY, RetryPolicy, retry_with_backoff
from app.ai.circuit_breaker import CircuitBreaker, CircuitOpenError
from app.ai.contracts import CompletenessReport, GraphicAnalysis, GraphicsVerification, SectionContent, StructureEnrichment
from app.ai.errors import PassFailedError, SchemaViolationError, TransientDependencyError, is_output_error
from app.ai.providers.base import AIModel, Attachment, StructuredModelResponse

M = TypeVar("M", bound=BaseModel)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassSpec(Generic[M]):
  """Describes one pass: its name, output schema and instructions."""

  name: str
  output_model: type[M]
  build_prompt: Callable[[Mapping[str, Any]], str]
  uses_vision: bool = False

  def json_schema(self) -> dict[str, Any]:
    return self.output_model.model_json_schema()


STRUCTURE_PASS = PassSpec("structure", StructureEnrichment, prompts.structure_prompt)
SECTION_PASS = PassSpec("section", SectionContent, prompts.section_prompt)
COMPLETENESS_PASS = PassSpec("completeness", CompletenessReport, prompts.completeness_prompt)
GRAPHICS_PASS = PassSpec("graphics", GraphicsVerification, prompts.graphics_prompt, uses_vision=True)
GRAPHIC_ANALYSIS_PASS = PassSpec("graphic_analysis", GraphicAnalysis, prompts.graphic_analysis_prompt, uses_vision=True)


def _format_validation_errors(exc: ValidationError) -> list[str]:
  return [f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()]


class GenerationPassRunner:
  """Run a pass, validate its output, and retry within bounded budgets.

  Transient errors use ``retry_policy``; schema violations get ``schema_retries`` extra
  attempts with the same input. Vision passes go through ``breaker``.
  """

  def __init__(
    self,
    *,
    text_model: AIModel,
    vision_model: AIModel | None = None,
    breaker: CircuitBreaker | None = None,
    retry_policy: RetryPolicy = DEFAULT_POLICY,
    schema_retries: int = 1,
    timeout_seconds: float = 120.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._text_model = text_model
    self._vision_model = vision_model or text_model
    self._breaker = breaker
    self._retry_policy = retry_policy
    self._schema_retries = max(0, schema_retries)
    self._timeout_seconds = timeout_seconds
    self._sleep = sleep

  async def run(self, spec: PassSpec[M], payload: Mapping[str, Any], *, attachments: list[Attachment] | None = None) -> M:
    """Execute ``spec`` and return its validated output model."""
    model = self._vision_model if spec.uses_vision else self._text_model
    prompt = spec.build_prompt(payload)
    schema = spec.json_schema()
    errors: list[str] = []

    for attempt in range(self._schema_retries + 1):
      try:
        response = await retry_with_backoff(lambda: self._invoke(spec, model, prompt, schema, attachments), policy=self._retry_policy, operation=f"{spec.name}_pass", sleep=self._sleep)
      except CircuitOpenError:
        raise
      except Exception as exc:
        # Unparseable JSON is a schema problem, not a dependency outage.
        if is_output_error(exc):
          errors = [str(exc)]
          logger.warning("Pass %s returned unparseable output (attempt %d/%d): %s", spec.name, attempt + 1, self._schema_retries + 1, exc)
          continue
        logger.error("Pass %s failed: %s", spec.name, exc)
        raise PassFailedError(spec.name, exc) from exc

      try:
        return spec.output_model.model_validate(response.content)
      except ValidationError as exc:
        errors = _format_validation_errors(exc)
        logger.warning("Pass %s output failed validation (attempt %d/%d): %s", spec.name, attempt + 1, self._schema_retries + 1, errors[:3])

    violation = SchemaViolationError(spec.name, errors)
    raise PassFailedError(spec.name, violation) from violation

  async def _invoke(self, spec: PassSpec[Any], model: AIModel, prompt: str, schema: dict[str, Any], attachments: list[Attachment] | None) -> StructuredModelResponse:
    async def _call() -> StructuredModelResponse:
      try:
        return await asyncio.wait_for(model.generate_structured(prompt, schema, attachments=attachments), timeout=self._timeout_seconds)
      except asyncio.TimeoutError as exc:
        raise TransientDependencyError(f"{spec.name} pass timed out after {self._timeout_seconds:.0f}s") from exc

    if spec.uses_vision and self._breaker is not None:
      return await self._breaker.call(_call)
    return await _call()
