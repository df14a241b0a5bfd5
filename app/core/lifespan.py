import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.ai.circuit_breaker import CircuitBreaker
from app.core.database import dispose_engine
from app.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and shared process state, then release pooled connections on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    # Keep serving with the default handlers when the log directory is unavailable.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # One breaker per process, shared by every course and the reanalysis endpoint.
  app.state.vision_breaker = CircuitBreaker("vision", failure_threshold=settings.breaker_failure_threshold, cooldown_seconds=settings.breaker_cooldown_seconds)
  logger.info("Database DSN=%s environment=%s text_model=%s vision_model=%s", _redact_dsn(settings.pg_dsn), settings.environment, settings.text_model, settings.vision_model)

  try:
    yield
  finally:
    await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
