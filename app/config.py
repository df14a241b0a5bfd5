"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the course generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  gemini_api_key: str | None
  text_model: str
  vision_model: str
  ai_timeout_seconds: float
  ai_max_retries: int
  ai_schema_retries: int
  stale_job_seconds: int
  max_concurrent_sections: int
  section_char_limit: int
  document_char_limit: int
  completeness_threshold: float
  breaker_failure_threshold: int
  breaker_cooldown_seconds: float
  graphics_batch_size: int
  graphics_max_reanalyze: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("COURSEGEN_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))

  log_max_bytes = _positive_int("COURSEGEN_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("COURSEGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("COURSEGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Schema retries may be zero; transient retries may be zero as well.
  ai_max_retries = int(os.getenv("COURSEGEN_AI_MAX_RETRIES", "3"))
  ai_schema_retries = int(os.getenv("COURSEGEN_AI_SCHEMA_RETRIES", "1"))
  if ai_max_retries < 0 or ai_schema_retries < 0:
    raise ValueError("COURSEGEN_AI_MAX_RETRIES and COURSEGEN_AI_SCHEMA_RETRIES must not be negative.")

  completeness_threshold = float(os.getenv("COURSEGEN_COMPLETENESS_THRESHOLD", "70"))
  if not 0 <= completeness_threshold <= 100:
    raise ValueError("COURSEGEN_COMPLETENESS_THRESHOLD must be between 0 and 100.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("COURSEGEN_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("COURSEGEN_LOG_HTTP_4XX")),
    pg_dsn=_optional_str(os.getenv("COURSEGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("COURSEGEN_PG_CONNECT_TIMEOUT", "5"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    text_model=os.getenv("COURSEGEN_TEXT_MODEL", "gemini-2.5-flash").strip(),
    vision_model=os.getenv("COURSEGEN_VISION_MODEL", "gemini-2.5-flash").strip(),
    ai_timeout_seconds=_positive_float("COURSEGEN_AI_TIMEOUT_SECONDS", "120"),
    ai_max_retries=ai_max_retries,
    ai_schema_retries=ai_schema_retries,
    stale_job_seconds=_positive_int("COURSEGEN_STALE_JOB_SECONDS", "300"),
    max_concurrent_sections=_positive_int("COURSEGEN_MAX_CONCURRENT_SECTIONS", "3"),
    section_char_limit=_positive_int("COURSEGEN_SECTION_CHAR_LIMIT", "12000"),
    document_char_limit=_positive_int("COURSEGEN_DOCUMENT_CHAR_LIMIT", "200000"),
    completeness_threshold=completeness_threshold,
    breaker_failure_threshold=_positive_int("COURSEGEN_BREAKER_FAILURE_THRESHOLD", "3"),
    breaker_cooldown_seconds=_positive_float("COURSEGEN_BREAKER_COOLDOWN_SECONDS", "120"),
    graphics_batch_size=_positive_int("COURSEGEN_GRAPHICS_BATCH_SIZE", "5"),
    graphics_max_reanalyze=_positive_int("COURSEGEN_GRAPHICS_MAX_REANALYZE", "50"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))
  pg_connect_timeout = _positive_int("COURSEGEN_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("COURSEGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
