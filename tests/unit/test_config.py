from __future__ import annotations

import pytest

from app.config import _parse_origins, get_database_settings, get_settings
from app.core.lifespan import _redact_dsn


def test_parse_origins_rejects_missing_and_wildcard() -> None:
  with pytest.raises(ValueError):
    _parse_origins(None)
  with pytest.raises(ValueError):
    _parse_origins(" , ")
  with pytest.raises(ValueError):
    _parse_origins("http://localhost,*")
  assert _parse_origins("http://a.test, http://b.test") == ("http://a.test", "http://b.test")


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_ALLOWED_ORIGINS", "http://localhost")
  monkeypatch.setenv("COURSEGEN_MAX_CONCURRENT_SECTIONS", "5")
  monkeypatch.setenv("COURSEGEN_COMPLETENESS_THRESHOLD", "80")
  monkeypatch.setenv("COURSEGEN_PG_DSN", "postgresql://user:secret@db:5432/courses")

  settings = get_settings.__wrapped__()

  assert settings.max_concurrent_sections == 5
  assert settings.completeness_threshold == 80.0
  assert settings.stale_job_seconds == 300
  assert settings.pg_dsn == "postgresql://user:secret@db:5432/courses"


@pytest.mark.parametrize(
  ("name", "value"),
  [("COURSEGEN_MAX_CONCURRENT_SECTIONS", "0"), ("COURSEGEN_COMPLETENESS_THRESHOLD", "120"), ("COURSEGEN_AI_MAX_RETRIES", "-1")],
)
def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
  monkeypatch.setenv("COURSEGEN_ALLOWED_ORIGINS", "http://localhost")
  monkeypatch.setenv(name, value)

  with pytest.raises(ValueError):
    get_settings.__wrapped__()


def test_database_settings_do_not_need_cors(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("COURSEGEN_ALLOWED_ORIGINS", raising=False)
  monkeypatch.setenv("COURSEGEN_PG_DSN", "postgresql://db/courses")

  assert get_database_settings.__wrapped__().pg_dsn == "postgresql://db/courses"


def test_redact_dsn_hides_password() -> None:
  assert _redact_dsn("postgresql://user:secret@db:5432/courses") == "postgresql://user@db:5432/courses"
  assert _redact_dsn(None) == "<unset>"
  assert _redact_dsn("not a dsn") == "<invalid>"
