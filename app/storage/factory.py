from app.config import Settings
from app.storage.courses_repo import CoursesRepository
from app.storage.graphics_repo import GraphicsRepository
from app.storage.jobs_repo import JobsRepository
from app.storage.postgres_courses_repo import PostgresCoursesRepository
from app.storage.postgres_graphics_repo import PostgresGraphicsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository


def _require_postgres(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("COURSEGEN_PG_DSN must be set to enable Postgres persistence.")


def _get_courses_repo(settings: Settings) -> CoursesRepository:
  """Return the active courses repository."""
  _require_postgres(settings)
  return PostgresCoursesRepository()


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_postgres(settings)
  return PostgresJobsRepository()


def _get_graphics_repo(settings: Settings) -> GraphicsRepository:
  """Return the active graphics repository."""
  _require_postgres(settings)
  return PostgresGraphicsRepository()
