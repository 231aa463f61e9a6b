"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from studyforge.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the StudyForge service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  upload_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  gemini_api_key: str | None
  generation_model: str
  quick_model: str
  ocr_model: str
  chunk_max_chars: int
  planning_max_chars: int
  summary_max_chars: int
  ocr_poll_interval_seconds: float
  ocr_timeout_seconds: float
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  base_url: str | None
  task_secret: str | None
  operator_token: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("STUDYFORGE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("STUDYFORGE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  raw = os.getenv(name, default)
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be positive.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("STUDYFORGE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("STUDYFORGE_DEBUG"))

  log_backup_count = int(os.getenv("STUDYFORGE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("STUDYFORGE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  task_service_provider = os.getenv("STUDYFORGE_TASK_SERVICE_PROVIDER", "local-http").strip().lower()
  if task_service_provider not in {"local-http", "gcp"}:
    raise ValueError("STUDYFORGE_TASK_SERVICE_PROVIDER must be 'local-http' or 'gcp'.")

  generation_model = (os.getenv("STUDYFORGE_GENERATION_MODEL") or "gemini-2.5-flash").strip()

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("STUDYFORGE_ALLOWED_ORIGINS")),
    log_max_bytes=_positive_int("STUDYFORGE_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
    pg_dsn=os.getenv("STUDYFORGE_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("STUDYFORGE_PG_CONNECT_TIMEOUT", "5"),
    upload_bucket=(os.getenv("STUDYFORGE_UPLOAD_BUCKET") or "studyforge-uploads").strip(),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    generation_model=generation_model,
    quick_model=(os.getenv("STUDYFORGE_QUICK_MODEL") or "gemini-2.0-flash-lite").strip(),
    ocr_model=(os.getenv("STUDYFORGE_OCR_MODEL") or generation_model).strip(),
    chunk_max_chars=_positive_int("STUDYFORGE_CHUNK_MAX_CHARS", "2000"),
    planning_max_chars=_positive_int("STUDYFORGE_PLANNING_MAX_CHARS", "30000"),
    summary_max_chars=_positive_int("STUDYFORGE_SUMMARY_MAX_CHARS", "25000"),
    ocr_poll_interval_seconds=_positive_float("STUDYFORGE_OCR_POLL_INTERVAL_SECONDS", "2"),
    ocr_timeout_seconds=_positive_float("STUDYFORGE_OCR_TIMEOUT_SECONDS", "600"),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=_optional_str(os.getenv("STUDYFORGE_CLOUD_TASKS_QUEUE_PATH")),
    base_url=_optional_str(os.getenv("STUDYFORGE_BASE_URL")),
    task_secret=_optional_str(os.getenv("STUDYFORGE_TASK_SECRET")),
    operator_token=_optional_str(os.getenv("STUDYFORGE_OPERATOR_TOKEN")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  debug = _parse_bool(os.getenv("STUDYFORGE_DEBUG"))
  pg_connect_timeout = _positive_int("STUDYFORGE_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("STUDYFORGE_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
