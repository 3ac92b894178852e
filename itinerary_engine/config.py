"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from itinerary_engine.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_TEXT_MODEL = "meta-llama/llama-3.3-70b-instruct:free"
DEFAULT_VISION_MODEL = "nvidia/nemotron-nano-12b-v2-vl:free"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the itinerary engine."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  document_store_provider: str
  openrouter_api_key: str | None
  openrouter_base_url: str
  openrouter_http_referer: str | None
  openrouter_title: str | None
  text_model: str
  vision_model: str
  inference_max_attempts: int
  inference_base_delay_ms: int
  labeling_concurrency: int
  stuck_job_threshold_minutes: int
  publish_blocker_limit: int
  image_source_base_url: str
  scraper_api_key: str | None
  payload_api_key: str | None
  task_secret: str | None
  base_url: str | None
  notifications_enabled: bool
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


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
    raise ValueError("ITINERARY_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("ITINERARY_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

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


def _pg_dsn() -> str | None:
  return _optional_str(os.getenv("ITINERARY_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("ITINERARY_ENV", "development").lower()
  debug = _parse_bool(os.getenv("ITINERARY_DEBUG"))

  log_max_bytes = _positive_int("ITINERARY_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("ITINERARY_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("ITINERARY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  pg_dsn = _pg_dsn()
  # Fall back to the in-memory store only when no database is configured.
  document_store_provider = (os.getenv("ITINERARY_DOCUMENT_STORE") or ("postgres" if pg_dsn else "memory")).strip().lower()
  if document_store_provider not in {"postgres", "memory"}:
    raise ValueError("ITINERARY_DOCUMENT_STORE must be 'postgres' or 'memory'.")
  if document_store_provider == "postgres" and not pg_dsn:
    raise ValueError("ITINERARY_PG_DSN must be set when the postgres document store is selected.")

  # Retry and fan-out limits for the OpenRouter free tier.
  inference_max_attempts = _positive_int("ITINERARY_INFERENCE_MAX_ATTEMPTS", "5")
  inference_base_delay_ms = _positive_int("ITINERARY_INFERENCE_BASE_DELAY_MS", "3000")
  labeling_concurrency = _positive_int("ITINERARY_LABELING_CONCURRENCY", "3")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("ITINERARY_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("ITINERARY_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("ITINERARY_LOG_HTTP_4XX")),
    pg_dsn=pg_dsn,
    pg_connect_timeout=_positive_int("ITINERARY_PG_CONNECT_TIMEOUT", "5"),
    document_store_provider=document_store_provider,
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openrouter_base_url=(os.getenv("OPENROUTER_BASE_URL") or "https://openrouter.ai/api/v1").strip(),
    openrouter_http_referer=_optional_str(os.getenv("OPENROUTER_HTTP_REFERER")),
    openrouter_title=_optional_str(os.getenv("OPENROUTER_TITLE")),
    text_model=(os.getenv("ITINERARY_TEXT_MODEL") or DEFAULT_TEXT_MODEL).strip(),
    vision_model=(os.getenv("ITINERARY_VISION_MODEL") or DEFAULT_VISION_MODEL).strip(),
    inference_max_attempts=inference_max_attempts,
    inference_base_delay_ms=inference_base_delay_ms,
    labeling_concurrency=labeling_concurrency,
    stuck_job_threshold_minutes=_positive_int("ITINERARY_STUCK_JOB_MINUTES", "30"),
    publish_blocker_limit=_positive_int("ITINERARY_PUBLISH_BLOCKER_LIMIT", "5"),
    image_source_base_url=(os.getenv("ITINERARY_IMAGE_SOURCE_BASE_URL") or "https://itrvl-production-media.imgix.net").strip().rstrip("/"),
    scraper_api_key=_optional_str(os.getenv("SCRAPER_API_KEY")),
    payload_api_key=_optional_str(os.getenv("PAYLOAD_API_KEY")),
    task_secret=_optional_str(os.getenv("ITINERARY_TASK_SECRET")),
    base_url=_optional_str(os.getenv("ITINERARY_BASE_URL")),
    notifications_enabled=_parse_bool(os.getenv("ITINERARY_NOTIFICATIONS_ENABLED"), default=True),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  return DatabaseSettings(debug=_parse_bool(os.getenv("ITINERARY_DEBUG")), pg_dsn=_pg_dsn(), pg_connect_timeout=_positive_int("ITINERARY_PG_CONNECT_TIMEOUT", "5"))
