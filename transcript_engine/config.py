"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(PROJECT_ROOT / ".env", override=False)

StateBackend = Literal["memory", "file", "sql"]

_STATE_BACKENDS = {"memory", "file", "sql"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the transcript generation service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  concurrency: int
  max_retries: int
  retry_base_delay_ms: int
  rate_limit_spacing_ms: int
  pause_poll_interval_ms: int
  hard_cancel: bool
  default_model: str
  metadata_model: str
  metadata_max_tokens: int
  max_transcript_count: int
  output_dir: Path
  state_backend: StateBackend
  jobs_dir: Path
  database_url: str | None
  temp_max_age_hours: int
  log_dir: Path
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for the optional SQL job-state backend."""

  debug: bool
  database_url: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  # An empty value means same-origin only.
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("TRANSCRIPTS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _resolve_path(raw: str | None, default: Path) -> Path:
  if not raw or raw.strip() == "":
    return default
  path = Path(raw.strip())
  if not path.is_absolute():
    path = PROJECT_ROOT / path
  return path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("TRANSCRIPTS_ENV", "development").lower()
  debug = _parse_bool(os.getenv("TRANSCRIPTS_DEBUG"))

  # Batch runner knobs.
  concurrency = _positive_int("TRANSCRIPTS_CONCURRENCY", "5")
  max_retries = _non_negative_int("TRANSCRIPTS_MAX_RETRIES", "2")
  retry_base_delay_ms = _positive_int("TRANSCRIPTS_RETRY_BASE_DELAY_MS", "1000")
  rate_limit_spacing_ms = _positive_int("TRANSCRIPTS_RATE_LIMIT_SPACING_MS", "500")
  pause_poll_interval_ms = _positive_int("TRANSCRIPTS_PAUSE_POLL_INTERVAL_MS", "500")

  max_transcript_count = _positive_int("TRANSCRIPTS_MAX_COUNT", "100")
  metadata_max_tokens = _positive_int("TRANSCRIPTS_METADATA_MAX_TOKENS", "4000")
  temp_max_age_hours = _positive_int("TRANSCRIPTS_TEMP_MAX_AGE_HOURS", "1")

  state_backend = (os.getenv("TRANSCRIPTS_STATE_BACKEND") or "file").strip().lower()
  if state_backend not in _STATE_BACKENDS:
    raise ValueError(f"TRANSCRIPTS_STATE_BACKEND must be one of {sorted(_STATE_BACKENDS)}.")

  database_url = _optional_str(os.getenv("TRANSCRIPTS_DATABASE_URL"))
  if state_backend == "sql" and database_url is None:
    raise ValueError("TRANSCRIPTS_DATABASE_URL must be set when TRANSCRIPTS_STATE_BACKEND=sql.")

  log_max_bytes = _positive_int("TRANSCRIPTS_LOG_MAX_BYTES", "5242880")
  log_backup_count = _non_negative_int("TRANSCRIPTS_LOG_BACKUP_COUNT", "10")
  log_http_body_bytes = _positive_int("TRANSCRIPTS_LOG_HTTP_BODY_BYTES", "2048")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("TRANSCRIPTS_ALLOWED_ORIGINS")),
    concurrency=concurrency,
    max_retries=max_retries,
    retry_base_delay_ms=retry_base_delay_ms,
    rate_limit_spacing_ms=rate_limit_spacing_ms,
    pause_poll_interval_ms=pause_poll_interval_ms,
    hard_cancel=_parse_bool(os.getenv("TRANSCRIPTS_HARD_CANCEL")),
    default_model=(os.getenv("TRANSCRIPTS_DEFAULT_MODEL") or "claude-sonnet-4-5-20250929").strip(),
    metadata_model=(os.getenv("TRANSCRIPTS_METADATA_MODEL") or "claude-haiku-4-5-20251001").strip(),
    metadata_max_tokens=metadata_max_tokens,
    max_transcript_count=max_transcript_count,
    output_dir=_resolve_path(os.getenv("TRANSCRIPTS_OUTPUT_DIR"), PROJECT_ROOT / "temp"),
    state_backend=cast(StateBackend, state_backend),
    jobs_dir=_resolve_path(os.getenv("TRANSCRIPTS_JOBS_DIR"), PROJECT_ROOT / "jobs"),
    database_url=database_url,
    temp_max_age_hours=temp_max_age_hours,
    log_dir=_resolve_path(os.getenv("TRANSCRIPTS_LOG_DIR"), PROJECT_ROOT / "logs"),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("TRANSCRIPTS_LOG_HTTP_4XX")),
    log_http_bodies=_parse_bool(os.getenv("TRANSCRIPTS_LOG_HTTP_BODIES")),
    log_http_body_bytes=log_http_body_bytes,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the rest of the runtime configuration."""
  debug = _parse_bool(os.getenv("TRANSCRIPTS_DEBUG"))
  database_url = _optional_str(os.getenv("TRANSCRIPTS_DATABASE_URL"))
  return DatabaseSettings(debug=debug, database_url=database_url)
