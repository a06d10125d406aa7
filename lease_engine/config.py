"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv(override=False)

_VENDOR_PROVIDERS = {"drivalia", "dummy"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the quote worker and status service."""

  environment: str
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_dir: str
  pg_dsn: str | None
  pg_connect_timeout: int
  poll_interval_seconds: float
  max_concurrent_jobs: int
  vendor_provider: str
  vendor_base_url: str
  vendor_username: str | None
  vendor_password: str | None
  vendor_timeout_seconds: float
  vendor_session_ttl_seconds: int
  quote_min_interval_seconds: float
  quote_max_retries: int
  quote_retry_delay_seconds: float
  error_sample_limit: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


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


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LEASE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("LEASE_DEBUG"))

  log_max_bytes = _positive_int("LEASE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("LEASE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LEASE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  poll_interval_seconds = float(os.getenv("LEASE_JOB_POLL_INTERVAL_SECONDS", "5"))
  if poll_interval_seconds <= 0:
    raise ValueError("LEASE_JOB_POLL_INTERVAL_SECONDS must be a positive number.")
  max_concurrent_jobs = _positive_int("LEASE_MAX_CONCURRENT_JOBS", "3")

  vendor_provider = (os.getenv("LEASE_VENDOR_PROVIDER") or "drivalia").strip().lower()
  if vendor_provider not in _VENDOR_PROVIDERS:
    raise ValueError(f"LEASE_VENDOR_PROVIDER must be one of: {', '.join(sorted(_VENDOR_PROVIDERS))}.")

  vendor_timeout_seconds = float(os.getenv("LEASE_VENDOR_TIMEOUT_SECONDS", "60"))
  if vendor_timeout_seconds <= 0:
    raise ValueError("LEASE_VENDOR_TIMEOUT_SECONDS must be a positive number.")

  # Vendor throttling floor between consecutive calls; fixed, not adaptive.
  quote_min_interval_seconds = _non_negative_float("LEASE_QUOTE_MIN_INTERVAL_SECONDS", "0.5")
  quote_retry_delay_seconds = _non_negative_float("LEASE_QUOTE_RETRY_DELAY_SECONDS", "2")
  quote_max_retries = int(os.getenv("LEASE_QUOTE_MAX_RETRIES", "1"))
  if quote_max_retries < 0:
    raise ValueError("LEASE_QUOTE_MAX_RETRIES must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_dir=(os.getenv("LEASE_LOG_DIR") or "./logs").strip(),
    pg_dsn=os.getenv("LEASE_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("LEASE_PG_CONNECT_TIMEOUT", "5"),
    poll_interval_seconds=poll_interval_seconds,
    max_concurrent_jobs=max_concurrent_jobs,
    vendor_provider=vendor_provider,
    vendor_base_url=(os.getenv("LEASE_VENDOR_BASE_URL") or "https://www.caafgenus3.co.uk/WebApp/api").strip().rstrip("/"),
    vendor_username=_optional_str(os.getenv("LEASE_VENDOR_USERNAME")),
    vendor_password=_optional_str(os.getenv("LEASE_VENDOR_PASSWORD")),
    vendor_timeout_seconds=vendor_timeout_seconds,
    vendor_session_ttl_seconds=_positive_int("LEASE_VENDOR_SESSION_TTL_SECONDS", "1800"),
    quote_min_interval_seconds=quote_min_interval_seconds,
    quote_max_retries=quote_max_retries,
    quote_retry_delay_seconds=quote_retry_delay_seconds,
    error_sample_limit=_positive_int("LEASE_ERROR_SAMPLE_LIMIT", "10"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring vendor configuration."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("LEASE_DEBUG"))
  pg_connect_timeout = int(os.getenv("LEASE_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("LEASE_PG_CONNECT_TIMEOUT must be a positive integer.")

  pg_dsn = os.getenv("LEASE_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
