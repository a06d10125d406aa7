"""Retry wrapper for job-store writes with SQLSTATE-based failure classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient server-side conditions worth a second attempt.
_RETRYABLE_SQLSTATES = {
  "40001": ("serialization_conflict", "Serialization failure - transaction conflict"),
  "40P01": ("deadlock", "Deadlock detected"),
  "08000": ("connectivity_error", "Connection exception"),
  "08003": ("connectivity_error", "Connection does not exist"),
  "08006": ("connectivity_error", "Connection failure"),
  "57P01": ("connectivity_error", "Server shutting down (admin shutdown)"),
}

# Whole SQLSTATE classes that will fail the same way on every attempt.
_PERMANENT_SQLSTATE_CLASSES = {
  "23": ("integrity_error", "Integrity constraint violation"),
  "42": ("schema_error", "Schema/SQL error (undefined table/column, syntax error)"),
  "28": ("permission_error", "Authentication/permission error"),
  "22": ("data_error", "Invalid data for column type"),
}

_CONNECTIVITY_PATTERNS = ("connection", "timeout", "reset", "network", "broken pipe", "closed")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  retryable: bool
  reason: str
  sqlstate: str | None
  category: str


def _extract_sqlstate(exc: BaseException) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy-wrapped driver error."""
  if not isinstance(exc, DBAPIError):
    return None
  orig = getattr(exc, "orig", None)
  # asyncpg errors surface through the adapter as `sqlstate`; the raw driver error hangs off __cause__.
  for candidate in (orig, getattr(orig, "__cause__", None)):
    if candidate is None:
      continue
    for attr in ("sqlstate", "pgcode"):
      value = getattr(candidate, attr, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """Classify a database failure as retryable or not, SQLSTATE first then exception type."""
  sqlstate = _extract_sqlstate(exc)

  if sqlstate in _RETRYABLE_SQLSTATES:
    category, reason = _RETRYABLE_SQLSTATES[sqlstate]
    return DBFailureClassification(retryable=True, reason=reason, sqlstate=sqlstate, category=category)

  if sqlstate and sqlstate[:2] in _PERMANENT_SQLSTATE_CLASSES:
    category, reason = _PERMANENT_SQLSTATE_CLASSES[sqlstate[:2]]
    return DBFailureClassification(retryable=False, reason=reason, sqlstate=sqlstate, category=category)

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="Integrity constraint violation (detected by exception type)", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, (OperationalError, InterfaceError, ConnectionError, TimeoutError)):
    message = str(exc).lower()
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(pattern in message for pattern in _CONNECTIVITY_PATTERNS):
      return DBFailureClassification(retryable=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(retryable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  return DBFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")


async def execute_with_retry(
  *,
  operation_name: str,
  func: Callable[[], Awaitable[T]],
  max_attempts: int = 3,
  initial_backoff_ms: int = 200,
  max_backoff_ms: int = 2000,
  jitter: bool = True,
  sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
  """
  Run an idempotent database operation, retrying transient failures.

  Non-retryable failures and the last retryable one are re-raised unchanged
  so callers can decide how to record them.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except Exception as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "DB operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s, reason=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        classification.reason,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        jitter_range = backoff_ms * 0.25
        backoff_ms += random.uniform(-jitter_range, jitter_range)
      logger.info("Retrying DB operation after backoff: operation=%s, attempt=%d/%d, backoff_ms=%.1f", operation_name, attempt, max_attempts, backoff_ms)
      await sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("DB operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
    return result
