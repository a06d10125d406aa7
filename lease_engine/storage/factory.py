from __future__ import annotations

import logging
from functools import lru_cache

from lease_engine.config import Settings
from lease_engine.storage.jobs_repo import JobsRepository
from lease_engine.storage.memory_jobs_repo import InMemoryJobsRepository
from lease_engine.storage.postgres_jobs_repo import PostgresJobsRepository

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _memory_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


def get_jobs_repo(settings: Settings) -> JobsRepository:
  """Factory to get the job store: Postgres when a DSN is configured, otherwise in-process."""
  if settings.pg_dsn:
    return PostgresJobsRepository()
  logger.warning("LEASE_PG_DSN is not set; using the in-memory job store.")
  return _memory_repo()
