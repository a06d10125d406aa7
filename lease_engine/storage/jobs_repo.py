"""Storage interfaces for quote jobs."""

from __future__ import annotations

from typing import Protocol

from lease_engine.jobs.models import JobFinalization, JobRecord, QuoteResult


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def get_pending_jobs(self, limit: int | None = None) -> list[JobRecord]:
    """Return pending jobs ordered by creation time, oldest first."""

  async def transition_to_processing(self, job_id: str) -> JobRecord | None:
    """Atomically claim a pending job; None when another worker claimed it first."""

  async def bulk_insert_results(self, job_id: str, results: list[QuoteResult]) -> int:
    """Write all quote results for a job in one batch, replacing any rows already stored for it, and return the row count."""

  async def finalize(self, job_id: str, finalization: JobFinalization) -> JobRecord | None:
    """Move a job to its terminal state with counters and error details."""

  async def reset_job(self, job_id: str) -> JobRecord | None:
    """Operator recovery: move a processing or failed job back to pending."""

  async def count_processing(self) -> int:
    """Number of jobs currently marked processing across all workers."""
