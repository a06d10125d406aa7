"""In-process job store used by tests and database-less local runs."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime

from lease_engine.jobs.models import JobFinalization, JobRecord, QuoteResult
from lease_engine.storage.jobs_repo import JobsRepository


class InMemoryJobsRepository(JobsRepository):
  """Dictionary-backed repository with the same transition rules as Postgres."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._results: dict[str, list[QuoteResult]] = {}
    self._lock = asyncio.Lock()

  async def create_job(self, record: JobRecord) -> None:
    async with self._lock:
      if record.job_id in self._jobs:
        raise ValueError(f"Job {record.job_id} already exists.")
      created_at = record.created_at or datetime.now(UTC)
      vehicle_count = record.vehicle_count if record.vehicle_count is not None else len(record.vehicles)
      self._jobs[record.job_id] = replace(record, created_at=created_at, vehicle_count=vehicle_count)

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self._jobs.get(job_id)
    return replace(record) if record is not None else None

  async def get_pending_jobs(self, limit: int | None = None) -> list[JobRecord]:
    pending = [record for record in self._jobs.values() if record.status == "pending"]
    pending.sort(key=lambda record: (record.created_at or datetime.min.replace(tzinfo=UTC), record.job_id))
    if limit is not None:
      pending = pending[:limit]
    return [replace(record) for record in pending]

  async def transition_to_processing(self, job_id: str) -> JobRecord | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None or record.status != "pending":
        return None
      claimed = replace(record, status="processing", started_at=datetime.now(UTC), completed_at=None, success_count=0, failure_count=0, error_details=None)
      self._jobs[job_id] = claimed
      return replace(claimed)

  async def bulk_insert_results(self, job_id: str, results: list[QuoteResult]) -> int:
    if job_id not in self._jobs:
      raise KeyError(f"Job {job_id} does not exist.")
    if not results:
      return 0
    self._results[job_id] = list(results)
    return len(results)

  async def finalize(self, job_id: str, finalization: JobFinalization) -> JobRecord | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None or record.status != "processing":
        return None
      finished = replace(
        record,
        status=finalization.status,
        success_count=finalization.success_count,
        failure_count=finalization.failure_count,
        duration_seconds=finalization.duration_seconds,
        error_details=finalization.error_details,
        completed_at=datetime.now(UTC),
      )
      self._jobs[job_id] = finished
      return replace(finished)

  async def reset_job(self, job_id: str) -> JobRecord | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None or record.status not in ("processing", "failed"):
        return None
      reset = replace(record, status="pending", success_count=0, failure_count=0, duration_seconds=None, error_details=None, started_at=None, completed_at=None)
      self._jobs[job_id] = reset
      return replace(reset)

  async def count_processing(self) -> int:
    return sum(1 for record in self._jobs.values() if record.status == "processing")

  def results_for(self, job_id: str) -> list[QuoteResult]:
    """Return the persisted results of a job."""
    return list(self._results.get(job_id, []))
