"""Read-side helpers for exposing quote job state."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from lease_engine.api.models import JobStatusResponse
from lease_engine.config import Settings
from lease_engine.jobs.matrix import count_requests
from lease_engine.jobs.models import JobRecord
from lease_engine.jobs.orchestrator import parse_job
from lease_engine.storage.factory import get_jobs_repo
from lease_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."


def expected_request_count(record: JobRecord) -> int | None:
  """Matrix size for a job, or None when its payload cannot be parsed."""
  try:
    vehicles, config = parse_job(record)
  except ValueError:
    return None
  return count_requests(vehicles, config)


def job_status_from_record(record: JobRecord) -> JobStatusResponse:
  return JobStatusResponse(
    job_id=record.job_id,
    status=record.status,
    vehicle_count=record.vehicle_count if record.vehicle_count is not None else len(record.vehicles),
    expected_requests=expected_request_count(record),
    success_count=record.success_count,
    failure_count=record.failure_count,
    duration_seconds=record.duration_seconds,
    error_details=record.error_details,
    created_at=record.created_at,
    started_at=record.started_at,
    completed_at=record.completed_at,
  )


async def get_job_status(job_id: str, settings: Settings, repo: JobsRepository | None = None) -> JobStatusResponse:
  """Fetch the status and counters of a quote job."""
  repo = repo or get_jobs_repo(settings)
  record = await repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  return job_status_from_record(record)
