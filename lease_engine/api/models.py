from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr

from lease_engine.jobs.models import JobStatus


class JobStatusResponse(BaseModel):
  """Status payload for a quote job."""

  job_id: StrictStr
  status: JobStatus
  vehicle_count: int | None = None
  expected_requests: int | None = None
  success_count: int = 0
  failure_count: int = 0
  duration_seconds: int | None = None
  error_details: dict[str, Any] | None = None
  created_at: datetime | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
  status: StrictStr
  version: StrictStr
