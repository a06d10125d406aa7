import logging

from fastapi import APIRouter, Depends

from lease_engine.api.models import JobStatusResponse
from lease_engine.config import Settings, get_settings
from lease_engine.services import jobs as job_service
from lease_engine.storage.factory import get_jobs_repo
from lease_engine.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("lease_engine.api.routes.jobs")


def get_repo(settings: Settings = Depends(get_settings)) -> JobsRepository:  # noqa: B008
  return get_jobs_repo(settings)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: JobsRepository = Depends(get_repo),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and counters of a quote job."""
  return await job_service.get_job_status(job_id, settings, repo=repo)
