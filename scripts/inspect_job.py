import argparse
import asyncio
import json
import sys

from lease_engine.config import get_settings
from lease_engine.core.database import dispose_engine
from lease_engine.services.jobs import job_status_from_record
from lease_engine.storage.factory import get_jobs_repo


async def inspect(job_id: str) -> int:
  settings = get_settings()
  if not settings.pg_dsn:
    print("Error: LEASE_PG_DSN not set in environment.")
    return 1

  repo = get_jobs_repo(settings)
  try:
    job = await repo.get_job(job_id)
  finally:
    await dispose_engine()

  if not job:
    print(f"Job {job_id} not found.")
    return 1

  status = job_status_from_record(job)
  print(f"Job Status: {status.status}")
  print(f"Vehicles: {status.vehicle_count}  Requests: {status.expected_requests}")
  print(f"Succeeded: {status.success_count}  Failed: {status.failure_count}")
  print(f"Created: {status.created_at}  Started: {status.started_at}  Completed: {status.completed_at}")
  if status.duration_seconds is not None:
    print(f"Duration: {status.duration_seconds}s")
  if status.error_details:
    print("Error details:")
    print(json.dumps(status.error_details, indent=2, default=str))
  return 0


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Print the state of a quote job.")
  parser.add_argument("job_id")
  sys.exit(asyncio.run(inspect(parser.parse_args().job_id)))
