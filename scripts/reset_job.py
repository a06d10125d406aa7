"""Move a stuck `processing` (or a `failed`) quote job back to `pending` so a worker retries it."""

from __future__ import annotations

import argparse
import asyncio
import sys

from lease_engine.config import get_settings
from lease_engine.core.database import dispose_engine
from lease_engine.storage.factory import get_jobs_repo


async def reset(job_id: str, *, force: bool) -> int:
  settings = get_settings()
  if not settings.pg_dsn:
    print("Error: LEASE_PG_DSN not set in environment.")
    return 1

  repo = get_jobs_repo(settings)
  try:
    job = await repo.get_job(job_id)
    if job is None:
      print(f"Job {job_id} not found.")
      return 1

    if job.status == "processing" and not force:
      # No heartbeat exists, so a live worker cannot be told apart from a crashed one.
      running = await repo.count_processing()
      print(f"Job {job_id} is processing ({running} job(s) processing overall).")
      print("Make sure no worker is still running it, then re-run with --force.")
      return 2

    reset_record = await repo.reset_job(job_id)
    if reset_record is None:
      print(f"Job {job_id} is {job.status}; only processing or failed jobs can be reset.")
      return 1
    print(f"Job {job_id}: {job.status} -> {reset_record.status}")
    return 0
  finally:
    await dispose_engine()


def main() -> None:
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("job_id")
  parser.add_argument("--force", action="store_true", help="Reset a processing job without the safety prompt.")
  args = parser.parse_args()
  sys.exit(asyncio.run(reset(args.job_id, force=args.force)))


if __name__ == "__main__":
  main()
