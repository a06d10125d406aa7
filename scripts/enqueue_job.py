"""Insert a pending quote job from a JSON file: {"vehicles": [...], "config": {...}}."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

from lease_engine.config import get_settings
from lease_engine.core.database import dispose_engine
from lease_engine.jobs.models import JobRecord
from lease_engine.jobs.orchestrator import parse_job
from lease_engine.storage.factory import get_jobs_repo


async def enqueue(payload_path: Path) -> int:
  settings = get_settings()
  if not settings.pg_dsn:
    print("Error: LEASE_PG_DSN not set in environment.")
    return 1

  payload = json.loads(payload_path.read_text(encoding="utf-8"))
  record = JobRecord(job_id=str(uuid.uuid4()), status="pending", vehicles=payload.get("vehicles") or [], config=payload.get("config") or {})
  # Reject payloads the worker would fail immediately.
  try:
    parse_job(record)
  except ValueError as exc:
    print(f"Invalid job payload: {exc}")
    return 1

  repo = get_jobs_repo(settings)
  try:
    await repo.create_job(record)
  finally:
    await dispose_engine()
  print(record.job_id)
  return 0


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("payload", type=Path)
  sys.exit(asyncio.run(enqueue(parser.parse_args().payload)))
