"""Polling orchestrator that claims pending quote jobs and runs them as bounded asyncio tasks."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from typing import Any

from lease_engine.config import Settings
from lease_engine.jobs.executor import QuoteExecutor
from lease_engine.jobs.failures import FailureLog, describe_error
from lease_engine.jobs.matrix import count_requests, expand_vehicle, requests_per_vehicle
from lease_engine.jobs.models import JobFinalization, JobRecord, QuoteConfig, QuoteResult, Vehicle
from lease_engine.jobs.session import VendorSessionManager
from lease_engine.storage.jobs_repo import JobsRepository
from lease_engine.utils.db_retry import execute_with_retry
from lease_engine.vendors.errors import AuthenticationError, VehicleResolutionError

logger = logging.getLogger(__name__)


def parse_job(job: JobRecord) -> tuple[list[Vehicle], QuoteConfig]:
  """Decode the stored vehicle array and config object; raises ValueError when malformed."""
  if not isinstance(job.vehicles, list):
    raise ValueError(f"Job {job.job_id} vehicles must be a list.")
  vehicles = [Vehicle.from_payload(entry) for entry in job.vehicles]
  config = QuoteConfig.from_payload(job.config)
  return vehicles, config


def _release_job(registry: dict[str, asyncio.Task[Any]], job_id: str, task: asyncio.Task[Any]) -> None:
  """Done-callback: drop the finished task from the orchestrator's registry."""
  registry.pop(job_id, None)
  if task.cancelled():
    logger.warning("Job task %s was cancelled.", job_id)
    return
  exc = task.exception()
  if exc is not None:
    logger.error("Job task %s crashed: %s", job_id, exc, exc_info=exc)


class _JobAborted(Exception):
  """Internal wrapper carrying the partial failure log of an aborted job."""

  def __init__(self, cause: BaseException, failures: FailureLog) -> None:
    super().__init__(str(cause))
    self.cause = cause
    self.failures = failures


class JobOrchestrator:
  """Coordinates polling, claiming, execution and finalization of quote jobs."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    executor: QuoteExecutor,
    sessions: VendorSessionManager,
    settings: Settings,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._executor = executor
    self._sessions = sessions
    self._settings = settings
    self._clock = clock
    self._active: dict[str, asyncio.Task[JobRecord | None]] = {}
    self._stop_event = asyncio.Event()

  @property
  def running_jobs(self) -> list[str]:
    return list(self._active)

  @property
  def stopping(self) -> bool:
    return self._stop_event.is_set()

  async def poll_once(self) -> list[str]:
    """Claim pending jobs up to the free concurrency slots and start them; returns claimed ids."""
    if self.stopping:
      return []
    free_slots = self._settings.max_concurrent_jobs - len(self._active)
    if free_slots <= 0:
      logger.debug("All %d job slots busy; skipping poll.", self._settings.max_concurrent_jobs)
      return []

    pending = await self._jobs_repo.get_pending_jobs(limit=free_slots)
    claimed: list[str] = []
    for job in pending:
      if len(self._active) >= self._settings.max_concurrent_jobs or self.stopping:
        break
      if job.job_id in self._active:
        continue
      record = await self._jobs_repo.transition_to_processing(job.job_id)
      if record is None:
        logger.info("Job %s was claimed by another worker; skipping.", job.job_id)
        continue
      self._start(record)
      claimed.append(record.job_id)
    return claimed

  def _start(self, job: JobRecord) -> None:
    task = asyncio.create_task(self.process_job(job), name=f"quote-job-{job.job_id}")
    self._active[job.job_id] = task
    task.add_done_callback(functools.partial(_release_job, self._active, job.job_id))
    logger.info("Claimed job %s (%d running).", job.job_id, len(self._active))

  async def run_forever(self) -> None:
    """Poll until stop() is called, then wait for running jobs to finish."""
    logger.info("Job orchestrator started: poll_interval=%.1fs max_concurrent_jobs=%d", self._settings.poll_interval_seconds, self._settings.max_concurrent_jobs)
    while not self.stopping:
      try:
        await self.poll_once()
      except Exception:
        logger.exception("Poll cycle failed; retrying in %.1fs.", self._settings.poll_interval_seconds)
      try:
        await asyncio.wait_for(self._stop_event.wait(), timeout=self._settings.poll_interval_seconds)
      except TimeoutError:
        pass
    await self.drain()
    logger.info("Job orchestrator stopped.")

  def stop(self) -> None:
    """Stop claiming new jobs; running jobs keep going."""
    if not self.stopping:
      logger.info("Stopping job orchestrator; %d job(s) still running.", len(self._active))
    self._stop_event.set()

  async def drain(self) -> None:
    """Wait for every running job task to settle."""
    while self._active:
      await asyncio.gather(*list(self._active.values()), return_exceptions=True)

  async def process_job(self, job: JobRecord) -> JobRecord | None:
    """Run one claimed job to a terminal state."""
    started = self._clock()
    expected_requests = 0
    try:
      vehicles, config = parse_job(job)
    except Exception as exc:
      logger.error("Job %s has an invalid payload: %s", job.job_id, exc)
      failures = FailureLog(sample_limit=self._settings.error_sample_limit)
      return await self._finalize_failed(job, exc, failures, expected_requests=expected_requests, started=started)

    expected_requests = count_requests(vehicles, config)
    logger.info("Processing job %s: vehicles=%d requests=%d", job.job_id, len(vehicles), expected_requests)
    try:
      results, failures = await self._run_matrix(job, vehicles, config)
    except _JobAborted as aborted:
      if isinstance(aborted.cause, AuthenticationError):
        self._sessions.invalidate()
        logger.error("Job %s aborted: vendor authentication failed: %s", job.job_id, aborted.cause)
      else:
        logger.error("Job %s aborted by unexpected error: %s", job.job_id, aborted.cause, exc_info=aborted.cause)
      return await self._finalize_failed(job, aborted.cause, aborted.failures, expected_requests=expected_requests, started=started)

    return await self._finalize_completed(job, results, failures, started=started)

  async def _run_matrix(self, job: JobRecord, vehicles: list[Vehicle], config: QuoteConfig) -> tuple[list[QuoteResult], FailureLog]:
    failures = FailureLog(sample_limit=self._settings.error_sample_limit)
    results: list[QuoteResult] = []
    try:
      session = await self._sessions.ensure_session()
      per_vehicle = requests_per_vehicle(config)
      for vehicle in vehicles:
        try:
          resolved = await self._executor.resolve_vehicle(session, vehicle)
        except VehicleResolutionError as exc:
          logger.warning("Job %s: could not resolve %s: %s", job.job_id, vehicle.label or "<unnamed vehicle>", exc)
          failures.record(vehicle, exc, count=per_vehicle)
          continue

        for request in expand_vehicle(vehicle, config):
          outcome = await self._executor.execute(request, session, resolved)
          if outcome.result is not None:
            results.append(outcome.result)
          elif outcome.error is not None:
            failures.record_request(request, outcome.error)
    except Exception as exc:
      raise _JobAborted(exc, failures) from exc
    return results, failures

  async def _finalize_completed(self, job: JobRecord, results: list[QuoteResult], failures: FailureLog, *, started: float) -> JobRecord | None:
    try:
      written = await execute_with_retry(operation_name="bulk_insert_results", func=lambda: self._jobs_repo.bulk_insert_results(job.job_id, results))
    except Exception as exc:
      logger.error("Job %s: failed to persist %d result(s): %s", job.job_id, len(results), exc)
      return await self._finalize_failed(job, exc, failures, expected_requests=len(results) + failures.total, started=started)

    finalization = JobFinalization(
      status="completed",
      success_count=len(results),
      failure_count=failures.total,
      duration_seconds=self._elapsed(started),
      error_details=failures.to_error_details(),
    )
    try:
      record = await self._write_finalization(job.job_id, finalization)
    except Exception as exc:
      logger.error("Job %s: failed to mark completed after writing %d result row(s): %s", job.job_id, written, exc)
      return await self._finalize_failed(job, exc, failures, expected_requests=len(results) + failures.total, started=started, persisted_results=written)

    logger.info("Job %s completed: %d succeeded, %d failed, %d result rows written in %ds.", job.job_id, finalization.success_count, finalization.failure_count, written, finalization.duration_seconds)
    return record

  async def _finalize_failed(self, job: JobRecord, exc: BaseException, failures: FailureLog, *, expected_requests: int, started: float, persisted_results: int = 0) -> JobRecord | None:
    # A failed job reports every request as failed. Rows written before a failed completion stay and are counted in the blob.
    error_details = failures.to_error_details(abort=exc)
    if persisted_results:
      error_details["persisted_results"] = persisted_results
    finalization = JobFinalization(
      status="failed",
      success_count=0,
      failure_count=expected_requests,
      duration_seconds=self._elapsed(started),
      error_details=error_details,
    )
    try:
      record = await self._write_finalization(job.job_id, finalization)
    except Exception as finalize_exc:
      logger.error("Job %s: could not mark failed; it remains in processing until reset: %s", job.job_id, describe_error(finalize_exc)["message"])
      return None
    logger.info("Job %s failed after %ds: %s", job.job_id, finalization.duration_seconds, type(exc).__name__)
    return record

  async def _write_finalization(self, job_id: str, finalization: JobFinalization) -> JobRecord | None:
    record = await execute_with_retry(operation_name="finalize_job", func=lambda: self._jobs_repo.finalize(job_id, finalization))
    if record is None:
      logger.warning("Job %s was no longer processing when finalizing as %s.", job_id, finalization.status)
    return record

  def _elapsed(self, started: float) -> int:
    return max(0, int(round(self._clock() - started)))
