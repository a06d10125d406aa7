"""Postgres-backed repository for quote jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import delete, func, insert, select, update

from lease_engine.core.database import get_session_factory
from lease_engine.jobs.models import JobFinalization, JobRecord, QuoteResult
from lease_engine.schema.jobs import QuoteJob, QuoteResultRow
from lease_engine.storage.jobs_repo import JobsRepository


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and their quote results to Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = QuoteJob(
        id=record.job_id,
        status=record.status,
        vehicles=record.vehicles,
        config=record.config,
        vehicle_count=record.vehicle_count if record.vehicle_count is not None else len(record.vehicles),
        success_count=record.success_count,
        failure_count=record.failure_count,
        error_details=record.error_details,
      )
      if record.created_at is not None:
        job.created_at = record.created_at
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(QuoteJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_pending_jobs(self, limit: int | None = None) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(QuoteJob).where(QuoteJob.status == "pending").order_by(QuoteJob.created_at.asc(), QuoteJob.id.asc())
      if limit is not None:
        stmt = stmt.limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def transition_to_processing(self, job_id: str) -> JobRecord | None:
    # The status predicate makes the claim a single atomic compare-and-set across workers.
    stmt = (
      update(QuoteJob)
      .where(QuoteJob.id == job_id, QuoteJob.status == "pending")
      .values(status="processing", started_at=func.now(), success_count=0, failure_count=0, error_details=None, completed_at=None)
      .returning(QuoteJob)
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def bulk_insert_results(self, job_id: str, results: list[QuoteResult]) -> int:
    if not results:
      return 0
    fetched_default = datetime.now(UTC)
    rows = [
      {
        "job_id": job_id,
        "vehicle_id": result.vehicle.vehicle_id,
        "manufacturer": result.vehicle.manufacturer,
        "model": result.vehicle.model,
        "variant": result.vehicle.variant,
        "term": result.term,
        "mileage": result.mileage,
        "monthly_rental": result.monthly_rental,
        "monthly_rental_gross": result.monthly_rental_gross,
        "initial_payment": result.initial_payment,
        "total_cost": result.total_cost,
        "maintenance_included": result.maintenance_included,
        "supplier_name": result.supplier_name,
        "quote_reference": result.quote_reference,
        "additional_info": result.additional_info or None,
        "fetched_at": result.fetched_at or fetched_default,
      }
      for result in results
    ]
    async with self._session_factory() as session:
      # Delete and insert share one transaction; a retried batch replaces the rows it already wrote.
      await session.execute(delete(QuoteResultRow).where(QuoteResultRow.job_id == job_id))
      await session.execute(insert(QuoteResultRow), rows)
      await session.commit()
    return len(rows)

  async def finalize(self, job_id: str, finalization: JobFinalization) -> JobRecord | None:
    stmt = (
      update(QuoteJob)
      .where(QuoteJob.id == job_id, QuoteJob.status == "processing")
      .values(
        status=finalization.status,
        success_count=finalization.success_count,
        failure_count=finalization.failure_count,
        duration_seconds=finalization.duration_seconds,
        error_details=finalization.error_details,
        completed_at=func.now(),
      )
      .returning(QuoteJob)
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def reset_job(self, job_id: str) -> JobRecord | None:
    stmt = (
      update(QuoteJob)
      .where(QuoteJob.id == job_id, QuoteJob.status.in_(("processing", "failed")))
      .values(status="pending", success_count=0, failure_count=0, duration_seconds=None, error_details=None, started_at=None, completed_at=None)
      .returning(QuoteJob)
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def count_processing(self) -> int:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(QuoteJob).where(QuoteJob.status == "processing"))
      return int(total or 0)

  def _model_to_record(self, row: QuoteJob) -> JobRecord:
    return JobRecord(
      job_id=row.id,
      status=row.status,
      vehicles=row.vehicles if row.vehicles is not None else [],
      config=row.config if row.config is not None else {},
      created_at=row.created_at,
      started_at=row.started_at,
      completed_at=row.completed_at,
      vehicle_count=row.vehicle_count,
      success_count=int(row.success_count or 0),
      failure_count=int(row.failure_count or 0),
      duration_seconds=row.duration_seconds,
      error_details=row.error_details,
    )
