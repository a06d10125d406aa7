from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from lease_engine.core.database import Base


class QuoteJob(Base):
  __tablename__ = "quote_jobs"
  __table_args__ = (
    CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed')", name="ck_quote_jobs_status"),
    Index("ix_quote_jobs_status_created_at", "status", "created_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")
  vehicles: Mapped[list] = mapped_column(JSONB, nullable=False)
  config: Mapped[dict] = mapped_column(JSONB, nullable=False)
  vehicle_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
  success_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
  failure_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
  duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
  error_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class QuoteResultRow(Base):
  __tablename__ = "quote_results"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("quote_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
  vehicle_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  manufacturer: Mapped[str] = mapped_column(String, nullable=False)
  model: Mapped[str] = mapped_column(String, nullable=False)
  variant: Mapped[str] = mapped_column(String, nullable=False)
  term: Mapped[int] = mapped_column(Integer, nullable=False)
  mileage: Mapped[int] = mapped_column(Integer, nullable=False)
  monthly_rental: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
  monthly_rental_gross: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
  initial_payment: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
  total_cost: Mapped[float | None] = mapped_column(Numeric(14, 2), nullable=True)
  maintenance_included: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
  supplier_name: Mapped[str | None] = mapped_column(String, nullable=True)
  quote_reference: Mapped[str | None] = mapped_column(String, nullable=True)
  additional_info: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
