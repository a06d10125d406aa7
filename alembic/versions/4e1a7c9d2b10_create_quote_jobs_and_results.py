"""Create quote_jobs and quote_results.

Revision ID: 4e1a7c9d2b10
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4e1a7c9d2b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "quote_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), server_default="pending", nullable=False),
    sa.Column("vehicles", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("config", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("vehicle_count", sa.Integer(), nullable=True),
    sa.Column("success_count", sa.Integer(), server_default="0", nullable=False),
    sa.Column("failure_count", sa.Integer(), server_default="0", nullable=False),
    sa.Column("duration_seconds", sa.Integer(), nullable=True),
    sa.Column("error_details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed')", name="ck_quote_jobs_status"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_quote_jobs_status_created_at", "quote_jobs", ["status", "created_at"], unique=False)

  op.create_table(
    "quote_results",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("vehicle_id", sa.String(), nullable=True),
    sa.Column("manufacturer", sa.String(), nullable=False),
    sa.Column("model", sa.String(), nullable=False),
    sa.Column("variant", sa.String(), nullable=False),
    sa.Column("term", sa.Integer(), nullable=False),
    sa.Column("mileage", sa.Integer(), nullable=False),
    sa.Column("monthly_rental", sa.Numeric(12, 2), nullable=True),
    sa.Column("monthly_rental_gross", sa.Numeric(12, 2), nullable=True),
    sa.Column("initial_payment", sa.Numeric(12, 2), nullable=True),
    sa.Column("total_cost", sa.Numeric(14, 2), nullable=True),
    sa.Column("maintenance_included", sa.Boolean(), server_default="false", nullable=False),
    sa.Column("supplier_name", sa.String(), nullable=True),
    sa.Column("quote_reference", sa.String(), nullable=True),
    sa.Column("additional_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["quote_jobs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_quote_results_job_id"), "quote_results", ["job_id"], unique=False)
  op.create_index(op.f("ix_quote_results_vehicle_id"), "quote_results", ["vehicle_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_quote_results_vehicle_id"), table_name="quote_results")
  op.drop_index(op.f("ix_quote_results_job_id"), table_name="quote_results")
  op.drop_table("quote_results")
  op.drop_index("ix_quote_jobs_status_created_at", table_name="quote_jobs")
  op.drop_table("quote_jobs")
