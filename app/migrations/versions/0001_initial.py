"""Initial timecard schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

employee_role = postgresql.ENUM(
    "EMPLOYEE",
    "ADMIN",
    name="employee_role",
    create_type=False,
)
attendance_day_status = postgresql.ENUM(
    "pending",
    "working",
    "completed",
    name="attendance_day_status",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "EMPLOYEE",
    "ADMIN",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def _timestamp_column(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    employee_role.create(bind, checkfirst=True)
    attendance_day_status.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", employee_role, nullable=False, server_default=sa.text("'EMPLOYEE'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp_column("created_at"),
    )

    op.create_table(
        "attendance_days",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("clock_in_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("clock_out_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("break_minutes", sa.Integer(), nullable=True),
        sa.Column(
            "break_periods",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("work_description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("total_minutes", sa.Integer(), nullable=True),
        sa.Column("overtime_minutes", sa.Integer(), nullable=True),
        sa.Column("status", attendance_day_status, nullable=False, server_default=sa.text("'pending'")),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "work_date", name="uq_attendance_days_employee_work_date"),
    )
    op.create_index("ix_attendance_days_employee_id", "attendance_days", ["employee_id"], unique=False)
    op.create_index("ix_attendance_days_work_date", "attendance_days", ["work_date"], unique=False)

    op.create_table(
        "monthly_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("year_month", sa.String(length=7), nullable=False),
        sa.Column("total_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "year_month", name="uq_monthly_summaries_employee_year_month"),
    )
    op.create_index("ix_monthly_summaries_employee_id", "monthly_summaries", ["employee_id"], unique=False)
    op.create_index("ix_monthly_summaries_year_month", "monthly_summaries", ["year_month"], unique=False)

    op.create_table(
        "employee_break_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column(
            "periods",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("effective_from", sa.Date(), nullable=True),
        _timestamp_column("updated_at"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", name="uq_employee_break_schedules_employee_id"),
    )

    op.create_table(
        "attendance_recompute_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=20), nullable=False, server_default=sa.text("'WRITE'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "scheduled_at_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
    )
    op.create_index(
        "ix_attendance_recompute_jobs_employee_id",
        "attendance_recompute_jobs",
        ["employee_id"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_recompute_jobs_status",
        "attendance_recompute_jobs",
        ["status"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_recompute_jobs_scheduled_at_utc",
        "attendance_recompute_jobs",
        ["scheduled_at_utc"],
        unique=False,
    )

    op.create_table(
        "summary_rebuild_runs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("year_month", sa.String(length=7), nullable=False),
        sa.Column("employee_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("started_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("run_date", name="uq_summary_rebuild_runs_run_date"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _timestamp_column("ts_utc"),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("summary_rebuild_runs")
    op.drop_index("ix_attendance_recompute_jobs_scheduled_at_utc", table_name="attendance_recompute_jobs")
    op.drop_index("ix_attendance_recompute_jobs_status", table_name="attendance_recompute_jobs")
    op.drop_index("ix_attendance_recompute_jobs_employee_id", table_name="attendance_recompute_jobs")
    op.drop_table("attendance_recompute_jobs")
    op.drop_table("employee_break_schedules")
    op.drop_index("ix_monthly_summaries_year_month", table_name="monthly_summaries")
    op.drop_index("ix_monthly_summaries_employee_id", table_name="monthly_summaries")
    op.drop_table("monthly_summaries")
    op.drop_index("ix_attendance_days_work_date", table_name="attendance_days")
    op.drop_index("ix_attendance_days_employee_id", table_name="attendance_days")
    op.drop_table("attendance_days")
    op.drop_table("employees")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    attendance_day_status.drop(bind, checkfirst=True)
    employee_role.drop(bind, checkfirst=True)
