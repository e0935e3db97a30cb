"""Add weekly reports

Revision ID: 0002_weekly_reports
Revises: 0001_initial
Create Date: 2026-10-18 12:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_weekly_reports"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

weekly_report_status = postgresql.ENUM(
    "draft",
    "submitted",
    name="weekly_report_status",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    weekly_report_status.create(bind, checkfirst=True)

    op.create_table(
        "weekly_reports",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("week_of_month", sa.Integer(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", weekly_report_status, nullable=False, server_default=sa.text("'draft'")),
        sa.Column("submitted_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "start_date", "end_date", name="uq_weekly_reports_employee_range"),
    )
    op.create_index("ix_weekly_reports_employee_id", "weekly_reports", ["employee_id"], unique=False)
    op.create_index("ix_weekly_reports_start_date", "weekly_reports", ["start_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_weekly_reports_start_date", table_name="weekly_reports")
    op.drop_index("ix_weekly_reports_employee_id", table_name="weekly_reports")
    op.drop_table("weekly_reports")

    bind = op.get_bind()
    weekly_report_status.drop(bind, checkfirst=True)
