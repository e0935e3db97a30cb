from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.db import Base

# JSONB on PostgreSQL, plain JSON on anything else (SQLite in tests).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

# Set in ``Session.info`` while the recompute handler writes, so its own writes
# do not enqueue another job for the same day.
SUPPRESS_RECOMPUTE_TRIGGER = "suppress_recompute_trigger"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [item.value for item in enum_cls]


class EmployeeRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"


class AttendanceDayStatus(str, enum.Enum):
    PENDING = "pending"
    WORKING = "working"
    COMPLETED = "completed"


class AuditActorType(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class RecomputeReason(str, enum.Enum):
    WRITE = "WRITE"
    DELETE = "DELETE"


class WeeklyReportStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[EmployeeRole] = mapped_column(
        Enum(EmployeeRole, name="employee_role"),
        nullable=False,
        default=EmployeeRole.EMPLOYEE,
        server_default=text("'EMPLOYEE'"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    attendance_days: Mapped[list[AttendanceDay]] = relationship(back_populates="employee")
    monthly_summaries: Mapped[list[MonthlySummary]] = relationship(back_populates="employee")
    break_schedule: Mapped[EmployeeBreakSchedule | None] = relationship(
        back_populates="employee",
        uselist=False,
    )
    weekly_reports: Mapped[list[WeeklyReport]] = relationship(back_populates="employee")


class AttendanceDay(Base):
    __tablename__ = "attendance_days"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendance_days_employee_work_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # Local wall-clock instants of the work date, stored without a timezone.
    clock_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    clock_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    break_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_periods: Mapped[list[dict[str, str]]] = mapped_column(JSONDocument, nullable=False, default=list)
    work_description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    total_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overtime_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[AttendanceDayStatus] = mapped_column(
        Enum(
            AttendanceDayStatus,
            name="attendance_day_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=AttendanceDayStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendance_days")


class MonthlySummary(Base):
    __tablename__ = "monthly_summaries"
    __table_args__ = (
        UniqueConstraint("employee_id", "year_month", name="uq_monthly_summaries_employee_year_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="monthly_summaries")


class EmployeeBreakSchedule(Base):
    __tablename__ = "employee_break_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    periods: Mapped[list[dict[str, str]]] = mapped_column(JSONDocument, nullable=False, default=list)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="break_schedule")


class AttendanceRecomputeJob(Base):
    __tablename__ = "attendance_recompute_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(20), nullable=False, default=RecomputeReason.WRITE.value)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        server_default=text("'PENDING'"),
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class SummaryRebuildRun(Base):
    __tablename__ = "summary_rebuild_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    started_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class WeeklyReport(Base):
    __tablename__ = "weekly_reports"
    __table_args__ = (
        UniqueConstraint("employee_id", "start_date", "end_date", name="uq_weekly_reports_employee_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    status: Mapped[WeeklyReportStatus] = mapped_column(
        Enum(
            WeeklyReportStatus,
            name="weekly_report_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=WeeklyReportStatus.DRAFT,
    )
    submitted_at_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="weekly_reports")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)


@event.listens_for(Session, "before_flush")
def _enqueue_attendance_recompute_jobs(session: Session, _flush_context, _instances) -> None:  # type: ignore[no-untyped-def]
    if session.info.get(SUPPRESS_RECOMPUTE_TRIGGER):
        return

    queued: set[tuple[int, date]] = set()

    def _enqueue(day: AttendanceDay, reason: RecomputeReason) -> None:
        if day.employee_id is None or day.work_date is None:
            return
        key = (day.employee_id, day.work_date)
        if key in queued:
            return
        queued.add(key)
        session.add(
            AttendanceRecomputeJob(
                employee_id=day.employee_id,
                work_date=day.work_date,
                reason=reason.value,
                status="PENDING",
                attempts=0,
                scheduled_at_utc=datetime.now(timezone.utc),
            )
        )

    for obj in list(session.new):
        if isinstance(obj, AttendanceDay):
            _enqueue(obj, RecomputeReason.WRITE)
    for obj in list(session.dirty):
        if isinstance(obj, AttendanceDay) and session.is_modified(obj, include_collections=False):
            _enqueue(obj, RecomputeReason.WRITE)
    for obj in list(session.deleted):
        if isinstance(obj, AttendanceDay):
            _enqueue(obj, RecomputeReason.DELETE)
