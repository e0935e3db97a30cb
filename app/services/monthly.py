from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.models import AttendanceDay, Employee, EmployeeRole, MonthlySummary
from app.services.attendance_calc import summarize_month
from app.services.time_utils import month_bounds, parse_year_month

logger = logging.getLogger("app.monthly")

_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def list_range_days(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date,
) -> list[AttendanceDay]:
    return list(
        db.scalars(
            select(AttendanceDay)
            .where(
                AttendanceDay.employee_id == employee_id,
                AttendanceDay.work_date >= start_date,
                AttendanceDay.work_date <= end_date,
            )
            .order_by(AttendanceDay.work_date.asc())
        ).all()
    )


def list_month_days(db: Session, *, employee_id: int, year_month: str) -> list[AttendanceDay]:
    start_date, end_date = month_bounds(year_month)
    return list_range_days(db, employee_id=employee_id, start_date=start_date, end_date=end_date)


def get_monthly_summary(db: Session, *, employee_id: int, year_month: str) -> MonthlySummary | None:
    parse_year_month(year_month)
    return db.scalar(
        select(MonthlySummary).where(
            MonthlySummary.employee_id == employee_id,
            MonthlySummary.year_month == year_month,
        )
    )


def list_monthly_summaries(db: Session, *, year_month: str) -> list[MonthlySummary]:
    parse_year_month(year_month)
    return list(
        db.scalars(
            select(MonthlySummary)
            .where(MonthlySummary.year_month == year_month)
            .order_by(MonthlySummary.employee_id.asc())
        ).all()
    )


def _upsert_monthly_summary(
    db: Session,
    *,
    employee_id: int,
    year_month: str,
    total_minutes: int,
    overtime_minutes: int,
) -> None:
    dialect_name = db.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect_name)
    if insert is None:
        raise RuntimeError(f"Monthly summary upsert is not supported on dialect {dialect_name!r}")

    stmt = insert(MonthlySummary).values(
        employee_id=employee_id,
        year_month=year_month,
        total_minutes=total_minutes,
        overtime_minutes=overtime_minutes,
    )
    # Concurrent rebuilds of the same month resolve on the unique key; last writer wins.
    stmt = stmt.on_conflict_do_update(
        index_elements=["employee_id", "year_month"],
        set_={
            "total_minutes": stmt.excluded.total_minutes,
            "overtime_minutes": stmt.excluded.overtime_minutes,
            "updated_at": datetime.now(timezone.utc),
        },
    )
    db.execute(stmt)


def _apply_monthly_summary(db: Session, *, employee_id: int, year_month: str) -> MonthlySummary:
    days = list_month_days(db, employee_id=employee_id, year_month=year_month)
    totals = summarize_month(days)

    _upsert_monthly_summary(
        db,
        employee_id=employee_id,
        year_month=year_month,
        total_minutes=totals.total_minutes,
        overtime_minutes=totals.overtime_minutes,
    )
    summary = db.scalars(
        select(MonthlySummary)
        .where(
            MonthlySummary.employee_id == employee_id,
            MonthlySummary.year_month == year_month,
        )
        .execution_options(populate_existing=True)
    ).one()
    logger.debug(
        "monthly_summary_rebuilt",
        extra={
            "employee_id": employee_id,
            "year_month": year_month,
            "total_minutes": totals.total_minutes,
            "overtime_minutes": totals.overtime_minutes,
            "completed_days": totals.completed_days,
        },
    )
    return summary


def rebuild_monthly_summary(db: Session, *, employee_id: int, year_month: str) -> MonthlySummary:
    """Re-derive one month from its day rows and overwrite the stored summary.

    Always a full re-scan, never an increment, so repeated or reordered calls
    from the client path, the write trigger and the nightly job all converge.
    """
    summary = _apply_monthly_summary(db, employee_id=employee_id, year_month=year_month)
    db.commit()
    db.refresh(summary)
    return summary


def list_rebuild_target_employee_ids(db: Session) -> list[int]:
    return list(
        db.scalars(
            select(Employee.id)
            .where(
                Employee.role == EmployeeRole.EMPLOYEE,
                Employee.is_active.is_(True),
            )
            .order_by(Employee.id.asc())
        ).all()
    )


def rebuild_monthly_summaries(
    db: Session,
    *,
    year_month: str,
    employee_ids: list[int] | None = None,
) -> list[MonthlySummary]:
    parse_year_month(year_month)
    target_ids = employee_ids if employee_ids is not None else list_rebuild_target_employee_ids(db)
    summaries = [
        _apply_monthly_summary(db, employee_id=employee_id, year_month=year_month)
        for employee_id in target_ids
    ]
    db.commit()
    for summary in summaries:
        db.refresh(summary)

    logger.info(
        "monthly_summaries_rebuilt",
        extra={"year_month": year_month, "employee_count": len(summaries)},
    )
    return summaries
