from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from fastapi import status as http_status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ApiError, not_found_error, validation_error
from app.models import Employee, WeeklyReport, WeeklyReportStatus
from app.services.time_utils import parse_work_date

logger = logging.getLogger("app.weekly_reports")

MAX_WEEK_SPAN_DAYS = 7


def _resolve_week_range(start_date: date | str, end_date: date | str) -> tuple[date, date]:
    start = parse_work_date(start_date)
    end = parse_work_date(end_date)
    if end < start:
        raise validation_error("INVALID_WEEK_RANGE", "Week end date must not be before its start date.")
    if (end - start).days >= MAX_WEEK_SPAN_DAYS:
        raise validation_error("INVALID_WEEK_RANGE", f"A weekly report covers at most {MAX_WEEK_SPAN_DAYS} days.")
    return start, end


def get_weekly_report(
    db: Session,
    *,
    employee_id: int,
    start_date: date | str,
    end_date: date | str,
) -> WeeklyReport | None:
    start, end = _resolve_week_range(start_date, end_date)
    return db.scalar(
        select(WeeklyReport).where(
            WeeklyReport.employee_id == employee_id,
            WeeklyReport.start_date == start,
            WeeklyReport.end_date == end,
        )
    )


def save_weekly_report(
    db: Session,
    *,
    employee_id: int,
    start_date: date | str,
    end_date: date | str,
    content: str,
    status: WeeklyReportStatus = WeeklyReportStatus.DRAFT,
    week_of_month: int | None = None,
) -> WeeklyReport:
    """Create or overwrite the employee's report for one week.

    Saving as a draft clears ``submitted_at_utc``; submitting stamps it.
    """
    start, end = _resolve_week_range(start_date, end_date)
    if db.get(Employee, employee_id) is None:
        raise not_found_error("EMPLOYEE_NOT_FOUND", "Employee not found.")

    report = get_weekly_report(db, employee_id=employee_id, start_date=start, end_date=end)
    if report is None:
        report = WeeklyReport(employee_id=employee_id, start_date=start, end_date=end)
        db.add(report)
    report.week_of_month = week_of_month
    report.content = content
    report.status = status
    report.submitted_at_utc = datetime.now(timezone.utc) if status == WeeklyReportStatus.SUBMITTED else None
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            http_status.HTTP_409_CONFLICT,
            "WEEKLY_REPORT_CONFLICT",
            "This weekly report was saved concurrently; reload and try again.",
        ) from exc
    db.refresh(report)

    logger.info(
        "weekly_report_saved",
        extra={
            "employee_id": employee_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "status": report.status.value,
        },
    )
    return report


def list_weekly_reports(
    db: Session,
    *,
    employee_id: int | None = None,
    status: WeeklyReportStatus | None = None,
) -> list[WeeklyReport]:
    stmt = select(WeeklyReport)
    if employee_id is not None:
        stmt = stmt.where(WeeklyReport.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(WeeklyReport.status == status)
    stmt = stmt.order_by(WeeklyReport.start_date.desc(), WeeklyReport.employee_id.asc())
    return list(db.scalars(stmt).all())
