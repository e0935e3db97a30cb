from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import not_found_error
from app.models import AttendanceDay, AttendanceDayStatus, Employee, EmployeeBreakSchedule, MonthlySummary
from app.services.attendance_calc import calculate_day_totals
from app.services.break_periods import (
    BreakPeriod,
    nominal_break_minutes,
    normalize_break_periods,
    serialize_break_periods,
)
from app.services.monthly import list_range_days, rebuild_monthly_summary
from app.services.time_utils import end_of_month, parse_work_date, year_month_key
from app.settings import get_standard_daily_minutes

logger = logging.getLogger("app.attendance")


@dataclass
class BreakScheduleUpdateResult:
    employee_id: int
    periods: list[BreakPeriod]
    break_minutes: int
    start_date: date
    end_date: date
    updated_days: int = 0
    created_days: int = 0
    summaries: list[MonthlySummary] = field(default_factory=list)

    @property
    def year_months(self) -> list[str]:
        return [summary.year_month for summary in self.summaries]


def get_break_schedule(db: Session, *, employee_id: int) -> EmployeeBreakSchedule | None:
    return db.scalar(select(EmployeeBreakSchedule).where(EmployeeBreakSchedule.employee_id == employee_id))


def get_default_break_periods(db: Session, *, employee_id: int, work_date: date) -> list[BreakPeriod]:
    schedule = get_break_schedule(db, employee_id=employee_id)
    if schedule is None:
        return []
    if schedule.effective_from is not None and schedule.effective_from > work_date:
        return []
    return normalize_break_periods(schedule.periods)


def _apply_schedule_to_day(
    day: AttendanceDay,
    *,
    periods: list[BreakPeriod],
    break_minutes: int,
    threshold: int,
) -> None:
    day.break_periods = serialize_break_periods(periods)
    if day.clock_in_at is not None and day.clock_out_at is not None:
        totals = calculate_day_totals(
            clock_in=day.clock_in_at,
            clock_out=day.clock_out_at,
            break_minutes=break_minutes,
            break_periods=periods,
            threshold=threshold,
        )
        day.break_minutes = totals.effective_break_minutes
        day.total_minutes = totals.total_minutes
        day.overtime_minutes = totals.overtime_minutes
        day.status = totals.status
    else:
        day.break_minutes = break_minutes


def update_break_schedule_range(
    db: Session,
    *,
    employee_id: int,
    start_work_date: date | str,
    break_periods: Any,
) -> BreakScheduleUpdateResult:
    """Apply a break template from ``start_work_date`` through the end of that month.

    Every day row in the range is rewritten (missing dates get a day-shell
    carrying only the schedule) in a single commit. The employee's default
    template and the touched month summaries are written only after that
    commit succeeds.
    """
    if db.get(Employee, employee_id) is None:
        raise not_found_error("EMPLOYEE_NOT_FOUND", "Employee not found.")

    start_date = parse_work_date(start_work_date)
    end_date = end_of_month(start_date)
    periods = normalize_break_periods(break_periods)
    break_minutes = nominal_break_minutes(periods)
    threshold = get_standard_daily_minutes()

    result = BreakScheduleUpdateResult(
        employee_id=employee_id,
        periods=periods,
        break_minutes=break_minutes,
        start_date=start_date,
        end_date=end_date,
    )
    touched_months: set[str] = set()

    try:
        existing_days = list_range_days(db, employee_id=employee_id, start_date=start_date, end_date=end_date)
        existing_dates = {day.work_date for day in existing_days}
        for day in existing_days:
            _apply_schedule_to_day(day, periods=periods, break_minutes=break_minutes, threshold=threshold)
            touched_months.add(year_month_key(day.work_date))
            result.updated_days += 1

        cursor = start_date
        while cursor <= end_date:
            if cursor not in existing_dates:
                shell = AttendanceDay(
                    employee_id=employee_id,
                    work_date=cursor,
                    work_description="",
                    status=AttendanceDayStatus.PENDING,
                    total_minutes=None,
                    overtime_minutes=None,
                )
                _apply_schedule_to_day(shell, periods=periods, break_minutes=break_minutes, threshold=threshold)
                db.add(shell)
                touched_months.add(year_month_key(cursor))
                result.created_days += 1
            cursor += timedelta(days=1)

        db.commit()
    except Exception:
        db.rollback()
        raise

    schedule = get_break_schedule(db, employee_id=employee_id)
    if schedule is None:
        schedule = EmployeeBreakSchedule(employee_id=employee_id)
        db.add(schedule)
    schedule.periods = serialize_break_periods(periods)
    schedule.effective_from = start_date
    db.commit()

    for year_month in sorted(touched_months):
        result.summaries.append(
            rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month)
        )

    logger.info(
        "break_schedule_range_updated",
        extra={
            "employee_id": employee_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "break_minutes": break_minutes,
            "period_count": len(periods),
            "updated_days": result.updated_days,
            "created_days": result.created_days,
            "year_months": sorted(touched_months),
        },
    )
    return result
