from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import not_found_error, validation_error
from app.models import AttendanceDay, AttendanceDayStatus, Employee, EmployeeRole
from app.services.attendance_calc import (
    RealtimeTotals,
    calculate_day_totals,
    calculate_realtime_totals,
)
from app.services.break_periods import (
    BreakPeriod,
    nominal_break_minutes,
    normalize_break_periods,
    serialize_break_periods,
    validate_break_periods,
)
from app.services.break_schedule import get_default_break_periods
from app.services.monthly import rebuild_monthly_summary
from app.services.time_utils import (
    combine_work_date,
    now_local,
    parse_optional_non_negative_int,
    parse_work_date,
    year_month_key,
)
from app.settings import get_standard_daily_minutes

logger = logging.getLogger("app.attendance")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class BreakDetails:
    periods: list[BreakPeriod]
    break_minutes: int


def derive_break_details(
    existing: AttendanceDay | None,
    *,
    override_periods: Any = UNSET,
    override_minutes: Any = UNSET,
    default_periods: list[BreakPeriod] | None = None,
) -> BreakDetails:
    """Pick the break data a day should be computed with.

    Explicit periods win, then an explicit flat value, then the day's own
    periods, then its stored flat value. The default schedule only fills in
    when the day has no periods of its own.
    """
    existing_periods = normalize_break_periods(existing.break_periods if existing is not None else None)
    existing_minutes = existing.break_minutes if existing is not None else None

    if override_periods is not UNSET:
        periods = normalize_break_periods(override_periods)
    elif existing_periods:
        periods = existing_periods
    else:
        periods = normalize_break_periods(default_periods or [])

    if override_periods is not UNSET:
        minutes = nominal_break_minutes(periods)
    elif override_minutes is not UNSET and override_minutes is not None:
        minutes = parse_optional_non_negative_int(override_minutes)
    elif periods:
        minutes = nominal_break_minutes(periods)
    elif existing_minutes is not None:
        minutes = parse_optional_non_negative_int(existing_minutes)
    else:
        minutes = 0

    return BreakDetails(periods=periods, break_minutes=minutes)


def _ensure_employee_exists(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found_error("EMPLOYEE_NOT_FOUND", "Employee not found.")
    return employee


def get_attendance_day(db: Session, *, employee_id: int, work_date: date | str) -> AttendanceDay | None:
    resolved_date = parse_work_date(work_date)
    return db.scalar(
        select(AttendanceDay).where(
            AttendanceDay.employee_id == employee_id,
            AttendanceDay.work_date == resolved_date,
        )
    )


def _resolve_break_details(
    db: Session,
    day: AttendanceDay | None,
    *,
    employee_id: int,
    work_date: date,
    override_periods: Any = UNSET,
    override_minutes: Any = UNSET,
) -> BreakDetails:
    default_periods: list[BreakPeriod] = []
    has_own_periods = day is not None and bool(normalize_break_periods(day.break_periods))
    if not has_own_periods and override_periods is UNSET:
        default_periods = get_default_break_periods(db, employee_id=employee_id, work_date=work_date)
    return derive_break_details(
        day,
        override_periods=override_periods,
        override_minutes=override_minutes,
        default_periods=default_periods,
    )


def _apply_day_totals(
    day: AttendanceDay,
    *,
    clock_in: datetime | None,
    clock_out: datetime | None,
    details: BreakDetails,
) -> None:
    totals = calculate_day_totals(
        clock_in=clock_in,
        clock_out=clock_out,
        break_minutes=details.break_minutes,
        break_periods=details.periods,
        threshold=get_standard_daily_minutes(),
    )
    day.clock_in_at = clock_in
    day.clock_out_at = clock_out
    day.break_periods = serialize_break_periods(details.periods)
    day.break_minutes = totals.effective_break_minutes
    day.total_minutes = totals.total_minutes
    day.overtime_minutes = totals.overtime_minutes
    day.status = totals.status


def _log_day_event(event_name: str, day: AttendanceDay) -> None:
    logger.info(
        event_name,
        extra={
            "employee_id": day.employee_id,
            "work_date": day.work_date.isoformat(),
            "status": day.status.value,
            "total_minutes": day.total_minutes,
            "overtime_minutes": day.overtime_minutes,
            "break_minutes": day.break_minutes,
        },
    )


def clock_in(
    db: Session,
    *,
    employee_id: int,
    work_date: date | str,
    clock_in_time: str,
) -> AttendanceDay:
    _ensure_employee_exists(db, employee_id)
    resolved_date = parse_work_date(work_date)
    clock_in_at = combine_work_date(resolved_date, clock_in_time, "Clock-in time")

    day = get_attendance_day(db, employee_id=employee_id, work_date=resolved_date)
    clock_out_at = day.clock_out_at if day is not None else None
    if clock_out_at is not None and clock_out_at < clock_in_at:
        raise validation_error(
            "CLOCK_OUT_BEFORE_CLOCK_IN",
            "Clock-in time must not be later than the recorded clock-out time.",
        )

    details = _resolve_break_details(db, day, employee_id=employee_id, work_date=resolved_date)
    if day is None:
        day = AttendanceDay(employee_id=employee_id, work_date=resolved_date, work_description="")
        db.add(day)
    _apply_day_totals(day, clock_in=clock_in_at, clock_out=clock_out_at, details=details)
    db.commit()
    db.refresh(day)
    _log_day_event("attendance_clock_in", day)

    if day.status is AttendanceDayStatus.COMPLETED:
        rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(resolved_date))
    return day


def clock_out(
    db: Session,
    *,
    employee_id: int,
    work_date: date | str,
    clock_out_time: str,
) -> AttendanceDay:
    _ensure_employee_exists(db, employee_id)
    resolved_date = parse_work_date(work_date)
    day = get_attendance_day(db, employee_id=employee_id, work_date=resolved_date)
    if day is None or day.clock_in_at is None:
        raise validation_error("CLOCK_IN_REQUIRED", "Clock in first.")

    clock_out_at = combine_work_date(resolved_date, clock_out_time, "Clock-out time")
    if clock_out_at < day.clock_in_at:
        raise validation_error(
            "CLOCK_OUT_BEFORE_CLOCK_IN",
            "Clock-out time must be later than the clock-in time.",
        )

    details = _resolve_break_details(db, day, employee_id=employee_id, work_date=resolved_date)
    _apply_day_totals(day, clock_in=day.clock_in_at, clock_out=clock_out_at, details=details)
    db.commit()
    db.refresh(day)
    _log_day_event("attendance_clock_out", day)

    rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(resolved_date))
    return day


def clear_clock_in(db: Session, *, employee_id: int, work_date: date | str) -> AttendanceDay | None:
    resolved_date = parse_work_date(work_date)
    day = get_attendance_day(db, employee_id=employee_id, work_date=resolved_date)
    if day is None:
        return None

    day.clock_in_at = None
    day.clock_out_at = None
    day.total_minutes = None
    day.overtime_minutes = None
    day.status = AttendanceDayStatus.PENDING
    db.commit()
    db.refresh(day)
    _log_day_event("attendance_clock_in_cleared", day)

    rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(resolved_date))
    return day


def clear_clock_out(db: Session, *, employee_id: int, work_date: date | str) -> AttendanceDay | None:
    resolved_date = parse_work_date(work_date)
    day = get_attendance_day(db, employee_id=employee_id, work_date=resolved_date)
    if day is None:
        return None
    if day.clock_in_at is None:
        return clear_clock_in(db, employee_id=employee_id, work_date=resolved_date)

    day.clock_out_at = None
    day.total_minutes = None
    day.overtime_minutes = None
    day.status = AttendanceDayStatus.WORKING
    db.commit()
    db.refresh(day)
    _log_day_event("attendance_clock_out_cleared", day)

    rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(resolved_date))
    return day


def update_attendance_details(
    db: Session,
    *,
    employee_id: int,
    work_date: date | str,
    break_minutes: Any = UNSET,
    break_periods: Any = UNSET,
    work_description: Any = UNSET,
) -> AttendanceDay:
    resolved_date = parse_work_date(work_date)
    day = get_attendance_day(db, employee_id=employee_id, work_date=resolved_date)
    if day is None:
        raise not_found_error("ATTENDANCE_NOT_FOUND", "No attendance record exists for this date.")

    if break_periods is not UNSET:
        # null clears the day's periods, the same as an empty list.
        break_periods = validate_break_periods(break_periods or [])

    details = _resolve_break_details(
        db,
        day,
        employee_id=employee_id,
        work_date=resolved_date,
        override_periods=break_periods,
        override_minutes=break_minutes,
    )
    _apply_day_totals(day, clock_in=day.clock_in_at, clock_out=day.clock_out_at, details=details)
    if work_description is not UNSET and work_description is not None:
        day.work_description = str(work_description)
    db.commit()
    db.refresh(day)
    _log_day_event("attendance_details_updated", day)

    if day.total_minutes is not None:
        rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(resolved_date))
    return day


def realtime_totals_for_day(day: AttendanceDay | None, *, now: datetime | None = None) -> RealtimeTotals:
    """Display-only estimate; completed days report their stored totals."""
    if day is None or day.clock_in_at is None:
        return RealtimeTotals(work_minutes=0, overtime_minutes=0)
    if day.clock_out_at is not None:
        return RealtimeTotals(
            work_minutes=day.total_minutes or 0,
            overtime_minutes=day.overtime_minutes or 0,
        )
    return calculate_realtime_totals(
        day.clock_in_at,
        day.break_minutes,
        day.break_periods,
        now=now or now_local(),
        threshold=get_standard_daily_minutes(),
    )


def list_daily_statuses(db: Session, *, work_date: date | str) -> list[tuple[Employee, AttendanceDay | None]]:
    """Every active employee with their row for ``work_date``, earliest clock-in first."""
    resolved_date = parse_work_date(work_date)
    employees = list(
        db.scalars(
            select(Employee)
            .where(Employee.is_active.is_(True), Employee.role == EmployeeRole.EMPLOYEE)
            .order_by(Employee.id.asc())
        ).all()
    )
    days = {
        day.employee_id: day
        for day in db.scalars(select(AttendanceDay).where(AttendanceDay.work_date == resolved_date)).all()
    }
    rows = [(employee, days.get(employee.id)) for employee in employees]

    def _sort_key(row: tuple[Employee, AttendanceDay | None]) -> tuple[int, datetime, int]:
        employee, day = row
        if day is None or day.clock_in_at is None:
            return (1, datetime.max, employee.id)
        return (0, day.clock_in_at, employee.id)

    return sorted(rows, key=_sort_key)
