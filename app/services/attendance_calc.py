"""Pure time-accounting rules shared by every recomputation path.

The immediate recompute after a clock event, the write-trigger handler, the
nightly rebuild and the realtime estimate all call into this module, so the
numbers they produce cannot drift apart. Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from app.models import AttendanceDayStatus
from app.services.break_periods import nominal_break_minutes, normalize_break_periods
from app.services.time_utils import (
    difference_in_minutes,
    minutes_to_time,
    parse_non_negative_int_or_none,
    parse_optional_non_negative_int,
)

STANDARD_DAILY_MINUTES = 480


@dataclass(frozen=True)
class DayTotals:
    status: AttendanceDayStatus
    effective_break_minutes: int
    total_minutes: int | None
    overtime_minutes: int | None


@dataclass(frozen=True)
class RealtimeTotals:
    work_minutes: int
    overtime_minutes: int


@dataclass(frozen=True)
class MonthTotals:
    total_minutes: int
    overtime_minutes: int
    completed_days: int


def calculate_span_minutes(clock_in: datetime | None, clock_out: datetime | None) -> int | None:
    if clock_in is None or clock_out is None:
        return None
    return max(difference_in_minutes(clock_out, clock_in), 0)


def resolve_break_minutes(break_minutes: Any, break_periods: Any) -> int:
    """Nominal break length: the flat value if usable, else the schedule's summed length."""
    flat = parse_non_negative_int_or_none(break_minutes)
    if flat is not None:
        return flat
    periods = normalize_break_periods(break_periods)
    if periods:
        return nominal_break_minutes(periods)
    return 0


def calculate_deductible_break_minutes(
    clock_in: datetime | None,
    clock_out: datetime | None,
    break_minutes: Any,
    break_periods: Any,
) -> int:
    if clock_in is None or clock_out is None:
        return resolve_break_minutes(break_minutes, break_periods)

    span_minutes = calculate_span_minutes(clock_in, clock_out)
    periods = normalize_break_periods(break_periods)

    if periods:
        work_day = clock_in.date()
        deducted = 0
        # Overlapping periods are intentionally not merged: each one is
        # intersected with the span on its own and the results are added.
        for period in periods:
            break_start = datetime.combine(work_day, minutes_to_time(period.start_minutes))
            break_end = datetime.combine(work_day, minutes_to_time(period.end_minutes))
            overlap_start = max(break_start, clock_in)
            overlap_end = min(break_end, clock_out)
            if overlap_end > overlap_start:
                deducted += difference_in_minutes(overlap_end, overlap_start)
    else:
        deducted = parse_optional_non_negative_int(break_minutes)

    return min(max(deducted, 0), span_minutes)


def calculate_daily_minutes(
    clock_in: datetime | None,
    clock_out: datetime | None,
    effective_break_minutes: int | None = 0,
) -> int:
    if clock_in is None or clock_out is None:
        return 0
    diff_minutes = difference_in_minutes(clock_out, clock_in)
    return max(diff_minutes - (effective_break_minutes or 0), 0)


def calculate_overtime_minutes(total_minutes: int | None, threshold: int = STANDARD_DAILY_MINUTES) -> int:
    if not total_minutes:
        return 0
    return max(total_minutes - threshold, 0)


def derive_day_status(clock_in: datetime | None, clock_out: datetime | None) -> AttendanceDayStatus:
    if clock_in is None:
        return AttendanceDayStatus.PENDING
    if clock_out is None:
        return AttendanceDayStatus.WORKING
    return AttendanceDayStatus.COMPLETED


def calculate_day_totals(
    *,
    clock_in: datetime | None,
    clock_out: datetime | None,
    break_minutes: Any,
    break_periods: Any,
    threshold: int = STANDARD_DAILY_MINUTES,
) -> DayTotals:
    """Derived fields of one day. Totals stay ``None`` until both clock times exist."""
    status = derive_day_status(clock_in, clock_out)
    if status is not AttendanceDayStatus.COMPLETED:
        return DayTotals(
            status=status,
            effective_break_minutes=resolve_break_minutes(break_minutes, break_periods),
            total_minutes=None,
            overtime_minutes=None,
        )

    effective_break = calculate_deductible_break_minutes(clock_in, clock_out, break_minutes, break_periods)
    total_minutes = calculate_daily_minutes(clock_in, clock_out, effective_break)
    return DayTotals(
        status=status,
        effective_break_minutes=effective_break,
        total_minutes=total_minutes,
        overtime_minutes=calculate_overtime_minutes(total_minutes, threshold),
    )


def calculate_realtime_totals(
    clock_in: datetime | None,
    break_minutes: Any = 0,
    break_periods: Any = None,
    *,
    now: datetime | None = None,
    threshold: int = STANDARD_DAILY_MINUTES,
) -> RealtimeTotals:
    if clock_in is None:
        return RealtimeTotals(work_minutes=0, overtime_minutes=0)
    current = now or datetime.now()
    effective_break = calculate_deductible_break_minutes(clock_in, current, break_minutes, break_periods)
    work_minutes = calculate_daily_minutes(clock_in, current, effective_break)
    return RealtimeTotals(
        work_minutes=work_minutes,
        overtime_minutes=calculate_overtime_minutes(work_minutes, threshold),
    )


def summarize_month(days: Iterable[Any]) -> MonthTotals:
    total_minutes = 0
    overtime_minutes = 0
    completed_days = 0
    for day in days:
        day_total = getattr(day, "total_minutes", None)
        day_overtime = getattr(day, "overtime_minutes", None)
        if day_total is None and day_overtime is None:
            continue
        completed_days += 1
        total_minutes += day_total or 0
        overtime_minutes += day_overtime or 0
    return MonthTotals(
        total_minutes=total_minutes,
        overtime_minutes=overtime_minutes,
        completed_days=completed_days,
    )
