from __future__ import annotations

import logging
import math
import re
from calendar import monthrange
from datetime import date, datetime, time
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.errors import validation_error
from app.settings import get_settings

TIME_TOKEN_PATTERN = re.compile(r"^([0-1]\d|2[0-3]):([0-5]\d)$")
YEAR_MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
DEFAULT_ATTENDANCE_TIMEZONE = "Asia/Tokyo"

logger = logging.getLogger("app.attendance")


def is_valid_time_token(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return TIME_TOKEN_PATTERN.fullmatch(value) is not None


def time_token_to_minutes(value: Any) -> int | None:
    match = TIME_TOKEN_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


def _finite_minutes(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(math.floor(value))
    return None


def parse_optional_non_negative_int(value: Any) -> int:
    """Lenient minute-count reader: missing, non-numeric, NaN and negative all become 0."""
    parsed = _finite_minutes(value)
    if parsed is None:
        return 0
    return max(0, parsed)


def parse_non_negative_int_or_none(value: Any) -> int | None:
    """Like ``parse_optional_non_negative_int`` but keeps "no usable number" distinguishable."""
    parsed = _finite_minutes(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


def difference_in_minutes(later: datetime, earlier: datetime) -> int:
    # Truncates toward zero, so 59 seconds is 0 minutes in either direction.
    return int((later - earlier).total_seconds() / 60)


def minutes_to_duration(minutes: int | None) -> str:
    if minutes is None:
        return "-"
    sign = "-" if minutes < 0 else ""
    absolute = abs(minutes)
    return f"{sign}{absolute // 60}h{absolute % 60:02d}m"


def minutes_to_hours(minutes: int | None) -> float:
    if minutes is None:
        return 0.0
    return round(minutes / 60, 2)


def minutes_to_time_label(minutes: int | None) -> str:
    if minutes is None:
        return "--:--"
    absolute = max(minutes, 0)
    return f"{absolute // 60:02d}:{absolute % 60:02d}"


def parse_work_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise validation_error("INVALID_WORK_DATE", "Work date must be formatted as YYYY-MM-DD.") from None


def combine_work_date(work_date: date, token: str | None, label: str) -> datetime:
    if not token:
        raise validation_error("INVALID_TIME_TOKEN", f"{label} is required.")
    minutes = time_token_to_minutes(token.strip())
    if minutes is None:
        raise validation_error("INVALID_TIME_TOKEN", f"{label} must be formatted as HH:MM.")
    return datetime.combine(work_date, minutes_to_time(minutes))


def year_month_key(work_date: date) -> str:
    return work_date.strftime("%Y-%m")


def parse_year_month(value: str) -> tuple[int, int]:
    match = YEAR_MONTH_PATTERN.fullmatch((value or "").strip())
    if match is None:
        raise validation_error("INVALID_YEAR_MONTH", "Year-month must be formatted as YYYY-MM.")
    return int(match.group(1)), int(match.group(2))


def month_bounds(year_month: str) -> tuple[date, date]:
    year, month = parse_year_month(year_month)
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def end_of_month(value: date) -> date:
    return date(value.year, value.month, monthrange(value.year, value.month)[1])


@lru_cache
def _attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_ATTENDANCE_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "attendance_timezone_invalid",
            extra={"configured": raw_name, "fallback": DEFAULT_ATTENDANCE_TIMEZONE},
        )
        return ZoneInfo(DEFAULT_ATTENDANCE_TIMEZONE)


def now_local() -> datetime:
    """Current wall-clock time in the attendance timezone, without tzinfo."""
    return datetime.now(_attendance_timezone()).replace(tzinfo=None)
