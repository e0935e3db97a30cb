from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from app.errors import validation_error
from app.services.time_utils import is_valid_time_token, time_token_to_minutes

MAX_BREAK_SLOTS = 5


@dataclass(frozen=True, slots=True)
class BreakPeriod:
    start: str
    end: str

    @property
    def start_minutes(self) -> int:
        return time_token_to_minutes(self.start) or 0

    @property
    def end_minutes(self) -> int:
        return time_token_to_minutes(self.end) or 0

    @property
    def duration_minutes(self) -> int:
        return max(self.end_minutes - self.start_minutes, 0)

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


def _read_field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _coerce_token(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_well_formed(start: str, end: str) -> bool:
    start_minutes = time_token_to_minutes(start)
    end_minutes = time_token_to_minutes(end)
    if start_minutes is None or end_minutes is None:
        return False
    return end_minutes > start_minutes


def normalize_break_periods(raw: Any) -> list[BreakPeriod]:
    """Drop malformed pairs, sort by start, cap at MAX_BREAK_SLOTS."""
    if raw is None or isinstance(raw, (str, bytes, dict)):
        return []
    try:
        items = list(raw)
    except TypeError:
        return []

    candidates: list[BreakPeriod] = []
    for item in items:
        if item is None:
            continue
        start = _coerce_token(_read_field(item, "start"))
        end = _coerce_token(_read_field(item, "end"))
        if not _is_well_formed(start, end):
            continue
        candidates.append(BreakPeriod(start=start, end=end))

    # sorted() is stable, so equal starts keep their input order.
    candidates = sorted(candidates, key=lambda period: period.start_minutes)
    return candidates[:MAX_BREAK_SLOTS]


def validate_break_periods(raw: Iterable[Any]) -> list[BreakPeriod]:
    """Strict variant for user input: reject instead of silently dropping."""
    items = list(raw)
    if len(items) > MAX_BREAK_SLOTS:
        raise validation_error(
            "TOO_MANY_BREAK_PERIODS",
            f"At most {MAX_BREAK_SLOTS} break periods are allowed.",
        )
    for item in items:
        start = _coerce_token(_read_field(item, "start"))
        end = _coerce_token(_read_field(item, "end"))
        if not is_valid_time_token(start) or not is_valid_time_token(end):
            raise validation_error("INVALID_TIME_TOKEN", "Break period times must be formatted as HH:MM.")
        if not _is_well_formed(start, end):
            raise validation_error("INVALID_BREAK_PERIOD", "Break period end must be later than its start.")
    return normalize_break_periods(items)


def nominal_break_minutes(periods: Iterable[BreakPeriod]) -> int:
    return sum(period.duration_minutes for period in periods)


def serialize_break_periods(periods: Iterable[BreakPeriod]) -> list[dict[str, str]]:
    return [period.to_dict() for period in periods]
