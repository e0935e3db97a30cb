from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models import AttendanceDayStatus, EmployeeRole, MonthlySummary, WeeklyReportStatus
from app.services.break_periods import MAX_BREAK_SLOTS
from app.services.time_utils import (
    TIME_TOKEN_PATTERN,
    minutes_to_duration,
    minutes_to_hours,
    time_token_to_minutes,
)

TIME_TOKEN_REGEX = TIME_TOKEN_PATTERN.pattern


class EmployeeCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    role: EmployeeRole = EmployeeRole.EMPLOYEE
    is_active: bool = True


class EmployeeRead(BaseModel):
    id: int
    full_name: str
    role: EmployeeRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class BreakPeriodPayload(BaseModel):
    start: str = Field(pattern=TIME_TOKEN_REGEX)
    end: str = Field(pattern=TIME_TOKEN_REGEX)

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _end_after_start(self) -> "BreakPeriodPayload":
        start_minutes = time_token_to_minutes(self.start)
        end_minutes = time_token_to_minutes(self.end)
        if start_minutes is not None and end_minutes is not None and end_minutes <= start_minutes:
            raise ValueError("Break period end must be later than its start")
        return self


class ClockTimeRequest(BaseModel):
    time: str = Field(pattern=TIME_TOKEN_REGEX, description="Local wall-clock time, HH:MM")


class AttendanceDetailsUpdateRequest(BaseModel):
    break_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    break_periods: list[BreakPeriodPayload] | None = Field(default=None, max_length=MAX_BREAK_SLOTS)
    work_description: str | None = Field(default=None, max_length=4000)


class AttendanceDayRead(BaseModel):
    employee_id: int
    work_date: date
    clock_in_at: datetime | None
    clock_out_at: datetime | None
    break_minutes: int | None
    break_periods: list[BreakPeriodPayload]
    work_description: str
    total_minutes: int | None
    overtime_minutes: int | None
    status: AttendanceDayStatus
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("break_periods", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []


class ClearClockResponse(BaseModel):
    cleared: bool
    day: AttendanceDayRead | None = None


class RealtimeTotalsRead(BaseModel):
    employee_id: int
    work_date: date
    status: AttendanceDayStatus
    work_minutes: int
    overtime_minutes: int
    work_duration: str
    work_clock: str
    computed_at: datetime


class MonthlySummaryRead(BaseModel):
    employee_id: int
    year_month: str
    total_minutes: int
    overtime_minutes: int
    total_hours: float
    overtime_hours: float
    updated_at: datetime | None = None

    @classmethod
    def from_summary(cls, summary: MonthlySummary) -> "MonthlySummaryRead":
        return cls(
            employee_id=summary.employee_id,
            year_month=summary.year_month,
            total_minutes=summary.total_minutes,
            overtime_minutes=summary.overtime_minutes,
            total_hours=minutes_to_hours(summary.total_minutes),
            overtime_hours=minutes_to_hours(summary.overtime_minutes),
            updated_at=summary.updated_at,
        )


class BreakScheduleRead(BaseModel):
    employee_id: int
    periods: list[BreakPeriodPayload]
    effective_from: date | None
    break_minutes: int


class BreakScheduleUpdateRequest(BaseModel):
    start_work_date: date
    break_periods: list[BreakPeriodPayload] = Field(default_factory=list, max_length=MAX_BREAK_SLOTS)


class BreakScheduleUpdateResponse(BaseModel):
    employee_id: int
    periods: list[BreakPeriodPayload]
    break_minutes: int
    start_date: date
    end_date: date
    updated_days: int
    created_days: int
    summaries: list[MonthlySummaryRead]


class DailyStatusItem(BaseModel):
    employee_id: int
    full_name: str
    work_date: date
    status: AttendanceDayStatus
    clock_in_at: datetime | None = None
    clock_out_at: datetime | None = None
    break_minutes: int | None = None
    total_minutes: int | None = None
    overtime_minutes: int | None = None
    realtime_work_minutes: int = 0
    realtime_overtime_minutes: int = 0
    work_duration: str = "-"


class MonthlySummaryListItem(MonthlySummaryRead):
    full_name: str | None = None
    total_duration: str
    overtime_duration: str

    @classmethod
    def from_summary_with_name(cls, summary: MonthlySummary, full_name: str | None) -> "MonthlySummaryListItem":
        base = MonthlySummaryRead.from_summary(summary)
        return cls(
            **base.model_dump(),
            full_name=full_name,
            total_duration=minutes_to_duration(summary.total_minutes),
            overtime_duration=minutes_to_duration(summary.overtime_minutes),
        )


class MonthlySummaryRebuildResponse(BaseModel):
    year_month: str
    rebuilt_count: int


class RecomputeJobRead(BaseModel):
    id: int
    employee_id: int
    work_date: date
    reason: str
    status: str
    attempts: int
    last_error: str | None
    scheduled_at_utc: datetime

    model_config = ConfigDict(from_attributes=True)


class WeeklyReportSaveRequest(BaseModel):
    start_date: date
    end_date: date
    week_of_month: int | None = Field(default=None, ge=1, le=6)
    content: str = Field(default="", max_length=20000)
    status: WeeklyReportStatus = WeeklyReportStatus.DRAFT


class WeeklyReportRead(BaseModel):
    id: int
    employee_id: int
    start_date: date
    end_date: date
    week_of_month: int | None
    content: str
    status: WeeklyReportStatus
    submitted_at_utc: datetime | None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class WeeklyReportListItem(WeeklyReportRead):
    full_name: str | None = None
