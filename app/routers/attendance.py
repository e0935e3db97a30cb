from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.audit import attendance_entity_id, log_audit
from app.db import get_db
from app.errors import not_found_error
from app.models import AttendanceDay, AttendanceDayStatus, AuditActorType, Employee, WeeklyReportStatus
from app.schemas import (
    AttendanceDayRead,
    AttendanceDetailsUpdateRequest,
    BreakPeriodPayload,
    BreakScheduleRead,
    BreakScheduleUpdateRequest,
    BreakScheduleUpdateResponse,
    ClearClockResponse,
    ClockTimeRequest,
    MonthlySummaryRead,
    RealtimeTotalsRead,
    WeeklyReportRead,
    WeeklyReportSaveRequest,
)
from app.services.attendance import (
    UNSET,
    clear_clock_in,
    clear_clock_out,
    clock_in,
    clock_out,
    get_attendance_day,
    realtime_totals_for_day,
    update_attendance_details,
)
from app.services.break_periods import nominal_break_minutes, normalize_break_periods
from app.services.break_schedule import get_break_schedule, update_break_schedule_range
from app.services.monthly import get_monthly_summary, list_month_days
from app.services.time_utils import minutes_to_duration, minutes_to_time_label, now_local, parse_year_month
from app.services.weekly_reports import list_weekly_reports, save_weekly_report

router = APIRouter(tags=["attendance"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _require_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found_error("EMPLOYEE_NOT_FOUND", "Employee not found.")
    return employee


def _audit_day_action(
    db: Session,
    request: Request,
    *,
    action: str,
    employee_id: int,
    work_date: date,
    details: dict | None = None,
) -> None:
    request.state.actor = "employee"
    request.state.actor_id = str(employee_id)
    request.state.employee_id = employee_id
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee_id),
        action=action,
        success=True,
        entity_type="attendance_day",
        entity_id=attendance_entity_id(employee_id, work_date),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details=details or {},
        request_id=getattr(request.state, "request_id", None),
    )


def _day_details(day: AttendanceDay) -> dict:
    return {
        "status": day.status.value,
        "break_minutes": day.break_minutes,
        "total_minutes": day.total_minutes,
        "overtime_minutes": day.overtime_minutes,
    }


@router.get(
    "/api/employees/{employee_id}/days/{work_date}",
    response_model=AttendanceDayRead,
)
def read_day(employee_id: int, work_date: date, db: Session = Depends(get_db)) -> AttendanceDayRead:
    _require_employee(db, employee_id)
    day = get_attendance_day(db, employee_id=employee_id, work_date=work_date)
    if day is None:
        raise not_found_error("ATTENDANCE_NOT_FOUND", "No attendance record exists for this date.")
    return AttendanceDayRead.model_validate(day)


@router.post(
    "/api/employees/{employee_id}/days/{work_date}/clock-in",
    response_model=AttendanceDayRead,
)
def post_clock_in(
    employee_id: int,
    work_date: date,
    payload: ClockTimeRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceDayRead:
    day = clock_in(db, employee_id=employee_id, work_date=work_date, clock_in_time=payload.time)
    _audit_day_action(
        db,
        request,
        action="ATTENDANCE_CLOCK_IN",
        employee_id=employee_id,
        work_date=work_date,
        details={"time": payload.time, **_day_details(day)},
    )
    return AttendanceDayRead.model_validate(day)


@router.post(
    "/api/employees/{employee_id}/days/{work_date}/clock-out",
    response_model=AttendanceDayRead,
)
def post_clock_out(
    employee_id: int,
    work_date: date,
    payload: ClockTimeRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceDayRead:
    day = clock_out(db, employee_id=employee_id, work_date=work_date, clock_out_time=payload.time)
    _audit_day_action(
        db,
        request,
        action="ATTENDANCE_CLOCK_OUT",
        employee_id=employee_id,
        work_date=work_date,
        details={"time": payload.time, **_day_details(day)},
    )
    return AttendanceDayRead.model_validate(day)


@router.delete(
    "/api/employees/{employee_id}/days/{work_date}/clock-in",
    response_model=ClearClockResponse,
)
def delete_clock_in(
    employee_id: int,
    work_date: date,
    request: Request,
    db: Session = Depends(get_db),
) -> ClearClockResponse:
    _require_employee(db, employee_id)
    day = clear_clock_in(db, employee_id=employee_id, work_date=work_date)
    if day is None:
        return ClearClockResponse(cleared=False)
    _audit_day_action(
        db,
        request,
        action="ATTENDANCE_CLOCK_IN_CLEARED",
        employee_id=employee_id,
        work_date=work_date,
    )
    return ClearClockResponse(cleared=True, day=AttendanceDayRead.model_validate(day))


@router.delete(
    "/api/employees/{employee_id}/days/{work_date}/clock-out",
    response_model=ClearClockResponse,
)
def delete_clock_out(
    employee_id: int,
    work_date: date,
    request: Request,
    db: Session = Depends(get_db),
) -> ClearClockResponse:
    _require_employee(db, employee_id)
    day = clear_clock_out(db, employee_id=employee_id, work_date=work_date)
    if day is None:
        return ClearClockResponse(cleared=False)
    _audit_day_action(
        db,
        request,
        action="ATTENDANCE_CLOCK_OUT_CLEARED",
        employee_id=employee_id,
        work_date=work_date,
        details={"status": day.status.value},
    )
    return ClearClockResponse(cleared=True, day=AttendanceDayRead.model_validate(day))


@router.patch(
    "/api/employees/{employee_id}/days/{work_date}",
    response_model=AttendanceDayRead,
)
def patch_day_details(
    employee_id: int,
    work_date: date,
    payload: AttendanceDetailsUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceDayRead:
    _require_employee(db, employee_id)
    provided = payload.model_fields_set
    day = update_attendance_details(
        db,
        employee_id=employee_id,
        work_date=work_date,
        break_minutes=payload.break_minutes if "break_minutes" in provided else UNSET,
        break_periods=(
            [period.model_dump() for period in payload.break_periods or []]
            if "break_periods" in provided
            else UNSET
        ),
        work_description=payload.work_description if "work_description" in provided else UNSET,
    )
    _audit_day_action(
        db,
        request,
        action="ATTENDANCE_DETAILS_UPDATED",
        employee_id=employee_id,
        work_date=work_date,
        details={"fields": sorted(provided), **_day_details(day)},
    )
    return AttendanceDayRead.model_validate(day)


@router.get(
    "/api/employees/{employee_id}/days/{work_date}/realtime",
    response_model=RealtimeTotalsRead,
)
def read_realtime_totals(
    employee_id: int,
    work_date: date,
    db: Session = Depends(get_db),
) -> RealtimeTotalsRead:
    _require_employee(db, employee_id)
    day = get_attendance_day(db, employee_id=employee_id, work_date=work_date)
    computed_at = now_local()
    totals = realtime_totals_for_day(day, now=computed_at)
    return RealtimeTotalsRead(
        employee_id=employee_id,
        work_date=work_date,
        status=day.status if day is not None else AttendanceDayStatus.PENDING,
        work_minutes=totals.work_minutes,
        overtime_minutes=totals.overtime_minutes,
        work_duration=minutes_to_duration(totals.work_minutes),
        work_clock=minutes_to_time_label(totals.work_minutes),
        computed_at=computed_at,
    )


@router.get(
    "/api/employees/{employee_id}/months/{year_month}/days",
    response_model=list[AttendanceDayRead],
)
def read_month_days(
    employee_id: int,
    year_month: str,
    db: Session = Depends(get_db),
) -> list[AttendanceDayRead]:
    _require_employee(db, employee_id)
    days = list_month_days(db, employee_id=employee_id, year_month=year_month)
    return [AttendanceDayRead.model_validate(day) for day in days]


@router.get(
    "/api/employees/{employee_id}/months/{year_month}/summary",
    response_model=MonthlySummaryRead,
)
def read_monthly_summary(
    employee_id: int,
    year_month: str,
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    _require_employee(db, employee_id)
    parse_year_month(year_month)
    summary = get_monthly_summary(db, employee_id=employee_id, year_month=year_month)
    if summary is None:
        return MonthlySummaryRead(
            employee_id=employee_id,
            year_month=year_month,
            total_minutes=0,
            overtime_minutes=0,
            total_hours=0.0,
            overtime_hours=0.0,
        )
    return MonthlySummaryRead.from_summary(summary)


@router.get(
    "/api/employees/{employee_id}/break-schedule",
    response_model=BreakScheduleRead,
)
def read_break_schedule(employee_id: int, db: Session = Depends(get_db)) -> BreakScheduleRead:
    _require_employee(db, employee_id)
    schedule = get_break_schedule(db, employee_id=employee_id)
    periods = normalize_break_periods(schedule.periods if schedule is not None else None)
    return BreakScheduleRead(
        employee_id=employee_id,
        periods=[BreakPeriodPayload(**period.to_dict()) for period in periods],
        effective_from=schedule.effective_from if schedule is not None else None,
        break_minutes=nominal_break_minutes(periods),
    )


@router.put(
    "/api/employees/{employee_id}/break-schedule",
    response_model=BreakScheduleUpdateResponse,
)
def put_break_schedule(
    employee_id: int,
    payload: BreakScheduleUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> BreakScheduleUpdateResponse:
    result = update_break_schedule_range(
        db,
        employee_id=employee_id,
        start_work_date=payload.start_work_date,
        break_periods=[period.model_dump() for period in payload.break_periods],
    )
    request.state.actor = "employee"
    request.state.actor_id = str(employee_id)
    request.state.employee_id = employee_id
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee_id),
        action="BREAK_SCHEDULE_UPDATED",
        success=True,
        entity_type="employee_break_schedule",
        entity_id=str(employee_id),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details={
            "start_date": result.start_date.isoformat(),
            "end_date": result.end_date.isoformat(),
            "break_minutes": result.break_minutes,
            "updated_days": result.updated_days,
            "created_days": result.created_days,
            "year_months": result.year_months,
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return BreakScheduleUpdateResponse(
        employee_id=result.employee_id,
        periods=[BreakPeriodPayload(**period.to_dict()) for period in result.periods],
        break_minutes=result.break_minutes,
        start_date=result.start_date,
        end_date=result.end_date,
        updated_days=result.updated_days,
        created_days=result.created_days,
        summaries=[MonthlySummaryRead.from_summary(summary) for summary in result.summaries],
    )


@router.put(
    "/api/employees/{employee_id}/weekly-reports",
    response_model=WeeklyReportRead,
)
def put_weekly_report(
    employee_id: int,
    payload: WeeklyReportSaveRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> WeeklyReportRead:
    report = save_weekly_report(
        db,
        employee_id=employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        content=payload.content,
        status=payload.status,
        week_of_month=payload.week_of_month,
    )
    request.state.actor = "employee"
    request.state.actor_id = str(employee_id)
    request.state.employee_id = employee_id
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee_id),
        action=(
            "WEEKLY_REPORT_SUBMITTED"
            if report.status == WeeklyReportStatus.SUBMITTED
            else "WEEKLY_REPORT_DRAFT_SAVED"
        ),
        success=True,
        entity_type="weekly_report",
        entity_id=str(report.id),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details={
            "start_date": report.start_date.isoformat(),
            "end_date": report.end_date.isoformat(),
            "week_of_month": report.week_of_month,
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return WeeklyReportRead.model_validate(report)


@router.get(
    "/api/employees/{employee_id}/weekly-reports",
    response_model=list[WeeklyReportRead],
)
def read_weekly_reports(
    employee_id: int,
    report_status: WeeklyReportStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[WeeklyReportRead]:
    _require_employee(db, employee_id)
    reports = list_weekly_reports(db, employee_id=employee_id, status=report_status)
    return [WeeklyReportRead.model_validate(report) for report in reports]
