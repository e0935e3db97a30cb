from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import get_db
from app.models import AttendanceDayStatus, AuditActorType, Employee, WeeklyReportStatus
from app.schemas import (
    DailyStatusItem,
    EmployeeCreate,
    EmployeeRead,
    MonthlySummaryListItem,
    MonthlySummaryRebuildResponse,
    RecomputeJobRead,
    WeeklyReportListItem,
    WeeklyReportRead,
)
from app.services.attendance import list_daily_statuses, realtime_totals_for_day
from app.services.monthly import list_monthly_summaries, rebuild_monthly_summaries
from app.services.recompute import list_recompute_jobs
from app.services.time_utils import minutes_to_duration, now_local
from app.services.weekly_reports import list_weekly_reports

router = APIRouter(tags=["admin"])


def _admin_actor(request: Request) -> str:
    actor_id = request.headers.get("x-admin-id") or "admin"
    request.state.actor = "admin"
    request.state.actor_id = actor_id
    return actor_id


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post(
    "/api/admin/employees",
    response_model=EmployeeRead,
    status_code=status.HTTP_201_CREATED,
)
def create_employee(payload: EmployeeCreate, request: Request, db: Session = Depends(get_db)) -> EmployeeRead:
    actor_id = _admin_actor(request)
    employee = Employee(
        full_name=payload.full_name.strip(),
        role=payload.role,
        is_active=payload.is_active,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="EMPLOYEE_CREATED",
        success=True,
        entity_type="employee",
        entity_id=str(employee.id),
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        details={"full_name": employee.full_name, "role": employee.role.value},
        request_id=getattr(request.state, "request_id", None),
    )
    return EmployeeRead.model_validate(employee)


@router.get("/api/admin/employees", response_model=list[EmployeeRead])
def list_employees(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[EmployeeRead]:
    stmt = select(Employee).order_by(Employee.id.asc())
    if not include_inactive:
        stmt = stmt.where(Employee.is_active.is_(True))
    return [EmployeeRead.model_validate(item) for item in db.scalars(stmt).all()]


@router.get("/api/admin/days/{work_date}", response_model=list[DailyStatusItem])
def list_day_statuses(work_date: date, db: Session = Depends(get_db)) -> list[DailyStatusItem]:
    current = now_local()
    items: list[DailyStatusItem] = []
    for employee, day in list_daily_statuses(db, work_date=work_date):
        if day is None:
            items.append(
                DailyStatusItem(
                    employee_id=employee.id,
                    full_name=employee.full_name,
                    work_date=work_date,
                    status=AttendanceDayStatus.PENDING,
                )
            )
            continue
        totals = realtime_totals_for_day(day, now=current)
        items.append(
            DailyStatusItem(
                employee_id=employee.id,
                full_name=employee.full_name,
                work_date=work_date,
                status=day.status,
                clock_in_at=day.clock_in_at,
                clock_out_at=day.clock_out_at,
                break_minutes=day.break_minutes,
                total_minutes=day.total_minutes,
                overtime_minutes=day.overtime_minutes,
                realtime_work_minutes=totals.work_minutes,
                realtime_overtime_minutes=totals.overtime_minutes,
                work_duration=(
                    minutes_to_duration(totals.work_minutes)
                    if day.clock_in_at is not None
                    else "-"
                ),
            )
        )
    return items


@router.get("/api/admin/months/{year_month}/summaries", response_model=list[MonthlySummaryListItem])
def list_month_summaries(year_month: str, db: Session = Depends(get_db)) -> list[MonthlySummaryListItem]:
    summaries = list_monthly_summaries(db, year_month=year_month)
    names = {
        employee_id: full_name
        for employee_id, full_name in db.execute(
            select(Employee.id, Employee.full_name).where(
                Employee.id.in_([summary.employee_id for summary in summaries])
            )
        ).all()
    }
    return [
        MonthlySummaryListItem.from_summary_with_name(summary, names.get(summary.employee_id))
        for summary in summaries
    ]


@router.post(
    "/api/admin/months/{year_month}/summaries/rebuild",
    response_model=MonthlySummaryRebuildResponse,
)
def rebuild_month_summaries(
    year_month: str,
    request: Request,
    db: Session = Depends(get_db),
) -> MonthlySummaryRebuildResponse:
    actor_id = _admin_actor(request)
    summaries = rebuild_monthly_summaries(db, year_month=year_month)
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="MONTHLY_SUMMARIES_REBUILT",
        success=True,
        entity_type="monthly_summary",
        entity_id=year_month,
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        details={"year_month": year_month, "employee_count": len(summaries)},
        request_id=getattr(request.state, "request_id", None),
    )
    return MonthlySummaryRebuildResponse(year_month=year_month, rebuilt_count=len(summaries))


@router.get("/api/admin/recompute-jobs", response_model=list[RecomputeJobRead])
def list_jobs(
    job_status: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[RecomputeJobRead]:
    jobs = list_recompute_jobs(db, status=job_status, limit=limit)
    return [RecomputeJobRead.model_validate(job) for job in jobs]


@router.get("/api/admin/weekly-reports", response_model=list[WeeklyReportListItem])
def list_all_weekly_reports(
    report_status: WeeklyReportStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[WeeklyReportListItem]:
    reports = list_weekly_reports(db, status=report_status)
    names = {
        employee_id: full_name
        for employee_id, full_name in db.execute(
            select(Employee.id, Employee.full_name).where(
                Employee.id.in_(sorted({report.employee_id for report in reports}))
            )
        ).all()
    }
    return [
        WeeklyReportListItem(
            **WeeklyReportRead.model_validate(report).model_dump(),
            full_name=names.get(report.employee_id),
        )
        for report in reports
    ]
