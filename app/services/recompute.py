from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import SessionLocal
from app.models import (
    SUPPRESS_RECOMPUTE_TRIGGER,
    AttendanceDay,
    AttendanceRecomputeJob,
    AuditActorType,
    MonthlySummary,
    SummaryRebuildRun,
)
from app.services.attendance_calc import calculate_day_totals
from app.services.monthly import rebuild_monthly_summaries, rebuild_monthly_summary
from app.services.time_utils import minutes_to_time, now_local, time_token_to_minutes, year_month_key
from app.settings import get_settings, get_standard_daily_minutes

logger = logging.getLogger("app.recompute")

MAX_RECOMPUTE_ATTEMPTS = 5
DEFAULT_NIGHTLY_REBUILD_LOCAL_TIME = time(3, 0)


def _normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)
    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)
    return ts_utc.astimezone(timezone.utc)


@contextmanager
def suppress_recompute_trigger(session: Session) -> Iterator[Session]:
    previous = session.info.get(SUPPRESS_RECOMPUTE_TRIGGER, False)
    session.info[SUPPRESS_RECOMPUTE_TRIGGER] = True
    try:
        yield session
    finally:
        session.info[SUPPRESS_RECOMPUTE_TRIGGER] = previous


def handle_attendance_day_written(db: Session, *, employee_id: int, work_date: date) -> MonthlySummary:
    """Server-side re-derivation after any write to one day row.

    Independent of whichever caller performed the write: status and totals are
    recomputed from the stored clock/break fields and written back only if they
    differ, then the owning month is rebuilt. A deleted row only rebuilds the month.
    """
    with suppress_recompute_trigger(db):
        day = db.scalar(
            select(AttendanceDay).where(
                AttendanceDay.employee_id == employee_id,
                AttendanceDay.work_date == work_date,
            )
        )
        if day is not None:
            totals = calculate_day_totals(
                clock_in=day.clock_in_at,
                clock_out=day.clock_out_at,
                break_minutes=day.break_minutes,
                break_periods=day.break_periods,
                threshold=get_standard_daily_minutes(),
            )
            changed = (
                day.status != totals.status
                or day.total_minutes != totals.total_minutes
                or day.overtime_minutes != totals.overtime_minutes
            )
            if changed:
                logger.info(
                    "attendance_day_totals_corrected",
                    extra={
                        "employee_id": employee_id,
                        "work_date": work_date.isoformat(),
                        "stored_total_minutes": day.total_minutes,
                        "total_minutes": totals.total_minutes,
                        "stored_status": day.status.value if day.status else None,
                        "status": totals.status.value,
                    },
                )
                day.status = totals.status
                day.total_minutes = totals.total_minutes
                day.overtime_minutes = totals.overtime_minutes
                if totals.total_minutes is not None:
                    day.break_minutes = totals.effective_break_minutes
                db.commit()

        return rebuild_monthly_summary(db, employee_id=employee_id, year_month=year_month_key(work_date))


def _claim_due_pending_jobs(
    session: Session,
    *,
    now_utc: datetime,
    limit: int,
) -> list[AttendanceRecomputeJob]:
    stmt = (
        select(AttendanceRecomputeJob)
        .where(
            AttendanceRecomputeJob.status == "PENDING",
            AttendanceRecomputeJob.scheduled_at_utc <= now_utc,
        )
        .order_by(AttendanceRecomputeJob.scheduled_at_utc.asc(), AttendanceRecomputeJob.id.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    jobs = list(session.scalars(stmt).all())
    for job in jobs:
        job.status = "RUNNING"
    session.commit()
    return jobs


def _mark_jobs_done(session: Session, *, job_ids: list[int]) -> list[AttendanceRecomputeJob]:
    done: list[AttendanceRecomputeJob] = []
    for job_id in job_ids:
        job = session.get(AttendanceRecomputeJob, job_id)
        if job is None:
            continue
        job.status = "DONE"
        job.last_error = None
        done.append(job)
    session.commit()
    return done


def _mark_jobs_failure(
    session: Session,
    *,
    job_ids: list[int],
    error: Exception,
    now_utc: datetime,
) -> list[AttendanceRecomputeJob]:
    failed: list[AttendanceRecomputeJob] = []
    for job_id in job_ids:
        job = session.get(AttendanceRecomputeJob, job_id)
        if job is None:
            continue
        next_attempts = (job.attempts or 0) + 1
        job.attempts = next_attempts
        job.last_error = str(error)[:4000]
        if next_attempts < MAX_RECOMPUTE_ATTEMPTS:
            job.status = "PENDING"
            job.scheduled_at_utc = now_utc + timedelta(minutes=2**next_attempts)
        else:
            job.status = "FAILED"
        failed.append(job)
    session.commit()
    return failed


def process_pending_recompute_jobs(
    limit: int | None = None,
    *,
    now_utc: datetime | None = None,
    db: Session | None = None,
) -> list[AttendanceRecomputeJob]:
    if db is None:
        with SessionLocal() as managed_db:
            return process_pending_recompute_jobs(limit, now_utc=now_utc, db=managed_db)

    session = db
    reference_utc = _normalize_ts(now_utc)
    batch_size = max(1, limit if limit is not None else int(get_settings().recompute_batch_size))

    claimed_jobs = _claim_due_pending_jobs(session, now_utc=reference_utc, limit=batch_size)
    if not claimed_jobs:
        return []

    # Several writes to the same day collapse into one recompute.
    grouped: dict[tuple[int, date], list[int]] = {}
    for job in claimed_jobs:
        grouped.setdefault((job.employee_id, job.work_date), []).append(job.id)

    processed: list[AttendanceRecomputeJob] = []
    for (employee_id, work_date), job_ids in grouped.items():
        try:
            handle_attendance_day_written(session, employee_id=employee_id, work_date=work_date)
        except Exception as exc:
            session.rollback()
            logger.exception(
                "attendance_recompute_failed",
                extra={"employee_id": employee_id, "work_date": work_date.isoformat(), "job_ids": job_ids},
            )
            processed.extend(
                _mark_jobs_failure(session, job_ids=job_ids, error=exc, now_utc=reference_utc)
            )
            continue
        processed.extend(_mark_jobs_done(session, job_ids=job_ids))

    logger.info(
        "attendance_recompute_batch_processed",
        extra={"claimed_jobs": len(claimed_jobs), "distinct_days": len(grouped)},
    )
    return processed


def list_recompute_jobs(
    db: Session,
    *,
    status: str | None = None,
    limit: int = 100,
) -> list[AttendanceRecomputeJob]:
    stmt = select(AttendanceRecomputeJob)
    if status:
        stmt = stmt.where(AttendanceRecomputeJob.status == status.strip().upper())
    stmt = stmt.order_by(AttendanceRecomputeJob.id.desc()).limit(max(1, min(limit, 1000)))
    return list(db.scalars(stmt).all())


def run_nightly_summary_rebuild(db: Session, *, year_month: str) -> list[MonthlySummary]:
    """Rebuild every active employee's month unconditionally."""
    return rebuild_monthly_summaries(db, year_month=year_month)


def _nightly_rebuild_local_time() -> time:
    minutes = time_token_to_minutes((get_settings().nightly_rebuild_local_time or "").strip())
    if minutes is None:
        return DEFAULT_NIGHTLY_REBUILD_LOCAL_TIME
    return minutes_to_time(minutes)


def schedule_nightly_summary_rebuild(
    now_local_value: datetime | None = None,
    *,
    db: Session | None = None,
) -> list[MonthlySummary]:
    if db is None:
        with SessionLocal() as managed_db:
            return schedule_nightly_summary_rebuild(now_local_value, db=managed_db)

    current = now_local_value or now_local()
    if current.time() < _nightly_rebuild_local_time():
        return []

    run_date = current.date()
    if db.scalar(select(SummaryRebuildRun.id).where(SummaryRebuildRun.run_date == run_date)) is not None:
        return []

    year_month = year_month_key(run_date)
    run = SummaryRebuildRun(
        run_date=run_date,
        year_month=year_month,
        employee_count=0,
        started_at_utc=datetime.now(timezone.utc),
    )
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Another worker claimed today's run first.
        db.rollback()
        return []

    try:
        summaries = run_nightly_summary_rebuild(db, year_month=year_month)
    except Exception:
        db.rollback()
        # Release today's claim so the next tick retries the rebuild.
        db.delete(run)
        db.commit()
        logger.warning(
            "nightly_summary_rebuild_released",
            extra={"run_date": run_date.isoformat(), "year_month": year_month},
        )
        raise

    run.employee_count = len(summaries)
    run.finished_at_utc = datetime.now(timezone.utc)
    db.commit()

    log_audit(
        db,
        actor_type=AuditActorType.SYSTEM,
        actor_id="nightly_summary_rebuild",
        action="MONTHLY_SUMMARIES_REBUILT",
        success=True,
        entity_type="summary_rebuild_run",
        entity_id=str(run.id),
        details={"year_month": year_month, "employee_count": len(summaries)},
    )
    return summaries
