#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0002_weekly_reports"
REQUIRED_TABLES = [
    "employees",
    "attendance_days",
    "monthly_summaries",
    "employee_break_schedules",
    "attendance_recompute_jobs",
    "summary_rebuild_runs",
    "weekly_reports",
    "audit_logs",
]


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})
        if missing_tables:
            return report

        orphan_days = conn.execute(
            text(
                """
                select a.id
                from attendance_days a
                left join employees e on e.id = a.employee_id
                where e.id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_day_orphan_employee",
            "fail" if orphan_days else "ok",
            {"sample_ids": [row[0] for row in orphan_days]},
        )

        inconsistent_days = conn.execute(
            text(
                """
                select id
                from attendance_days
                where (status = 'completed' and (total_minutes is null or clock_out_at is null))
                   or (status <> 'completed' and total_minutes is not null)
                   or (clock_out_at is not null and clock_in_at is null)
                   or (clock_in_at is not null and clock_out_at is not null and clock_out_at < clock_in_at)
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_day_status_consistency",
            "fail" if inconsistent_days else "ok",
            {"sample_ids": [row[0] for row in inconsistent_days]},
        )

        summary_drift = conn.execute(
            text(
                """
                select s.employee_id, s.year_month, s.total_minutes, coalesce(d.total_minutes, 0)
                from monthly_summaries s
                left join (
                    select employee_id,
                           to_char(work_date, 'YYYY-MM') as year_month,
                           sum(coalesce(total_minutes, 0)) as total_minutes,
                           sum(coalesce(overtime_minutes, 0)) as overtime_minutes
                    from attendance_days
                    where total_minutes is not null or overtime_minutes is not null
                    group by employee_id, to_char(work_date, 'YYYY-MM')
                ) d on d.employee_id = s.employee_id and d.year_month = s.year_month
                where s.total_minutes <> coalesce(d.total_minutes, 0)
                   or s.overtime_minutes <> coalesce(d.overtime_minutes, 0)
                limit 20
                """
            )
        ).fetchall()
        add(
            "monthly_summary_drift",
            "warn" if summary_drift else "ok",
            {"rows": [list(row) for row in summary_drift]},
        )

        job_counts = {
            str(row[0]): int(row[1])
            for row in conn.execute(
                text("select status, count(*) from attendance_recompute_jobs group by status")
            ).fetchall()
        }
        add(
            "recompute_job_backlog",
            "warn" if job_counts.get("FAILED") else "ok",
            {"counts": job_counts},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
