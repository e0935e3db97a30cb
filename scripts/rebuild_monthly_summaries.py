#!/usr/bin/env python
from __future__ import annotations

import argparse
import json

from app.db import SessionLocal
from app.logging_utils import setup_json_logging
from app.services.monthly import rebuild_monthly_summaries
from app.services.time_utils import now_local, year_month_key


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rebuild stored monthly summaries from attendance days.")
    parser.add_argument(
        "year_month",
        nargs="?",
        help="Month to rebuild, YYYY-MM (defaults to the current local month).",
    )
    parser.add_argument(
        "--employee-id",
        type=int,
        action="append",
        dest="employee_ids",
        help="Limit the rebuild to this employee; may be repeated.",
    )
    return parser


def run(argv: list[str] | None = None) -> dict:
    args = build_parser().parse_args(argv)
    year_month = args.year_month or year_month_key(now_local().date())
    with SessionLocal() as db:
        summaries = rebuild_monthly_summaries(db, year_month=year_month, employee_ids=args.employee_ids)
        return {
            "year_month": year_month,
            "rebuilt_count": len(summaries),
            "summaries": [
                {
                    "employee_id": summary.employee_id,
                    "total_minutes": summary.total_minutes,
                    "overtime_minutes": summary.overtime_minutes,
                }
                for summary in summaries
            ],
        }


if __name__ == "__main__":
    setup_json_logging()
    print(json.dumps(run(), ensure_ascii=False, indent=2))
