from __future__ import annotations

import unittest
from datetime import date, datetime

from app.errors import ApiError
from app.models import AttendanceDay, AttendanceDayStatus
from app.services.monthly import (
    _apply_monthly_summary,
    get_monthly_summary,
    list_month_days,
    list_monthly_summaries,
    list_range_days,
    rebuild_monthly_summaries,
    rebuild_monthly_summary,
)
from app.services.recompute import suppress_recompute_trigger

from sqlite_db import add_employee, create_test_session_factory


def _completed_day(employee_id: int, work_date: date, total: int, overtime: int) -> AttendanceDay:
    return AttendanceDay(
        employee_id=employee_id,
        work_date=work_date,
        clock_in_at=datetime.combine(work_date, datetime.min.time()).replace(hour=9),
        clock_out_at=datetime.combine(work_date, datetime.min.time()).replace(hour=18),
        break_minutes=60,
        break_periods=[],
        work_description="",
        total_minutes=total,
        overtime_minutes=overtime,
        status=AttendanceDayStatus.COMPLETED,
    )


class MonthlySummaryServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = create_test_session_factory()
        self.db = self.session_factory()
        self.employee = add_employee(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _seed(self, days: list[AttendanceDay]) -> None:
        with suppress_recompute_trigger(self.db):
            self.db.add_all(days)
            self.db.commit()

    def test_rebuild_sums_only_days_of_the_month(self) -> None:
        self._seed(
            [
                _completed_day(self.employee.id, date(2024, 6, 3), 480, 0),
                _completed_day(self.employee.id, date(2024, 6, 4), 570, 90),
                AttendanceDay(
                    employee_id=self.employee.id,
                    work_date=date(2024, 6, 5),
                    clock_in_at=datetime(2024, 6, 5, 9, 0),
                    break_periods=[],
                    status=AttendanceDayStatus.WORKING,
                ),
                _completed_day(self.employee.id, date(2024, 7, 1), 600, 120),
            ]
        )

        summary = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")

        self.assertEqual(summary.total_minutes, 1050)
        self.assertEqual(summary.overtime_minutes, 90)

    def test_rebuild_is_idempotent(self) -> None:
        self._seed([_completed_day(self.employee.id, date(2024, 6, 3), 500, 20)])

        first = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")
        second = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")

        self.assertEqual(first.id, second.id)
        self.assertEqual((second.total_minutes, second.overtime_minutes), (500, 20))
        self.assertEqual(len(list_monthly_summaries(self.db, year_month="2024-06")), 1)

    def test_overlapping_rebuilds_of_a_new_month_share_one_row(self) -> None:
        self._seed([_completed_day(self.employee.id, date(2024, 6, 3), 510, 30)])
        request_db = self.session_factory()
        worker_db = self.session_factory()
        try:
            pending = _apply_monthly_summary(request_db, employee_id=self.employee.id, year_month="2024-06")
            rebuilt = rebuild_monthly_summary(worker_db, employee_id=self.employee.id, year_month="2024-06")
            request_db.commit()
        finally:
            request_db.close()
            worker_db.close()

        self.assertEqual(pending.id, rebuilt.id)
        stored = list_monthly_summaries(self.db, year_month="2024-06")
        self.assertEqual(len(stored), 1)
        self.assertEqual((stored[0].total_minutes, stored[0].overtime_minutes), (510, 30))

    def test_rebuild_overwrites_stale_summary_loaded_in_session(self) -> None:
        self._seed([_completed_day(self.employee.id, date(2024, 6, 3), 480, 0)])
        stale = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")
        self._seed([_completed_day(self.employee.id, date(2024, 6, 4), 540, 60)])

        fresh = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")

        self.assertIs(stale, fresh)
        self.assertEqual((fresh.total_minutes, fresh.overtime_minutes), (1020, 60))

    def test_insertion_order_does_not_change_result(self) -> None:
        other = add_employee(self.db, "Kenji Sato")
        values = [(date(2024, 6, 3), 480, 0), (date(2024, 6, 4), 540, 60), (date(2024, 6, 5), 300, 0)]
        self._seed([_completed_day(self.employee.id, *item) for item in values])
        self._seed([_completed_day(other.id, *item) for item in reversed(values)])

        mine = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-06")
        theirs = rebuild_monthly_summary(self.db, employee_id=other.id, year_month="2024-06")

        self.assertEqual((mine.total_minutes, mine.overtime_minutes), (theirs.total_minutes, theirs.overtime_minutes))

    def test_empty_month_produces_zero_summary(self) -> None:
        summary = rebuild_monthly_summary(self.db, employee_id=self.employee.id, year_month="2024-02")
        self.assertEqual((summary.total_minutes, summary.overtime_minutes), (0, 0))

    def test_bulk_rebuild_targets_active_employees(self) -> None:
        add_employee(self.db, "Former Staff", is_active=False)
        second = add_employee(self.db, "Kenji Sato")
        self._seed([_completed_day(second.id, date(2024, 6, 3), 450, 0)])

        summaries = rebuild_monthly_summaries(self.db, year_month="2024-06")

        self.assertEqual(sorted(summary.employee_id for summary in summaries), [self.employee.id, second.id])
        self.assertEqual(get_monthly_summary(self.db, employee_id=second.id, year_month="2024-06").total_minutes, 450)

    def test_bulk_rebuild_with_explicit_employee_ids(self) -> None:
        second = add_employee(self.db, "Kenji Sato")
        summaries = rebuild_monthly_summaries(self.db, year_month="2024-06", employee_ids=[second.id])
        self.assertEqual([summary.employee_id for summary in summaries], [second.id])

    def test_invalid_year_month_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            rebuild_monthly_summaries(self.db, year_month="2024/06")
        self.assertEqual(ctx.exception.code, "INVALID_YEAR_MONTH")

    def test_range_and_month_listing(self) -> None:
        self._seed(
            [
                _completed_day(self.employee.id, date(2024, 5, 31), 480, 0),
                _completed_day(self.employee.id, date(2024, 6, 2), 480, 0),
                _completed_day(self.employee.id, date(2024, 6, 1), 480, 0),
            ]
        )

        month_days = list_month_days(self.db, employee_id=self.employee.id, year_month="2024-06")
        range_days = list_range_days(
            self.db,
            employee_id=self.employee.id,
            start_date=date(2024, 5, 31),
            end_date=date(2024, 6, 1),
        )

        self.assertEqual([day.work_date for day in month_days], [date(2024, 6, 1), date(2024, 6, 2)])
        self.assertEqual([day.work_date for day in range_days], [date(2024, 5, 31), date(2024, 6, 1)])


if __name__ == "__main__":
    unittest.main()
