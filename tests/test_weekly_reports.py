from __future__ import annotations

import unittest
from datetime import date

from app.errors import ApiError
from app.models import WeeklyReportStatus
from app.services.weekly_reports import get_weekly_report, list_weekly_reports, save_weekly_report

from sqlite_db import add_employee, create_test_session_factory


class WeeklyReportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = create_test_session_factory()()
        self.employee = add_employee(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _save(self, start: str, end: str, **kwargs):  # type: ignore[no-untyped-def]
        kwargs.setdefault("content", "Front desk rota")
        return save_weekly_report(self.db, employee_id=self.employee.id, start_date=start, end_date=end, **kwargs)

    def test_saving_the_same_week_overwrites_one_row(self) -> None:
        first = self._save("2024-06-10", "2024-06-14", week_of_month=2)
        second = self._save("2024-06-10", "2024-06-14", content="Rota and stocktake", week_of_month=2)

        self.assertEqual(first.id, second.id)
        stored = get_weekly_report(self.db, employee_id=self.employee.id, start_date="2024-06-10", end_date="2024-06-14")
        self.assertEqual(stored.content, "Rota and stocktake")
        self.assertEqual(len(list_weekly_reports(self.db, employee_id=self.employee.id)), 1)

    def test_submit_stamps_time_and_draft_clears_it(self) -> None:
        submitted = self._save("2024-06-10", "2024-06-14", status=WeeklyReportStatus.SUBMITTED)
        self.assertIsNotNone(submitted.submitted_at_utc)

        reopened = self._save("2024-06-10", "2024-06-14", status=WeeklyReportStatus.DRAFT)
        self.assertEqual(reopened.status, WeeklyReportStatus.DRAFT)
        self.assertIsNone(reopened.submitted_at_utc)

    def test_list_is_newest_week_first_and_filters_by_status(self) -> None:
        other = add_employee(self.db, "Kenji Sato")
        self._save("2024-06-03", "2024-06-07", status=WeeklyReportStatus.SUBMITTED)
        self._save("2024-06-10", "2024-06-14")
        save_weekly_report(
            self.db,
            employee_id=other.id,
            start_date=date(2024, 6, 10),
            end_date=date(2024, 6, 14),
            content="Deliveries",
            status=WeeklyReportStatus.SUBMITTED,
        )

        everything = list_weekly_reports(self.db)
        submitted = list_weekly_reports(self.db, status=WeeklyReportStatus.SUBMITTED)

        self.assertEqual(
            [(report.employee_id, report.start_date) for report in everything],
            [(self.employee.id, date(2024, 6, 10)), (other.id, date(2024, 6, 10)), (self.employee.id, date(2024, 6, 3))],
        )
        self.assertEqual([report.employee_id for report in submitted], [other.id, self.employee.id])

    def test_week_range_is_validated(self) -> None:
        for start, end in (("2024-06-14", "2024-06-10"), ("2024-06-01", "2024-06-08")):
            with self.subTest(start=start, end=end):
                with self.assertRaises(ApiError) as ctx:
                    self._save(start, end)
                self.assertEqual(ctx.exception.code, "INVALID_WEEK_RANGE")

        with self.assertRaises(ApiError) as ctx:
            self._save("2024-06-31", "2024-07-02")
        self.assertEqual(ctx.exception.code, "INVALID_WORK_DATE")

    def test_unknown_employee_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            save_weekly_report(self.db, employee_id=9999, start_date="2024-06-10", end_date="2024-06-14", content="")
        self.assertEqual(ctx.exception.code, "EMPLOYEE_NOT_FOUND")
        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == "__main__":
    unittest.main()
