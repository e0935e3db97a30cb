from __future__ import annotations

import unittest
from datetime import datetime
from types import SimpleNamespace

from app.models import AttendanceDayStatus
from app.services.attendance_calc import (
    calculate_daily_minutes,
    calculate_day_totals,
    calculate_deductible_break_minutes,
    calculate_overtime_minutes,
    calculate_realtime_totals,
    calculate_span_minutes,
    derive_day_status,
    resolve_break_minutes,
    summarize_month,
)


def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2024, 6, day, hour, minute)


class DayTotalsTests(unittest.TestCase):
    def test_flat_break_full_day(self) -> None:
        totals = calculate_day_totals(clock_in=_at(9), clock_out=_at(18), break_minutes=60, break_periods=[])
        self.assertEqual(totals.status, AttendanceDayStatus.COMPLETED)
        self.assertEqual(totals.effective_break_minutes, 60)
        self.assertEqual(totals.total_minutes, 480)
        self.assertEqual(totals.overtime_minutes, 0)

    def test_break_period_with_overtime(self) -> None:
        totals = calculate_day_totals(
            clock_in=_at(9),
            clock_out=_at(19, 30),
            break_minutes=None,
            break_periods=[{"start": "12:00", "end": "13:00"}],
        )
        self.assertEqual(totals.total_minutes, 570)
        self.assertEqual(totals.overtime_minutes, 90)

    def test_clock_in_only_is_working_without_totals(self) -> None:
        totals = calculate_day_totals(
            clock_in=_at(9),
            clock_out=None,
            break_minutes=None,
            break_periods=[{"start": "12:00", "end": "12:45"}],
        )
        self.assertEqual(totals.status, AttendanceDayStatus.WORKING)
        self.assertIsNone(totals.total_minutes)
        self.assertIsNone(totals.overtime_minutes)
        self.assertEqual(totals.effective_break_minutes, 45)

    def test_nothing_recorded_is_pending(self) -> None:
        totals = calculate_day_totals(clock_in=None, clock_out=None, break_minutes=30, break_periods=None)
        self.assertEqual(totals.status, AttendanceDayStatus.PENDING)
        self.assertIsNone(totals.total_minutes)
        self.assertEqual(totals.effective_break_minutes, 30)

    def test_overlapping_periods_are_summed(self) -> None:
        totals = calculate_day_totals(
            clock_in=_at(9),
            clock_out=_at(18),
            break_minutes=None,
            break_periods=[{"start": "09:30", "end": "10:30"}, {"start": "10:00", "end": "11:00"}],
        )
        self.assertEqual(totals.effective_break_minutes, 120)
        self.assertEqual(totals.total_minutes, 420)

    def test_custom_threshold(self) -> None:
        totals = calculate_day_totals(
            clock_in=_at(9),
            clock_out=_at(17),
            break_minutes=0,
            break_periods=[],
            threshold=420,
        )
        self.assertEqual(totals.overtime_minutes, 60)


class DeductibleBreakTests(unittest.TestCase):
    def test_break_starting_at_clock_in_counts_fully(self) -> None:
        deducted = calculate_deductible_break_minutes(_at(12), _at(18), None, [{"start": "12:00", "end": "12:30"}])
        self.assertEqual(deducted, 30)

    def test_break_outside_span_counts_nothing(self) -> None:
        deducted = calculate_deductible_break_minutes(
            _at(13),
            _at(18),
            None,
            [{"start": "12:00", "end": "13:00"}, {"start": "18:00", "end": "18:30"}],
        )
        self.assertEqual(deducted, 0)

    def test_partial_overlap_is_clipped(self) -> None:
        deducted = calculate_deductible_break_minutes(_at(12, 30), _at(18), None, [{"start": "12:00", "end": "13:00"}])
        self.assertEqual(deducted, 30)

    def test_periods_win_over_flat_minutes(self) -> None:
        deducted = calculate_deductible_break_minutes(_at(9), _at(18), 90, [{"start": "12:00", "end": "12:45"}])
        self.assertEqual(deducted, 45)

    def test_flat_minutes_clamped_to_span(self) -> None:
        totals = calculate_day_totals(clock_in=_at(9), clock_out=_at(10), break_minutes=120, break_periods=[])
        self.assertEqual(totals.effective_break_minutes, 60)
        self.assertEqual(totals.total_minutes, 0)
        self.assertEqual(totals.overtime_minutes, 0)

    def test_missing_clock_time_returns_nominal(self) -> None:
        self.assertEqual(
            calculate_deductible_break_minutes(_at(9), None, None, [{"start": "12:00", "end": "13:00"}]),
            60,
        )
        self.assertEqual(calculate_deductible_break_minutes(None, None, 15, None), 15)

    def test_invalid_flat_minutes_become_zero(self) -> None:
        for raw in (None, "abc", -10, float("nan")):
            with self.subTest(raw=raw):
                self.assertEqual(calculate_deductible_break_minutes(_at(9), _at(18), raw, []), 0)

    def test_deduction_stays_within_span(self) -> None:
        schedules = [
            [],
            [{"start": "08:00", "end": "20:00"}],
            [{"start": "09:00", "end": "12:00"}, {"start": "10:00", "end": "13:00"}, {"start": "11:00", "end": "14:00"}],
        ]
        spans = [(_at(9), _at(10)), (_at(9), _at(18)), (_at(11), _at(11))]
        for periods in schedules:
            for clock_in, clock_out in spans:
                with self.subTest(periods=periods, clock_in=clock_in, clock_out=clock_out):
                    span = int((clock_out - clock_in).total_seconds() // 60)
                    deducted = calculate_deductible_break_minutes(clock_in, clock_out, 600, periods)
                    self.assertGreaterEqual(deducted, 0)
                    self.assertLessEqual(deducted, span)


class SmallRuleTests(unittest.TestCase):
    def test_resolve_break_minutes_prefers_flat_value(self) -> None:
        self.assertEqual(resolve_break_minutes(30, [{"start": "12:00", "end": "13:00"}]), 30)
        self.assertEqual(resolve_break_minutes(None, [{"start": "12:00", "end": "13:00"}]), 60)
        self.assertEqual(resolve_break_minutes("bad", None), 0)

    def test_span_minutes(self) -> None:
        self.assertEqual(calculate_span_minutes(_at(9), _at(17, 45)), 525)
        self.assertEqual(calculate_span_minutes(_at(9), _at(8)), 0)
        self.assertIsNone(calculate_span_minutes(_at(9), None))

    def test_daily_minutes_never_negative(self) -> None:
        self.assertEqual(calculate_daily_minutes(_at(9), _at(10), 90), 0)
        self.assertEqual(calculate_daily_minutes(_at(9), None, 0), 0)
        self.assertEqual(calculate_daily_minutes(_at(9), _at(9), 0), 0)

    def test_overtime_is_monotonic(self) -> None:
        previous = 0
        for total in range(0, 900, 15):
            with self.subTest(total=total):
                overtime = calculate_overtime_minutes(total)
                self.assertGreaterEqual(overtime, previous)
                self.assertGreaterEqual(overtime, 0)
                previous = overtime
        self.assertEqual(calculate_overtime_minutes(None), 0)
        self.assertEqual(calculate_overtime_minutes(540), 60)

    def test_derive_day_status(self) -> None:
        self.assertEqual(derive_day_status(None, None), AttendanceDayStatus.PENDING)
        self.assertEqual(derive_day_status(_at(9), None), AttendanceDayStatus.WORKING)
        self.assertEqual(derive_day_status(_at(9), _at(18)), AttendanceDayStatus.COMPLETED)


class RealtimeTotalsTests(unittest.TestCase):
    def test_realtime_totals_use_now(self) -> None:
        totals = calculate_realtime_totals(
            _at(9),
            None,
            [{"start": "12:00", "end": "13:00"}],
            now=_at(19),
        )
        self.assertEqual(totals.work_minutes, 540)
        self.assertEqual(totals.overtime_minutes, 60)

    def test_realtime_before_break_ignores_it(self) -> None:
        totals = calculate_realtime_totals(_at(9), 0, [{"start": "12:00", "end": "13:00"}], now=_at(11))
        self.assertEqual(totals.work_minutes, 120)

    def test_realtime_without_clock_in_is_zero(self) -> None:
        totals = calculate_realtime_totals(None, 60, None, now=_at(11))
        self.assertEqual((totals.work_minutes, totals.overtime_minutes), (0, 0))


class SummarizeMonthTests(unittest.TestCase):
    def test_only_days_with_totals_count(self) -> None:
        days = [
            SimpleNamespace(total_minutes=480, overtime_minutes=0),
            SimpleNamespace(total_minutes=570, overtime_minutes=90),
            SimpleNamespace(total_minutes=None, overtime_minutes=None),
        ]
        totals = summarize_month(days)
        self.assertEqual(totals.total_minutes, 1050)
        self.assertEqual(totals.overtime_minutes, 90)
        self.assertEqual(totals.completed_days, 2)

    def test_order_does_not_matter(self) -> None:
        days = [SimpleNamespace(total_minutes=value, overtime_minutes=max(value - 480, 0)) for value in (300, 510, 600)]
        self.assertEqual(summarize_month(days), summarize_month(list(reversed(days))))

    def test_empty_month(self) -> None:
        totals = summarize_month([])
        self.assertEqual((totals.total_minutes, totals.overtime_minutes, totals.completed_days), (0, 0, 0))


if __name__ == "__main__":
    unittest.main()
