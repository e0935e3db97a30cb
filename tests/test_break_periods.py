from __future__ import annotations

import unittest
from types import SimpleNamespace

from app.errors import ApiError
from app.services.break_periods import (
    MAX_BREAK_SLOTS,
    BreakPeriod,
    nominal_break_minutes,
    normalize_break_periods,
    serialize_break_periods,
    validate_break_periods,
)


class NormalizeBreakPeriodsTests(unittest.TestCase):
    def test_drops_malformed_and_sorts(self) -> None:
        raw = [
            {"start": "15:00", "end": "15:15"},
            {"start": " 12:00 ", "end": "13:00"},
            {"start": "13:00", "end": "12:00"},
            {"start": "10:00", "end": "10:00"},
            {"start": "25:00", "end": "26:00"},
            {"start": "10:00"},
            None,
        ]
        periods = normalize_break_periods(raw)
        self.assertEqual(
            periods,
            [BreakPeriod(start="12:00", end="13:00"), BreakPeriod(start="15:00", end="15:15")],
        )

    def test_caps_at_max_slots_after_sorting(self) -> None:
        raw = [{"start": f"{hour:02d}:00", "end": f"{hour:02d}:10"} for hour in range(17, 9, -1)]
        periods = normalize_break_periods(raw)
        self.assertEqual(len(periods), MAX_BREAK_SLOTS)
        self.assertEqual([period.start for period in periods], ["10:00", "11:00", "12:00", "13:00", "14:00"])

    def test_equal_starts_keep_input_order(self) -> None:
        raw = [{"start": "12:00", "end": "12:30"}, {"start": "12:00", "end": "12:15"}]
        self.assertEqual([period.end for period in normalize_break_periods(raw)], ["12:30", "12:15"])

    def test_non_sequence_input_is_empty(self) -> None:
        for raw in (None, "12:00-13:00", b"", {"start": "12:00", "end": "13:00"}, 42):
            with self.subTest(raw=raw):
                self.assertEqual(normalize_break_periods(raw), [])

    def test_accepts_objects_with_attributes(self) -> None:
        raw = [SimpleNamespace(start="12:00", end="12:45")]
        self.assertEqual(nominal_break_minutes(normalize_break_periods(raw)), 45)

    def test_normalization_is_idempotent(self) -> None:
        raw = [{"start": "15:00", "end": "15:30"}, {"start": "09:00", "end": "08:00"}, {"start": "12:00", "end": "13:00"}]
        once = normalize_break_periods(raw)
        twice = normalize_break_periods(serialize_break_periods(once))
        self.assertEqual(once, twice)


class ValidateBreakPeriodsTests(unittest.TestCase):
    def test_rejects_too_many(self) -> None:
        raw = [{"start": f"{hour:02d}:00", "end": f"{hour:02d}:10"} for hour in range(10, 16)]
        with self.assertRaises(ApiError) as ctx:
            validate_break_periods(raw)
        self.assertEqual(ctx.exception.code, "TOO_MANY_BREAK_PERIODS")

    def test_rejects_bad_token(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            validate_break_periods([{"start": "12:00", "end": "24:00"}])
        self.assertEqual(ctx.exception.code, "INVALID_TIME_TOKEN")

    def test_rejects_end_not_after_start(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            validate_break_periods([{"start": "13:00", "end": "13:00"}])
        self.assertEqual(ctx.exception.code, "INVALID_BREAK_PERIOD")

    def test_valid_input_is_normalized(self) -> None:
        periods = validate_break_periods([{"start": "15:00", "end": "15:15"}, {"start": "12:00", "end": "13:00"}])
        self.assertEqual(serialize_break_periods(periods), [
            {"start": "12:00", "end": "13:00"},
            {"start": "15:00", "end": "15:15"},
        ])
        self.assertEqual(nominal_break_minutes(periods), 75)


if __name__ == "__main__":
    unittest.main()
