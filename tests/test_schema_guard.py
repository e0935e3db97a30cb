from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy.exc import NoSuchTableError

from app.services.schema_guard import (
    EXPECTED_ALEMBIC_REVISION,
    REQUIRED_ENUM_VALUES,
    REQUIRED_TABLE_COLUMNS,
    verify_runtime_schema,
)


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(self, *, columns_by_table: dict[str, set[str]], enums: list[dict[str, object]]):
        self._columns_by_table = columns_by_table
        self._enums = enums

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        if table_name not in self._columns_by_table:
            raise NoSuchTableError(table_name)
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


def _complete_columns() -> dict[str, set[str]]:
    return {table: set(columns) | {"created_at"} for table, columns in REQUIRED_TABLE_COLUMNS.items()}


def _complete_enums() -> list[dict[str, object]]:
    return [
        {"name": "attendance_day_status", "labels": ["pending", "working", "completed"]},
        {"name": "employee_role", "labels": ["EMPLOYEE", "ADMIN"]},
        {"name": "audit_actor_type", "labels": ["EMPLOYEE", "ADMIN", "SYSTEM"]},
        {"name": "weekly_report_status", "labels": ["draft", "submitted"]},
    ]


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(columns_by_table=_complete_columns(), enums=_complete_enums())
        fake_engine = _FakeEngine(EXPECTED_ALEMBIC_REVISION)

        with patch("app.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_columns(self) -> None:
        columns = _complete_columns()
        columns["attendance_days"].discard("break_periods")
        columns["monthly_summaries"].discard("overtime_minutes")
        fake_inspector = _FakeInspector(
            columns_by_table=columns,
            enums=[
                {"name": "attendance_day_status", "labels": ["pending", "working"]},
                {"name": "employee_role", "labels": ["EMPLOYEE", "ADMIN"]},
            ],
        )
        fake_engine = _FakeEngine("")

        with patch("app.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:attendance_days:break_periods", result.issues)
        self.assertIn("MISSING_COLUMNS:monthly_summaries:overtime_minutes", result.issues)
        self.assertIn("MISSING_ENUM_VALUES:attendance_day_status:completed", result.issues)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_verify_runtime_schema_reports_unreadable_table(self) -> None:
        columns = _complete_columns()
        del columns["attendance_recompute_jobs"]
        fake_inspector = _FakeInspector(columns_by_table=columns, enums=_complete_enums())

        with patch("app.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(EXPECTED_ALEMBIC_REVISION))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertEqual(result.issues, ["TABLE_UNREADABLE:attendance_recompute_jobs:NoSuchTableError"])

    def test_missing_enum_type_is_only_a_warning(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table=_complete_columns(),
            enums=[item for item in _complete_enums() if item["name"] != "attendance_day_status"],
        )

        with patch("app.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(EXPECTED_ALEMBIC_REVISION))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.warnings, ["ENUM_NOT_FOUND:attendance_day_status"])

    def test_unexpected_alembic_revision_is_a_warning(self) -> None:
        fake_inspector = _FakeInspector(columns_by_table=_complete_columns(), enums=_complete_enums())

        with patch("app.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0002_future"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.warnings, ["ALEMBIC_REVISION_MISMATCH:0002_future"])


class RequiredSchemaTests(unittest.TestCase):
    def test_required_columns_follow_the_models(self) -> None:
        self.assertIn("audit_logs", REQUIRED_TABLE_COLUMNS)
        self.assertIn("weekly_reports", REQUIRED_TABLE_COLUMNS)
        self.assertIn("break_periods", REQUIRED_TABLE_COLUMNS["attendance_days"])
        self.assertEqual(REQUIRED_TABLE_COLUMNS["alembic_version"], {"version_num"})

    def test_required_enum_labels_use_stored_values(self) -> None:
        self.assertEqual(REQUIRED_ENUM_VALUES["attendance_day_status"], {"pending", "working", "completed"})
        self.assertEqual(REQUIRED_ENUM_VALUES["employee_role"], {"EMPLOYEE", "ADMIN"})
        self.assertEqual(REQUIRED_ENUM_VALUES["audit_actor_type"], {"EMPLOYEE", "ADMIN", "SYSTEM"})
        self.assertEqual(REQUIRED_ENUM_VALUES["weekly_report_status"], {"draft", "submitted"})


if __name__ == "__main__":
    unittest.main()
