from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Enum, MetaData, inspect, text
from sqlalchemy.engine import Engine

import app.models  # noqa: F401  registers the tables on Base.metadata
from app.db import Base

EXPECTED_ALEMBIC_REVISION = "0002_weekly_reports"


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def _table_columns_from_metadata(metadata: MetaData) -> dict[str, set[str]]:
    required = {table.name: {column.name for column in table.columns} for table in metadata.sorted_tables}
    required["alembic_version"] = {"version_num"}
    return required


def _enum_labels_from_metadata(metadata: MetaData) -> dict[str, set[str]]:
    labels: dict[str, set[str]] = {}
    for table in metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, Enum) and column.type.name:
                labels.setdefault(column.type.name, set()).update(column.type.enums)
    return labels


REQUIRED_TABLE_COLUMNS = _table_columns_from_metadata(Base.metadata)
REQUIRED_ENUM_VALUES = _enum_labels_from_metadata(Base.metadata)


@dataclass
class _Findings:
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _check_tables(inspector: Any, findings: _Findings) -> None:
    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:
            findings.issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required_columns - present)
        if missing:
            findings.issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")


def _check_enums(inspector: Any, findings: _Findings) -> None:
    try:
        enums = inspector.get_enums() or []
    except Exception as exc:  # pragma: no cover
        findings.warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return

    stored = {
        str(item.get("name")): {str(label) for label in item.get("labels") or []}
        for item in enums
        if item.get("name")
    }
    for enum_name, required_labels in REQUIRED_ENUM_VALUES.items():
        if enum_name not in stored:
            # SQLite and other backends without native enums land here.
            findings.warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required_labels - stored[enum_name])
        if missing:
            findings.issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")


def _check_alembic_revision(engine: Engine, findings: _Findings) -> None:
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except Exception as exc:  # pragma: no cover
        findings.issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return

    revision = str(row).strip() if row is not None else ""
    if not revision:
        findings.issues.append("ALEMBIC_VERSION_EMPTY")
    elif revision != EXPECTED_ALEMBIC_REVISION:
        findings.warnings.append(f"ALEMBIC_REVISION_MISMATCH:{revision}")


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Compare the live database with the ORM metadata before serving traffic."""
    checked_at_utc = datetime.now(timezone.utc)
    findings = _Findings()
    inspector = inspect(engine)

    _check_tables(inspector, findings)
    _check_enums(inspector, findings)
    _check_alembic_revision(engine, findings)

    return SchemaGuardResult(
        ok=not findings.issues,
        checked_at_utc=checked_at_utc,
        issues=findings.issues,
        warnings=findings.warnings,
    )
