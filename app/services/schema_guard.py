from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


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


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "is_active"},
    "attendance_logs": {"id", "employee_id", "project_id", "check_in_ts", "check_out_ts"},
    "leaves": {"id", "employee_id", "start_date", "end_date", "number_of_days", "status"},
    "pay_rates": {"id", "employee_id", "effective_from", "payment_type", "rate"},
    "monthly_summaries": {
        "id",
        "employee_id",
        "month",
        "year",
        "status",
        "subtotal",
        "tax_percentage",
        "tax_amount",
        "total_amount",
        "invoice_number",
    },
    "audit_logs": {"id", "action", "details"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "monthly_summary_status": {"DRAFT", "SIGNED_BY_STAFF", "APPROVED", "REJECTED"},
    "payment_type": {"hourly", "daily", "monthly", "contract"},
}

# Columns whose values must be unique, enforced either by a constraint or a unique index.
REQUIRED_UNIQUE_COLUMNS: dict[str, list[set[str]]] = {
    "monthly_summaries": [{"invoice_number"}, {"employee_id", "month", "year"}],
}


def _unique_column_sets(inspector: Any, table_name: str) -> list[set[str]]:
    column_sets = [set(item.get("column_names") or []) for item in inspector.get_unique_constraints(table_name)]
    column_sets.extend(
        set(item.get("column_names") or [])
        for item in inspector.get_indexes(table_name)
        if item.get("unique")
    )
    return column_sets


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, required_sets in REQUIRED_UNIQUE_COLUMNS.items():
        try:
            present = _unique_column_sets(inspector, table_name)
        except SQLAlchemyError as exc:
            warnings.append(f"UNIQUE_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        for required in required_sets:
            if required not in present:
                issues.append(f"MISSING_UNIQUE:{table_name}:{','.join(sorted(required))}")

    try:
        enums = inspector.get_enums() or []
    except (SQLAlchemyError, NotImplementedError, AttributeError) as exc:
        # Only PostgreSQL exposes named enums.
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        enums = []

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
        if enum_name not in enum_values_by_name:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
        if missing_values:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
