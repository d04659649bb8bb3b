#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0003_summary_financials"


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
        report["checks"].append({"name": name, "status": status, "details": details})

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

        if "monthly_summaries" not in tables:
            add("monthly_summaries_table", "fail", {"reason": "TABLE_MISSING"})
            return report

        duplicate_invoices = conn.execute(
            text(
                """
                select invoice_number, count(*)
                from monthly_summaries
                where invoice_number is not null
                group by invoice_number
                having count(*) > 1
                """
            )
        ).fetchall()
        add(
            "duplicate_invoice_number",
            "fail" if duplicate_invoices else "ok",
            {"rows": [list(row) for row in duplicate_invoices]},
        )

        total_mismatch = conn.execute(
            text(
                """
                select id
                from monthly_summaries
                where total_amount <> subtotal + tax_amount
                limit 20
                """
            )
        ).fetchall()
        add(
            "total_amount_mismatch",
            "fail" if total_mismatch else "ok",
            {"sample_ids": [row[0] for row in total_mismatch]},
        )

        approved_without_invoice = conn.execute(
            text(
                """
                select id
                from monthly_summaries
                where status = 'APPROVED' and invoice_number is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "approved_without_invoice",
            "fail" if approved_without_invoice else "ok",
            {"sample_ids": [row[0] for row in approved_without_invoice]},
        )

        negative_metrics = conn.execute(
            text(
                """
                select id
                from monthly_summaries
                where total_working_days < 0
                   or total_worked_hours < 0
                   or total_ot_hours < 0
                   or approved_leaves < 0
                   or absent_days < 0
                   or subtotal < 0
                limit 20
                """
            )
        ).fetchall()
        add(
            "negative_summary_metrics",
            "fail" if negative_metrics else "ok",
            {"sample_ids": [row[0] for row in negative_metrics]},
        )

        orphan_summaries = conn.execute(
            text(
                """
                select s.id
                from monthly_summaries s
                left join employees e on e.id = s.employee_id
                where e.id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "summary_orphan_employee",
            "fail" if orphan_summaries else "ok",
            {"sample_ids": [row[0] for row in orphan_summaries]},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
