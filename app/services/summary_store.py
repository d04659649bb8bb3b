"""Persistence for monthly summaries.

Every status change is a compare-and-set ``UPDATE ... WHERE id = :id AND
status = :expected``. Zero matched rows means somebody else moved the summary
first, and the caller gets ``ConcurrentModification`` with the status that won.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConcurrentModification, SummaryNotFound
from app.models import MonthlySummary, SummaryStatus
from app.services.monthly_calc import AggregationResult
from app.services.pricing import FinancialResult
from app.settings import get_settings

logger = logging.getLogger("app.summary_store")

_SIGNATURE_RESET: dict[str, Any] = {
    "staff_signature": None,
    "staff_signed_at": None,
    "staff_signed_by": None,
    "admin_signature": None,
    "admin_approved_at": None,
    "admin_approved_by": None,
    "admin_remarks": None,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_summary(db: Session, summary_id: int) -> MonthlySummary | None:
    return db.get(MonthlySummary, summary_id, populate_existing=True)


def require_summary(db: Session, summary_id: int) -> MonthlySummary:
    summary = get_summary(db, summary_id)
    if summary is None:
        raise SummaryNotFound(f"Monthly summary {summary_id} not found.")
    return summary


def get_summary_for_period(db: Session, *, employee_id: int, month: int, year: int) -> MonthlySummary | None:
    return db.scalar(
        select(MonthlySummary)
        .where(
            MonthlySummary.employee_id == employee_id,
            MonthlySummary.month == month,
            MonthlySummary.year == year,
        )
        .execution_options(populate_existing=True)
    )


def list_summaries(
    db: Session,
    *,
    employee_id: int | None = None,
    month: int | None = None,
    year: int | None = None,
    status: SummaryStatus | None = None,
) -> list[MonthlySummary]:
    stmt = select(MonthlySummary).order_by(
        MonthlySummary.year.desc(),
        MonthlySummary.month.desc(),
        MonthlySummary.employee_id.asc(),
    )
    if employee_id is not None:
        stmt = stmt.where(MonthlySummary.employee_id == employee_id)
    if month is not None:
        stmt = stmt.where(MonthlySummary.month == month)
    if year is not None:
        stmt = stmt.where(MonthlySummary.year == year)
    if status is not None:
        stmt = stmt.where(MonthlySummary.status == status)
    return list(db.scalars(stmt).all())


def generated_values(aggregation: AggregationResult, financial: FinancialResult) -> dict[str, Any]:
    return {
        "total_working_days": aggregation.total_working_days,
        "total_worked_hours": aggregation.total_worked_hours,
        "total_ot_hours": aggregation.total_ot_hours,
        "approved_leaves": aggregation.approved_leaves,
        "absent_days": aggregation.absent_days,
        "project_breakdown": aggregation.breakdown_payload(),
        "payment_type": financial.payment_type,
        "subtotal": financial.subtotal,
        "tax_percentage": financial.tax_percentage,
        "tax_amount": financial.tax_amount,
        "total_amount": financial.total_amount,
    }


def _current_status(db: Session, summary_id: int) -> SummaryStatus | None:
    return db.scalar(select(MonthlySummary.status).where(MonthlySummary.id == summary_id))


def compare_and_set(
    db: Session,
    summary_id: int,
    *,
    expected_status: SummaryStatus,
    values: dict[str, Any],
) -> MonthlySummary:
    payload = dict(values)
    payload.setdefault("updated_at", _utcnow())
    result = db.execute(
        update(MonthlySummary)
        .where(
            MonthlySummary.id == summary_id,
            MonthlySummary.status == expected_status,
        )
        .values(**payload)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = _current_status(db, summary_id)
        if current is None:
            raise SummaryNotFound(f"Monthly summary {summary_id} not found.")
        logger.warning(
            "summary_compare_and_set_conflict",
            extra={
                "summary_id": summary_id,
                "expected_status": expected_status.value,
                "current_status": current.value,
            },
        )
        raise ConcurrentModification(
            f"Monthly summary {summary_id} was modified concurrently; it is now {current.value}.",
            current_status=current.value,
        )

    db.commit()
    return require_summary(db, summary_id)


def insert_draft(
    db: Session,
    *,
    employee_id: int,
    month: int,
    year: int,
    values: dict[str, Any],
    created_by: str | None,
) -> MonthlySummary:
    summary = MonthlySummary(
        employee_id=employee_id,
        month=month,
        year=year,
        status=SummaryStatus.DRAFT,
        created_by=created_by,
        **values,
    )
    db.add(summary)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConcurrentModification(
            f"Monthly summary for employee {employee_id} {year}-{month:02d} was created concurrently."
        ) from exc
    db.refresh(summary)
    return summary


def regenerate_in_place(
    db: Session,
    summary: MonthlySummary,
    *,
    values: dict[str, Any],
) -> MonthlySummary:
    payload = {**values, **_SIGNATURE_RESET, "status": SummaryStatus.DRAFT}
    return compare_and_set(db, summary.id, expected_status=summary.status, values=payload)


_INVOICE_SEQUENCE = re.compile(r"-(\d+)$")


def next_invoice_number(db: Session, *, month: int, year: int, prefix: str | None = None) -> str:
    invoice_prefix = f"{prefix or get_settings().invoice_prefix}-{year:04d}-{month:02d}-"
    existing = db.scalars(
        select(MonthlySummary.invoice_number).where(MonthlySummary.invoice_number.like(f"{invoice_prefix}%"))
    ).all()

    highest = 0
    for value in existing:
        match = _INVOICE_SEQUENCE.search(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{invoice_prefix}{highest + 1:04d}"


def approve_with_invoice(
    db: Session,
    summary: MonthlySummary,
    *,
    values: dict[str, Any],
    attempts: int | None = None,
) -> MonthlySummary:
    """CAS SIGNED_BY_STAFF -> APPROVED, allocating an invoice number if absent.

    A unique-index collision on the invoice number means another approval in
    the same month took the number first; allocation is retried.
    """
    max_attempts = max(1, attempts if attempts is not None else get_settings().invoice_assign_attempts)
    last_error: IntegrityError | None = None
    for attempt in range(1, max_attempts + 1):
        invoice_number = summary.invoice_number or next_invoice_number(db, month=summary.month, year=summary.year)
        payload = {**values, "status": SummaryStatus.APPROVED, "invoice_number": invoice_number}
        try:
            return compare_and_set(
                db,
                summary.id,
                expected_status=SummaryStatus.SIGNED_BY_STAFF,
                values=payload,
            )
        except IntegrityError as exc:
            db.rollback()
            last_error = exc
            logger.warning(
                "invoice_number_collision",
                extra={"summary_id": summary.id, "invoice_number": invoice_number, "attempt": attempt},
            )

    raise ConcurrentModification(
        f"Could not allocate a unique invoice number for summary {summary.id}."
    ) from last_error
