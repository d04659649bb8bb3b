"""Monthly summary workflow: generate, sign, decide, reopen.

Aggregation and pricing run outside any write; the single compare-and-set in
``summary_store`` is the atomic boundary, so a failed generation never leaves a
partial summary behind.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.audit import NO_REQUEST, RequestMeta, audit_summary_action
from app.errors import (
    AlreadyFinal,
    EmployeeNotFound,
    NotOwner,
    SummaryError,
    SummaryNotFound,
    Unauthorized,
    ValidationError,
)
from app.models import Employee, MonthlySummary, SummaryStatus
from app.security import ActorContext
from app.services import summary_store
from app.services.event_source import SqlEventSource
from app.services.monthly import AggregationEngine, validate_period
from app.services.pricing import price
from app.services.rates import SqlRateResolver
from app.services.summary_state import REGENERABLE_STATUSES, SummaryEvent, next_status

logger = logging.getLogger("app.monthly_summaries")

DECISIONS = {
    "approve": SummaryEvent.ADMIN_APPROVE,
    "reject": SummaryEvent.ADMIN_REJECT,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_engine(db: Session) -> AggregationEngine:
    return AggregationEngine(SqlEventSource(db), SqlRateResolver(db))


def _require_admin(actor: ActorContext, action: str) -> None:
    if not actor.is_admin:
        raise Unauthorized(f"Only admins can {action} monthly summaries.")


def _load(db: Session, summary_id: int) -> MonthlySummary:
    summary = summary_store.get_summary(db, summary_id)
    if summary is None:
        raise SummaryNotFound(f"Monthly summary {summary_id} not found.")
    return summary


def _require_visible(summary: MonthlySummary, actor: ActorContext) -> None:
    if actor.is_admin:
        return
    if not actor.owns(summary.employee_id):
        raise NotOwner(f"Monthly summary {summary.id} belongs to another employee.")


def _compute_values(
    db: Session,
    *,
    employee_id: int,
    month: int,
    year: int,
    tax_percentage: Any,
    engine: AggregationEngine | None,
) -> dict[str, Any]:
    engine = engine or build_engine(db)
    policy = engine.rate_policy(employee_id, month, year)
    aggregation = engine.aggregate(employee_id, month, year, policy=policy)
    financial = price(aggregation, policy, tax_percentage)
    return summary_store.generated_values(aggregation, financial)


def _log_transition(summary: MonthlySummary, *, event: SummaryEvent, previous: SummaryStatus | None, actor: ActorContext) -> None:
    logger.info(
        "summary_transition",
        extra={
            "summary_id": summary.id,
            "employee_id": summary.employee_id,
            "month": summary.month,
            "year": summary.year,
            "event": event.value,
            "from_status": previous.value if previous is not None else None,
            "to_status": summary.status.value,
            "actor_id": actor.actor_id,
        },
    )


def generate_summary(
    db: Session,
    employee_id: int,
    month: int,
    year: int,
    actor: ActorContext,
    tax_percentage: Decimal | float | str | None = None,
    *,
    engine: AggregationEngine | None = None,
    meta: RequestMeta = NO_REQUEST,
) -> MonthlySummary:
    _require_admin(actor, "generate")
    validate_period(month, year)
    if db.get(Employee, employee_id) is None:
        raise EmployeeNotFound(f"Employee {employee_id} not found.")

    existing = summary_store.get_summary_for_period(db, employee_id=employee_id, month=month, year=year)
    if existing is not None and existing.status not in REGENERABLE_STATUSES:
        raise AlreadyFinal(
            f"Monthly summary for employee {employee_id} {year}-{month:02d} is {existing.status.value}; "
            "reopen it before regenerating."
        )

    previous = existing.status if existing is not None else None
    event = SummaryEvent.GENERATE if existing is None else SummaryEvent.REGENERATE
    next_status(previous, event)

    if tax_percentage is None and existing is not None:
        tax_percentage = existing.tax_percentage
    values = _compute_values(
        db,
        employee_id=employee_id,
        month=month,
        year=year,
        tax_percentage=tax_percentage,
        engine=engine,
    )

    if existing is None:
        summary = summary_store.insert_draft(
            db,
            employee_id=employee_id,
            month=month,
            year=year,
            values=values,
            created_by=actor.actor_id,
        )
    else:
        summary = summary_store.regenerate_in_place(db, existing, values=values)

    _log_transition(summary, event=event, previous=previous, actor=actor)
    audit_summary_action(
        db,
        actor=actor,
        action="SUMMARY_GENERATED" if existing is None else "SUMMARY_REGENERATED",
        summary_id=summary.id,
        details={
            "employee_id": employee_id,
            "month": month,
            "year": year,
            "total_amount": str(summary.total_amount),
        },
        meta=meta,
    )
    return summary


def regenerate_summary(
    db: Session,
    summary_id: int,
    actor: ActorContext,
    *,
    engine: AggregationEngine | None = None,
    meta: RequestMeta = NO_REQUEST,
) -> MonthlySummary:
    summary = _load(db, summary_id)
    _require_visible(summary, actor)
    previous = summary.status
    next_status(previous, SummaryEvent.REGENERATE)

    values = _compute_values(
        db,
        employee_id=summary.employee_id,
        month=summary.month,
        year=summary.year,
        tax_percentage=summary.tax_percentage,
        engine=engine,
    )
    updated = summary_store.regenerate_in_place(db, summary, values=values)

    _log_transition(updated, event=SummaryEvent.REGENERATE, previous=previous, actor=actor)
    audit_summary_action(
        db,
        actor=actor,
        action="SUMMARY_REGENERATED",
        summary_id=updated.id,
        details={"from_status": previous.value, "total_amount": str(updated.total_amount)},
        meta=meta,
    )
    return updated


def staff_sign_summary(
    db: Session,
    summary_id: int,
    actor: ActorContext,
    signature: str | None,
    *,
    meta: RequestMeta = NO_REQUEST,
) -> MonthlySummary:
    summary = _load(db, summary_id)
    if not actor.owns(summary.employee_id):
        raise NotOwner(f"Only the owning employee can sign monthly summary {summary_id}.")
    if not signature or not signature.strip():
        raise ValidationError("Signature is required.")

    previous = summary.status
    try:
        next_status(previous, SummaryEvent.STAFF_SIGN)
        updated = summary_store.compare_and_set(
            db,
            summary.id,
            expected_status=previous,
            values={
                "status": SummaryStatus.SIGNED_BY_STAFF,
                "staff_signature": signature,
                "staff_signed_at": _utcnow(),
                "staff_signed_by": actor.actor_id,
            },
        )
    except SummaryError as exc:
        audit_summary_action(
            db,
            actor=actor,
            action="SUMMARY_SIGNED",
            summary_id=summary_id,
            success=False,
            details={"code": exc.code, "status": previous.value},
            meta=meta,
        )
        raise

    _log_transition(updated, event=SummaryEvent.STAFF_SIGN, previous=previous, actor=actor)
    audit_summary_action(db, actor=actor, action="SUMMARY_SIGNED", summary_id=updated.id, meta=meta)
    return updated


def admin_decide_summary(
    db: Session,
    summary_id: int,
    actor: ActorContext,
    decision: str,
    remarks: str | None = None,
    signature: str | None = None,
    *,
    meta: RequestMeta = NO_REQUEST,
) -> MonthlySummary:
    _require_admin(actor, "approve or reject")
    event = DECISIONS.get((decision or "").strip().lower())
    if event is None:
        raise ValidationError('Decision must be "approve" or "reject".')
    action = "SUMMARY_APPROVED" if event == SummaryEvent.ADMIN_APPROVE else "SUMMARY_REJECTED"

    summary = _load(db, summary_id)
    previous = summary.status
    cleaned_remarks = (remarks or "").strip() or None
    values: dict[str, Any] = {
        "admin_approved_at": _utcnow(),
        "admin_approved_by": actor.actor_id,
        "admin_remarks": cleaned_remarks,
    }

    try:
        next_status(previous, event)
        if event == SummaryEvent.ADMIN_APPROVE:
            if not signature or not signature.strip():
                raise ValidationError("Admin signature is required.")
            values["admin_signature"] = signature
            updated = summary_store.approve_with_invoice(db, summary, values=values)
        else:
            if cleaned_remarks is None:
                logger.warning(
                    "summary_rejected_without_remarks",
                    extra={"summary_id": summary.id, "actor_id": actor.actor_id},
                )
            values["status"] = SummaryStatus.REJECTED
            updated = summary_store.compare_and_set(
                db,
                summary.id,
                expected_status=previous,
                values=values,
            )
    except SummaryError as exc:
        audit_summary_action(
            db,
            actor=actor,
            action=action,
            summary_id=summary_id,
            success=False,
            details={"code": exc.code, "status": previous.value},
            meta=meta,
        )
        raise

    _log_transition(updated, event=event, previous=previous, actor=actor)
    audit_summary_action(
        db,
        actor=actor,
        action=action,
        summary_id=updated.id,
        details={"invoice_number": updated.invoice_number, "remarks": cleaned_remarks},
        meta=meta,
    )
    return updated


def reopen_summary(
    db: Session,
    summary_id: int,
    actor: ActorContext,
    reason: str | None,
    *,
    meta: RequestMeta = NO_REQUEST,
) -> MonthlySummary:
    if not actor.is_super_admin:
        raise Unauthorized("Only super admins can reopen monthly summaries.")
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise ValidationError("A reason is required to reopen a monthly summary.")

    summary = _load(db, summary_id)
    previous = summary.status
    target = next_status(previous, SummaryEvent.REOPEN)
    updated = summary_store.compare_and_set(
        db,
        summary.id,
        expected_status=previous,
        values={
            "status": target,
            "staff_signature": None,
            "staff_signed_at": None,
            "staff_signed_by": None,
            "admin_signature": None,
            "admin_approved_at": None,
            "admin_approved_by": None,
            "admin_remarks": cleaned_reason,
        },
    )

    _log_transition(updated, event=SummaryEvent.REOPEN, previous=previous, actor=actor)
    audit_summary_action(
        db,
        actor=actor,
        action="SUMMARY_REOPENED",
        summary_id=updated.id,
        details={"from_status": previous.value, "reason": cleaned_reason, "invoice_number": updated.invoice_number},
        meta=meta,
    )
    return updated


def get_summary(db: Session, summary_id: int, actor: ActorContext) -> MonthlySummary:
    summary = _load(db, summary_id)
    _require_visible(summary, actor)
    return summary


def list_summaries(
    db: Session,
    actor: ActorContext,
    *,
    employee_id: int | None = None,
    month: int | None = None,
    year: int | None = None,
    status: SummaryStatus | None = None,
) -> list[MonthlySummary]:
    if month is not None and not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {month!r}. Must be 1-12.")
    if not actor.is_admin:
        if employee_id is not None and not actor.owns(employee_id):
            raise NotOwner("Staff can only list their own monthly summaries.")
        employee_id = actor.employee_id
    return summary_store.list_summaries(
        db,
        employee_id=employee_id,
        month=month,
        year=year,
        status=status,
    )
