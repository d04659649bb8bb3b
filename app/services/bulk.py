from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.audit import NO_REQUEST, RequestMeta, audit_summary_action
from app.errors import AlreadyFinal, SummaryError, ValidationError
from app.models import Employee, SummaryStatus
from app.security import ActorContext
from app.services import monthly_summaries, summary_store
from app.services.monthly import AggregationEngine, validate_period
from app.settings import get_bulk_concurrency

logger = logging.getLogger("app.bulk")

Outcome = Literal["succeeded", "failed", "skipped"]
INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


@dataclass(frozen=True)
class BatchItem:
    employee_id: int | None = None
    summary_id: int | None = None
    status: str | None = None
    invoice_number: str | None = None
    reason: str | None = None
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class GenerateBatchResult:
    month: int
    year: int
    succeeded: list[BatchItem] = field(default_factory=list)
    failed: list[BatchItem] = field(default_factory=list)
    skipped: list[BatchItem] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {"succeeded": len(self.succeeded), "failed": len(self.failed), "skipped": len(self.skipped)}


@dataclass
class ApproveBatchResult:
    approved: list[BatchItem] = field(default_factory=list)
    skipped: list[BatchItem] = field(default_factory=list)
    failed: list[BatchItem] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {"approved": len(self.approved), "skipped": len(self.skipped), "failed": len(self.failed)}


def _unique(values: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


class BulkOrchestrator:
    """Runs generation or approval over many items with a bounded worker pool.

    Each item gets its own session and exactly one attempt; every error is
    turned into a batch entry so one bad employee never sinks the batch.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        concurrency: int | None = None,
        engine_factory: Callable[[Session], AggregationEngine] | None = None,
    ):
        self.session_factory = session_factory
        self.concurrency = max(1, concurrency if concurrency is not None else get_bulk_concurrency())
        self.engine_factory = engine_factory

    async def _run_bounded(self, items: list[int], worker: Callable[[int], tuple[Outcome, BatchItem]]) -> list[tuple[Outcome, BatchItem]]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(item: int) -> tuple[Outcome, BatchItem]:
            async with semaphore:
                return await asyncio.to_thread(worker, item)

        return list(await asyncio.gather(*(_one(item) for item in items)))

    def _active_employee_ids(self) -> list[int]:
        with self.session_factory() as db:
            return list(
                db.scalars(select(Employee.id).where(Employee.is_active.is_(True)).order_by(Employee.id.asc())).all()
            )

    def _generate_one(
        self,
        employee_id: int,
        *,
        month: int,
        year: int,
        actor: ActorContext,
        tax_percentage: Decimal | float | str | None,
    ) -> tuple[Outcome, BatchItem]:
        with self.session_factory() as db:
            engine = self.engine_factory(db) if self.engine_factory is not None else None
            try:
                summary = monthly_summaries.generate_summary(
                    db,
                    employee_id,
                    month,
                    year,
                    actor,
                    tax_percentage,
                    engine=engine,
                )
            except AlreadyFinal as exc:
                return "skipped", BatchItem(employee_id=employee_id, reason=exc.message, code=exc.code)
            except SummaryError as exc:
                logger.warning(
                    "bulk_generate_item_failed",
                    extra={"employee_id": employee_id, "month": month, "year": year, "code": exc.code},
                )
                return "failed", BatchItem(employee_id=employee_id, reason=exc.message, code=exc.code)
            except Exception as exc:
                db.rollback()
                logger.exception(
                    "bulk_generate_item_error",
                    extra={"employee_id": employee_id, "month": month, "year": year},
                )
                return "failed", BatchItem(employee_id=employee_id, reason=str(exc) or type(exc).__name__, code=INTERNAL_ERROR_CODE)

            return "succeeded", BatchItem(
                employee_id=employee_id,
                summary_id=summary.id,
                status=summary.status.value,
            )

    async def bulk_generate(
        self,
        month: int,
        year: int,
        actor: ActorContext,
        *,
        tax_percentage: Decimal | float | str | None = None,
        employee_ids: Iterable[int] | None = None,
        meta: RequestMeta = NO_REQUEST,
    ) -> GenerateBatchResult:
        validate_period(month, year)
        targets = _unique(employee_ids) if employee_ids is not None else await asyncio.to_thread(self._active_employee_ids)

        def _worker(employee_id: int) -> tuple[Outcome, BatchItem]:
            return self._generate_one(
                employee_id,
                month=month,
                year=year,
                actor=actor,
                tax_percentage=tax_percentage,
            )

        result = GenerateBatchResult(month=month, year=year)
        for outcome, item in await self._run_bounded(targets, _worker):
            getattr(result, outcome).append(item)

        logger.info(
            "bulk_generate_complete",
            extra={"month": month, "year": year, "concurrency": self.concurrency, **result.counts()},
        )
        await asyncio.to_thread(
            self._audit_batch,
            actor,
            "SUMMARY_BULK_GENERATED",
            {"month": month, "year": year, **result.counts()},
            meta,
        )
        return result

    def _approve_one(
        self,
        summary_id: int,
        *,
        actor: ActorContext,
        remarks: str | None,
        signature: str | None,
    ) -> tuple[Outcome, BatchItem]:
        with self.session_factory() as db:
            try:
                summary = summary_store.get_summary(db, summary_id)
                if summary is None:
                    return "failed", BatchItem(
                        summary_id=summary_id,
                        reason=f"Monthly summary {summary_id} not found.",
                        code="NOT_FOUND",
                    )
                if summary.status != SummaryStatus.SIGNED_BY_STAFF:
                    return "skipped", BatchItem(
                        summary_id=summary_id,
                        employee_id=summary.employee_id,
                        status=summary.status.value,
                        reason=f"Summary is {summary.status.value}, not SIGNED_BY_STAFF.",
                    )
                approved = monthly_summaries.admin_decide_summary(
                    db,
                    summary_id,
                    actor,
                    "approve",
                    remarks=remarks,
                    signature=signature,
                )
            except SummaryError as exc:
                logger.warning(
                    "bulk_approve_item_failed",
                    extra={"summary_id": summary_id, "code": exc.code},
                )
                return "failed", BatchItem(summary_id=summary_id, reason=exc.message, code=exc.code)
            except Exception as exc:
                db.rollback()
                logger.exception("bulk_approve_item_error", extra={"summary_id": summary_id})
                return "failed", BatchItem(summary_id=summary_id, reason=str(exc) or type(exc).__name__, code=INTERNAL_ERROR_CODE)

            return "succeeded", BatchItem(
                summary_id=approved.id,
                employee_id=approved.employee_id,
                status=approved.status.value,
                invoice_number=approved.invoice_number,
            )

    async def bulk_approve(
        self,
        summary_ids: Iterable[int],
        actor: ActorContext,
        *,
        remarks: str | None = None,
        signature: str | None = None,
        meta: RequestMeta = NO_REQUEST,
    ) -> ApproveBatchResult:
        if not signature or not signature.strip():
            raise ValidationError("Admin signature is required for bulk approval.")
        targets = _unique(summary_ids)

        def _worker(summary_id: int) -> tuple[Outcome, BatchItem]:
            return self._approve_one(summary_id, actor=actor, remarks=remarks, signature=signature)

        result = ApproveBatchResult()
        for outcome, item in await self._run_bounded(targets, _worker):
            if outcome == "succeeded":
                result.approved.append(item)
            else:
                getattr(result, outcome).append(item)

        logger.info("bulk_approve_complete", extra={"concurrency": self.concurrency, **result.counts()})
        await asyncio.to_thread(
            self._audit_batch,
            actor,
            "SUMMARY_BULK_APPROVED",
            {"summary_ids": targets, **result.counts()},
            meta,
        )
        return result

    def _audit_batch(self, actor: ActorContext, action: str, details: dict[str, Any], meta: RequestMeta) -> None:
        with self.session_factory() as db:
            audit_summary_action(db, actor=actor, action=action, summary_id=None, details=details, meta=meta)
