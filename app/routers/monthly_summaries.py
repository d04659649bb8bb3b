from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.audit import RequestMeta
from app.db import SessionLocal, get_db
from app.models import MonthlySummary, SummaryStatus
from app.schemas import (
    ApproveBatchRead,
    GenerateBatchRead,
    MonthlySummaryApproveRequest,
    MonthlySummaryBulkApproveRequest,
    MonthlySummaryGenerateAllRequest,
    MonthlySummaryGenerateRequest,
    MonthlySummaryRead,
    MonthlySummaryRejectRequest,
    MonthlySummaryReopenRequest,
    MonthlySummarySignRequest,
    MonthlySummaryStaffRead,
)
from app.security import ActorContext, require_admin, require_staff, require_super_admin
from app.services import monthly_summaries
from app.services.bulk import BulkOrchestrator

router = APIRouter(tags=["monthly-summaries"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


def get_bulk_orchestrator() -> BulkOrchestrator:
    return BulkOrchestrator(SessionLocal)


def _admin_view(summary: MonthlySummary) -> MonthlySummaryRead:
    return MonthlySummaryRead.model_validate(summary)


def _staff_view(summary: MonthlySummary) -> MonthlySummaryStaffRead:
    return MonthlySummaryStaffRead.model_validate(summary)


@router.post("/api/admin/monthly-summaries/generate", response_model=MonthlySummaryRead)
def generate_monthly_summary(
    payload: MonthlySummaryGenerateRequest,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    summary = monthly_summaries.generate_summary(
        db,
        payload.employee_id,
        payload.month,
        payload.year,
        actor,
        payload.tax_percentage,
        meta=_request_meta(request),
    )
    return _admin_view(summary)


@router.post("/api/admin/monthly-summaries/generate-all", response_model=GenerateBatchRead)
async def generate_all_monthly_summaries(
    payload: MonthlySummaryGenerateAllRequest,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    orchestrator: BulkOrchestrator = Depends(get_bulk_orchestrator),
) -> GenerateBatchRead:
    result = await orchestrator.bulk_generate(
        payload.month,
        payload.year,
        actor,
        tax_percentage=payload.tax_percentage,
        employee_ids=payload.employee_ids,
        meta=_request_meta(request),
    )
    return GenerateBatchRead.model_validate(result, from_attributes=True)


@router.post("/api/admin/monthly-summaries/bulk-approve", response_model=ApproveBatchRead)
async def bulk_approve_monthly_summaries(
    payload: MonthlySummaryBulkApproveRequest,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    orchestrator: BulkOrchestrator = Depends(get_bulk_orchestrator),
) -> ApproveBatchRead:
    result = await orchestrator.bulk_approve(
        payload.summary_ids,
        actor,
        remarks=payload.remarks,
        signature=payload.signature,
        meta=_request_meta(request),
    )
    return ApproveBatchRead.model_validate(result, from_attributes=True)


@router.get("/api/admin/monthly-summaries", response_model=list[MonthlySummaryRead])
def list_monthly_summaries(
    employee_id: int | None = None,
    month: int | None = None,
    year: int | None = None,
    status: SummaryStatus | None = None,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[MonthlySummaryRead]:
    rows = monthly_summaries.list_summaries(
        db,
        actor,
        employee_id=employee_id,
        month=month,
        year=year,
        status=status,
    )
    return [_admin_view(row) for row in rows]


@router.get("/api/admin/monthly-summaries/{summary_id}", response_model=MonthlySummaryRead)
def get_monthly_summary(
    summary_id: int,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    return _admin_view(monthly_summaries.get_summary(db, summary_id, actor))


@router.post("/api/admin/monthly-summaries/{summary_id}/regenerate", response_model=MonthlySummaryRead)
def admin_regenerate_monthly_summary(
    summary_id: int,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    summary = monthly_summaries.regenerate_summary(db, summary_id, actor, meta=_request_meta(request))
    return _admin_view(summary)


@router.post("/api/admin/monthly-summaries/{summary_id}/approve", response_model=MonthlySummaryRead)
def approve_monthly_summary(
    summary_id: int,
    payload: MonthlySummaryApproveRequest,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    summary = monthly_summaries.admin_decide_summary(
        db,
        summary_id,
        actor,
        "approve",
        remarks=payload.remarks,
        signature=payload.signature,
        meta=_request_meta(request),
    )
    return _admin_view(summary)


@router.post("/api/admin/monthly-summaries/{summary_id}/reject", response_model=MonthlySummaryRead)
def reject_monthly_summary(
    summary_id: int,
    payload: MonthlySummaryRejectRequest,
    request: Request,
    actor: ActorContext = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    summary = monthly_summaries.admin_decide_summary(
        db,
        summary_id,
        actor,
        "reject",
        remarks=payload.remarks,
        meta=_request_meta(request),
    )
    return _admin_view(summary)


@router.post("/api/admin/monthly-summaries/{summary_id}/reopen", response_model=MonthlySummaryRead)
def reopen_monthly_summary(
    summary_id: int,
    payload: MonthlySummaryReopenRequest,
    request: Request,
    actor: ActorContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
) -> MonthlySummaryRead:
    summary = monthly_summaries.reopen_summary(db, summary_id, actor, payload.reason, meta=_request_meta(request))
    return _admin_view(summary)


@router.get("/api/staff/monthly-summaries", response_model=list[MonthlySummaryStaffRead])
def list_my_monthly_summaries(
    month: int | None = None,
    year: int | None = None,
    status: SummaryStatus | None = None,
    actor: ActorContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> list[MonthlySummaryStaffRead]:
    rows = monthly_summaries.list_summaries(db, actor, month=month, year=year, status=status)
    return [_staff_view(row) for row in rows]


@router.get("/api/staff/monthly-summaries/{summary_id}", response_model=MonthlySummaryStaffRead)
def get_my_monthly_summary(
    summary_id: int,
    actor: ActorContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> MonthlySummaryStaffRead:
    return _staff_view(monthly_summaries.get_summary(db, summary_id, actor))


@router.post("/api/staff/monthly-summaries/{summary_id}/sign", response_model=MonthlySummaryStaffRead)
def sign_my_monthly_summary(
    summary_id: int,
    payload: MonthlySummarySignRequest,
    request: Request,
    actor: ActorContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> MonthlySummaryStaffRead:
    summary = monthly_summaries.staff_sign_summary(
        db,
        summary_id,
        actor,
        payload.signature,
        meta=_request_meta(request),
    )
    return _staff_view(summary)


@router.post("/api/staff/monthly-summaries/{summary_id}/regenerate", response_model=MonthlySummaryStaffRead)
def staff_regenerate_monthly_summary(
    summary_id: int,
    request: Request,
    actor: ActorContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> MonthlySummaryStaffRead:
    summary = monthly_summaries.regenerate_summary(db, summary_id, actor, meta=_request_meta(request))
    return _staff_view(summary)
