from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models import PaymentType, SummaryStatus


class ProjectBreakdownRead(BaseModel):
    project_id: int
    project_name: str
    days_worked: int
    total_hours: float
    ot_hours: float


class MonthlySummaryStaffRead(BaseModel):
    id: int
    employee_id: int
    month: int
    year: int
    total_working_days: int
    total_worked_hours: Decimal
    total_ot_hours: Decimal
    approved_leaves: Decimal
    absent_days: int
    project_breakdown: list[ProjectBreakdownRead] = Field(default_factory=list)
    status: SummaryStatus
    staff_signature: str | None = None
    staff_signed_at: datetime | None = None
    staff_signed_by: str | None = None
    admin_signature: str | None = None
    admin_approved_at: datetime | None = None
    admin_approved_by: str | None = None
    admin_remarks: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MonthlySummaryRead(MonthlySummaryStaffRead):
    payment_type: PaymentType | None = None
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    invoice_number: str | None = None
    created_by: str | None = None


class MonthlySummaryGenerateRequest(BaseModel):
    employee_id: int = Field(ge=1)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1)
    tax_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class MonthlySummaryGenerateAllRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1)
    tax_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    employee_ids: list[int] | None = None


class MonthlySummarySignRequest(BaseModel):
    signature: str = Field(min_length=1)


class MonthlySummaryApproveRequest(BaseModel):
    signature: str = Field(min_length=1)
    remarks: str | None = Field(default=None, max_length=2000)


class MonthlySummaryRejectRequest(BaseModel):
    remarks: str | None = Field(default=None, max_length=2000)


class MonthlySummaryReopenRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class MonthlySummaryBulkApproveRequest(BaseModel):
    summary_ids: list[int] = Field(min_length=1)
    signature: str = Field(min_length=1)
    remarks: str | None = Field(default=None, max_length=2000)


class BatchItemRead(BaseModel):
    employee_id: int | None = None
    summary_id: int | None = None
    status: str | None = None
    invoice_number: str | None = None
    reason: str | None = None
    code: str | None = None

    model_config = ConfigDict(from_attributes=True)


class GenerateBatchRead(BaseModel):
    month: int
    year: int
    succeeded: list[BatchItemRead] = Field(default_factory=list)
    failed: list[BatchItemRead] = Field(default_factory=list)
    skipped: list[BatchItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ApproveBatchRead(BaseModel):
    approved: list[BatchItemRead] = Field(default_factory=list)
    skipped: list[BatchItemRead] = Field(default_factory=list)
    failed: list[BatchItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
