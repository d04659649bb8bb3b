from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base

JsonType = JSON().with_variant(JSONB(), "postgresql")


class LeaveStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class LeaveType(str, enum.Enum):
    ANNUAL = "ANNUAL"
    SICK = "SICK"
    UNPAID = "UNPAID"
    OTHER = "OTHER"


class PaymentType(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"
    CONTRACT = "contract"


class SummaryStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SIGNED_BY_STAFF = "SIGNED_BY_STAFF"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    SYSTEM = "SYSTEM"


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    attendance_logs: Mapped[list[AttendanceLog]] = relationship(back_populates="employee")
    leaves: Mapped[list[Leave]] = relationship(back_populates="employee")
    pay_rates: Mapped[list[PayRate]] = relationship(back_populates="employee")
    monthly_summaries: Mapped[list[MonthlySummary]] = relationship(back_populates="employee")


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    attendance_logs: Mapped[list[AttendanceLog]] = relationship(back_populates="project")


class AttendanceLog(Base):
    __tablename__ = "attendance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[int | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )
    check_in_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    check_out_ts: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="attendance_logs")
    project: Mapped[Project | None] = relationship(back_populates="attendance_logs")


class Leave(Base):
    __tablename__ = "leaves"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    number_of_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    type: Mapped[LeaveType] = mapped_column(
        Enum(LeaveType, name="leave_type"),
        nullable=False,
        default=LeaveType.ANNUAL,
    )
    status: Mapped[LeaveStatus] = mapped_column(
        Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="leaves")


class PayRate(Base):
    __tablename__ = "pay_rates"
    __table_args__ = (
        UniqueConstraint("employee_id", "effective_from", name="uq_pay_rates_employee_effective_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(
        Enum(PaymentType, name="payment_type", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    ot_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    ot_threshold_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # 0=Monday .. 6=Sunday; NULL falls back to DEFAULT_WORKING_WEEKDAYS
    working_weekdays: Mapped[list[int] | None] = mapped_column(JsonType, nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="pay_rates")


class MonthlySummary(Base):
    __tablename__ = "monthly_summaries"
    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="uq_monthly_summaries_employee_period"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_summaries_month"),
        CheckConstraint("tax_percentage >= 0 AND tax_percentage <= 100", name="ck_monthly_summaries_tax_percentage"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    total_working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_worked_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_ot_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    approved_leaves: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    absent_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    project_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, nullable=False, default=list)

    status: Mapped[SummaryStatus] = mapped_column(
        Enum(SummaryStatus, name="monthly_summary_status"),
        nullable=False,
        default=SummaryStatus.DRAFT,
        index=True,
    )
    staff_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    staff_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    staff_signed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_type: Mapped[PaymentType | None] = mapped_column(
        Enum(PaymentType, name="payment_type", values_callable=lambda items: [item.value for item in items]),
        nullable=True,
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    invoice_number: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True, index=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="monthly_summaries")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JsonType,
        nullable=False,
        default=dict,
    )
