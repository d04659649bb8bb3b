from __future__ import annotations

import tempfile
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app import models  # noqa: F401
from app.db import Base
from app.models import (
    AttendanceLog,
    Employee,
    Leave,
    LeaveStatus,
    LeaveType,
    MonthlySummary,
    PayRate,
    PaymentType,
    Project,
    SummaryStatus,
)
from app.security import ActorContext
from app.services.event_source import SqlEventSource
from app.services.monthly import AggregationEngine
from app.services.rates import SqlRateResolver

SINGAPORE = ZoneInfo("Asia/Singapore")
FIXED_NOW = datetime(2026, 4, 15, 2, 0, tzinfo=timezone.utc)

ADMIN = ActorContext(subject="admin-1", role="admin")
SUPER_ADMIN = ActorContext(subject="root-admin", role="admin", is_super_admin=True)


def staff_actor(employee_id: int) -> ActorContext:
    return ActorContext(subject=f"staff-{employee_id}", role="staff", employee_id=employee_id)


def fixed_engine(db: Session) -> AggregationEngine:
    return AggregationEngine(
        SqlEventSource(db),
        SqlRateResolver(db),
        clock=lambda: FIXED_NOW,
        tz=SINGAPORE,
    )


class SqliteDatabase:
    """Throwaway file-backed SQLite database with the full schema."""

    def __init__(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        path = Path(self._tmpdir.name) / "summaries.db"
        self.engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def session(self) -> Session:
        return self.session_factory()

    def close(self) -> None:
        self.engine.dispose()
        self._tmpdir.cleanup()


def add_employee(db: Session, full_name: str, *, is_active: bool = True) -> Employee:
    employee = Employee(full_name=full_name, is_active=is_active)
    db.add(employee)
    db.commit()
    return employee


def add_project(db: Session, name: str) -> Project:
    project = Project(name=name, client_name="Harbour Front Pte Ltd")
    db.add(project)
    db.commit()
    return project


def add_pay_rate(
    db: Session,
    employee_id: int,
    *,
    payment_type: PaymentType = PaymentType.HOURLY,
    rate: str = "20.00",
    ot_multiplier: str | None = "1.5",
    effective_from: date = date(2026, 1, 1),
) -> PayRate:
    pay_rate = PayRate(
        employee_id=employee_id,
        effective_from=effective_from,
        payment_type=payment_type,
        rate=Decimal(rate),
        ot_multiplier=Decimal(ot_multiplier) if ot_multiplier is not None else None,
    )
    db.add(pay_rate)
    db.commit()
    return pay_rate


def add_shift(
    db: Session,
    employee_id: int,
    check_in: datetime,
    check_out: datetime | None,
    *,
    project_id: int | None = None,
) -> AttendanceLog:
    row = AttendanceLog(
        employee_id=employee_id,
        project_id=project_id,
        check_in_ts=check_in,
        check_out_ts=check_out,
    )
    db.add(row)
    db.commit()
    return row


def add_ten_hour_days(db: Session, employee_id: int, days: list[int], *, project_id: int | None = None) -> None:
    # 09:00-19:00 Singapore time in March 2026.
    for day in days:
        add_shift(
            db,
            employee_id,
            datetime(2026, 3, day, 1, 0, tzinfo=timezone.utc),
            datetime(2026, 3, day, 11, 0, tzinfo=timezone.utc),
            project_id=project_id,
        )


def add_leave(
    db: Session,
    employee_id: int,
    start_date: date,
    end_date: date,
    days: str,
    *,
    status: LeaveStatus = LeaveStatus.APPROVED,
) -> Leave:
    leave = Leave(
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        number_of_days=Decimal(days),
        type=LeaveType.ANNUAL,
        status=status,
    )
    db.add(leave)
    db.commit()
    return leave


def reload_summary(db: Session, summary_id: int) -> MonthlySummary:
    summary = db.get(MonthlySummary, summary_id, populate_existing=True)
    assert summary is not None
    return summary


def status_of(db: Session, summary_id: int) -> SummaryStatus:
    return reload_summary(db, summary_id).status
