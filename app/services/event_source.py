"""Read-only attendance and leave feeds consumed by monthly aggregation.

Rows from ``attendance_logs`` and ``leaves`` are normalised into small frozen
records here so the aggregation code never has to look at optional ORM
columns. A span without a project gets ``UNASSIGNED_PROJECT`` instead of a
``None`` reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.models import AttendanceLog, Leave, LeaveStatus

logger = logging.getLogger("app.event_source")


@dataclass(frozen=True, slots=True)
class ProjectRef:
    project_id: int | None
    name: str

    @property
    def attributed(self) -> bool:
        return self.project_id is not None


UNASSIGNED_PROJECT = ProjectRef(project_id=None, name="Unassigned")


@dataclass(frozen=True, slots=True)
class AttendanceSpan:
    employee_id: int
    check_in: datetime
    check_out: datetime | None
    project: ProjectRef = UNASSIGNED_PROJECT
    source_id: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.check_out is not None


@dataclass(frozen=True, slots=True)
class LeaveGrant:
    employee_id: int
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveStatus = LeaveStatus.APPROVED

    @property
    def calendar_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class EventSource(Protocol):
    def list_attendance(
        self,
        employee_id: int,
        period_start: datetime,
        period_end: datetime,
    ) -> list[AttendanceSpan]: ...

    def list_approved_leave(
        self,
        employee_id: int,
        period_start: date,
        period_end: date,
    ) -> list[LeaveGrant]: ...


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def span_from_log(row: AttendanceLog) -> AttendanceSpan | None:
    check_in = _to_utc(row.check_in_ts)
    check_out = _to_utc(row.check_out_ts)
    if check_in is None:
        return None
    if check_out is not None and check_out <= check_in:
        logger.warning(
            "attendance_span_dropped",
            extra={
                "attendance_log_id": row.id,
                "employee_id": row.employee_id,
                "reason": "CHECK_OUT_NOT_AFTER_CHECK_IN",
            },
        )
        return None

    project = UNASSIGNED_PROJECT
    if row.project_id is not None:
        project_name = row.project.name if row.project is not None else f"Project {row.project_id}"
        project = ProjectRef(project_id=row.project_id, name=project_name)

    return AttendanceSpan(
        employee_id=row.employee_id,
        check_in=check_in,
        check_out=check_out,
        project=project,
        source_id=row.id,
    )


class SqlEventSource:
    """EventSource over the attendance_logs / leaves tables.

    ``period_start``/``period_end`` are UTC instants for attendance (half-open)
    and inclusive local dates for leave.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_attendance(
        self,
        employee_id: int,
        period_start: datetime,
        period_end: datetime,
    ) -> list[AttendanceSpan]:
        rows = self.db.scalars(
            select(AttendanceLog)
            .options(joinedload(AttendanceLog.project))
            .where(
                AttendanceLog.employee_id == employee_id,
                AttendanceLog.check_in_ts >= period_start,
                AttendanceLog.check_in_ts < period_end,
            )
            .order_by(AttendanceLog.check_in_ts.asc(), AttendanceLog.id.asc())
        ).all()

        spans: list[AttendanceSpan] = []
        for row in rows:
            span = span_from_log(row)
            if span is not None:
                spans.append(span)
        return spans

    def list_approved_leave(
        self,
        employee_id: int,
        period_start: date,
        period_end: date,
    ) -> list[LeaveGrant]:
        rows = self.db.scalars(
            select(Leave)
            .where(
                Leave.employee_id == employee_id,
                Leave.status == LeaveStatus.APPROVED,
                Leave.start_date <= period_end,
                Leave.end_date >= period_start,
            )
            .order_by(Leave.start_date.asc(), Leave.id.asc())
        ).all()

        return [
            LeaveGrant(
                employee_id=row.employee_id,
                start_date=row.start_date,
                end_date=row.end_date,
                days=Decimal(str(row.number_of_days)),
                status=row.status,
            )
            for row in rows
            if row.end_date >= row.start_date
        ]
