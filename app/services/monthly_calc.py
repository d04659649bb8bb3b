from __future__ import annotations

from calendar import monthrange
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Literal
from zoneinfo import ZoneInfo

from app.services.event_source import AttendanceSpan, LeaveGrant, ProjectRef

HOURS_QUANT = Decimal("0.01")
DayStatus = Literal["OK", "MISSED", "IN_PROGRESS"]


@dataclass(frozen=True)
class SpanAllocation:
    span: AttendanceSpan
    regular_minutes: int
    overtime_minutes: int


@dataclass(frozen=True)
class DayComputation:
    day_date: date
    status: DayStatus
    raw_minutes: int
    regular_minutes: int
    overtime_minutes: int
    allocations: tuple[SpanAllocation, ...] = ()


@dataclass(frozen=True)
class ProjectBreakdownEntry:
    project_id: int
    project_name: str
    days_worked: int
    regular_minutes: int
    overtime_minutes: int

    @property
    def total_hours(self) -> Decimal:
        return minutes_to_hours(self.regular_minutes)

    @property
    def ot_hours(self) -> Decimal:
        return minutes_to_hours(self.overtime_minutes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "project_name": self.project_name,
            "days_worked": self.days_worked,
            "total_hours": float(self.total_hours),
            "ot_hours": float(self.ot_hours),
        }


@dataclass(frozen=True)
class AggregationResult:
    employee_id: int
    month: int
    year: int
    total_working_days: int
    regular_minutes: int
    overtime_minutes: int
    approved_leaves: Decimal
    expected_working_days: int
    absent_days: int
    missed_days: int = 0
    in_progress_days: int = 0
    project_breakdown: list[ProjectBreakdownEntry] = field(default_factory=list)

    @property
    def raw_minutes(self) -> int:
        return self.regular_minutes + self.overtime_minutes

    @property
    def total_worked_hours(self) -> Decimal:
        return minutes_to_hours(self.regular_minutes)

    @property
    def total_ot_hours(self) -> Decimal:
        return minutes_to_hours(self.overtime_minutes)

    def breakdown_payload(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.project_breakdown]


def month_date_bounds(year: int, month: int) -> tuple[date, date]:
    days_in_month = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, days_in_month)


def minutes_to_hours(minutes: int) -> Decimal:
    # Truncate so regular + OT hours can never exceed the raw durations.
    return (Decimal(max(0, minutes)) / Decimal(60)).quantize(HOURS_QUANT, rounding=ROUND_DOWN)


def span_minutes(span: AttendanceSpan) -> int:
    if span.check_out is None:
        return 0
    return max(0, int((span.check_out - span.check_in).total_seconds() // 60))


def local_day(ts: datetime, tz: ZoneInfo) -> date:
    return ts.astimezone(tz).date()


def allocate_day_overtime(spans: list[AttendanceSpan], *, threshold_minutes: int) -> list[SpanAllocation]:
    """Split each complete span of one day into regular and OT minutes.

    Spans are walked in check-in order; the span that crosses the threshold is
    split and every later span is entirely OT.
    """
    allocations: list[SpanAllocation] = []
    consumed = 0
    safe_threshold = max(0, threshold_minutes)
    for span in sorted(spans, key=lambda item: (item.check_in, item.source_id or 0)):
        if not span.is_complete:
            continue
        minutes = span_minutes(span)
        regular = max(0, min(minutes, safe_threshold - consumed))
        overtime = minutes - regular
        consumed += minutes
        allocations.append(SpanAllocation(span=span, regular_minutes=regular, overtime_minutes=overtime))
    return allocations


def calculate_day_metrics(
    *,
    day_date: date,
    spans: list[AttendanceSpan],
    threshold_minutes: int,
    today: date,
) -> DayComputation:
    allocations = allocate_day_overtime(spans, threshold_minutes=threshold_minutes)
    if not allocations:
        status: DayStatus = "IN_PROGRESS" if day_date >= today else "MISSED"
        return DayComputation(
            day_date=day_date,
            status=status,
            raw_minutes=0,
            regular_minutes=0,
            overtime_minutes=0,
        )

    regular = sum(item.regular_minutes for item in allocations)
    overtime = sum(item.overtime_minutes for item in allocations)
    return DayComputation(
        day_date=day_date,
        status="OK",
        raw_minutes=regular + overtime,
        regular_minutes=regular,
        overtime_minutes=overtime,
        allocations=tuple(allocations),
    )


def prorate_leave_days(grant: LeaveGrant, *, period_start: date, period_end: date) -> Decimal:
    overlap_start = max(grant.start_date, period_start)
    overlap_end = min(grant.end_date, period_end)
    if overlap_end < overlap_start or grant.calendar_days <= 0:
        return Decimal("0")
    overlap_days = (overlap_end - overlap_start).days + 1
    if overlap_days >= grant.calendar_days:
        return max(Decimal("0"), grant.days)
    return max(Decimal("0"), grant.days * Decimal(overlap_days) / Decimal(grant.calendar_days))


def sum_approved_leave_days(grants: list[LeaveGrant], *, period_start: date, period_end: date) -> Decimal:
    total = sum(
        (prorate_leave_days(grant, period_start=period_start, period_end=period_end) for grant in grants),
        Decimal("0"),
    )
    return total.quantize(HOURS_QUANT, rounding=ROUND_HALF_UP)


def count_expected_working_days(
    *,
    period_start: date,
    period_end: date,
    working_weekdays: frozenset[int],
    today: date,
    worked_dates: set[date],
) -> int:
    """Policy working days of the period that have already ended.

    Today only counts once it already holds a completed span, so a shift that
    is still open never turns the day into an absence.
    """
    expected = 0
    cursor = period_start
    while cursor <= period_end:
        if cursor.weekday() in working_weekdays:
            if cursor < today or (cursor == today and cursor in worked_dates):
                expected += 1
        cursor += timedelta(days=1)
    return expected


def calculate_absent_days(*, expected_days: int, working_days: int, approved_leaves: Decimal) -> int:
    remainder = Decimal(expected_days) - Decimal(working_days) - approved_leaves
    if remainder <= 0:
        return 0
    return int(remainder.to_integral_value(rounding=ROUND_FLOOR))


def build_project_breakdown(days: list[DayComputation]) -> list[ProjectBreakdownEntry]:
    buckets: dict[ProjectRef, dict[str, Any]] = defaultdict(
        lambda: {"days": set(), "regular": 0, "overtime": 0}
    )
    for day in days:
        for allocation in day.allocations:
            project = allocation.span.project
            if not project.attributed:
                continue
            bucket = buckets[project]
            bucket["days"].add(day.day_date)
            bucket["regular"] += allocation.regular_minutes
            bucket["overtime"] += allocation.overtime_minutes

    entries = [
        ProjectBreakdownEntry(
            project_id=int(project.project_id),  # type: ignore[arg-type]
            project_name=project.name,
            days_worked=len(bucket["days"]),
            regular_minutes=int(bucket["regular"]),
            overtime_minutes=int(bucket["overtime"]),
        )
        for project, bucket in buckets.items()
    ]
    entries.sort(key=lambda item: (-(item.regular_minutes + item.overtime_minutes), item.project_id))
    return entries


def aggregate_period(
    *,
    employee_id: int,
    year: int,
    month: int,
    spans: list[AttendanceSpan],
    leave_grants: list[LeaveGrant],
    threshold_minutes: int,
    working_weekdays: frozenset[int],
    today: date,
    tz: ZoneInfo,
) -> AggregationResult:
    period_start, period_end = month_date_bounds(year, month)

    spans_by_day: dict[date, list[AttendanceSpan]] = defaultdict(list)
    for span in spans:
        day_date = local_day(span.check_in, tz)
        if period_start <= day_date <= period_end:
            spans_by_day[day_date].append(span)

    days = [
        calculate_day_metrics(
            day_date=day_date,
            spans=spans_by_day[day_date],
            threshold_minutes=threshold_minutes,
            today=today,
        )
        for day_date in sorted(spans_by_day)
    ]
    worked_dates = {day.day_date for day in days if day.status == "OK"}

    approved_leaves = sum_approved_leave_days(leave_grants, period_start=period_start, period_end=period_end)
    expected_days = count_expected_working_days(
        period_start=period_start,
        period_end=period_end,
        working_weekdays=working_weekdays,
        today=today,
        worked_dates=worked_dates,
    )
    absent_days = calculate_absent_days(
        expected_days=expected_days,
        working_days=len(worked_dates),
        approved_leaves=approved_leaves,
    )

    return AggregationResult(
        employee_id=employee_id,
        month=month,
        year=year,
        total_working_days=len(worked_dates),
        regular_minutes=sum(day.regular_minutes for day in days),
        overtime_minutes=sum(day.overtime_minutes for day in days),
        approved_leaves=approved_leaves,
        expected_working_days=expected_days,
        absent_days=absent_days,
        missed_days=sum(1 for day in days if day.status == "MISSED"),
        in_progress_days=sum(1 for day in days if day.status == "IN_PROGRESS"),
        project_breakdown=build_project_breakdown(days),
    )
