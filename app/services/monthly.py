from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.errors import NoAttendanceData, ValidationError
from app.services.event_source import EventSource
from app.services.monthly_calc import AggregationResult, aggregate_period, month_date_bounds
from app.services.rates import RatePolicy, RateResolver
from app.settings import get_settings

logger = logging.getLogger("app.monthly")

DEFAULT_TIMEZONE = "Asia/Singapore"


@lru_cache
def _attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("attendance_timezone_invalid", extra={"attendance_timezone": raw_name})
        return ZoneInfo(DEFAULT_TIMEZONE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_period(month: int, year: int) -> None:
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {month!r}. Must be 1-12.")
    if not isinstance(year, int) or isinstance(year, bool) or year < 1:
        raise ValidationError(f"Invalid year {year!r}. Must be a positive integer.")


def local_month_to_utc_bounds(year: int, month: int, tz: ZoneInfo) -> tuple[datetime, datetime]:
    start_date, end_date = month_date_bounds(year, month)
    start_local = datetime.combine(start_date, datetime.min.time(), tzinfo=tz)
    end_local = datetime.combine(end_date + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


class AggregationEngine:
    def __init__(
        self,
        events: EventSource,
        rates: RateResolver,
        *,
        clock: Callable[[], datetime] = _utcnow,
        tz: ZoneInfo | None = None,
    ):
        self.events = events
        self.rates = rates
        self.clock = clock
        self.tz = tz or _attendance_timezone()

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    def rate_policy(self, employee_id: int, month: int, year: int) -> RatePolicy:
        validate_period(month, year)
        return self.rates.resolve_rate(employee_id, date(year, month, 1))

    def aggregate(
        self,
        employee_id: int,
        month: int,
        year: int,
        *,
        policy: RatePolicy | None = None,
    ) -> AggregationResult:
        validate_period(month, year)
        if policy is None:
            policy = self.rate_policy(employee_id, month, year)

        period_start, period_end = month_date_bounds(year, month)
        utc_start, utc_end = local_month_to_utc_bounds(year, month, self.tz)
        spans = self.events.list_attendance(employee_id, utc_start, utc_end)
        grants = self.events.list_approved_leave(employee_id, period_start, period_end)

        if not spans and not grants:
            raise NoAttendanceData(
                f"No attendance or approved leave for employee {employee_id} in {year}-{month:02d}."
            )

        result = aggregate_period(
            employee_id=employee_id,
            year=year,
            month=month,
            spans=spans,
            leave_grants=grants,
            threshold_minutes=policy.ot_threshold_minutes,
            working_weekdays=policy.working_weekdays,
            today=self.today(),
            tz=self.tz,
        )
        logger.info(
            "monthly_aggregation_complete",
            extra={
                "employee_id": employee_id,
                "year": year,
                "month": month,
                "span_count": len(spans),
                "leave_grant_count": len(grants),
                "working_days": result.total_working_days,
                "regular_minutes": result.regular_minutes,
                "overtime_minutes": result.overtime_minutes,
                "absent_days": result.absent_days,
                "missed_days": result.missed_days,
                "in_progress_days": result.in_progress_days,
            },
        )
        return result
