from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import PayRate, PaymentType
from app.settings import (
    get_default_ot_threshold_minutes,
    get_default_working_weekdays,
    get_settings,
)


@dataclass(frozen=True, slots=True)
class RatePolicy:
    payment_type: PaymentType | None
    rate: Decimal
    ot_multiplier: Decimal
    ot_threshold_minutes: int
    working_weekdays: frozenset[int] = field(default_factory=lambda: frozenset({0, 1, 2, 3, 4}))

    @property
    def is_priced(self) -> bool:
        return self.payment_type is not None

    @classmethod
    def unpriced(cls) -> RatePolicy:
        settings = get_settings()
        return cls(
            payment_type=None,
            rate=Decimal("0"),
            ot_multiplier=settings.default_ot_multiplier,
            ot_threshold_minutes=get_default_ot_threshold_minutes(),
            working_weekdays=get_default_working_weekdays(),
        )


class RateResolver(Protocol):
    def resolve_rate(self, employee_id: int, as_of: date) -> RatePolicy: ...


def policy_from_pay_rate(row: PayRate) -> RatePolicy:
    settings = get_settings()
    ot_multiplier = row.ot_multiplier if row.ot_multiplier is not None else settings.default_ot_multiplier
    ot_threshold = (
        row.ot_threshold_minutes
        if row.ot_threshold_minutes is not None
        else get_default_ot_threshold_minutes()
    )
    if row.working_weekdays:
        weekdays = frozenset(int(item) for item in row.working_weekdays if 0 <= int(item) <= 6)
    else:
        weekdays = get_default_working_weekdays()
    return RatePolicy(
        payment_type=row.payment_type,
        rate=Decimal(str(row.rate)),
        ot_multiplier=Decimal(str(ot_multiplier)),
        ot_threshold_minutes=max(0, int(ot_threshold)),
        working_weekdays=weekdays,
    )


class SqlRateResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve_rate(self, employee_id: int, as_of: date) -> RatePolicy:
        row = self.db.scalar(
            select(PayRate)
            .where(
                PayRate.employee_id == employee_id,
                PayRate.effective_from <= as_of,
            )
            .order_by(PayRate.effective_from.desc(), PayRate.id.desc())
            .limit(1)
        )
        if row is None:
            return RatePolicy.unpriced()
        return policy_from_pay_rate(row)
