from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.errors import ValidationError
from app.models import PaymentType
from app.services.monthly_calc import AggregationResult
from app.services.rates import RatePolicy
from app.settings import get_settings

MONEY_QUANT = Decimal("0.01")
_MINUTES_PER_HOUR = Decimal(60)


@dataclass(frozen=True)
class FinancialResult:
    payment_type: PaymentType | None
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def normalize_tax_percentage(value: Any) -> Decimal:
    if value is None:
        value = get_settings().default_tax_percentage
    try:
        percentage = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Invalid tax_percentage. Must be between 0 and 100.") from exc
    if not percentage.is_finite() or percentage < 0 or percentage > 100:
        raise ValidationError("Invalid tax_percentage. Must be between 0 and 100.")
    return percentage.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def raw_subtotal(aggregation: AggregationResult, policy: RatePolicy) -> Decimal:
    """Unrounded amount earned for the period under ``policy``."""
    if not policy.is_priced or policy.rate <= 0:
        return Decimal("0")

    if policy.payment_type == PaymentType.HOURLY:
        regular_hours = Decimal(aggregation.regular_minutes) / _MINUTES_PER_HOUR
        ot_hours = Decimal(aggregation.overtime_minutes) / _MINUTES_PER_HOUR
        return regular_hours * policy.rate + ot_hours * policy.ot_multiplier * policy.rate
    if policy.payment_type == PaymentType.DAILY:
        return Decimal(aggregation.total_working_days) * policy.rate
    # Monthly and contract rates are billed flat for the period.
    return policy.rate


def calculate_tax(subtotal: Decimal, tax_percentage: Decimal) -> tuple[Decimal, Decimal]:
    tax_amount = round_money(subtotal * tax_percentage / Decimal(100))
    return tax_amount, subtotal + tax_amount


def price(aggregation: AggregationResult, policy: RatePolicy, tax_percentage: Any = None) -> FinancialResult:
    percentage = normalize_tax_percentage(tax_percentage)
    subtotal = round_money(raw_subtotal(aggregation, policy))
    tax_amount, total_amount = calculate_tax(subtotal, percentage)
    return FinancialResult(
        payment_type=policy.payment_type,
        subtotal=subtotal,
        tax_percentage=percentage,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )
