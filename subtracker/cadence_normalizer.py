from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from subtracker.cadence import BillingCadence, CadenceKind, CadenceUnit

ZERO = Decimal("0")
MONTHS_PER_YEAR = Decimal("12")
AVERAGE_DAYS_PER_MONTH = Decimal("30.437")

# Monthly equivalent of one charge, as numerator / denominator.
MONTHLY_FACTORS: dict[CadenceKind, tuple[Decimal, Decimal]] = {
    CadenceKind.WEEKLY: (Decimal("52"), MONTHS_PER_YEAR),
    CadenceKind.BIWEEKLY: (Decimal("26"), MONTHS_PER_YEAR),
    CadenceKind.MONTHLY: (Decimal("1"), Decimal("1")),
    CadenceKind.QUARTERLY: (Decimal("1"), Decimal("3")),
    CadenceKind.SEMIANNUAL: (Decimal("1"), Decimal("6")),
    CadenceKind.YEARLY: (Decimal("1"), MONTHS_PER_YEAR),
}


@dataclass(frozen=True)
class MonetaryCadenceAmount:
    amount: Decimal
    cadence: BillingCadence


def monthly_factor(cadence: BillingCadence) -> tuple[Decimal, Decimal]:
    if cadence.kind is not CadenceKind.CUSTOM:
        return MONTHLY_FACTORS[cadence.kind]
    interval = Decimal(cadence.interval)
    if cadence.unit is CadenceUnit.DAYS:
        return AVERAGE_DAYS_PER_MONTH, interval
    if cadence.unit is CadenceUnit.MONTHS:
        return Decimal("1"), interval
    return Decimal("1"), MONTHS_PER_YEAR * interval


def to_monthly(amount: Decimal | int | float | str, cadence: BillingCadence) -> Decimal:
    """Monthly equivalent of a charge billed on ``cadence``.

    Amounts that are not finite positive numbers count as zero.
    """
    coerced = _coerce_amount(amount)
    if coerced is None:
        return ZERO
    numerator, denominator = monthly_factor(cadence)
    return coerced * numerator / denominator


def to_yearly(amount: Decimal | int | float | str, cadence: BillingCadence) -> Decimal:
    return to_monthly(amount, cadence) * MONTHS_PER_YEAR


def countable_amount(amount: Decimal | int | float | str) -> Decimal:
    coerced = _coerce_amount(amount)
    return ZERO if coerced is None else coerced


def total_monthly(items: Iterable[MonetaryCadenceAmount]) -> Decimal:
    total = ZERO
    for item in items:
        total += to_monthly(item.amount, item.cadence)
    return total


def total_yearly(items: Iterable[MonetaryCadenceAmount]) -> Decimal:
    return total_monthly(items) * MONTHS_PER_YEAR


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal | None:
    if isinstance(amount, bool):
        return None
    if isinstance(amount, Decimal):
        coerced = amount
    else:
        try:
            coerced = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            return None
    if not coerced.is_finite() or coerced <= ZERO:
        return None
    return coerced
