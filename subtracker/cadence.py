from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterator, List

from subtracker.calendar_dates import DateOutOfRange, add_days, add_months, add_years

logger = logging.getLogger(__name__)

WEEKLY_DAYS = 7
BIWEEKLY_DAYS = 14
MAX_PREVIEW_OCCURRENCES = 500


class UnrecognizedCadence(ValueError):
    """Raised when a billing cycle label does not name a supported cadence."""


class CadenceKind(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    YEARLY = "yearly"
    CUSTOM = "custom"


class CadenceUnit(str, Enum):
    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"


@dataclass(frozen=True)
class BillingCadence:
    kind: CadenceKind
    interval: int = 1
    unit: CadenceUnit | None = None

    def __post_init__(self) -> None:
        if self.kind is CadenceKind.CUSTOM:
            if isinstance(self.interval, bool) or not isinstance(self.interval, int):
                raise ValueError("Custom cadence interval must be an integer.")
            if self.interval < 1:
                raise ValueError("Custom cadence interval must be at least 1.")
            if not isinstance(self.unit, CadenceUnit):
                raise ValueError("Custom cadence unit must be days, months, or years.")
        elif self.interval != 1 or self.unit is not None:
            raise ValueError("Only custom cadences take an interval and unit.")

    @property
    def label(self) -> str:
        if self.kind is CadenceKind.CUSTOM:
            return f"custom:{self.interval}:{self.unit.value}"
        return self.kind.value

    def period(self) -> tuple[CadenceUnit, int]:
        """The unit and count one billing period advances by."""
        if self.kind is CadenceKind.CUSTOM:
            return self.unit, self.interval
        return FIXED_PERIODS[self.kind]


FIXED_PERIODS: dict[CadenceKind, tuple[CadenceUnit, int]] = {
    CadenceKind.WEEKLY: (CadenceUnit.DAYS, WEEKLY_DAYS),
    CadenceKind.BIWEEKLY: (CadenceUnit.DAYS, BIWEEKLY_DAYS),
    CadenceKind.MONTHLY: (CadenceUnit.MONTHS, 1),
    CadenceKind.QUARTERLY: (CadenceUnit.MONTHS, 3),
    CadenceKind.SEMIANNUAL: (CadenceUnit.MONTHS, 6),
    CadenceKind.YEARLY: (CadenceUnit.YEARS, 1),
}

WEEKLY = BillingCadence(CadenceKind.WEEKLY)
BIWEEKLY = BillingCadence(CadenceKind.BIWEEKLY)
MONTHLY = BillingCadence(CadenceKind.MONTHLY)
QUARTERLY = BillingCadence(CadenceKind.QUARTERLY)
SEMIANNUAL = BillingCadence(CadenceKind.SEMIANNUAL)
YEARLY = BillingCadence(CadenceKind.YEARLY)
DEFAULT_CADENCE = MONTHLY

# Keys are labels lowercased with everything but letters and digits removed.
CADENCE_ALIASES: dict[str, BillingCadence] = {
    "weekly": WEEKLY,
    "week": WEEKLY,
    "biweekly": BIWEEKLY,
    "byweekly": BIWEEKLY,
    "every2weeks": BIWEEKLY,
    "2weeks": BIWEEKLY,
    "fortnightly": BIWEEKLY,
    "monthly": MONTHLY,
    "month": MONTHLY,
    "quarterly": QUARTERLY,
    "every3months": QUARTERLY,
    "3months": QUARTERLY,
    "semiannual": SEMIANNUAL,
    "semiannually": SEMIANNUAL,
    "every6months": SEMIANNUAL,
    "6months": SEMIANNUAL,
    "yearly": YEARLY,
    "year": YEARLY,
    "annual": YEARLY,
    "annually": YEARLY,
}

_INLINE_CUSTOM = re.compile(r"custom\D*?(\d+)\W*([a-z]+)")


def custom(interval: int, unit: CadenceUnit | str) -> BillingCadence:
    if not isinstance(unit, CadenceUnit):
        resolved = _resolve_unit(unit)
        if resolved is None:
            raise ValueError(f"Unsupported custom cadence unit: {unit}")
        unit, factor = resolved
        interval = interval * factor
    return BillingCadence(CadenceKind.CUSTOM, interval, unit)


def parse_cadence(
    billing_cycle: str | None,
    interval: int | str | None = None,
    unit: str | None = None,
) -> BillingCadence:
    """Turn a persisted billing cycle label into a ``BillingCadence``.

    A missing or blank label is the documented ``monthly`` default. Anything
    else that is not a supported cadence raises ``UnrecognizedCadence``.
    """
    if billing_cycle is None or not str(billing_cycle).strip():
        return DEFAULT_CADENCE
    raw = str(billing_cycle).strip().lower()
    normalized = _normalize_label(raw)
    if "custom" in normalized:
        return _parse_custom(raw, interval, unit)
    try:
        return CADENCE_ALIASES[normalized]
    except KeyError as exc:
        raise UnrecognizedCadence(f"Unsupported billing cycle: {billing_cycle}") from exc


def coerce_cadence(
    billing_cycle: str | None,
    interval: int | str | None = None,
    unit: str | None = None,
) -> BillingCadence:
    try:
        return parse_cadence(billing_cycle, interval, unit)
    except UnrecognizedCadence as exc:
        logger.warning("Falling back to monthly cadence: %s", exc)
        return DEFAULT_CADENCE


def step_once(value: date, cadence: BillingCadence) -> date:
    unit, count = cadence.period()
    if unit is CadenceUnit.DAYS:
        return add_days(value, count)
    if unit is CadenceUnit.MONTHS:
        return add_months(value, count)
    return add_years(value, count)


def iter_occurrences(
    start: date,
    cadence: BillingCadence,
    until: date,
    limit: int = MAX_PREVIEW_OCCURRENCES,
) -> Iterator[date]:
    current = start
    emitted = 0
    while current <= until and emitted < limit:
        yield current
        emitted += 1
        try:
            current = step_once(current, cadence)
        except DateOutOfRange:
            return


def preview_schedule(start: date, cadence: BillingCadence, count: int) -> List[date]:
    if count < 1:
        raise ValueError("count must be at least 1.")
    if count > MAX_PREVIEW_OCCURRENCES:
        raise ValueError(f"count must be at most {MAX_PREVIEW_OCCURRENCES}.")
    dates = [start]
    while len(dates) < count:
        dates.append(step_once(dates[-1], cadence))
    return dates


def _parse_custom(
    raw: str,
    interval: int | str | None,
    unit: str | None,
) -> BillingCadence:
    if interval is None and unit is None:
        match = _INLINE_CUSTOM.search(raw)
        if match:
            interval, unit = match.group(1), match.group(2)

    count = _coerce_interval(interval)
    if count is None:
        raise UnrecognizedCadence(
            f"Custom billing cycle needs a positive interval, got {interval!r}."
        )
    resolved = _resolve_unit(unit)
    if resolved is None:
        raise UnrecognizedCadence(f"Unsupported custom interval unit: {unit!r}.")
    resolved_unit, factor = resolved
    return BillingCadence(CadenceKind.CUSTOM, count * factor, resolved_unit)


def _coerce_interval(value: int | str | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer() or number < 1:
        return None
    return int(number)


def _resolve_unit(value: str | None) -> tuple[CadenceUnit, int] | None:
    if not value:
        return None
    normalized = str(value).strip().lower()
    if normalized.startswith("day"):
        return CadenceUnit.DAYS, 1
    if normalized.startswith("week"):
        return CadenceUnit.DAYS, WEEKLY_DAYS
    if normalized.startswith("month"):
        return CadenceUnit.MONTHS, 1
    if normalized.startswith("year"):
        return CadenceUnit.YEARS, 1
    return None


def _normalize_label(value: str) -> str:
    return "".join(ch for ch in value if ch.isalnum())
