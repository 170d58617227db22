from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from subtracker.cadence import iter_occurrences
from subtracker.cadence_normalizer import ZERO, countable_amount, total_monthly, total_yearly
from subtracker.calendar_dates import InvalidDate, add_days
from subtracker.renewal_projection import (
    MAX_ADVANCE_STEPS,
    AdvancementCapExceeded,
    effective_renewal,
)
from subtracker.renewal_status import RenewalSnapshot, RenewalStatus, classify_all
from subtracker.subscriptions import TrackedSubscription

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 7
UPCOMING_LIMIT = 6
FORECAST_DAYS = 30


@dataclass(frozen=True)
class ForecastEntry:
    date: date
    amount: Decimal
    currency: str
    subscription: TrackedSubscription


@dataclass(frozen=True)
class PaymentForecast:
    range_start: date
    range_end: date
    entries: List[ForecastEntry]
    totals: Dict[str, Decimal]


@dataclass(frozen=True)
class CurrencySpend:
    currency: str
    monthly: Decimal
    yearly: Decimal
    subscription_count: int


@dataclass(frozen=True)
class SpendSummary:
    totals: List[CurrencySpend]
    active_count: int
    cancelled_count: int
    expired_count: int = 0


def upcoming_renewals(
    subscriptions: Iterable[TrackedSubscription],
    today: date,
    days: int = UPCOMING_DAYS,
    limit: int | None = UPCOMING_LIMIT,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> List[RenewalSnapshot]:
    """Non-cancelled renewals falling within the next ``days`` days, soonest first."""
    if days < 0:
        raise ValueError("days must not be negative.")
    window_end = add_days(today, days)
    snapshots = [
        snapshot
        for snapshot in classify_all(subscriptions, today, soon_days=days, max_steps=max_steps)
        if snapshot.status is not RenewalStatus.CANCELLED
        and snapshot.effective_date is not None
        and today <= snapshot.effective_date <= window_end
    ]
    snapshots.sort(key=lambda snapshot: (snapshot.effective_date, snapshot.subscription.merchant_name))
    if limit is not None:
        return snapshots[:limit]
    return snapshots


def payment_forecast(
    subscriptions: Iterable[TrackedSubscription],
    today: date,
    days: int = FORECAST_DAYS,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> PaymentForecast:
    """Every expected charge between today and ``days`` days out, with per-currency totals."""
    if days < 0:
        raise ValueError("days must not be negative.")
    window_end = add_days(today, days)
    entries: List[ForecastEntry] = []
    for subscription in subscriptions:
        if subscription.is_cancelled:
            continue
        try:
            anchor = subscription.anchor()
            first_charge = effective_renewal(anchor, today, max_steps=max_steps)
        except (InvalidDate, AdvancementCapExceeded) as exc:
            logger.warning("Skipping subscription %s in forecast: %s", subscription.id, exc)
            continue

        if first_charge < today:
            continue
        if anchor.auto_renew:
            charge_dates = list(iter_occurrences(first_charge, anchor.cadence, window_end))
        else:
            charge_dates = [first_charge] if first_charge <= window_end else []
        amount = countable_amount(subscription.amount)
        entries.extend(
            ForecastEntry(
                date=charge_date,
                amount=amount,
                currency=subscription.normalized_currency,
                subscription=subscription,
            )
            for charge_date in charge_dates
        )

    entries.sort(key=lambda entry: (entry.date, entry.subscription.merchant_name))
    totals: Dict[str, Decimal] = {}
    for entry in entries:
        totals[entry.currency] = totals.get(entry.currency, ZERO) + entry.amount
    return PaymentForecast(
        range_start=today,
        range_end=window_end,
        entries=entries,
        totals=totals,
    )


def spend_summary(subscriptions: Iterable[TrackedSubscription], today: date) -> SpendSummary:
    """Normalized monthly and yearly spend of subscriptions still being charged, per currency.

    Cancelled rows and non-renewing rows whose last renewal is before ``today``
    are counted separately and left out of the totals.
    """
    by_currency: Dict[str, List[TrackedSubscription]] = {}
    cancelled_count = 0
    expired_count = 0
    for subscription in subscriptions:
        if subscription.is_cancelled:
            cancelled_count += 1
            continue
        if _has_lapsed(subscription, today):
            expired_count += 1
            continue
        by_currency.setdefault(subscription.normalized_currency, []).append(subscription)

    totals: List[CurrencySpend] = []
    for currency in sorted(by_currency):
        members = by_currency[currency]
        amounts = [subscription.cadence_amount() for subscription in members]
        totals.append(
            CurrencySpend(
                currency=currency,
                monthly=total_monthly(amounts),
                yearly=total_yearly(amounts),
                subscription_count=len(members),
            )
        )
    return SpendSummary(
        totals=totals,
        active_count=sum(spend.subscription_count for spend in totals),
        cancelled_count=cancelled_count,
        expired_count=expired_count,
    )


def _has_lapsed(subscription: TrackedSubscription, today: date) -> bool:
    if subscription.auto_renew:
        return False
    try:
        return subscription.anchor().anchor_date < today
    except InvalidDate:
        return False
