from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List

from subtracker.calendar_dates import InvalidDate, add_days, format_calendar_date, parse_calendar_date
from subtracker.renewal_projection import (
    MAX_ADVANCE_STEPS,
    AdvancementCapExceeded,
    effective_renewal,
)
from subtracker.subscriptions import TrackedSubscription

logger = logging.getLogger(__name__)

REMINDER_DAYS_BEFORE = 3


@dataclass(frozen=True)
class DueReminder:
    subscription: TrackedSubscription
    renewal_date: date
    days_until: int
    amount: Decimal
    currency: str

    @property
    def subject(self) -> str:
        return (
            f"Reminder: {self.subscription.merchant_name} renews on "
            f"{format_calendar_date(self.renewal_date)}"
        )


@dataclass
class ReminderBatch:
    today: date
    window_end: date
    days_before: int
    reminders: List[DueReminder] = field(default_factory=list)
    checked: int = 0
    skipped_already_reminded: int = 0
    skipped_invalid: int = 0


def due_reminders(
    subscriptions: Iterable[TrackedSubscription],
    today: date,
    days_before: int = REMINDER_DAYS_BEFORE,
    ignore_dedupe: bool = False,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> ReminderBatch:
    """Pick the subscriptions whose next renewal falls inside the reminder window.

    A subscription is reminded at most once per renewal date: rows whose
    ``last_reminded_renewal_date`` already equals the upcoming renewal are
    skipped unless ``ignore_dedupe`` is set. Delivery is up to the caller.
    """
    if days_before < 0:
        raise ValueError("days_before must not be negative.")
    window_end = add_days(today, days_before)
    batch = ReminderBatch(today=today, window_end=window_end, days_before=days_before)

    for subscription in subscriptions:
        if subscription.is_cancelled:
            continue
        batch.checked += 1
        try:
            renewal = effective_renewal(subscription.anchor(), today, max_steps=max_steps)
        except (InvalidDate, AdvancementCapExceeded) as exc:
            logger.warning("Cannot schedule reminder for subscription %s: %s", subscription.id, exc)
            batch.skipped_invalid += 1
            continue

        if not today <= renewal <= window_end:
            continue
        if not ignore_dedupe and _already_reminded(subscription, renewal):
            batch.skipped_already_reminded += 1
            continue

        batch.reminders.append(
            DueReminder(
                subscription=subscription,
                renewal_date=renewal,
                days_until=(renewal - today).days,
                amount=subscription.amount,
                currency=subscription.normalized_currency,
            )
        )

    batch.reminders.sort(key=lambda reminder: (reminder.renewal_date, reminder.subscription.merchant_name))
    return batch


def _already_reminded(subscription: TrackedSubscription, renewal: date) -> bool:
    if not subscription.last_reminded_renewal_date:
        return False
    try:
        last_reminded = parse_calendar_date(subscription.last_reminded_renewal_date)
    except InvalidDate:
        return False
    return last_reminded == renewal
