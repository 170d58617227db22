from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable

from subtracker.calendar_dates import InvalidDate, days_between
from subtracker.renewal_projection import (
    MAX_ADVANCE_STEPS,
    AdvancementCapExceeded,
    effective_renewal,
)
from subtracker.subscriptions import TrackedSubscription

logger = logging.getLogger(__name__)

RENEWS_SOON_DAYS = 7


class RenewalStatus(str, Enum):
    CANCELLED = "cancelled"
    INVALID = "invalid"
    NEEDS_REVIEW = "needs_review"
    EXPIRED = "expired"
    RENEWS_SOON = "renews_soon"
    ACTIVE = "active"


@dataclass(frozen=True)
class RenewalSnapshot:
    subscription: TrackedSubscription
    status: RenewalStatus
    effective_date: date | None
    days_until: int | None


def classify(
    subscription: TrackedSubscription,
    today: date,
    soon_days: int = RENEWS_SOON_DAYS,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> RenewalSnapshot:
    if soon_days < 0:
        raise ValueError("soon_days must not be negative.")
    try:
        anchor = subscription.anchor()
    except InvalidDate as exc:
        if subscription.is_cancelled:
            return RenewalSnapshot(subscription, RenewalStatus.CANCELLED, None, None)
        logger.warning("Subscription %s has an unreadable renewal date: %s", subscription.id, exc)
        return RenewalSnapshot(subscription, RenewalStatus.INVALID, None, None)

    try:
        effective = effective_renewal(anchor, today, max_steps=max_steps)
    except AdvancementCapExceeded as exc:
        logger.warning("Subscription %s needs review: %s", subscription.id, exc)
        return RenewalSnapshot(subscription, RenewalStatus.NEEDS_REVIEW, None, None)

    days_until = days_between(today, effective)
    if anchor.cancelled:
        status = RenewalStatus.CANCELLED
    elif days_until < 0:
        status = RenewalStatus.EXPIRED
    elif days_until <= soon_days:
        status = RenewalStatus.RENEWS_SOON
    else:
        status = RenewalStatus.ACTIVE
    return RenewalSnapshot(subscription, status, effective, days_until)


def classify_all(
    subscriptions: Iterable[TrackedSubscription],
    today: date,
    soon_days: int = RENEWS_SOON_DAYS,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> list[RenewalSnapshot]:
    return [
        classify(subscription, today, soon_days=soon_days, max_steps=max_steps)
        for subscription in subscriptions
    ]


def count_by_status(snapshots: Iterable[RenewalSnapshot]) -> Dict[RenewalStatus, int]:
    counts = Counter(snapshot.status for snapshot in snapshots)
    return {status: counts.get(status, 0) for status in RenewalStatus}
