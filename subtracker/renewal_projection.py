from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from subtracker.cadence import BillingCadence, step_once
from subtracker.calendar_dates import DateOutOfRange, InvalidDate, parse_calendar_date

MAX_ADVANCE_STEPS = 2000


@dataclass(frozen=True)
class SubscriptionAnchor:
    anchor_date: date
    cadence: BillingCadence
    cancelled: bool = False
    auto_renew: bool = True


class AdvancementCapExceeded(RuntimeError):
    """Raised when an anchor cannot be rolled forward to today within the step cap."""

    def __init__(self, anchor: SubscriptionAnchor, steps: int, reached: date) -> None:
        super().__init__(
            f"Stopped advancing {anchor.cadence.label} anchor {anchor.anchor_date.isoformat()} "
            f"after {steps} steps at {reached.isoformat()}."
        )
        self.anchor = anchor
        self.steps = steps
        self.reached = reached


class RenewalOutOfRange(AdvancementCapExceeded):
    """Raised when the next step would leave the representable date range."""

    def __str__(self) -> str:
        return (
            f"Cannot advance {self.anchor.cadence.label} anchor {self.anchor.anchor_date.isoformat()} "
            f"past {self.reached.isoformat()}: date out of range."
        )


def effective_renewal(
    anchor: SubscriptionAnchor,
    today: date,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> date:
    """Return the first renewal on or after ``today``.

    The stored anchor is never rewritten; the current due date is always
    derived from it. Cancelled and non-renewing anchors are returned as is.
    Feeding the result back in as a new anchor returns the same date.
    """
    if max_steps < 1:
        raise ValueError("max_steps must be at least 1.")
    if anchor.cancelled or not anchor.auto_renew:
        return anchor.anchor_date

    current = anchor.anchor_date
    steps = 0
    while current < today:
        if steps >= max_steps:
            raise AdvancementCapExceeded(anchor, steps, current)
        try:
            current = step_once(current, anchor.cadence)
        except DateOutOfRange as exc:
            raise RenewalOutOfRange(anchor, steps, current) from exc
        steps += 1
    return current


def effective_renewal_from_string(
    renewal_date: str | None,
    cadence: BillingCadence,
    today: date,
    cancelled: bool = False,
    auto_renew: bool = True,
    max_steps: int = MAX_ADVANCE_STEPS,
) -> date | None:
    """Like ``effective_renewal`` for a raw stored date; ``None`` when it cannot be read."""
    if renewal_date is None:
        return None
    try:
        anchor_date = parse_calendar_date(renewal_date)
    except InvalidDate:
        return None
    anchor = SubscriptionAnchor(
        anchor_date=anchor_date,
        cadence=cadence,
        cancelled=cancelled,
        auto_renew=auto_renew,
    )
    return effective_renewal(anchor, today, max_steps=max_steps)
