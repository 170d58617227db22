from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from subtracker.cadence import BillingCadence, coerce_cadence
from subtracker.cadence_normalizer import MonetaryCadenceAmount
from subtracker.calendar_dates import InvalidDate, parse_calendar_date
from subtracker.renewal_projection import SubscriptionAnchor

CANCELLED_STATUS = "cancelled"
DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class TrackedSubscription:
    """A stored subscription row as the data layer hands it over.

    Date and cadence fields stay raw strings here; ``anchor`` and ``cadence``
    are the single place they are parsed.
    """

    merchant_name: str
    amount: Decimal
    renewal_date: str | None
    billing_cycle: str | None = "monthly"
    id: str | None = None
    plan_name: str | None = None
    currency: str = DEFAULT_CURRENCY
    custom_interval_value: int | str | None = None
    custom_interval_unit: str | None = None
    status: str = "active"
    cancelled_at: str | None = None
    auto_renew: bool = True
    last_reminded_renewal_date: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return (self.status or "").strip().lower() == CANCELLED_STATUS or bool(
            self.cancelled_at
        )

    def cadence(self) -> BillingCadence:
        return coerce_cadence(
            self.billing_cycle,
            self.custom_interval_value,
            self.custom_interval_unit,
        )

    def anchor(self) -> SubscriptionAnchor:
        if self.renewal_date is None:
            raise InvalidDate("Renewal date is missing.")
        return SubscriptionAnchor(
            anchor_date=parse_calendar_date(self.renewal_date),
            cadence=self.cadence(),
            cancelled=self.is_cancelled,
            auto_renew=self.auto_renew,
        )

    def cadence_amount(self) -> MonetaryCadenceAmount:
        return MonetaryCadenceAmount(amount=self.amount, cadence=self.cadence())

    @property
    def normalized_currency(self) -> str:
        return (self.currency or DEFAULT_CURRENCY).strip().upper() or DEFAULT_CURRENCY
