import logging
import os
from datetime import date
from decimal import Decimal

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from subtracker.cadence import (
    MAX_PREVIEW_OCCURRENCES,
    UnrecognizedCadence,
    parse_cadence,
    preview_schedule,
)
from subtracker.calendar_dates import DateOutOfRange, InvalidDate, parse_calendar_date
from subtracker.calendar_dates import today as local_today
from subtracker.forecast import (
    FORECAST_DAYS,
    UPCOMING_DAYS,
    UPCOMING_LIMIT,
    payment_forecast,
    spend_summary,
    upcoming_renewals,
)
from subtracker.reminders import REMINDER_DAYS_BEFORE, due_reminders
from subtracker.renewal_projection import MAX_ADVANCE_STEPS
from subtracker.renewal_status import (
    RENEWS_SOON_DAYS,
    RenewalSnapshot,
    classify_all,
    count_by_status,
)
from subtracker.subscriptions import TrackedSubscription


def get_log_level() -> int:
    raw = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def get_int_setting(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= minimum else default


logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SOON_DAYS_SETTING = get_int_setting("RENEWS_SOON_DAYS", RENEWS_SOON_DAYS)
REMINDER_DAYS_SETTING = get_int_setting("REMINDER_DAYS_BEFORE", REMINDER_DAYS_BEFORE)
FORECAST_DAYS_SETTING = get_int_setting("FORECAST_DAYS", FORECAST_DAYS)
MAX_STEPS_SETTING = get_int_setting("MAX_ADVANCE_STEPS", MAX_ADVANCE_STEPS, minimum=1)
DEFAULT_TIMEZONE = os.getenv("APP_TIMEZONE") or None
CENTS = Decimal("0.01")

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def get_today(x_timezone: str | None = Header(None, alias="x-timezone")) -> date:
    try:
        return local_today(x_timezone or DEFAULT_TIMEZONE)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


class SubscriptionPayload(BaseModel):
    id: str | int | None = None
    merchant_name: str
    plan_name: str | None = None
    amount: Decimal
    currency: str = "USD"
    renewal_date: str | None = None
    billing_cycle: str | None = "monthly"
    custom_interval_value: int | None = None
    custom_interval_unit: str | None = None
    status: str = "active"
    cancelled_at: str | None = None
    auto_renew: bool = True
    last_reminded_renewal_date: str | None = None

    @classmethod
    def validate_payload(cls, payload: "SubscriptionPayload") -> "SubscriptionPayload":
        payload.merchant_name = payload.merchant_name.strip()
        if not payload.merchant_name:
            raise ValueError("Merchant name required.")
        if payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        payload.currency = normalize_currency(payload.currency)
        payload.plan_name = payload.plan_name.strip() if payload.plan_name else None
        payload.status = (payload.status or "active").strip().lower()
        return payload

    def to_subscription(self) -> TrackedSubscription:
        return TrackedSubscription(
            id=None if self.id is None else str(self.id),
            merchant_name=self.merchant_name,
            plan_name=self.plan_name,
            amount=self.amount,
            currency=self.currency,
            renewal_date=self.renewal_date,
            billing_cycle=self.billing_cycle,
            custom_interval_value=self.custom_interval_value,
            custom_interval_unit=self.custom_interval_unit,
            status=self.status,
            cancelled_at=self.cancelled_at,
            auto_renew=self.auto_renew,
            last_reminded_renewal_date=self.last_reminded_renewal_date,
        )


class SubscriptionsPayload(BaseModel):
    subscriptions: list[SubscriptionPayload]


class RenewalSnapshotResponse(BaseModel):
    id: str | None = None
    merchant_name: str
    billing_cycle: str
    status: str
    effective_renewal_date: date | None = None
    days_until: int | None = None


class CurrencySpendResponse(BaseModel):
    currency: str
    monthly: Decimal
    yearly: Decimal
    subscription_count: int


class SpendSummaryResponse(BaseModel):
    totals: list[CurrencySpendResponse]
    active_count: int
    cancelled_count: int
    expired_count: int
    status_counts: dict[str, int]


class ForecastEntryResponse(BaseModel):
    date: date
    amount: Decimal
    currency: str
    subscription_id: str | None = None
    merchant_name: str


class ForecastResponse(BaseModel):
    range_start: date
    range_end: date
    entries: list[ForecastEntryResponse]
    totals: dict[str, Decimal]


class DueReminderResponse(BaseModel):
    subscription_id: str | None = None
    merchant_name: str
    plan_name: str | None = None
    renewal_date: date
    days_until: int
    amount: Decimal
    currency: str
    subject: str


class DueRemindersResponse(BaseModel):
    window_days: int
    checked: int
    skipped_already_reminded: int
    skipped_invalid: int
    reminders: list[DueReminderResponse]


class CadencePreviewResponse(BaseModel):
    billing_cycle: str
    dates: list[date]


def load_subscriptions(payload: SubscriptionsPayload) -> list[TrackedSubscription]:
    subscriptions = []
    for index, item in enumerate(payload.subscriptions):
        try:
            validated = SubscriptionPayload.validate_payload(item)
        except ValueError as exc:
            raise HTTPException(
                status_code=400,
                detail=f"Subscription {index}: {exc}",
            ) from exc
        subscriptions.append(validated.to_subscription())
    return subscriptions


def snapshot_response(snapshot: RenewalSnapshot) -> RenewalSnapshotResponse:
    subscription = snapshot.subscription
    return RenewalSnapshotResponse(
        id=subscription.id,
        merchant_name=subscription.merchant_name,
        billing_cycle=subscription.cadence().label,
        status=snapshot.status.value,
        effective_renewal_date=snapshot.effective_date,
        days_until=snapshot.days_until,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/cadences/preview", response_model=CadencePreviewResponse)
def cadence_preview(
    billing_cycle: str = Query(...),
    start_date: str | None = Query(None),
    interval: int | None = Query(None),
    unit: str | None = Query(None),
    count: int = Query(6, ge=1, le=MAX_PREVIEW_OCCURRENCES),
    today: date = Depends(get_today),
) -> CadencePreviewResponse:
    try:
        cadence = parse_cadence(billing_cycle, interval, unit)
        start = parse_calendar_date(start_date) if start_date else today
        dates = preview_schedule(start, cadence, count)
    except (UnrecognizedCadence, InvalidDate, DateOutOfRange) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CadencePreviewResponse(billing_cycle=cadence.label, dates=dates)


@app.post("/renewals/effective", response_model=list[RenewalSnapshotResponse])
def effective_renewals(
    payload: SubscriptionsPayload,
    soon_days: int = Query(SOON_DAYS_SETTING, ge=0),
    today: date = Depends(get_today),
) -> list[RenewalSnapshotResponse]:
    subscriptions = load_subscriptions(payload)
    snapshots = classify_all(subscriptions, today, soon_days=soon_days, max_steps=MAX_STEPS_SETTING)
    return [snapshot_response(snapshot) for snapshot in snapshots]


@app.post("/renewals/upcoming", response_model=list[RenewalSnapshotResponse])
def renewals_upcoming(
    payload: SubscriptionsPayload,
    days: int = Query(UPCOMING_DAYS, ge=0, le=366),
    limit: int = Query(UPCOMING_LIMIT, ge=1),
    today: date = Depends(get_today),
) -> list[RenewalSnapshotResponse]:
    subscriptions = load_subscriptions(payload)
    snapshots = upcoming_renewals(
        subscriptions,
        today,
        days=days,
        limit=limit,
        max_steps=MAX_STEPS_SETTING,
    )
    return [snapshot_response(snapshot) for snapshot in snapshots]


@app.post("/spend/summary", response_model=SpendSummaryResponse)
def spend_summary_report(
    payload: SubscriptionsPayload,
    soon_days: int = Query(SOON_DAYS_SETTING, ge=0),
    today: date = Depends(get_today),
) -> SpendSummaryResponse:
    subscriptions = load_subscriptions(payload)
    summary = spend_summary(subscriptions, today)
    snapshots = classify_all(subscriptions, today, soon_days=soon_days, max_steps=MAX_STEPS_SETTING)
    return SpendSummaryResponse(
        totals=[
            CurrencySpendResponse(
                currency=spend.currency,
                monthly=spend.monthly.quantize(CENTS),
                yearly=spend.yearly.quantize(CENTS),
                subscription_count=spend.subscription_count,
            )
            for spend in summary.totals
        ],
        active_count=summary.active_count,
        cancelled_count=summary.cancelled_count,
        expired_count=summary.expired_count,
        status_counts={
            status.value: count for status, count in count_by_status(snapshots).items()
        },
    )


@app.post("/forecast", response_model=ForecastResponse)
def forecast(
    payload: SubscriptionsPayload,
    days: int = Query(FORECAST_DAYS_SETTING, ge=0, le=366),
    today: date = Depends(get_today),
) -> ForecastResponse:
    subscriptions = load_subscriptions(payload)
    result = payment_forecast(subscriptions, today, days=days, max_steps=MAX_STEPS_SETTING)
    return ForecastResponse(
        range_start=result.range_start,
        range_end=result.range_end,
        entries=[
            ForecastEntryResponse(
                date=entry.date,
                amount=entry.amount,
                currency=entry.currency,
                subscription_id=entry.subscription.id,
                merchant_name=entry.subscription.merchant_name,
            )
            for entry in result.entries
        ],
        totals={currency: total.quantize(CENTS) for currency, total in result.totals.items()},
    )


@app.post("/reminders/due", response_model=DueRemindersResponse)
def reminders_due(
    payload: SubscriptionsPayload,
    days_before: int = Query(REMINDER_DAYS_SETTING, ge=0, le=366),
    mode: str | None = Query(None),
    today: date = Depends(get_today),
) -> DueRemindersResponse:
    subscriptions = load_subscriptions(payload)
    batch = due_reminders(
        subscriptions,
        today,
        days_before=days_before,
        ignore_dedupe=mode == "test",
        max_steps=MAX_STEPS_SETTING,
    )
    logger.info(
        "Reminder check: %d due, %d checked, %d already reminded, %d invalid",
        len(batch.reminders),
        batch.checked,
        batch.skipped_already_reminded,
        batch.skipped_invalid,
    )
    return DueRemindersResponse(
        window_days=batch.days_before,
        checked=batch.checked,
        skipped_already_reminded=batch.skipped_already_reminded,
        skipped_invalid=batch.skipped_invalid,
        reminders=[
            DueReminderResponse(
                subscription_id=reminder.subscription.id,
                merchant_name=reminder.subscription.merchant_name,
                plan_name=reminder.subscription.plan_name,
                renewal_date=reminder.renewal_date,
                days_until=reminder.days_until,
                amount=reminder.amount,
                currency=reminder.currency,
                subject=reminder.subject,
            )
            for reminder in batch.reminders
        ],
    )
