from __future__ import annotations

import re
from calendar import monthrange
from datetime import MAXYEAR, MINYEAR, date, datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

YMD_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
# Fills fields a free-form timestamp leaves out, so parsing never depends on the clock.
_PARSE_DEFAULT = datetime(2000, 1, 1)


class InvalidDate(ValueError):
    """Raised when a string cannot be read as a calendar date."""


class DateOutOfRange(ValueError):
    """Raised when date arithmetic leaves the representable calendar range."""


class Ordering(str, Enum):
    BEFORE = "before"
    SAME = "same"
    AFTER = "after"


def parse_calendar_date(value: str) -> date:
    """Read a calendar day from ``YYYY-MM-DD`` or any timestamp dateutil understands.

    ``YYYY-MM-DD`` input is built from its components and never passes through
    a timestamp, so it reads back identically on every host timezone. Other
    input is parsed as a timestamp and truncated to its local calendar day.
    """
    if not isinstance(value, str):
        raise InvalidDate(f"Expected a date string, got {type(value).__name__}.")
    text = value.strip()
    if not text:
        raise InvalidDate("Date is required.")

    match = YMD_PATTERN.fullmatch(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError as exc:
            raise InvalidDate(f"Not a calendar date: {text}") from exc

    try:
        parsed = date_parser.parse(text, default=_PARSE_DEFAULT)
    except (ValueError, OverflowError) as exc:
        raise InvalidDate(f"Not a calendar date: {text}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def format_calendar_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def today(tz: str | None = None) -> date:
    """Current calendar day in the process timezone, or in ``tz`` when given."""
    if tz is None:
        return date.today()
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {tz}") from exc
    return datetime.now(zone).date()


def add_days(value: date, days: int) -> date:
    try:
        return value + timedelta(days=days)
    except OverflowError as exc:
        raise DateOutOfRange(f"{value.isoformat()} plus {days} days is out of range.") from exc


def add_months(value: date, months: int) -> date:
    total_month = value.month - 1 + months
    year = value.year + total_month // 12
    month = total_month % 12 + 1
    if not MINYEAR <= year <= MAXYEAR:
        raise DateOutOfRange(f"{value.isoformat()} plus {months} months is out of range.")
    last_day = monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def add_years(value: date, years: int) -> date:
    return add_months(value, years * 12)


def compare(a: date, b: date) -> Ordering:
    if a < b:
        return Ordering.BEFORE
    if a > b:
        return Ordering.AFTER
    return Ordering.SAME


def days_between(start: date, end: date) -> int:
    return (end - start).days
