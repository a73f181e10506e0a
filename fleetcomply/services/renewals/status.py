from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from fleetcomply.domain.state import RenewalStatus


# Due dates within this many days are flagged for attention.
DUE_SOON_DAYS = 7


@dataclass(frozen=True)
class RenewalDates:
    start_date: date | None = None
    expiry_or_due_date: date | None = None
    reminder_set: bool = False
    reminder_date: date | None = None

    @classmethod
    def from_row(cls, row: Any) -> "RenewalDates":
        return cls(
            start_date=getattr(row, "start_date", None),
            expiry_or_due_date=getattr(row, "expiry_or_due_date", None),
            reminder_set=bool(getattr(row, "reminder_set", False)),
            reminder_date=getattr(row, "reminder_date", None),
        )


def _day(value: date | datetime | None) -> date | None:
    # Truncate timestamps to the calendar day; a datetime is also a date, so check it first.
    if isinstance(value, datetime):
        return value.date()
    return value


def derive_status(dates: RenewalDates, today: date | datetime) -> RenewalStatus:
    """Derive the lifecycle status of a renewal item on ``today``.

    Rules apply in order and the first match wins: not started yet is
    scheduled, no due date is active, a due date before today is expired,
    a due date within DUE_SOON_DAYS or a reminder that has come due is
    due_soon, anything else is active. Total over every input.
    """
    day = _day(today)
    start = _day(dates.start_date)
    if start is not None and start > day:
        return RenewalStatus.SCHEDULED
    due = _day(dates.expiry_or_due_date)
    if due is None:
        return RenewalStatus.ACTIVE
    if due < day:
        return RenewalStatus.EXPIRED
    if (due - day).days <= DUE_SOON_DAYS:
        return RenewalStatus.DUE_SOON
    reminder = _day(dates.reminder_date)
    if dates.reminder_set and reminder is not None and reminder <= day:
        return RenewalStatus.DUE_SOON
    return RenewalStatus.ACTIVE


def resolve_zone(tz_name: str) -> timezone | ZoneInfo:
    return timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)


def local_today(tz_name: str, now: datetime | None = None) -> date:
    # "Today" is the calendar date in the configured zone, not the server's.
    zone = resolve_zone(tz_name)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(zone).date()
