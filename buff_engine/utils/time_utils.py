"""
Time and date utilities for local-calendar bonus evaluation.

Key concepts:
  - Instants are timezone-aware ``datetime`` values. The *local calendar day*
    of an instant is its own wall-clock date; naive values are taken as
    already local.
  - Weekday indices use the catalog convention 0 = Sunday … 6 = Saturday,
    not Python's Monday-first ``weekday()``.
  - Month/day projection rolls overflow forward (Feb 29 in a non-leap year
    becomes Mar 1) so a yearly anchor never raises.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def local_now(tz_name: str) -> datetime:
    """Return the current wall-clock time in the IANA zone ``tz_name``."""
    return datetime.now(tz=ZoneInfo(tz_name))


def local_date(instant: date | datetime) -> date:
    """Return the local calendar day of ``instant`` (a ``date`` passes through)."""
    if isinstance(instant, datetime):
        return instant.date()
    return instant


def weekday_index(day: date | datetime) -> int:
    """Return the weekday index with 0 = Sunday … 6 = Saturday."""
    return local_date(day).isoweekday() % 7


def local_midnight(day: date, tz: Optional[tzinfo]) -> datetime:
    """Return 00:00 of ``day`` in ``tz`` (naive when ``tz`` is ``None``)."""
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def project_month_day(year: int, month: int, day: int) -> date:
    """Build ``year-month-day``, rolling day overflow into the next month.

    Args:
        year: Target year.
        month: Month 1..12.
        day: Day of month 1..31; values past the month end roll forward.

    Returns:
        The projected calendar date.
    """
    return date(year, month, 1) + timedelta(days=day - 1)


def elapsed_hours_between(start: datetime, end: datetime) -> float:
    """Return real elapsed hours from ``start`` to ``end``.

    Aware values are compared on the UTC timeline so DST transitions inside
    the span count as real time, not wall-clock time.
    """
    if start.tzinfo is not None and end.tzinfo is not None:
        start = start.astimezone(timezone.utc)
        end = end.astimezone(timezone.utc)
    return (end - start).total_seconds() / 3600.0


def parse_instant(raw: Optional[str], tz_name: str) -> datetime:
    """Parse a CLI ``--at`` value into an aware instant.

    Accepts ``YYYY-MM-DD`` (local midnight), a naive ISO datetime (taken as
    local to ``tz_name``), or an offset-qualified ISO datetime (converted to
    ``tz_name``). ``None`` means "now".

    Raises:
        ValueError: If ``raw`` is not ISO-8601.
    """
    tz = ZoneInfo(tz_name)
    if raw is None:
        return datetime.now(tz=tz)
    parsed = datetime.fromisoformat(raw.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def day_of_month_text(day: date) -> str:
    """Return ``"10 of December"`` style text for ``day``."""
    return f"{day.day} of {_MONTHS[day.month - 1]}"
