"""
Date rule evaluator — decides whether one declarative rule matches an instant.

Every function here is pure: no I/O, no clock reads, no mutation of either
argument. Matching is done on the instant's *local calendar day*, so a rule
is "on" for the whole of a matching day regardless of time-of-day; sub-day
windows are the resolver's job (``buff_engine.rules.resolver``).

Rule semantics
--------------
  dayOfWeek     local weekday index (0 = Sunday) is in ``days``
  specificDate  local date equals ``target``
  dateRange     ``start <= day <= end``; with ``yearly_recurring`` both
                bounds are moved into the query year first, and a moved end
                before the moved start wraps across New Year
                (``day >= start OR day <= end``)
  monthDay      target = (query year, month, day); ``days_around == 0`` is an
                exact match, otherwise ``target ± days_around`` inclusive
  cycle         ``(day - reference_date).days mod interval_days`` is below
                ``duration_days``; the remainder is always in
                ``[0, interval_days)``, including days before the reference

An ``UnknownRule`` (unrecognised catalog tag) never matches.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from buff_engine.models.rules import (
    AnyDateRule,
    CycleRule,
    DateRangeRule,
    DayOfWeekRule,
    MonthDayRule,
    SpecificDateRule,
    UnknownRule,
)
from buff_engine.utils.time_utils import local_date, project_month_day, weekday_index

logger = logging.getLogger(__name__)


def matches(rule: AnyDateRule, instant: date | datetime) -> bool:
    """Return ``True`` if ``rule`` matches the local calendar day of ``instant``.

    Args:
        rule: Any date rule variant.
        instant: Query instant; a plain ``date`` is treated as that local day.

    Returns:
        ``True`` on match. Unknown rule shapes return ``False``.
    """
    day = local_date(instant)
    match rule:
        case DayOfWeekRule():
            return _match_day_of_week(rule, day)
        case SpecificDateRule():
            return day == rule.target
        case DateRangeRule():
            return _match_date_range(rule, day)
        case MonthDayRule():
            return _match_month_day(rule, day)
        case CycleRule():
            return _match_cycle(rule, day)
        case UnknownRule():
            return False
        case _:
            logger.warning("Unsupported rule object %r — treating as inactive.", rule)
            return False


def _match_day_of_week(rule: DayOfWeekRule, day: date) -> bool:
    return weekday_index(day) in rule.days


def _match_date_range(rule: DateRangeRule, day: date) -> bool:
    start, end = rule.start, rule.end
    if rule.yearly_recurring:
        start = project_month_day(day.year, start.month, start.day)
        end = project_month_day(day.year, end.month, end.day)
        if end < start:
            return day >= start or day <= end
    return start <= day <= end


def _match_month_day(rule: MonthDayRule, day: date) -> bool:
    target = project_month_day(day.year, rule.month, rule.day)
    if rule.days_around == 0:
        return day == target
    window = timedelta(days=rule.days_around)
    return target - window <= day <= target + window


def _match_cycle(rule: CycleRule, day: date) -> bool:
    days_since = (day - rule.reference_date).days
    # Python's modulo is non-negative for a positive divisor.
    position = days_since % rule.interval_days
    return position < rule.duration_days
