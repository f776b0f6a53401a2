"""
Activation resolver — turns rule matches into effect windows.

A buff without ``duration_hours`` is active for every local day its rule
matches. A buff with ``duration_hours`` is active for
``[window_start, window_start + duration_hours)`` where ``window_start`` is
local midnight of the most recent day the rule matched. Because the duration
may exceed 24 h, that day can lie before the query day; the search walks
backwards one day at a time up to ``lookback_days`` (default 7) and gives up
beyond that.

Example: a ``specificDate`` rule for Nov 28 with ``duration_hours = 48`` is
active from Nov 28 00:00 to Nov 30 00:00 local time, although the rule
itself only matches Nov 28.

Also provides the "upcoming" preview used for teaser displays:
``upcoming_buffs(buffs, now)`` returns buffs that are inactive now but will
be active ``preview_hours`` from now.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Optional

from buff_engine.models.buff import EventBuff
from buff_engine.models.rules import DateRangeRule, SpecificDateRule
from buff_engine.rules.evaluator import matches
from buff_engine.utils.time_utils import (
    day_of_month_text,
    elapsed_hours_between,
    local_date,
    local_midnight,
)

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_PREVIEW_HOURS = 48.0


def window_start(
    buff: EventBuff,
    instant: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> Optional[datetime]:
    """Return local midnight of the most recent day ``buff``'s rule matched.

    Checks ``instant``'s own day first, then up to ``lookback_days`` earlier
    days, newest first.

    Args:
        buff: Catalog buff to resolve.
        instant: Query instant (aware; its tzinfo defines "local").
        lookback_days: Maximum number of prior days to search.

    Returns:
        The window start, or ``None`` if no match within the horizon.
    """
    today = local_date(instant)
    for offset in range(lookback_days + 1):
        day = today - timedelta(days=offset)
        if matches(buff.date_rule, day):
            return local_midnight(day, instant.tzinfo)
    logger.debug(
        "Buff '%s' did not match within %d day(s) before %s.", buff.id, lookback_days, today
    )
    return None


def is_active(
    buff: EventBuff,
    instant: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> bool:
    """Return ``True`` if ``buff`` is in effect at ``instant``.

    Without ``duration_hours`` this is plain day-granularity rule matching.
    """
    if buff.duration_hours is None:
        return matches(buff.date_rule, instant)

    start = window_start(buff, instant, lookback_days)
    if start is None:
        return False
    elapsed = elapsed_hours_between(start, instant)
    return 0.0 <= elapsed < buff.duration_hours


def active_buffs(
    buffs: Iterable[EventBuff],
    instant: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> list[EventBuff]:
    """Filter ``buffs`` down to those in effect at ``instant``, order kept."""
    return [b for b in buffs if is_active(b, instant, lookback_days)]


def upcoming_buffs(
    buffs: Iterable[EventBuff],
    instant: datetime,
    default_hours: float = DEFAULT_PREVIEW_HOURS,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> list[EventBuff]:
    """Return buffs inactive at ``instant`` but active within their preview horizon.

    Each buff's own ``preview_hours`` wins over ``default_hours``.
    """
    result: list[EventBuff] = []
    for buff in buffs:
        if is_active(buff, instant, lookback_days):
            continue
        hours = buff.preview_hours if buff.preview_hours is not None else default_hours
        if is_active(buff, instant + timedelta(hours=hours), lookback_days):
            result.append(buff)
    return result


def start_date_text(buff: EventBuff) -> str:
    """Return ``"10 of December"`` for dated rules, ``"Soon"`` otherwise."""
    rule = buff.date_rule
    start: Optional[date] = None
    if isinstance(rule, DateRangeRule):
        start = rule.start
    elif isinstance(rule, SpecificDateRule):
        start = rule.target
    if start is None:
        return "Soon"
    return day_of_month_text(start)
