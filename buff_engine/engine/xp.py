"""
XP award calculation — where the stacked modifier is consumed.

Order of operations (load-bearing; getting it backwards changes totals):

  1. xp_per_minute = 2 × base_xp_multiplier + xp_bonus
  2. + streak bonus     consecutive_days × streak_bonus, capped at max_streak_bonus
  3. critical roll      critical_chance + 5% per consecutive failed roll (cap 1.0)
  4. × prestige         1 + prestige_level × prestige_xp_bonus, on xp_per_minute
  5. xp = minutes × xp_per_minute
  6. × net_multiplier   additive ledger stack × catalog product
  7. × critical_multiplier, LAST, only when the roll succeeded
  8. floor(xp) + flat_xp_bonus

Role behaviour is driven by the ``RoleStats`` values, not the role name: a
role with ``critical_chance == 0`` never rolls, one with
``streak_bonus == 0`` gets no streak bonus.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from buff_engine.engine.stacking import format_percent
from buff_engine.models.buff import RoleStats
from buff_engine.models.ledger import CombinedModifier

BASE_XP_PER_MINUTE = 2.0
DETERMINATION_STEP = 0.05


@dataclass(frozen=True)
class AwardContext:
    """Per-session player state feeding the award.

    Attributes:
        consecutive_days: Daily streak length.
        prestige_level: Prestige tier (0 = none).
        consecutive_crits: Crit streak; negative values count failed rolls.
    """

    consecutive_days: int = 0
    prestige_level: int = 0
    consecutive_crits: int = 0


@dataclass(frozen=True)
class XpAward:
    xp_gained: int
    critical_success: bool
    bonuses: tuple[str, ...] = field(default_factory=tuple)


def award_xp(
    stats: RoleStats,
    minutes: float,
    combined: Optional[CombinedModifier] = None,
    context: Optional[AwardContext] = None,
    rng: Callable[[], float] = random.random,
) -> XpAward:
    """Compute the XP earned for ``minutes`` of focused work.

    Args:
        stats: Role parameters for the current role.
        minutes: Session length in minutes.
        combined: Active bonus combination; ``None`` = no bonuses.
        context: Streak / prestige / crit-streak state.
        rng: Uniform ``[0, 1)`` source for the critical roll.

    Returns:
        ``XpAward`` with the floored XP and a display breakdown.
    """
    context = context or AwardContext()
    bonuses: list[str] = []
    critical = False

    xp_per_minute = BASE_XP_PER_MINUTE * stats.base_xp_multiplier + stats.xp_bonus
    if stats.xp_bonus:
        bonuses.append(f"+{stats.xp_bonus:g} XP/min (Focus)")

    if context.consecutive_days and stats.streak_bonus:
        streak = context.consecutive_days * stats.streak_bonus
        if stats.max_streak_bonus is not None:
            streak = min(streak, stats.max_streak_bonus)
        xp_per_minute += streak
        bonuses.append(f"+{streak:.1f} XP/min (Streak)")

    crit_chance = stats.critical_chance
    if context.consecutive_crits < 0:
        determination = abs(context.consecutive_crits) * DETERMINATION_STEP
        crit_chance = min(crit_chance + determination, 1.0)
        bonuses.append(f"{format_percent(determination)} crit chance (Determination)")
    if crit_chance > 0 and rng() < crit_chance:
        critical = True
        bonuses.append("CRITICAL SUCCESS")

    if context.prestige_level and stats.prestige_xp_bonus:
        prestige = context.prestige_level * stats.prestige_xp_bonus
        xp_per_minute *= 1 + prestige
        bonuses.append(f"{format_percent(prestige)} XP (Prestige)")

    xp = minutes * xp_per_minute

    flat = 0
    if combined is not None:
        xp *= combined.net_multiplier
        if combined.net_multiplier > 1.0:
            bonuses.append(f"{format_percent(combined.net_multiplier - 1.0)} Event Buffs")
        flat = combined.flat_xp_bonus
        if flat:
            bonuses.append(f"+{flat} XP Event Buffs")

    if critical:
        xp *= stats.critical_multiplier

    return XpAward(
        xp_gained=math.floor(xp) + flat,
        critical_success=critical,
        bonuses=tuple(bonuses),
    )
