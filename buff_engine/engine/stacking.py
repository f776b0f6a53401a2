"""
Stacking calculator — folds active bonuses into one net modifier.

Two sources, two combination rules:

  Ledger entries     ADDITIVE. ``total = 1.0 + Σ value`` over applied entries;
                     two +25% grants make +50%, not +56.25%.
  Catalog buffs      MULTIPLICATIVE. ``product(xp_multiplier)`` over active
                     buffs applicable to the role; flat bonuses are summed.

``net_multiplier = catalog product × ledger total``.

Ledger walk (store order, never mutates the ledger):
  1. expired (``expires_at <= now``)          → skip; left for the sweep
  2. id unknown to the catalog                → warn, skip
  3. grantable buff outside promotion window  → skip; entry kept
  4. definition restricted to other roles     → skip
  5. otherwise                                → add value, explain "+25% <name>"

Both functions are pure and synchronous: same inputs, same result, same
explanation order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Optional

from buff_engine.catalog.catalog import BuffCatalog
from buff_engine.models.buff import EventBuff, GrantableBuff
from buff_engine.models.ledger import CombinedModifier, LedgerEntry, StackResult
from buff_engine.models.rules import DayOfWeekRule
from buff_engine.rules.resolver import DEFAULT_LOOKBACK_DAYS, is_active

logger = logging.getLogger(__name__)


def format_percent(fraction: float) -> str:
    """Return ``"+25%"`` for ``0.25``; rounds half up to whole percent."""
    return f"+{math.floor(fraction * 100 + 0.5)}%"


def _display_name(buff: GrantableBuff | EventBuff) -> str:
    return buff.name if isinstance(buff, GrantableBuff) else buff.title


def stack(
    ledger: Mapping[str, LedgerEntry],
    role: str,
    now: datetime,
    catalog: BuffCatalog,
) -> StackResult:
    """Fold the ledger entries that apply to ``role`` at ``now``.

    Args:
        ledger: ``{buff_id: LedgerEntry}`` in store order.
        role: Current role id, e.g. ``"elf"``.
        now: Aware query instant.
        catalog: Definitions the ledger keys resolve against.

    Returns:
        ``StackResult`` with the additive total and the applied buffs.
    """
    total = 1.0
    applied: list[GrantableBuff | EventBuff] = []
    explanations: list[str] = []

    for buff_id, entry in ledger.items():
        if entry.is_expired(now):
            continue

        buff = catalog.resolve(buff_id)
        if buff is None:
            logger.warning(
                "Ledger references unknown buff '%s', skipped.", buff_id,
                extra={"buff_id": buff_id},
            )
            continue

        if isinstance(buff, GrantableBuff) and not buff.is_promotion_open(now):
            continue

        if not buff.applies_to(role):
            continue

        total += entry.value
        applied.append(buff)
        explanations.append(f"{format_percent(entry.value)} {_display_name(buff)}")

    return StackResult(
        total_modifier=total,
        contributing_buffs=tuple(applied),
        explanations=tuple(explanations),
    )


def active_catalog_buffs(
    catalog: BuffCatalog,
    role: Optional[str],
    now: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    known: Optional[Mapping[str, bool]] = None,
) -> list[EventBuff]:
    """Return date-ruled buffs in effect at ``now``, catalog order.

    Args:
        role: Restrict to buffs applicable to this role; ``None`` keeps all.
        known: Last-known guard verdicts by buff id. A verdict overrides the
            local evaluation of that buff's day-of-week rule.
    """
    result: list[EventBuff] = []
    for buff in catalog.event_buffs:
        if role is not None and not buff.applies_to(role):
            continue
        if known is not None and isinstance(buff.date_rule, DayOfWeekRule) and buff.id in known:
            active = known[buff.id]
        else:
            active = is_active(buff, now, lookback_days)
        if active:
            result.append(buff)
    return result


def combine(
    ledger: Mapping[str, LedgerEntry],
    role: str,
    now: datetime,
    catalog: BuffCatalog,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    known: Optional[Mapping[str, bool]] = None,
) -> CombinedModifier:
    """Combine active catalog buffs with the ledger stack for ``role``.

    Returns:
        ``CombinedModifier`` whose ``net_multiplier`` feeds the XP award.
    """
    catalog_buffs = active_catalog_buffs(catalog, role, now, lookback_days, known)

    multiplier = 1.0
    flat = 0
    explanations: list[str] = []
    for buff in catalog_buffs:
        multiplier *= buff.xp_multiplier
        flat += buff.flat_xp_bonus
        if buff.xp_multiplier > 1.0:
            explanations.append(f"{format_percent(buff.xp_multiplier - 1.0)} {buff.title}")
        if buff.flat_xp_bonus:
            explanations.append(f"+{buff.flat_xp_bonus} XP {buff.title}")

    ledger_result = stack(ledger, role, now, catalog)
    explanations.extend(ledger_result.explanations)

    return CombinedModifier(
        catalog_multiplier=multiplier,
        flat_xp_bonus=flat,
        catalog_buffs=tuple(catalog_buffs),
        ledger=ledger_result,
        explanations=tuple(explanations),
    )
