"""
Grant helpers for ledger-held buffs.

``claim_timed_buff``
    Reward claims (e.g. the day-10 gift): writes the grantable buff's
    ``xp_bonus`` with an expiry of ``now + grant_duration_hours`` and
    ``{"claimedAt": <ms>}`` metadata.

``auto_activate_promotions``
    Promotion grants (e.g. the event slingshot): for every ``auto_grant``
    buff that applies to the role, whose promotion has started, and that the
    ledger does not already hold, writes a permanent entry with
    ``{"autoActivatedAt": <ms>}`` metadata. The promotion window is then
    enforced at stacking time, not by expiry.

Both go through ``ActiveBuffLedger`` so failures propagate as
``LedgerMutationError`` and the mirror is refreshed after each write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from buff_engine.catalog.catalog import BuffCatalog
from buff_engine.models.ledger import datetime_to_ms
from buff_engine.store.ledger import ActiveBuffLedger

logger = logging.getLogger(__name__)


async def claim_timed_buff(
    ledger: ActiveBuffLedger,
    catalog: BuffCatalog,
    buff_id: str,
    now: datetime,
) -> datetime | None:
    """Grant ``buff_id`` for its configured duration starting at ``now``.

    Returns:
        The expiry written, or ``None`` for a permanent grant.

    Raises:
        KeyError: If ``buff_id`` is not a grantable buff.
        LedgerMutationError: If the store rejected the write.
    """
    buff = catalog.get_grantable(buff_id)
    if buff is None:
        raise KeyError(f"Unknown grantable buff '{buff_id}'.")

    expires_at = None
    if buff.grant_duration_hours is not None:
        expires_at = now + timedelta(hours=buff.grant_duration_hours)

    await ledger.grant(
        buff.id,
        buff.xp_bonus,
        expires_at=expires_at,
        metadata={"claimedAt": datetime_to_ms(now)},
    )
    logger.info("User %s claimed %s.", ledger.user_id, buff.id)
    return expires_at


async def auto_activate_promotions(
    ledger: ActiveBuffLedger,
    catalog: BuffCatalog,
    role: str,
    now: datetime,
) -> list[str]:
    """Grant every auto-grant promotion the user is due but does not hold.

    A promotion is due once ``now`` reaches its window start; buffs without
    a window are due immediately.

    Returns:
        Ids granted by this call, catalog order.

    Raises:
        LedgerMutationError: If the store rejected a write. Grants made
            before the failure stay in place.
    """
    granted: list[str] = []
    for buff in catalog.grantable_buffs:
        if not buff.auto_grant or not buff.applies_to(role) or buff.id in ledger:
            continue
        window = buff.promotion_window
        if window is not None and now < window.start:
            continue
        await ledger.grant(
            buff.id,
            buff.xp_bonus,
            expires_at=None,
            metadata={"autoActivatedAt": datetime_to_ms(now)},
        )
        granted.append(buff.id)

    if granted:
        logger.info("Auto-activated promotions for user %s: %s", ledger.user_id, granted)
    return granted
