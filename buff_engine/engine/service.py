"""
Consumer query surface — the calls XP-award and display code make.

``BuffEngine`` binds an immutable ``BuffCatalog`` to the clock settings and
(optionally) a ``ServerAuthoritativeGuard``. It owns no mutable state of its
own; the guard's last-known verdict cache is the only memory, and it is
consulted only for day-of-week buffs.

    engine = BuffEngine.from_config(config)
    engine.get_active_buffs()                       # catalog buffs on now
    engine.stack(ledger.entries, "elf")             # additive ledger stack
    engine.get_stacked_modifier(ledger.entries, "elf", user_id="u1")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Optional

from buff_engine.catalog.catalog import BuffCatalog
from buff_engine.catalog.loader import load_catalog
from buff_engine.config import AppConfig, ClockConfig, resolve_catalog_path
from buff_engine.engine.guard import ServerAuthoritativeGuard
from buff_engine.engine.stacking import active_catalog_buffs, combine, stack
from buff_engine.models.buff import EventBuff
from buff_engine.models.ledger import CombinedModifier, LedgerEntry, StackResult
from buff_engine.rules.resolver import upcoming_buffs
from buff_engine.store.client import BuffStoreClient
from buff_engine.utils.time_utils import local_now

logger = logging.getLogger(__name__)


class BuffEngine:
    """Read-side facade over the catalog, resolver, guard and stacking."""

    def __init__(
        self,
        catalog: BuffCatalog,
        clock: Optional[ClockConfig] = None,
        guard: Optional[ServerAuthoritativeGuard] = None,
    ) -> None:
        self.catalog = catalog
        self.clock = clock or ClockConfig()
        self.guard = guard or ServerAuthoritativeGuard(
            store=None,
            timezone=self.clock.timezone,
            lookback_days=self.clock.lookback_days,
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: Optional[BuffStoreClient] = None,
    ) -> "BuffEngine":
        """Load the configured catalog and wire a guard around ``store``."""
        catalog = load_catalog(resolve_catalog_path(config))
        guard = ServerAuthoritativeGuard(
            store=store,
            timezone=config.clock.timezone,
            timeout_seconds=config.remote.guard_timeout_seconds,
            lookback_days=config.clock.lookback_days,
        )
        return cls(catalog, clock=config.clock, guard=guard)

    def now(self) -> datetime:
        """Current instant in the configured timezone."""
        return local_now(self.clock.timezone)

    # ── Catalog queries ───────────────────────────────────────────────────────

    def get_active_buffs(
        self,
        now: Optional[datetime] = None,
        role: Optional[str] = None,
    ) -> list[EventBuff]:
        """Catalog buffs in effect at ``now`` (local evaluation)."""
        return active_catalog_buffs(
            self.catalog, role, now or self.now(), self.clock.lookback_days
        )

    def get_upcoming_buffs(
        self,
        now: Optional[datetime] = None,
        hours: Optional[float] = None,
        role: Optional[str] = None,
    ) -> list[EventBuff]:
        """Catalog buffs not active yet but active within the preview horizon."""
        buffs = [b for b in self.catalog.event_buffs if role is None or b.applies_to(role)]
        return upcoming_buffs(
            buffs,
            now or self.now(),
            default_hours=self.clock.preview_hours if hours is None else hours,
            lookback_days=self.clock.lookback_days,
        )

    async def is_active_secure(
        self,
        buff_id: str,
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """Guarded activation check for one catalog buff.

        Raises:
            KeyError: If ``buff_id`` is not a date-ruled catalog buff.
        """
        buff = self.catalog.get_event_buff(buff_id)
        if buff is None:
            raise KeyError(f"Unknown catalog buff '{buff_id}'.")
        return await self.guard.is_active_secure(buff, user_id, now)

    async def refresh_guard(
        self,
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> dict[str, bool]:
        """Refresh the guard's verdicts for every day-of-week buff."""
        return await self.guard.refresh(self.catalog.event_buffs, user_id, now)

    # ── Stacking ──────────────────────────────────────────────────────────────

    def stack(
        self,
        ledger: Mapping[str, LedgerEntry],
        role: str,
        now: Optional[datetime] = None,
    ) -> StackResult:
        return stack(ledger, role, now or self.now(), self.catalog)

    def combine(
        self,
        ledger: Mapping[str, LedgerEntry],
        role: str,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> CombinedModifier:
        """Catalog buffs × ledger stack, using today's cached guard verdicts."""
        now = now or self.now()
        return combine(
            ledger,
            role,
            now,
            self.catalog,
            lookback_days=self.clock.lookback_days,
            known=self.guard.known_verdicts(user_id, now),
        )

    def get_stacked_modifier(
        self,
        ledger: Mapping[str, LedgerEntry],
        role: str,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> float:
        """Net multiplier consumed by the XP award."""
        return self.combine(ledger, role, now, user_id).net_multiplier
