"""
Active Buff Ledger — per-user read-through mirror of the remote ledger.

The ledger is owned by the trusted store. This object never writes its own
entries: every mutation is one remote call, and the mirror is re-read from
the store after the call succeeds. A failed mutation raises and leaves the
mirror exactly as it was. A failed re-read after a successful mutation is
logged and keeps the previous mirror, because the store already holds the
change; ``last_refreshed`` tells callers how stale it is.

Reads (``entries``, ``get``, ``in``) never mutate and are safe to share
between display components.

Usage::

    ledger = ActiveBuffLedger("user-123", store)
    await ledger.refresh()
    await ledger.grant("day10_boost", 0.25, expires_at=now + timedelta(hours=24))
    result = stack(ledger.entries, "elf", now, catalog)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any, Optional

from buff_engine.models.ledger import LedgerEntry
from buff_engine.store.client import BuffStoreClient, LedgerReadError
from buff_engine.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ActiveBuffLedger:
    """Mirror of one user's ``active_buffs`` map.

    Attributes:
        user_id: Owner of the ledger.
        last_refreshed: Instant of the last successful refresh (``None`` before).
    """

    def __init__(
        self,
        user_id: str,
        store: BuffStoreClient,
        initial: Optional[Mapping[str, LedgerEntry]] = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._entries: dict[str, LedgerEntry] = dict(initial or {})
        self.last_refreshed: Optional[datetime] = None

    # ── Reads ─────────────────────────────────────────────────────────────────

    @property
    def entries(self) -> Mapping[str, LedgerEntry]:
        """Read-only view of the mirrored entries, store order kept."""
        return MappingProxyType(self._entries)

    def get(self, buff_id: str) -> Optional[LedgerEntry]:
        return self._entries.get(buff_id)

    def __contains__(self, buff_id: object) -> bool:
        return buff_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ── Store round-trips ─────────────────────────────────────────────────────

    async def refresh(self) -> Mapping[str, LedgerEntry]:
        """Replace the mirror with the store's current ledger.

        Raises:
            RemoteCallError: If the ledger could not be read.
        """
        self._entries = await self._store.fetch_ledger(self.user_id)
        self.last_refreshed = utcnow()
        logger.debug("Ledger for user %s refreshed: %d entr(y/ies).", self.user_id, len(self._entries))
        return self.entries

    async def grant(
        self,
        buff_id: str,
        value: float,
        expires_at: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Mapping[str, LedgerEntry]:
        """Add or replace ``buff_id`` remotely, then refresh.

        Raises:
            LedgerMutationError: If the store rejected the write.
        """
        await self._store.grant(self.user_id, buff_id, value, expires_at, metadata)
        return await self._refresh_after(f"grant of {buff_id}")

    async def revoke(self, buff_id: str) -> Mapping[str, LedgerEntry]:
        """Remove ``buff_id`` remotely, then refresh.

        Raises:
            LedgerMutationError: If the store rejected the write.
        """
        await self._store.revoke(self.user_id, buff_id)
        return await self._refresh_after(f"revoke of {buff_id}")

    async def sweep_expired(self) -> Mapping[str, LedgerEntry]:
        """Ask the store to drop expired entries, then refresh.

        Raises:
            LedgerMutationError: If the store rejected the write.
        """
        await self._store.sweep_expired(self.user_id)
        return await self._refresh_after("sweep")

    async def _refresh_after(self, action: str) -> Mapping[str, LedgerEntry]:
        try:
            return await self.refresh()
        except LedgerReadError as exc:
            logger.warning(
                "Ledger re-read after %s for user %s failed (%s); mirror is stale.",
                action, self.user_id, exc,
                extra={"user_id": self.user_id, "procedure": exc.procedure},
            )
            return self.entries
