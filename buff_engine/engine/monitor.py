"""Periodic recheck loop that keeps the active-buff picture current.

Every ``interval_seconds`` (default 60) the monitor samples "now", refreshes
the guard's day-of-week verdicts, optionally re-reads the user's ledger, and
recomputes the combined modifier. Date-boundary and window-boundary
transitions are therefore picked up within one interval.

Typical usage via the CLI::

    buff-engine watch --user-id u-123 --role elf

Or import directly::

    monitor = BuffMonitor(engine, user_id="u-123", role="elf", ledger=ledger)
    task = asyncio.create_task(monitor.run())
    ...
    monitor.stop()
    await task

A failed ledger refresh is logged and the previous mirror is kept; the loop
never stops on a backend failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from buff_engine.engine.service import BuffEngine
from buff_engine.engine.stacking import active_catalog_buffs
from buff_engine.models.ledger import CombinedModifier
from buff_engine.store.client import RemoteCallError
from buff_engine.store.ledger import ActiveBuffLedger

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorSnapshot:
    """Result of one recheck.

    Attributes:
        at: Instant the recheck was evaluated for.
        active_ids: Active catalog buff ids, catalog order.
        combined: Combined modifier, when a role was given.
    """

    at: datetime
    active_ids: tuple[str, ...]
    combined: Optional[CombinedModifier] = None


class BuffMonitor:
    """Re-evaluates active buffs on a fixed interval."""

    def __init__(
        self,
        engine: BuffEngine,
        user_id: Optional[str] = None,
        role: Optional[str] = None,
        ledger: Optional[ActiveBuffLedger] = None,
        interval_seconds: Optional[float] = None,
        on_change: Optional[Callable[[MonitorSnapshot], None]] = None,
    ) -> None:
        self.engine = engine
        self.user_id = user_id
        self.role = role
        self.ledger = ledger
        self.interval_seconds = interval_seconds or engine.clock.refresh_interval_seconds
        self.on_change = on_change
        self.last_snapshot: Optional[MonitorSnapshot] = None
        self._stop = asyncio.Event()

    async def recheck(self, now: Optional[datetime] = None) -> MonitorSnapshot:
        """Run one evaluation pass and return its snapshot.

        ``on_change`` fires when the active set or net multiplier differs
        from the previous pass.
        """
        now = now or self.engine.now()
        verdicts = await self.engine.refresh_guard(self.user_id, now)

        if self.ledger is not None:
            try:
                await self.ledger.refresh()
            except RemoteCallError as exc:
                log.warning(
                    "Ledger refresh failed for user %s: %s", self.user_id, exc,
                    extra={"user_id": self.user_id, "procedure": exc.procedure},
                )

        active = active_catalog_buffs(
            self.engine.catalog,
            self.role,
            now,
            self.engine.clock.lookback_days,
            known=verdicts,
        )
        combined = None
        if self.role is not None:
            entries = self.ledger.entries if self.ledger is not None else {}
            combined = self.engine.combine(entries, self.role, now, self.user_id)

        snapshot = MonitorSnapshot(
            at=now,
            active_ids=tuple(b.id for b in active),
            combined=combined,
        )
        self._report(snapshot)
        self.last_snapshot = snapshot
        return snapshot

    def _report(self, snapshot: MonitorSnapshot) -> None:
        previous = self.last_snapshot
        before = set(previous.active_ids) if previous else set()
        after = set(snapshot.active_ids)
        for buff_id in sorted(after - before):
            log.info("Buff activated: %s", buff_id)
        for buff_id in sorted(before - after):
            log.info("Buff ended: %s", buff_id)

        changed = previous is None or before != after or (
            _net(previous.combined) != _net(snapshot.combined)
        )
        if changed and self.on_change is not None:
            self.on_change(snapshot)

    async def run(self, max_iterations: Optional[int] = None) -> None:
        """Recheck until ``stop()`` is called (or ``max_iterations`` passes)."""
        self._stop.clear()
        log.info(
            "Buff monitor started.  user=%s  role=%s  interval=%.0fs",
            self.user_id or "guest", self.role or "-", self.interval_seconds,
        )
        iterations = 0
        while not self._stop.is_set():
            await self.recheck()
            iterations += 1
            if max_iterations is not None and iterations >= max_iterations:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
        log.info("Buff monitor stopped.")

    def stop(self) -> None:
        self._stop.set()


def _net(combined: Optional[CombinedModifier]) -> Optional[float]:
    return None if combined is None else combined.net_multiplier
