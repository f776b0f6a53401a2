"""
Server-authoritative guard for spoofable rule kinds.

A weekly pattern ("weekends only") is trivially gamed by moving the device
clock, so for ``dayOfWeek`` rules the weekday of an authenticated user comes
from the trusted backend (computed from the user's stored timezone). Rules
anchored to fixed calendar dates go straight to the activation resolver.

Decision table for ``is_active_secure(buff, user_id)``:

  rule kind    user_id   backend     verdict source
  ---------    -------   -------     --------------
  dayOfWeek    None      any         local clock (guest, nothing to protect)
  dayOfWeek    set       ok          server weekday ∈ rule.days
  dayOfWeek    set       failed      local clock, warning logged
  other        any       any         activation resolver

Backend calls are bounded by ``timeout_seconds``; a slow call resolves to the
local fallback instead of hanging the caller.

Verdicts for authenticated users are remembered per ``(user_id, buff_id)``
together with the local day they cover, so synchronous callers (XP award,
display) can use ``last_known`` instead of awaiting a round-trip. A verdict
is only returned for an instant on that same day. Guest verdicts are never
cached because a local evaluation is cheaper than a lookup.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Optional

from buff_engine.models.buff import EventBuff
from buff_engine.models.rules import DayOfWeekRule
from buff_engine.rules.resolver import DEFAULT_LOOKBACK_DAYS, is_active
from buff_engine.store.client import BuffStoreClient, RemoteCallError
from buff_engine.utils.time_utils import local_date, local_now

logger = logging.getLogger(__name__)


class ServerAuthoritativeGuard:
    """Evaluates buffs against a trusted weekday where it matters.

    Attributes:
        timezone: IANA zone "now" is sampled in for local evaluation.
        timeout_seconds: Upper bound on one weekday round-trip.
        lookback_days: Resolver horizon for local evaluation.
    """

    def __init__(
        self,
        store: Optional[BuffStoreClient],
        timezone: str = "America/New_York",
        timeout_seconds: float = 5.0,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self._store = store
        self.timezone = timezone
        self.timeout_seconds = timeout_seconds
        self.lookback_days = lookback_days
        self._last_known: dict[tuple[str, str], tuple[date, bool]] = {}

    # ── Remote weekday ────────────────────────────────────────────────────────

    async def _server_weekday(self, user_id: str) -> Optional[int]:
        """Return the backend weekday for ``user_id``, or ``None`` on failure."""
        if self._store is None:
            logger.debug("No backend configured; evaluating weekday locally for %s.", user_id)
            return None
        try:
            return await asyncio.wait_for(
                self._store.resolve_user_weekday(user_id),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Weekday lookup for user %s timed out after %.1fs; using local clock.",
                user_id, self.timeout_seconds,
                extra={"user_id": user_id},
            )
        except RemoteCallError as exc:
            logger.warning(
                "Weekday lookup for user %s failed (%s); using local clock.",
                user_id, exc,
                extra={"user_id": user_id, "procedure": exc.procedure, "status_code": exc.status_code},
            )
        return None

    def _evaluate(
        self,
        buff: EventBuff,
        now: datetime,
        server_weekday: Optional[int],
    ) -> bool:
        if isinstance(buff.date_rule, DayOfWeekRule) and server_weekday is not None:
            return server_weekday in buff.date_rule.days
        return is_active(buff, now, self.lookback_days)

    # ── Public API ────────────────────────────────────────────────────────────

    async def is_active_secure(
        self,
        buff: EventBuff,
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """Return whether ``buff`` is active for ``user_id``. Never raises for
        backend failures.

        Args:
            buff: Catalog buff to check.
            user_id: Authenticated user, or ``None`` for a guest session.
            now: Local query instant; defaults to the current time in
                ``timezone``.
        """
        now = now or local_now(self.timezone)
        server_weekday: Optional[int] = None
        if isinstance(buff.date_rule, DayOfWeekRule) and user_id is not None:
            server_weekday = await self._server_weekday(user_id)

        verdict = self._evaluate(buff, now, server_weekday)
        self._remember(user_id, buff.id, now, verdict)
        return verdict

    async def refresh(
        self,
        buffs: Iterable[EventBuff],
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> dict[str, bool]:
        """Re-check every day-of-week buff in ``buffs`` with one weekday lookup.

        Returns:
            ``{buff_id: verdict}`` for the day-of-week buffs checked.
        """
        now = now or local_now(self.timezone)
        weekly = [b for b in buffs if isinstance(b.date_rule, DayOfWeekRule)]
        if not weekly:
            return {}

        server_weekday = await self._server_weekday(user_id) if user_id is not None else None
        verdicts: dict[str, bool] = {}
        for buff in weekly:
            verdict = self._evaluate(buff, now, server_weekday)
            self._remember(user_id, buff.id, now, verdict)
            verdicts[buff.id] = verdict
        return verdicts

    # ── Last-known cache ──────────────────────────────────────────────────────

    def _remember(
        self,
        user_id: Optional[str],
        buff_id: str,
        now: datetime,
        verdict: bool,
    ) -> None:
        if user_id is not None:
            self._last_known[(user_id, buff_id)] = (local_date(now), verdict)

    def last_known(
        self,
        user_id: Optional[str],
        buff_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[bool]:
        """Return the cached verdict for the local day of ``now``.

        ``None`` for guests, for buffs never checked, and when the cached
        verdict covers a different day. ``now`` defaults to the current time
        in ``timezone``.
        """
        if user_id is None:
            return None
        cached = self._last_known.get((user_id, buff_id))
        if cached is None:
            return None
        day, verdict = cached
        if day != local_date(now or local_now(self.timezone)):
            return None
        return verdict

    def known_verdicts(
        self,
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> dict[str, bool]:
        """Return ``user_id``'s cached verdicts that cover the day of ``now``."""
        if user_id is None:
            return {}
        today = local_date(now or local_now(self.timezone))
        return {
            bid: verdict
            for (uid, bid), (day, verdict) in self._last_known.items()
            if uid == user_id and day == today
        }

    def clear(self) -> None:
        self._last_known.clear()
