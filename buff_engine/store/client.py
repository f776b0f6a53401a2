"""
Trusted backend client — ledger store procedures and weekday resolution.

The backend is a PostgREST-style document store reachable only through
stored procedures. Every call is one HTTP request made with ``httpx``:

  Mutations (POST /rest/v1/rpc/{procedure}):
    set_user_buff        p_user_id, p_buff_id, p_value, p_expires_at, p_metadata
    remove_user_buff     p_user_id, p_buff_id
    clear_expired_buffs  p_user_id

  Weekday (POST /rest/v1/rpc/is_weekend_for_user):
    p_user_id → {"dayOfWeek": 0..6, ...}  (``weekdayIndex`` also accepted)
    computed server-side from the user's stored timezone.

  Ledger read (GET /rest/v1/{users_table}?id=eq.{user_id}&select=active_buffs):
    → [{"active_buffs": {buff_id: {value, expires_at, metadata}}}]

Headers: ``apikey: <api_key>`` and ``Authorization: Bearer <access_token>``
(the api key doubles as bearer when no user token is set).

Failure contract
----------------
Transport errors and non-2xx responses raise a ``RemoteCallError``
subclass; nothing fails silently. ``LedgerMutationError`` for grant / revoke /
sweep, ``LedgerReadError`` for the ledger read, ``WeekdayResolutionError``
for the weekday procedure. Callers decide whether to propagate (mutations)
or degrade (the guard).

Usage::

    async with BuffStoreClient.from_config(config.remote) as store:
        await store.grant(user_id, "day10_boost", 0.25, expires_at, {})
        ledger = await store.fetch_ledger(user_id)
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import TracebackType
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from buff_engine.config import RemoteConfig
from buff_engine.models.ledger import LedgerEntry, datetime_to_ms, parse_ledger

logger = logging.getLogger(__name__)


# ── Errors ────────────────────────────────────────────────────────────────────


class RemoteCallError(RuntimeError):
    """A trusted-backend call failed (network, auth, or server error).

    Attributes:
        procedure: Procedure or resource name that was called.
        status_code: HTTP status, or ``None`` for transport failures.
    """

    def __init__(self, message: str, procedure: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.procedure = procedure
        self.status_code = status_code


class LedgerMutationError(RemoteCallError):
    """grant / revoke / sweep did not reach the store."""


class LedgerReadError(RemoteCallError):
    """The ledger could not be read back from the store."""


class WeekdayResolutionError(RemoteCallError):
    """The server-authoritative weekday could not be obtained."""


# ── Client ────────────────────────────────────────────────────────────────────


class BuffStoreClient:
    """Async client for the ledger store and weekday procedures.

    Attributes:
        base_url: Backend root, e.g. ``"https://project.supabase.co"``.
        users_table: Table holding the ``active_buffs`` column.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        access_token: str = "",
        timeout_seconds: float = 10.0,
        users_table: str = "users",
        grant_procedure: str = "set_user_buff",
        revoke_procedure: str = "remove_user_buff",
        sweep_procedure: str = "clear_expired_buffs",
        weekday_procedure: str = "is_weekend_for_user",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("BuffStoreClient requires a base_url (set BUFF_ENGINE_REMOTE_URL).")
        self.base_url = base_url.rstrip("/")
        self.users_table = users_table
        self.grant_procedure = grant_procedure
        self.revoke_procedure = revoke_procedure
        self.sweep_procedure = sweep_procedure
        self.weekday_procedure = weekday_procedure

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        bearer = access_token or api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        remote: RemoteConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BuffStoreClient":
        """Build a client from the ``[remote]`` config section."""
        return cls(
            base_url=remote.base_url,
            api_key=remote.api_key,
            access_token=remote.access_token,
            timeout_seconds=remote.timeout_seconds,
            users_table=remote.users_table,
            grant_procedure=remote.grant_procedure,
            revoke_procedure=remote.revoke_procedure,
            sweep_procedure=remote.sweep_procedure,
            weekday_procedure=remote.weekday_procedure,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BuffStoreClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        name: str,
        error_cls: type[RemoteCallError],
        **kwargs: Any,
    ) -> Any:
        """Send one request; return decoded JSON (``None`` for empty bodies)."""
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise error_cls(f"{name} failed: {exc}", procedure=name) from exc

        if resp.is_error:
            detail = resp.text[:200]
            raise error_cls(
                f"{name} returned HTTP {resp.status_code}: {detail}",
                procedure=name,
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls(f"{name} returned invalid JSON: {exc}", procedure=name) from exc

    async def _rpc(
        self,
        procedure: str,
        params: dict[str, Any],
        error_cls: type[RemoteCallError],
    ) -> Any:
        return await self._request(
            "POST", f"/rest/v1/rpc/{procedure}", procedure, error_cls, json=params
        )

    # ── Ledger mutations ──────────────────────────────────────────────────────

    async def grant(
        self,
        user_id: str,
        buff_id: str,
        value: float,
        expires_at: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Add or replace ``buff_id`` in the user's ledger.

        Raises:
            LedgerMutationError: If the store did not accept the write.
        """
        await self._rpc(
            self.grant_procedure,
            {
                "p_user_id": user_id,
                "p_buff_id": buff_id,
                "p_value": value,
                "p_expires_at": None if expires_at is None else datetime_to_ms(expires_at),
                "p_metadata": metadata or {},
            },
            LedgerMutationError,
        )
        logger.info(
            "Granted buff %s to user %s (value=%s, expires=%s).",
            buff_id, user_id, value, expires_at.isoformat() if expires_at else "never",
            extra={"user_id": user_id, "buff_id": buff_id, "procedure": self.grant_procedure},
        )

    async def revoke(self, user_id: str, buff_id: str) -> None:
        """Remove ``buff_id`` from the user's ledger.

        Raises:
            LedgerMutationError: If the store did not accept the write.
        """
        await self._rpc(
            self.revoke_procedure,
            {"p_user_id": user_id, "p_buff_id": buff_id},
            LedgerMutationError,
        )
        logger.info(
            "Revoked buff %s from user %s.", buff_id, user_id,
            extra={"user_id": user_id, "buff_id": buff_id, "procedure": self.revoke_procedure},
        )

    async def sweep_expired(self, user_id: str) -> None:
        """Drop every entry whose expiry has passed (server clock).

        Raises:
            LedgerMutationError: If the store did not accept the write.
        """
        await self._rpc(self.sweep_procedure, {"p_user_id": user_id}, LedgerMutationError)
        logger.info(
            "Swept expired buffs for user %s.", user_id,
            extra={"user_id": user_id, "procedure": self.sweep_procedure},
        )

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def fetch_ledger(self, user_id: str) -> dict[str, LedgerEntry]:
        """Read the user's raw ledger, expired entries included.

        Raises:
            LedgerReadError: On transport/server failure, unknown user, or a
                malformed ledger row.
        """
        name = f"{self.users_table}.active_buffs"
        rows = await self._request(
            "GET",
            f"/rest/v1/{self.users_table}",
            name,
            LedgerReadError,
            params={"id": f"eq.{user_id}", "select": "active_buffs"},
        )
        if not isinstance(rows, list) or not rows:
            raise LedgerReadError(f"No ledger row for user {user_id}.", procedure=name)
        try:
            return parse_ledger(rows[0].get("active_buffs"))
        except (ValidationError, AttributeError, TypeError) as exc:
            raise LedgerReadError(
                f"Malformed ledger row for user {user_id}: {exc}", procedure=name
            ) from exc

    async def resolve_user_weekday(self, user_id: str) -> int:
        """Return the user's canonical weekday index (0 = Sunday).

        Raises:
            WeekdayResolutionError: On failure or a malformed response.
        """
        payload = await self._rpc(
            self.weekday_procedure, {"p_user_id": user_id}, WeekdayResolutionError
        )
        if isinstance(payload, list) and payload:
            payload = payload[0]
        if not isinstance(payload, dict):
            raise WeekdayResolutionError(
                f"{self.weekday_procedure} returned no weekday object.",
                procedure=self.weekday_procedure,
            )
        raw = payload.get("weekdayIndex", payload.get("dayOfWeek"))
        try:
            weekday = int(raw)
        except (TypeError, ValueError):
            raise WeekdayResolutionError(
                f"{self.weekday_procedure} returned non-integer weekday {raw!r}.",
                procedure=self.weekday_procedure,
            ) from None
        if not 0 <= weekday <= 6:
            raise WeekdayResolutionError(
                f"{self.weekday_procedure} returned out-of-range weekday {weekday}.",
                procedure=self.weekday_procedure,
            )
        return weekday
