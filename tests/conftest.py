"""
Shared pytest fixtures for the buff engine test suite.

Provides:
  - ``catalog``: the committed ``config/buffs/catalog.json`` catalog.
  - ``scenario_catalog``: a small hand-built catalog (weekend bonus, an
    all-roles ledger buff, an elf-only promotion).
  - ``backend`` / ``store``: an in-memory fake of the remote procedures
    served through ``httpx.MockTransport``, and a client wired to it.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo

import httpx
import pytest

from buff_engine.catalog.catalog import BuffCatalog
from buff_engine.catalog.loader import catalog_from_dict, load_catalog
from buff_engine.models.ledger import datetime_to_ms
from buff_engine.store.client import BuffStoreClient

PROJECT_ROOT = Path(__file__).parent.parent
NY = ZoneInfo("America/New_York")


def ny(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> datetime:
    """Aware New York wall-clock instant."""
    return datetime(year, month, day, hour, minute, tzinfo=NY)


# ── Catalog fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def catalog() -> BuffCatalog:
    """The committed catalog file."""
    return load_catalog(PROJECT_ROOT / "config" / "buffs" / "catalog.json")


@pytest.fixture
def scenario_catalog_dict() -> dict[str, Any]:
    return {
        "eventBuffs": [
            {
                "id": "weekend_bonus",
                "title": "Weekend Bonus",
                "xpMultiplier": 1.25,
                "dateRule": {"type": "dayOfWeek", "days": [0, 6]},
            },
            {
                "id": "elf_week",
                "title": "Elf Week",
                "xpMultiplier": 1.5,
                "roles": ["elf"],
                "dateRule": {"type": "dateRange", "startDate": "2025-11-24", "endDate": "2025-11-30"},
            },
        ],
        "grantableBuffs": [
            {"id": "special_event", "name": "Special Event", "xpBonus": 0.25},
            {
                "id": "day10_boost",
                "name": "+25% XP Boost",
                "xpBonus": 0.25,
                "grantDurationHours": 24,
            },
            {
                "id": "elf_slingshot",
                "name": "Elven Slingshot",
                "xpBonus": 0.25,
                "roles": ["elf"],
                "autoGrant": True,
                "promotionWindow": {
                    "start": "2025-11-22T00:00:00Z",
                    "end": "2025-11-24T00:00:00Z",
                },
            },
        ],
        "roles": {
            "elf": {"xpBonus": 0.5, "streakBonus": 0.1, "maxStreakBonus": 2.0},
            "human": {"criticalChance": 0.25, "criticalMultiplier": 2.0, "prestigeXPBonus": 0.1},
        },
    }


@pytest.fixture
def scenario_catalog(scenario_catalog_dict) -> BuffCatalog:
    return catalog_from_dict(scenario_catalog_dict)


# ── Fake backend ──────────────────────────────────────────────────────────────

class FakeBackend:
    """In-memory stand-in for the PostgREST procedures.

    Attributes:
        ledgers: ``{user_id: {buff_id: {value, expires_at, metadata}}}``.
        weekday: Value returned by the weekday procedure.
        fail_with: When set, every request fails this way: an ``int`` is
            returned as the HTTP status, an exception instance is raised.
        now: Server clock used by the sweep procedure.
        requests: Every request received, in order.
    """

    def __init__(self) -> None:
        self.ledgers: dict[str, dict[str, dict[str, Any]]] = {}
        self.weekday: Any = 6
        self.fail_with: Optional[int | Exception] = None
        self.now: datetime = datetime(2025, 11, 22, 15, 0, tzinfo=timezone.utc)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if isinstance(self.fail_with, int):
            return httpx.Response(self.fail_with, json={"message": "backend unavailable"})

        path = request.url.path
        if request.method == "GET" and path == "/rest/v1/users":
            user_id = request.url.params["id"].removeprefix("eq.")
            if user_id not in self.ledgers:
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[{"active_buffs": self.ledgers[user_id]}])

        params = json.loads(request.content or b"{}")
        procedure = path.rsplit("/", 1)[-1]
        user = params.get("p_user_id")
        if procedure == "set_user_buff":
            self.ledgers.setdefault(user, {})[params["p_buff_id"]] = {
                "value": params["p_value"],
                "expires_at": params["p_expires_at"],
                "metadata": params["p_metadata"],
            }
            return httpx.Response(204)
        if procedure == "remove_user_buff":
            self.ledgers.setdefault(user, {}).pop(params["p_buff_id"], None)
            return httpx.Response(204)
        if procedure == "clear_expired_buffs":
            now_ms = datetime_to_ms(self.now)
            ledger = self.ledgers.setdefault(user, {})
            for buff_id in [
                k for k, v in ledger.items()
                if v.get("expires_at") is not None and v["expires_at"] <= now_ms
            ]:
                del ledger[buff_id]
            return httpx.Response(204)
        if procedure == "is_weekend_for_user":
            return httpx.Response(
                200,
                json={"isWeekend": self.weekday in (0, 6), "dayOfWeek": self.weekday,
                      "timezone": "America/New_York"},
            )
        return httpx.Response(404, json={"message": f"unknown procedure {procedure}"})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store(backend) -> BuffStoreClient:
    return BuffStoreClient(
        "https://backend.test",
        api_key="anon-key",
        access_token="user-token",
        transport=httpx.MockTransport(backend.handler),
    )
