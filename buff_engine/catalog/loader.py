"""
Catalog loader: JSON → ``BuffCatalog``.

Responsibilities
----------------
1. Read ``config/buffs/catalog.json`` (or any catalog JSON).
2. Check record-level structure (ids present and unique) with index-aware
   error messages before Pydantic validation runs.
3. Build the frozen ``BuffCatalog``.

File format
-----------
::

    {
      "eventBuffs": [
        {"id": "weekend_warrior", "title": "Weekend Warrior",
         "xpMultiplier": 1.25, "dateRule": {"type": "dayOfWeek", "days": [0, 6]}}
      ],
      "grantableBuffs": [
        {"id": "day10_boost", "name": "+25% XP Boost", "xpBonus": 0.25,
         "grantDurationHours": 24}
      ],
      "roles": {
        "elf":   {"xpBonus": 0.5, "streakBonus": 0.1, "maxStreakBonus": 2.0},
        "human": {"criticalChance": 0.25, "criticalMultiplier": 2.0}
      }
    }

Validation rules
----------------
- Every buff record needs a non-empty ``id``.
- Ids are unique across ``eventBuffs`` and ``grantableBuffs`` combined.
- A ``dateRule`` with an unrecognised ``type`` is NOT an error: it loads as
  ``UnknownRule`` (never active) and a warning is logged.
- Everything else (``durationHours > 0``, day indices 0..6, range ordering …)
  is enforced by the Pydantic models and raises ``ValidationError``.

Usage
-----
    from buff_engine.catalog.loader import load_catalog

    catalog = load_catalog(Path("config/buffs/catalog.json"))
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from buff_engine.catalog.catalog import BuffCatalog
from buff_engine.models.buff import EventBuff, GrantableBuff, RoleStats
from buff_engine.models.rules import UnknownRule

log = logging.getLogger(__name__)


# ── Validation ────────────────────────────────────────────────────────────────

def _validate_records(records: list[dict[str, Any]], section: str, seen: set[str]) -> None:
    """Raise ValueError for missing or duplicate ids within one section."""
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise ValueError(f"{section}[{i}] must be an object.")
        buff_id = rec.get("id")
        if not buff_id:
            raise ValueError(f"{section}[{i}] is missing 'id' field.")
        if buff_id in seen:
            raise ValueError(f"Duplicate buff id '{buff_id}' at {section}[{i}].")
        seen.add(buff_id)


# ── Builders ──────────────────────────────────────────────────────────────────

def catalog_from_dict(raw: dict[str, Any]) -> BuffCatalog:
    """Build a ``BuffCatalog`` from an already-parsed catalog document.

    Raises:
        ValueError: On structural errors (missing/duplicate ids).
        pydantic.ValidationError: On invalid field values.
    """
    if not isinstance(raw, dict):
        raise ValueError("Catalog document must be a JSON object.")

    event_records = list(raw.get("eventBuffs", []))
    grant_records = list(raw.get("grantableBuffs", []))
    seen: set[str] = set()
    _validate_records(event_records, "eventBuffs", seen)
    _validate_records(grant_records, "grantableBuffs", seen)

    event_buffs = tuple(EventBuff.model_validate(rec) for rec in event_records)
    grantable_buffs = tuple(GrantableBuff.model_validate(rec) for rec in grant_records)
    roles = {
        str(role): RoleStats.model_validate(stats or {})
        for role, stats in dict(raw.get("roles", {})).items()
    }

    malformed = [b.id for b in event_buffs if isinstance(b.date_rule, UnknownRule)]
    if malformed:
        log.warning("Catalog buffs with unrecognised date rules (never active): %s", malformed)

    catalog = BuffCatalog(
        event_buffs=event_buffs,
        grantable_buffs=grantable_buffs,
        roles=roles,
    )
    log.info(
        "Loaded catalog: %d event buff(s), %d grantable buff(s), %d role(s).",
        len(event_buffs), len(grantable_buffs), len(roles),
    )
    return catalog


def load_catalog(path: Path) -> BuffCatalog:
    """Load and validate a catalog JSON file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: On JSON syntax or structural errors.
        pydantic.ValidationError: On invalid field values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Catalog JSON parse error in {path}: {exc}") from exc
    return catalog_from_dict(raw)
