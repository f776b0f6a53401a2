"""Tests for buff_engine.reporting.formatters."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from buff_engine.engine.xp import XpAward
from buff_engine.models.buff import EventBuff
from buff_engine.models.ledger import CombinedModifier, LedgerEntry, StackResult
from buff_engine.reporting.formatters import (
    format_active_buffs,
    format_combined,
    format_ledger,
    format_stack,
    format_upcoming_buffs,
)

SATURDAY = datetime(2025, 11, 22, 12, 0, tzinfo=ZoneInfo("America/New_York"))


# ── format_active_buffs / format_upcoming_buffs ───────────────────────────────


def test_active_buffs_header_names_local_day(scenario_catalog) -> None:
    """Header carries the instant, its weekday, and the role."""
    text = format_active_buffs([scenario_catalog.get_event_buff("weekend_bonus")], SATURDAY, "elf")
    assert "=== Active Buffs ===" in text
    assert "2025-11-22T12:00:00-05:00 (Saturday)" in text
    assert "Role: elf" in text
    assert "weekend_bonus" in text
    assert "+25% XP" in text
    assert "dayOfWeek" in text


def test_active_buffs_empty() -> None:
    text = format_active_buffs([], SATURDAY)
    assert "(no buffs active)" in text
    assert "Role:" not in text


def test_flat_bonus_effect() -> None:
    buff = EventBuff.model_validate(
        {
            "id": "launch_day",
            "title": "Launch Day",
            "flatXPBonus": 15,
            "dateRule": {"type": "specificDate", "date": "2025-12-10"},
        }
    )
    text = format_upcoming_buffs([buff], SATURDAY, 48)
    assert "+15 XP/session" in text
    assert "10 of December" in text


def test_upcoming_buffs_horizon_and_start(scenario_catalog) -> None:
    text = format_upcoming_buffs([scenario_catalog.get_event_buff("elf_week")], SATURDAY, 48)
    assert "Horizon: 48h" in text
    assert "Starts" in text
    assert "24 of November" in text


def test_upcoming_buffs_empty() -> None:
    assert "(nothing upcoming)" in format_upcoming_buffs([], SATURDAY, 12.5)
    assert "Horizon: 12.5h" in format_upcoming_buffs([], SATURDAY, 12.5)


# ── format_ledger / format_stack ──────────────────────────────────────────────


def test_ledger_statuses() -> None:
    entries = {
        "special_event": LedgerEntry(value=0.25),
        "day10_boost": LedgerEntry(value=0.25, expires_at=SATURDAY + timedelta(hours=2)),
        "old_gift": LedgerEntry(value=0.1, expires_at=SATURDAY - timedelta(hours=2)),
    }
    text = format_ledger(entries, SATURDAY)
    lines = text.splitlines()
    assert any("special_event" in line and "permanent" in line for line in lines)
    assert any("day10_boost" in line and "until" in line for line in lines)
    assert any("old_gift" in line and "EXPIRED" in line and "+10%" in line for line in lines)


def test_ledger_empty() -> None:
    assert "(ledger is empty)" in format_ledger({}, SATURDAY)


def test_stack_lines_and_total() -> None:
    result = StackResult(total_modifier=1.5, explanations=("+25% Special Event", "+25% +25% XP Boost"))
    text = format_stack(result)
    assert "    +25% Special Event" in text
    assert "Total: x1.50" in text


def test_stack_nothing_applied() -> None:
    text = format_stack(StackResult())
    assert "(no ledger buffs applied)" in text
    assert "Total: x1.00" in text


# ── format_combined ───────────────────────────────────────────────────────────


def test_combined_breakdown(scenario_catalog) -> None:
    combined = CombinedModifier(
        catalog_multiplier=1.25,
        catalog_buffs=(scenario_catalog.get_event_buff("weekend_bonus"),),
        ledger=StackResult(total_modifier=1.25, explanations=("+25% Special Event",)),
    )
    text = format_combined(combined, SATURDAY, "human")
    assert "Weekend Bonus: +25% XP" in text
    assert "Product: x1.25" in text
    assert "Net multiplier: x1.5625" in text
    assert "Flat bonus" not in text
    assert "XP awarded" not in text


def test_combined_with_award() -> None:
    award = XpAward(xp_gained=46, critical_success=False, bonuses=("+15 XP Event Buffs",))
    text = format_combined(CombinedModifier(flat_xp_bonus=15), SATURDAY, "elf", award)
    assert "(no catalog buffs active)" in text
    assert "Flat bonus:     +15 XP" in text
    assert "XP awarded:     46" in text
    assert "    +15 XP Event Buffs" in text
