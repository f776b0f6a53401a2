"""
ASCII terminal formatters for CLI buff reports.

All formatters accept engine result objects and return plain multi-line
strings suitable for ``typer.echo()``. No third-party dependencies.

Every report starts with a header naming the evaluation instant so readers
can tell which local day the verdicts belong to::

  === Active Buffs ===
    At:   2025-11-22T10:00:00-05:00 (Saturday)
    Role: elf
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Optional

from buff_engine.engine.stacking import format_percent
from buff_engine.engine.xp import XpAward
from buff_engine.models.buff import EventBuff
from buff_engine.models.ledger import CombinedModifier, LedgerEntry, StackResult
from buff_engine.rules.resolver import start_date_text


# ── Helpers ──────────────────────────────────────────────────────────────────


def _header(title: str, at: datetime, role: Optional[str]) -> list[str]:
    lines = ["", f"=== {title} ===", f"  At:   {at.isoformat(timespec='seconds')} ({at:%A})"]
    if role:
        lines.append(f"  Role: {role}")
    return lines


def _buff_effect(buff: EventBuff) -> str:
    parts = []
    if buff.xp_multiplier > 1.0:
        parts.append(f"{format_percent(buff.xp_multiplier - 1.0)} XP")
    if buff.flat_xp_bonus:
        parts.append(f"+{buff.flat_xp_bonus} XP/session")
    return ", ".join(parts) or "no effect"


def _buff_rows(buffs: Sequence[EventBuff], with_start: bool = False) -> list[str]:
    header = f"    {'Id':<28}  {'Title':<24}  {'Effect':<22}  {'Rule':<12}"
    if with_start:
        header += f"  {'Starts':<16}"
    rows = [header, "    " + "-" * (len(header) - 4)]
    for buff in buffs:
        row = (
            f"    {buff.id[:28]:<28}  {buff.title[:24]:<24}  "
            f"{_buff_effect(buff)[:22]:<22}  {buff.date_rule.type:<12}"
        )
        if with_start:
            row += f"  {start_date_text(buff):<16}"
        rows.append(row)
    return rows


# ── Catalog reports ──────────────────────────────────────────────────────────


def format_active_buffs(
    buffs: Sequence[EventBuff],
    at: datetime,
    role: Optional[str] = None,
) -> str:
    """Table of catalog buffs active at ``at``."""
    lines = _header("Active Buffs", at, role)
    lines.append("")
    if not buffs:
        lines.append("  (no buffs active)")
        return "\n".join(lines)
    lines.extend(_buff_rows(buffs))
    return "\n".join(lines)


def format_upcoming_buffs(
    buffs: Sequence[EventBuff],
    at: datetime,
    hours: float,
    role: Optional[str] = None,
) -> str:
    """Table of catalog buffs starting within the preview horizon."""
    lines = _header("Upcoming Buffs", at, role)
    lines.append(f"  Horizon: {hours:g}h (per-buff previewHours wins)")
    lines.append("")
    if not buffs:
        lines.append("  (nothing upcoming)")
        return "\n".join(lines)
    lines.extend(_buff_rows(buffs, with_start=True))
    return "\n".join(lines)


# ── Stack reports ────────────────────────────────────────────────────────────


def format_ledger(entries: Mapping[str, LedgerEntry], at: datetime) -> str:
    """List ledger entries with their expiry status at ``at``."""
    lines = ["", "=== Ledger ===", f"  At: {at.isoformat(timespec='seconds')}", ""]
    if not entries:
        lines.append("  (ledger is empty)")
        return "\n".join(lines)
    for buff_id, entry in entries.items():
        if entry.expires_at is None:
            status = "permanent"
        elif entry.is_expired(at):
            status = f"EXPIRED {entry.expires_at.isoformat(timespec='seconds')}"
        else:
            status = f"until {entry.expires_at.isoformat(timespec='seconds')}"
        lines.append(f"    {buff_id:<28}  {format_percent(entry.value):>6}  {status}")
    return "\n".join(lines)


def format_stack(result: StackResult) -> str:
    """One line per applied ledger contribution plus the total."""
    lines = ["", "  Ledger stack (additive):"]
    if not result.explanations:
        lines.append("    (no ledger buffs applied)")
    for text in result.explanations:
        lines.append(f"    {text}")
    lines.append(f"    Total: x{result.total_modifier:.2f}")
    return "\n".join(lines)


def format_combined(
    combined: CombinedModifier,
    at: datetime,
    role: str,
    award: Optional[XpAward] = None,
) -> str:
    """Full breakdown: catalog product, ledger stack, net multiplier."""
    lines = _header("Buff Stack", at, role)
    lines.append("")
    lines.append("  Catalog buffs (multiplicative):")
    if not combined.catalog_buffs:
        lines.append("    (no catalog buffs active)")
    for buff in combined.catalog_buffs:
        lines.append(f"    {buff.title}: {_buff_effect(buff)}")
    lines.append(f"    Product: x{combined.catalog_multiplier:.2f}")
    lines.append(format_stack(combined.ledger))
    lines.append("")
    lines.append(f"  Net multiplier: x{combined.net_multiplier:.4f}")
    if combined.flat_xp_bonus:
        lines.append(f"  Flat bonus:     +{combined.flat_xp_bonus} XP")
    if award is not None:
        lines.append(f"  XP awarded:     {award.xp_gained}")
        for bonus in award.bonuses:
            lines.append(f"    {bonus}")
    return "\n".join(lines)
