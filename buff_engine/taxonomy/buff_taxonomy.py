"""
Buff taxonomy for the XP bonus engine.

Three small vocabularies describe every bonus:
  - ``RuleKind``     — the *when*: which recurrence shape decides activation?
  - ``RoleType``     — the *who*:  which player archetype can receive it?
  - ``BuffCategory`` — the *how long*: permanent, time-limited event, or proc?

Usage example::

    from buff_engine.taxonomy.buff_taxonomy import RuleKind, RoleType

    kind = RuleKind.DAY_OF_WEEK
    role = RoleType.ELF

This module has NO imports from any other ``buff_engine`` package.
"""

from enum import StrEnum


class RuleKind(StrEnum):
    """Tag of a declarative date rule, as written in the catalog JSON."""

    DAY_OF_WEEK = "dayOfWeek"
    """Recurring weekly pattern (weekends, specific weekdays)."""

    SPECIFIC_DATE = "specificDate"
    """Exactly one calendar day."""

    DATE_RANGE = "dateRange"
    """Inclusive span of days, optionally recurring every year."""

    MONTH_DAY = "monthDay"
    """Yearly anchor with a symmetric window of days around it."""

    CYCLE = "cycle"
    """Repeating interval anchored on a reference date."""


class RoleType(StrEnum):
    """Player archetype that scopes which bonuses apply."""

    ELF = "elf"
    """Consistency role: flat XP/min bonus and streak growth."""

    HUMAN = "human"
    """Risk role: critical rolls and prestige scaling."""


class BuffCategory(StrEnum):
    """Lifetime class of a bonus."""

    PERMANENT = "permanent"
    EVENT = "event"
    PROC = "proc"
