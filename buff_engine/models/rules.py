"""
Declarative date rules — the tagged union every catalog bonus carries.

Each variant is a frozen Pydantic model with a literal ``type`` tag matching
the catalog JSON (``"dayOfWeek"``, ``"specificDate"``, ``"dateRange"``,
``"monthDay"``, ``"cycle"``). ``DateRule`` is the discriminated union of the
five known shapes; ``parse_date_rule`` additionally maps an unrecognised tag
onto ``UnknownRule`` so one bad catalog record evaluates to "not active"
instead of failing the whole catalog.

Catalog JSON uses camelCase keys (``startDate``, ``yearlyRecur``,
``daysAround``, ``intervalDays`` …); the models accept both those aliases and
the snake_case field names.

Day-of-week indices follow the catalog convention: 0 = Sunday … 6 = Saturday.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from buff_engine.taxonomy.buff_taxonomy import RuleKind

logger = logging.getLogger(__name__)


class DayOfWeekRule(BaseModel):
    """Matches when the local weekday index is in ``days``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["dayOfWeek"] = "dayOfWeek"
    days: frozenset[int]

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: frozenset[int]) -> frozenset[int]:
        bad = sorted(d for d in v if not 0 <= d <= 6)
        if bad:
            raise ValueError(f"Day indices must be in 0..6 (0=Sunday), got {bad}.")
        return v


class SpecificDateRule(BaseModel):
    """Matches exactly one calendar day (``target``, JSON key ``date``)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["specificDate"] = "specificDate"
    target: date = Field(alias="date")


class DateRangeRule(BaseModel):
    """Matches an inclusive span of calendar days.

    With ``yearly_recurring`` the month/day of both bounds are projected onto
    the query year, and a projected end before the projected start means the
    span wraps across New Year (e.g. Dec 25 – Jan 5).

    Attributes:
        start: First day of the span (inclusive).
        end: Last day of the span (inclusive).
        yearly_recurring: Ignore the bound years and repeat every year.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["dateRange"] = "dateRange"
    start: date = Field(alias="startDate")
    end: date = Field(alias="endDate")
    yearly_recurring: bool = Field(default=False, alias="yearlyRecur")

    @model_validator(mode="after")
    def validate_ordering(self) -> "DateRangeRule":
        """A one-off range must not end before it starts."""
        if not self.yearly_recurring and self.end < self.start:
            raise ValueError(f"end ({self.end}) must be >= start ({self.start}).")
        return self


class MonthDayRule(BaseModel):
    """Matches ``days_around`` days either side of a month/day in the query year."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["monthDay"] = "monthDay"
    month: int = Field(ge=1, le=12)
    day: int = Field(ge=1, le=31)
    days_around: int = Field(default=0, ge=0, alias="daysAround")


class CycleRule(BaseModel):
    """Matches the first ``duration_days`` of every ``interval_days`` cycle.

    Attributes:
        reference_date: Day zero of the cycle (JSON key ``startDate``).
        interval_days: Cycle length in days (>= 1).
        duration_days: Active days at the start of each cycle (>= 1).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["cycle"] = "cycle"
    reference_date: date = Field(alias="startDate")
    interval_days: int = Field(ge=1, alias="intervalDays")
    duration_days: int = Field(ge=1, alias="durationDays")


class UnknownRule(BaseModel):
    """Placeholder for a catalog rule whose tag is not recognised.

    Never matches. Keeps the raw payload for diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    raw: dict[str, Any] = Field(default_factory=dict)


DateRule = Annotated[
    Union[DayOfWeekRule, SpecificDateRule, DateRangeRule, MonthDayRule, CycleRule],
    Field(discriminator="type"),
]

# Field annotation for models that may hold a malformed rule.
AnyDateRule = Union[
    DayOfWeekRule, SpecificDateRule, DateRangeRule, MonthDayRule, CycleRule, UnknownRule
]

_DATE_RULE_ADAPTER: TypeAdapter = TypeAdapter(DateRule)

KNOWN_RULE_TAGS: frozenset[str] = frozenset(k.value for k in RuleKind)


def parse_date_rule(raw: Any) -> AnyDateRule:
    """Build a rule model from a catalog dict (or pass a model through).

    An unrecognised ``type`` tag yields ``UnknownRule`` and a warning.
    A recognised tag with invalid fields still raises
    ``pydantic.ValidationError``.
    """
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict):
        raise ValueError(f"Date rule must be an object, got {type(raw).__name__}.")
    tag = str(raw.get("type", ""))
    if tag not in KNOWN_RULE_TAGS:
        logger.warning("Unrecognised date rule type '%s' — rule will never match.", tag)
        return UnknownRule(type=tag, raw=dict(raw))
    return _DATE_RULE_ADAPTER.validate_python(raw)
