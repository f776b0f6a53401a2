"""
Bonus definitions — the static records a ``BuffCatalog`` is built from.

``EventBuff`` is a date-ruled promotional bonus (weekend boost, holiday
week). Its ``date_rule`` decides activation; ``duration_hours`` narrows the
effect to a sub-day (or multi-day) window starting at the local midnight of
the day the rule fired.

``GrantableBuff`` is a bonus that exists only when written into a user's
ledger (daily-gift boost, event slingshot). Its optional
``promotion_window`` gates the grant without expiring it: an entry outside
the window stays in storage but contributes nothing.

``RoleStats`` carries the per-role XP parameters consumed by the XP award
calculation.

Key method on both buff types: ``applies_to(role)``
  ``roles`` of ``None`` (or empty) means "all roles".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from buff_engine.models.rules import AnyDateRule, parse_date_rule
from buff_engine.taxonomy.buff_taxonomy import BuffCategory


class EventBuff(BaseModel):
    """A catalog bonus activated by a declarative date rule.

    Attributes:
        id: Globally unique machine identifier, e.g. ``"weekend_warrior"``.
        title: Display name, e.g. ``"Weekend Warrior"``.
        description: One-line display text.
        emoji: Display glyph.
        icon: Optional asset path for a custom icon.
        xp_multiplier: Multiplicative modifier (1.25 = +25%); >= 1.0.
        flat_xp_bonus: Flat XP added per award after multipliers.
        date_rule: The single rule deciding activation.
        duration_hours: Optional effect window length from rule-day midnight.
        preview_hours: How far ahead the buff is announced as "upcoming";
            ``None`` uses the caller's default.
        roles: Role ids allowed to receive this buff; ``None`` = all roles.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    description: str = ""
    emoji: str = ""
    icon: Optional[str] = Field(default=None, alias="iconSrc")
    xp_multiplier: float = Field(default=1.0, alias="xpMultiplier")
    flat_xp_bonus: int = Field(default=0, ge=0, alias="flatXPBonus")
    date_rule: AnyDateRule = Field(alias="dateRule")
    duration_hours: Optional[float] = Field(default=None, alias="durationHours")
    preview_hours: Optional[float] = Field(default=None, ge=0, alias="previewHours")
    roles: Optional[frozenset[str]] = None

    @field_validator("date_rule", mode="before")
    @classmethod
    def build_rule(cls, v: Any) -> AnyDateRule:
        return parse_date_rule(v)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Buff id must be a non-empty string.")
        return v

    @field_validator("xp_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"xp_multiplier must be >= 1.0 (1.0 = no boost), got {v}.")
        return v

    @field_validator("duration_hours")
    @classmethod
    def validate_duration(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"duration_hours must be > 0 when set, got {v}.")
        return v

    def applies_to(self, role: str) -> bool:
        """Return ``True`` if ``role`` may receive this buff."""
        return not self.roles or role in self.roles


class PromotionWindow(BaseModel):
    """UTC instants bounding a promotion; ``start`` inclusive, ``end`` exclusive."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def require_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("Promotion window instants must be timezone-aware.")
        return v

    @model_validator(mode="after")
    def validate_ordering(self) -> "PromotionWindow":
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be after start ({self.start}).")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class GrantableBuff(BaseModel):
    """A bonus that applies only while present in a user's ledger.

    Attributes:
        id: Ledger key, e.g. ``"day10_boost"``.
        name: Display name used in stacking explanations.
        description: One-line display text.
        icon: Display glyph.
        category: Lifetime class (``event`` for time-limited grants).
        xp_bonus: Default additive value written by a grant (0.25 = +25%).
        roles: Role ids allowed to benefit; ``None`` = all roles.
        promotion_window: Optional UTC window outside which a held grant is
            kept but not applied.
        grant_duration_hours: Default lifetime of a claimed grant;
            ``None`` = permanent.
        auto_grant: Grant automatically once the promotion has started.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: BuffCategory = BuffCategory.EVENT
    xp_bonus: float = Field(default=0.0, alias="xpBonus")
    roles: Optional[frozenset[str]] = None
    promotion_window: Optional[PromotionWindow] = Field(default=None, alias="promotionWindow")
    grant_duration_hours: Optional[float] = Field(default=None, alias="grantDurationHours")
    auto_grant: bool = Field(default=False, alias="autoGrant")

    @field_validator("grant_duration_hours")
    @classmethod
    def validate_duration(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"grant_duration_hours must be > 0 when set, got {v}.")
        return v

    def applies_to(self, role: str) -> bool:
        """Return ``True`` if ``role`` may benefit from this buff."""
        return not self.roles or role in self.roles

    def is_promotion_open(self, instant: datetime) -> bool:
        """Return ``True`` when no window is set or ``instant`` falls inside it."""
        return self.promotion_window is None or self.promotion_window.contains(instant)


class RoleStats(BaseModel):
    """Per-role XP parameters.

    Fields irrelevant to a role are left at their neutral defaults.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base_xp_multiplier: float = Field(default=1.0, alias="baseXPMultiplier")
    xp_bonus: float = Field(default=0.0, alias="xpBonus")
    critical_chance: float = Field(default=0.0, ge=0.0, le=1.0, alias="criticalChance")
    critical_multiplier: float = Field(default=1.0, ge=1.0, alias="criticalMultiplier")
    streak_bonus: float = Field(default=0.0, ge=0.0, alias="streakBonus")
    max_streak_bonus: Optional[float] = Field(default=None, alias="maxStreakBonus")
    prestige_xp_bonus: float = Field(default=0.0, ge=0.0, alias="prestigeXPBonus")
