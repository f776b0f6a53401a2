"""
Ledger entry and stacking result types.

``LedgerEntry`` mirrors one value of the remote ``active_buffs`` JSON object::

    {
      "day10_boost":     {"value": 0.25, "expires_at": 1732223400000, "metadata": {}},
      "slingshot_nov22": {"value": 0.25, "expires_at": null}
    }

``expires_at`` travels as epoch milliseconds (``null`` = permanent) and is
held as a timezone-aware UTC ``datetime``. The camelCase ``expiresAt`` key
used by older clients is accepted as well.

``StackResult`` and ``CombinedModifier`` are derived values, recomputed on
demand and never persisted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)

from buff_engine.models.buff import EventBuff, GrantableBuff


def ms_to_datetime(ms: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC ``datetime``."""
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def datetime_to_ms(dt: datetime) -> int:
    """Convert an aware ``datetime`` to epoch milliseconds."""
    return int(round(dt.timestamp() * 1000))


class LedgerEntry(BaseModel):
    """One granted bonus held in a user's ledger.

    Attributes:
        value: Additive modifier (0.25 = +25%).
        expires_at: Expiry instant (UTC); ``None`` = permanent.
        metadata: Opaque key/value bag written by the granting flow.
    """

    model_config = ConfigDict(frozen=True)

    value: float
    expires_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("expires_at", "expiresAt"),
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expiry(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("expires_at must be epoch milliseconds, a datetime, or null.")
        if isinstance(v, (int, float)):
            return ms_to_datetime(v)
        return v

    @field_validator("expires_at")
    @classmethod
    def require_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_serializer("expires_at")
    def serialize_expiry(self, v: Optional[datetime]) -> Optional[int]:
        return None if v is None else datetime_to_ms(v)

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once ``expires_at`` has been reached."""
        return self.expires_at is not None and self.expires_at <= now


def parse_ledger(raw: Optional[Mapping[str, Any]]) -> dict[str, LedgerEntry]:
    """Build an insertion-ordered ``{buff_id: LedgerEntry}`` map from wire JSON.

    ``None`` (no column value yet) yields an empty ledger.
    """
    if not raw:
        return {}
    return {
        str(buff_id): entry if isinstance(entry, LedgerEntry) else LedgerEntry.model_validate(entry)
        for buff_id, entry in raw.items()
    }


@dataclass(frozen=True)
class StackResult:
    """Outcome of folding ledger entries into one additive modifier.

    Attributes:
        total_modifier: ``1.0`` plus every applied entry's value.
        contributing_buffs: Definitions actually applied, in ledger order.
        explanations: ``"+25% <name>"`` strings, same order.
    """

    total_modifier: float = 1.0
    contributing_buffs: tuple[GrantableBuff | EventBuff, ...] = ()
    explanations: tuple[str, ...] = ()


@dataclass(frozen=True)
class CombinedModifier:
    """Catalog (date-ruled) bonuses combined with the ledger stack.

    Attributes:
        catalog_multiplier: Product of active catalog ``xp_multiplier`` values.
        flat_xp_bonus: Sum of active catalog ``flat_xp_bonus`` values.
        catalog_buffs: Active catalog buffs applicable to the role.
        ledger: The additive ledger ``StackResult``.
        explanations: Catalog contributions followed by ledger contributions.
    """

    catalog_multiplier: float = 1.0
    flat_xp_bonus: int = 0
    catalog_buffs: tuple[EventBuff, ...] = ()
    ledger: StackResult = field(default_factory=StackResult)
    explanations: tuple[str, ...] = ()

    @property
    def net_multiplier(self) -> float:
        """Multiplier consumed by the XP award: catalog product × ledger total."""
        return self.catalog_multiplier * self.ledger.total_modifier
