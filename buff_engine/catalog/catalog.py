"""
Immutable buff catalog — the configuration object passed into the engine.

A ``BuffCatalog`` holds three collections loaded once at process start:

  event_buffs      date-ruled promotional bonuses (``EventBuff``)
  grantable_buffs  ledger-held bonuses (``GrantableBuff``)
  roles            per-role XP parameters (``RoleStats``)

Ids are unique across BOTH buff collections, so a ledger key resolves to
exactly one definition. Lookup order for a ledger key is grantable first,
then date-ruled.

There is no module-level registry: construct a catalog (directly or via
``buff_engine.catalog.loader.load_catalog``) and pass it where needed.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr, model_validator

from buff_engine.models.buff import EventBuff, GrantableBuff, RoleStats


class BuffCatalog(BaseModel):
    """Read-only registry of bonus definitions.

    Attributes:
        event_buffs: Date-ruled buffs in authoring order.
        grantable_buffs: Ledger-held buff definitions in authoring order.
        roles: Role id → ``RoleStats``.
    """

    model_config = ConfigDict(frozen=True)

    event_buffs: tuple[EventBuff, ...] = ()
    grantable_buffs: tuple[GrantableBuff, ...] = ()
    roles: dict[str, RoleStats] = {}

    _by_event_id: dict[str, EventBuff] = PrivateAttr(default_factory=dict)
    _by_grant_id: dict[str, GrantableBuff] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "BuffCatalog":
        """Reject any id used twice across both buff collections."""
        seen: set[str] = set()
        for buff in (*self.event_buffs, *self.grantable_buffs):
            if buff.id in seen:
                raise ValueError(f"Duplicate buff id '{buff.id}' in catalog.")
            seen.add(buff.id)
        return self

    def model_post_init(self, __context: object) -> None:
        self._by_event_id = {b.id: b for b in self.event_buffs}
        self._by_grant_id = {b.id: b for b in self.grantable_buffs}

    def get_event_buff(self, buff_id: str) -> Optional[EventBuff]:
        return self._by_event_id.get(buff_id)

    def get_grantable(self, buff_id: str) -> Optional[GrantableBuff]:
        return self._by_grant_id.get(buff_id)

    def resolve(self, buff_id: str) -> Optional[GrantableBuff | EventBuff]:
        """Return the definition a ledger key refers to, or ``None`` if unknown."""
        return self._by_grant_id.get(buff_id) or self._by_event_id.get(buff_id)

    def role_stats(self, role: str) -> RoleStats:
        """Return ``RoleStats`` for ``role``.

        Raises:
            KeyError: If the role is not configured.
        """
        try:
            return self.roles[role]
        except KeyError:
            raise KeyError(
                f"Unknown role '{role}'. Configured roles: {sorted(self.roles)}."
            ) from None

    @property
    def buff_ids(self) -> list[str]:
        return [*self._by_event_id, *self._by_grant_id]
