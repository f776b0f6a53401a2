"""Tests for date rule, buff definition, and ledger models."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from buff_engine.models.buff import EventBuff, GrantableBuff, PromotionWindow, RoleStats
from buff_engine.models.ledger import (
    CombinedModifier,
    LedgerEntry,
    StackResult,
    datetime_to_ms,
    ms_to_datetime,
    parse_ledger,
)
from buff_engine.models.rules import (
    CycleRule,
    DateRangeRule,
    DayOfWeekRule,
    SpecificDateRule,
    UnknownRule,
    parse_date_rule,
)

T0 = datetime(2025, 11, 22, 15, 0, tzinfo=timezone.utc)


class TestDateRuleParsing:
    def test_camel_case_aliases(self):
        rule = parse_date_rule(
            {"type": "dateRange", "startDate": "2025-12-25", "endDate": "2026-01-05", "yearlyRecur": True}
        )
        assert isinstance(rule, DateRangeRule)
        assert rule.start == date(2025, 12, 25)
        assert rule.yearly_recurring is True

    def test_specific_date_key(self):
        rule = parse_date_rule({"type": "specificDate", "date": "2026-11-27"})
        assert isinstance(rule, SpecificDateRule)
        assert rule.target == date(2026, 11, 27)

    def test_unknown_tag_becomes_unknown_rule(self):
        rule = parse_date_rule({"type": "fullMoon", "phase": 1})
        assert isinstance(rule, UnknownRule)
        assert rule.type == "fullMoon"
        assert rule.raw["phase"] == 1

    def test_missing_tag_becomes_unknown_rule(self):
        assert isinstance(parse_date_rule({"days": [0]}), UnknownRule)

    def test_known_tag_with_bad_fields_raises(self):
        with pytest.raises(ValidationError):
            parse_date_rule({"type": "cycle", "startDate": "2025-11-01", "intervalDays": 0, "durationDays": 1})

    def test_non_object_raises(self):
        with pytest.raises(ValueError, match="must be an object"):
            parse_date_rule(["dayOfWeek"])

    def test_day_index_out_of_range_raises(self):
        with pytest.raises(ValidationError, match="0..6"):
            DayOfWeekRule(days=frozenset({7}))

    def test_one_off_range_must_be_ordered(self):
        with pytest.raises(ValidationError, match="must be >= start"):
            DateRangeRule(startDate=date(2026, 1, 5), endDate=date(2025, 12, 25))

    def test_recurring_range_may_wrap(self):
        rule = DateRangeRule(startDate=date(2026, 12, 25), endDate=date(2026, 1, 5), yearlyRecur=True)
        assert rule.end < rule.start

    def test_cycle_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            CycleRule(startDate=date(2025, 11, 1), intervalDays=7, durationDays=0)


class TestEventBuff:
    def test_catalog_record(self):
        buff = EventBuff.model_validate({
            "id": "weekend_warrior",
            "title": "Weekend Warrior",
            "iconSrc": "assets/weekend.svg",
            "xpMultiplier": 1.25,
            "previewHours": 12,
            "dateRule": {"type": "dayOfWeek", "days": [0, 6]},
        })
        assert buff.icon == "assets/weekend.svg"
        assert buff.xp_multiplier == 1.25
        assert buff.date_rule.days == frozenset({0, 6})
        assert buff.duration_hours is None

    def test_multiplier_below_one_raises(self):
        with pytest.raises(ValidationError, match="xp_multiplier"):
            EventBuff(id="x", title="X", xp_multiplier=0.9, date_rule={"type": "dayOfWeek", "days": [0]})

    @pytest.mark.parametrize("hours", [0, -1])
    def test_non_positive_duration_raises(self, hours):
        with pytest.raises(ValidationError, match="duration_hours"):
            EventBuff(id="x", title="X", duration_hours=hours, date_rule={"type": "dayOfWeek", "days": [0]})

    def test_blank_id_raises(self):
        with pytest.raises(ValidationError, match="non-empty"):
            EventBuff(id="  ", title="X", date_rule={"type": "dayOfWeek", "days": [0]})

    def test_role_restriction(self):
        buff = EventBuff(id="x", title="X", roles=["elf"], date_rule={"type": "dayOfWeek", "days": [0]})
        assert buff.applies_to("elf") is True
        assert buff.applies_to("human") is False

    def test_no_restriction_applies_to_all(self):
        buff = EventBuff(id="x", title="X", date_rule={"type": "dayOfWeek", "days": [0]})
        assert buff.applies_to("human") is True

    def test_is_frozen(self):
        buff = EventBuff(id="x", title="X", date_rule={"type": "dayOfWeek", "days": [0]})
        with pytest.raises(ValidationError):
            buff.xp_multiplier = 2.0


class TestGrantableBuff:
    def test_promotion_window_gate(self):
        buff = GrantableBuff.model_validate({
            "id": "slingshot",
            "name": "Elven Slingshot",
            "xpBonus": 0.25,
            "promotionWindow": {"start": "2025-11-22T00:00:00Z", "end": "2025-11-24T00:00:00Z"},
        })
        assert buff.is_promotion_open(datetime(2025, 11, 22, tzinfo=timezone.utc)) is True
        assert buff.is_promotion_open(datetime(2025, 11, 23, 23, 59, tzinfo=timezone.utc)) is True
        assert buff.is_promotion_open(datetime(2025, 11, 24, tzinfo=timezone.utc)) is False
        assert buff.is_promotion_open(datetime(2025, 11, 21, 23, 59, tzinfo=timezone.utc)) is False

    def test_no_window_is_always_open(self):
        assert GrantableBuff(id="g", name="G").is_promotion_open(T0) is True

    def test_window_must_be_ordered(self):
        with pytest.raises(ValidationError, match="must be after start"):
            PromotionWindow(start=T0, end=T0)

    def test_window_must_be_aware(self):
        with pytest.raises(ValidationError, match="timezone-aware"):
            PromotionWindow(start=datetime(2025, 11, 22), end=datetime(2025, 11, 24))


class TestRoleStats:
    def test_aliases_and_defaults(self):
        stats = RoleStats.model_validate({"criticalChance": 0.25, "criticalMultiplier": 2.0})
        assert stats.critical_chance == 0.25
        assert stats.base_xp_multiplier == 1.0
        assert stats.max_streak_bonus is None

    def test_crit_chance_bounded(self):
        with pytest.raises(ValidationError):
            RoleStats(critical_chance=1.5)


class TestLedgerEntry:
    def test_epoch_millis_expiry(self):
        entry = LedgerEntry.model_validate({"value": 0.25, "expires_at": datetime_to_ms(T0)})
        assert entry.expires_at == T0

    def test_camel_case_expiry_key(self):
        entry = LedgerEntry.model_validate({"value": 0.25, "expiresAt": datetime_to_ms(T0)})
        assert entry.expires_at == T0

    def test_null_expiry_is_permanent(self):
        entry = LedgerEntry.model_validate({"value": 0.25, "expires_at": None, "metadata": None})
        assert entry.expires_at is None
        assert entry.metadata == {}
        assert entry.is_expired(T0 + timedelta(days=3650)) is False

    def test_naive_expiry_taken_as_utc(self):
        entry = LedgerEntry(value=0.1, expires_at=datetime(2025, 11, 22, 15, 0))
        assert entry.expires_at == T0

    def test_expiry_boundary(self):
        entry = LedgerEntry(value=0.1, expires_at=T0)
        assert entry.is_expired(T0 - timedelta(milliseconds=1)) is False
        assert entry.is_expired(T0) is True

    def test_serializes_expiry_as_millis(self):
        entry = LedgerEntry(value=0.1, expires_at=T0, metadata={"claimedAt": 1})
        assert entry.model_dump() == {
            "value": 0.1,
            "expires_at": datetime_to_ms(T0),
            "metadata": {"claimedAt": 1},
        }

    def test_bool_expiry_rejected(self):
        with pytest.raises(ValidationError):
            LedgerEntry.model_validate({"value": 0.1, "expires_at": True})

    def test_millis_round_trip_helpers(self):
        assert ms_to_datetime(datetime_to_ms(T0)) == T0


class TestParseLedger:
    def test_none_is_empty(self):
        assert parse_ledger(None) == {}

    def test_keeps_store_order(self):
        ledger = parse_ledger({
            "slingshot_nov22": {"value": 0.25, "expires_at": None},
            "day10_boost": {"value": 0.25, "expires_at": 1},
        })
        assert list(ledger) == ["slingshot_nov22", "day10_boost"]


class TestCombinedModifier:
    def test_net_multiplier(self):
        combined = CombinedModifier(catalog_multiplier=1.25, ledger=StackResult(total_modifier=1.5))
        assert combined.net_multiplier == pytest.approx(1.875)

    def test_defaults_are_neutral(self):
        assert CombinedModifier().net_multiplier == 1.0
