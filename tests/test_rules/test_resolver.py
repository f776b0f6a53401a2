"""Tests for the activation resolver: duration windows, lookback, previews."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from buff_engine.models.buff import EventBuff
from buff_engine.rules.resolver import (
    active_buffs,
    is_active,
    start_date_text,
    upcoming_buffs,
    window_start,
)

NY = ZoneInfo("America/New_York")


def _ny(year, month, day, hour=12, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=NY)


def _buff(rule: dict, **extra) -> EventBuff:
    return EventBuff.model_validate({"id": "b", "title": "B", "dateRule": rule, **extra})


class TestDayGranularity:
    def test_without_duration_delegates_to_rule(self):
        buff = _buff({"type": "dayOfWeek", "days": [6]})
        assert is_active(buff, _ny(2025, 11, 22, 0, 0)) is True
        assert is_active(buff, _ny(2025, 11, 22, 23, 59)) is True
        assert is_active(buff, _ny(2025, 11, 23)) is False


class TestDurationWindow:
    black_friday = _buff({"type": "specificDate", "date": "2026-11-27"}, durationHours=48)

    def test_active_on_rule_day(self):
        assert is_active(self.black_friday, _ny(2026, 11, 27, 0, 0)) is True

    def test_active_the_day_after_rule_matched(self):
        # rule matched yesterday only; the 48 h window is still open today
        assert is_active(self.black_friday, _ny(2026, 11, 28)) is True
        assert is_active(self.black_friday, _ny(2026, 11, 28, 23, 59)) is True

    def test_window_end_is_exclusive(self):
        assert is_active(self.black_friday, _ny(2026, 11, 29, 0, 0)) is False

    def test_inactive_day_after_tomorrow(self):
        assert is_active(self.black_friday, _ny(2026, 11, 30)) is False

    def test_inactive_before_rule_day(self):
        assert is_active(self.black_friday, _ny(2026, 11, 26, 23, 59)) is False

    def test_sub_day_duration(self):
        buff = _buff({"type": "specificDate", "date": "2026-11-27"}, durationHours=6)
        assert is_active(buff, _ny(2026, 11, 27, 5, 59)) is True
        assert is_active(buff, _ny(2026, 11, 27, 6, 0)) is False

    def test_window_start_is_local_midnight_of_match_day(self):
        start = window_start(self.black_friday, _ny(2026, 11, 28, 15))
        assert start == _ny(2026, 11, 27, 0, 0)

    def test_most_recent_match_wins(self):
        buff = _buff({"type": "dayOfWeek", "days": [5]}, durationHours=36)  # Fridays
        # Saturday 11:00 is 35 h after Friday midnight
        assert is_active(buff, _ny(2025, 11, 22, 11, 0)) is True
        assert is_active(buff, _ny(2025, 11, 22, 12, 0)) is False

    def test_elapsed_time_is_real_time_across_dst(self):
        # Nov 2 2025 is 25 h long in New York
        buff = _buff({"type": "specificDate", "date": "2025-11-02"}, durationHours=24)
        assert is_active(buff, _ny(2025, 11, 2, 22, 30)) is True
        assert is_active(buff, _ny(2025, 11, 2, 23, 30)) is False


class TestLookbackHorizon:
    long_buff = _buff({"type": "specificDate", "date": "2025-11-01"}, durationHours=240)

    def test_match_within_horizon(self):
        assert is_active(self.long_buff, _ny(2025, 11, 8)) is True

    def test_match_beyond_horizon_is_ignored(self):
        assert window_start(self.long_buff, _ny(2025, 11, 9)) is None
        assert is_active(self.long_buff, _ny(2025, 11, 9)) is False

    def test_custom_horizon(self):
        assert is_active(self.long_buff, _ny(2025, 11, 9), lookback_days=10) is True


class TestActiveAndUpcoming:
    def test_active_buffs_keeps_catalog_order(self, catalog):
        active = active_buffs(catalog.event_buffs, _ny(2025, 12, 26))
        assert [b.id for b in active] == [
            "winters_blessing_dec_2025",
            "winter_wisdom_dec_2025",
            "holiday_glow",
        ]

    def test_per_buff_preview_hours(self, catalog):
        weekend = catalog.get_event_buff("weekend_warrior")
        # weekend_warrior previews 12 h ahead
        assert upcoming_buffs([weekend], _ny(2025, 11, 21, 13, 0)) == [weekend]
        assert upcoming_buffs([weekend], _ny(2025, 11, 21, 11, 0)) == []

    def test_default_preview_horizon(self, catalog):
        valentines = catalog.get_event_buff("valentines_week")
        assert upcoming_buffs([valentines], _ny(2026, 2, 9)) == [valentines]
        assert upcoming_buffs([valentines], _ny(2026, 2, 8)) == []
        assert upcoming_buffs([valentines], _ny(2026, 2, 8), default_hours=72) == [valentines]

    def test_active_buff_is_not_upcoming(self, catalog):
        weekend = catalog.get_event_buff("weekend_warrior")
        assert upcoming_buffs([weekend], _ny(2025, 11, 22)) == []


class TestStartDateText:
    def test_range_start(self, catalog):
        assert start_date_text(catalog.get_event_buff("winters_blessing_dec_2025")) == "10 of December"

    def test_specific_date(self, catalog):
        assert start_date_text(catalog.get_event_buff("black_friday_blitz")) == "27 of November"

    def test_recurring_rule_is_soon(self, catalog):
        assert start_date_text(catalog.get_event_buff("weekend_warrior")) == "Soon"
