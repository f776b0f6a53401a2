"""Tests for local-calendar time helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from buff_engine.utils.time_utils import (
    day_of_month_text,
    elapsed_hours_between,
    local_date,
    local_midnight,
    parse_instant,
    project_month_day,
    utcnow,
    weekday_index,
)

NY = ZoneInfo("America/New_York")


class TestWeekdayIndex:
    @pytest.mark.parametrize(
        "day, expected",
        [
            (date(2025, 11, 23), 0),  # Sunday
            (date(2025, 11, 24), 1),
            (date(2025, 11, 22), 6),  # Saturday
        ],
    )
    def test_sunday_first(self, day, expected):
        assert weekday_index(day) == expected

    def test_uses_wall_clock_date(self):
        # 23:30 Saturday in New York is already Sunday in UTC
        late = datetime(2025, 11, 22, 23, 30, tzinfo=NY)
        assert weekday_index(late) == 6
        assert weekday_index(late.astimezone(timezone.utc)) == 0


class TestCalendarHelpers:
    def test_local_date_passes_dates_through(self):
        assert local_date(date(2025, 1, 1)) == date(2025, 1, 1)

    def test_local_midnight(self):
        midnight = local_midnight(date(2025, 11, 22), NY)
        assert midnight == datetime(2025, 11, 22, 0, 0, tzinfo=NY)
        assert local_midnight(date(2025, 11, 22), None).tzinfo is None

    def test_project_month_day(self):
        assert project_month_day(2025, 12, 25) == date(2025, 12, 25)

    def test_feb_29_rolls_forward(self):
        assert project_month_day(2025, 2, 29) == date(2025, 3, 1)
        assert project_month_day(2024, 2, 29) == date(2024, 2, 29)

    def test_day_of_month_text(self):
        assert day_of_month_text(date(2025, 12, 10)) == "10 of December"


class TestElapsedHours:
    def test_real_time_across_dst_end(self):
        start = datetime(2025, 11, 2, 0, 0, tzinfo=NY)
        end = datetime(2025, 11, 2, 12, 0, tzinfo=NY)
        assert elapsed_hours_between(start, end) == 13.0

    def test_naive_values(self):
        assert elapsed_hours_between(datetime(2025, 1, 1), datetime(2025, 1, 2, 6)) == 30.0


class TestParseInstant:
    def test_date_only_is_local_midnight(self):
        assert parse_instant("2025-11-22", "America/New_York") == datetime(2025, 11, 22, tzinfo=NY)

    def test_naive_datetime_is_local(self):
        parsed = parse_instant("2025-11-22T12:00", "America/New_York")
        assert parsed.utcoffset().total_seconds() == -5 * 3600

    def test_offset_converted(self):
        parsed = parse_instant("2025-11-22T17:00:00+00:00", "America/New_York")
        assert parsed.hour == 12
        assert parsed.tzinfo == NY

    def test_none_means_now(self):
        before = utcnow()
        assert parse_instant(None, "UTC") >= before

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_instant("next tuesday", "UTC")
