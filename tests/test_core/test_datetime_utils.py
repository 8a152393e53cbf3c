"""Tests for timezone utilities in datetime_utils."""

from datetime import UTC, date, datetime

import pytest

from app.core.datetime_utils import (
    COMMON_TIMEZONES,
    get_zone,
    is_today_in_timezone,
    is_valid_timezone,
    local_date,
    month_day_keys,
    occurrence_date,
    remaining_delay_seconds,
    start_of_local_day_utc,
    target_instant_utc,
    to_aware_utc,
    to_naive_utc,
)
from app.core.errors import InvalidTimezoneError


class TestIsValidTimezone:
    """Tests for is_valid_timezone."""

    def test_valid_iana_timezone(self):
        """Should return True for valid IANA timezone."""
        assert is_valid_timezone("America/New_York") is True
        assert is_valid_timezone("Asia/Ho_Chi_Minh") is True
        assert is_valid_timezone("UTC") is True

    def test_invalid_timezone(self):
        """Should return False for invalid timezone."""
        assert is_valid_timezone("Invalid/Timezone") is False
        assert is_valid_timezone("") is False
        assert is_valid_timezone("America/Atlantis") is False

    def test_common_timezones_are_valid(self):
        """All timezones in COMMON_TIMEZONES should be valid."""
        for tz in COMMON_TIMEZONES:
            assert is_valid_timezone(tz), f"{tz} should be valid"

    def test_get_zone_raises_for_unknown(self):
        with pytest.raises(InvalidTimezoneError):
            get_zone("Mars/Olympus_Mons")


class TestTargetInstantUtc:
    """Tests for target_instant_utc."""

    def test_utc(self):
        assert target_instant_utc("2024-01-15", "UTC", 9) == datetime(2024, 1, 15, 9, tzinfo=UTC)

    def test_east_of_utc(self):
        """09:00 in Ho Chi Minh City (UTC+7) is 02:00 UTC."""
        target = target_instant_utc("2024-10-09", "Asia/Ho_Chi_Minh", 9)
        assert target == datetime(2024, 10, 9, 2, tzinfo=UTC)

    def test_stable_for_same_inputs(self):
        first = target_instant_utc("2024-06-01", "Europe/Paris", 9)
        second = target_instant_utc(date(2024, 6, 1), "Europe/Paris", 9)
        assert first == second

    def test_shifts_across_dst(self):
        """New York is UTC-5 in winter and UTC-4 in summer."""
        winter = target_instant_utc("2024-01-15", "America/New_York", 9)
        summer = target_instant_utc("2024-07-15", "America/New_York", 9)
        assert winter.hour == 14
        assert summer.hour == 13

    def test_nonexistent_hour_in_spring_gap(self):
        """02:00 does not exist on 2024-03-10 in New York; it resolves past the gap."""
        target = target_instant_utc("2024-03-10", "America/New_York", 2)
        assert target == datetime(2024, 3, 10, 7, tzinfo=UTC)

    def test_ambiguous_hour_takes_first_occurrence(self):
        """01:00 happens twice on 2024-11-03 in New York; the EDT one is used."""
        target = target_instant_utc("2024-11-03", "America/New_York", 1)
        assert target == datetime(2024, 11, 3, 5, tzinfo=UTC)

    @pytest.mark.parametrize(
        ("timezone", "expected_hour", "expected_day"),
        [
            ("Etc/GMT+12", 21, 15),  # UTC-12
            ("Pacific/Pago_Pago", 20, 15),  # UTC-11
            ("Pacific/Kiritimati", 19, 14),  # UTC+14
        ],
    )
    def test_extreme_offsets(self, timezone, expected_hour, expected_day):
        target = target_instant_utc("2024-01-15", timezone, 9)
        assert target.hour == expected_hour
        assert target.day == expected_day


class TestIsTodayInTimezone:
    """Tests for is_today_in_timezone."""

    def test_ignores_year(self):
        now = datetime(2024, 1, 15, 12, tzinfo=UTC)
        assert is_today_in_timezone("1990-01-15", "UTC", now=now) is True
        assert is_today_in_timezone("1990-01-16", "UTC", now=now) is False

    def test_local_date_already_rolled_over(self):
        """At 01:00 UTC on Oct 9 it is 08:00 on Oct 9 in Ho Chi Minh City."""
        now = datetime(2024, 10, 9, 1, tzinfo=UTC)
        assert is_today_in_timezone("1996-10-09", "Asia/Ho_Chi_Minh", now=now) is True

    def test_far_east_is_a_day_ahead(self):
        """At 12:00 UTC on Jan 14 it is already Jan 15 in Kiritimati."""
        now = datetime(2024, 1, 14, 12, tzinfo=UTC)
        assert is_today_in_timezone("1990-01-15", "Pacific/Kiritimati", now=now) is True
        assert is_today_in_timezone("1990-01-15", "UTC", now=now) is False

    def test_far_west_is_a_day_behind(self):
        """At 06:00 UTC on Jan 16 it is still Jan 15 at UTC-12."""
        now = datetime(2024, 1, 16, 6, tzinfo=UTC)
        assert is_today_in_timezone("1990-01-15", "Etc/GMT+12", now=now) is True

    def test_feb_29_observed_on_feb_28_in_common_years(self):
        now = datetime(2023, 2, 28, 12, tzinfo=UTC)
        assert is_today_in_timezone("2000-02-29", "UTC", now=now) is True

    def test_feb_29_in_leap_year(self):
        assert is_today_in_timezone("2000-02-29", "UTC", now=datetime(2024, 2, 29, tzinfo=UTC))
        assert not is_today_in_timezone("2000-02-29", "UTC", now=datetime(2024, 2, 28, tzinfo=UTC))

    def test_invalid_timezone_raises(self):
        with pytest.raises(InvalidTimezoneError):
            is_today_in_timezone("1990-01-15", "Not/AZone")


class TestOccurrences:
    """Tests for occurrence_date and month_day_keys."""

    def test_occurrence_date(self):
        assert occurrence_date("1990-07-04", 2024) == date(2024, 7, 4)
        assert occurrence_date("2000-02-29", 2023) == date(2023, 2, 28)
        assert occurrence_date("2000-02-29", 2024) == date(2024, 2, 29)

    def test_month_day_keys(self):
        assert month_day_keys(date(2024, 1, 15)) == ["01-15"]
        assert month_day_keys(date(2023, 2, 28)) == ["02-28", "02-29"]
        assert month_day_keys(date(2024, 2, 28)) == ["02-28"]

    def test_local_date(self):
        now = datetime(2024, 12, 31, 23, 30, tzinfo=UTC)
        assert local_date("UTC", now) == date(2024, 12, 31)
        assert local_date("Asia/Tokyo", now) == date(2025, 1, 1)


class TestRemainingDelaySeconds:
    """Tests for remaining_delay_seconds."""

    def test_clamped_to_zero_when_past(self):
        now = datetime(2024, 1, 15, 10, tzinfo=UTC)
        assert remaining_delay_seconds("2024-01-15", "UTC", 9, now=now) == 0

    def test_whole_seconds_until_target(self):
        now = datetime(2024, 1, 15, 8, 55, 0, 500000, tzinfo=UTC)
        assert remaining_delay_seconds("2024-01-15", "UTC", 9, now=now) == 299

    def test_clamped_to_cap(self):
        now = datetime(2024, 1, 15, 6, tzinfo=UTC)
        assert remaining_delay_seconds("2024-01-15", "UTC", 9, now=now) == 900
        assert remaining_delay_seconds("2024-01-15", "UTC", 9, cap=60, now=now) == 60


class TestConversions:
    def test_naive_aware_round_trip(self):
        aware = datetime(2024, 1, 15, 9, tzinfo=UTC)
        assert to_naive_utc(aware) == datetime(2024, 1, 15, 9)
        assert to_aware_utc(datetime(2024, 1, 15, 9)) == aware

    def test_start_of_local_day(self):
        start = start_of_local_day_utc(date(2024, 10, 9), "Asia/Ho_Chi_Minh")
        assert start == datetime(2024, 10, 8, 17, tzinfo=UTC)
