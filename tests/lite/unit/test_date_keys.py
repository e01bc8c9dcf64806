"""Unit tests for happenings_lite.core.date_keys."""

from datetime import UTC, date, datetime

import pytest

from happenings_lite.core.date_keys import (
    add_days,
    coerce_date_key,
    date_key_from_datetime,
    day_of_week_index,
    day_of_week_name,
    days_between,
    format_date_group_header,
    format_date_key_for_display,
    format_date_key_for_email,
    format_date_key_short,
    is_known_timezone,
    is_valid_date_key,
    parse_date_key,
    today_key,
)

pytestmark = pytest.mark.unit


class TestDateKeyArithmetic:
    """Tests for add_days and days_between."""

    def test_add_days_when_crossing_year_forward_then_rolls_over(self) -> None:
        assert add_days("2025-12-31", 1) == "2026-01-01"

    def test_add_days_when_crossing_year_backward_then_rolls_back(self) -> None:
        assert add_days("2026-01-01", -1) == "2025-12-31"

    def test_add_days_when_crossing_dst_start_then_lands_on_next_calendar_day(self) -> None:
        # Denver springs forward on 2026-03-08
        assert add_days("2026-03-07", 1) == "2026-03-08"
        assert add_days("2026-03-08", 1) == "2026-03-09"

    def test_add_days_when_crossing_dst_end_then_lands_on_next_calendar_day(self) -> None:
        assert add_days("2026-10-31", 1) == "2026-11-01"
        assert add_days("2026-11-01", 1) == "2026-11-02"

    def test_add_days_when_leap_day_then_included(self) -> None:
        assert add_days("2024-02-28", 1) == "2024-02-29"
        assert add_days("2025-02-28", 1) == "2025-03-01"

    def test_days_between_when_reversed_then_negative(self) -> None:
        assert days_between("2026-01-01", "2026-01-31") == 30
        assert days_between("2026-01-31", "2026-01-01") == -30


class TestValidation:
    """Tests for is_valid_date_key, parse_date_key and coerce_date_key."""

    @pytest.mark.parametrize(
        "value",
        ["2026-01-05", "2024-02-29", "1999-12-31"],
    )
    def test_is_valid_date_key_when_real_date_then_true(self, value: str) -> None:
        assert is_valid_date_key(value) is True

    @pytest.mark.parametrize(
        "value",
        [
            "2025-02-29",
            "2026-13-01",
            "2026-1-05",
            "2026-01-05T19:00:00",
            " 2026-01-05",
            "",
            None,
            20260105,
        ],
    )
    def test_is_valid_date_key_when_malformed_then_false(self, value: object) -> None:
        assert is_valid_date_key(value) is False

    def test_parse_date_key_when_invalid_then_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid date key"):
            parse_date_key("2026/01/05")

    def test_coerce_date_key_when_timestamp_then_keeps_calendar_day(self) -> None:
        assert coerce_date_key("2026-01-05T19:00:00Z") == "2026-01-05"

    def test_coerce_date_key_when_date_object_then_formats(self) -> None:
        assert coerce_date_key(date(2026, 1, 5)) == "2026-01-05"

    @pytest.mark.parametrize("value", ["garbage", None, 5, "2026-02-30"])
    def test_coerce_date_key_when_unusable_then_none(self, value: object) -> None:
        assert coerce_date_key(value) is None


class TestCivilTimezone:
    """Date keys come from the civil zone, never from truncated UTC."""

    def test_date_key_from_datetime_when_utc_after_midnight_then_previous_denver_day(self) -> None:
        instant = datetime(2026, 1, 18, 3, 30, tzinfo=UTC)

        assert instant.date().isoformat() == "2026-01-18"
        assert date_key_from_datetime(instant) == "2026-01-17"

    def test_date_key_from_datetime_when_naive_then_treated_as_utc(self) -> None:
        assert date_key_from_datetime(datetime(2026, 1, 18, 3, 0)) == "2026-01-17"

    def test_date_key_from_datetime_when_other_zone_requested_then_uses_it(self) -> None:
        instant = datetime(2026, 1, 18, 3, 30, tzinfo=UTC)

        assert date_key_from_datetime(instant, "Europe/Berlin") == "2026-01-18"

    def test_today_key_when_summer_evening_then_uses_daylight_offset(self) -> None:
        # 05:00 UTC is 23:00 MDT the previous day
        assert today_key(now=datetime(2026, 7, 1, 5, 0, tzinfo=UTC)) == "2026-06-30"

    def test_is_known_timezone_when_unknown_then_false(self) -> None:
        assert is_known_timezone("America/Denver") is True
        assert is_known_timezone("Mars/Olympus_Mons") is False


class TestFormatting:
    """Tests for weekday helpers and display formatting."""

    def test_day_of_week_index_when_sunday_then_zero(self) -> None:
        assert day_of_week_index("2026-01-18") == 0
        assert day_of_week_index("2026-01-24") == 6

    def test_day_of_week_name_when_monday_then_monday(self) -> None:
        assert day_of_week_name("2026-01-05") == "Monday"

    def test_format_date_key_short(self) -> None:
        assert format_date_key_short("2026-01-18") == "Sun, Jan 18"

    def test_format_date_key_for_display(self) -> None:
        assert format_date_key_for_display("2026-01-18") == "Sunday, January 18, 2026"

    def test_format_date_key_for_email(self) -> None:
        assert format_date_key_for_email("2026-01-18") == "01-18-2026"

    @pytest.mark.parametrize(
        ("date_key", "expected"),
        [
            ("2026-01-05", "Today"),
            ("2026-01-06", "Tomorrow"),
            ("2026-01-09", "Fri, Jan 9"),
        ],
    )
    def test_format_date_group_header(self, date_key: str, expected: str) -> None:
        assert format_date_group_header(date_key, "2026-01-05") == expected
