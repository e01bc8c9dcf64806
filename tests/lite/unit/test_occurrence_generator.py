"""Unit tests for happenings_lite.calendar.occurrence_generator."""

import logging
from datetime import date
from types import SimpleNamespace
from typing import Any, Callable, Optional

import pytest

from happenings_lite.calendar.lite_models import ExpansionWindow, HappeningEvent
from happenings_lite.calendar.occurrence_generator import (
    ExpansionCaps,
    compute_next_occurrence,
    compute_occurrences_for_events,
    expand_occurrences_for_event,
    group_events_by_next_occurrence,
    iter_series_dates,
    normalize_today,
    nth_weekday_of_month,
)
from happenings_lite.calendar.recurrence import interpret_recurrence
from happenings_lite.config_loader import Config
from happenings_lite.core.date_keys import add_days, day_of_week_index, parse_date_key

pytestmark = pytest.mark.unit

EventFactory = Callable[..., HappeningEvent]
WindowFactory = Callable[[str, str], ExpansionWindow]


def _dates(event: HappeningEvent, window: ExpansionWindow, max_occurrences: int = 40) -> list[str]:
    return [o.date_key for o in expand_occurrences_for_event(event, window, max_occurrences)]


class TestNthWeekdayOfMonth:
    """Tests for nth_weekday_of_month."""

    @pytest.mark.parametrize(
        ("year", "month", "day_index", "n", "expected"),
        [
            (2025, 1, 2, 2, date(2025, 1, 14)),
            (2025, 1, 5, -1, date(2025, 1, 31)),
            (2025, 2, 5, -1, date(2025, 2, 28)),
            (2024, 2, 4, 5, date(2024, 2, 29)),
            (2025, 2, 4, 5, None),
            (2025, 1, 3, 1, date(2025, 1, 1)),
        ],
    )
    def test_nth_weekday_of_month(
        self, year: int, month: int, day_index: int, n: int, expected: Optional[date]
    ) -> None:
        assert nth_weekday_of_month(year, month, day_index, n) == expected


class TestComputeNextOccurrence:
    """Tests for compute_next_occurrence."""

    def test_next_when_today_is_the_weekday_then_today(self, make_event: EventFactory) -> None:
        event = make_event(day_of_week="Monday")

        result = compute_next_occurrence(event, "2026-01-05")

        assert result.date == "2026-01-05"
        assert result.is_today is True
        assert result.is_tomorrow is False
        assert result.is_confident is True

    def test_next_when_weekday_is_tomorrow_then_flagged(self, make_event: EventFactory) -> None:
        result = compute_next_occurrence(make_event(day_of_week="Tuesday"), "2026-01-05")

        assert result.date == "2026-01-06"
        assert result.is_tomorrow is True

    def test_next_when_today_is_first_tuesday_then_second_tuesday(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(recurrence_rule="2nd", day_of_week="Tuesday")

        result = compute_next_occurrence(event, "2025-01-07")

        assert result.date == "2025-01-14"
        assert result.is_today is False

    @pytest.mark.parametrize("rule", ["2nd", "FREQ=MONTHLY;BYDAY=2TU"])
    def test_next_when_anchor_after_this_months_date_then_next_month(
        self, rule: str, make_event: EventFactory
    ) -> None:
        event = make_event(event_date="2025-01-15", recurrence_rule=rule, day_of_week="Tuesday")

        result = compute_next_occurrence(event, "2025-01-15")

        assert result.date == "2025-02-11"
        assert result.is_confident is True

    def test_next_when_fifth_weekday_months_away_then_found(self, make_event: EventFactory) -> None:
        event = make_event(event_date="2026-01-30", recurrence_rule="5th", day_of_week="Friday")

        result = compute_next_occurrence(event, "2026-02-01")

        assert result.date == "2026-05-29"
        assert result.is_confident is True

    def test_next_when_custom_dates_then_earliest_upcoming(self, make_event: EventFactory) -> None:
        event = make_event(
            recurrence_rule="custom",
            custom_dates=["2026-02-01", "2026-02-08", "2026-02-15"],
        )

        assert compute_next_occurrence(event, "2026-02-10").date == "2026-02-15"

    def test_next_when_custom_dates_all_past_then_last(self, make_event: EventFactory) -> None:
        event = make_event(custom_dates=["2026-02-01", "2026-02-08", "2026-02-15"])

        result = compute_next_occurrence(event, "2026-03-01")

        assert result.date == "2026-02-15"

    def test_next_when_one_time_in_past_then_anchor(self, make_event: EventFactory) -> None:
        result = compute_next_occurrence(make_event(event_date="2025-12-01"), "2026-01-05")

        assert result.date == "2025-12-01"
        assert result.is_confident is True

    def test_next_when_nothing_known_then_today_not_confident(
        self, make_event: EventFactory
    ) -> None:
        result = compute_next_occurrence(make_event(), "2026-01-05")

        assert result.date == "2026-01-05"
        assert result.is_confident is False

    def test_next_when_unrecognized_rule_then_today_not_confident(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(recurrence_rule="most weeks", day_of_week="Friday")

        assert compute_next_occurrence(event, "2026-01-05").is_confident is False

    def test_next_when_series_starts_later_then_first_date_of_series(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(event_date="2026-02-02", recurrence_rule="weekly")

        assert compute_next_occurrence(event, "2026-01-05").date == "2026-02-02"

    def test_next_when_biweekly_then_phase_aligned_to_anchor(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(event_date="2026-01-05", recurrence_rule="biweekly")

        assert compute_next_occurrence(event, "2026-01-13").date == "2026-01-19"

    def test_next_when_bounded_series_ended_then_last_occurrence(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(event_date="2025-01-06", recurrence_rule="weekly", max_occurrences=3)

        assert compute_next_occurrence(event, "2026-01-05").date == "2025-01-20"

    def test_next_when_daily_then_today(self, make_event: EventFactory) -> None:
        event = make_event(event_date="2026-01-01", recurrence_rule="FREQ=DAILY")

        assert compute_next_occurrence(event, "2026-01-05").is_today is True

    def test_next_when_yearly_then_anniversary(self, make_event: EventFactory) -> None:
        event = make_event(event_date="2024-07-04", recurrence_rule="FREQ=YEARLY")

        assert compute_next_occurrence(event, "2026-01-05").date == "2026-07-04"


class TestExpandOccurrences:
    """Tests for expand_occurrences_for_event."""

    def test_expand_when_first_and_third_thursday_then_exactly_those(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(recurrence_rule="1st/3rd", day_of_week="Thursday")

        dates = _dates(event, make_window("2025-01-01", "2025-03-31"))

        assert dates == [
            "2025-01-02",
            "2025-01-16",
            "2025-02-06",
            "2025-02-20",
            "2025-03-06",
            "2025-03-20",
        ]

    @pytest.mark.parametrize("start", ["2025-01-01", "2025-05-17", "2026-02-03", "2027-11-30"])
    def test_expand_when_first_and_third_thursday_then_only_matching_positions(
        self, start: str, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(recurrence_rule="1st/3rd", day_of_week="Thursday")
        window = make_window(start, add_days(start, 120))

        dates = _dates(event, window)

        assert dates
        for key in dates:
            assert day_of_week_index(key) == 4
            assert (parse_date_key(key).day - 1) // 7 + 1 in (1, 3)
        # Every Thursday in range at position 1 or 3 is present
        expected = [
            add_days(start, offset)
            for offset in range(121)
            if day_of_week_index(add_days(start, offset)) == 4
            and (parse_date_key(add_days(start, offset)).day - 1) // 7 + 1 in (1, 3)
        ]
        assert dates == expected

    def test_expand_when_last_friday_then_month_ends(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(recurrence_rule="last", day_of_week="Friday")

        assert _dates(event, make_window("2025-01-01", "2025-03-31")) == [
            "2025-01-31",
            "2025-02-28",
            "2025-03-28",
        ]

    def test_expand_when_fifth_ordinal_then_months_without_it_skipped(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(recurrence_rule="5th", day_of_week="Thursday")

        assert _dates(event, make_window("2025-01-01", "2025-03-31")) == ["2025-01-30"]

    def test_expand_when_weekly_then_every_matching_day(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-05", recurrence_rule="weekly")

        assert _dates(event, make_window("2026-01-01", "2026-01-31")) == [
            "2026-01-05",
            "2026-01-12",
            "2026-01-19",
            "2026-01-26",
        ]

    def test_expand_when_anchor_before_window_then_starts_at_window(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2025-12-01", recurrence_rule="weekly")

        assert _dates(event, make_window("2026-01-01", "2026-01-14")) == [
            "2026-01-05",
            "2026-01-12",
        ]

    def test_expand_when_anchor_inside_window_then_nothing_before_anchor(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-19", recurrence_rule="weekly")

        assert _dates(event, make_window("2026-01-01", "2026-01-31")) == [
            "2026-01-19",
            "2026-01-26",
        ]

    def test_expand_when_biweekly_then_fourteen_day_stride_from_anchor(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2025-12-29", recurrence_rule="biweekly")

        assert _dates(event, make_window("2026-01-01", "2026-02-28")) == [
            "2026-01-12",
            "2026-01-26",
            "2026-02-09",
            "2026-02-23",
        ]

    def test_expand_when_weekly_interval_three_then_three_week_stride(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-05", recurrence_rule="FREQ=WEEKLY;INTERVAL=3;BYDAY=MO")

        assert _dates(event, make_window("2026-01-01", "2026-02-28")) == [
            "2026-01-05",
            "2026-01-26",
            "2026-02-16",
        ]

    def test_expand_when_bare_monthly_then_anchor_weekday_position(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-20", recurrence_rule="monthly")

        assert _dates(event, make_window("2026-01-01", "2026-03-31")) == [
            "2026-01-20",
            "2026-02-17",
            "2026-03-17",
        ]

    @pytest.mark.parametrize(
        ("rule", "expected"),
        [
            ("FREQ=MONTHLY;BYMONTHDAY=31", ["2026-01-31", "2026-03-31"]),
            (
                "FREQ=MONTHLY;BYMONTHDAY=-1",
                ["2026-01-31", "2026-02-28", "2026-03-31", "2026-04-30"],
            ),
        ],
    )
    def test_expand_when_bymonthday_then_invalid_days_skipped(
        self, rule: str, expected: list[str], make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(recurrence_rule=rule)

        assert _dates(event, make_window("2026-01-01", "2026-04-30")) == expected

    def test_expand_when_count_bound_then_exact_enumeration_from_anchor(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2025-01-02", recurrence_rule="FREQ=MONTHLY;BYDAY=1TH;COUNT=2")

        assert _dates(event, make_window("2025-01-01", "2025-06-30")) == [
            "2025-01-02",
            "2025-02-06",
        ]

    def test_expand_when_count_reached_before_window_then_empty(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2025-01-06", recurrence_rule="weekly", max_occurrences=3)

        assert _dates(event, make_window("2026-01-01", "2026-03-31")) == []

    def test_expand_when_end_date_then_window_clamped(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(
            event_date="2026-01-05", recurrence_rule="weekly", recurrence_end_date="2026-01-20"
        )

        assert _dates(event, make_window("2026-01-01", "2026-01-31")) == [
            "2026-01-05",
            "2026-01-12",
            "2026-01-19",
        ]

    def test_expand_when_until_then_window_clamped(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-05", recurrence_rule="FREQ=WEEKLY;BYDAY=MO;UNTIL=20260113")

        assert _dates(event, make_window("2026-01-01", "2026-01-31")) == [
            "2026-01-05",
            "2026-01-12",
        ]

    def test_expand_when_per_event_cap_then_truncated(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2026-01-01", recurrence_rule="FREQ=DAILY")

        dates = _dates(event, make_window("2026-01-01", "2026-03-31"), max_occurrences=10)

        assert len(dates) == 10
        assert dates[0] == "2026-01-01"
        assert dates[-1] == "2026-01-10"

    def test_expand_when_yearly_then_anniversaries(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(event_date="2024-07-04", recurrence_rule="FREQ=YEARLY")

        assert _dates(event, make_window("2025-01-01", "2026-12-31")) == [
            "2025-07-04",
            "2026-07-04",
        ]

    @pytest.mark.parametrize(
        "fields",
        [
            {"recurrence_rule": "weekly"},
            {"recurrence_rule": "seasonal", "day_of_week": "Friday"},
            {"recurrence_rule": "most weeks", "day_of_week": "Friday"},
            {},
        ],
    )
    def test_expand_when_not_confident_then_empty(
        self, fields: dict[str, Any], make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        assert _dates(make_event(**fields), make_window("2026-01-01", "2026-03-31")) == []

    def test_expand_when_one_time_then_only_inside_window(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        window = make_window("2026-01-01", "2026-01-31")

        assert _dates(make_event(event_date="2026-01-18"), window) == ["2026-01-18"]
        assert _dates(make_event(event_date="2026-02-18"), window) == []

    def test_expand_when_custom_then_dates_inside_window(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(custom_dates=["2026-03-20", "2026-02-08", "2026-02-01"])

        assert _dates(event, make_window("2026-02-01", "2026-02-28")) == [
            "2026-02-01",
            "2026-02-08",
        ]

    @pytest.mark.parametrize(
        "fields",
        [
            {"event_date": "2026-01-05", "recurrence_rule": "weekly"},
            {"day_of_week": "Wednesday"},
            {"event_date": "2025-12-29", "recurrence_rule": "biweekly"},
            {"recurrence_rule": "2nd", "day_of_week": "Tuesday"},
            {"recurrence_rule": "FREQ=MONTHLY;BYDAY=-1SU"},
            {"event_date": "2026-01-20", "recurrence_rule": "monthly"},
        ],
    )
    @pytest.mark.parametrize("start", ["2026-01-01", "2026-02-14", "2026-06-30"])
    def test_expand_when_unbounded_recurring_over_default_window_then_multiple(
        self,
        fields: dict[str, Any],
        start: str,
        make_event: EventFactory,
    ) -> None:
        window = ExpansionWindow.rolling(start, 90)

        assert len(_dates(make_event(**fields), window)) > 1


class TestBatchHelpers:
    """Tests for multi-event helpers and caps."""

    def test_compute_occurrences_for_events_when_called_then_keyed_by_id(
        self, make_event: EventFactory
    ) -> None:
        events = [
            make_event("a", day_of_week="Monday"),
            make_event("b", event_date="2026-01-10"),
            make_event("c"),
        ]

        result = compute_occurrences_for_events(events, "2026-01-05", window_days=13)

        assert [o.date_key for o in result["a"]] == ["2026-01-05", "2026-01-12"]
        assert [o.date_key for o in result["b"]] == ["2026-01-10"]
        assert result["c"] == []

    def test_group_events_by_next_occurrence_when_called_then_sorted_and_confident_only(
        self, make_event: EventFactory
    ) -> None:
        events = [
            make_event("tue", day_of_week="Tuesday"),
            make_event("mon", day_of_week="Monday"),
            make_event("mon2", recurrence_rule="weekly", event_date="2025-12-29"),
            make_event("unknown"),
        ]

        groups = group_events_by_next_occurrence(events, "2026-01-05")

        assert list(groups) == ["2026-01-05", "2026-01-06"]
        assert [e.id for e in groups["2026-01-05"]] == ["mon", "mon2"]
        assert [e.id for e in groups["2026-01-06"]] == ["tue"]

    def test_expansion_caps_from_settings_when_partial_then_defaults_fill_in(self) -> None:
        caps = ExpansionCaps.from_settings(SimpleNamespace(max_events=5))

        assert caps.max_events == 5
        assert caps.max_total_occurrences == 500
        assert caps.max_occurrences_per_event == 40
        assert caps.window_days == 90

    def test_expansion_caps_from_settings_when_config_then_values_copied(self) -> None:
        caps = ExpansionCaps.from_settings(Config(max_total_occurrences=50, series_preview_limit=3))

        assert caps.max_total_occurrences == 50
        assert caps.series_preview_limit == 3

    def test_normalize_today_when_invalid_then_raises(self) -> None:
        assert normalize_today("2026-01-05") == "2026-01-05"
        with pytest.raises(ValueError):
            normalize_today("01/05/2026")


class TestLargeCountBounds:
    """Huge counts and far-future dates must end quietly and quickly."""

    @pytest.mark.critical_path
    def test_expand_when_huge_count_then_only_window_dates(
        self, make_event: EventFactory, make_window: WindowFactory
    ) -> None:
        event = make_event(
            event_date="2020-01-06", recurrence_rule="weekly", max_occurrences=3_000_000
        )

        dates = _dates(event, ExpansionWindow.rolling("2026-01-05", 90))

        assert len(dates) == 13
        assert dates[0] == "2026-01-05"
        assert dates[-1] == "2026-03-30"

    def test_next_when_daily_huge_count_then_today(self) -> None:
        event = {"recurrence_rule": "FREQ=DAILY;COUNT=3000000"}

        result = compute_next_occurrence(event, "2026-01-05")

        assert result.date == "2026-01-05"
        assert result.is_confident is True

    def test_next_when_weekly_huge_count_then_next_weekday(self, make_event: EventFactory) -> None:
        event = make_event(
            event_date="2020-01-06", recurrence_rule="weekly", max_occurrences=3_000_000
        )

        assert compute_next_occurrence(event, "2026-01-06").date == "2026-01-12"

    def test_next_when_count_ends_on_first_future_date_then_that_date(
        self, make_event: EventFactory
    ) -> None:
        event = make_event(event_date="2026-01-05", recurrence_rule="weekly", max_occurrences=2)

        assert compute_next_occurrence(event, "2026-01-06").date == "2026-01-12"
        assert compute_next_occurrence(event, "2026-01-13").date == "2026-01-12"

    @pytest.mark.parametrize(
        ("fields", "start"),
        [
            ({"recurrence_rule": "weekly", "day_of_week": "Monday"}, date(9999, 12, 1)),
            ({"recurrence_rule": "biweekly", "day_of_week": "Friday"}, date(9999, 12, 20)),
            ({"recurrence_rule": "1st/last", "day_of_week": "Monday"}, date(9999, 10, 1)),
            ({"recurrence_rule": "5th", "day_of_week": "Sunday"}, date(9999, 10, 1)),
            ({"recurrence_rule": "FREQ=DAILY"}, date(9999, 12, 25)),
        ],
    )
    def test_iter_series_dates_when_near_date_max_then_stops(
        self, fields: dict[str, Any], start: date
    ) -> None:
        rec = interpret_recurrence(fields)

        dates = list(iter_series_dates(rec, start))

        assert dates
        assert dates == sorted(dates)
        assert all(start <= d <= date.max for d in dates)


class TestExpansionInvariantCheck:
    """The single-occurrence diagnostic runs inside per-event expansion."""

    def test_expand_when_single_fifth_weekday_then_warning_logged(
        self, make_event: EventFactory, caplog: pytest.LogCaptureFixture
    ) -> None:
        event = make_event("fifth", recurrence_rule="5th", day_of_week="Thursday")

        with caplog.at_level(logging.WARNING):
            dates = _dates(event, ExpansionWindow.rolling("2025-01-01", 90))

        assert dates == ["2025-01-30"]
        assert "[RECURRENCE INVARIANT VIOLATION]" in caplog.text
        assert 'fifth "Event fifth"' in caplog.text
        assert "[2025-01-01→2025-04-01]" in caplog.text

    def test_expand_when_per_event_cap_is_one_then_no_warning(
        self, make_event: EventFactory, caplog: pytest.LogCaptureFixture
    ) -> None:
        event = make_event("m", day_of_week="Monday", recurrence_rule="weekly")

        with caplog.at_level(logging.WARNING):
            dates = _dates(event, ExpansionWindow.rolling("2026-01-05", 90), max_occurrences=1)

        assert dates == ["2026-01-05"]
        assert "RECURRENCE INVARIANT VIOLATION" not in caplog.text

    def test_compute_occurrences_for_events_when_single_date_then_warning_logged(
        self, make_event: EventFactory, caplog: pytest.LogCaptureFixture
    ) -> None:
        event = make_event("fifth", recurrence_rule="5th", day_of_week="Thursday")

        with caplog.at_level(logging.WARNING):
            result = compute_occurrences_for_events([event], "2025-01-01")

        assert [o.date_key for o in result["fifth"]] == ["2025-01-30"]
        assert "[RECURRENCE INVARIANT VIOLATION]" in caplog.text
