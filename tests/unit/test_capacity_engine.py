"""Unit tests for the capacity engine."""
from datetime import date

import pytest

from app.services.capacity.engine import (
    format_minutes,
    is_available,
    is_closed_day,
    is_past_date,
    next_weekday_after,
    normalize_closed_days,
    parse_time_to_minutes,
    peak_occupancy,
    resolve_date,
    weekday_number,
)

WEDNESDAY = date(2025, 6, 11)


def at(clock: str) -> int:
    return parse_time_to_minutes(clock)


class TestPeakOccupancy:
    """Test the interval sweep."""

    def test_scenario_overlapping_offset_booking(self):
        """10 guests at 19:00 plus 8 requested at 19:30 peak at 18."""
        existing = [(at("19:00"), 10)]

        peak = peak_occupancy(existing, at("19:30"), 8, 60)

        assert peak == 18
        assert is_available(existing, at("19:30"), 8, capacity=20)
        assert 20 - peak == 2

    def test_back_to_back_reservations_do_not_overlap(self):
        """Half-open intervals: a slot ending at 19:00 frees its seats for 19:00."""
        existing = [(at("18:00"), 15)]

        assert peak_occupancy(existing, at("19:00"), 10, 60) == 10

    def test_same_start_times_sum(self):
        existing = [(at("19:00"), 4), (at("19:00"), 6), (at("19:00"), 2)]

        assert peak_occupancy(existing, at("19:00"), 3, 60) == 15

    def test_peak_at_least_any_overlapping_party(self):
        existing = [(at("18:15"), 12), (at("19:45"), 3), (at("21:00"), 30)]

        peak = peak_occupancy(existing, at("19:00"), 2, 60)

        assert peak >= 12
        assert peak >= 3
        # 21:00 is outside [19:00, 20:00)
        assert peak < 30

    def test_offset_reservations_not_simultaneous(self):
        """Two bookings that never overlap each other do not add up."""
        existing = [(at("18:30"), 10), (at("19:30"), 10)]

        # 18:30-19:30 and 19:30-20:30 touch at 19:30 only
        assert peak_occupancy(existing, at("19:00"), 5, 60) == 15

    def test_ignores_invalid_entries(self):
        existing = [(None, 4), (at("19:00"), 0), (at("19:00"), None)]

        assert peak_occupancy(existing, at("19:00"), 2, 60) == 2

    @pytest.mark.parametrize("party_size", [1, 2, 5, 8, 11, 15])
    def test_availability_monotonic_in_party_size(self, party_size):
        existing = [(at("19:00"), 10)]
        if not is_available(existing, at("19:30"), party_size, capacity=20):
            assert not is_available(existing, at("19:30"), party_size + 1, capacity=20)

    @pytest.mark.parametrize("capacity", [10, 15, 18, 19, 25])
    def test_availability_monotonic_in_capacity(self, capacity):
        existing = [(at("19:00"), 10)]
        if is_available(existing, at("19:30"), 8, capacity=capacity):
            assert is_available(existing, at("19:30"), 8, capacity=capacity + 1)


class TestDates:
    """Test date resolution and calendar checks."""

    def test_weekday_numbering_starts_on_sunday(self):
        assert weekday_number(date(2025, 6, 15)) == 0  # Sunday
        assert weekday_number(date(2025, 6, 16)) == 1  # Monday
        assert weekday_number(WEDNESDAY) == 3

    def test_next_weekday_is_strictly_after(self):
        assert next_weekday_after(3, WEDNESDAY) == date(2025, 6, 18)
        assert next_weekday_after(5, WEDNESDAY) == date(2025, 6, 13)

    def test_resolve_date_without_weekday_is_identity(self):
        assert resolve_date("2025-06-20", "", WEDNESDAY) == "2025-06-20"
        assert resolve_date("2025-06-20", "morgen um acht", WEDNESDAY) == "2025-06-20"

    def test_resolve_date_uses_named_weekday(self):
        # Model proposed a Thursday, caller said Friday
        assert resolve_date("2025-06-12", "am Freitag bitte", WEDNESDAY) == "2025-06-13"

    def test_resolve_date_never_today(self):
        """Naming today's weekday means next week."""
        assert resolve_date("2025-06-11", "Mittwoch", WEDNESDAY) == "2025-06-18"

    def test_resolve_date_keeps_later_matching_weekday(self):
        assert resolve_date("2025-06-27", "Freitag in zwei Wochen", WEDNESDAY) == "2025-06-27"

    def test_resolve_date_unparseable_candidate_passes_through(self):
        assert resolve_date("naechste Woche", "Freitag", WEDNESDAY) == "naechste Woche"

    def test_is_past_date(self):
        assert is_past_date("2025-06-10", WEDNESDAY)
        assert not is_past_date("2025-06-11", WEDNESDAY)
        assert not is_past_date("kein Datum", WEDNESDAY)

    def test_closed_day_today(self):
        """A request for today when today is the only closed day."""
        closed = normalize_closed_days(["Mittwoch"])

        assert is_closed_day(WEDNESDAY, closed)
        assert not is_closed_day(date(2025, 6, 12), closed)


class TestClosedDayNormalization:
    """Test parsing of heterogeneous closed-day input."""

    def test_mixed_duplicates_collapse(self):
        assert normalize_closed_days(["Montag", "montag", "1"]) == frozenset({1})

    def test_order_independent(self):
        assert normalize_closed_days(["So", "Mo"]) == normalize_closed_days(["mo", "sonntag"])

    def test_json_string(self):
        assert normalize_closed_days('["Sunday", "tue"]') == frozenset({0, 2})

    def test_delimited_string(self):
        assert normalize_closed_days("Mo, Di; sa") == frozenset({1, 2, 6})

    def test_numbers(self):
        assert normalize_closed_days(7) == frozenset({0})
        assert normalize_closed_days([0, 3, 9]) == frozenset({0, 3})

    def test_empty_and_unknown(self):
        assert normalize_closed_days(None) == frozenset()
        assert normalize_closed_days("") == frozenset()
        assert normalize_closed_days(["Feiertag"]) == frozenset()


class TestTimeParsing:
    """Test spoken time formats."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("19:30", 19 * 60 + 30),
            ("19.30", 19 * 60 + 30),
            ("19 30", 19 * 60 + 30),
            ("1930", 19 * 60 + 30),
            ("19", 19 * 60),
            ("19 Uhr", 19 * 60),
            ("8:05", 8 * 60 + 5),
        ],
    )
    def test_accepted_formats(self, value, expected):
        assert parse_time_to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["", "25:00", "19:75", "abends", None])
    def test_invalid_times(self, value):
        assert parse_time_to_minutes(value) is None

    def test_format_minutes(self):
        assert format_minutes(19 * 60 + 5) == "19:05"
