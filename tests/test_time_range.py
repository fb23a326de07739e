"""Tests for time parsing, half-open overlaps and local calendar days."""

from datetime import date, datetime, time, timezone

import pytest
from dateutil import tz

from clinic_scheduler.domain.scheduling.errors import InvalidFormat
from clinic_scheduler.domain.scheduling.time_range import (
    TimeRange,
    add_minutes,
    combine_date_and_time,
    local_calendar_day,
    minutes_to_time,
    overlaps,
    to_local_naive,
    to_minutes,
)


class TestToMinutes:
    """Tests for HH:MM parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("00:00", 0), ("09:30", 570), ("9:30", 570), ("23:59", 1439), (time(14, 15), 855)],
    )
    def test_valid_times(self, value, expected) -> None:
        assert to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "12", "12:5", "1:2:3", None])
    def test_malformed_times_raise(self, value) -> None:
        """Malformed input is never silently coerced."""
        with pytest.raises(InvalidFormat):
            to_minutes(value)

    def test_minutes_to_time_pads(self) -> None:
        assert minutes_to_time(545) == "09:05"

    def test_minutes_to_time_out_of_day(self) -> None:
        with pytest.raises(InvalidFormat):
            minutes_to_time(1440)

    def test_add_minutes(self) -> None:
        assert add_minutes("09:15", 45) == "10:00"

    def test_add_minutes_crossing_midnight_raises(self) -> None:
        with pytest.raises(InvalidFormat):
            add_minutes("23:30", 30)


class TestOverlaps:
    """Half-open interval semantics."""

    def test_partial_overlap(self) -> None:
        assert overlaps(600, 660, 630, 690)

    def test_containment(self) -> None:
        assert overlaps(600, 720, 630, 660)

    def test_adjacent_ranges_do_not_overlap(self) -> None:
        """Back-to-back appointments are legal."""
        assert not overlaps(600, 660, 660, 720)
        assert not overlaps(660, 720, 600, 660)

    def test_disjoint(self) -> None:
        assert not overlaps(600, 630, 700, 730)

    def test_symmetric(self) -> None:
        assert overlaps(600, 660, 630, 690) == overlaps(630, 690, 600, 660)

    def test_time_range_overlaps(self) -> None:
        assert TimeRange.parse("10:00", "11:00").overlaps(TimeRange.parse("10:30", "11:30"))
        assert not TimeRange.parse("10:00", "11:00").overlaps(TimeRange.parse("11:00", "12:00"))


class TestTimeRange:
    def test_parse(self) -> None:
        tr = TimeRange.parse("9:00", "10:30")
        assert tr == (540, 630)
        assert tr.start_time == "09:00"
        assert str(tr) == "09:00-10:30"

    @pytest.mark.parametrize("start,end", [("10:00", "10:00"), ("11:00", "10:00")])
    def test_start_must_precede_end(self, start, end) -> None:
        with pytest.raises(InvalidFormat):
            TimeRange.parse(start, end)


class TestLocalCalendarDay:
    """The single date-normalization authority."""

    def test_bare_date_string(self) -> None:
        assert local_calendar_day("2024-03-04") == date(2024, 3, 4)

    def test_date_passthrough(self) -> None:
        assert local_calendar_day(date(2024, 3, 4)) == date(2024, 3, 4)

    def test_naive_timestamp_is_local(self) -> None:
        assert local_calendar_day("2024-03-04T23:30:00") == date(2024, 3, 4)

    def test_utc_timestamp_late_evening_keeps_local_day(self) -> None:
        """01:30 UTC on the 5th is 22:30 on the 4th in Buenos Aires."""
        assert local_calendar_day("2024-03-05T01:30:00Z") == date(2024, 3, 4)

    def test_aware_datetime(self) -> None:
        value = datetime(2024, 3, 5, 1, 30, tzinfo=timezone.utc)
        assert local_calendar_day(value) == date(2024, 3, 4)

    def test_offset_timestamp(self) -> None:
        assert local_calendar_day("2024-03-04T23:00:00-03:00") == date(2024, 3, 4)

    def test_explicit_zone(self) -> None:
        tokyo = tz.gettz("Asia/Tokyo")
        assert local_calendar_day("2024-03-04T20:00:00Z", tokyo) == date(2024, 3, 5)

    @pytest.mark.parametrize("value", ["04/03/2024", "2024-13-01", "yesterday", 20240304])
    def test_malformed_raises(self, value) -> None:
        with pytest.raises(InvalidFormat):
            local_calendar_day(value)


class TestCombine:
    def test_combine_date_and_time(self) -> None:
        assert combine_date_and_time("2024-03-04", "14:30") == datetime(2024, 3, 4, 14, 30)

    def test_to_local_naive_keeps_naive(self) -> None:
        value = datetime(2024, 3, 4, 10, 0)
        assert to_local_naive(value) is value

    def test_to_local_naive_converts_aware(self) -> None:
        value = datetime(2024, 3, 4, 13, 0, tzinfo=timezone.utc)
        assert to_local_naive(value) == datetime(2024, 3, 4, 10, 0)
