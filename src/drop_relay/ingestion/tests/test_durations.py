"""Tests for the game timer codec."""

from datetime import timedelta

from drop_relay.ingestion.durations import format_duration, parse_duration


class TestParseDuration:
    def test_minutes_seconds(self):
        assert parse_duration("12:34") == timedelta(minutes=12, seconds=34)

    def test_hours(self):
        assert parse_duration("1:02:03") == timedelta(hours=1, minutes=2, seconds=3)

    def test_fraction_is_hundredths(self):
        assert parse_duration("1:23.4") == timedelta(minutes=1, seconds=23, milliseconds=400)
        assert parse_duration("1:23.40") == timedelta(minutes=1, seconds=23, milliseconds=400)

    def test_trailing_period(self):
        assert parse_duration("1:23.") == timedelta(minutes=1, seconds=23)

    def test_malformed(self):
        assert parse_duration("1::23:45") is None
        assert parse_duration("abc") is None
        assert parse_duration("") is None
        assert parse_duration(None) is None


class TestFormatDuration:
    def test_without_hours(self):
        assert format_duration(timedelta(minutes=1, seconds=5)) == "01:05"

    def test_with_hours(self):
        assert format_duration(timedelta(hours=1, minutes=2, seconds=3)) == "01:02:03"

    def test_precise(self):
        duration = timedelta(minutes=1, seconds=23, milliseconds=400)
        assert format_duration(duration, precise=True) == "01:23.40"

    def test_none_is_zero(self):
        assert format_duration(None) == "00:00"
