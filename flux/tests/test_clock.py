"""
Tests for timestamp helpers.

Durations come from stored timestamps, never from the clock.
"""

from datetime import datetime, timezone

from flux.core.clock import ManualClock, elapsed_ms, fmt_duration, format_timestamp, parse_timestamp


def test_format_has_milliseconds_and_offset():
    ts = format_timestamp(datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc))
    assert ts == "2024-05-01T12:00:00.123+00:00"


def test_parse_accepts_z_and_naive():
    assert parse_timestamp("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert parse_timestamp("2024-05-01T12:00:00").tzinfo is not None
    assert parse_timestamp("not a time") is None
    assert parse_timestamp(None) is None


def test_elapsed_across_offsets():
    start = "2024-05-01T12:00:00.000+00:00"
    end = "2024-05-01T14:00:03.400+02:00"
    assert elapsed_ms(start, end) == 3400
    assert elapsed_ms(start, "garbage") is None


def test_manual_clock_advances():
    clock = ManualClock()
    before = clock.now()
    clock.advance(3400)
    assert elapsed_ms(format_timestamp(before), format_timestamp(clock.now())) == 3400


def test_fmt_duration():
    assert fmt_duration(850) == "850ms"
    assert fmt_duration(3400) == "3.4s"
    assert fmt_duration(125_000) == "2m5s"
    assert fmt_duration(None) == "incomplete"
