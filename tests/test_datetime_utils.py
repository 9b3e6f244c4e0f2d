"""Tests for datetime utilities (almanac/datetime_utils.py)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from almanac.datetime_utils import (
    describe_time_ago,
    deserialize_dt,
    ensure_local,
    ensure_utc,
    format_spoken_date,
    format_spoken_time,
    greeting_for_hour,
    local_now,
    serialize_dt,
)

EASTERN = timezone(timedelta(hours=-5), "EST")


# Timezone Handling Tests


def test_local_now_returns_aware():
    assert local_now().tzinfo is not None


def test_ensure_utc_assumes_naive_is_utc():
    assert ensure_utc(datetime(2025, 1, 6, 12, 0)) == datetime(2025, 1, 6, 12, 0, tzinfo=UTC)


def test_ensure_utc_converts_aware():
    assert ensure_utc(datetime(2025, 1, 6, 7, 0, tzinfo=EASTERN)) == datetime(2025, 1, 6, 12, 0, tzinfo=UTC)


def test_ensure_local_preserves_instant():
    value = datetime(2025, 1, 6, 12, 0, tzinfo=UTC)
    assert ensure_local(value) == value
    assert ensure_local(value).tzinfo is not None


# Serialization Tests


def test_serialize_round_trip_keeps_offset():
    value = datetime(2025, 1, 6, 7, 5, tzinfo=EASTERN)
    text = serialize_dt(value)
    assert text == "2025-01-06T07:05:00-05:00"
    assert deserialize_dt(text) == value


@pytest.mark.parametrize("value", [None, "", "not a date"])
def test_deserialize_invalid_returns_none(value):
    assert deserialize_dt(value) is None


def test_deserialize_naive_becomes_aware():
    assert deserialize_dt("2025-01-06T07:05:00").tzinfo is not None


# Spoken Formatting Tests


@pytest.mark.parametrize(
    ("hour", "expected"),
    [
        (4, "Good night"),
        (5, "Good morning"),
        (11, "Good morning"),
        (12, "Good afternoon"),
        (16, "Good afternoon"),
        (17, "Good evening"),
        (20, "Good evening"),
        (21, "Good night"),
        (0, "Good night"),
    ],
)
def test_greeting_for_hour(hour, expected):
    assert greeting_for_hour(hour) == expected


@pytest.mark.parametrize(
    ("hour", "minute", "expected"),
    [(0, 0, "12:00 AM"), (7, 5, "7:05 AM"), (12, 30, "12:30 PM"), (23, 59, "11:59 PM")],
)
def test_format_spoken_time(hour, minute, expected):
    assert format_spoken_time(datetime(2025, 1, 6, hour, minute, tzinfo=EASTERN)) == expected


def test_format_spoken_date():
    assert format_spoken_date(datetime(2025, 1, 6, 7, 5, tzinfo=EASTERN)) == "Monday, January 6"


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(minutes=20), "less than an hour ago"),
        (timedelta(hours=1, minutes=10), "1 hour ago"),
        (timedelta(hours=5), "5 hours ago"),
        (timedelta(hours=30), "yesterday"),
        (timedelta(days=3, hours=2), "3 days ago"),
    ],
)
def test_describe_time_ago(delta, expected):
    now = datetime(2025, 1, 6, 7, 0, tzinfo=EASTERN)
    assert describe_time_ago(now - delta, now) == expected
