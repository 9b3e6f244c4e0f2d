"""Tests for shared parsing and numeric helpers (almanac/utils.py)."""

from __future__ import annotations

import asyncio

import pytest

from almanac.utils import (
    await_with_timeout,
    haversine_km,
    parse_bool,
    parse_float,
    parse_int,
    safe_float,
)


@pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
def test_parse_bool_truthy(value):
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", ["0", "false", "off", "maybe"])
def test_parse_bool_falsy(value):
    assert parse_bool(value, default=True) is False


def test_parse_bool_default():
    assert parse_bool(None, default=True) is True


def test_parse_int_and_float_fallbacks():
    assert parse_int("42", 0) == 42
    assert parse_int("4.2", 7) == 7
    assert parse_int(None, 7) == 7
    assert parse_float("1.5", 0.0) == 1.5
    assert parse_float("fast", 2.0) == 2.0


@pytest.mark.parametrize(
    ("value", "expected"),
    [("3.21", 3.21), (12, 12.0), (None, None), ("", None), ("n/a", None), (True, None), ("nan", None)],
)
def test_safe_float(value, expected):
    assert safe_float(value) == expected


def test_haversine_known_distance():
    # Boston to New York City is roughly 306 km.
    assert haversine_km(42.3601, -71.0589, 40.7128, -74.0060) == pytest.approx(306, abs=3)


def test_haversine_zero_and_symmetric():
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0.0
    assert haversine_km(0, 0, 1, 1) == pytest.approx(haversine_km(1, 1, 0, 0))


@pytest.mark.anyio
async def test_await_with_timeout():
    async def value():
        return 5

    assert await await_with_timeout(value(), None) == 5
    with pytest.raises(asyncio.TimeoutError):
        await await_with_timeout(asyncio.sleep(1), 0.01)
