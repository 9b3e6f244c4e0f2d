"""Shared test fixtures and configuration for the Almanac Alarm test suite.

This module provides reusable fixtures for common test scenarios including:
- Configuration objects built from a controlled environment
- A fixed clock in a fixed timezone
- Location fixes
- Async test utilities
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import Mock

import pytest

from almanac.alarm.config import AlmanacConfig
from almanac.location_resolver import LocationFix

EASTERN = timezone(timedelta(hours=-5), "EST")

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Clock and Location Fixtures
# ============================================================================


@pytest.fixture
def fixed_now():
    """Monday 2025-01-06 07:05 in a fixed UTC-5 zone."""
    return datetime(2025, 1, 6, 7, 5, tzinfo=EASTERN)


@pytest.fixture
def clock(fixed_now):
    """Mutable clock: call it for the time, set ``clock.now`` to move it."""

    class _Clock:
        def __init__(self, now: datetime) -> None:
            self.now = now

        def __call__(self) -> datetime:
            return self.now

        def advance(self, delta: timedelta) -> None:
            self.now = self.now + delta

    return _Clock(fixed_now)


@pytest.fixture
def boston_fix(fixed_now):
    """A fresh fix for Boston, MA."""
    return LocationFix(latitude=42.3601, longitude=-71.0589, accuracy=10.0, captured_at=fixed_now)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def make_config(tmp_path):
    """Factory fixture for configs built from an isolated environment.

    Usage:
        config = make_config(ALMANAC_LOCATION="42.36,-71.06")
    """

    def _create_config(**overrides: Any) -> AlmanacConfig:
        env = {"ALMANAC_TRIGGER_STORE": str(tmp_path / "triggers.json")}
        env.update({key: str(value) for key, value in overrides.items()})
        return AlmanacConfig.from_env(env)

    return _create_config


@pytest.fixture
def almanac_config(make_config):
    """Default configuration with a coordinate location."""
    return make_config(ALMANAC_LOCATION="42.3601,-71.0589")


# ============================================================================
# Async Test Utilities
# ============================================================================


@pytest.fixture
def async_timeout():
    """Provide a reasonable timeout for async tests.

    Returns timeout in seconds. Useful for ensuring tests don't hang.
    """
    return 5.0
