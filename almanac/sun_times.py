"""Closed-form sunrise, sunset and civil twilight computation.

Solar position is evaluated once per date (at 12:00 UTC) with the low-order
NOAA series: mean anomaly, equation of center, true longitude, declination
and equation of time. Event instants are then derived from the hour angle at
which the sun's centre crosses a given zenith angle. No network access.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo

OFFICIAL_ZENITH = 90.833
CIVIL_ZENITH = 96.0
OBLIQUITY_DEG = 23.439

_JULIAN_DAY_OFFSET = 1721424.5  # date.toordinal() -> Julian day at 00:00 UTC
_J2000 = 2451545.0


@dataclass(frozen=True, slots=True)
class SolarPosition:
    declination: float  # degrees
    equation_of_time: float  # minutes


@dataclass(frozen=True, slots=True)
class SunTimes:
    sunrise: datetime | None
    sunset: datetime | None
    civil_dawn: datetime | None
    civil_dusk: datetime | None


def julian_day(on_date: date) -> float:
    """Julian day at 12:00 UTC of ``on_date``."""
    return on_date.toordinal() + _JULIAN_DAY_OFFSET + 0.5


def julian_century(on_date: date) -> float:
    return (julian_day(on_date) - _J2000) / 36525.0


def solar_position(on_date: date) -> SolarPosition:
    t = julian_century(on_date)
    mean_anomaly = 357.52911 + t * (35999.05029 - 0.0001537 * t)
    mean_longitude = (280.46646 + t * (36000.76983 + 0.0003032 * t)) % 360.0
    m = math.radians(mean_anomaly)
    center = (
        math.sin(m) * (1.914602 - t * (0.004817 + 0.000014 * t))
        + math.sin(2 * m) * (0.019993 - 0.000101 * t)
        + math.sin(3 * m) * 0.000289
    )
    true_longitude = mean_longitude + center
    obliquity = math.radians(OBLIQUITY_DEG)
    declination = math.degrees(math.asin(math.sin(obliquity) * math.sin(math.radians(true_longitude))))

    eccentricity = 0.016708634 - t * (0.000042037 + 0.0000001267 * t)
    y = math.tan(obliquity / 2) ** 2
    l0 = math.radians(mean_longitude)
    eot_radians = (
        y * math.sin(2 * l0)
        - 2 * eccentricity * math.sin(m)
        + 4 * eccentricity * y * math.sin(m) * math.cos(2 * l0)
        - 0.5 * y * y * math.sin(4 * l0)
        - 1.25 * eccentricity * eccentricity * math.sin(2 * m)
    )
    return SolarPosition(declination=declination, equation_of_time=4 * math.degrees(eot_radians))


def cos_hour_angle(latitude: float, declination: float, zenith: float) -> float:
    lat = math.radians(latitude)
    decl = math.radians(declination)
    return (math.cos(math.radians(zenith)) - math.sin(lat) * math.sin(decl)) / (math.cos(lat) * math.cos(decl))


def solar_event(
    latitude: float,
    longitude: float,
    on_date: date,
    zenith: float,
    *,
    rising: bool,
    tz: tzinfo | None = None,
    position: SolarPosition | None = None,
) -> datetime | None:
    """Instant at which the sun crosses ``zenith`` on ``on_date``.

    Returns ``None`` when the crossing does not happen that day (polar day or
    polar night), never a clamped value.
    """
    position = position or solar_position(on_date)
    cos_h = cos_hour_angle(latitude, position.declination, zenith)
    if cos_h > 1 or cos_h < -1:
        return None
    hour_angle = math.degrees(math.acos(cos_h))
    solar_noon = 720.0 - 4.0 * longitude - position.equation_of_time
    minutes = solar_noon - 4.0 * hour_angle if rising else solar_noon + 4.0 * hour_angle
    midnight = datetime(on_date.year, on_date.month, on_date.day, tzinfo=UTC)
    instant = midnight + timedelta(seconds=round(minutes * 60))
    return instant.astimezone(tz) if tz is not None else instant.astimezone()


def compute_sun_times(
    latitude: float,
    longitude: float,
    on_date: date,
    tz: tzinfo | None = None,
) -> SunTimes:
    """Sunrise/sunset (official zenith) and civil dawn/dusk for one date."""
    position = solar_position(on_date)

    def _event(zenith: float, rising: bool) -> datetime | None:
        return solar_event(latitude, longitude, on_date, zenith, rising=rising, tz=tz, position=position)

    return SunTimes(
        sunrise=_event(OFFICIAL_ZENITH, True),
        sunset=_event(OFFICIAL_ZENITH, False),
        civil_dawn=_event(CIVIL_ZENITH, True),
        civil_dusk=_event(CIVIL_ZENITH, False),
    )


class SunTimeEngine:
    """Stateless facade used by the briefing aggregator."""

    def compute(self, latitude: float, longitude: float, on_date: date, tz: tzinfo | None = None) -> SunTimes:
        return compute_sun_times(latitude, longitude, on_date, tz)
