"""Spoken sentences for each briefing section and their fixed-order composition."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from almanac.datetime_utils import describe_time_ago, format_spoken_date, format_spoken_time, greeting_for_hour
from almanac.sun_times import SunTimes
from almanac.tides import TideEvent

from .providers import AirQualityReport, BibleVerse, CityInfo, NotableBird, WeatherReport

if TYPE_CHECKING:
    from .briefing import BriefingResult

MAX_SPOKEN_BIRDS = 3


def general_conditions(code: int, precipitation_probability: float) -> str:
    if code >= 95:
        return "stormy"
    if code >= 80:
        return "rainy with showers"
    if 61 <= code <= 65:
        return "rainy"
    if 51 <= code <= 55:
        return "drizzly"
    if 71 <= code <= 86:
        return "snowy"
    if code in (45, 48):
        return "foggy"
    if code == 3:
        return "overcast"
    if code == 2:
        return "partly cloudy"
    if code == 1:
        return "mostly sunny"
    if code == 0:
        return "sunny"
    if precipitation_probability > 70:
        return "likely rainy"
    if precipitation_probability > 30:
        return "possibly rainy"
    return "fair"


def time_sentence(now: datetime) -> str:
    return f"{greeting_for_hour(now.hour)}. It is {format_spoken_time(now)}, {format_spoken_date(now)}."


def location_sentence(city: CityInfo | str) -> str:
    label = city.label if isinstance(city, CityInfo) else city
    return f"Your location is {label}."


def weather_sentence(weather: WeatherReport) -> str:
    parts = [
        f"Today's weather will be {general_conditions(weather.weather_code, weather.precipitation_probability)}.",
        f"Currently {weather.conditions.lower()} with a temperature of {round(weather.temperature)} degrees.",
        f"Today's high will be {round(weather.high_temp)} and low {round(weather.low_temp)}.",
    ]
    if weather.precipitation_probability > 30:
        parts.append(f"{round(weather.precipitation_probability)} percent chance of precipitation.")
    if weather.precipitation > 0:
        parts.append(f"Current precipitation {weather.precipitation:.1f} inches.")
    parts.append(f"Humidity {round(weather.humidity)} percent.")
    parts.append(f"Wind speed {round(weather.wind_speed)} miles per hour.")
    return " ".join(parts)


def sun_sentence(sun: SunTimes) -> str:
    if sun.sunrise is None and sun.sunset is None:
        return "The sun does not rise or set today."
    clauses = []
    if sun.sunrise is not None:
        clauses.append(f"sunrise at {format_spoken_time(sun.sunrise)}")
    if sun.sunset is not None:
        clauses.append(f"sunset at {format_spoken_time(sun.sunset)}")
    text = ", ".join(clauses)
    return f"{text[0].upper()}{text[1:]}."


def tide_sentence(events: Sequence[TideEvent]) -> str | None:
    if not events:
        return None
    parts = []
    current = next((event for event in events if event.is_current), None)
    if current is not None:
        parts.append(f"Current tide is {current.height_feet:.1f} feet.")
    upcoming = next((event for event in events if not event.is_current), None)
    if upcoming is not None:
        parts.append(
            f"Next {upcoming.kind.lower()} tide at {format_spoken_time(upcoming.time)}, {upcoming.height_feet:.1f} feet."
        )
    return " ".join(parts) or None


def air_quality_sentence(air: AirQualityReport) -> str:
    return f"Air quality is {air.category}, with an index of {air.aqi}."


def verse_sentence(verse: BibleVerse) -> str:
    return f"Today's Bible verse is from {verse.reference}. {verse.text}"


def birds_sentence(birds: Sequence[NotableBird], now: datetime) -> str | None:
    if not birds:
        return None
    descriptions = []
    for bird in birds[:MAX_SPOKEN_BIRDS]:
        count = f"{bird.how_many} " if bird.how_many else ""
        description = f"{count}{bird.common_name} at {bird.location_name}"
        if bird.observed_at is not None:
            description += f" {describe_time_ago(bird.observed_at, now)}"
        descriptions.append(description)
    intro = "Notable bird sighting: " if len(birds) == 1 else "Notable bird sightings: "
    return intro + ". ".join(descriptions) + "."


def compose_narration(result: BriefingResult, now: datetime) -> str:
    """Join the sentences of every present section in the fixed briefing order."""
    sentences: list[str | None] = [time_sentence(now)]
    if result.location_label:
        sentences.append(location_sentence(result.location_label))
    if result.weather is not None:
        sentences.append(weather_sentence(result.weather))
    if result.sun_times is not None:
        sentences.append(sun_sentence(result.sun_times))
    if result.tide_events:
        sentences.append(tide_sentence(result.tide_events))
    if result.air_quality is not None:
        sentences.append(air_quality_sentence(result.air_quality))
    if result.verse is not None:
        sentences.append(verse_sentence(result.verse))
    if result.birds:
        sentences.append(birds_sentence(result.birds, now))
    return " ".join(sentence for sentence in sentences if sentence)
