"""Concurrent fan-out over every briefing data source with per-source failure isolation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from almanac.datetime_utils import local_now
from almanac.location_resolver import LocationFix, LocationResolver
from almanac.sun_times import SunTimeEngine, SunTimes
from almanac.tides import TideEngine, TideEvent

from .narration import compose_narration
from .providers import (
    AirQualityClient,
    AirQualityReport,
    BibleVerse,
    BirdingClient,
    GeocodingClient,
    NotableBird,
    VerseClient,
    WeatherClient,
    WeatherReport,
)

LOGGER = logging.getLogger("almanac.briefing")


@dataclass(slots=True)
class BriefingResult:
    generated_at: datetime
    fix: LocationFix
    location_label: str | None = None
    weather: WeatherReport | None = None
    sun_times: SunTimes | None = None
    tide_events: list[TideEvent] = field(default_factory=list)
    air_quality: AirQualityReport | None = None
    verse: BibleVerse | None = None
    birds: list[NotableBird] = field(default_factory=list)
    narration: str = ""
    failures: dict[str, str] = field(default_factory=dict)


class BriefingAggregator:
    """Gather every section of the briefing concurrently and compose the narration.

    Only the location fix is mandatory: a ``LocationError`` from the resolver
    propagates. Every other source runs as its own task bounded by
    ``provider_timeout``; a failed source is logged, recorded in
    ``BriefingResult.failures`` and left out of the narration.
    """

    def __init__(
        self,
        resolver: LocationResolver,
        *,
        tides: TideEngine | None = None,
        sun: SunTimeEngine | None = None,
        weather: WeatherClient | None = None,
        air_quality: AirQualityClient | None = None,
        geocoder: GeocodingClient | None = None,
        verse: VerseClient | None = None,
        birds: BirdingClient | None = None,
        provider_timeout: float | None = 10.0,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.resolver = resolver
        self.tides = tides
        self.sun = sun or SunTimeEngine()
        self.weather = weather
        self.air_quality = air_quality
        self.geocoder = geocoder
        self.verse = verse
        self.birds = birds
        self.provider_timeout = provider_timeout
        self._clock = clock
        self.logger = logger or LOGGER

    async def run(self) -> BriefingResult:
        fix = await self.resolver.resolve()
        now = self._clock()
        result = BriefingResult(generated_at=now, fix=fix)

        sources = self._sources(fix, now)
        names = list(sources)
        outcomes = await asyncio.gather(
            *(self._bounded(sources[name]) for name in names),
            return_exceptions=True,
        )
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                reason = str(outcome) or type(outcome).__name__
                self.logger.warning("Briefing source %s failed: %s", name, reason)
                self.logger.debug("Briefing source %s traceback", name, exc_info=outcome)
                result.failures[name] = reason
                continue
            self._apply(result, name, outcome)

        result.narration = compose_narration(result, now)
        self.logger.info(
            "Briefing composed (%d characters, %d source(s) omitted)",
            len(result.narration),
            len(result.failures),
        )
        return result

    def _sources(self, fix: LocationFix, now: datetime) -> dict[str, Callable[[], Awaitable[Any]]]:
        lat, lon = fix.latitude, fix.longitude
        sources: dict[str, Callable[[], Awaitable[Any]]] = {}
        if self.geocoder is not None:
            geocoder = self.geocoder
            sources["location"] = lambda: geocoder.city(lat, lon)
        if self.weather is not None:
            weather = self.weather
            sources["weather"] = lambda: weather.current(lat, lon)
        sources["sun_times"] = lambda: self._sun_times(fix, now)
        if self.tides is not None:
            tides = self.tides
            sources["tides"] = lambda: tides.get_events(fix)
        if self.air_quality is not None:
            air_quality = self.air_quality
            sources["air_quality"] = lambda: air_quality.current(lat, lon)
        if self.verse is not None:
            verse = self.verse
            sources["verse"] = verse.verse_of_the_day
        if self.birds is not None and self.birds.enabled:
            birds = self.birds
            sources["birds"] = lambda: birds.notable(lat, lon)
        return sources

    async def _sun_times(self, fix: LocationFix, now: datetime) -> SunTimes:
        return self.sun.compute(fix.latitude, fix.longitude, now.date(), now.tzinfo)

    async def _bounded(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        if self.provider_timeout is None:
            return await factory()
        return await asyncio.wait_for(factory(), timeout=self.provider_timeout)

    @staticmethod
    def _apply(result: BriefingResult, name: str, value: Any) -> None:
        if name == "location":
            result.location_label = value.label
        elif name == "weather":
            result.weather = value
        elif name == "sun_times":
            result.sun_times = value
        elif name == "tides":
            result.tide_events = list(value)
        elif name == "air_quality":
            result.air_quality = value
        elif name == "verse":
            result.verse = value
        elif name == "birds":
            result.birds = list(value)
