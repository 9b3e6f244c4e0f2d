"""Geographic fix acquisition with a time-boxed cache fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

import httpx

from .datetime_utils import local_now
from .errors import LocationError, LocationTimeout, PositionUnavailable

LOGGER = logging.getLogger("almanac.location_resolver")

LAT_LON_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")
POSTAL_CODE_PATTERN = re.compile(r"^\s*(\d{5})(?:-\d{4})?\s*$")

DEFAULT_GEOCODE_URL = "https://geocoding-api.open-meteo.com/v1/search"
DEFAULT_POSTAL_URL = "https://api.zippopotam.us/us"

# Nominal accuracy in metres for each way a configured location can be resolved.
COORDINATE_ACCURACY_M = 10.0
POSTAL_ACCURACY_M = 5000.0
PLACE_ACCURACY_M = 10000.0


@dataclass(frozen=True, slots=True)
class LocationFix:
    latitude: float
    longitude: float
    accuracy: float
    captured_at: datetime


@dataclass(slots=True)
class ResolvedLocation:
    latitude: float
    longitude: float
    display_name: str
    accuracy: float
    country_code: str | None = None
    timezone: str | None = None


class LocationProvider(Protocol):
    async def get_fix(self) -> LocationFix: ...


_CACHE: dict[str, ResolvedLocation] = {}


async def _http_get_json(client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> dict[str, Any] | None:
    try:
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()
    except (httpx.HTTPError, ValueError):
        return None


async def resolve_location(
    raw: str | None,
    *,
    language: str = "en",
    client: httpx.AsyncClient | None = None,
    geocode_url: str = DEFAULT_GEOCODE_URL,
    postal_url: str = DEFAULT_POSTAL_URL,
    timeout: float = 10.0,
) -> ResolvedLocation | None:
    """Resolve a user-friendly location string to coordinates.

    Supports:
    - "lat,lon"
    - ZIP/postal codes (US)
    - City names ("City, ST")
    """
    if not raw:
        return None
    normalized = raw.strip()
    if not normalized:
        return None
    cached = _CACHE.get(normalized)
    if cached:
        return cached

    match = LAT_LON_PATTERN.match(normalized)
    if match:
        lat = float(match.group(1))
        lon = float(match.group(2))
        result = ResolvedLocation(
            latitude=lat,
            longitude=lon,
            display_name=f"{lat:.2f}, {lon:.2f}",
            accuracy=COORDINATE_ACCURACY_M,
        )
        _CACHE[normalized] = result
        return result

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        result = await _resolve_remote(normalized, http, language, geocode_url, postal_url)
    finally:
        if owns_client:
            await http.aclose()
    if result:
        _CACHE[normalized] = result
    return result


async def _resolve_remote(
    normalized: str,
    client: httpx.AsyncClient,
    language: str,
    geocode_url: str,
    postal_url: str,
) -> ResolvedLocation | None:
    postal_match = POSTAL_CODE_PATTERN.match(normalized)
    if postal_match:
        payload = await _http_get_json(client, f"{postal_url.rstrip('/')}/{postal_match.group(1)}", params={})
        places = (payload or {}).get("places") or []
        if places:
            place = places[0]
            try:
                lat = float(place["latitude"])
                lon = float(place["longitude"])
            except (KeyError, TypeError, ValueError):
                pass
            else:
                city = place.get("place name") or postal_match.group(1)
                state = place.get("state abbreviation")
                return ResolvedLocation(
                    latitude=lat,
                    longitude=lon,
                    display_name=f"{city}, {state}" if state else city,
                    accuracy=POSTAL_ACCURACY_M,
                    country_code=((payload or {}).get("country abbreviation") or "").lower() or None,
                )

    payload = await _http_get_json(
        client,
        geocode_url,
        params={"name": normalized, "count": 1, "language": language},
    )
    results = (payload or {}).get("results") or []
    if not results:
        return None
    entry = results[0]
    try:
        lat = float(entry.get("latitude"))
        lon = float(entry.get("longitude"))
    except (TypeError, ValueError):
        return None
    return ResolvedLocation(
        latitude=lat,
        longitude=lon,
        display_name=entry.get("name") or normalized,
        accuracy=PLACE_ACCURACY_M,
        country_code=(entry.get("country_code") or "").lower() or None,
        timezone=entry.get("timezone") or None,
    )


class ConfiguredLocationProvider:
    """Location provider backed by a configured location string.

    Each call produces a fresh fix stamped with the current time; geocoding
    results are memoised per string, so only the first call touches the network.
    """

    def __init__(
        self,
        location: str | None,
        *,
        language: str = "en",
        geocode_url: str = DEFAULT_GEOCODE_URL,
        postal_url: str = DEFAULT_POSTAL_URL,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.location = location
        self.language = language
        self.geocode_url = geocode_url
        self.postal_url = postal_url
        self._client = client
        self._clock = clock

    async def get_fix(self) -> LocationFix:
        if not self.location or not self.location.strip():
            raise PositionUnavailable("No location is configured")
        resolved = await resolve_location(
            self.location,
            language=self.language,
            client=self._client,
            geocode_url=self.geocode_url,
            postal_url=self.postal_url,
        )
        if resolved is None:
            raise PositionUnavailable(f"Unable to resolve location {self.location!r}")
        return LocationFix(
            latitude=resolved.latitude,
            longitude=resolved.longitude,
            accuracy=resolved.accuracy,
            captured_at=self._clock(),
        )


class LocationResolver:
    """Single owner of the process-wide location cache.

    A fresh fix always wins and is promoted to the cache. When no fresh fix can
    be obtained the cached fix is returned only while it is younger than
    ``max_age``; otherwise the provider's failure propagates.
    """

    def __init__(
        self,
        provider: LocationProvider,
        *,
        max_age: timedelta = timedelta(hours=1),
        timeout: float | None = 10.0,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.provider = provider
        self.max_age = max_age
        self.timeout = timeout
        self._clock = clock
        self._cached: LocationFix | None = None
        self._logger = logger or LOGGER

    @property
    def cached_fix(self) -> LocationFix | None:
        return self._cached_if_fresh()

    async def resolve(self) -> LocationFix:
        try:
            fix = await self._fresh_fix()
        except LocationError as exc:
            cached = self._cached_if_fresh()
            if cached is not None:
                self._logger.info("Fresh location unavailable (%s); using cached fix", exc)
                return cached
            self._logger.warning("Location failed and no usable cached fix: %s", exc)
            raise
        self._cached = fix
        return fix

    async def _fresh_fix(self) -> LocationFix:
        try:
            if self.timeout is None:
                return await self.provider.get_fix()
            return await asyncio.wait_for(self.provider.get_fix(), timeout=self.timeout)
        except TimeoutError as exc:
            raise LocationTimeout("Location request timed out") from exc
        except LocationError:
            raise
        except Exception as exc:
            raise PositionUnavailable(str(exc) or "Unable to get location") from exc

    def _cached_if_fresh(self) -> LocationFix | None:
        if self._cached is None:
            return None
        age = self._clock() - self._cached.captured_at
        if age > self.max_age:
            self._logger.debug("Cached location expired (age %s)", age)
            return None
        return self._cached
