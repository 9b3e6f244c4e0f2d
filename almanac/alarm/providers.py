"""External information providers: weather, air quality, place names, verse and birds."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import httpx

from almanac.datetime_utils import local_now
from almanac.errors import NetworkError, ProviderTimeout
from almanac.utils import safe_float

from .config import ProviderConfig

LOGGER = logging.getLogger("almanac.providers")

WMO_DESCRIPTIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}

DAILY_VERSES: tuple[str, ...] = (
    "John 3:16",
    "Psalm 23:1",
    "Philippians 4:13",
    "Jeremiah 29:11",
    "Proverbs 3:5-6",
    "Romans 8:28",
    "Isaiah 41:10",
    "Matthew 28:20",
    "Psalm 46:1",
    "John 14:6",
    "Romans 12:2",
    "Joshua 1:9",
    "Psalm 118:24",
    "Proverbs 16:3",
    "Matthew 6:33",
    "Psalm 37:4",
    "1 Corinthians 13:4-8",
    "Ephesians 2:8-9",
    "Psalm 119:105",
    "Isaiah 40:31",
    "Romans 5:8",
    "Galatians 5:22-23",
    "Matthew 11:28",
    "Psalm 121:1-2",
    "2 Timothy 1:7",
    "Hebrews 11:1",
    "James 1:2-3",
    "Colossians 3:23",
    "1 John 4:19",
    "Psalm 27:1",
    "Matthew 5:14-16",
)

_VERSE_MARKER = re.compile(r"\[\d+\]")
_WHITESPACE = re.compile(r"\s+")


class TTLCache:
    """Simple in-memory cache with per-key TTL."""

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl_seconds
        self._clock = clock
        self._values: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        now = self._clock()
        entry = self._values.get(key)
        if not entry:
            return None
        expires, value = entry
        if expires < now:
            self._values.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._values[key] = (self._clock() + self.ttl, value)


async def _get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
) -> Any:
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        response = await http.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()
    except httpx.TimeoutException as exc:
        raise ProviderTimeout(f"Request timed out: {url}") from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"Request failed: {exc}") from exc
    except ValueError as exc:
        raise NetworkError(f"Invalid JSON from {url}") from exc
    finally:
        if owns_client:
            await http.aclose()


def _require_dict(payload: Any, what: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise NetworkError(f"Unexpected {what} payload")
    if payload.get("error"):
        raise NetworkError(str(payload.get("reason") or payload.get("error")))
    return payload


def _first(values: Any) -> Any:
    if isinstance(values, list) and values:
        return values[0]
    return None


@dataclass(frozen=True, slots=True)
class WeatherReport:
    temperature: float
    weather_code: int
    conditions: str
    humidity: float
    wind_speed: float
    precipitation: float
    high_temp: float
    low_temp: float
    precipitation_probability: float


@dataclass(frozen=True, slots=True)
class AirQualityReport:
    aqi: int
    category: str
    pm25: float | None
    pm10: float | None


@dataclass(frozen=True, slots=True)
class CityInfo:
    city: str
    country: str
    state: str | None = None

    @property
    def label(self) -> str:
        if self.state:
            return f"{self.city}, {self.state}"
        return f"{self.city}, {self.country}"


@dataclass(frozen=True, slots=True)
class BibleVerse:
    reference: str
    text: str
    translation: str


@dataclass(frozen=True, slots=True)
class NotableBird:
    species_code: str
    common_name: str
    location_name: str
    observed_at: datetime | None
    how_many: int | None


def describe_weather_code(code: int) -> str:
    return WMO_DESCRIPTIONS.get(code, "Unknown conditions")


def aqi_category(aqi: float) -> str:
    if aqi <= 50:
        return "Good"
    if aqi <= 100:
        return "Moderate"
    if aqi <= 150:
        return "Unhealthy for Sensitive Groups"
    if aqi <= 200:
        return "Unhealthy"
    if aqi <= 300:
        return "Very Unhealthy"
    return "Hazardous"


def daily_verse_reference(on_date: date) -> str:
    """Same reference all day; rotates through the curated list by day of year."""
    day_of_year = on_date.timetuple().tm_yday
    year_offset = on_date.year % len(DAILY_VERSES)
    return DAILY_VERSES[(day_of_year + year_offset) % len(DAILY_VERSES)]


def clean_verse_text(text: str) -> str:
    return _WHITESPACE.sub(" ", _VERSE_MARKER.sub("", text)).strip()


class WeatherClient:
    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client
        self._cache = TTLCache(ttl_seconds=600)

    async def current(self, latitude: float, longitude: float) -> WeatherReport:
        cache_key = f"{latitude:.4f},{longitude:.4f}"
        cached = self._cache.get(cache_key)
        if cached:
            return cached
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m,relative_humidity_2m,precipitation,wind_speed_10m,weather_code",
            "daily": "temperature_2m_max,temperature_2m_min,precipitation_probability_max",
            "temperature_unit": "fahrenheit",
            "wind_speed_unit": "mph",
            "precipitation_unit": "inch",
            "timezone": "auto",
            "forecast_days": 1,
        }
        payload = _require_dict(
            await _get_json(self.config.weather_url, params=params, client=self._client, timeout=self.config.timeout_seconds),
            "weather",
        )
        current = payload.get("current")
        daily = payload.get("daily")
        if not isinstance(current, dict) or not isinstance(daily, dict):
            raise NetworkError("Failed to fetch weather data")
        temperature = safe_float(current.get("temperature_2m"))
        code = safe_float(current.get("weather_code"))
        high = safe_float(_first(daily.get("temperature_2m_max")))
        low = safe_float(_first(daily.get("temperature_2m_min")))
        if temperature is None or code is None or high is None or low is None:
            raise NetworkError("Weather payload is missing required fields")
        report = WeatherReport(
            temperature=temperature,
            weather_code=int(code),
            conditions=describe_weather_code(int(code)),
            humidity=safe_float(current.get("relative_humidity_2m")) or 0.0,
            wind_speed=safe_float(current.get("wind_speed_10m")) or 0.0,
            precipitation=safe_float(current.get("precipitation")) or 0.0,
            high_temp=high,
            low_temp=low,
            precipitation_probability=safe_float(_first(daily.get("precipitation_probability_max"))) or 0.0,
        )
        self._cache.set(cache_key, report)
        return report


class AirQualityClient:
    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def current(self, latitude: float, longitude: float) -> AirQualityReport:
        params = {"latitude": latitude, "longitude": longitude, "current": "us_aqi,pm2_5,pm10"}
        payload = _require_dict(
            await _get_json(
                self.config.air_quality_url, params=params, client=self._client, timeout=self.config.timeout_seconds
            ),
            "air quality",
        )
        current = payload.get("current")
        aqi = safe_float(current.get("us_aqi")) if isinstance(current, dict) else None
        if aqi is None:
            raise NetworkError("Failed to fetch air quality data")
        return AirQualityReport(
            aqi=round(aqi),
            category=aqi_category(aqi),
            pm25=safe_float(current.get("pm2_5")),
            pm10=safe_float(current.get("pm10")),
        )


class GeocodingClient:
    """Reverse geocoding through Nominatim."""

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client
        self._cache = TTLCache(ttl_seconds=3600)

    async def city(self, latitude: float, longitude: float) -> CityInfo:
        cache_key = f"{latitude:.3f},{longitude:.3f}"
        cached = self._cache.get(cache_key)
        if cached:
            return cached
        payload = _require_dict(
            await _get_json(
                self.config.reverse_geocode_url,
                params={"format": "json", "lat": latitude, "lon": longitude, "zoom": 10},
                headers={"User-Agent": self.config.user_agent},
                client=self._client,
                timeout=self.config.timeout_seconds,
            ),
            "geocoding",
        )
        address = payload.get("address")
        if not isinstance(address, dict):
            raise NetworkError("Unable to determine location")
        info = CityInfo(
            city=address.get("city") or address.get("town") or address.get("village") or "Unknown",
            state=address.get("state") or None,
            country=address.get("country") or "Unknown",
        )
        self._cache.set(cache_key, info)
        return info


class VerseClient:
    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.config = config
        self._client = client
        self._clock = clock

    async def verse_of_the_day(self) -> BibleVerse:
        return await self.verse(daily_verse_reference(self._clock().date()))

    async def verse(self, reference: str) -> BibleVerse:
        path = _WHITESPACE.sub("+", reference.strip())
        payload = _require_dict(
            await _get_json(
                f"{self.config.verse_url}/{path}",
                params={"translation": self.config.verse_translation},
                client=self._client,
                timeout=self.config.timeout_seconds,
            ),
            "verse",
        )
        text = clean_verse_text(str(payload.get("text") or ""))
        if not text:
            raise NetworkError(f"No verse text returned for {reference}")
        return BibleVerse(
            reference=str(payload.get("reference") or reference),
            text=text,
            translation=str(payload.get("translation_name") or "King James Version"),
        )


class BirdingClient:
    """Recent notable sightings from eBird; results are reused for six hours."""

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._client = client
        self._cache = TTLCache(ttl_seconds=6 * 3600, clock=cache_clock)

    @property
    def enabled(self) -> bool:
        return bool(self.config.ebird_api_key)

    async def notable(self, latitude: float, longitude: float) -> list[NotableBird]:
        if not self.enabled:
            return []
        cached = self._cache.get("notable")
        if cached:
            return cached
        payload = await _get_json(
            f"{self.config.birds_url}/data/obs/geo/recent/notable",
            params={
                "lat": latitude,
                "lng": longitude,
                "dist": self.config.birds_radius_km,
                "back": self.config.birds_days_back,
            },
            headers={"X-eBirdApiToken": self.config.ebird_api_key or ""},
            client=self._client,
            timeout=self.config.timeout_seconds,
        )
        if not isinstance(payload, list):
            raise NetworkError("Unexpected eBird payload")
        birds: list[NotableBird] = []
        for entry in payload:
            if not isinstance(entry, dict) or not entry.get("comName"):
                continue
            how_many = entry.get("howMany")
            birds.append(
                NotableBird(
                    species_code=str(entry.get("speciesCode") or ""),
                    common_name=str(entry["comName"]),
                    location_name=str(entry.get("locName") or "an unnamed location"),
                    observed_at=_parse_observation_time(entry.get("obsDt")),
                    how_many=int(how_many) if isinstance(how_many, int | float) else None,
                )
            )
        LOGGER.debug("Found %d notable bird(s)", len(birds))
        if birds:
            self._cache.set("notable", birds)
        return birds


def _parse_observation_time(value: Any) -> datetime | None:
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(str(value), fmt).astimezone()
        except ValueError:
            continue
    return None
