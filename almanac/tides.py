"""NOAA tide station lookup, high/low predictions and current height estimate."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Literal

import httpx

from .datetime_utils import ensure_utc, local_now
from .errors import NetworkError, NoStationFound, ProviderTimeout
from .location_resolver import LocationFix
from .utils import haversine_km, safe_float

LOGGER = logging.getLogger("almanac.tides")

DEFAULT_STATIONS_URL = "https://api.tidesandcurrents.noaa.gov/mdapi/prod/webapi/stations.json"
DEFAULT_PREDICTIONS_URL = "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter"
NOAA_TIME_FORMAT = "%Y-%m-%d %H:%M"

TideKind = Literal["High", "Low", "Current"]


@dataclass(frozen=True, slots=True)
class TideStation:
    station_id: str
    name: str
    distance_km: float


@dataclass(frozen=True, slots=True)
class TideEvent:
    kind: TideKind
    time: datetime
    height_feet: float

    @property
    def is_current(self) -> bool:
        return self.kind == "Current"


def interpolate_height(before: TideEvent, after: TideEvent, at: datetime) -> float:
    """Linear height between two bracketing extrema.

    Durations are measured in UTC so a DST change between the events counts
    as real elapsed time. Only defined inside ``[before.time, after.time]``;
    callers never extrapolate past either end.
    """
    start = ensure_utc(before.time)
    span = (ensure_utc(after.time) - start).total_seconds()
    if span <= 0:
        raise ValueError("Bracketing tide events must be strictly ordered in time")
    elapsed = (ensure_utc(at) - start).total_seconds()
    if elapsed < 0 or elapsed > span:
        raise ValueError("Interpolation instant lies outside the bracketing events")
    fraction = elapsed / span
    return before.height_feet + (after.height_feet - before.height_feet) * fraction


def current_tide(events: Sequence[TideEvent], now: datetime) -> TideEvent | None:
    """Synthesize the ``Current`` event from the extrema bracketing ``now``."""
    before: TideEvent | None = None
    after: TideEvent | None = None
    for event in events:
        if event.time <= now:
            before = event
        else:
            after = event
            break
    if before is None or after is None:
        return None
    return TideEvent(kind="Current", time=now, height_feet=interpolate_height(before, after, now))


def nearest_station(stations: Sequence[dict[str, Any]], latitude: float, longitude: float) -> TideStation | None:
    """Closest catalog entry; the first one wins on an exact distance tie."""
    best: TideStation | None = None
    for station in stations:
        lat = safe_float(station.get("lat"))
        lng = safe_float(station.get("lng"))
        station_id = station.get("id")
        if lat is None or lng is None or not station_id:
            continue
        distance = haversine_km(latitude, longitude, lat, lng)
        if best is None or distance < best.distance_km:
            best = TideStation(station_id=str(station_id), name=str(station.get("name") or station_id), distance_km=distance)
    return best


def parse_predictions(predictions: Sequence[dict[str, Any]], tz: tzinfo | None = None) -> list[TideEvent]:
    """Convert NOAA hilo predictions into time-ordered events, skipping malformed rows."""
    events: list[TideEvent] = []
    for row in predictions:
        height = safe_float(row.get("v"))
        raw_time = row.get("t")
        if height is None or not raw_time:
            LOGGER.debug("Skipping malformed tide prediction: %s", row)
            continue
        try:
            naive = datetime.strptime(str(raw_time), NOAA_TIME_FORMAT)
        except ValueError:
            LOGGER.debug("Skipping tide prediction with bad time: %s", row)
            continue
        when = naive.replace(tzinfo=tz) if tz is not None else naive.astimezone()
        kind: TideKind = "High" if str(row.get("type", "")).upper().startswith("H") else "Low"
        events.append(TideEvent(kind=kind, time=when, height_feet=height))
    events.sort(key=lambda event: event.time)
    return events


class NoaaTideClient:
    """Thin async wrapper around the NOAA CO-OPS metadata and data APIs."""

    def __init__(
        self,
        *,
        stations_url: str = DEFAULT_STATIONS_URL,
        predictions_url: str = DEFAULT_PREDICTIONS_URL,
        application: str = "AlmanacAlarm",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.stations_url = stations_url
        self.predictions_url = predictions_url
        self.application = application
        self.timeout = timeout
        self._client = client

    async def stations(self) -> list[dict[str, Any]]:
        payload = await self._get_json(self.stations_url, {"type": "tidepredictions"})
        return list(payload.get("stations") or [])

    async def predictions(self, station_id: str, begin: datetime, end: datetime) -> list[dict[str, Any]]:
        params = {
            "product": "predictions",
            "application": self.application,
            "begin_date": begin.strftime("%Y%m%d"),
            "end_date": end.strftime("%Y%m%d"),
            "datum": "MLLW",
            "station": station_id,
            "time_zone": "lst_ldt",
            "units": "english",
            "interval": "hilo",
            "format": "json",
        }
        payload = await self._get_json(self.predictions_url, params)
        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise NetworkError(f"NOAA predictions error: {message}")
        return list(payload.get("predictions") or [])

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"NOAA request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"NOAA request failed: {exc}") from exc
        except ValueError as exc:
            raise NetworkError("NOAA returned invalid JSON") from exc
        finally:
            if owns_client:
                await client.aclose()
        if not isinstance(payload, dict):
            raise NetworkError("NOAA returned an unexpected payload")
        return payload


class TideEngine:
    def __init__(
        self,
        client: NoaaTideClient,
        *,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = local_now,
        tz: tzinfo | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.window = window
        # None localizes each prediction on its own, so DST changes in the window apply.
        self.tz = tz
        self._clock = clock
        self._logger = logger or LOGGER

    async def find_nearest_station(self, fix: LocationFix) -> TideStation:
        try:
            stations = await self.client.stations()
        except NetworkError as exc:
            raise NoStationFound(f"Tide station catalog unreachable: {exc}") from exc
        station = nearest_station(stations, fix.latitude, fix.longitude)
        if station is None:
            raise NoStationFound("No tide station found near your location")
        self._logger.debug("Nearest tide station %s (%s) at %.1f km", station.name, station.station_id, station.distance_km)
        return station

    async def get_events(self, fix: LocationFix, window: timedelta | None = None) -> list[TideEvent]:
        """Ordered tide events for ``[now, now + window]`` with ``Current`` first when bracketed."""
        window = window or self.window
        station = await self.find_nearest_station(fix)
        now = self._clock()
        horizon = now + window
        raw = await self.client.predictions(station.station_id, now, horizon)
        events = parse_predictions(raw, tz=self.tz)
        current = current_tide(events, now)
        upcoming = [event for event in events if now <= event.time <= horizon]
        return [current, *upcoming] if current else upcoming
