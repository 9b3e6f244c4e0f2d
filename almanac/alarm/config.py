"""Configuration helpers for the Almanac alarm service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from almanac.utils import parse_bool, parse_float, parse_int


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _url(value: str | None, default: str) -> str:
    return (_strip_or_none(value) or default).rstrip("/")


DEFAULT_TRIGGER_STORE = Path.home() / ".local" / "state" / "almanac" / "triggers.json"


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int


@dataclass(frozen=True)
class LocationConfig:
    location: str | None
    language: str
    cache_max_age_seconds: int
    timeout_seconds: float
    geocode_url: str


@dataclass(frozen=True)
class ProviderConfig:
    timeout_seconds: float
    weather_url: str
    air_quality_url: str
    reverse_geocode_url: str
    user_agent: str
    verse_enabled: bool
    verse_url: str
    verse_translation: str
    ebird_api_key: str | None
    birds_url: str
    birds_radius_km: int
    birds_days_back: int


@dataclass(frozen=True)
class TideConfig:
    stations_url: str
    predictions_url: str
    window_hours: int


@dataclass(frozen=True)
class VoiceConfig:
    tts_endpoint: WyomingEndpoint
    tts_voice: str | None
    audio_player: str
    timeout_seconds: float


@dataclass(frozen=True)
class TriggerConfig:
    store_path: Path
    exact_alarms: bool
    poll_seconds: float


@dataclass(frozen=True)
class AlmanacConfig:
    location: LocationConfig
    providers: ProviderConfig
    tides: TideConfig
    voice: VoiceConfig
    triggers: TriggerConfig
    briefing_timeout_seconds: float
    log_level: str

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AlmanacConfig:
        source = env if env is not None else os.environ

        location = LocationConfig(
            location=_strip_or_none(source.get("ALMANAC_LOCATION")),
            language=(source.get("ALMANAC_LANGUAGE") or "en").strip().lower() or "en",
            cache_max_age_seconds=max(0, parse_int(source.get("ALMANAC_LOCATION_CACHE_SECONDS"), 3600)),
            timeout_seconds=max(1.0, parse_float(source.get("ALMANAC_LOCATION_TIMEOUT_SECONDS"), 10.0)),
            geocode_url=_url(source.get("ALMANAC_GEOCODE_BASE_URL"), "https://geocoding-api.open-meteo.com/v1/search"),
        )

        providers = ProviderConfig(
            timeout_seconds=max(1.0, parse_float(source.get("ALMANAC_PROVIDER_TIMEOUT_SECONDS"), 10.0)),
            weather_url=_url(source.get("ALMANAC_WEATHER_BASE_URL"), "https://api.open-meteo.com/v1/forecast"),
            air_quality_url=_url(
                source.get("ALMANAC_AIR_QUALITY_BASE_URL"),
                "https://air-quality-api.open-meteo.com/v1/air-quality",
            ),
            reverse_geocode_url=_url(
                source.get("ALMANAC_REVERSE_GEOCODE_BASE_URL"),
                "https://nominatim.openstreetmap.org/reverse",
            ),
            user_agent=_strip_or_none(source.get("ALMANAC_USER_AGENT")) or "AlmanacAlarm/1.0",
            verse_enabled=parse_bool(source.get("ALMANAC_VERSE_ENABLED"), True),
            verse_url=_url(source.get("ALMANAC_VERSE_BASE_URL"), "https://bible-api.com"),
            verse_translation=(source.get("ALMANAC_VERSE_TRANSLATION") or "kjv").strip().lower() or "kjv",
            ebird_api_key=_strip_or_none(source.get("EBIRD_API_KEY")),
            birds_url=_url(source.get("ALMANAC_BIRDS_BASE_URL"), "https://api.ebird.org/v2"),
            birds_radius_km=max(1, min(50, parse_int(source.get("ALMANAC_BIRDS_RADIUS_KM"), 25))),
            birds_days_back=max(1, min(30, parse_int(source.get("ALMANAC_BIRDS_DAYS_BACK"), 1))),
        )

        tides = TideConfig(
            stations_url=_url(
                source.get("ALMANAC_TIDE_STATIONS_URL"),
                "https://api.tidesandcurrents.noaa.gov/mdapi/prod/webapi/stations.json",
            ),
            predictions_url=_url(
                source.get("ALMANAC_TIDE_PREDICTIONS_URL"),
                "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter",
            ),
            window_hours=max(1, min(72, parse_int(source.get("ALMANAC_TIDE_WINDOW_HOURS"), 24))),
        )

        voice = VoiceConfig(
            tts_endpoint=WyomingEndpoint(
                host=source.get("WYOMING_PIPER_HOST", "127.0.0.1"),
                port=parse_int(source.get("WYOMING_PIPER_PORT"), 10200),
            ),
            tts_voice=_strip_or_none(source.get("ALMANAC_TTS_VOICE")),
            audio_player=_strip_or_none(source.get("ALMANAC_AUDIO_PLAYER")) or "auto",
            timeout_seconds=max(1.0, parse_float(source.get("ALMANAC_TTS_TIMEOUT_SECONDS"), 30.0)),
        )

        store_path = _strip_or_none(source.get("ALMANAC_TRIGGER_STORE"))
        triggers = TriggerConfig(
            store_path=Path(store_path).expanduser() if store_path else DEFAULT_TRIGGER_STORE,
            exact_alarms=parse_bool(source.get("ALMANAC_EXACT_ALARMS"), True),
            poll_seconds=max(1.0, parse_float(source.get("ALMANAC_TRIGGER_POLL_SECONDS"), 30.0)),
        )

        return AlmanacConfig(
            location=location,
            providers=providers,
            tides=tides,
            voice=voice,
            triggers=triggers,
            briefing_timeout_seconds=max(5.0, parse_float(source.get("ALMANAC_BRIEFING_TIMEOUT_SECONDS"), 60.0)),
            log_level=(source.get("ALMANAC_LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        )
