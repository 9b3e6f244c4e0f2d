"""Fire-event handling: bootstrap from nothing, speak the briefing, resolve the alarm."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

import httpx

from almanac.errors import LocationError
from almanac.location_resolver import ConfiguredLocationProvider, LocationResolver
from almanac.sun_times import SunTimeEngine
from almanac.tides import NoaaTideClient, TideEngine

from .briefing import BriefingAggregator
from .config import AlmanacConfig
from .lifecycle import AlarmLifecycle, FireResolution
from .providers import AirQualityClient, BirdingClient, GeocodingClient, VerseClient, WeatherClient
from .trigger_store import FileTriggerStore, FireEvent, TriggerRunner
from .voice import VoiceOutput, WyomingVoice

LOGGER = logging.getLogger("almanac.dispatcher")

STORE_FAILURE_MESSAGE = "Alarm storage is unavailable. Your alarm could not be processed."
BRIEFING_FAILURE_MESSAGE = "Sorry, the almanac briefing could not be prepared."


@dataclass(slots=True)
class DispatchReport:
    alarm_id: str
    voice_ready: bool = False
    store_ready: bool = False
    narration: str | None = None
    spoke_briefing: bool = False
    spoke_error: str | None = None
    resolution: FireResolution | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class BackgroundDispatcher:
    """Run the four fire-handling steps in order, each with its own error capture.

    1. voice init (failure degrades, does not stop)
    2. trigger store connection (failure is fatal after an audible error)
    3. briefing and speech
    4. fired-alarm resolution (failure is logged only)
    """

    def __init__(
        self,
        voice: VoiceOutput,
        lifecycle: AlarmLifecycle,
        aggregator: BriefingAggregator,
        *,
        briefing_timeout: float | None = 60.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.voice = voice
        self.lifecycle = lifecycle
        self.aggregator = aggregator
        self.briefing_timeout = briefing_timeout
        self._logger = logger or LOGGER

    async def dispatch(self, event: FireEvent) -> DispatchReport:
        report = DispatchReport(alarm_id=event.alarm_id)
        self._logger.info("Handling fire event for alarm %s", event.alarm_id)

        try:
            await self.voice.init()
            report.voice_ready = True
        except Exception as exc:
            self._record(report, "voice", exc)

        try:
            await self.lifecycle.connect()
            report.store_ready = True
        except Exception as exc:
            self._record(report, "trigger_store", exc)
            await self._speak_error(report, STORE_FAILURE_MESSAGE)
            return report

        await self._brief(report)

        try:
            report.resolution = await self.lifecycle.resolve_fired(event.alarm_id)
        except Exception as exc:
            self._record(report, "resolve", exc)

        self._logger.info(
            "Alarm %s handled (spoke=%s, resolution=%s, errors=%s)",
            event.alarm_id,
            report.spoke_briefing,
            report.resolution,
            sorted(report.errors) or "none",
        )
        return report

    async def _brief(self, report: DispatchReport) -> None:
        try:
            if self.briefing_timeout is None:
                result = await self.aggregator.run()
            else:
                result = await asyncio.wait_for(self.aggregator.run(), timeout=self.briefing_timeout)
        except LocationError as exc:
            self._record(report, "briefing", exc)
            await self._speak_error(report, exc.spoken_message)
            return
        except Exception as exc:
            self._record(report, "briefing", exc)
            await self._speak_error(report, BRIEFING_FAILURE_MESSAGE)
            return
        report.narration = result.narration
        try:
            await self.voice.speak(result.narration)
            report.spoke_briefing = True
        except Exception as exc:
            self._record(report, "speech", exc)

    async def _speak_error(self, report: DispatchReport, message: str) -> None:
        try:
            await self.voice.speak(message)
            report.spoke_error = message
        except Exception as exc:
            self._logger.error("Unable to speak failure notice %r: %s", message, exc)

    def _record(self, report: DispatchReport, step: str, exc: Exception) -> None:
        reason = str(exc) or type(exc).__name__
        report.errors[step] = reason
        self._logger.warning("Dispatch step %s failed for alarm %s: %s", step, report.alarm_id, reason)
        self._logger.debug("Dispatch step %s traceback", step, exc_info=exc)


@dataclass(slots=True)
class AlmanacServices:
    config: AlmanacConfig
    http: httpx.AsyncClient
    store: FileTriggerStore
    lifecycle: AlarmLifecycle
    resolver: LocationResolver
    aggregator: BriefingAggregator
    voice: WyomingVoice

    def dispatcher(self) -> BackgroundDispatcher:
        return BackgroundDispatcher(
            self.voice,
            self.lifecycle,
            self.aggregator,
            briefing_timeout=self.config.briefing_timeout_seconds,
        )

    async def aclose(self) -> None:
        try:
            await self.voice.stop()
        finally:
            await self.http.aclose()


def build_services(config: AlmanacConfig, *, http: httpx.AsyncClient | None = None) -> AlmanacServices:
    """Construct every service once; nothing is initialized or connected yet."""
    http = http or httpx.AsyncClient(timeout=config.providers.timeout_seconds)
    providers = config.providers
    store = FileTriggerStore(config.triggers.store_path, exact_alarms=config.triggers.exact_alarms)
    resolver = LocationResolver(
        ConfiguredLocationProvider(
            config.location.location,
            language=config.location.language,
            geocode_url=config.location.geocode_url,
            client=http,
        ),
        max_age=timedelta(seconds=config.location.cache_max_age_seconds),
        timeout=config.location.timeout_seconds,
    )
    tides = TideEngine(
        NoaaTideClient(
            stations_url=config.tides.stations_url,
            predictions_url=config.tides.predictions_url,
            timeout=providers.timeout_seconds,
            client=http,
        ),
        window=timedelta(hours=config.tides.window_hours),
    )
    aggregator = BriefingAggregator(
        resolver,
        tides=tides,
        sun=SunTimeEngine(),
        weather=WeatherClient(providers, client=http),
        air_quality=AirQualityClient(providers, client=http),
        geocoder=GeocodingClient(providers, client=http),
        verse=VerseClient(providers, client=http) if providers.verse_enabled else None,
        birds=BirdingClient(providers, client=http) if providers.ebird_api_key else None,
        provider_timeout=providers.timeout_seconds,
    )
    return AlmanacServices(
        config=config,
        http=http,
        store=store,
        lifecycle=AlarmLifecycle(store),
        resolver=resolver,
        aggregator=aggregator,
        voice=WyomingVoice(config.voice),
    )


def configure_logging(config: AlmanacConfig) -> None:
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))


async def handle_fire_event(
    event: FireEvent,
    *,
    config: AlmanacConfig | None = None,
    env: Mapping[str, str] | None = None,
) -> DispatchReport:
    """Entry point for a fired trigger when nothing in this process is set up yet."""
    config = config or AlmanacConfig.from_env(dict(env) if env is not None else None)
    configure_logging(config)
    services = build_services(config)
    try:
        return await services.dispatcher().dispatch(event)
    finally:
        await services.aclose()


async def serve(config: AlmanacConfig | None = None, stop_event: asyncio.Event | None = None) -> None:
    """Long-running delivery loop; every fire is handled from zero state by ``handle_fire_event``."""
    config = config or AlmanacConfig.from_env()
    configure_logging(config)
    store = FileTriggerStore(config.triggers.store_path, exact_alarms=config.triggers.exact_alarms)

    async def on_fire(event: FireEvent) -> None:
        await handle_fire_event(event, config=config)

    runner = TriggerRunner(store, on_fire, poll_seconds=config.triggers.poll_seconds)
    await runner.run(stop_event)
