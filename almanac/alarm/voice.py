"""Voice output channel backed by a Wyoming TTS service."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .audio import PcmSink
from .config import VoiceConfig
from .wyoming import check_synthesize, play_tts_stream

LOGGER = logging.getLogger("almanac.voice")

READY_TEXT = "Ready."


class VoiceOutput(Protocol):
    async def init(self) -> None: ...

    async def speak(self, text: str) -> None: ...

    async def stop(self) -> None: ...

    def is_speaking(self) -> bool: ...


class WyomingVoice:
    """Speak text through Wyoming TTS and a local PCM player.

    ``speak`` may be called without ``init``; the first call initializes
    lazily. Utterances are serialized, so a second ``speak`` waits for the
    one in progress. ``stop`` interrupts the current utterance.
    """

    def __init__(
        self,
        config: VoiceConfig,
        *,
        sink: PcmSink | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._sink = sink or PcmSink(config.audio_player, logger=self._logger)
        self._ready = False
        self._lock = asyncio.Lock()
        self._current: asyncio.Task[int] | None = None
        self._interrupted = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def init(self) -> None:
        if self._ready:
            return
        endpoint = self.config.tts_endpoint
        started, chunks = await check_synthesize(
            endpoint=endpoint,
            text=READY_TEXT,
            timeout=self.config.timeout_seconds,
        )
        if not started:
            raise RuntimeError(f"Wyoming TTS at {endpoint.host}:{endpoint.port} produced no audio")
        self._logger.debug("Wyoming TTS ready at %s:%s (%d check chunk(s))", endpoint.host, endpoint.port, chunks)
        self._ready = True

    async def speak(self, text: str) -> None:
        if not text.strip():
            return
        if not self._ready:
            await self.init()
        async with self._lock:
            self._interrupted = False
            self._current = asyncio.create_task(
                play_tts_stream(
                    text,
                    endpoint=self.config.tts_endpoint,
                    sink=self._sink,
                    voice_name=self.config.tts_voice,
                    timeout=self.config.timeout_seconds,
                    logger=self._logger,
                )
            )
            try:
                await self._current
            except asyncio.CancelledError:
                if not self._interrupted:
                    raise
                self._logger.info("Speech interrupted")
            finally:
                self._current = None

    async def stop(self) -> None:
        task = self._current
        if task is None or task.done():
            return
        self._interrupted = True
        task.cancel()
        await self._sink.abort()

    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()
