"""Helpers for streaming speech from a Wyoming TTS service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.event import Event
from wyoming.tts import Synthesize, SynthesizeVoice

from almanac.utils import await_with_timeout

from .audio import PcmSink
from .config import WyomingEndpoint

LoggerLike = logging.Logger | None


async def play_tts_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    sink: PcmSink,
    voice_name: str | None = None,
    timeout: float | None = None,
    logger: LoggerLike = None,
) -> int:
    """Synthesize speech via Wyoming TTS and stream it to ``sink``; returns the chunk count."""

    started = False
    chunks = 0
    try:
        async with aclosing(_tts_event_stream(text, endpoint=endpoint, voice_name=voice_name, timeout=timeout)) as events:
            async for event in events:
                if AudioStart.is_type(event.type):
                    audio_start = AudioStart.from_event(event)
                    await sink.start(audio_start.rate, audio_start.width, audio_start.channels)
                    started = True
                elif AudioChunk.is_type(event.type):
                    if not started:
                        continue
                    await sink.write(AudioChunk.from_event(event).audio)
                    chunks += 1
                elif AudioStop.is_type(event.type):
                    break
    finally:
        if started:
            await sink.stop()
    if logger:
        logger.debug("Wyoming TTS streamed %d chunk(s)", chunks)
    return chunks


async def check_synthesize(
    *,
    endpoint: WyomingEndpoint,
    text: str,
    timeout: float | None = None,
) -> tuple[bool, int]:
    """Synthesize speech and report whether audio started plus how many chunks arrived."""

    started = False
    chunks = 0
    async with aclosing(_tts_event_stream(text, endpoint=endpoint, timeout=timeout)) as events:
        async for event in events:
            if AudioStart.is_type(event.type):
                started = True
            elif AudioChunk.is_type(event.type):
                chunks += 1
            elif AudioStop.is_type(event.type):
                break
    return started, chunks


async def _tts_event_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    voice_name: str | None = None,
    timeout: float | None = None,
) -> AsyncIterator[Event]:
    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    voice = SynthesizeVoice(name=voice_name) if voice_name else None
    try:
        await await_with_timeout(client.write_event(Synthesize(text=text, voice=voice).event()), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                break
            yield event
            if AudioStop.is_type(event.type):
                break
    finally:
        await client.disconnect()
