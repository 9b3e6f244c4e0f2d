"""
Scheduled almanac briefings

This package wires the numeric engines into an alarm that speaks a briefing:

- Trigger store: Durable record of armed alarms that survives process restarts
- Alarm lifecycle: Schedule, cancel and resolve alarms against the trigger store
- Briefing: Concurrent gathering of weather, sun, tide, air quality and extra facts
- Narration: Fixed-order sentence composition for speech
- Voice: Piper TTS over the Wyoming protocol, played through a local PCM player
- Dispatcher: Self-contained handling of a fired trigger

Key modules:
- config: Configuration management from environment variables
- providers: Open-Meteo, Nominatim, bible-api.com and eBird clients
- trigger_store: File-backed trigger store and trigger runner
- lifecycle: Alarm state machine
- dispatcher: Fire-event entry point and service bootstrap
"""

from __future__ import annotations

__all__ = [
    "config",
    "providers",
    "narration",
    "briefing",
    "voice",
    "trigger_store",
    "lifecycle",
    "dispatcher",
]
