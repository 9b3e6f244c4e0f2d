"""Durable trigger store and the runner that delivers its fire events.

The store is a single JSON document rewritten atomically on every command.
Nothing is cached in memory between commands: each call re-reads the file, so
several processes (the runner and a freshly booted dispatcher) always agree on
what is armed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from almanac.datetime_utils import deserialize_dt, ensure_local, local_now, serialize_dt
from almanac.errors import SchedulingDenied, TriggerStoreUnavailable

LOGGER = logging.getLogger("almanac.trigger_store")

STORE_VERSION = 1


@dataclass(frozen=True, slots=True)
class ArmedTrigger:
    trigger_id: str
    instant: datetime
    repeat_daily: bool = False
    payload: dict[str, Any] = field(default_factory=dict)
    delivered_at: datetime | None = None

    @property
    def pending(self) -> bool:
        return self.delivered_at is None

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": self.trigger_id,
            "instant": serialize_dt(self.instant),
            "repeat_daily": self.repeat_daily,
            "payload": self.payload,
            "delivered_at": serialize_dt(self.delivered_at) if self.delivered_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ArmedTrigger:
        instant = deserialize_dt(payload.get("instant"))
        if instant is None:
            raise ValueError(f"Trigger {payload.get('id')!r} has no valid instant")
        return cls(
            trigger_id=str(payload["id"]),
            instant=instant,
            repeat_daily=bool(payload.get("repeat_daily", False)),
            payload=dict(payload.get("payload") or {}),
            delivered_at=deserialize_dt(payload.get("delivered_at")),
        )


@dataclass(frozen=True, slots=True)
class FireEvent:
    alarm_id: str
    payload: dict[str, Any] = field(default_factory=dict)


def next_daily_instant(instant: datetime, after: datetime) -> datetime:
    """Advance ``instant`` by whole days until it is strictly after ``after``."""
    if instant > after:
        return instant
    days = (after - instant) // timedelta(days=1) + 1
    return instant + timedelta(days=days)


class FileTriggerStore:
    def __init__(
        self,
        path: Path,
        *,
        exact_alarms: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = path
        self.exact_alarms = exact_alarms
        self._lock = asyncio.Lock()
        self._logger = logger or LOGGER

    async def open(self) -> None:
        """Verify the store can be read and written; creates an empty store on first use."""
        async with self._lock:
            if self.path.exists():
                self._read()
                if not os.access(self.path, os.W_OK):
                    raise TriggerStoreUnavailable(f"Trigger store {self.path} is not writable")
                return
            self._write({})
        self._logger.info("Created trigger store at %s", self.path)

    async def arm(
        self,
        trigger_id: str,
        instant: datetime,
        *,
        repeat_daily: bool = False,
        payload: dict[str, Any] | None = None,
    ) -> ArmedTrigger:
        if not self.exact_alarms:
            raise SchedulingDenied("Exact alarm scheduling is not permitted")
        trigger = ArmedTrigger(
            trigger_id=trigger_id,
            instant=ensure_local(instant),
            repeat_daily=repeat_daily,
            payload=dict(payload or {}),
        )
        async with self._lock:
            triggers = self._read()
            replaced = trigger_id in triggers
            triggers[trigger_id] = trigger
            self._write(triggers)
        self._logger.debug(
            "%s trigger %s for %s (repeat_daily=%s)",
            "Re-armed" if replaced else "Armed",
            trigger_id,
            serialize_dt(trigger.instant),
            repeat_daily,
        )
        return trigger

    async def cancel(self, trigger_id: str) -> bool:
        async with self._lock:
            triggers = self._read()
            if triggers.pop(trigger_id, None) is None:
                return False
            self._write(triggers)
        self._logger.debug("Cancelled trigger %s", trigger_id)
        return True

    async def get(self, trigger_id: str) -> ArmedTrigger | None:
        async with self._lock:
            return self._read().get(trigger_id)

    async def list_armed(self) -> list[ArmedTrigger]:
        async with self._lock:
            triggers = self._read()
        return sorted(triggers.values(), key=lambda trigger: trigger.instant)

    async def due(self, now: datetime) -> list[ArmedTrigger]:
        return [trigger for trigger in await self.list_armed() if trigger.pending and trigger.instant <= now]

    async def next_pending(self) -> ArmedTrigger | None:
        return next((trigger for trigger in await self.list_armed() if trigger.pending), None)

    async def mark_delivered(self, trigger_id: str, now: datetime) -> ArmedTrigger | None:
        """Record a delivery: repeating triggers roll forward a day, one-shots are flagged."""
        async with self._lock:
            triggers = self._read()
            trigger = triggers.get(trigger_id)
            if trigger is None:
                return None
            if trigger.repeat_daily:
                updated = replace(trigger, instant=next_daily_instant(trigger.instant, now))
            else:
                updated = replace(trigger, delivered_at=now)
            triggers[trigger_id] = updated
            self._write(triggers)
        return updated

    def _read(self) -> dict[str, ArmedTrigger]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise TriggerStoreUnavailable(f"Cannot read trigger store {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TriggerStoreUnavailable(f"Trigger store {self.path} is corrupt: {exc}") from exc
        if not isinstance(data, dict):
            raise TriggerStoreUnavailable(f"Trigger store {self.path} has an unexpected layout")
        triggers: dict[str, ArmedTrigger] = {}
        for item in data.get("triggers", []):
            try:
                trigger = ArmedTrigger.from_dict(item)
            except (KeyError, TypeError, ValueError):
                self._logger.warning("Skipping invalid trigger entry: %s", item)
                continue
            triggers[trigger.trigger_id] = trigger
        return triggers

    def _write(self, triggers: dict[str, ArmedTrigger]) -> None:
        payload = {
            "version": STORE_VERSION,
            "triggers": [trigger.to_json_dict() for trigger in triggers.values()],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise TriggerStoreUnavailable(f"Cannot write trigger store {self.path}: {exc}") from exc


FireHandler = Callable[[FireEvent], Awaitable[Any]]


class TriggerRunner:
    """Deliver fire events for due triggers, independent of any alarm bookkeeping."""

    def __init__(
        self,
        store: FileTriggerStore,
        on_fire: FireHandler,
        *,
        poll_seconds: float = 30.0,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.on_fire = on_fire
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._logger = logger or LOGGER

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        stop_event = stop_event or asyncio.Event()
        await self.store.open()
        self._logger.info("Trigger runner watching %s", self.store.path)
        while not stop_event.is_set():
            try:
                await self.run_once()
            except TriggerStoreUnavailable as exc:
                self._logger.warning("Trigger store unavailable: %s", exc)
            delay = await self._next_delay()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except TimeoutError:
                continue

    async def run_once(self) -> list[FireEvent]:
        now = self._clock()
        fired: list[FireEvent] = []
        for trigger in await self.store.due(now):
            await self.store.mark_delivered(trigger.trigger_id, now)
            event = FireEvent(alarm_id=trigger.trigger_id, payload=trigger.payload)
            self._logger.info("Trigger %s fired (scheduled %s)", trigger.trigger_id, serialize_dt(trigger.instant))
            try:
                await self.on_fire(event)
            except Exception:
                self._logger.exception("Fire handler failed for trigger %s", trigger.trigger_id)
            fired.append(event)
        return fired

    async def _next_delay(self) -> float:
        try:
            upcoming = await self.store.next_pending()
        except TriggerStoreUnavailable:
            return self.poll_seconds
        if upcoming is None:
            return self.poll_seconds
        until = (upcoming.instant - self._clock()).total_seconds()
        return max(0.0, min(self.poll_seconds, until))
