"""Alarm state machine over the trigger store.

The trigger store is the only record of which alarms exist. ``AlarmLifecycle``
issues commands to it and rebuilds ``Alarm`` values from what it lists; it
never keeps a copy of its own.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Literal

from almanac.datetime_utils import ensure_local, local_now, serialize_dt

from .trigger_store import ArmedTrigger, FileTriggerStore

LOGGER = logging.getLogger("almanac.lifecycle")

DEFAULT_LABEL = "Time to wake up!"
ROLL_FORWARD = timedelta(hours=24)

FireResolution = Literal["removed", "retained", "missing"]


@dataclass(frozen=True, slots=True)
class Alarm:
    id: str
    scheduled_time: datetime
    repeat_daily: bool = False
    label: str = DEFAULT_LABEL
    enabled: bool = True

    @classmethod
    def create(cls, scheduled_time: datetime, *, repeat_daily: bool = False, label: str | None = None) -> Alarm:
        return cls(
            id=uuid.uuid4().hex,
            scheduled_time=scheduled_time,
            repeat_daily=repeat_daily,
            label=label or DEFAULT_LABEL,
        )

    @classmethod
    def from_trigger(cls, trigger: ArmedTrigger) -> Alarm:
        payload = trigger.payload
        return cls(
            id=trigger.trigger_id,
            scheduled_time=trigger.instant,
            repeat_daily=trigger.repeat_daily,
            label=str(payload.get("label") or DEFAULT_LABEL),
            enabled=bool(payload.get("enabled", True)),
        )

    def trigger_payload(self) -> dict[str, object]:
        return {"label": self.label, "enabled": self.enabled}


class AlarmLifecycle:
    def __init__(
        self,
        store: FileTriggerStore,
        *,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self._clock = clock
        self._logger = logger or LOGGER
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Open the trigger store; raises ``TriggerStoreUnavailable``."""
        if self._connected:
            return
        await self.store.open()
        self._connected = True

    async def schedule(self, alarm: Alarm) -> Alarm:
        """Arm ``alarm`` and return it with the instant actually armed.

        A time that is not in the future is moved forward by exactly one day,
        once. Re-scheduling an existing id replaces its trigger. A disabled
        alarm is not armed; any trigger it had is cancelled.
        ``SchedulingDenied`` propagates to the caller unchanged.
        """
        await self.connect()
        if not alarm.enabled:
            await self.store.cancel(alarm.id)
            self._logger.info("Alarm %s is disabled; not armed", alarm.id)
            return alarm
        now = self._clock()
        armed_time = ensure_local(alarm.scheduled_time)
        if armed_time <= now:
            armed_time = armed_time + ROLL_FORWARD
            if armed_time <= now:
                raise ValueError(
                    f"Alarm time {serialize_dt(alarm.scheduled_time)} is more than a day in the past"
                )
        scheduled = replace(alarm, scheduled_time=armed_time)
        await self.store.arm(
            scheduled.id,
            scheduled.scheduled_time,
            repeat_daily=scheduled.repeat_daily,
            payload=scheduled.trigger_payload(),
        )
        self._logger.info(
            "Scheduled alarm %s for %s%s",
            scheduled.id,
            serialize_dt(scheduled.scheduled_time),
            " (daily)" if scheduled.repeat_daily else "",
        )
        return scheduled

    async def cancel(self, alarm_id: str) -> bool:
        await self.connect()
        removed = await self.store.cancel(alarm_id)
        if removed:
            self._logger.info("Cancelled alarm %s", alarm_id)
        return removed

    async def cancel_all(self) -> int:
        await self.connect()
        count = 0
        for trigger in await self.store.list_armed():
            if await self.store.cancel(trigger.trigger_id):
                count += 1
        if count:
            self._logger.info("Cancelled %d alarm(s)", count)
        return count

    async def list_all(self) -> list[Alarm]:
        await self.connect()
        return [Alarm.from_trigger(trigger) for trigger in await self.store.list_armed()]

    async def get(self, alarm_id: str) -> Alarm | None:
        await self.connect()
        trigger = await self.store.get(alarm_id)
        return Alarm.from_trigger(trigger) if trigger else None

    async def next_alarm(self) -> Alarm | None:
        """Earliest alarm that has not fired yet."""
        await self.connect()
        trigger = await self.store.next_pending()
        return Alarm.from_trigger(trigger) if trigger else None

    async def resolve_fired(self, alarm_id: str) -> FireResolution:
        """Remove a fired one-shot alarm; leave a daily alarm armed for its next day."""
        await self.connect()
        trigger = await self.store.get(alarm_id)
        if trigger is None:
            self._logger.warning("Fired alarm %s is not in the trigger store", alarm_id)
            return "missing"
        if trigger.repeat_daily:
            self._logger.debug("Alarm %s repeats daily; next fire %s", alarm_id, serialize_dt(trigger.instant))
            return "retained"
        await self.store.cancel(alarm_id)
        self._logger.info("Removed one-shot alarm %s after firing", alarm_id)
        return "removed"
