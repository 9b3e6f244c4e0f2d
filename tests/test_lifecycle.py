"""Tests for the alarm state machine (almanac/alarm/lifecycle.py)."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from almanac.alarm.lifecycle import DEFAULT_LABEL, Alarm, AlarmLifecycle
from almanac.alarm.trigger_store import FileTriggerStore, TriggerRunner
from almanac.errors import SchedulingDenied, TriggerStoreUnavailable

EASTERN = timezone(timedelta(hours=-5), "EST")


def _at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=EASTERN)


class AlarmLifecycleTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "triggers.json"
        self.now = _at(8)
        self.store = FileTriggerStore(self.path)
        self.lifecycle = AlarmLifecycle(self.store, clock=lambda: self.now)
        await self.lifecycle.connect()

    async def asyncTearDown(self) -> None:
        self._tmpdir.cleanup()

    async def test_future_alarm_is_armed_unchanged(self) -> None:
        alarm = Alarm(id="a1", scheduled_time=_at(9))
        scheduled = await self.lifecycle.schedule(alarm)
        self.assertEqual(scheduled.scheduled_time, _at(9))
        self.assertEqual(await self.lifecycle.list_all(), [scheduled])

    async def test_past_alarm_rolls_forward_exactly_one_day(self) -> None:
        alarm = Alarm(id="a1", scheduled_time=self.now - timedelta(hours=1))
        scheduled = await self.lifecycle.schedule(alarm)
        self.assertEqual(scheduled.scheduled_time, alarm.scheduled_time + timedelta(hours=24))
        [armed] = await self.store.list_armed()
        self.assertEqual(armed.instant, alarm.scheduled_time + timedelta(hours=24))

    async def test_naive_time_is_treated_as_local(self) -> None:
        lifecycle = AlarmLifecycle(self.store)
        naive = datetime.now() + timedelta(hours=1)
        scheduled = await lifecycle.schedule(Alarm(id="naive", scheduled_time=naive))
        self.assertIsNotNone(scheduled.scheduled_time.tzinfo)
        self.assertEqual(scheduled.scheduled_time, naive.astimezone())
        [armed] = await self.store.list_armed()
        self.assertEqual(armed.instant, naive.astimezone())

    async def test_alarm_at_now_rolls_forward(self) -> None:
        scheduled = await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=self.now))
        self.assertEqual(scheduled.scheduled_time, self.now + timedelta(hours=24))

    async def test_resubmitting_past_time_does_not_drift(self) -> None:
        alarm = Alarm(id="a1", scheduled_time=self.now - timedelta(hours=1))
        first = await self.lifecycle.schedule(alarm)
        second = await self.lifecycle.schedule(alarm)
        self.assertEqual(first.scheduled_time, second.scheduled_time)
        self.assertEqual(len(await self.lifecycle.list_all()), 1)

    async def test_alarm_more_than_a_day_old_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=self.now - timedelta(days=2)))
        self.assertEqual(await self.lifecycle.list_all(), [])

    async def test_rescheduling_replaces_trigger(self) -> None:
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9)))
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(10), label="Later"))
        alarms = await self.lifecycle.list_all()
        self.assertEqual(len(alarms), 1)
        self.assertEqual(alarms[0].scheduled_time, _at(10))
        self.assertEqual(alarms[0].label, "Later")

    async def test_scheduling_denied_leaves_alarm_unscheduled(self) -> None:
        lifecycle = AlarmLifecycle(FileTriggerStore(self.path, exact_alarms=False), clock=lambda: self.now)
        with self.assertRaises(SchedulingDenied):
            await lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9)))
        self.assertEqual(await lifecycle.list_all(), [])

    async def test_disabled_alarm_is_not_armed(self) -> None:
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9)))
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9), enabled=False))
        self.assertIsNone(await self.lifecycle.get("a1"))

    async def test_cancel_is_idempotent(self) -> None:
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9)))
        self.assertTrue(await self.lifecycle.cancel("a1"))
        self.assertFalse(await self.lifecycle.cancel("a1"))
        self.assertEqual(await self.lifecycle.list_all(), [])

    async def test_cancel_all_and_next_alarm(self) -> None:
        await self.lifecycle.schedule(Alarm(id="late", scheduled_time=_at(11)))
        await self.lifecycle.schedule(Alarm(id="early", scheduled_time=_at(9)))
        self.assertEqual((await self.lifecycle.next_alarm()).id, "early")
        self.assertEqual(await self.lifecycle.cancel_all(), 2)
        self.assertIsNone(await self.lifecycle.next_alarm())

    async def test_get_rebuilds_alarm_from_store(self) -> None:
        created = Alarm.create(_at(9), repeat_daily=True)
        await self.lifecycle.schedule(created)
        fetched = await self.lifecycle.get(created.id)
        self.assertEqual(fetched, created)
        self.assertEqual(fetched.label, DEFAULT_LABEL)

    async def test_one_shot_alarm_removed_after_fire(self) -> None:
        alarm = Alarm(id="a1", scheduled_time=self.now - timedelta(hours=1))
        scheduled = await self.lifecycle.schedule(alarm)
        runner = TriggerRunner(
            self.store,
            lambda event: self.lifecycle.resolve_fired(event.alarm_id),
            clock=lambda: self.now,
        )
        self.now = scheduled.scheduled_time
        fired = await runner.run_once()
        self.assertEqual([event.alarm_id for event in fired], ["a1"])
        self.assertEqual(await self.store.list_armed(), [])

    async def test_repeating_alarm_retained_after_fire(self) -> None:
        await self.lifecycle.schedule(Alarm(id="daily", scheduled_time=_at(9), repeat_daily=True))
        self.now = _at(9)
        await self.store.mark_delivered("daily", self.now)
        self.assertEqual(await self.lifecycle.resolve_fired("daily"), "retained")
        [trigger] = await self.store.list_armed()
        self.assertEqual(trigger.trigger_id, "daily")
        self.assertEqual(trigger.instant, _at(9, day=7))

    async def test_resolving_unknown_alarm_reports_missing(self) -> None:
        self.assertEqual(await self.lifecycle.resolve_fired("ghost"), "missing")

    async def test_resolve_one_shot_returns_removed(self) -> None:
        await self.lifecycle.schedule(Alarm(id="a1", scheduled_time=_at(9)))
        self.assertEqual(await self.lifecycle.resolve_fired("a1"), "removed")
        self.assertIsNone(await self.lifecycle.get("a1"))

    async def test_connect_failure_surfaces_store_unavailable(self) -> None:
        self.path.write_text("[]garbage", encoding="utf-8")
        lifecycle = AlarmLifecycle(FileTriggerStore(self.path), clock=lambda: self.now)
        with self.assertRaises(TriggerStoreUnavailable):
            await lifecycle.connect()
        self.assertFalse(lifecycle.connected)
