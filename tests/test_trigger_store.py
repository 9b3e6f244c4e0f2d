"""Tests for the durable trigger store and trigger runner (almanac/alarm/trigger_store.py)."""

from __future__ import annotations

import asyncio
import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock

from almanac.alarm.trigger_store import (
    FileTriggerStore,
    FireEvent,
    TriggerRunner,
    next_daily_instant,
)
from almanac.errors import SchedulingDenied, TriggerStoreUnavailable

EASTERN = timezone(timedelta(hours=-5), "EST")


def _at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=EASTERN)


def test_next_daily_instant_keeps_future_instant():
    assert next_daily_instant(_at(8), _at(7)) == _at(8)


def test_next_daily_instant_rolls_whole_days():
    assert next_daily_instant(_at(7), _at(7)) == _at(7, day=7)
    assert next_daily_instant(_at(7), _at(9, day=8)) == _at(7, day=9)


class FileTriggerStoreTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "state" / "triggers.json"
        self.store = FileTriggerStore(self.path)
        await self.store.open()

    async def asyncTearDown(self) -> None:
        self._tmpdir.cleanup()

    async def test_open_creates_empty_store(self) -> None:
        self.assertTrue(self.path.exists())
        self.assertEqual(await self.store.list_armed(), [])

    async def test_arm_persists_across_instances(self) -> None:
        await self.store.arm("a1", _at(7), repeat_daily=True, payload={"label": "Wake"})
        reopened = FileTriggerStore(self.path)
        await reopened.open()
        triggers = await reopened.list_armed()
        self.assertEqual(len(triggers), 1)
        self.assertEqual(triggers[0].trigger_id, "a1")
        self.assertEqual(triggers[0].instant, _at(7))
        self.assertTrue(triggers[0].repeat_daily)
        self.assertEqual(triggers[0].payload, {"label": "Wake"})

    async def test_rearming_same_id_replaces_entry(self) -> None:
        await self.store.arm("a1", _at(7))
        await self.store.arm("a1", _at(8))
        triggers = await self.store.list_armed()
        self.assertEqual([trigger.instant for trigger in triggers], [_at(8)])

    async def test_cancel_is_noop_when_absent(self) -> None:
        self.assertFalse(await self.store.cancel("missing"))
        await self.store.arm("a1", _at(7))
        self.assertTrue(await self.store.cancel("a1"))
        self.assertEqual(await self.store.list_armed(), [])

    async def test_list_armed_sorted_by_instant(self) -> None:
        await self.store.arm("late", _at(9))
        await self.store.arm("early", _at(6))
        self.assertEqual([trigger.trigger_id for trigger in await self.store.list_armed()], ["early", "late"])

    async def test_exact_scheduling_denied(self) -> None:
        store = FileTriggerStore(self.path, exact_alarms=False)
        with self.assertRaises(SchedulingDenied) as ctx:
            await store.arm("a1", _at(7))
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(await store.list_armed(), [])

    async def test_due_and_delivery_of_one_shot(self) -> None:
        await self.store.arm("a1", _at(7))
        self.assertEqual(await self.store.due(_at(6, 59)), [])
        due = await self.store.due(_at(7))
        self.assertEqual([trigger.trigger_id for trigger in due], ["a1"])
        delivered = await self.store.mark_delivered("a1", _at(7))
        self.assertEqual(delivered.delivered_at, _at(7))
        self.assertEqual(await self.store.due(_at(8)), [])
        self.assertIsNone(await self.store.next_pending())
        self.assertEqual(len(await self.store.list_armed()), 1)

    async def test_delivery_of_repeating_trigger_rolls_forward(self) -> None:
        await self.store.arm("daily", _at(7), repeat_daily=True)
        updated = await self.store.mark_delivered("daily", _at(7, 0))
        self.assertEqual(updated.instant, _at(7, day=7))
        self.assertTrue(updated.pending)

    async def test_corrupt_store_is_unavailable(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(TriggerStoreUnavailable):
            await FileTriggerStore(self.path).open()

    async def test_unwritable_location_is_unavailable(self) -> None:
        blocker = Path(self._tmpdir.name) / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = FileTriggerStore(blocker / "triggers.json")
        with self.assertRaises(TriggerStoreUnavailable):
            await store.open()

    async def test_invalid_entries_are_skipped(self) -> None:
        await self.store.arm("ok", _at(7))
        data = json.loads(self.path.read_text(encoding="utf-8"))
        data["triggers"].append({"id": "broken", "instant": "yesterday"})
        self.path.write_text(json.dumps(data), encoding="utf-8")
        self.assertEqual([trigger.trigger_id for trigger in await self.store.list_armed()], ["ok"])


class TriggerRunnerTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.store = FileTriggerStore(Path(self._tmpdir.name) / "triggers.json")
        await self.store.open()
        self.now = _at(6, 59)
        self.handler = AsyncMock()
        self.runner = TriggerRunner(self.store, self.handler, poll_seconds=0.01, clock=lambda: self.now)

    async def asyncTearDown(self) -> None:
        self._tmpdir.cleanup()

    async def test_run_once_fires_only_due_triggers(self) -> None:
        await self.store.arm("a1", _at(7), payload={"label": "Wake"})
        self.assertEqual(await self.runner.run_once(), [])
        self.now = _at(7)
        fired = await self.runner.run_once()
        self.assertEqual(fired, [FireEvent(alarm_id="a1", payload={"label": "Wake"})])
        self.handler.assert_awaited_once_with(FireEvent(alarm_id="a1", payload={"label": "Wake"}))
        self.assertEqual(await self.runner.run_once(), [])

    async def test_handler_failure_does_not_stop_other_triggers(self) -> None:
        await self.store.arm("a1", _at(7))
        await self.store.arm("a2", _at(7, 1))
        self.handler.side_effect = [RuntimeError("speaker unplugged"), None]
        self.now = _at(7, 5)
        fired = await self.runner.run_once()
        self.assertEqual([event.alarm_id for event in fired], ["a1", "a2"])
        self.assertEqual(self.handler.await_count, 2)

    async def test_run_stops_when_event_set(self) -> None:
        await self.store.arm("a1", _at(6, 30))
        stop = asyncio.Event()

        async def on_fire(event: FireEvent) -> None:
            stop.set()

        runner = TriggerRunner(self.store, on_fire, poll_seconds=0.01, clock=lambda: self.now)
        await asyncio.wait_for(runner.run(stop), timeout=2)
        self.assertTrue(stop.is_set())
