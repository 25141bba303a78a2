# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the poll/push state machine.

Uses in-memory fakes for the event source and Loki so every transition can be
checked without a database or network.
"""

import asyncio
import json

from netbird_exporter.database.cursor_store import CursorStore
from netbird_exporter.delivery.loki_client import DeliveryResult, DeliveryStatus
from netbird_exporter.errors import (
    DeliveryRejected,
    DeliveryUnreachable,
    SerializationFailure,
    SourceReadFailure,
)
from netbird_exporter.processing.models import Event
from netbird_exporter.processing.pump import Pump, PumpState


class FakeReader:
    def __init__(self, events=None, fail_reads=0):
        self.events = list(events or [])
        self.fail_reads = fail_reads
        self.calls = []

    def get_events_since(self, last_id, limit=100):
        self.calls.append((last_id, limit))
        if self.fail_reads:
            self.fail_reads -= 1
            raise SourceReadFailure("database is locked")
        return [e for e in self.events if e.id > last_id][:limit]


class FakeClient:
    def __init__(self, results=None, default=None):
        self.results = list(results or [])
        self.default = default or DeliveryResult(DeliveryStatus.DELIVERED)
        self.pushed = []

    def push(self, streams):
        self.pushed.append([json.loads(line)["event_id"] for s in streams for _, line in s.values])
        if self.results:
            result = self.results.pop(0)
        else:
            result = self.default
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_events(ids, activity=0, account_id="acc-1"):
    return [
        Event(id=i, timestamp="2024-01-15T10:30:00Z", activity=activity, account_id=account_id)
        for i in ids
    ]


DELIVERED = DeliveryResult(DeliveryStatus.DELIVERED)
REJECTED = DeliveryResult(DeliveryStatus.REJECTED, status_code=500, body="internal error")
UNREACHABLE = DeliveryResult(DeliveryStatus.UNREACHABLE, reason="connection refused")


def make_pump(reader, client, start=0, **kwargs):
    sleep = SleepRecorder()
    kwargs.setdefault("check_interval", 10.0)
    kwargs.setdefault("error_backoff", 30.0)
    pump = Pump(reader, client, CursorStore(start), sleep=sleep, **kwargs)
    return pump, sleep


class TestCycle:
    """Test single cycles."""

    def test_successful_cycle_advances_cursor(self):
        reader = FakeReader(make_events([1, 2, 3]))
        client = FakeClient()
        pump, _ = make_pump(reader, client)

        result = asyncio.run(pump.run_cycle())

        assert result.state is PumpState.ADVANCING
        assert result.events_read == 3
        assert result.cursor == 3
        assert pump.cursor.current() == 3
        assert client.pushed == [[1, 2, 3]]

    def test_read_is_bounded_by_batch_size(self):
        reader = FakeReader(make_events(range(1, 11)))
        client = FakeClient()
        pump, _ = make_pump(reader, client, batch_size=4)

        asyncio.run(pump.run_cycle())

        assert reader.calls == [(0, 4)]
        assert pump.cursor.current() == 4

    def test_empty_batch_skips_delivery(self):
        reader = FakeReader([])
        client = FakeClient()
        pump, _ = make_pump(reader, client)
        pump.consecutive_errors = 3

        result = asyncio.run(pump.run_cycle())

        assert result.state is PumpState.IDLE
        assert client.pushed == []
        assert pump.consecutive_errors == 3

    def test_rejected_delivery_backs_off(self):
        reader = FakeReader(make_events([1, 2]))
        client = FakeClient([REJECTED])
        pump, _ = make_pump(reader, client)

        result = asyncio.run(pump.run_cycle())

        assert result.state is PumpState.BACKOFF
        assert isinstance(result.error, DeliveryRejected)
        assert result.error.status_code == 500
        assert pump.cursor.current() == 0
        assert pump.consecutive_errors == 1

    def test_unreachable_delivery_backs_off(self):
        reader = FakeReader(make_events([1]))
        client = FakeClient([UNREACHABLE])
        pump, _ = make_pump(reader, client)

        result = asyncio.run(pump.run_cycle())

        assert isinstance(result.error, DeliveryUnreachable)
        assert pump.cursor.current() == 0
        assert pump.consecutive_errors == 1

    def test_serialization_failure_backs_off(self):
        reader = FakeReader(make_events([1]))
        client = FakeClient([SerializationFailure("bad payload")])
        pump, _ = make_pump(reader, client)

        result = asyncio.run(pump.run_cycle())

        assert result.failed
        assert pump.cursor.current() == 0

    def test_read_failure_backs_off_without_delivery(self):
        reader = FakeReader(make_events([1]), fail_reads=1)
        client = FakeClient()
        pump, _ = make_pump(reader, client)

        result = asyncio.run(pump.run_cycle())

        assert result.state is PumpState.BACKOFF
        assert isinstance(result.error, SourceReadFailure)
        assert client.pushed == []
        assert pump.consecutive_errors == 1

    def test_success_resets_failure_counter(self):
        reader = FakeReader(make_events([1]))
        client = FakeClient([REJECTED, REJECTED])
        pump, _ = make_pump(reader, client)

        asyncio.run(pump.run_cycle())
        asyncio.run(pump.run_cycle())
        assert pump.consecutive_errors == 2

        asyncio.run(pump.run_cycle())
        assert pump.consecutive_errors == 0
        assert pump.cursor.current() == 1


class TestAtLeastOnce:
    """Failed batches are retried whole."""

    def test_failed_batch_is_redelivered(self):
        reader = FakeReader(make_events([4, 5, 6]))
        client = FakeClient([UNREACHABLE])
        pump, _ = make_pump(reader, client, start=3)

        asyncio.run(pump.run_cycle())
        asyncio.run(pump.run_cycle())

        assert reader.calls == [(3, 100), (3, 100)]
        assert client.pushed == [[4, 5, 6], [4, 5, 6]]
        assert pump.cursor.current() == 6

    def test_cursor_never_decreases(self):
        reader = FakeReader(make_events([1, 2, 3, 4, 5, 6]))
        client = FakeClient([DELIVERED, REJECTED, DELIVERED, UNREACHABLE, DELIVERED])
        pump, _ = make_pump(reader, client, batch_size=2)

        seen = []
        for _ in range(6):
            result = asyncio.run(pump.run_cycle())
            seen.append((result.state, pump.cursor.current()))

        cursors = [c for _, c in seen]
        assert cursors == sorted(cursors)
        for i, (state, cursor) in enumerate(seen):
            previous = seen[i - 1][1] if i else 0
            if state is not PumpState.ADVANCING:
                assert cursor == previous
        assert pump.cursor.current() == 6


class TestPause:
    """Test the sleep and escalation policy."""

    def test_normal_interval_after_every_cycle(self):
        reader = FakeReader(make_events([1]))
        pump, sleep = make_pump(reader, FakeClient())

        asyncio.run(pump.run(max_cycles=3))

        assert sleep.calls == [10.0, 10.0, 10.0]

    def test_escalation_after_ten_failures(self):
        reader = FakeReader(make_events([1]))
        client = FakeClient(default=REJECTED)
        pump, sleep = make_pump(reader, client, max_consecutive_errors=10)

        asyncio.run(pump.run(max_cycles=11))

        assert sleep.calls == [10.0] * 9 + [30.0, 10.0] + [10.0]
        assert pump.consecutive_errors == 1
        assert pump.stats['escalations'] == 1
        assert len(client.pushed) == 11
        assert pump.cursor.current() == 0

    def test_read_failures_count_toward_escalation(self):
        reader = FakeReader(make_events([1]), fail_reads=3)
        pump, sleep = make_pump(reader, FakeClient(), max_consecutive_errors=3, error_backoff=60.0)

        asyncio.run(pump.run(max_cycles=4))

        assert sleep.calls == [10.0, 10.0, 60.0, 10.0, 10.0]
        assert pump.cursor.current() == 1


class TestRunLoop:
    """Test the outer loop."""

    def test_end_to_end_ids_one_to_five(self):
        reader = FakeReader([])
        client = FakeClient()
        pump, _ = make_pump(reader, client)
        assert pump.cursor.current() == 0

        reader.events = [
            Event(id=i, timestamp="2024-01-15T10:30:00Z", activity=i % 2, account_id="acc-1")
            for i in range(1, 6)
        ]
        asyncio.run(pump.run(max_cycles=2))

        assert client.pushed == [[1, 3, 5, 2, 4]]
        assert pump.cursor.current() == 5
        assert reader.calls == [(0, 100), (5, 100)]

    def test_unexpected_error_does_not_stop_loop(self):
        class BrokenReader(FakeReader):
            def get_events_since(self, last_id, limit=100):
                self.calls.append((last_id, limit))
                raise RuntimeError("boom")

        reader = BrokenReader()
        pump, sleep = make_pump(reader, FakeClient())

        asyncio.run(pump.run(max_cycles=3))

        assert len(reader.calls) == 3
        assert pump.consecutive_errors == 3
        assert pump.stats['last_error'] == "boom"

    def test_stop_ends_loop(self):
        reader = FakeReader(make_events([1]))
        pump, _ = make_pump(reader, FakeClient())

        async def stop_after_sleep(seconds):
            pump.stop()

        pump._sleep = stop_after_sleep
        asyncio.run(pump.run())

        assert pump.stats['cycles'] == 1
        assert pump.running is False

    def test_stop_cuts_poll_interval_short(self):
        pump = Pump(FakeReader([]), FakeClient(), CursorStore(0), check_interval=60.0)

        async def scenario():
            task = asyncio.create_task(pump.run())
            await asyncio.sleep(0.05)
            pump.stop()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(scenario())

        assert pump.stats['cycles'] == 1
        assert pump.running is False

    def test_stop_cuts_escalation_pause_short(self):
        reader = FakeReader(make_events([1]))
        client = FakeClient(default=REJECTED)
        pump = Pump(
            reader, client, CursorStore(0),
            check_interval=60.0, max_consecutive_errors=1, error_backoff=60.0,
        )

        async def scenario():
            task = asyncio.create_task(pump.run())
            await asyncio.sleep(0.05)
            pump.stop()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(scenario())

        assert pump.stats['escalations'] == 1
        assert len(client.pushed) == 1
        assert pump.cursor.current() == 0

    def test_stats(self):
        reader = FakeReader(make_events([1, 2]))
        pump, _ = make_pump(reader, FakeClient())

        asyncio.run(pump.run(max_cycles=1))

        stats = pump.get_stats()
        assert stats['cursor'] == 2
        assert stats['events_delivered'] == 2
        assert stats['state'] == "idle"
