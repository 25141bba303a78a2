# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Poll/push loop.

Each cycle walks a fixed state sequence:

    IDLE -> READING -> GROUPING -> DELIVERING -> ADVANCING | BACKOFF -> IDLE

The cursor only moves in ADVANCING, after Loki accepted the whole batch. Any
failure leaves the cursor where it was, so the same batch is read and pushed
again on the next cycle (at-least-once delivery).

After every cycle the pump sleeps for the poll interval. Once the number of
consecutive failed cycles reaches the threshold it first takes one longer
pause and resets the counter. The loop itself never gives up.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..database.cursor_store import CursorStore
from ..database.event_reader import EventReader
from ..delivery.loki_client import DeliveryResult, LokiClient
from ..errors import (
    DeliveryRejected,
    DeliveryUnreachable,
    ExporterError,
    SerializationFailure,
    SourceReadFailure,
)
from .event_log import format_event
from .grouper import DEFAULT_JOB, Stream, group
from .models import Event

logger = logging.getLogger(__name__)


class PumpState(Enum):
    IDLE = "idle"
    READING = "reading"
    GROUPING = "grouping"
    DELIVERING = "delivering"
    ADVANCING = "advancing"
    BACKOFF = "backoff"


@dataclass
class CycleResult:
    """What happened during one cycle."""

    # ADVANCING, BACKOFF, or IDLE for an empty batch
    state: PumpState
    events_read: int = 0
    streams: int = 0
    cursor: int = 0
    delivery: Optional[DeliveryResult] = None
    error: Optional[ExporterError] = None

    @property
    def failed(self) -> bool:
        return self.state is PumpState.BACKOFF


class Pump:
    """
    Drives the read -> group -> push -> advance loop.

    Args:
        reader: Event source
        client: Loki client
        cursor: Cursor store, already initialized
        batch_size: Maximum events per cycle
        check_interval: Seconds to sleep after every cycle
        max_consecutive_errors: Failed cycles before the extended pause
        error_backoff: Seconds of the extended pause
        job: Value of the ``job`` label
        log_events: Log every event read at INFO
        sleep: Coroutine function used for all pauses
    """

    def __init__(
        self,
        reader: EventReader,
        client: LokiClient,
        cursor: CursorStore,
        batch_size: int = 100,
        check_interval: float = 10.0,
        max_consecutive_errors: int = 10,
        error_backoff: float = 30.0,
        job: str = DEFAULT_JOB,
        log_events: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.reader = reader
        self.client = client
        self.cursor = cursor
        self.batch_size = batch_size
        self.check_interval = check_interval
        self.max_consecutive_errors = max_consecutive_errors
        self.error_backoff = error_backoff
        self.job = job
        self.log_events = log_events
        self._sleep = sleep
        self._wakeup: Optional[asyncio.Event] = None

        self.state = PumpState.IDLE
        self.consecutive_errors = 0
        self.running = False
        self.stats = {
            'cycles': 0,
            'events_delivered': 0,
            'failed_cycles': 0,
            'escalations': 0,
            'last_error': None,
        }

    async def _read(self) -> List[Event]:
        self.state = PumpState.READING
        return await asyncio.to_thread(
            self.reader.get_events_since,
            self.cursor.current(),
            self.batch_size,
        )

    def _group(self, events: Sequence[Event]) -> List[Stream]:
        self.state = PumpState.GROUPING
        if self.log_events:
            for event in events:
                logger.info(format_event(event))
        return group(events, job=self.job)

    async def _deliver(self, streams: Sequence[Stream]) -> DeliveryResult:
        """
        Push streams to Loki.

        Raises:
            DeliveryRejected: Loki answered with a non-success status
            DeliveryUnreachable: Loki could not be reached
            SerializationFailure: The payload could not be built
        """
        self.state = PumpState.DELIVERING
        result = await asyncio.to_thread(self.client.push, streams)
        if not result.ok:
            raise result.error
        return result

    def _advance(self, events: Sequence[Event]) -> None:
        self.state = PumpState.ADVANCING
        new_last_id = max(event.id for event in events)
        self.cursor.advance_to(new_last_id)
        self.consecutive_errors = 0
        self.stats['events_delivered'] += len(events)

    def _backoff(self, error: Exception) -> None:
        self.state = PumpState.BACKOFF
        self.consecutive_errors += 1
        self.stats['failed_cycles'] += 1
        self.stats['last_error'] = str(error)

    async def run_cycle(self) -> CycleResult:
        """
        Run one read/group/push cycle, without the trailing sleep.

        Steady-state errors are logged and absorbed here; they never escape.
        """
        self.stats['cycles'] += 1
        events: List[Event] = []

        try:
            events = await self._read()
        except SourceReadFailure as e:
            logger.error(f"Failed to read events: {e}")
            self._backoff(e)
            return CycleResult(PumpState.BACKOFF, cursor=self.cursor.current(), error=e)

        if not events:
            self.state = PumpState.IDLE
            return CycleResult(PumpState.IDLE, cursor=self.cursor.current())

        logger.info(f"Found {len(events)} new events (last ID: {events[-1].id})")
        streams = self._group(events)

        try:
            result = await self._deliver(streams)
        except DeliveryRejected as e:
            logger.error(f"Failed to send to Loki: status {e.status_code} - {e.body}")
            error = e
        except DeliveryUnreachable as e:
            logger.error(f"Failed to send to Loki: {e.reason}")
            error = e
        except SerializationFailure as e:
            logger.error(f"Failed to send to Loki: {e}")
            error = e
        else:
            self._advance(events)
            logger.info(f"✓ Sent {len(events)} events to Loki")
            return CycleResult(
                PumpState.ADVANCING,
                events_read=len(events),
                streams=len(streams),
                cursor=self.cursor.current(),
                delivery=result,
            )

        self._backoff(error)
        return CycleResult(
            PumpState.BACKOFF,
            events_read=len(events),
            streams=len(streams),
            cursor=self.cursor.current(),
            error=error,
        )

    async def _wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, returning early if stop() is called."""
        if self._wakeup is None:
            await self._sleep(seconds)
            return

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waker = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waker.cancel()

    async def pause(self) -> None:
        """Sleep after a cycle, escalating once the failure threshold is reached."""
        if self.consecutive_errors >= self.max_consecutive_errors:
            logger.error(
                f"Too many consecutive errors ({self.consecutive_errors}), "
                f"waiting {self.error_backoff}s before retry..."
            )
            self.stats['escalations'] += 1
            await self._wait(self.error_backoff)
            self.consecutive_errors = 0

        self.state = PumpState.IDLE
        if self.running:
            await self._wait(self.check_interval)

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Main loop.

        Args:
            max_cycles: Stop after this many cycles; None runs until stop()
        """
        self.running = True
        self._wakeup = asyncio.Event()
        logger.info(f"Started monitoring (checking every {self.check_interval}s)")

        cycles = 0
        try:
            while self.running and (max_cycles is None or cycles < max_cycles):
                try:
                    await self.run_cycle()
                except Exception as e:
                    logger.error(f"Unexpected error in poll cycle: {e}", exc_info=True)
                    self._backoff(e)
                cycles += 1
                await self.pause()
        finally:
            self.running = False
            self._wakeup = None

    def stop(self) -> None:
        """
        Stop after the current cycle and cut short any pause.

        An in-flight push still runs to its own timeout.
        """
        self.running = False
        if self._wakeup is not None:
            self._wakeup.set()

    def get_stats(self) -> Dict[str, Any]:
        """Get pump statistics."""
        return {
            'state': self.state.value,
            'cursor': self.cursor.current(),
            'consecutive_errors': self.consecutive_errors,
            **self.stats,
        }
