# ==============================================================================
# Event Queue and Dispatcher
# ==============================================================================
"""
Buffered, at-least-once delivery of timeline events and profile snapshots.

The EventQueue owns every event until the sink acknowledges it. A flush marks
the current buffer contents in-flight and hands them to the sink as one
batch: on success exactly those events are removed, on failure they go back
to the head of the queue in their original order. Events enqueued while a
flush is in flight sit behind the in-flight prefix.

The sink deduplicates events on ``event_id``, so a batch that succeeded
remotely but was reported as failed is harmless when redelivered.

Profile snapshots are not queued: only the latest one matters, so a pending
snapshot is replaced by each newer one and retried on the next push.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Optional

from shopsignal.base.sinks import EventSink
from shopsignal.core.models import DeliveryState, QueuedEvent, TimelineEvent
from shopsignal.engine.delivery_metrics import DeliveryMetrics
from shopsignal.exceptions import SinkUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 1000

Handshake = Callable[[], Awaitable[None]]


class EventQueue:
    """
    FIFO buffer of timeline events awaiting delivery.

    Bounded at ``max_size``: when full, the oldest event that is not in
    flight is dropped (and logged) to make room. ``enqueue`` never fails.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_QUEUE_SIZE):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self._items: deque[QueuedEvent] = deque()
        self._in_flight = 0
        self.dropped_count = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def in_flight(self) -> int:
        """Number of events at the head currently handed to the sink."""
        return self._in_flight

    def events(self) -> list[TimelineEvent]:
        """All buffered events in delivery order."""
        return [item.event for item in self._items]

    def enqueue(self, event: TimelineEvent) -> None:
        """Append an event, dropping the oldest droppable event if full."""
        if len(self._items) >= self.max_size and len(self._items) > self._in_flight:
            dropped = self._items[self._in_flight]
            del self._items[self._in_flight]
            self.dropped_count += 1
            logger.warning(
                "Event queue full (%d); dropped %s event %s",
                self.max_size,
                dropped.event.event_type.value,
                dropped.event.event_id,
            )
        self._items.append(QueuedEvent(event=event))

    def begin_flush(self) -> list[TimelineEvent]:
        """
        Mark every buffered event in-flight and return them.

        Returns an empty list if a flush is already in flight or the queue
        is empty.
        """
        if self._in_flight or not self._items:
            return []
        for item in self._items:
            item.state = DeliveryState.IN_FLIGHT
            item.attempts += 1
        self._in_flight = len(self._items)
        return [item.event for item in self._items]

    def ack(self) -> int:
        """Remove the in-flight prefix after a successful delivery."""
        count = self._in_flight
        for _ in range(count):
            self._items.popleft()
        self._in_flight = 0
        return count

    def requeue(self) -> int:
        """Return the in-flight prefix to pending after a failed delivery."""
        count = self._in_flight
        for i in range(count):
            self._items[i].state = DeliveryState.FAILED_REQUEUED
        self._in_flight = 0
        return count


class Dispatcher:
    """
    Moves queued events and profile snapshots to the sink.

    Nothing is sent until the sink handshake (user and session records) has
    succeeded and ``mark_ready`` was called. If the controller gave up on the
    handshake, each flush re-attempts it once before delivering.

    Usage:
        dispatcher = Dispatcher(sink, EventQueue())
        dispatcher.mark_ready()
        await dispatcher.flush()
    """

    def __init__(
        self,
        sink: EventSink,
        queue: Optional[EventQueue] = None,
        metrics: Optional[DeliveryMetrics] = None,
        handshake: Optional[Handshake] = None,
        ready: bool = False,
    ):
        self.sink = sink
        self.queue = queue or EventQueue()
        self.metrics = metrics or DeliveryMetrics()
        self._handshake = handshake
        self._ready = ready
        self._flush_lock = asyncio.Lock()
        self._pending_snapshot: Optional[tuple[str, dict, int]] = None
        self._snapshot_in_flight = False
        self._background: set[asyncio.Task] = set()

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def flushing(self) -> bool:
        return self._flush_lock.locked()

    @property
    def pending_snapshot(self) -> Optional[tuple[str, dict, int]]:
        return self._pending_snapshot

    def enqueue(self, event: TimelineEvent) -> None:
        before = self.queue.dropped_count
        self.queue.enqueue(event)
        if self.queue.dropped_count > before:
            self.metrics.record_drop(self.queue.dropped_count - before)

    def mark_ready(self) -> None:
        """
        Allow delivery to begin.

        Schedules an opportunistic flush (and pending snapshot push) when an
        event loop is running.
        """
        if self._ready:
            return
        self._ready = True
        logger.info("Sink ready; %d events buffered", len(self.queue))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._drain(), name="dispatcher-drain")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _drain(self) -> None:
        await self.flush()
        await self.deliver_snapshot()

    async def ensure_ready(self) -> bool:
        """Attempt the handshake once if the dispatcher is not ready yet."""
        if self._ready:
            return True
        if self._handshake is None:
            return False
        try:
            await self._handshake()
        except Exception as e:
            # Handshake failures leave the queue buffered for the next cycle
            logger.warning("Sink handshake retry failed: %s", e)
            return False
        self._ready = True
        logger.info("Sink handshake succeeded on retry")
        return True

    async def flush(self, wait: bool = False) -> int:
        """
        Deliver everything buffered right now as one batch.

        Only one flush runs at a time. By default a call that finds one in
        progress returns immediately; with ``wait=True`` it waits for the
        running flush to finish and then flushes whatever is left.

        Returns:
            Number of events acknowledged by the sink
        """
        if self._flush_lock.locked() and not wait:
            return 0
        async with self._flush_lock:
            return await self._flush_batch()

    async def _flush_batch(self) -> int:
        if not await self.ensure_ready():
            return 0
        batch = self.queue.begin_flush()
        if not batch:
            return 0

        start = time.monotonic()
        try:
            await self.sink.insert_timeline_events([event.to_record() for event in batch])
        except asyncio.CancelledError:
            self.queue.requeue()
            logger.info("Flush of %d events cancelled, requeued", len(batch))
            raise
        except SinkUnavailableError as e:
            self.queue.requeue()
            self.metrics.record_flush(len(batch), (time.monotonic() - start) * 1000, ok=False)
            logger.warning("Flush of %d events failed, requeued: %s", len(batch), e)
            return 0
        except Exception:
            self.queue.requeue()
            self.metrics.record_flush(len(batch), (time.monotonic() - start) * 1000, ok=False)
            logger.exception("Flush of %d events failed, requeued", len(batch))
            return 0

        delivered = self.queue.ack()
        self.metrics.record_flush(delivered, (time.monotonic() - start) * 1000, ok=True)
        return delivered

    async def push_snapshot(self, session_id: str, profile: dict, updated_at: int) -> bool:
        """
        Make this the latest profile snapshot and try to deliver it.

        Returns:
            True if the sink accepted the snapshot now; otherwise it stays
            pending until replaced or retried.
        """
        pending = self._pending_snapshot
        if pending is None or updated_at >= pending[2]:
            self._pending_snapshot = (session_id, profile, updated_at)
        return await self.deliver_snapshot()

    async def deliver_snapshot(self) -> bool:
        """Try to deliver the pending snapshot, if any."""
        if self._pending_snapshot is None or self._snapshot_in_flight:
            return False
        if not await self.ensure_ready():
            return False

        session_id, profile, updated_at = self._pending_snapshot
        self._snapshot_in_flight = True
        try:
            await self.sink.update_session_profile(session_id, profile, updated_at)
        except Exception as e:
            # Retried with the next (or same) snapshot on the next push
            self.metrics.record_snapshot(ok=False)
            logger.warning("Profile snapshot push failed: %s", e)
            return False
        finally:
            self._snapshot_in_flight = False

        if self._pending_snapshot is not None and self._pending_snapshot[2] == updated_at:
            self._pending_snapshot = None
        self.metrics.record_snapshot(ok=True)
        return True

    async def close(self) -> None:
        """Wait for background drains started by ``mark_ready``."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
