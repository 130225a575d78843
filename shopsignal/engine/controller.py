# ==============================================================================
# Session Controller
# ==============================================================================
"""
Lifecycle of one page load's tracking session.

    AwaitingConsent --consent--> Initializing --handshake done/abandoned--> Active
    Initializing/Active --teardown--> Finalizing --> Closed
    AwaitingConsent --teardown--> Closed

Nothing is observed, stored or sent before consent. Once consent arrives the
controller resolves identity, starts every collector and timer, and begins
the sink handshake in the background; collection never waits on the network.
Events emitted before the handshake completes are buffered by the dispatcher.

Everything runs on one asyncio event loop; ``start`` and ``teardown`` must be
called from inside it.
"""

import asyncio
import logging
from collections.abc import Coroutine
from enum import Enum
from typing import Any, Optional

from tenacity import RetryError

from shopsignal.base.providers import CartSource, ConsentSource, EnrichmentProvider
from shopsignal.base.sinks import EventSink
from shopsignal.core.aggregator import BehaviorAggregator
from shopsignal.core.models import (
    EnrichmentRecord,
    EventType,
    SessionIdentity,
    TimelineEvent,
    VisitorIdentity,
)
from shopsignal.core.page_context import PageContext, build_page_context
from shopsignal.engine.collectors import CartPoller, CollectorContext, SignalRouter, build_collectors
from shopsignal.engine.consent import ConsentGate
from shopsignal.engine.dispatcher import Dispatcher, EventQueue
from shopsignal.engine.enrichment import enrich
from shopsignal.engine.identity import IdentityStore
from shopsignal.exceptions import InvalidTransitionError
from shopsignal.utils.clock import Clock, now_ms
from shopsignal.utils.config import TrackerSettings, get_settings
from shopsignal.utils.retry import run_with_retry
from shopsignal.utils.timers import PeriodicTask

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    AWAITING_CONSENT = "awaiting_consent"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    CLOSED = "closed"


TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.AWAITING_CONSENT: {SessionState.INITIALIZING, SessionState.CLOSED},
    SessionState.INITIALIZING: {SessionState.ACTIVE, SessionState.FINALIZING},
    SessionState.ACTIVE: {SessionState.FINALIZING},
    SessionState.FINALIZING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}

COLLECTING_STATES = {SessionState.INITIALIZING, SessionState.ACTIVE}


class SessionController:
    """
    Owns the collectors, aggregator, dispatcher and timers of one session.

    Usage:
        controller = SessionController(consent, identity, sink, page=beacon)
        controller.start()
        controller.handle_event({"type": "click", "x": 10, "y": 20, "t": now})
        ...
        await controller.teardown()
    """

    def __init__(
        self,
        consent_source: ConsentSource,
        identity: IdentityStore,
        sink: EventSink,
        page: Optional[dict] = None,
        cart_source: Optional[CartSource] = None,
        enrichment_provider: Optional[EnrichmentProvider] = None,
        settings: Optional[TrackerSettings] = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize the controller in AwaitingConsent.

        Args:
            consent_source: Consent mechanism gating all collection
            identity: Visitor/session identity store
            sink: Remote store for users, sessions, profiles and events
            page: Page beacon (url, path, referrer, user_agent, ...)
            cart_source: Cart endpoint, or None to disable cart polling
            enrichment_provider: Geolocation provider, or None to disable it
            settings: Engine timings and bounds. Defaults to TRACKER_* settings.
            clock: Current time in Unix ms
        """
        self.settings = settings or get_settings().tracker
        self.identity = identity
        self.page = dict(page or {})
        self.clock = clock
        self._cart_source = cart_source
        self._enrichment_provider = enrichment_provider

        self.gate = ConsentGate(
            consent_source,
            poll_interval_ms=self.settings.consent_poll_interval_ms,
            max_poll_attempts=self.settings.consent_poll_max_attempts,
        )
        self.aggregator = BehaviorAggregator(idle_threshold_ms=self.settings.idle_threshold_ms)
        self.dispatcher = Dispatcher(
            sink,
            EventQueue(max_size=self.settings.max_queue_size),
            handshake=self._sink_handshake,
        )

        self.state = SessionState.AWAITING_CONSENT
        self.visitor: Optional[VisitorIdentity] = None
        self.session: Optional[SessionIdentity] = None
        self.page_context: Optional[PageContext] = None
        self.enrichment: Optional[EnrichmentRecord] = None
        self.router: Optional[SignalRouter] = None
        self.cart_poller: Optional[CartPoller] = None
        self._timers: list[PeriodicTask] = []
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    # ==========================================================================
    # State machine
    # ==========================================================================

    def _transition(self, target: SessionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {target.value}")
        logger.debug("Session state %s -> %s", self.state.value, target.value)
        self.state = target

    @property
    def collecting(self) -> bool:
        return self.state in COLLECTING_STATES

    def start(self) -> None:
        """Wait for consent. Initializes immediately if consent is already granted."""
        if self._started:
            raise InvalidTransitionError("controller already started")
        self._started = True
        self.gate.on_consent(self._on_consent)

    def _on_consent(self) -> None:
        if self.state is SessionState.AWAITING_CONSENT:
            self._initialize()

    def _initialize(self) -> None:
        self._transition(SessionState.INITIALIZING)
        now = self.clock()

        self.visitor = self.identity.get_or_create_visitor_id(now)
        self.session = self.identity.get_or_renew_session_id(now)
        history = self.identity.load_history(is_returning=not self.visitor.is_new)
        self.page_context = build_page_context(
            self.page, history=history, default_currency=self.settings.default_currency
        )

        self.aggregator.start(now)
        context = CollectorContext(aggregator=self.aggregator, emit=self._emit, clock=self.clock)
        self.router = build_collectors(
            context,
            pointer_max_hz=self.settings.pointer_max_hz,
            scroll_max_hz=self.settings.scroll_max_hz,
            idle_tick_ms=self.settings.idle_tick_ms,
        )

        self._emit(
            EventType.SESSION_START,
            "Session started" if self.session.is_new else "Session resumed",
            {
                "is_new_session": self.session.is_new,
                "is_returning": history.is_returning,
                "context": self.page_context.model_dump(),
            },
            now,
        )
        if self.page.get("path"):
            self.router.dispatch(
                {"type": "page_view", "path": self.page["path"], "title": self.page.get("title"), "t": now}
            )

        self.router.start()
        if self._cart_source is not None:
            self.cart_poller = CartPoller(
                context,
                self._cart_source,
                interval_seconds=self.settings.cart_poll_interval_seconds,
                on_baseline=self._on_cart_baseline,
            )
            self.cart_poller.start()

        self._timers = [
            PeriodicTask("queue-flush", self.settings.flush_interval_seconds, self.flush),
            PeriodicTask("profile-snapshot", self.settings.snapshot_interval_seconds, self.push_snapshot),
        ]
        for timer in self._timers:
            timer.start()

        self._spawn(self._enrich(now), "session-enrichment")
        self._spawn(self._connect_sink(), "sink-handshake")
        logger.info(
            "Tracking session %s for visitor %s", self.session.session_id, self.visitor.visitor_id
        )

    def _on_cart_baseline(self, status: str) -> None:
        # session_start goes out before the first poll, so the baseline gets its own event
        if self.page_context is not None:
            self.page_context.storefront.cart_status = status
        self._emit(
            EventType.CART_STATUS,
            f"Cart at session start is {status}",
            {"status": status, "previous_status": None, "baseline": True},
            self.clock(),
        )

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ==========================================================================
    # Sink handshake and enrichment
    # ==========================================================================

    async def _enrich(self, now: int) -> None:
        self.enrichment = await enrich(
            self._enrichment_provider, now, utc_offset_minutes=self.page.get("utc_offset_minutes")
        )

    def _user_record(self, now: int) -> dict:
        device = self.page_context.device if self.page_context else None
        return {
            "user_id": self.visitor.visitor_id,
            "first_seen": self.identity.first_seen() or self.session.started_at,
            "last_seen": now,
            "is_returning": not self.visitor.is_new,
            "metadata": {"device_type": device.device_type if device else None},
        }

    def _session_record(self) -> dict:
        return {
            "session_id": self.session.session_id,
            "user_id": self.visitor.visitor_id,
            "started_at": self.session.started_at,
            "context": self.page_context.model_dump() if self.page_context else {},
            "enrichment": self.enrichment.model_dump() if self.enrichment else None,
        }

    async def _sink_handshake(self) -> None:
        """Upsert the user, then insert the session (a no-op if it exists)."""
        sink = self.dispatcher.sink
        await sink.upsert_user(self._user_record(self.clock()))
        created = await sink.insert_session_if_absent(self._session_record())
        logger.debug("Session record %s", "created" if created else "already present")

    async def _connect_sink(self) -> None:
        try:
            await run_with_retry(
                self._sink_handshake, attempts=self.settings.handshake_attempts, logger=logger
            )
        except RetryError as e:
            logger.warning(
                "Sink handshake abandoned after %d attempts: %s",
                self.settings.handshake_attempts,
                e.last_attempt.exception(),
            )
        else:
            self.dispatcher.mark_ready()
        if self.state is SessionState.INITIALIZING:
            self._transition(SessionState.ACTIVE)

    async def settle(self) -> None:
        """Wait for the background handshake and enrichment to finish."""
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]
        await self.dispatcher.close()

    # ==========================================================================
    # Signals and periodic work
    # ==========================================================================

    def _emit(self, event_type: EventType, message: str, metadata: dict, t: int) -> None:
        if self.session is None or self.visitor is None:
            return
        self.dispatcher.enqueue(
            TimelineEvent(
                user_id=self.visitor.visitor_id,
                session_id=self.session.session_id,
                timestamp=t,
                event_type=event_type,
                message=message,
                metadata=metadata,
            )
        )

    def handle_event(self, raw: Any) -> bool:
        """
        Route one raw page signal to its collector.

        Returns:
            False if the signal was dropped (no consent yet, session closed,
            or malformed)
        """
        if not self.collecting or self.router is None:
            return False
        return self.router.dispatch(raw)

    def idle_tick(self) -> None:
        """Run one idle/engaged accounting tick at the current time."""
        if self.collecting:
            self.aggregator.on_idle_tick(self.clock())

    def profile_snapshot(self, now: int) -> dict:
        data = self.aggregator.snapshot(now)
        data["enrichment"] = self.enrichment.model_dump() if self.enrichment else None
        return data

    async def push_snapshot(self) -> bool:
        """Push the current profile snapshot to the sink."""
        if self.session is None:
            return False
        now = self.clock()
        return await self.dispatcher.push_snapshot(
            self.session.session_id, self.profile_snapshot(now), now
        )

    async def flush(self) -> int:
        """Flush the timeline event queue."""
        return await self.dispatcher.flush()

    # ==========================================================================
    # Teardown
    # ==========================================================================

    def _stop_collection(self) -> None:
        if self.router is not None:
            self.router.stop()
        if self.cart_poller is not None:
            self.cart_poller.stop()
        for task in list(self._tasks):
            task.cancel()

    async def teardown(self) -> None:
        """
        Finalize the session. Idempotent.

        Stops every timer, letting a flush already in progress finish, then
        accounts the last tick, emits ``session_end``, persists session
        continuity, and makes one last snapshot push and one last flush
        attempt. The last flush waits for any flush still running.
        Before consent this only closes the gate.
        """
        if self.state in (SessionState.FINALIZING, SessionState.CLOSED):
            return
        if self.state is SessionState.AWAITING_CONSENT:
            self.gate.close()
            self._transition(SessionState.CLOSED)
            logger.info("Closed without consent; nothing collected")
            return

        self._transition(SessionState.FINALIZING)
        self.gate.close()
        self._stop_collection()
        # A flush or snapshot push already talking to the sink runs to completion
        for timer in self._timers:
            await timer.stop()
        self._timers = []

        now = self.clock()
        self.aggregator.on_idle_tick(now)
        profile = self.aggregator.profile
        self._emit(
            EventType.SESSION_END,
            "Session ended",
            {
                "duration_ms": max(0, now - self.aggregator.started_at),
                "engaged_time_ms": profile.attention.engaged_time_ms,
                "idle_time_ms": profile.attention.idle_time_ms,
            },
            now,
        )
        self.identity.save_continuity(
            last_seen=now,
            last_pages=profile.viewed_pages,
            last_cart_status=profile.commerce.cart_status,
        )

        await self.push_snapshot()
        await self.dispatcher.flush(wait=True)
        await self.dispatcher.close()

        if len(self.dispatcher.queue):
            logger.warning("%d events undelivered at teardown", len(self.dispatcher.queue))
        self.dispatcher.metrics.log_final_summary()
        self._transition(SessionState.CLOSED)

    def describe(self) -> dict:
        """Current state summary."""
        return {
            "state": self.state.value,
            "visitor_id": self.visitor.visitor_id if self.visitor else None,
            "session_id": self.session.session_id if self.session else None,
            "consent_via": self.gate.granted_via,
            "sink_ready": self.dispatcher.ready,
            "queued_events": len(self.dispatcher.queue),
            "dropped_events": self.dispatcher.queue.dropped_count,
            **self.dispatcher.metrics.as_dict(),
        }
