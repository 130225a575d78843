# ==============================================================================
# Tests for the Session Controller
# ==============================================================================
"""
Integration tests for SessionController over in-memory collaborators.

Tests cover:
- Consent gating (nothing observed or sent before consent)
- Session start: identity, session_start event, sink handshake
- Handshake failure and recovery
- Teardown: session_end, continuity, final flush, idempotency
- State machine transitions
"""

import asyncio

import pytest
from conftest import T0

from shopsignal.core.models import EventType
from shopsignal.engine.controller import SessionController, SessionState
from shopsignal.exceptions import InvalidTransitionError
from shopsignal.infrastructure.consent import StaticConsentSource
from shopsignal.infrastructure.sinks.memory import InMemoryEventSink

PAGE = {
    "url": "https://shop.example.com/products/tee?utm_source=newsletter",
    "path": "/products/tee",
    "title": "Tee",
    "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148",
}


class ScriptedCart:
    def __init__(self, payload):
        self.payload = payload

    async def fetch_cart(self):
        return self.payload


@pytest.fixture
def make_controller(memory_identity, sink, tracker_settings, clock):
    def _make(granted=True, **kwargs):
        consent = StaticConsentSource(granted=granted)
        controller = SessionController(
            consent,
            memory_identity,
            sink,
            page=PAGE,
            settings=tracker_settings,
            clock=clock,
            **kwargs,
        )
        return controller, consent

    return _make


def event_types(sink):
    return [e["event_type"] for e in sink.events_in_order()]


# ==============================================================================
# Consent gating
# ==============================================================================


class TestConsentGating:
    """Nothing happens before consent."""

    def test_denied_session_collects_nothing(self, make_controller, sink):
        controller, consent = make_controller(granted=False)

        async def scenario():
            controller.start()
            accepted = controller.handle_event({"type": "click", "x": 1, "y": 1, "t": T0})
            await controller.teardown()
            return accepted

        assert asyncio.run(scenario()) is False
        assert controller.state is SessionState.CLOSED
        assert controller.session is None
        assert sink.calls == []
        assert consent.listener_count == 0

    def test_consent_later_starts_session(self, make_controller, sink, clock):
        controller, consent = make_controller(granted=False)

        async def scenario():
            controller.start()
            assert controller.state is SessionState.AWAITING_CONSENT
            assert controller.handle_event({"type": "keydown", "t": T0}) is False
            clock.advance(2000)
            consent.grant()
            assert controller.handle_event({"type": "keydown", "t": T0 + 2100}) is True
            await controller.settle()
            await controller.teardown()

        asyncio.run(scenario())
        assert controller.gate.granted_via == "update"
        assert controller.session.started_at == T0 + 2000
        assert event_types(sink)[0] == "session_start"

    def test_start_twice_rejected(self, make_controller):
        controller, _ = make_controller()

        async def scenario():
            controller.start()
            with pytest.raises(InvalidTransitionError):
                controller.start()
            await controller.teardown()

        asyncio.run(scenario())


# ==============================================================================
# Session start
# ==============================================================================


class TestSessionStart:
    """Tests for initialization after consent."""

    def test_start_with_consent_delivers_start_events(self, make_controller, sink):
        controller, _ = make_controller()

        async def scenario():
            controller.start()
            assert controller.state is SessionState.INITIALIZING
            await controller.settle()

        asyncio.run(scenario())

        assert controller.state is SessionState.ACTIVE
        assert controller.dispatcher.ready
        assert event_types(sink) == ["session_start", "page_view"]
        start = sink.events_in_order()[0]
        assert start["metadata"]["is_new_session"] is True
        assert start["metadata"]["is_returning"] is False
        assert start["metadata"]["context"]["traffic"]["utm_source"] == "newsletter"

        visitor_id = controller.visitor.visitor_id
        assert sink.users[visitor_id]["is_returning"] is False
        assert sink.users[visitor_id]["metadata"]["device_type"] == "mobile"
        session = sink.sessions[controller.session.session_id]
        assert session["user_id"] == visitor_id
        assert session["started_at"] == T0

    def test_handshake_precedes_events(self, make_controller, sink):
        controller, _ = make_controller()

        async def scenario():
            controller.start()
            await controller.settle()
            await controller.teardown()

        asyncio.run(scenario())
        assert sink.calls[:3] == ["upsert_user", "insert_session_if_absent", "insert_timeline_events"]

    def test_cart_baseline_sets_context_and_records_status(self, make_controller, sink):
        controller, _ = make_controller(cart_source=ScriptedCart({"total_price": 1500, "items": [{"id": 1, "quantity": 1}]}))

        async def scenario():
            controller.start()
            await asyncio.sleep(0.01)
            await controller.settle()
            await controller.teardown()

        asyncio.run(scenario())
        assert controller.cart_poller.first_status == "has_items"
        assert controller.page_context.storefront.cart_status == "has_items"
        baseline = [e for e in sink.events_in_order() if e["event_type"] == "cart_status"]
        assert [e["metadata"]["status"] for e in baseline] == ["has_items"]
        assert baseline[0]["metadata"]["baseline"] is True
        assert event_types(sink)[0] == "session_start"

    def test_handshake_failure_buffers_then_recovers(self, make_controller, sink):
        controller, _ = make_controller()
        sink.fail_next(1)

        async def scenario():
            controller.start()
            await controller.settle()
            assert controller.state is SessionState.ACTIVE
            assert not controller.dispatcher.ready
            assert len(controller.dispatcher.queue) == 2
            return await controller.flush()

        assert asyncio.run(scenario()) == 2
        assert controller.dispatcher.ready
        assert event_types(sink) == ["session_start", "page_view"]


# ==============================================================================
# Teardown
# ==============================================================================


class TestTeardown:
    """Tests for finalization."""

    def run_session(self, controller, clock, events=()):
        async def scenario():
            controller.start()
            await controller.settle()
            for raw in events:
                clock.set(raw["t"])
                controller.handle_event(raw)
            clock.advance(60_000)
            await controller.teardown()

        asyncio.run(scenario())

    def test_session_end_and_final_flush(self, make_controller, sink, clock):
        controller, _ = make_controller()
        self.run_session(controller, clock, [{"type": "click", "x": 5, "y": 5, "t": T0 + 1000}])

        assert controller.state is SessionState.CLOSED
        assert event_types(sink) == ["session_start", "page_view", "click", "session_end"]
        end = sink.events_in_order()[-1]["metadata"]
        assert end["duration_ms"] == 61_000
        assert end["engaged_time_ms"] + end["idle_time_ms"] == 61_000
        assert len(controller.dispatcher.queue) == 0

    def test_final_profile_snapshot(self, make_controller, sink, clock):
        controller, _ = make_controller()
        self.run_session(controller, clock, [{"type": "click", "x": 5, "y": 5, "t": T0 + 1000}])

        profile = sink.sessions[controller.session.session_id]["profile"]
        assert profile["interactions"]["clicks"] == 1
        assert profile["viewed_pages"] == ["/products/tee"]
        assert "engagement_score" in profile
        assert profile["enrichment"]["temporal"] is not None

    def test_continuity_persisted(self, make_controller, memory_identity, clock):
        controller, _ = make_controller()
        self.run_session(controller, clock)

        history = memory_identity.load_history(is_returning=True)
        assert history.last_seen == T0 + 60_000
        assert history.pages_viewed_last_session == ["/products/tee"]

    def test_teardown_is_idempotent(self, make_controller, sink, clock):
        controller, _ = make_controller()

        async def scenario():
            controller.start()
            await controller.settle()
            await controller.teardown()
            await controller.teardown()

        asyncio.run(scenario())
        assert event_types(sink).count("session_end") == 1

    def test_events_after_teardown_dropped(self, make_controller, clock):
        controller, _ = make_controller()
        self.run_session(controller, clock)
        assert controller.handle_event({"type": "keydown", "t": T0 + 70_000}) is False

    def test_undelivered_events_survive_failed_final_flush(self, make_controller, sink, clock):
        controller, _ = make_controller()

        async def scenario():
            controller.start()
            await controller.settle()
            # Final snapshot and final flush both fail
            sink.fail_next(2)
            await controller.teardown()

        asyncio.run(scenario())
        assert controller.state is SessionState.CLOSED
        assert controller.dispatcher.queue.events()[-1].event_type == EventType.SESSION_END

    def test_teardown_waits_for_flush_blocked_in_sink(self, memory_identity, tracker_settings, clock):
        class StallingSink(InMemoryEventSink):
            def __init__(self):
                super().__init__()
                self.stall = None
                self.stalled = None

            async def insert_timeline_events(self, batch):
                if self.stall is not None:
                    release, self.stall = self.stall, None
                    self.stalled.set()
                    await release.wait()
                return await super().insert_timeline_events(batch)

        sink = StallingSink()
        settings = tracker_settings.model_copy(update={"flush_interval_seconds": 0.01})
        controller = SessionController(
            StaticConsentSource(granted=True), memory_identity, sink, page=PAGE, settings=settings, clock=clock
        )

        async def scenario():
            controller.start()
            await controller.settle()
            sink.stall, sink.stalled = asyncio.Event(), asyncio.Event()
            release = sink.stall
            for i in range(3):
                clock.set(T0 + 5_000 * (i + 1))
                controller.handle_event({"type": "click", "x": 100 * i, "y": 100 * i, "t": clock()})
            await asyncio.wait_for(sink.stalled.wait(), timeout=1)
            assert controller.dispatcher.queue.in_flight == 3

            closing = asyncio.create_task(controller.teardown())
            await asyncio.sleep(0.02)
            assert not closing.done()
            release.set()
            await closing

        asyncio.run(scenario())
        queue = controller.dispatcher.queue
        assert controller.state is SessionState.CLOSED
        assert (len(queue), queue.in_flight) == (0, 0)
        assert event_types(sink) == ["session_start", "page_view", "click", "click", "click", "session_end"]

    def test_describe(self, make_controller, clock):
        controller, _ = make_controller()
        self.run_session(controller, clock)
        summary = controller.describe()
        assert summary["state"] == "closed"
        assert summary["consent_via"] == "already_granted"
        assert summary["sink_ready"] is True
        assert summary["queued_events"] == 0
