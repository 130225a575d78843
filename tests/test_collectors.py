# ==============================================================================
# Tests for Signal Collectors
# ==============================================================================
"""
Unit tests for the collectors, the signal router and the cart poller.

Tests cover:
- Routing and malformed-signal handling
- Rate-capped scroll and pointer sampling
- Click, rage-click, hover, form and page-view normalization
- Cart payload normalization (minor and major units)
- Cart polling: baseline, change events, failures and overlap
"""

import asyncio

import pytest
from conftest import T0

from shopsignal.core.models import EventType
from shopsignal.engine.collectors import (
    CartPoller,
    CollectorContext,
    FormCollector,
    build_collectors,
    normalize_cart,
)
from shopsignal.exceptions import SinkUnavailableError

ADD_TO_CART = {"tag": "button", "id": "AddToCart", "classes": ["product-form__submit"]}
PLAIN_DIV = {"tag": "div", "classes": ["hero"]}


class Emitted:
    """Collects emitted timeline events."""

    def __init__(self):
        self.events = []

    def __call__(self, event_type, message, metadata, t):
        self.events.append((event_type, message, metadata, t))

    def types(self):
        return [event[0] for event in self.events]


@pytest.fixture
def emitted():
    return Emitted()


@pytest.fixture
def context(aggregator, emitted, clock):
    return CollectorContext(aggregator=aggregator, emit=emitted, clock=clock)


@pytest.fixture
def router(context):
    return build_collectors(context, pointer_max_hz=20, scroll_max_hz=10)


class ScriptedCart:
    """Cart source returning queued payloads; exceptions are raised."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = 0

    async def fetch_cart(self):
        self.calls += 1
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload


# ==============================================================================
# Router
# ==============================================================================


class TestSignalRouter:
    """Tests for dispatching raw signals."""

    def test_unknown_type_ignored(self, router):
        assert router.dispatch({"type": "resize"}) is False
        assert router.ignored == 1

    def test_non_dict_ignored(self, router):
        assert router.dispatch("click") is False
        assert router.dispatch(None) is False
        assert router.ignored == 2

    def test_malformed_signal_dropped_not_raised(self, router, aggregator):
        assert router.dispatch({"type": "mousemove", "t": T0 + 10}) is False
        assert router.dispatch({"type": "scroll", "t": T0 + 10, "doc_height": 100}) is False
        assert router.dispatch({"type": "visibilitychange", "t": T0 + 10}) is False
        assert router.ignored == 3
        assert aggregator.profile.interactions.scrolls == 0

    def test_handled_counter(self, router):
        assert router.dispatch({"type": "keydown", "t": T0 + 10}) is True
        assert router.dispatch({"type": "touchstart", "t": T0 + 20}) is True
        handled = {c.__class__.__name__: c.handled for c in router.collectors}
        assert handled["ActivityCollector"] == 2

    def test_missing_timestamp_uses_clock(self, router, aggregator, clock):
        clock.advance(4000)
        router.dispatch({"type": "keydown"})
        assert aggregator.current_idle_ms(clock()) == 0


# ==============================================================================
# Scroll and pointer
# ==============================================================================


class TestScrollCollector:
    """Tests for scroll normalization and rate capping."""

    def test_milestones_emitted_once(self, router, emitted):
        router.dispatch({"type": "scroll", "scroll_top": 1000, "doc_height": 2000, "t": T0 + 100})
        router.dispatch({"type": "scroll", "scroll_top": 600, "doc_height": 2000, "t": T0 + 400})
        router.dispatch({"type": "scroll", "scroll_top": 1000, "doc_height": 2000, "t": T0 + 700})
        milestones = [e[2]["depth_percent"] for e in emitted.events]
        assert milestones == [25, 50]

    def test_scroll_height_minus_viewport(self, router, aggregator):
        router.dispatch(
            {"type": "scroll", "scroll_y": 750, "scroll_height": 2500, "viewport_height": 1000, "t": T0 + 100}
        )
        assert aggregator.profile.scroll.max_depth_percent == 50

    def test_rate_capped_samples_count_as_activity(self, router, aggregator):
        router.dispatch({"type": "scroll", "scroll_top": 100, "doc_height": 2000, "t": T0 + 100})
        # 10 Hz cap: a sample 20ms later is rejected
        router.dispatch({"type": "scroll", "scroll_top": 1900, "doc_height": 2000, "t": T0 + 120})
        assert aggregator.profile.interactions.scrolls == 1
        assert aggregator.profile.scroll.max_depth_percent == 5
        assert aggregator.current_idle_ms(T0 + 120) == 0


class TestPointerCollector:
    """Tests for pointer sampling."""

    def test_rate_cap(self, router, aggregator):
        for i in range(10):
            router.dispatch({"type": "mousemove", "x": i * 10, "y": 0, "t": T0 + i * 25})
        pointer = next(c for c in router.collectors if c.__class__.__name__ == "PointerCollector")
        # 20 Hz: one sample per 50ms
        assert pointer.limiter.admitted == 5
        assert pointer.limiter.dropped == 5


# ==============================================================================
# Discrete inputs
# ==============================================================================


class TestClickCollector:
    """Tests for click events."""

    def test_click_event_carries_category(self, router, emitted):
        router.dispatch({"type": "click", "x": 10, "y": 20, "t": T0 + 100, "target": ADD_TO_CART})
        event_type, message, metadata, t = emitted.events[0]
        assert event_type == EventType.CLICK
        assert metadata["category"] == "add_to_cart"
        assert metadata["interactive"] is True
        assert t == T0 + 100

    def test_rage_click_emitted_once_per_run(self, router, emitted, aggregator):
        for i in range(5):
            router.dispatch({"type": "click", "x": 100, "y": 100, "t": T0 + i * 100, "target": PLAIN_DIV})
        assert emitted.types().count(EventType.CLICK) == 5
        assert emitted.types().count(EventType.RAGE_CLICK) == 1
        assert aggregator.profile.pointer.dead_clicks == 5


class TestHoverCollector:
    """Tests for hover pairing."""

    def test_enter_leave_records_duration(self, router, aggregator):
        router.dispatch({"type": "mouseover", "t": T0 + 100, "target": ADD_TO_CART})
        router.dispatch({"type": "mouseout", "t": T0 + 1600, "target": ADD_TO_CART})
        summary = aggregator.profile.pointer.hovers["add_to_cart"]
        assert summary.count == 1
        assert summary.total_ms == 1500

    def test_unclassified_target_ignored(self, router, aggregator):
        router.dispatch({"type": "mouseover", "t": T0 + 100, "target": PLAIN_DIV})
        router.dispatch({"type": "mouseout", "t": T0 + 900, "target": PLAIN_DIV})
        assert aggregator.profile.pointer.hovers == {}


class TestFormCollector:
    """Tests for form starts and clipboard."""

    FIELD = {"tag": "input", "ancestors": [{"tag": "form", "id": "contact"}]}

    def test_first_focus_per_form(self, router, emitted, aggregator):
        router.dispatch({"type": "focusin", "t": T0 + 100, "target": self.FIELD})
        router.dispatch({"type": "focusin", "t": T0 + 200, "target": self.FIELD})
        assert emitted.types() == [EventType.FORM_START]
        assert emitted.events[0][2] == {"form": "contact"}
        assert aggregator.profile.interactions.form_starts == 1

    def test_focus_outside_form_is_activity_only(self, router, emitted):
        router.dispatch({"type": "focusin", "t": T0 + 100, "target": {"tag": "input"}})
        assert emitted.events == []

    def test_form_key_from_action(self):
        raw = {"target": {"tag": "input", "ancestors": [{"tag": "form", "attributes": {"action": "/search"}}]}}
        assert FormCollector.form_key(raw) == "/search"

    def test_copy_paste(self, router, aggregator):
        router.dispatch({"type": "copy", "t": T0 + 100})
        router.dispatch({"type": "paste", "t": T0 + 200})
        router.dispatch({"type": "paste", "t": T0 + 300})
        assert aggregator.profile.interactions.copies == 1
        assert aggregator.profile.interactions.pastes == 2


class TestPageAndVisibility:
    """Tests for page views and visibility changes."""

    def test_page_view(self, router, emitted, aggregator):
        router.dispatch({"type": "page_view", "path": "/products/tee", "title": "Tee", "t": T0 + 100})
        assert emitted.events[0][2] == {"path": "/products/tee", "title": "Tee"}
        assert aggregator.profile.viewed_pages == ["/products/tee"]

    def test_page_view_without_path_ignored(self, router, emitted):
        router.dispatch({"type": "page_view", "t": T0 + 100})
        assert emitted.events == []

    def test_hidden_counts(self, router, emitted, aggregator):
        router.dispatch({"type": "visibilitychange", "state": "hidden", "t": T0 + 100})
        router.dispatch({"type": "visibilitychange", "state": "visible", "t": T0 + 200})
        assert aggregator.profile.attention.hidden_count == 1
        assert emitted.types() == [EventType.VISIBILITY_CHANGE] * 2


# ==============================================================================
# Cart
# ==============================================================================


class TestNormalizeCart:
    """Tests for cart payload normalization."""

    def test_minor_units_converted(self):
        payload = {
            "total_price": 4599,
            "items": [{"id": 1, "quantity": 2, "price": 1500, "product_title": "Tee"}, {"variant_id": 7, "quantity": 1, "price": 1599}],
        }
        snapshot = normalize_cart(payload, T0)
        assert snapshot.total_value == 45.99
        assert [item.id for item in snapshot.items] == ["1", "7"]
        assert snapshot.items[0].price == 15.0
        assert snapshot.total_quantity == 3

    def test_major_units_kept(self):
        snapshot = normalize_cart({"total_value": 12.5, "items": [{"id": "a", "quantity": 1, "price": 12.5}]}, T0)
        assert snapshot.total_value == 12.5
        assert snapshot.items[0].price == 12.5

    def test_lines_without_id_skipped(self):
        snapshot = normalize_cart({"total_value": 0, "items": [{"quantity": 1}]}, T0)
        assert snapshot.items == []
        assert snapshot.status == "empty"


class TestCartPoller:
    """Tests for CartPoller.poll."""

    EMPTY = {"total_price": 0, "items": []}
    ONE = {"total_price": 2000, "items": [{"id": 1, "quantity": 1, "price": 2000}]}
    TWO = {"total_price": 4000, "items": [{"id": 1, "quantity": 2, "price": 2000}]}

    def test_baseline_then_changes(self, context, emitted, aggregator):
        baselines = []
        poller = CartPoller(context, ScriptedCart(self.EMPTY, self.ONE, self.ONE, self.TWO, self.EMPTY), on_baseline=baselines.append)

        async def scenario():
            for _ in range(5):
                await poller.poll()

        asyncio.run(scenario())

        assert baselines == ["empty"]
        assert poller.first_status == "empty"
        changes = [e for e in emitted.events if e[0] == EventType.CART_CHANGE]
        assert [c[2]["direction"] for c in changes] == ["added", "added", "removed"]
        assert changes[0][2]["previous_value"] == 0.0
        assert changes[0][2]["current_value"] == 20.0
        statuses = [e[2]["status"] for e in emitted.events if e[0] == EventType.CART_STATUS]
        assert statuses == ["has_items", "empty"]
        assert aggregator.profile.commerce.peak_value == 40.0

    def test_failure_is_survived(self, context, emitted):
        poller = CartPoller(context, ScriptedCart(self.EMPTY, SinkUnavailableError("down"), self.ONE))

        async def scenario():
            for _ in range(3):
                await poller.poll()

        asyncio.run(scenario())

        assert poller.failures == 1
        assert poller.polls == 2
        assert EventType.CART_CHANGE in emitted.types()

    def test_unreadable_payload_counts_as_failure(self, context):
        poller = CartPoller(context, ScriptedCart({"total_price": "n/a", "items": []}))
        asyncio.run(poller.poll())
        assert poller.failures == 1
        assert poller.first_status is None

    def test_overlapping_poll_skipped(self, context):
        class SlowCart:
            def __init__(self):
                self.release = asyncio.Event()
                self.calls = 0

            async def fetch_cart(self):
                self.calls += 1
                await self.release.wait()
                return {"total_price": 0, "items": []}

        async def scenario():
            source = SlowCart()
            poller = CartPoller(context, source)
            first = asyncio.create_task(poller.poll())
            await asyncio.sleep(0)
            await poller.poll()
            source.release.set()
            await first
            return poller, source

        poller, source = asyncio.run(scenario())
        assert source.calls == 1
        assert poller.skipped == 1
        assert poller.polls == 1
