# ==============================================================================
# Signal Collectors
# ==============================================================================
"""
Collectors turn raw page signals into normalized samples for the aggregator.

Raw signals are plain dicts with a ``type`` key (``scroll``, ``mousemove``,
``click``, ``mouseover``/``mouseout``, ``visibilitychange``, ``keydown``,
``touchstart``, ``focusin``, ``copy``, ``paste``, ``page_view``). A malformed
or unrecognized signal yields nothing; it is logged at debug level and never
raised to the caller.

Collectors share one CollectorContext, owned by the session controller. They
update the aggregator synchronously and append discrete timeline events
through ``context.emit``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from shopsignal.base.providers import CartSource
from shopsignal.core.aggregator import BehaviorAggregator
from shopsignal.core.elements import classify_element, element_key, is_interactive
from shopsignal.core.models import (
    CartItem,
    CartSnapshot,
    ClickSample,
    EventType,
    HoverPhase,
    HoverSample,
    PointerSample,
    ScrollSample,
    VisibilitySample,
)
from shopsignal.utils.clock import Clock
from shopsignal.utils.rate_limiter import TokenBucketRateLimiter
from shopsignal.utils.timers import PeriodicTask

logger = logging.getLogger(__name__)

EmitFn = Callable[[EventType, str, dict, int], None]

FORM_FIELD_TAGS = {"input", "select", "textarea"}

# Errors a malformed raw signal can raise while being normalized
MALFORMED_SIGNAL_ERRORS = (KeyError, TypeError, ValueError, ValidationError)


@dataclass
class CollectorContext:
    """
    Session-scoped state shared by every collector.

    Attributes:
        aggregator: Reducer owning the behavior profile
        emit: Appends a timeline event ``(event_type, message, metadata, t)``
        clock: Current time in Unix ms, for signals without a timestamp
    """

    aggregator: BehaviorAggregator
    emit: EmitFn
    clock: Clock


def _timestamp(raw: dict, context: CollectorContext) -> int:
    t = raw.get("t")
    return int(t) if t is not None else context.clock()


class Collector(ABC):
    """Base class: one collector per family of raw signal types."""

    signal_types: tuple[str, ...] = ()

    def __init__(self, context: CollectorContext):
        self.context = context
        self.handled = 0

    @property
    def aggregator(self) -> BehaviorAggregator:
        return self.context.aggregator

    @abstractmethod
    def handle(self, raw: dict) -> None:
        """Normalize one raw signal and fold it in."""
        raise NotImplementedError

    def start(self) -> None:
        """Start any timers. Most collectors have none."""

    def stop(self) -> None:
        """Cancel any timers and drop in-flight work."""


# ==============================================================================
# High-frequency inputs
# ==============================================================================


class ScrollCollector(Collector):
    """
    Scroll position, rate-capped.

    Samples dropped by the limiter still count as activity.
    """

    signal_types = ("scroll",)

    def __init__(self, context: CollectorContext, max_hz: float = 10.0):
        super().__init__(context)
        self.limiter = TokenBucketRateLimiter(rate=max_hz)

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        if not self.limiter.try_acquire(t):
            self.aggregator.on_activity(t)
            return

        doc_height = raw.get("doc_height")
        if doc_height is None:
            doc_height = float(raw["scroll_height"]) - float(raw.get("viewport_height", 0))
        sample = ScrollSample(
            scroll_top=raw.get("scroll_top", raw.get("scroll_y")), doc_height=doc_height, t=t
        )
        for milestone in self.aggregator.on_scroll(sample):
            self.context.emit(
                EventType.SCROLL_MILESTONE,
                f"Scrolled {milestone}% of page",
                {"depth_percent": milestone},
                t,
            )


class PointerCollector(Collector):
    """Pointer movement, rate-capped."""

    signal_types = ("mousemove", "pointermove")

    def __init__(self, context: CollectorContext, max_hz: float = 20.0):
        super().__init__(context)
        self.limiter = TokenBucketRateLimiter(rate=max_hz)

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        if not self.limiter.try_acquire(t):
            self.aggregator.on_activity(t)
            return
        self.aggregator.on_pointer(PointerSample(x=raw["x"], y=raw["y"], t=t))


# ==============================================================================
# Discrete inputs
# ==============================================================================


class ClickCollector(Collector):
    signal_types = ("click",)

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        target = raw.get("target")
        sample = ClickSample(
            x=raw.get("x", 0),
            y=raw.get("y", 0),
            t=t,
            category=classify_element(target),
            interactive=is_interactive(target),
            element_key=element_key(target),
        )
        rage = self.aggregator.on_click(sample)

        metadata = {
            "x": sample.x,
            "y": sample.y,
            "category": sample.category,
            "interactive": sample.interactive,
            "element": sample.element_key,
        }
        label = sample.category or "element"
        self.context.emit(EventType.CLICK, f"Clicked {label}", metadata, t)
        if rage:
            self.context.emit(EventType.RAGE_CLICK, f"Rage click on {label}", metadata, t)


class HoverCollector(Collector):
    """Pointer enter/leave over classified elements. Unclassified targets are ignored."""

    signal_types = (
        "mouseover",
        "mouseout",
        "mouseenter",
        "mouseleave",
        "hover_enter",
        "hover_leave",
    )
    enter_types = ("mouseover", "mouseenter", "hover_enter")

    def handle(self, raw: dict) -> None:
        target = raw.get("target")
        category = classify_element(target)
        key = element_key(target)
        if category is None or key is None:
            return
        phase = HoverPhase.ENTER if raw["type"] in self.enter_types else HoverPhase.LEAVE
        self.aggregator.on_hover(
            HoverSample(element_key=key, category=category, phase=phase, t=_timestamp(raw, self.context))
        )


class VisibilityCollector(Collector):
    signal_types = ("visibilitychange",)

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        sample = VisibilitySample(state=raw["state"], t=t)
        self.aggregator.on_visibility(sample)
        self.context.emit(
            EventType.VISIBILITY_CHANGE, f"Page {sample.state}", {"state": sample.state}, t
        )


class FormCollector(Collector):
    """First interaction per form, plus clipboard activity."""

    signal_types = ("focusin", "copy", "paste")

    @staticmethod
    def form_key(raw: dict) -> Optional[str]:
        if raw.get("form"):
            return str(raw["form"])
        target = raw.get("target")
        if not isinstance(target, dict):
            return None
        for el in target.get("ancestors") or []:
            if isinstance(el, dict) and str(el.get("tag", "")).lower() == "form":
                attrs = el.get("attributes") or {}
                return str(el.get("id") or attrs.get("action") or "form")
        return None

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        kind = raw["type"]
        if kind == "copy":
            self.aggregator.on_copy(t)
            return
        if kind == "paste":
            self.aggregator.on_paste(t)
            return

        target = raw.get("target")
        if not isinstance(target, dict) or str(target.get("tag", "")).lower() not in FORM_FIELD_TAGS:
            self.aggregator.on_activity(t)
            return
        key = self.form_key(raw)
        if key is None:
            self.aggregator.on_activity(t)
            return
        if self.aggregator.on_form_start(key, t):
            self.context.emit(EventType.FORM_START, f"Started form {key}", {"form": key}, t)


class ActivityCollector(Collector):
    """
    Keyboard and touch input, plus the idle/engaged accounting tick.

    The tick runs every ``tick_ms`` while started.
    """

    signal_types = ("keydown", "touchstart", "wheel")

    def __init__(self, context: CollectorContext, tick_ms: int = 1000):
        super().__init__(context)
        self._ticker = PeriodicTask("idle-tick", tick_ms / 1000.0, self.tick)

    def handle(self, raw: dict) -> None:
        self.aggregator.on_activity(_timestamp(raw, self.context))

    def tick(self) -> None:
        self.aggregator.on_idle_tick(self.context.clock())

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.cancel()


class PageViewCollector(Collector):
    signal_types = ("page_view",)

    def handle(self, raw: dict) -> None:
        t = _timestamp(raw, self.context)
        path = str(raw.get("path") or "")
        if not path:
            return
        self.aggregator.on_page_view(path)
        metadata = {"path": path}
        if raw.get("title"):
            metadata["title"] = raw["title"]
        self.context.emit(EventType.PAGE_VIEW, f"Viewed {path}", metadata, t)


# ==============================================================================
# Cart polling
# ==============================================================================


def _minor_to_major(value: Any) -> float:
    return round(float(value or 0) / 100.0, 2)


def normalize_cart(payload: dict, t: int) -> CartSnapshot:
    """
    Build a CartSnapshot from a storefront cart payload.

    Shopify-style payloads (``total_price`` and line ``price`` in minor units)
    are converted to major units. Payloads carrying ``total_value`` are taken
    as already in major units.
    """
    minor_units = "total_price" in payload
    items = []
    for line in payload.get("items") or []:
        item_id = line.get("id") or line.get("variant_id") or line.get("key")
        if item_id is None:
            continue
        price = line.get("price", 0)
        items.append(
            CartItem(
                id=str(item_id),
                quantity=int(line.get("quantity") or 0),
                product_title=line.get("product_title") or line.get("title"),
                price=_minor_to_major(price) if minor_units else float(price or 0),
            )
        )
    if minor_units:
        total = _minor_to_major(payload["total_price"])
    else:
        total = float(payload.get("total_value") or 0)
    return CartSnapshot(items=items, total_value=total, t=t)


class CartPoller:
    """
    Polls the cart source and emits cart events on change.

    At most one poll is in flight; a tick that finds the previous poll still
    running is skipped. A failed poll is logged and skipped.
    """

    def __init__(
        self,
        context: CollectorContext,
        source: CartSource,
        interval_seconds: float = 15.0,
        on_baseline: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            context: Shared collector context
            source: Cart endpoint
            interval_seconds: Poll cadence
            on_baseline: Called with the cart status of the first successful poll
        """
        self.context = context
        self.source = source
        self._timer = PeriodicTask("cart-poll", interval_seconds, self.poll)
        self._initial: Optional[asyncio.Task] = None
        self._in_flight = False
        self.polls = 0
        self.skipped = 0
        self.failures = 0
        self.first_status: Optional[str] = None
        self._on_baseline = on_baseline

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def poll(self) -> None:
        """Fetch the cart once and fold it into the profile."""
        if self._in_flight:
            self.skipped += 1
            logger.debug("Cart poll skipped; previous poll still in flight")
            return

        self._in_flight = True
        try:
            payload = await self.source.fetch_cart()
        except Exception as e:
            # Transport errors vary by source; the next tick retries
            self.failures += 1
            logger.warning("Cart poll failed: %s", e)
            return
        finally:
            self._in_flight = False

        self.polls += 1
        try:
            snapshot = normalize_cart(payload, self.context.clock())
        except (*MALFORMED_SIGNAL_ERRORS, AttributeError) as e:
            self.failures += 1
            logger.warning("Unreadable cart payload: %s", e)
            return

        if self.first_status is None:
            self.first_status = snapshot.status
            if self._on_baseline is not None:
                self._on_baseline(snapshot.status)

        change = self.context.aggregator.on_cart(snapshot)
        if change is None:
            return

        self.context.emit(
            EventType.CART_CHANGE,
            f"Cart {change.direction.value}: {change.previous_value:.2f} -> {change.current_value:.2f}",
            {
                "direction": change.direction.value,
                "previous_value": change.previous_value,
                "current_value": change.current_value,
                "quantity_delta": change.quantity_delta,
            },
            change.t,
        )
        if change.status_changed:
            self.context.emit(
                EventType.CART_STATUS,
                f"Cart is now {change.status}",
                {"status": change.status, "previous_status": change.previous_status},
                change.t,
            )

    def start(self) -> None:
        """Take the baseline poll now, then poll on the interval."""
        loop = asyncio.get_running_loop()
        self._initial = loop.create_task(self.poll(), name="cart-poll-initial")
        self._timer.start()

    def stop(self) -> None:
        self._timer.cancel()
        if self._initial is not None and not self._initial.done():
            self._initial.cancel()
        self._initial = None


# ==============================================================================
# Routing
# ==============================================================================


class SignalRouter:
    """
    Routes raw signals to the collector registered for their ``type``.

    Usage:
        router = SignalRouter([ScrollCollector(ctx), ClickCollector(ctx)])
        router.dispatch({"type": "click", "x": 10, "y": 20, "t": now})
    """

    def __init__(self, collectors: list[Collector]):
        self.collectors = collectors
        self._routes: dict[str, Collector] = {}
        for collector in collectors:
            for signal_type in collector.signal_types:
                self._routes[signal_type] = collector
        self.ignored = 0

    def dispatch(self, raw: Any) -> bool:
        """
        Hand one raw signal to its collector.

        Returns:
            True if a collector accepted it, False if it was ignored
        """
        if not isinstance(raw, dict):
            self.ignored += 1
            return False
        collector = self._routes.get(raw.get("type"))
        if collector is None:
            self.ignored += 1
            logger.debug("No collector for signal type %r", raw.get("type"))
            return False
        try:
            collector.handle(raw)
        except MALFORMED_SIGNAL_ERRORS as e:
            self.ignored += 1
            logger.debug("Malformed %s signal dropped: %s", raw.get("type"), e)
            return False
        collector.handled += 1
        return True

    def start(self) -> None:
        for collector in self.collectors:
            collector.start()

    def stop(self) -> None:
        for collector in self.collectors:
            collector.stop()


def build_collectors(
    context: CollectorContext,
    pointer_max_hz: float = 20.0,
    scroll_max_hz: float = 10.0,
    idle_tick_ms: int = 1000,
) -> SignalRouter:
    """Create the standard collector set."""
    return SignalRouter(
        [
            ScrollCollector(context, max_hz=scroll_max_hz),
            PointerCollector(context, max_hz=pointer_max_hz),
            ClickCollector(context),
            HoverCollector(context),
            VisibilityCollector(context),
            FormCollector(context),
            ActivityCollector(context, tick_ms=idle_tick_ms),
            PageViewCollector(context),
        ]
    )
