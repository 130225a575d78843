# ==============================================================================
# Behavior Aggregator - Pure Domain Logic
# ==============================================================================
"""
Stateful reducer turning collector samples into the behavior profile.

This module contains the domain logic for behavior aggregation:
- Scroll depth, distance and reading/skimming/searching classification
- Pointer distance, velocity window and acceleration events
- Rage-click and dead-click detection
- Hover-time accounting per tracked element category
- Idle/engaged time accounting
- Cart change detection from periodic cart snapshots

Every update is O(1) amortized: rolling windows are bounded deques and the
profile only holds counters, sums and maxima. Nothing here does I/O, so the
same aggregator can be driven by live collectors, a replay, or a unit test.

All timestamps are Unix milliseconds taken from the samples themselves.
"""

import logging
from collections import deque
from math import hypot
from typing import Optional

from shopsignal.core.models import (
    CartChange,
    CartDirection,
    CartSnapshot,
    ClickSample,
    HoverPhase,
    HoverSample,
    PointerSample,
    ScrollSample,
    VisibilitySample,
)
from shopsignal.core.profile import HOVER_CATEGORIES, BehaviorProfile, HoverSummary
from shopsignal.core.scoring import derive_flags, engagement_level, engagement_score

logger = logging.getLogger(__name__)

# Scroll classification (velocities in px/s)
SCROLL_READING_VELOCITY = 100.0
SCROLL_SKIMMING_VELOCITY = 1000.0
SCROLL_SEARCH_WINDOW = 10  # samples
SCROLL_SEARCH_CHANGES = 2  # searching once direction changes in the window exceed this
SCROLL_MAX_GAP_MS = 2000  # longer gaps are not attributed to any bucket
SCROLL_MILESTONES = (25, 50, 75, 100)

# Pointer (velocities in px/ms)
POINTER_VELOCITY_WINDOW = 20
POINTER_ACCELERATION_THRESHOLD = 0.05  # px/ms^2
POINTER_HESITANT_VELOCITY = 0.1
POINTER_ERRATIC_RATIO = 0.3

# Rage clicks
RAGE_CLICK_WINDOW_MS = 1000
RAGE_CLICK_RADIUS_PX = 50.0
RAGE_CLICK_THRESHOLD = 3

# Bounds on per-session bookkeeping
MAX_OPEN_HOVERS = 50
MAX_TRACKED_FORMS = 100
MAX_VIEWED_PAGES = 50

DEFAULT_IDLE_THRESHOLD_MS = 5000


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def classify_pointer_pattern(velocities: list[float], acceleration_flags: list[bool]) -> str:
    """
    Classify recent pointer movement.

    Args:
        velocities: Recent pointer velocities (px/ms), oldest first
        acceleration_flags: Per-sample acceleration markers for the same window

    Returns:
        "idle" (no movement), "hesitant" (slow), "erratic" (frequent sharp
        speed changes) or "directed"
    """
    if not velocities:
        return "idle"
    avg = sum(velocities) / len(velocities)
    if avg < POINTER_HESITANT_VELOCITY:
        return "hesitant"
    if acceleration_flags and sum(acceleration_flags) / len(acceleration_flags) > POINTER_ERRATIC_RATIO:
        return "erratic"
    return "directed"


class BehaviorAggregator:
    """
    Reducer over a single BehaviorProfile.

    One update method per sample type. Callers run on a single event loop, so
    there is no locking; each method is short and never blocks.

    Usage:
        aggregator = BehaviorAggregator()
        aggregator.start(now)
        aggregator.on_scroll(ScrollSample(scroll_top=400, doc_height=2000, t=now + 100))
        snapshot = aggregator.snapshot(now + 1000)
    """

    def __init__(self, idle_threshold_ms: int = DEFAULT_IDLE_THRESHOLD_MS):
        """
        Initialize the aggregator.

        Args:
            idle_threshold_ms: No qualifying input for this long counts as idle.
        """
        self.idle_threshold_ms = idle_threshold_ms
        self.profile = BehaviorProfile()
        self.start(0)

    # ==========================================================================
    # Session boundary
    # ==========================================================================

    def start(self, now: int) -> None:
        """Reset the profile and all rolling state for a session starting at ``now``."""
        self.profile.reset()
        self.started_at = now
        self._last_tick_at = now
        self._last_activity_at = now

        self._last_scroll: Optional[ScrollSample] = None
        self._scroll_direction = 0
        self._direction_window: deque[bool] = deque(maxlen=SCROLL_SEARCH_WINDOW)

        self._last_pointer: Optional[PointerSample] = None
        self._last_velocity: Optional[float] = None
        self._velocity_window: deque[float] = deque(maxlen=POINTER_VELOCITY_WINDOW)
        self._acceleration_window: deque[bool] = deque(maxlen=POINTER_VELOCITY_WINDOW)

        self._last_click: Optional[ClickSample] = None
        self._same_area_clicks = 0

        self._open_hovers: dict[tuple[str, str], int] = {}
        self._forms_started: set[str] = set()

        self._cart_fingerprint: Optional[str] = None
        self._cart_quantity = 0

    # ==========================================================================
    # Scroll
    # ==========================================================================

    def on_scroll(self, sample: ScrollSample) -> list[int]:
        """
        Fold a scroll sample into the profile.

        Max depth is ``round(100 * scroll_top / doc_height)`` clamped to
        [0, 100] and never decreases. Time since the previous sample goes to
        the reading bucket below 100 px/s, the skimming bucket above
        1000 px/s, and otherwise to searching when the direction changes in
        the recent window exceed ``SCROLL_SEARCH_CHANGES``.

        Args:
            sample: Normalized scroll sample

        Returns:
            Scroll milestones (25/50/75/100) reached for the first time
        """
        self.on_activity(sample.t)
        if sample.doc_height <= 0:
            return []

        scroll = self.profile.scroll
        self.profile.interactions.scrolls += 1

        depth = round(100 * sample.scroll_top / sample.doc_height)
        depth = max(0, min(100, depth))
        scroll.max_depth_percent = max(scroll.max_depth_percent, depth)

        previous = self._last_scroll
        if previous is not None:
            dy = sample.scroll_top - previous.scroll_top
            dt = sample.t - previous.t
            scroll.total_distance += abs(dy)

            direction = _sign(dy)
            changed = bool(direction and self._scroll_direction and direction != self._scroll_direction)
            if changed:
                scroll.direction_changes += 1
            self._direction_window.append(changed)
            if direction:
                self._scroll_direction = direction

            if 0 < dt <= SCROLL_MAX_GAP_MS:
                velocity = abs(dy) / dt * 1000.0
                if velocity < SCROLL_READING_VELOCITY:
                    scroll.reading_time_ms += dt
                elif velocity > SCROLL_SKIMMING_VELOCITY:
                    scroll.skimming_time_ms += dt
                elif sum(self._direction_window) > SCROLL_SEARCH_CHANGES:
                    scroll.searching_time_ms += dt
        self._last_scroll = sample

        reached = []
        for milestone in SCROLL_MILESTONES:
            if scroll.max_depth_percent >= milestone and milestone not in scroll.milestones_reached:
                scroll.milestones_reached.append(milestone)
                reached.append(milestone)
        return reached

    # ==========================================================================
    # Pointer
    # ==========================================================================

    def on_pointer(self, sample: PointerSample) -> None:
        """Fold a pointer-move sample: distance, velocity window, acceleration."""
        self.on_activity(sample.t)
        pointer = self.profile.pointer

        previous = self._last_pointer
        self._last_pointer = sample
        if previous is None:
            return

        distance = hypot(sample.x - previous.x, sample.y - previous.y)
        pointer.total_distance += distance

        dt = sample.t - previous.t
        if dt <= 0:
            return

        velocity = distance / dt
        self._velocity_window.append(velocity)
        pointer.peak_velocity = max(pointer.peak_velocity, velocity)

        accelerated = False
        if self._last_velocity is not None:
            accelerated = abs(velocity - self._last_velocity) / dt > POINTER_ACCELERATION_THRESHOLD
            if accelerated:
                pointer.acceleration_events += 1
        self._acceleration_window.append(accelerated)
        self._last_velocity = velocity

    @property
    def average_velocity(self) -> float:
        """Mean pointer velocity over the rolling window (px/ms)."""
        if not self._velocity_window:
            return 0.0
        return sum(self._velocity_window) / len(self._velocity_window)

    @property
    def pointer_pattern(self) -> str:
        return classify_pointer_pattern(
            list(self._velocity_window), list(self._acceleration_window)
        )

    # ==========================================================================
    # Clicks
    # ==========================================================================

    def on_click(self, sample: ClickSample) -> bool:
        """
        Fold a click: counters, rage-click run, dead-click check.

        A click within 1000ms and 50px of the previous click extends the
        current run; anything else starts a new run of 1. The run registers
        one rage click when it reaches exactly 3, so a 4th or 5th click in the
        same run adds nothing.

        Returns:
            True if this click completed a rage-click run
        """
        self.on_activity(sample.t)
        self.profile.interactions.clicks += 1
        pointer = self.profile.pointer

        previous = self._last_click
        if (
            previous is not None
            and 0 <= sample.t - previous.t <= RAGE_CLICK_WINDOW_MS
            and hypot(sample.x - previous.x, sample.y - previous.y) <= RAGE_CLICK_RADIUS_PX
        ):
            self._same_area_clicks += 1
        else:
            self._same_area_clicks = 1
        self._last_click = sample

        rage = self._same_area_clicks == RAGE_CLICK_THRESHOLD
        if rage:
            pointer.rage_clicks += 1
            logger.debug("Rage click at (%.0f, %.0f)", sample.x, sample.y)

        if sample.interactive is False:
            pointer.dead_clicks += 1

        return rage

    # ==========================================================================
    # Hovers
    # ==========================================================================

    def on_hover(self, sample: HoverSample) -> Optional[int]:
        """
        Track hover enter/leave for allow-listed categories.

        Returns:
            Hover duration in ms when a leave completes a tracked hover,
            otherwise None
        """
        if sample.category not in HOVER_CATEGORIES:
            return None

        key = (sample.element_key, sample.category)
        if sample.phase == HoverPhase.ENTER:
            if key not in self._open_hovers and len(self._open_hovers) >= MAX_OPEN_HOVERS:
                # Oldest dangling enter is forgotten
                self._open_hovers.pop(next(iter(self._open_hovers)))
            self._open_hovers.setdefault(key, sample.t)
            return None

        started = self._open_hovers.pop(key, None)
        if started is None:
            return None

        duration = max(0, sample.t - started)
        summary = self.profile.pointer.hovers.setdefault(sample.category, HoverSummary())
        summary.add(duration)
        self.profile.interactions.hovers += 1
        return duration

    # ==========================================================================
    # Attention
    # ==========================================================================

    def on_activity(self, t: int) -> None:
        """Record a qualifying input event (pointer, key, touch, scroll, click)."""
        if t > self._last_activity_at:
            self._last_activity_at = t

    def on_idle_tick(self, t: int) -> None:
        """
        Attribute wall time since the previous tick to idle or engaged.

        The whole interval is engaged if a qualifying input happened within
        the idle threshold, idle otherwise. Idle plus engaged always equals
        the time between session start and the latest tick.
        """
        elapsed = t - self._last_tick_at
        if elapsed <= 0:
            return
        attention = self.profile.attention
        if t - self._last_activity_at <= self.idle_threshold_ms:
            attention.engaged_time_ms += elapsed
        else:
            attention.idle_time_ms += elapsed
        self._last_tick_at = t

    def on_visibility(self, sample: VisibilitySample) -> None:
        if sample.state == "hidden":
            self.profile.attention.hidden_count += 1

    @property
    def accounted_ms(self) -> int:
        """Session time covered by idle/engaged accounting so far."""
        return self._last_tick_at - self.started_at

    def current_idle_ms(self, now: int) -> int:
        """Length of the current streak without qualifying input."""
        return max(0, now - self._last_activity_at)

    # ==========================================================================
    # Forms, clipboard, pages
    # ==========================================================================

    def on_form_start(self, form_key: str, t: int) -> bool:
        """Count the first interaction with a form. Returns True on first start."""
        self.on_activity(t)
        if form_key in self._forms_started:
            return False
        if len(self._forms_started) < MAX_TRACKED_FORMS:
            self._forms_started.add(form_key)
        self.profile.interactions.form_starts += 1
        return True

    def on_copy(self, t: int) -> None:
        self.on_activity(t)
        self.profile.interactions.copies += 1

    def on_paste(self, t: int) -> None:
        self.on_activity(t)
        self.profile.interactions.pastes += 1

    def on_page_view(self, path: str) -> bool:
        """Remember a viewed page path. Returns True if it is new for the session."""
        pages = self.profile.viewed_pages
        if not path or path in pages:
            return False
        if len(pages) >= MAX_VIEWED_PAGES:
            pages.pop(0)
        pages.append(path)
        return True

    # ==========================================================================
    # Cart
    # ==========================================================================

    def on_cart(self, snapshot: CartSnapshot) -> Optional[CartChange]:
        """
        Compare a cart poll with the previous one.

        Polls are deduplicated by the fingerprint of ``{item_id, quantity}``
        pairs: an unchanged cart produces nothing. The first poll of a session
        is the baseline and produces nothing either.

        Returns:
            The detected CartChange, or None
        """
        commerce = self.profile.commerce
        previous_value = commerce.current_value
        previous_status = commerce.cart_status or "empty"

        commerce.current_value = snapshot.total_value
        commerce.peak_value = max(commerce.peak_value, snapshot.total_value)
        commerce.cart_status = snapshot.status

        fingerprint = snapshot.fingerprint
        quantity = snapshot.total_quantity
        previous_fingerprint = self._cart_fingerprint
        previous_quantity = self._cart_quantity
        self._cart_fingerprint = fingerprint
        self._cart_quantity = quantity

        if previous_fingerprint is None or fingerprint == previous_fingerprint:
            return None

        delta = quantity - previous_quantity
        if delta > 0:
            direction = CartDirection.ADDED
            commerce.add_events += 1
        elif delta < 0:
            direction = CartDirection.REMOVED
            commerce.remove_events += 1
        else:
            direction = CartDirection.CHANGED
        commerce.last_change_direction = direction.value

        return CartChange(
            direction=direction,
            previous_value=previous_value,
            current_value=snapshot.total_value,
            quantity_delta=delta,
            status=snapshot.status,
            previous_status=previous_status,
            t=snapshot.t,
        )

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def snapshot(self, now: int) -> dict:
        """
        Profile plus derived values, ready for the sink.

        Flags, score and level are recomputed here on every call.
        """
        profile = self.profile
        flags = derive_flags(profile)
        score = engagement_score(profile)

        data = profile.model_dump()
        for category, summary in profile.pointer.hovers.items():
            data["pointer"]["hovers"][category]["avg_ms"] = round(summary.avg_ms, 1)
        data["pointer"]["average_velocity"] = round(self.average_velocity, 4)
        data["pointer"]["pattern"] = self.pointer_pattern
        data["attention"]["current_idle_ms"] = self.current_idle_ms(now)
        data["attention"]["session_elapsed_ms"] = max(0, now - self.started_at)
        data["flags"] = flags.model_dump()
        data["engagement_score"] = score
        data["engagement_level"] = engagement_level(score).value
        return data
