# ==============================================================================
# Storefront Telemetry Domain Models
# ==============================================================================
"""
Pydantic models for identities, collector samples and timeline events.

These models are used for:
- Normalized micro-events flowing from collectors into the aggregator
- Timeline events buffered by the dispatcher and shipped to the sink
- Enrichment records attached to the session at start

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

import hashlib
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    """Generate a random UUID string."""
    return str(uuid.uuid4())


# ==============================================================================
# Identity
# ==============================================================================


class VisitorIdentity(BaseModel):
    """Durable identity of a browser profile. Never mutated once created."""

    model_config = {"frozen": True}

    visitor_id: str = Field(..., description="Random UUID, persisted indefinitely")
    is_new: bool = Field(default=False, description="True if created on this page load")


class SessionIdentity(BaseModel):
    """
    Renewable session identity.

    Attributes:
        session_id: Random UUID for the session
        started_at: When the session was first created (Unix ms)
        last_touched_at: Last page load inside the session (Unix ms)
        is_new: True if this page load started the session
    """

    session_id: str
    started_at: int
    last_touched_at: int
    is_new: bool = False


# ==============================================================================
# Timeline Events
# ==============================================================================


class EventType(str, Enum):
    """Discrete, human-meaningful occurrences recorded on the timeline."""

    SESSION_START = "session_start"
    SESSION_END = "session_end"
    PAGE_VIEW = "page_view"
    SCROLL_MILESTONE = "scroll_milestone"
    CLICK = "click"
    RAGE_CLICK = "rage_click"
    FORM_START = "form_start"
    CART_CHANGE = "cart_change"
    CART_STATUS = "cart_status"
    VISIBILITY_CHANGE = "visibility_change"


class TimelineEvent(BaseModel):
    """
    An append-only record of a discrete occurrence.

    ``event_id`` is the unique identity the sink deduplicates on, so the same
    event delivered twice is stored once.
    """

    model_config = {"frozen": True}

    event_id: str = Field(default_factory=new_id)
    user_id: str
    session_id: str
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")
    event_type: EventType
    message: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> dict:
        """Serialize for the sink."""
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "event_type": self.event_type.value,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


class DeliveryState(str, Enum):
    """Where a queued event is in its delivery lifecycle."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED_REQUEUED = "failed_requeued"


class QueuedEvent(BaseModel):
    """A timeline event owned by the event queue until the sink acknowledges it."""

    event: TimelineEvent
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = 0


# ==============================================================================
# Collector Samples
# ==============================================================================


class ScrollSample(BaseModel):
    """Vertical scroll position. ``doc_height`` is the scrollable height."""

    scroll_top: float
    doc_height: float
    t: int


class PointerSample(BaseModel):
    """Pointer position in page pixels."""

    x: float
    y: float
    t: int


class ClickSample(BaseModel):
    """
    A click with its classified target.

    ``interactive`` is None when the click target could not be resolved; such
    clicks count as clicks but never as dead clicks.
    """

    x: float
    y: float
    t: int
    category: Optional[str] = None
    interactive: Optional[bool] = None
    element_key: Optional[str] = None


class HoverPhase(str, Enum):
    ENTER = "enter"
    LEAVE = "leave"


class HoverSample(BaseModel):
    """Pointer entering or leaving a classified element."""

    element_key: str
    category: str
    phase: HoverPhase
    t: int


class VisibilitySample(BaseModel):
    """Page visibility transition (``visible`` or ``hidden``)."""

    state: str
    t: int


class IdleTick(BaseModel):
    """Periodic accounting tick."""

    t: int


class CartItem(BaseModel):
    """One cart line as returned by the storefront cart endpoint."""

    id: str
    quantity: int = 0
    product_title: Optional[str] = None
    price: float = 0.0


class CartSnapshot(BaseModel):
    """
    Cart contents at poll time.

    ``total_value`` is in major currency units.
    """

    items: list[CartItem] = Field(default_factory=list)
    total_value: float = 0.0
    t: int

    @property
    def total_quantity(self) -> int:
        """Sum of line quantities."""
        return sum(item.quantity for item in self.items)

    @property
    def fingerprint(self) -> str:
        """Content hash of the ``{item_id, quantity}`` pairs, order-independent."""
        pairs = sorted((item.id, item.quantity) for item in self.items)
        payload = "|".join(f"{item_id}:{qty}" for item_id, qty in pairs)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    @property
    def status(self) -> str:
        """``has_items`` or ``empty``."""
        return "has_items" if self.items else "empty"


class CartDirection(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


class CartChange(BaseModel):
    """A detected difference between two consecutive cart snapshots."""

    direction: CartDirection
    previous_value: float
    current_value: float
    quantity_delta: int
    status: str
    previous_status: str
    t: int

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


# ==============================================================================
# Enrichment
# ==============================================================================


class GeoRecord(BaseModel):
    """Geographic enrichment; every field may be unknown."""

    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    timezone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class TemporalContext(BaseModel):
    """Local-time context; always computable without the network."""

    local_hour: int
    local_day: str
    part_of_day: str
    is_weekend: bool
    season: str


class EnrichmentRecord(BaseModel):
    """Result of session-start enrichment. ``geo`` is None when lookup failed."""

    geo: Optional[GeoRecord] = None
    temporal: TemporalContext
