# ==============================================================================
# Core Domain Layer
# ==============================================================================
"""
Pure domain logic with no I/O: models, the behavior profile, the aggregator,
scoring, element classification and context builders.
"""

from shopsignal.core.aggregator import BehaviorAggregator, classify_pointer_pattern
from shopsignal.core.elements import classify_element, element_key, is_interactive
from shopsignal.core.models import (
    CartChange,
    CartDirection,
    CartItem,
    CartSnapshot,
    ClickSample,
    DeliveryState,
    EnrichmentRecord,
    EventType,
    GeoRecord,
    HoverPhase,
    HoverSample,
    IdleTick,
    PointerSample,
    QueuedEvent,
    ScrollSample,
    SessionIdentity,
    TemporalContext,
    TimelineEvent,
    VisibilitySample,
    VisitorIdentity,
)
from shopsignal.core.page_context import PageContext, VisitorHistory, build_page_context
from shopsignal.core.profile import HOVER_CATEGORIES, BehaviorProfile
from shopsignal.core.scoring import (
    BehaviorFlags,
    EngagementLevel,
    derive_flags,
    engagement_level,
    engagement_score,
)
from shopsignal.core.temporal import build_temporal_context

__all__ = [
    "BehaviorAggregator",
    "BehaviorFlags",
    "BehaviorProfile",
    "CartChange",
    "CartDirection",
    "CartItem",
    "CartSnapshot",
    "ClickSample",
    "DeliveryState",
    "EngagementLevel",
    "EnrichmentRecord",
    "EventType",
    "GeoRecord",
    "HOVER_CATEGORIES",
    "HoverPhase",
    "HoverSample",
    "IdleTick",
    "PageContext",
    "PointerSample",
    "QueuedEvent",
    "ScrollSample",
    "SessionIdentity",
    "TemporalContext",
    "TimelineEvent",
    "VisibilitySample",
    "VisitorHistory",
    "VisitorIdentity",
    "build_page_context",
    "build_temporal_context",
    "classify_element",
    "classify_pointer_pattern",
    "derive_flags",
    "element_key",
    "engagement_level",
    "engagement_score",
    "is_interactive",
]
