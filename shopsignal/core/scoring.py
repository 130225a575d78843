# ==============================================================================
# Flags and Engagement Score
# ==============================================================================
"""
Pure functions deriving behavioral flags and the engagement score.

Both are recomputed from a BehaviorProfile whenever they are needed. They
are never stored on the profile, so two profiles with identical counters
always produce identical flags and scores.
"""

from enum import Enum

from pydantic import BaseModel

from shopsignal.core.profile import BehaviorProfile

# Flag thresholds
PURCHASE_INTENT_HOVER_MS = 2000
PRICE_HOVER_COUNT = 3
PRICE_HOVER_TOTAL_MS = 5000
RESEARCH_READING_MS = 30000
COMPARISON_IMAGE_HOVERS = 5

# (threshold, points) pairs for the engagement score
ENGAGED_TIME_MS = 30000
ENGAGED_TIME_POINTS = 20
READING_TIME_MS = 10000
READING_TIME_POINTS = 15
CLICKS_MIN = 5
CLICKS_POINTS = 10
HOVERS_MIN = 10
HOVERS_POINTS = 5
DEPTH_HALF = 50
DEPTH_HALF_POINTS = 10
DEPTH_DEEP = 80
DEPTH_DEEP_POINTS = 10
PURCHASE_INTENT_POINTS = 20
CART_VALUE_POINTS = 10
FRUSTRATED_PENALTY = 15
RAGE_CLICK_PENALTY = 10

HIGH_ENGAGEMENT = 60
MEDIUM_ENGAGEMENT = 30


class EngagementLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BehaviorFlags(BaseModel):
    """Derived booleans. Build with ``derive_flags``, never by hand."""

    model_config = {"frozen": True}

    is_frustrated: bool = False
    shows_purchase_intent: bool = False
    is_price_sensitive: bool = False
    is_research_mode: bool = False
    is_comparison_shopping: bool = False


def derive_flags(profile: BehaviorProfile) -> BehaviorFlags:
    """Compute every flag from the profile counters."""
    pointer = profile.pointer
    add_to_cart = pointer.hover("add_to_cart")
    price = pointer.hover("price")

    return BehaviorFlags(
        is_frustrated=pointer.rage_clicks > 0,
        shows_purchase_intent=(
            add_to_cart.max_ms > PURCHASE_INTENT_HOVER_MS or profile.commerce.add_events > 0
        ),
        is_price_sensitive=(
            price.count > PRICE_HOVER_COUNT or price.total_ms > PRICE_HOVER_TOTAL_MS
        ),
        is_research_mode=(
            profile.interactions.copies > 0
            or profile.scroll.reading_time_ms > RESEARCH_READING_MS
        ),
        is_comparison_shopping=pointer.hover("product_image").count > COMPARISON_IMAGE_HOVERS,
    )


def engagement_score(profile: BehaviorProfile) -> int:
    """
    Weighted sum over thresholded signals, clamped to [0, 100].

    Example:
        35s engaged and 6 clicks, nothing else: 20 + 10 = 30.
    """
    flags = derive_flags(profile)
    score = 0

    if profile.attention.engaged_time_ms > ENGAGED_TIME_MS:
        score += ENGAGED_TIME_POINTS
    if profile.scroll.reading_time_ms > READING_TIME_MS:
        score += READING_TIME_POINTS
    if profile.interactions.clicks > CLICKS_MIN:
        score += CLICKS_POINTS
    if profile.interactions.hovers > HOVERS_MIN:
        score += HOVERS_POINTS
    if profile.scroll.max_depth_percent > DEPTH_HALF:
        score += DEPTH_HALF_POINTS
    if profile.scroll.max_depth_percent > DEPTH_DEEP:
        score += DEPTH_DEEP_POINTS
    if flags.shows_purchase_intent:
        score += PURCHASE_INTENT_POINTS
    if profile.commerce.current_value > 0:
        score += CART_VALUE_POINTS
    if flags.is_frustrated:
        score -= FRUSTRATED_PENALTY
    if profile.pointer.rage_clicks > 0:
        score -= RAGE_CLICK_PENALTY

    return max(0, min(100, score))


def engagement_level(score: int) -> EngagementLevel:
    """Bucket a score into low / medium / high."""
    if score >= HIGH_ENGAGEMENT:
        return EngagementLevel.HIGH
    if score >= MEDIUM_ENGAGEMENT:
        return EngagementLevel.MEDIUM
    return EngagementLevel.LOW
