# ==============================================================================
# Tests for Behavior Flags and Engagement Score
# ==============================================================================
"""
Unit tests for derive_flags, engagement_score and engagement_level.
"""

import pytest

from shopsignal.core.profile import BehaviorProfile, HoverSummary
from shopsignal.core.scoring import (
    EngagementLevel,
    derive_flags,
    engagement_level,
    engagement_score,
)


def profile(**changes) -> BehaviorProfile:
    p = BehaviorProfile()
    for path, value in changes.items():
        section, field = path.split("__")
        setattr(getattr(p, section), field, value)
    return p


def hovers(count: int, each_ms: int) -> HoverSummary:
    summary = HoverSummary()
    for _ in range(count):
        summary.add(each_ms)
    return summary


# ==============================================================================
# Flags
# ==============================================================================


class TestFlags:
    """Tests for derived behavior flags."""

    def test_empty_profile_has_no_flags(self):
        flags = derive_flags(BehaviorProfile())
        assert not any(flags.model_dump().values())

    def test_frustrated_after_rage_click(self):
        assert derive_flags(profile(pointer__rage_clicks=1)).is_frustrated

    def test_purchase_intent_from_long_add_to_cart_hover(self):
        p = BehaviorProfile()
        p.pointer.hovers["add_to_cart"] = hovers(1, 2500)
        assert derive_flags(p).shows_purchase_intent

    def test_purchase_intent_from_cart_add(self):
        assert derive_flags(profile(commerce__add_events=1)).shows_purchase_intent

    def test_short_add_to_cart_hover_is_not_intent(self):
        p = BehaviorProfile()
        p.pointer.hovers["add_to_cart"] = hovers(3, 2000)
        assert not derive_flags(p).shows_purchase_intent

    def test_price_sensitive_by_count(self):
        p = BehaviorProfile()
        p.pointer.hovers["price"] = hovers(4, 100)
        assert derive_flags(p).is_price_sensitive

    def test_price_sensitive_by_total_time(self):
        p = BehaviorProfile()
        p.pointer.hovers["price"] = hovers(2, 3000)
        assert derive_flags(p).is_price_sensitive

    def test_research_mode_from_copy(self):
        assert derive_flags(profile(interactions__copies=1)).is_research_mode

    def test_research_mode_from_reading(self):
        assert derive_flags(profile(scroll__reading_time_ms=30_001)).is_research_mode

    def test_comparison_shopping(self):
        p = BehaviorProfile()
        p.pointer.hovers["product_image"] = hovers(6, 500)
        assert derive_flags(p).is_comparison_shopping


# ==============================================================================
# Score
# ==============================================================================


class TestEngagementScore:
    """Tests for the weighted engagement score."""

    def test_time_and_clicks(self):
        """35s engaged and 6 clicks, nothing else, scores 20 + 10."""
        p = profile(attention__engaged_time_ms=35_000, interactions__clicks=6)
        assert engagement_score(p) == 30

    def test_pure_function_of_counters(self):
        a = profile(attention__engaged_time_ms=35_000, scroll__max_depth_percent=90)
        b = profile(attention__engaged_time_ms=35_000, scroll__max_depth_percent=90)
        assert engagement_score(a) == engagement_score(b)

    def test_thresholds_are_strict(self):
        p = profile(attention__engaged_time_ms=30_000, interactions__clicks=5)
        assert engagement_score(p) == 0

    def test_depth_points_stack(self):
        assert engagement_score(profile(scroll__max_depth_percent=60)) == 10
        assert engagement_score(profile(scroll__max_depth_percent=85)) == 20

    def test_rage_click_applies_both_penalties(self):
        p = profile(
            attention__engaged_time_ms=35_000,
            interactions__clicks=6,
            commerce__current_value=50.0,
            pointer__rage_clicks=1,
        )
        # 20 + 10 + 10 - 15 - 10
        assert engagement_score(p) == 15

    def test_clamped_at_zero(self):
        assert engagement_score(profile(pointer__rage_clicks=2)) == 0

    def test_clamped_at_100(self):
        p = profile(
            attention__engaged_time_ms=60_000,
            scroll__reading_time_ms=20_000,
            interactions__clicks=10,
            interactions__hovers=20,
            scroll__max_depth_percent=100,
            commerce__add_events=1,
            commerce__current_value=80.0,
        )
        assert engagement_score(p) == 100


class TestEngagementLevel:
    """Tests for score bucketing."""

    @pytest.mark.parametrize(
        "score,level",
        [
            (0, EngagementLevel.LOW),
            (29, EngagementLevel.LOW),
            (30, EngagementLevel.MEDIUM),
            (59, EngagementLevel.MEDIUM),
            (60, EngagementLevel.HIGH),
            (100, EngagementLevel.HIGH),
        ],
    )
    def test_buckets(self, score, level):
        assert engagement_level(score) is level
