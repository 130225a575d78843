# ==============================================================================
# Tests for Temporal and Page Context
# ==============================================================================
"""
Unit tests for temporal enrichment helpers and the page context builder.
"""

from datetime import timezone

from shopsignal.core.page_context import VisitorHistory, build_page_context
from shopsignal.core.temporal import (
    build_temporal_context,
    part_of_day,
    resolve_timezone,
    season_for,
)

# Saturday 2024-07-06 14:30:00 UTC
SATURDAY_AFTERNOON = 1_720_276_200_000


# ==============================================================================
# Temporal
# ==============================================================================


class TestTemporal:
    """Tests for the temporal record."""

    def test_parts_of_day(self):
        assert part_of_day(5) == "morning"
        assert part_of_day(11) == "morning"
        assert part_of_day(12) == "afternoon"
        assert part_of_day(17) == "evening"
        assert part_of_day(21) == "night"
        assert part_of_day(2) == "night"

    def test_season_flips_south_of_equator(self):
        assert season_for(7) == "summer"
        assert season_for(7, latitude=-33.9) == "winter"
        assert season_for(1, latitude=51.5) == "winter"

    def test_utc_context(self):
        ctx = build_temporal_context(SATURDAY_AFTERNOON)
        assert ctx.local_hour == 14
        assert ctx.local_day == "saturday"
        assert ctx.part_of_day == "afternoon"
        assert ctx.is_weekend is True
        assert ctx.season == "summer"

    def test_offset_shifts_local_time(self):
        tz = resolve_timezone(None, utc_offset_minutes=-600)
        ctx = build_temporal_context(SATURDAY_AFTERNOON, tz)
        assert ctx.local_hour == 4
        assert ctx.part_of_day == "night"

    def test_unknown_timezone_falls_back(self):
        assert resolve_timezone("Not/AZone") == timezone.utc
        tz = resolve_timezone("Not/AZone", utc_offset_minutes=60)
        assert build_temporal_context(SATURDAY_AFTERNOON, tz).local_hour == 15


# ==============================================================================
# Page Context
# ==============================================================================


class TestPageContext:
    """Tests for build_page_context."""

    def test_utm_and_referrer(self):
        ctx = build_page_context(
            {
                "url": "https://shop.example/products/a?utm_source=mail&utm_medium=email&utm_campaign=sale",
                "referrer": "https://mail.example/",
            }
        )
        assert ctx.traffic.utm_source == "mail"
        assert ctx.traffic.utm_medium == "email"
        assert ctx.traffic.utm_campaign == "sale"
        assert ctx.traffic.utm_term is None
        assert ctx.traffic.referrer == "https://mail.example/"
        assert ctx.storefront.page_path == "/products/a"

    def test_mobile_user_agent(self):
        ctx = build_page_context({"user_agent": "Mozilla/5.0 (Linux; Android 14) Mobile"})
        assert ctx.device.device_type == "mobile"

    def test_desktop_default(self):
        assert build_page_context({}).device.device_type == "desktop"

    def test_product_tags_from_string(self):
        ctx = build_page_context({"product_tags": "linen, summer,"})
        assert ctx.storefront.product_tags == ["linen", "summer"]

    def test_currency_default(self):
        assert build_page_context({}, default_currency="EUR").storefront.currency == "EUR"
        assert build_page_context({"currency": "USD"}).storefront.currency == "USD"

    def test_bad_screen_size_ignored(self):
        ctx = build_page_context({"screen_width": "wide", "screen_height": "900"})
        assert ctx.device.screen_width is None
        assert ctx.device.screen_height == 900

    def test_history_attached(self):
        history = VisitorHistory(is_returning=True, pages_viewed_last_session=["/"])
        ctx = build_page_context({}, history=history)
        assert ctx.user_history.is_returning is True
        assert ctx.user_history.pages_viewed_last_session == ["/"]
