# ==============================================================================
# Session Enrichment
# ==============================================================================
"""
Build the enrichment record for a session start.

The geolocation lookup may fail or be disabled; the temporal record is always
produced, using the provider's timezone when known and the page-reported UTC
offset otherwise.
"""

import logging
from typing import Optional

from shopsignal.base.providers import EnrichmentProvider
from shopsignal.core.models import EnrichmentRecord, GeoRecord
from shopsignal.core.temporal import build_temporal_context, resolve_timezone

logger = logging.getLogger(__name__)


async def enrich(
    provider: Optional[EnrichmentProvider],
    now: int,
    utc_offset_minutes: Optional[int] = None,
) -> EnrichmentRecord:
    """
    Look up geolocation and derive the temporal record.

    Args:
        provider: Geolocation provider, or None when enrichment is disabled
        now: Session start time (Unix ms)
        utc_offset_minutes: Offset reported by the page, used without geo data

    Returns:
        EnrichmentRecord; ``geo`` is None when the lookup failed
    """
    geo: Optional[GeoRecord] = None
    if provider is not None:
        try:
            geo = await provider.lookup()
        except Exception as e:
            # Any provider failure degrades to temporal-only enrichment
            logger.warning("Enrichment lookup failed: %s", e)

    tz = resolve_timezone(geo.timezone if geo else None, utc_offset_minutes)
    temporal = build_temporal_context(now, tz, geo.latitude if geo else None)
    return EnrichmentRecord(geo=geo, temporal=temporal)
