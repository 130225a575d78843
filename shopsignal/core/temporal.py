# ==============================================================================
# Temporal Context
# ==============================================================================
"""
Local-time context for a session: hour, weekday, part of day, season.

Always computable without the network, so a failed geolocation lookup still
yields a complete temporal record.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shopsignal.core.models import TemporalContext

NORTHERN_SEASONS = {
    12: "winter", 1: "winter", 2: "winter",
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "autumn", 10: "autumn", 11: "autumn",
}
OPPOSITE_SEASON = {"winter": "summer", "summer": "winter", "spring": "autumn", "autumn": "spring"}


def part_of_day(hour: int) -> str:
    """morning 5-11, afternoon 12-16, evening 17-20, night otherwise."""
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def season_for(month: int, latitude: Optional[float] = None) -> str:
    """Meteorological season; flipped for the southern hemisphere."""
    season = NORTHERN_SEASONS[month]
    if latitude is not None and latitude < 0:
        return OPPOSITE_SEASON[season]
    return season


def resolve_timezone(
    tz_name: Optional[str] = None, utc_offset_minutes: Optional[int] = None
) -> tzinfo:
    """
    Pick the best available timezone.

    An IANA name wins; otherwise a fixed offset (as reported by the page);
    otherwise UTC. Unknown names fall through rather than raising.
    """
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    if utc_offset_minutes is not None:
        return timezone(timedelta(minutes=utc_offset_minutes))
    return timezone.utc


def build_temporal_context(
    timestamp_ms: int,
    tz: Optional[tzinfo] = None,
    latitude: Optional[float] = None,
) -> TemporalContext:
    """Compute the temporal record for ``timestamp_ms`` in ``tz``."""
    local = datetime.fromtimestamp(timestamp_ms / 1000.0, tz=tz or timezone.utc)
    return TemporalContext(
        local_hour=local.hour,
        local_day=local.strftime("%A").lower(),
        part_of_day=part_of_day(local.hour),
        is_weekend=local.weekday() >= 5,
        season=season_for(local.month, latitude),
    )
