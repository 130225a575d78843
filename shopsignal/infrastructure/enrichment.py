# ==============================================================================
# HTTP Geolocation Provider
# ==============================================================================
"""
IP geolocation lookup used to enrich a session at start.

Includes light retry logic (3 attempts, ~3 seconds) for network resilience.
The response format follows ipapi.co; other providers with the same field
names work unchanged.
"""

import asyncio
import logging
from typing import Any, Optional

import requests

from shopsignal.base.providers import EnrichmentProvider
from shopsignal.core.models import GeoRecord
from shopsignal.utils.config import Settings, get_settings
from shopsignal.utils.retry import HTTP_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_geo_response(data: dict) -> Optional[GeoRecord]:
    """
    Map a geolocation response to a GeoRecord.

    Returns:
        GeoRecord, or None if the provider reported an error
    """
    if not isinstance(data, dict) or data.get("error"):
        return None
    return GeoRecord(
        country=data.get("country_name") or data.get("country"),
        region=data.get("region"),
        city=data.get("city"),
        postal_code=data.get("postal") or data.get("postal_code"),
        timezone=data.get("timezone"),
        latitude=_float_or_none(data.get("latitude")),
        longitude=_float_or_none(data.get("longitude")),
    )


class HttpEnrichmentProvider(EnrichmentProvider):
    """EnrichmentProvider calling a JSON geolocation endpoint."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._url = url or settings.enrichment.geo_url
        self._timeout = timeout if timeout is not None else settings.enrichment.timeout_seconds
        self._session = session or requests.Session()

    @retry_light(HTTP_RETRY_EXCEPTIONS, logger)
    def _get(self) -> dict:
        response = self._session.get(self._url, timeout=self._timeout)
        response.raise_for_status()
        return response.json()

    async def lookup(self) -> Optional[GeoRecord]:
        data = await asyncio.to_thread(self._get)
        return parse_geo_response(data)
