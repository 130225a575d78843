# ==============================================================================
# HTTP Cart Source
# ==============================================================================
"""
Polls the storefront's cart JSON endpoint (e.g. Shopify ``/cart.js``).

No retry here: a failed poll is simply skipped and the next poll interval
tries again.
"""

import asyncio
import logging

import requests

from shopsignal.base.providers import CartSource
from shopsignal.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5  # seconds


class HttpCartSource(CartSource):
    """CartSource backed by an HTTP GET returning cart JSON."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._url = url or settings.cart.url
        if not self._url:
            raise ValueError("Cart URL not configured (set CART_URL)")
        self._timeout = timeout if timeout is not None else settings.cart.timeout_seconds
        self._session = session or requests.Session()

    def _get(self) -> dict:
        response = self._session.get(
            self._url, timeout=self._timeout, headers={"Accept": "application/json"}
        )
        response.raise_for_status()
        return response.json()

    async def fetch_cart(self) -> dict:
        """Fetch the cart; raises requests exceptions on failure."""
        return await asyncio.to_thread(self._get)
