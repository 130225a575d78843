# ==============================================================================
# External Provider Abstract Base Classes
# ==============================================================================
"""
Interfaces for the opaque collaborators the engine consumes:

- ConsentSource: boolean consent with query, push-update and widget-event paths
- CartSource: pollable storefront cart
- EnrichmentProvider: geolocation lookup at session start
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Optional

from shopsignal.core.models import GeoRecord

ConsentListener = Callable[[bool], None]
Unsubscribe = Callable[[], None]


def _noop() -> None:
    return None


class ConsentSource(ABC):
    """
    Boolean consent reported by a consent-management provider.

    ``subscribe_updates`` is the push-style stream; ``subscribe_widget`` is
    the event emitted by a consent banner. Sources that have no widget event
    keep the default, which never fires.
    """

    @abstractmethod
    def is_granted(self) -> bool:
        """Current consent state."""
        ...

    @abstractmethod
    def subscribe_updates(self, listener: ConsentListener) -> Unsubscribe:
        """
        Register ``listener`` for pushed consent updates.

        Returns:
            Callable that removes the listener
        """
        ...

    def subscribe_widget(self, listener: ConsentListener) -> Unsubscribe:
        """Register ``listener`` for consent-widget events."""
        return _noop


class CartSource(ABC):
    """Storefront cart endpoint."""

    @abstractmethod
    async def fetch_cart(self) -> dict:
        """
        Fetch the current cart.

        Returns:
            Dict shaped like ``{"items": [{"id", "quantity", "product_title",
            "price"}], "total_price": ...}``

        Raises:
            Any exception on transport failure; callers skip the poll.
        """
        ...


class EnrichmentProvider(ABC):
    """Geolocation lookup for the visitor."""

    @abstractmethod
    async def lookup(self) -> Optional[GeoRecord]:
        """
        Look up the visitor's location.

        Returns:
            GeoRecord, or None when the provider has no answer

        Raises:
            Any exception on transport failure.
        """
        ...
