# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the contracts of the external collaborators
(ports-and-adapters architecture).

Concrete adapters live in ``shopsignal.infrastructure``; tests use in-memory
adapters or mocks.
"""

from shopsignal.base.providers import CartSource, ConsentSource, EnrichmentProvider
from shopsignal.base.sinks import EventSink
from shopsignal.base.storage import KeyValueStore

__all__ = [
    "CartSource",
    "ConsentSource",
    "EnrichmentProvider",
    "EventSink",
    "KeyValueStore",
]
