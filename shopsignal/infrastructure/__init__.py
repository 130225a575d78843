# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the ``shopsignal.base``
interfaces:
- storage/ - KeyValueStore adapters (in-memory, Valkey/Redis)
- sinks/ - EventSink adapters (in-memory, PostgreSQL)
- cart.py - HTTP cart endpoint
- enrichment.py - HTTP geolocation lookup
- consent.py - consent sources (static, push-queue adapter)
"""

from shopsignal.infrastructure.cart import HttpCartSource
from shopsignal.infrastructure.consent import ConsentPushAdapter, StaticConsentSource
from shopsignal.infrastructure.enrichment import HttpEnrichmentProvider, parse_geo_response
from shopsignal.infrastructure.sinks import (
    InMemoryEventSink,
    PostgreSQLEventSink,
    check_postgresql_connection,
)
from shopsignal.infrastructure.storage import (
    InMemoryStore,
    ValkeyStore,
    check_valkey_connection,
)

__all__ = [
    # Cart
    "HttpCartSource",
    # Consent
    "ConsentPushAdapter",
    "StaticConsentSource",
    # Enrichment
    "HttpEnrichmentProvider",
    "parse_geo_response",
    # Sinks
    "InMemoryEventSink",
    "PostgreSQLEventSink",
    "check_postgresql_connection",
    # Storage
    "InMemoryStore",
    "ValkeyStore",
    "check_valkey_connection",
]
