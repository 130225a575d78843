# ==============================================================================
# Backend Factory
# ==============================================================================
"""
Factory functions choosing storage, sink and provider implementations.

Uses STORAGE_BACKEND, SINK_BACKEND, CART_URL and ENRICHMENT_ENABLED (via
config) to decide which implementation to build.
"""

from typing import Optional

from shopsignal.base.providers import CartSource, ConsentSource, EnrichmentProvider
from shopsignal.base.sinks import EventSink
from shopsignal.base.storage import KeyValueStore
from shopsignal.engine.controller import SessionController
from shopsignal.engine.identity import IdentityStore
from shopsignal.utils.clock import Clock, now_ms
from shopsignal.utils.config import Settings, get_settings

DURABLE_NAMESPACE = "durable"
EPHEMERAL_NAMESPACE = "ephemeral"


def get_storage(namespace: str, settings: Settings | None = None) -> KeyValueStore:
    """
    Get a key-value store for ``namespace``.

    The ephemeral namespace expires after VALKEY_EPHEMERAL_TTL_HOURS on
    Valkey; the durable one never expires.

    Raises:
        ValueError: If an unknown backend is configured
    """
    settings = settings or get_settings()
    backend = settings.storage.backend

    match backend:
        case "memory":
            from shopsignal.infrastructure.storage.memory import InMemoryStore

            return InMemoryStore()
        case "valkey":
            from shopsignal.infrastructure.storage.valkey import ValkeyStore, get_valkey_client

            ttl = None
            if namespace == EPHEMERAL_NAMESPACE:
                ttl = settings.valkey.ephemeral_ttl_hours * 3600
            return ValkeyStore(
                namespace,
                client=get_valkey_client(settings.valkey.url),
                prefix=settings.valkey.key_prefix,
                ttl_seconds=ttl,
            )
        case _:
            raise ValueError(
                f"Unknown storage backend: '{backend}'.\nValid options are: memory, valkey"
            )


def get_identity_store(settings: Settings | None = None) -> IdentityStore:
    """IdentityStore over the configured durable and ephemeral namespaces."""
    settings = settings or get_settings()
    return IdentityStore(
        get_storage(DURABLE_NAMESPACE, settings),
        get_storage(EPHEMERAL_NAMESPACE, settings),
        idle_expiry_ms=settings.tracker.session_idle_expiry_ms,
    )


def get_sink(settings: Settings | None = None) -> EventSink:
    """
    Get the configured event sink.

    Raises:
        ValueError: If an unknown backend is configured
    """
    settings = settings or get_settings()
    backend = settings.sink.backend

    match backend:
        case "memory":
            from shopsignal.infrastructure.sinks.memory import InMemoryEventSink

            return InMemoryEventSink()
        case "postgresql":
            from shopsignal.infrastructure.sinks.postgresql import PostgreSQLEventSink

            return PostgreSQLEventSink(settings)
        case _:
            raise ValueError(
                f"Unknown sink backend: '{backend}'.\nValid options are: memory, postgresql"
            )


def get_cart_source(settings: Settings | None = None) -> Optional[CartSource]:
    """HTTP cart source, or None when CART_URL is unset."""
    settings = settings or get_settings()
    if not settings.cart.url:
        return None
    from shopsignal.infrastructure.cart import HttpCartSource

    return HttpCartSource(settings=settings)


def get_enrichment_provider(settings: Settings | None = None) -> Optional[EnrichmentProvider]:
    """Geolocation provider, or None when enrichment is disabled."""
    settings = settings or get_settings()
    if not settings.enrichment.enabled:
        return None
    from shopsignal.infrastructure.enrichment import HttpEnrichmentProvider

    return HttpEnrichmentProvider(settings=settings)


def build_controller(
    consent_source: ConsentSource,
    page: dict | None = None,
    settings: Settings | None = None,
    sink: EventSink | None = None,
    clock: Clock = now_ms,
) -> SessionController:
    """Wire a SessionController from configuration."""
    settings = settings or get_settings()
    return SessionController(
        consent_source,
        get_identity_store(settings),
        sink or get_sink(settings),
        page=page,
        cart_source=get_cart_source(settings),
        enrichment_provider=get_enrichment_provider(settings),
        settings=settings.tracker,
        clock=clock,
    )
