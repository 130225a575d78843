# ==============================================================================
# Tests for Configuration and Backend Factory
# ==============================================================================
"""
Unit tests for pydantic-settings configuration and the backend factory.

Tests cover:
- Environment prefixes per settings section
- Derived values (session idle expiry, connection URLs)
- Backend selection for storage, sink and providers
- Controller wiring from settings
"""

import pytest
from pydantic import ValidationError

from shopsignal.engine.controller import SessionController
from shopsignal.factory import (
    build_controller,
    get_cart_source,
    get_enrichment_provider,
    get_identity_store,
    get_sink,
    get_storage,
)
from shopsignal.infrastructure.cart import HttpCartSource
from shopsignal.infrastructure.consent import StaticConsentSource
from shopsignal.infrastructure.enrichment import HttpEnrichmentProvider
from shopsignal.infrastructure.sinks.memory import InMemoryEventSink
from shopsignal.infrastructure.sinks.postgresql import PostgreSQLEventSink
from shopsignal.infrastructure.storage.memory import InMemoryStore
from shopsignal.infrastructure.storage.valkey import ValkeyStore
from shopsignal.utils.config import (
    CartSettings,
    EnrichmentSettings,
    PostgresSettings,
    Settings,
    SinkSettings,
    StorageSettings,
    TrackerSettings,
    ValkeySettings,
)


# ==============================================================================
# Settings
# ==============================================================================


class TestSettings:
    """Tests for environment-driven settings."""

    def test_tracker_defaults(self):
        tracker = TrackerSettings()
        assert tracker.session_idle_expiry_minutes == 30
        assert tracker.session_idle_expiry_ms == 1_800_000
        assert tracker.idle_threshold_ms == 5000
        assert tracker.max_queue_size == 1000

    def test_tracker_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TRACKER_SESSION_IDLE_EXPIRY_MINUTES", "10")
        monkeypatch.setenv("TRACKER_FLUSH_INTERVAL_SECONDS", "2.5")
        tracker = TrackerSettings()
        assert tracker.session_idle_expiry_ms == 600_000
        assert tracker.flush_interval_seconds == 2.5

    def test_backend_choices_validated(self, monkeypatch):
        monkeypatch.setenv("SINK_BACKEND", "kafka")
        with pytest.raises(ValidationError):
            SinkSettings()

    def test_valkey_url(self):
        assert ValkeySettings(host="cache", port=6380, db=2).url == "redis://cache:6380/2"

    def test_valkey_url_with_ssl_and_password(self):
        settings = ValkeySettings(host="cache", password="pw", ssl=True)
        assert settings.url == "rediss://:pw@cache:6379/0"

    def test_postgres_connection_string(self):
        pg = PostgresSettings(host="db", user="app", password="pw", database="signals", sslmode="require")
        assert pg.connection_string == "postgresql://app:pw@db:5432/signals?sslmode=require"


# ==============================================================================
# Factory
# ==============================================================================


class TestFactory:
    """Tests for backend selection."""

    def test_memory_storage(self):
        settings = Settings(storage=StorageSettings(backend="memory"))
        assert isinstance(get_storage("durable", settings), InMemoryStore)

    def test_valkey_storage_ttl_only_for_ephemeral(self):
        settings = Settings(
            storage=StorageSettings(backend="valkey"),
            valkey=ValkeySettings(key_prefix="ss", ephemeral_ttl_hours=2),
        )
        durable = get_storage("durable", settings)
        ephemeral = get_storage("ephemeral", settings)
        assert isinstance(durable, ValkeyStore)
        assert durable._ttl_seconds is None
        assert ephemeral._ttl_seconds == 7200
        assert ephemeral._key("session") == "ss:ephemeral:session"

    def test_unknown_storage_backend(self):
        settings = Settings(storage=StorageSettings.model_construct(backend="sqlite"))
        with pytest.raises(ValueError, match="Unknown storage backend"):
            get_storage("durable", settings)

    def test_sinks(self):
        assert isinstance(get_sink(Settings(sink=SinkSettings(backend="memory"))), InMemoryEventSink)
        assert isinstance(get_sink(Settings(sink=SinkSettings(backend="postgresql"))), PostgreSQLEventSink)

    def test_unknown_sink_backend(self):
        settings = Settings(sink=SinkSettings.model_construct(backend="kafka"))
        with pytest.raises(ValueError, match="Unknown sink backend"):
            get_sink(settings)

    def test_identity_store_uses_idle_expiry(self):
        settings = Settings(tracker=TrackerSettings(session_idle_expiry_minutes=5))
        assert get_identity_store(settings).idle_expiry_ms == 300_000

    def test_optional_providers(self):
        disabled = Settings(cart=CartSettings(url=None), enrichment=EnrichmentSettings(enabled=False))
        assert get_cart_source(disabled) is None
        assert get_enrichment_provider(disabled) is None

        enabled = Settings(
            cart=CartSettings(url="https://shop.example.com/cart.js"),
            enrichment=EnrichmentSettings(enabled=True),
        )
        assert isinstance(get_cart_source(enabled), HttpCartSource)
        assert isinstance(get_enrichment_provider(enabled), HttpEnrichmentProvider)

    def test_build_controller(self):
        settings = Settings(tracker=TrackerSettings(max_queue_size=50))
        controller = build_controller(StaticConsentSource(), page={"path": "/"}, settings=settings)
        assert isinstance(controller, SessionController)
        assert controller.dispatcher.queue.max_size == 50
        assert controller.page == {"path": "/"}
