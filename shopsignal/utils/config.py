# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class TrackerSettings(BaseSettings):
    """Session engine timings, thresholds and bounds."""

    model_config = SettingsConfigDict(env_prefix="TRACKER_")

    session_idle_expiry_minutes: int = Field(
        default=30,
        description="Inactivity between page loads after which a new session starts",
    )
    idle_threshold_ms: int = Field(
        default=5000, description="No qualifying input for this long counts as idle"
    )
    idle_tick_ms: int = Field(default=1000, description="Idle/engaged accounting tick")
    snapshot_interval_seconds: float = Field(
        default=30.0, description="How often the behavior profile is pushed to the sink"
    )
    flush_interval_seconds: float = Field(
        default=10.0, description="How often the timeline event queue is flushed"
    )
    cart_poll_interval_seconds: float = Field(default=15.0, description="Cart poll cadence")
    pointer_max_hz: float = Field(default=20.0, description="Pointer sample rate cap")
    scroll_max_hz: float = Field(default=10.0, description="Scroll sample rate cap")
    max_queue_size: int = Field(
        default=1000, description="Timeline events buffered before the oldest is dropped"
    )
    handshake_attempts: int = Field(
        default=5, description="Sink handshake attempts before it is abandoned"
    )
    consent_poll_interval_ms: int = Field(default=500, description="Consent polling cadence")
    consent_poll_max_attempts: int = Field(
        default=20, description="Consent polls before the polling fallback stops"
    )
    default_currency: str = Field(default="GBP", description="Currency when the page has none")

    @property
    def session_idle_expiry_ms(self) -> int:
        """Session idle-expiry window in milliseconds."""
        return self.session_idle_expiry_minutes * 60 * 1000


class StorageSettings(BaseSettings):
    """Which key-value backend holds visitor and session identity."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: Literal["memory", "valkey"] = Field(
        default="memory", description="Identity storage backend (memory, valkey)"
    )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for identity storage."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    key_prefix: str = Field(default="shopsignal", description="Prefix for all storage keys")
    ephemeral_ttl_hours: int = Field(
        default=24, description="TTL for the ephemeral (browser-session) namespace"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        # Use rediss:// scheme for SSL connections
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class SinkSettings(BaseSettings):
    """Which event sink receives users, sessions and timeline events."""

    model_config = SettingsConfigDict(env_prefix="SINK_")

    backend: Literal["memory", "postgresql"] = Field(
        default="memory", description="Event sink backend (memory, postgresql)"
    )


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings for the event sink."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(default="shopsignal", description="Database name")
    schema_name: str = Field(default="shopsignal", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class CartSettings(BaseSettings):
    """Storefront cart endpoint polled during a session."""

    model_config = SettingsConfigDict(env_prefix="CART_")

    url: Optional[str] = Field(default=None, description="Cart JSON endpoint (e.g. /cart.js)")
    timeout_seconds: float = Field(default=5.0, description="Cart request timeout")


class EnrichmentSettings(BaseSettings):
    """Geolocation enrichment provider settings."""

    model_config = SettingsConfigDict(env_prefix="ENRICHMENT_")

    enabled: bool = Field(default=False, description="Look up geolocation at session start")
    geo_url: str = Field(default="https://ipapi.co/json/", description="Geolocation endpoint")
    timeout_seconds: float = Field(default=5.0, description="Enrichment request timeout")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    tracker: TrackerSettings = Field(default_factory=TrackerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    cart: CartSettings = Field(default_factory=CartSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
