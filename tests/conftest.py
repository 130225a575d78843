# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- fakeredis-backed ValkeyStore namespaces
- In-memory stores and sink
- A manual clock starting at a fixed instant
- Tracker settings with short intervals
"""

import fakeredis
import pytest

from shopsignal.core.aggregator import BehaviorAggregator
from shopsignal.engine.identity import IdentityStore
from shopsignal.infrastructure.sinks.memory import InMemoryEventSink
from shopsignal.infrastructure.storage.memory import InMemoryStore
from shopsignal.infrastructure.storage.valkey import ValkeyStore
from shopsignal.utils.clock import ManualClock
from shopsignal.utils.config import TrackerSettings

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000_000


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real ValkeyStore client.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def durable_store(fake_redis):
    """Durable namespace on fakeredis."""
    return ValkeyStore("durable", client=fake_redis, prefix="test")


@pytest.fixture()
def ephemeral_store(fake_redis):
    """Ephemeral namespace on fakeredis, with a TTL like production."""
    return ValkeyStore("ephemeral", client=fake_redis, prefix="test", ttl_seconds=3600)


@pytest.fixture()
def memory_identity():
    """IdentityStore over two in-memory namespaces."""
    return IdentityStore(InMemoryStore(), InMemoryStore())


@pytest.fixture()
def clock():
    return ManualClock(T0)


@pytest.fixture()
def aggregator():
    """Aggregator with a session started at T0."""
    agg = BehaviorAggregator()
    agg.start(T0)
    return agg


@pytest.fixture()
def sink():
    return InMemoryEventSink()


@pytest.fixture()
def tracker_settings():
    """Tracker settings with a single fast handshake attempt."""
    return TrackerSettings(
        handshake_attempts=1,
        consent_poll_interval_ms=10,
        consent_poll_max_attempts=5,
    )
