# ==============================================================================
# Valkey Key-Value Store Implementation
# ==============================================================================
"""
Valkey/Redis implementation of the KeyValueStore interface.

Each store instance is one namespace under ``{key_prefix}:{namespace}:``.
The durable namespace has no TTL; the ephemeral namespace expires after
``ephemeral_ttl_hours`` so abandoned browser sessions clean themselves up.

Uses JSON serialization for stored values.
"""

import json
import logging
from typing import Any

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from shopsignal.base.storage import KeyValueStore
from shopsignal.utils.config import get_settings
from shopsignal.utils.retry import VALKEY_RETRIES

logger = logging.getLogger(__name__)


def get_valkey_client(url: str | None = None, socket_timeout: int = 10) -> redis.Redis:
    """
    Get a Valkey/Redis client connection.

    Configured with:
    - socket timeouts for fast failure detection
    - automatic retries with exponential backoff for transient failures
    - health check interval to keep connections alive

    Returns:
        redis.Redis client instance
    """
    if url is None:
        url = get_settings().valkey.url

    retry = Retry(ExponentialBackoff(cap=8, base=1), retries=VALKEY_RETRIES)

    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry,
        retry_on_error=[RedisTimeoutError, RedisConnectionError],
        health_check_interval=30,
    )


class ValkeyStore(KeyValueStore):
    """
    Valkey/Redis implementation of KeyValueStore.

    Key format: ``{prefix}:{namespace}:{key}``
    """

    def __init__(
        self,
        namespace: str,
        client: redis.Redis | None = None,
        prefix: str | None = None,
        ttl_seconds: int | None = None,
    ):
        """
        Initialize the store.

        Args:
            namespace: "durable" or "ephemeral" (any name works)
            client: Redis client instance. If None, creates a new connection.
            prefix: Key prefix. If None, uses settings.
            ttl_seconds: Expiry applied on every write; None means no expiry.
        """
        self._client = client or get_valkey_client()
        self._prefix = prefix if prefix is not None else get_settings().valkey.key_prefix
        self._namespace = namespace
        self._ttl_seconds = ttl_seconds

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{self._namespace}:{key}"

    def get(self, key: str) -> Any | None:
        """
        Get a stored value.

        Returns:
            Decoded value, or None if missing or not valid JSON
        """
        value = self._client.get(self._key(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Failed to decode JSON for key %s", key)
            return None

    def set(self, key: str, value: Any) -> None:
        json_value = json.dumps(value)
        if self._ttl_seconds is not None:
            self._client.setex(self._key(key), self._ttl_seconds, json_value)
        else:
            self._client.set(self._key(key), json_value)

    def delete(self, key: str) -> bool:
        return self._client.delete(self._key(key)) > 0

    def clear(self) -> int:
        """Delete every key in this namespace."""
        keys = list(self._client.scan_iter(f"{self._prefix}:{self._namespace}:*"))
        if keys:
            return self._client.delete(*keys)
        return 0

    def ping(self) -> bool:
        """
        Check if the store is reachable.

        Returns:
            True if ping succeeds, False otherwise
        """
        try:
            return bool(self._client.ping())
        except (RedisConnectionError, RedisTimeoutError):
            return False


def check_valkey_connection() -> bool:
    """
    Check if Valkey is reachable.

    Uses a shorter timeout (5 seconds) since this is just a health check.

    Returns:
        True if Valkey responds to ping, False otherwise
    """
    try:
        client = get_valkey_client(socket_timeout=5)
        client.ping()
        client.close()
        return True
    except (RedisConnectionError, RedisTimeoutError):
        return False
