# ==============================================================================
# Storage Infrastructure
# ==============================================================================
"""
KeyValueStore implementations:
- InMemoryStore: process-local dict
- ValkeyStore: Valkey/Redis namespace with optional TTL
"""

from shopsignal.infrastructure.storage.memory import InMemoryStore
from shopsignal.infrastructure.storage.valkey import (
    ValkeyStore,
    check_valkey_connection,
    get_valkey_client,
)

__all__ = [
    "InMemoryStore",
    "ValkeyStore",
    "check_valkey_connection",
    "get_valkey_client",
]
