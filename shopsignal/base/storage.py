# ==============================================================================
# Key-Value Storage Abstract Base Class
# ==============================================================================
"""
Abstract interface for the browser-storage namespaces.

Two namespaces are used:
- durable: survives indefinitely (visitor_id, last_seen, last_pages,
  last_cart_status)
- ephemeral: survives only within a browser session ({session_id,
  started_at, last_touched_at})

Implementations: in-memory, Valkey/Redis.
"""

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """
    Key-value storage for identity and session-continuity state.

    Values are JSON-serializable. Implementations handle serialization
    internally.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """
        Get a stored value.

        Args:
            key: Storage key

        Returns:
            Stored value, or None if not found
        """
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: Storage key
            value: JSON-serializable value
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Args:
            key: Storage key to delete

        Returns:
            True if key was deleted, False if not found
        """
        ...

    @abstractmethod
    def clear(self) -> int:
        """
        Delete every key in this namespace.

        Returns:
            Count of keys deleted
        """
        ...
