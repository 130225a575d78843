# ==============================================================================
# In-Memory Key-Value Store
# ==============================================================================
"""
Process-local implementation of KeyValueStore.

Used by tests, by replay, and whenever no Valkey instance is configured.
Values are round-tripped through JSON so callers see the same types they
would get from Valkey.
"""

import json
from typing import Any

from shopsignal.base.storage import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Dict-backed KeyValueStore."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return json.loads(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    def __len__(self) -> int:
        return len(self._data)
