# ==============================================================================
# Event Sink Abstract Base Class
# ==============================================================================
"""
Base class for the remote store receiving users, sessions and timeline events.

Every operation may fail and will then be retried by the caller, so every
operation must be idempotent:
- upsert_user: keyed by user_id
- insert_session_if_absent: no-op when session_id already exists
- update_session_profile: last write wins for a session_id
- insert_timeline_events: keyed by event_id, duplicates are ignored
"""

from abc import ABC, abstractmethod


class EventSink(ABC):
    """Base class for event sinks."""

    async def setup(self) -> None:
        """
        Initialize sink resources.

        Called once before the first write. Use this to establish
        connections.
        """

    @abstractmethod
    async def upsert_user(self, user: dict) -> None:
        """
        Create or update the user record.

        Args:
            user: Dict with at least ``user_id``
        """
        ...

    @abstractmethod
    async def insert_session_if_absent(self, session: dict) -> bool:
        """
        Insert a session record unless one already exists.

        Args:
            session: Dict with at least ``session_id`` and ``user_id``

        Returns:
            True if a new record was inserted
        """
        ...

    @abstractmethod
    async def update_session_profile(self, session_id: str, profile: dict, updated_at: int) -> None:
        """
        Replace the behavior profile stored for a session.

        Args:
            session_id: Session to update
            profile: Profile snapshot
            updated_at: Snapshot time (Unix ms)
        """
        ...

    @abstractmethod
    async def insert_timeline_events(self, batch: list[dict]) -> int:
        """
        Insert a batch of timeline events.

        Args:
            batch: Event records in enqueue order

        Returns:
            Count of events newly stored (duplicates excluded)
        """
        ...

    async def close(self) -> None:
        """Release sink resources."""
