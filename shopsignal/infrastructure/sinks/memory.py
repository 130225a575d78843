# ==============================================================================
# In-Memory Event Sink
# ==============================================================================
"""
Process-local EventSink with the same idempotency rules as the real store.

Used by replay and tests. ``fail_next(n)`` makes the next ``n`` calls raise
SinkUnavailableError, which is how transport failures are simulated.
"""

import copy
import logging

from shopsignal.base.sinks import EventSink
from shopsignal.exceptions import SinkUnavailableError

logger = logging.getLogger(__name__)


class InMemoryEventSink(EventSink):
    """Dict-backed EventSink keyed by user_id, session_id and event_id."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.sessions: dict[str, dict] = {}
        self.events: dict[str, dict] = {}
        self.calls: list[str] = []
        self._failures_left = 0

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` operations fail."""
        self._failures_left = count

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self._failures_left > 0:
            self._failures_left -= 1
            raise SinkUnavailableError(f"simulated failure in {operation}")

    async def upsert_user(self, user: dict) -> None:
        self._check("upsert_user")
        existing = self.users.get(user["user_id"], {})
        existing.update(copy.deepcopy(user))
        self.users[user["user_id"]] = existing

    async def insert_session_if_absent(self, session: dict) -> bool:
        self._check("insert_session_if_absent")
        if session["session_id"] in self.sessions:
            return False
        self.sessions[session["session_id"]] = copy.deepcopy(session)
        return True

    async def update_session_profile(self, session_id: str, profile: dict, updated_at: int) -> None:
        self._check("update_session_profile")
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug("Profile update for unknown session %s ignored", session_id)
            return
        # Older snapshots never overwrite newer ones
        if session.get("updated_at") is not None and session["updated_at"] > updated_at:
            return
        session["profile"] = copy.deepcopy(profile)
        session["updated_at"] = updated_at

    async def insert_timeline_events(self, batch: list[dict]) -> int:
        self._check("insert_timeline_events")
        inserted = 0
        for record in batch:
            if record["event_id"] not in self.events:
                self.events[record["event_id"]] = copy.deepcopy(record)
                inserted += 1
        return inserted

    def events_in_order(self) -> list[dict]:
        """Stored events in insertion order."""
        return list(self.events.values())
