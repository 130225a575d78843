# ==============================================================================
# Identity Store
# ==============================================================================
"""
Visitor and session identity over the two storage namespaces.

Durable keys: ``visitor_id``, ``first_seen``, ``last_seen``, ``last_pages``,
``last_cart_status``. Ephemeral key: ``session`` holding
``{session_id, started_at, last_touched_at}``.

Session expiry is evaluated once per page load (at controller start), not per
event: a session survives while page loads are less than the idle-expiry
window apart.
"""

import logging
from collections.abc import Callable
from typing import Optional

from shopsignal.base.storage import KeyValueStore
from shopsignal.core.models import SessionIdentity, VisitorIdentity, new_id
from shopsignal.core.page_context import VisitorHistory

logger = logging.getLogger(__name__)

VISITOR_ID_KEY = "visitor_id"
FIRST_SEEN_KEY = "first_seen"
LAST_SEEN_KEY = "last_seen"
LAST_PAGES_KEY = "last_pages"
LAST_CART_STATUS_KEY = "last_cart_status"
SESSION_KEY = "session"

DEFAULT_IDLE_EXPIRY_MS = 30 * 60 * 1000


class IdentityStore:
    """Resolves and persists visitor and session identity."""

    def __init__(
        self,
        durable: KeyValueStore,
        ephemeral: KeyValueStore,
        idle_expiry_ms: int = DEFAULT_IDLE_EXPIRY_MS,
        id_factory: Callable[[], str] = new_id,
    ):
        """
        Initialize the identity store.

        Args:
            durable: Namespace that survives indefinitely
            ephemeral: Namespace that survives only within a browser session
            idle_expiry_ms: Gap between page loads after which a new session starts
            id_factory: Generator for new visitor/session ids
        """
        self._durable = durable
        self._ephemeral = ephemeral
        self.idle_expiry_ms = idle_expiry_ms
        self._new_id = id_factory

    def get_or_create_visitor_id(self, now: Optional[int] = None) -> VisitorIdentity:
        """
        Return the durable visitor id, creating and persisting it if absent.

        Args:
            now: Creation time recorded as ``first_seen`` for new visitors
        """
        visitor_id = self._durable.get(VISITOR_ID_KEY)
        if isinstance(visitor_id, str) and visitor_id:
            return VisitorIdentity(visitor_id=visitor_id, is_new=False)

        visitor_id = self._new_id()
        self._durable.set(VISITOR_ID_KEY, visitor_id)
        if now is not None:
            self._durable.set(FIRST_SEEN_KEY, now)
        logger.info("Created visitor %s", visitor_id)
        return VisitorIdentity(visitor_id=visitor_id, is_new=True)

    def is_session_expired(self, stored: Optional[dict], now: int) -> bool:
        """
        Check if a stored session has expired.

        Args:
            stored: Stored ``{session_id, started_at, last_touched_at}`` or None
            now: Current time (Unix ms)

        Returns:
            True if the session is missing, malformed or idle too long
        """
        if not isinstance(stored, dict) or not stored.get("session_id"):
            return True
        last_touched = stored.get("last_touched_at")
        if not isinstance(last_touched, int):
            return True
        return now - last_touched > self.idle_expiry_ms

    def get_or_renew_session_id(self, now: int) -> SessionIdentity:
        """
        Reuse the live session or start a new one, then touch it.

        Either way ``{session_id, started_at, last_touched_at=now}`` is written
        back to the ephemeral namespace.
        """
        stored = self._ephemeral.get(SESSION_KEY)

        if self.is_session_expired(stored, now):
            session = SessionIdentity(
                session_id=self._new_id(), started_at=now, last_touched_at=now, is_new=True
            )
            logger.info("Started session %s", session.session_id)
        else:
            session = SessionIdentity(
                session_id=stored["session_id"],
                started_at=stored.get("started_at", now),
                last_touched_at=now,
                is_new=False,
            )
            logger.debug("Renewed session %s", session.session_id)

        self._ephemeral.set(
            SESSION_KEY,
            {
                "session_id": session.session_id,
                "started_at": session.started_at,
                "last_touched_at": now,
            },
        )
        return session

    def load_history(self, is_returning: bool) -> VisitorHistory:
        """Session-continuity data left by the previous session."""
        last_pages = self._durable.get(LAST_PAGES_KEY)
        last_seen = self._durable.get(LAST_SEEN_KEY)
        return VisitorHistory(
            is_returning=is_returning,
            last_seen=last_seen if isinstance(last_seen, int) else None,
            pages_viewed_last_session=last_pages if isinstance(last_pages, list) else [],
            last_session_cart_status=self._durable.get(LAST_CART_STATUS_KEY),
        )

    def first_seen(self) -> Optional[int]:
        value = self._durable.get(FIRST_SEEN_KEY)
        return value if isinstance(value, int) else None

    def save_continuity(
        self, last_seen: int, last_pages: list[str], last_cart_status: Optional[str]
    ) -> None:
        """Persist what the next page load needs to know about this session."""
        self._durable.set(LAST_SEEN_KEY, last_seen)
        self._durable.set(LAST_PAGES_KEY, list(last_pages))
        if last_cart_status is not None:
            self._durable.set(LAST_CART_STATUS_KEY, last_cart_status)
