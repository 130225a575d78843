# ==============================================================================
# PostgreSQL Event Sink
# ==============================================================================
"""
PostgreSQL implementation of the EventSink interface.

Provides:
- users: upsert on user_id
- sessions: insert-if-absent on session_id, profile updates guarded by
  updated_at so an older snapshot never overwrites a newer one
- timeline_events: bulk insert with ON CONFLICT (event_id) DO NOTHING

psycopg2 is blocking, so every statement runs through ``asyncio.to_thread``
and never on the event loop itself. The flush, snapshot and handshake paths
share one connection, so transactions on it are serialized by a lock.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import TypeVar

import psycopg2
from psycopg2.extras import Json, execute_batch

from shopsignal.base.sinks import EventSink
from shopsignal.exceptions import SinkUnavailableError
from shopsignal.utils.clock import to_datetime
from shopsignal.utils.config import Settings, get_settings
from shopsignal.utils.retry import POSTGRES_RETRY_EXCEPTIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Batch size for execute_batch
PAGE_SIZE = 500

# Connection timeout
CONNECT_TIMEOUT = 10

SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {schema}.users (
    user_id         TEXT PRIMARY KEY,
    first_seen      TIMESTAMPTZ NOT NULL,
    last_seen       TIMESTAMPTZ NOT NULL,
    is_returning    BOOLEAN NOT NULL DEFAULT FALSE,
    metadata        JSONB NOT NULL DEFAULT '{{}}'::jsonb
);

CREATE TABLE IF NOT EXISTS {schema}.sessions (
    session_id      TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL REFERENCES {schema}.users (user_id),
    started_at      TIMESTAMPTZ NOT NULL,
    context         JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    enrichment      JSONB,
    profile         JSONB,
    updated_at      TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS {schema}.timeline_events (
    event_id        UUID PRIMARY KEY,
    user_id         TEXT NOT NULL,
    session_id      TEXT NOT NULL,
    event_time      TIMESTAMPTZ NOT NULL,
    event_type      TEXT NOT NULL,
    message         TEXT NOT NULL DEFAULT '',
    metadata        JSONB NOT NULL DEFAULT '{{}}'::jsonb
);

CREATE INDEX IF NOT EXISTS timeline_events_session_idx
    ON {schema}.timeline_events (session_id, event_time);
"""


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


class PostgreSQLEventSink(EventSink):
    """
    PostgreSQL implementation of EventSink.

    The connection is opened lazily and dropped on any connection-level
    error; the next call reconnects. Failures surface as
    SinkUnavailableError so the dispatcher keeps the data queued.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the sink.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._lock = threading.Lock()
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    # ==========================================================================
    # Connection management
    # ==========================================================================

    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        self._conn = psycopg2.connect(conn_string)
        logger.info("PostgreSQLEventSink connected (schema=%s)", self._schema)

    def _drop_connection(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except psycopg2.Error as e:
            logger.debug("Error closing broken connection: %s", e)
        finally:
            self._conn = None

    def _run(self, operation: Callable[[psycopg2.extensions.connection], T]) -> T:
        """
        Run ``operation`` in its own transaction, reconnecting on the next call after a failure.

        Only one transaction is open on the connection at a time.
        """
        with self._lock:
            try:
                if self._conn is None:
                    self.connect()
                result = operation(self._conn)
                self._conn.commit()
                return result
            except POSTGRES_RETRY_EXCEPTIONS as e:
                self._drop_connection()
                raise SinkUnavailableError(f"PostgreSQL unavailable: {e}") from e
            except psycopg2.Error:
                if self._conn is not None:
                    self._conn.rollback()
                raise

    async def setup(self) -> None:
        await asyncio.to_thread(self._run, lambda conn: None)

    def create_schema(self) -> None:
        """Create the schema and tables if they do not exist."""

        def _create(conn):
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL.format(schema=self._schema))

        self._run(_create)
        logger.info("Schema %s ready", self._schema)

    def _close(self) -> None:
        with self._lock:
            if not self._conn:
                return
            try:
                self._conn.close()
                logger.info("PostgreSQLEventSink connection closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None

    async def close(self) -> None:
        """Close connection and release resources, after any running transaction."""
        await asyncio.to_thread(self._close)

    # ==========================================================================
    # EventSink Interface Implementation
    # ==========================================================================

    async def upsert_user(self, user: dict) -> None:
        """Create the user or refresh last_seen / is_returning / metadata."""
        row = {
            "user_id": user["user_id"],
            "first_seen": to_datetime(user.get("first_seen") or user["last_seen"]),
            "last_seen": to_datetime(user["last_seen"]),
            "is_returning": bool(user.get("is_returning", False)),
            "metadata": Json(user.get("metadata") or {}),
        }

        def _upsert(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self._schema}.users
                        (user_id, first_seen, last_seen, is_returning, metadata)
                    VALUES
                        (%(user_id)s, %(first_seen)s, %(last_seen)s, %(is_returning)s, %(metadata)s)
                    ON CONFLICT (user_id) DO UPDATE SET
                        last_seen = GREATEST({self._schema}.users.last_seen, EXCLUDED.last_seen),
                        is_returning = EXCLUDED.is_returning,
                        metadata = EXCLUDED.metadata
                    """,
                    row,
                )

        await asyncio.to_thread(self._run, _upsert)

    async def insert_session_if_absent(self, session: dict) -> bool:
        """Insert the session; returns False when it already existed."""
        row = {
            "session_id": session["session_id"],
            "user_id": session["user_id"],
            "started_at": to_datetime(session["started_at"]),
            "context": Json(session.get("context") or {}),
            "enrichment": Json(session["enrichment"]) if session.get("enrichment") else None,
        }

        def _insert(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self._schema}.sessions
                        (session_id, user_id, started_at, context, enrichment)
                    VALUES
                        (%(session_id)s, %(user_id)s, %(started_at)s, %(context)s, %(enrichment)s)
                    ON CONFLICT (session_id) DO NOTHING
                    """,
                    row,
                )
                return cur.rowcount == 1

        return await asyncio.to_thread(self._run, _insert)

    async def update_session_profile(self, session_id: str, profile: dict, updated_at: int) -> None:
        """Store the snapshot unless a newer one is already stored."""
        row = {
            "session_id": session_id,
            "profile": Json(profile),
            "updated_at": to_datetime(updated_at),
        }

        def _update(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE {self._schema}.sessions
                    SET profile = %(profile)s, updated_at = %(updated_at)s
                    WHERE session_id = %(session_id)s
                      AND (updated_at IS NULL OR updated_at <= %(updated_at)s)
                    """,
                    row,
                )

        await asyncio.to_thread(self._run, _update)

    async def insert_timeline_events(self, batch: list[dict]) -> int:
        """Bulk insert events; duplicates by event_id are ignored."""
        if not batch:
            return 0

        rows = [
            {
                "event_id": record["event_id"],
                "user_id": record["user_id"],
                "session_id": record["session_id"],
                "event_time": to_datetime(record["timestamp"]),
                "event_type": record["event_type"],
                "message": record.get("message") or "",
                "metadata": Json(record.get("metadata") or {}),
            }
            for record in batch
        ]

        def _insert(conn):
            with conn.cursor() as cur:
                execute_batch(
                    cur,
                    f"""
                    INSERT INTO {self._schema}.timeline_events
                        (event_id, user_id, session_id, event_time, event_type, message, metadata)
                    VALUES
                        (%(event_id)s, %(user_id)s, %(session_id)s, %(event_time)s,
                         %(event_type)s, %(message)s, %(metadata)s)
                    ON CONFLICT (event_id) DO NOTHING
                    """,
                    rows,
                    page_size=PAGE_SIZE,
                )
            return len(rows)

        count = await asyncio.to_thread(self._run, _insert)
        logger.debug("Inserted %d timeline events", count)
        return count


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        True if connection successful, False otherwise
    """
    try:
        settings = settings or get_settings()
        conn_string = _add_connect_timeout(settings.postgres.connection_string)
        conn = psycopg2.connect(conn_string)
        conn.close()
        return True
    except psycopg2.Error:
        return False
