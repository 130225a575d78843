# ==============================================================================
# Sink Infrastructure
# ==============================================================================
"""
EventSink implementations:
- InMemoryEventSink: process-local, used by replay and tests
- PostgreSQLEventSink: users / sessions / timeline_events tables
"""

from shopsignal.infrastructure.sinks.memory import InMemoryEventSink
from shopsignal.infrastructure.sinks.postgresql import (
    SCHEMA_SQL,
    PostgreSQLEventSink,
    check_postgresql_connection,
)

__all__ = [
    "InMemoryEventSink",
    "PostgreSQLEventSink",
    "SCHEMA_SQL",
    "check_postgresql_connection",
]
