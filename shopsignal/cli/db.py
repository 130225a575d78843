# ==============================================================================
# Database Commands
# ==============================================================================
"""
PostgreSQL sink schema management.
"""

import asyncio

import psycopg2
import typer

from shopsignal.cli.shared import fail, ok
from shopsignal.exceptions import SinkUnavailableError
from shopsignal.utils.config import get_settings


def db_init() -> None:
    """Create the sink schema and tables (idempotent)."""
    from shopsignal.infrastructure.sinks.postgresql import PostgreSQLEventSink

    settings = get_settings()
    sink = PostgreSQLEventSink(settings)
    try:
        sink.create_schema()
    except (psycopg2.Error, SinkUnavailableError) as e:
        fail(f"Schema creation failed: {e}")
        raise typer.Exit(1) from e
    finally:
        asyncio.run(sink.close())
    ok(f"Schema '{settings.postgres.schema_name}' ready")
