# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration display for the shopsignal CLI.
"""

import json
from typing import Annotated

import typer

from shopsignal.cli.shared import C
from shopsignal.utils.config import get_settings


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()
    tracker = settings.tracker

    if json_output:
        config = {
            "tracker": tracker.model_dump(),
            "storage": {
                "backend": settings.storage.backend,
            },
            "valkey": {
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "ssl_enabled": settings.valkey.ssl,
                "password": settings.valkey.password,
                "key_prefix": settings.valkey.key_prefix,
                "ephemeral_ttl_hours": settings.valkey.ephemeral_ttl_hours,
            },
            "sink": {
                "backend": settings.sink.backend,
            },
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
            },
            "cart": {
                "url": settings.cart.url,
                "timeout_seconds": settings.cart.timeout_seconds,
            },
            "enrichment": {
                "enabled": settings.enrichment.enabled,
                "geo_url": settings.enrichment.geo_url,
            },
        }
        print(json.dumps(config, indent=2))
        return

    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}Session{C.RESET}")
    print(f"  Idle expiry:     {C.WHITE}{tracker.session_idle_expiry_minutes} min{C.RESET}")
    print(f"  Idle threshold:  {C.WHITE}{tracker.idle_threshold_ms} ms{C.RESET}")
    print(f"  Flush every:     {C.WHITE}{tracker.flush_interval_seconds:g} s{C.RESET}")
    print(f"  Snapshot every:  {C.WHITE}{tracker.snapshot_interval_seconds:g} s{C.RESET}")
    print(f"  Queue cap:       {C.WHITE}{tracker.max_queue_size:,}{C.RESET}")
    print()

    print(f"{C.CYAN}Storage{C.RESET}")
    print(f"  Backend:  {C.WHITE}{settings.storage.backend}{C.RESET}")
    if settings.storage.backend == "valkey":
        print(f"  Host:     {C.WHITE}{settings.valkey.host}:{settings.valkey.port}{C.RESET}")
    print()

    print(f"{C.CYAN}Sink{C.RESET}")
    print(f"  Backend:  {C.WHITE}{settings.sink.backend}{C.RESET}")
    if settings.sink.backend == "postgresql":
        pg = settings.postgres
        print(f"  Host:     {C.WHITE}{pg.host}:{pg.port}/{pg.database}{C.RESET}")
        print(f"  Schema:   {C.WHITE}{pg.schema_name}{C.RESET}")
    print()

    print(f"{C.CYAN}Providers{C.RESET}")
    print(f"  Cart:        {C.WHITE}{settings.cart.url or 'disabled'}{C.RESET}")
    enrichment = settings.enrichment.geo_url if settings.enrichment.enabled else "disabled"
    print(f"  Enrichment:  {C.WHITE}{enrichment}{C.RESET}")
    print()
