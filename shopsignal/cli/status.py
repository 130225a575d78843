# ==============================================================================
# Status Command
# ==============================================================================
"""
Backend health for the configured storage and sink.

Only the backends actually configured are checked; the in-memory ones are
always reported healthy.
"""

import json as json_module
from typing import Annotated, Any

import typer

from shopsignal.cli.shared import C, I
from shopsignal.utils.config import get_settings


def _collect_status() -> dict[str, Any]:
    settings = get_settings()

    storage_ok = True
    if settings.storage.backend == "valkey":
        from shopsignal.infrastructure.storage.valkey import check_valkey_connection

        storage_ok = check_valkey_connection()

    sink_ok = True
    if settings.sink.backend == "postgresql":
        from shopsignal.infrastructure.sinks.postgresql import check_postgresql_connection

        sink_ok = check_postgresql_connection(settings)

    return {
        "storage": {"backend": settings.storage.backend, "healthy": storage_ok},
        "sink": {"backend": settings.sink.backend, "healthy": sink_ok},
        "cart": {"configured": bool(settings.cart.url)},
        "enrichment": {"enabled": settings.enrichment.enabled},
    }


def show_status(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output status as JSON")] = False,
) -> None:
    """Show backend health."""
    status = _collect_status()

    if json_output:
        print(json_module.dumps(status, indent=2))
    else:
        print()
        print(f"{C.BOLD}Status{C.RESET}")
        print()
        for name in ("storage", "sink"):
            entry = status[name]
            icon = f"{C.BRIGHT_GREEN}{I.CHECK}" if entry["healthy"] else f"{C.BRIGHT_RED}{I.CROSS}"
            state = "reachable" if entry["healthy"] else "unreachable"
            print(f"  {icon} {name.capitalize():<8}{C.RESET} {entry['backend']} ({state})")
        cart = "configured" if status["cart"]["configured"] else "disabled"
        enrichment = "enabled" if status["enrichment"]["enabled"] else "disabled"
        print(f"  {I.BULLET} Cart      {cart}")
        print(f"  {I.BULLET} Enrichment {enrichment}")
        print()

    if not (status["storage"]["healthy"] and status["sink"]["healthy"]):
        raise typer.Exit(1)
