# ==============================================================================
# Replay Command
# ==============================================================================
"""
Drive one tracking session from a recorded signal file.

The file is either a JSON object::

    {"page": {...}, "start": 1700000000000, "events": [{"type": "click", ...}, ...]}

or a JSON array / JSON lines of raw signals. Two extra signal types are
understood by the replay itself: ``consent`` grants consent at that moment,
and ``cart`` (with a ``cart`` payload) performs a cart poll returning that
payload.

Time is simulated with a manual clock following the signals' ``t`` values;
idle ticks are replayed at the configured tick interval in between. Delivery
goes to the configured sink (SINK_BACKEND); identity lives in memory.
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from shopsignal.base.providers import CartSource
from shopsignal.base.sinks import EventSink
from shopsignal.cli.shared import C, load_json_file
from shopsignal.engine.controller import SessionController
from shopsignal.engine.identity import IdentityStore
from shopsignal.factory import get_sink
from shopsignal.infrastructure.consent import StaticConsentSource
from shopsignal.infrastructure.sinks.memory import InMemoryEventSink
from shopsignal.infrastructure.storage.memory import InMemoryStore
from shopsignal.utils.clock import ManualClock
from shopsignal.utils.config import TrackerSettings, get_settings

EMPTY_CART = {"items": [], "total_price": 0}


class ScriptedCartSource(CartSource):
    """Returns whatever cart payload the script set last."""

    def __init__(self):
        self.payload: dict = dict(EMPTY_CART)

    async def fetch_cart(self) -> dict:
        return self.payload


def _normalize_script(data: Any) -> dict:
    if isinstance(data, list):
        return {"page": {}, "events": data}
    if isinstance(data, dict):
        return {
            "page": data.get("page") or {},
            "events": data.get("events") or [],
            "start": data.get("start"),
        }
    raise ValueError("replay file must contain a JSON object or array")


async def run_replay(
    script: dict, granted: bool, tracker: TrackerSettings, sink: Optional[EventSink] = None
) -> dict:
    """
    Run a scripted session to completion.

    Returns:
        ``{"session": ..., "profile": ..., "events": [...]}``
    """
    events = [raw for raw in script["events"] if isinstance(raw, dict)]
    start = script.get("start")
    if start is None:
        start = next((int(raw["t"]) for raw in events if "t" in raw), 0)
    clock = ManualClock(int(start))

    consent = StaticConsentSource(granted=granted)
    if sink is None:
        sink = InMemoryEventSink()
    identity = IdentityStore(
        InMemoryStore(), InMemoryStore(), idle_expiry_ms=tracker.session_idle_expiry_ms
    )
    cart: Optional[ScriptedCartSource] = None
    if any(raw.get("type") == "cart" for raw in events):
        cart = ScriptedCartSource()

    controller = SessionController(
        consent, identity, sink, page=script["page"], cart_source=cart, settings=tracker, clock=clock
    )
    controller.start()
    await controller.settle()

    next_tick = clock() + tracker.idle_tick_ms
    for raw in events:
        t = int(raw.get("t", clock()))
        while next_tick <= t:
            clock.set(next_tick)
            controller.idle_tick()
            next_tick += tracker.idle_tick_ms
        clock.set(t)

        kind = raw.get("type")
        if kind == "consent":
            consent.grant(via_widget=bool(raw.get("widget")))
            await controller.settle()
            next_tick = clock() + tracker.idle_tick_ms
        elif kind == "cart":
            if cart is not None and controller.cart_poller is not None:
                cart.payload = raw.get("cart") or dict(EMPTY_CART)
                await controller.cart_poller.poll()
        else:
            controller.handle_event(raw)

    profile = controller.profile_snapshot(clock()) if controller.collecting else None
    await controller.teardown()
    await sink.close()

    delivered: list[dict] = []
    if isinstance(sink, InMemoryEventSink):
        delivered = sink.events_in_order()
        stored = sink.sessions.get(controller.session.session_id) if controller.session else None
        profile = (stored or {}).get("profile") or profile
    return {"session": controller.describe(), "profile": profile, "events": delivered}


def _print_summary(result: dict) -> None:
    session = result["session"]
    profile = result["profile"]

    print()
    print(f"{C.BOLD}Session{C.RESET}  {session['session_id'] or '-'}  ({session['state']})")
    if profile is None:
        print(f"  {C.DIM}No consent: nothing was collected{C.RESET}")
        print()
        return

    console = Console()
    table = Table(title="Behavior profile", show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    rows = [
        ("Engagement score", f"{profile['engagement_score']} ({profile['engagement_level']})"),
        ("Max scroll depth", f"{profile['scroll']['max_depth_percent']:.0f}%"),
        ("Engaged time", f"{profile['attention']['engaged_time_ms'] / 1000:.1f}s"),
        ("Idle time", f"{profile['attention']['idle_time_ms'] / 1000:.1f}s"),
        ("Clicks", str(profile["interactions"]["clicks"])),
        ("Rage clicks", str(profile["pointer"]["rage_clicks"])),
        ("Dead clicks", str(profile["pointer"]["dead_clicks"])),
        ("Cart value", f"{profile['commerce']['current_value']:.2f}"),
    ]
    for name, value in rows:
        table.add_row(name, value)
    flags = [name for name, on in profile["flags"].items() if on]
    table.add_row("Flags", ", ".join(flags) or "-")

    print()
    console.print(table)

    timeline = Table(title="Timeline", show_header=True, header_style="bold")
    timeline.add_column("t", justify="right")
    timeline.add_column("Event")
    timeline.add_column("Message")
    for event in result["events"]:
        timeline.add_row(str(event["timestamp"]), event["event_type"], event["message"])
    console.print(timeline)
    print()


def replay(
    path: Annotated[Path, typer.Argument(help="Recorded signal file (JSON or JSON lines)")],
    granted: Annotated[
        bool, typer.Option("--granted/--denied", help="Consent state at page load")
    ] = True,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output result as JSON")] = False,
) -> None:
    """Replay recorded page signals through a full tracking session."""
    try:
        script = _normalize_script(load_json_file(path))
    except ValueError as e:
        print(f"{C.BRIGHT_RED}{e}{C.RESET}")
        raise typer.Exit(1) from e

    settings = get_settings()
    result = asyncio.run(run_replay(script, granted, settings.tracker, sink=get_sink(settings)))

    if json_output:
        print(json.dumps(result, indent=2, default=str))
        return
    _print_summary(result)
