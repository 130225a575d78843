"""Session engine: consent gating, identity, collectors, dispatch and lifecycle."""

from shopsignal.engine.collectors import (
    CartPoller,
    CollectorContext,
    SignalRouter,
    build_collectors,
    normalize_cart,
)
from shopsignal.engine.consent import ConsentGate
from shopsignal.engine.controller import SessionController, SessionState
from shopsignal.engine.delivery_metrics import DeliveryMetrics
from shopsignal.engine.dispatcher import Dispatcher, EventQueue
from shopsignal.engine.enrichment import enrich
from shopsignal.engine.identity import IdentityStore

__all__ = [
    "CartPoller",
    "CollectorContext",
    "ConsentGate",
    "DeliveryMetrics",
    "Dispatcher",
    "EventQueue",
    "IdentityStore",
    "SessionController",
    "SessionState",
    "SignalRouter",
    "build_collectors",
    "enrich",
    "normalize_cart",
]
