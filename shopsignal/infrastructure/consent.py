# ==============================================================================
# Consent Source Adapters
# ==============================================================================
"""
ConsentSource implementations.

- StaticConsentSource: fixed or manually toggled state (replay, tests,
  pages without a consent-management platform)
- ConsentPushAdapter: wraps a provider that only exposes an append-only
  command queue (the ``dataLayer.push(["consent", "update", {...}])`` style).
  The queue is wrapped once here so nothing else has to intercept pushes.
"""

import logging
from typing import Any

from shopsignal.base.providers import ConsentListener, ConsentSource, Unsubscribe

logger = logging.getLogger(__name__)

GRANTED = "granted"


class _Listeners:
    """Listener registry handing out unsubscribe callables."""

    def __init__(self):
        self._listeners: list[ConsentListener] = []

    def add(self, listener: ConsentListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, granted: bool) -> None:
        # Copy: listeners unsubscribe themselves while being notified
        for listener in list(self._listeners):
            listener(granted)

    def __len__(self) -> int:
        return len(self._listeners)


class StaticConsentSource(ConsentSource):
    """Consent held in memory. ``grant()``/``revoke()`` push updates."""

    def __init__(self, granted: bool = False):
        self._granted = granted
        self._updates = _Listeners()
        self._widget = _Listeners()

    def is_granted(self) -> bool:
        return self._granted

    def subscribe_updates(self, listener: ConsentListener) -> Unsubscribe:
        return self._updates.add(listener)

    def subscribe_widget(self, listener: ConsentListener) -> Unsubscribe:
        return self._widget.add(listener)

    def grant(self, via_widget: bool = False) -> None:
        """Grant consent and notify the update stream (or the widget listeners)."""
        self._granted = True
        (self._widget if via_widget else self._updates).notify(True)

    def grant_silently(self) -> None:
        """Grant consent without notifying anyone; only polling will notice."""
        self._granted = True

    def revoke(self) -> None:
        self._granted = False
        self._updates.notify(False)

    @property
    def listener_count(self) -> int:
        return len(self._updates) + len(self._widget)


class ConsentPushAdapter(ConsentSource):
    """
    Adapter over an append-only consent command queue.

    Commands are sequences like ``["consent", "default", {...}]`` or
    ``["consent", "update", {"analytics_storage": "granted"}]``. Consent is
    granted when the latest command sets ``consent_key`` to "granted".
    """

    def __init__(self, queue: list | None = None, consent_key: str = "analytics_storage"):
        self.queue: list = queue if queue is not None else []
        self._consent_key = consent_key
        self._granted = False
        self._updates = _Listeners()
        for command in self.queue:
            self._apply(command, notify=False)

    def _apply(self, command: Any, notify: bool) -> None:
        if not isinstance(command, (list, tuple)) or len(command) < 3 or command[0] != "consent":
            return
        params = command[2]
        if not isinstance(params, dict) or self._consent_key not in params:
            return
        self._granted = params[self._consent_key] == GRANTED
        logger.debug("Consent %s: %s=%s", command[1], self._consent_key, params[self._consent_key])
        if notify:
            self._updates.notify(self._granted)

    def push(self, command: Any) -> None:
        """Append a command to the queue, as the page would."""
        self.queue.append(command)
        self._apply(command, notify=True)

    def is_granted(self) -> bool:
        return self._granted

    def subscribe_updates(self, listener: ConsentListener) -> Unsubscribe:
        return self._updates.add(listener)
