# ==============================================================================
# Consent Gate
# ==============================================================================
"""
Single-shot gate releasing the engine once consent is granted.

Three independent paths can report a grant: the source's push-update stream,
its consent-widget event, and a bounded polling fallback. Whichever comes
first releases the gate; every subscription and the poller are then torn
down and later reports are ignored. Without a grant the callback never runs,
and nothing is observed or sent.
"""

import logging
from collections.abc import Callable
from typing import Optional

from shopsignal.base.providers import ConsentSource, Unsubscribe
from shopsignal.exceptions import InvalidTransitionError
from shopsignal.utils.timers import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 500
DEFAULT_POLL_MAX_ATTEMPTS = 20


class ConsentGate:
    """
    Invoke one callback exactly once, when consent is first granted.

    Usage:
        gate = ConsentGate(source)
        gate.on_consent(controller.begin)
    """

    def __init__(
        self,
        source: ConsentSource,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_poll_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
    ):
        self._source = source
        self._poll_interval_ms = poll_interval_ms
        self._max_poll_attempts = max_poll_attempts

        self._callback: Optional[Callable[[], None]] = None
        self._unsubscribers: list[Unsubscribe] = []
        self._poller: Optional[PeriodicTask] = None
        self._fired = False
        self._closed = False
        self.granted_via: Optional[str] = None
        self.polls = 0

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def waiting(self) -> bool:
        """True while subscriptions or the poller are still live."""
        return bool(self._unsubscribers) or (self._poller is not None and self._poller.running)

    def on_consent(self, callback: Callable[[], None]) -> None:
        """
        Register the single consent callback.

        Runs ``callback`` synchronously if consent is already granted;
        otherwise subscribes to the update and widget streams and starts
        polling (when an event loop is running).

        Raises:
            InvalidTransitionError: If a callback was already registered or
                the gate was closed
        """
        if self._callback is not None or self._closed:
            raise InvalidTransitionError("consent callback already registered")
        self._callback = callback

        if self._source.is_granted():
            self._release("already_granted")
            return

        self._unsubscribers = [
            self._source.subscribe_updates(self._on_update),
            self._source.subscribe_widget(self._on_widget),
        ]

        if self._max_poll_attempts > 0:
            self._poller = PeriodicTask(
                "consent-poll",
                self._poll_interval_ms / 1000.0,
                self.poll,
                max_runs=self._max_poll_attempts,
            )
            try:
                self._poller.start()
            except RuntimeError:
                # No running event loop: push paths still work
                logger.debug("No event loop; consent polling disabled")
                self._poller = None
        logger.debug("Awaiting consent")

    def _on_update(self, granted: bool) -> None:
        if granted:
            self._release("update")

    def _on_widget(self, granted: bool) -> None:
        if granted:
            self._release("widget")

    def poll(self) -> None:
        """One polling-fallback check."""
        if self._fired or self._closed:
            return
        self.polls += 1
        if self._source.is_granted():
            self._release("poll")
        elif self.polls >= self._max_poll_attempts:
            logger.info("Consent polling stopped after %d attempts", self.polls)

    def _release(self, via: str) -> None:
        if self._fired or self._closed:
            return
        self._fired = True
        self.granted_via = via
        self._teardown()
        logger.info("Consent granted (via %s)", via)
        callback = self._callback
        if callback is not None:
            callback()

    def _teardown(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    def close(self) -> None:
        """Tear down all subscriptions without firing. The gate cannot fire afterwards."""
        self._closed = True
        self._teardown()
