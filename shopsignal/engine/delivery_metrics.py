# ==============================================================================
# Delivery Instrumentation
# ==============================================================================
"""
Timing and counters for sink deliveries.

DeliveryMetrics is a composition object the dispatcher owns. It records each
flush and snapshot push with time.monotonic() timing and provides:

- Per-flush DEBUG log with batch size and timing
- Periodic delivery summary (configurable interval, default 60s)
- Cumulative stats tracking
- Final summary on teardown

It does NOT handle retry or requeue; that stays in the dispatcher.
"""

import logging
import time

logger = logging.getLogger(__name__)


class DeliveryMetrics:
    """Cumulative and per-period delivery statistics."""

    def __init__(self, summary_interval_seconds: float = 60.0, log: logging.Logger | None = None):
        """
        Args:
            summary_interval_seconds: How often to log delivery summaries
            log: Optional logger override. Defaults to this module's logger.
        """
        self._summary_interval = summary_interval_seconds
        self._log = log or logger
        self._start_time = time.monotonic()

        # Cumulative stats
        self.events_delivered = 0
        self.flushes_ok = 0
        self.flushes_failed = 0
        self.snapshots_ok = 0
        self.snapshots_failed = 0
        self.events_dropped = 0
        self._cum_flush_ms = 0.0

        # Period stats (reset each summary interval)
        self._period_events = 0
        self._period_flushes = 0
        self._period_failures = 0
        self._period_flush_ms = 0.0
        self._last_summary_time = time.monotonic()

    def record_flush(self, batch_size: int, duration_ms: float, ok: bool) -> None:
        """Record one flush attempt of ``batch_size`` events."""
        if ok:
            self.flushes_ok += 1
            self.events_delivered += batch_size
            self._period_events += batch_size
            self._log.debug(
                "Flush: %d events | total=%.*fms", batch_size, _precision(duration_ms), duration_ms
            )
        else:
            self.flushes_failed += 1
            self._period_failures += 1
        self._cum_flush_ms += duration_ms
        self._period_flushes += 1
        self._period_flush_ms += duration_ms

        now = time.monotonic()
        if now - self._last_summary_time >= self._summary_interval:
            self._log_summary(now)

    def record_snapshot(self, ok: bool) -> None:
        if ok:
            self.snapshots_ok += 1
        else:
            self.snapshots_failed += 1

    def record_drop(self, count: int = 1) -> None:
        self.events_dropped += count

    def _log_summary(self, now: float) -> None:
        """Log periodic delivery summary and reset period counters."""
        elapsed = now - self._last_summary_time
        if elapsed <= 0 or self._period_flushes == 0:
            return

        avg_flush_ms = self._period_flush_ms / self._period_flushes
        self._log.info(
            "Delivery (%.1fs): %s events | flushes=%d failed=%d | avg_flush=%.*fms",
            elapsed,
            f"{self._period_events:,}",
            self._period_flushes,
            self._period_failures,
            _precision(avg_flush_ms),
            avg_flush_ms,
        )

        self._period_events = 0
        self._period_flushes = 0
        self._period_failures = 0
        self._period_flush_ms = 0.0
        self._last_summary_time = now

    def as_dict(self) -> dict:
        return {
            "events_delivered": self.events_delivered,
            "events_dropped": self.events_dropped,
            "flushes_ok": self.flushes_ok,
            "flushes_failed": self.flushes_failed,
            "snapshots_ok": self.snapshots_ok,
            "snapshots_failed": self.snapshots_failed,
        }

    def log_final_summary(self) -> None:
        """Log final summary on teardown."""
        total_elapsed = time.monotonic() - self._start_time
        total_flushes = self.flushes_ok + self.flushes_failed
        if total_flushes == 0:
            self._log.info("Final: no flushes attempted (%.1fs elapsed)", total_elapsed)
            return

        avg_flush_ms = self._cum_flush_ms / total_flushes
        self._log.info(
            "Final: %s events delivered in %d flushes (%d failed) over %.1fs | "
            "avg_flush=%.*fms | snapshots=%d (%d failed) | dropped=%d",
            f"{self.events_delivered:,}",
            self.flushes_ok,
            self.flushes_failed,
            total_elapsed,
            _precision(avg_flush_ms),
            avg_flush_ms,
            self.snapshots_ok,
            self.snapshots_failed,
            self.events_dropped,
        )


def _precision(ms: float) -> int:
    """Return decimal precision for millisecond values.

    >= 10ms  → 0 decimals (e.g., 85ms)
    >= 1ms   → 1 decimal  (e.g., 3.2ms)
    < 1ms    → 2 decimals (e.g., 0.45ms)
    """
    if ms >= 10:
        return 0
    elif ms >= 1:
        return 1
    else:
        return 2
