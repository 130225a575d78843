# ==============================================================================
# Token Bucket Sample Limiter
# ==============================================================================
"""
Token bucket limiter for capping high-frequency input streams.

Pointer-move and scroll signals can fire hundreds of times per second. The
collectors pass each sample through a limiter and drop the ones that arrive
faster than the configured rate. Unlike a producer-side limiter this never
waits: a sample is either admitted now or discarded.

Tokens accumulate at ``rate`` per second up to ``burst``. With the default
burst of 1 the limiter admits at most one sample per ``1 / rate`` seconds.

Usage::

    limiter = TokenBucketRateLimiter(rate=20)
    if limiter.try_acquire(sample_t_ms):
        aggregator.on_pointer(sample)
"""


class TokenBucketRateLimiter:
    """Rate limiter using the token bucket algorithm.

    Time is supplied by the caller as Unix milliseconds so the limiter follows
    sample timestamps rather than wall-clock time.

    Args:
        rate: Maximum admitted samples per second.
        burst: Maximum burst size (tokens the bucket can hold). Defaults to 1.
    """

    def __init__(self, rate: float, burst: int = 1) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")

        self.rate = rate
        self.burst = burst

        # Start with a full bucket so the first sample goes through immediately.
        self._tokens: float = float(self.burst)
        self._last_refill_ms: int | None = None

        self.admitted = 0
        self.dropped = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def try_acquire(self, now_ms: int, count: int = 1) -> bool:
        """Consume *count* tokens if available.

        Args:
            now_ms: Current time (or sample timestamp) in milliseconds.
            count: Number of tokens to consume (default 1).

        Returns:
            True if the sample is admitted, False if it should be dropped.
        """
        self._refill(now_ms)

        if self._tokens < count:
            self.dropped += 1
            return False

        self._tokens -= count
        self.admitted += 1
        return True

    @property
    def min_interval_ms(self) -> float:
        """Smallest spacing between admitted samples once the burst is spent."""
        return 1000.0 / self.rate

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _refill(self, now_ms: int) -> None:
        """Add tokens based on elapsed time since the last refill."""
        if self._last_refill_ms is None:
            self._last_refill_ms = now_ms
            return
        # Out-of-order timestamps add nothing
        elapsed_ms = max(0, now_ms - self._last_refill_ms)
        self._last_refill_ms = max(self._last_refill_ms, now_ms)
        self._tokens = min(self._tokens + elapsed_ms * self.rate / 1000.0, float(self.burst))
