# ==============================================================================
# Retry Configuration
# ==============================================================================
"""
Shared retry configuration for network resilience.

Provides a light retry decorator with exponential backoff for the blocking
HTTP adapters (cart endpoint, enrichment provider), an async retry loop for
the sink handshake at session start, and the redis-py retry count used by
ValkeyStore.

Light retry: 3 attempts over ~3 seconds (cart polls, enrichment lookups)
Handshake retry: `handshake_attempts` attempts with the same backoff

PostgreSQL writes are not retried in place: a failed flush is requeued and
retried on the next flush interval.

Light retry is deliberately short: a failed cart poll is simply retried on
the next poll interval, so there is no point stacking retries on top of it.
"""

import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import psycopg2
import requests
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

# ==============================================================================
# Retry Constants
# ==============================================================================

RETRY_WAIT_MIN = 1  # seconds
RETRY_WAIT_MAX = 8  # seconds (cap for exponential backoff)

# Light retry configuration: 3 attempts
# Exponential backoff: 1s, 2s = ~3s total
RETRY_ATTEMPTS_LIGHT = 3

# Valkey retry configuration (used by redis-py client)
VALKEY_RETRIES = 3


# ==============================================================================
# Logging Callbacks
# ==============================================================================


def log_retry_attempt(logger: logging.Logger, max_attempts: int):
    """
    Create a callback that logs retry attempts.

    Args:
        logger: Logger instance to use for logging
        max_attempts: Attempt bound shown in the log line

    Returns:
        Callback function for tenacity's before_sleep parameter
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retry attempt %d/%d after error: %s",
            retry_state.attempt_number,
            max_attempts,
            exception,
        )

    return _log_retry


# ==============================================================================
# Retry Decorators
# ==============================================================================


def retry_light(exception_types: Tuple[Type[Exception], ...], logger: logging.Logger):
    """
    Create a light retry decorator (3 attempts, ~3 seconds).

    Use this for cart polls and enrichment lookups.

    Args:
        exception_types: Tuple of exception types to retry on
        logger: Logger instance for retry logging

    Returns:
        Tenacity retry decorator
    """
    return retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS_LIGHT),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger, RETRY_ATTEMPTS_LIGHT),
        reraise=True,
    )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    logger: logging.Logger,
    wait_min: float = RETRY_WAIT_MIN,
    wait_max: float = RETRY_WAIT_MAX,
) -> T:
    """
    Await ``operation`` until it succeeds or ``attempts`` is exhausted.

    Any exception is retried. Sleeps use asyncio, so the event loop keeps
    serving collectors between attempts.

    Raises:
        RetryError: When every attempt failed. The last exception is
            available as ``err.last_attempt.exception()``.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
        before_sleep=log_retry_attempt(logger, attempts),
    ):
        with attempt:
            return await operation()
    raise RetryError(None)  # pragma: no cover


# ==============================================================================
# Exception Groups for Common Use Cases
# ==============================================================================

POSTGRES_RETRY_EXCEPTIONS = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)

HTTP_RETRY_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)
