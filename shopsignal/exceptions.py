# ==============================================================================
# Exceptions
# ==============================================================================
"""Errors raised by the telemetry engine and its adapters."""


class ShopSignalError(Exception):
    """Base class for engine errors."""


class SinkUnavailableError(ShopSignalError):
    """The event sink cannot accept writes (not connected or unreachable)."""


class InvalidTransitionError(ShopSignalError):
    """A session controller or consent gate operation was used out of order."""
