"""Error kinds raised by the analysis pipeline and rate limiters."""

from __future__ import annotations


class SentinelError(Exception):
    """Base class for all sentinel_agent errors."""


class InsufficientDataError(SentinelError, ValueError):
    """Candle sequence is shorter than the window an operation needs."""


class InvalidEntryError(SentinelError, ValueError):
    """Resolved entry price is not a positive finite number."""


class InvalidCandleError(SentinelError, ValueError):
    """Candle record is missing fields or carries unusable prices."""


class LimiterExhaustionError(SentinelError):
    """Requested cost can never be satisfied by the bucket."""


class RateLimitTimeoutError(SentinelError):
    """Deadline passed before enough tokens became available."""
