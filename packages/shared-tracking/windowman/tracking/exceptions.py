"""Custom exceptions for the tracking pipeline."""

from __future__ import annotations


class TrackingError(Exception):
    """Base exception for tracking pipeline errors."""

    pass


class IdentityHashingError(TrackingError):
    """Raised when PII cannot be digested into a hashed identity bundle."""

    pass


class StorageUnavailableError(TrackingError):
    """Raised when dedup guard state cannot be read or written."""

    pass


class SinkError(TrackingError):
    """Raised when an event record cannot be delivered to its sink."""

    pass
