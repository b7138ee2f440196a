from __future__ import annotations

from enum import Enum


class TrackerError(Exception):
    """Base class for every error raised by the tracking engine."""


class ConfigurationError(TrackerError, ValueError):
    """Invalid tracker configuration. The engine must not be constructed."""


class ValidationReason(str, Enum):
    NAME_REQUIRED = "name_required"
    NAME_TOO_LONG = "name_too_long"
    INVALID_TYPES = "invalid_types"
    CIRCULAR_REFERENCE = "circular_reference"
    TOO_LARGE = "too_large"
    TOO_MANY_KEYS = "too_many_keys"
    ARRAY_TOO_LARGE = "array_too_large"


class ValidationError(TrackerError, ValueError):
    """A custom event name or metadata object was rejected."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class EventConstructionError(TrackerError, ValueError):
    """An event type was built without the payload it requires."""


class DeliveryFailure(TrackerError):
    """The transport reported (or raised) a failed delivery."""


class StorageUnavailable(TrackerError):
    """The durable key-value store could not be read or written."""
