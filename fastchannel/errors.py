"""Error kinds raised by the scheduling core.

The HTTP layer maps them to responses; the core never decides presentation.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every error the scheduling core surfaces."""


class NotFound(SchedulingError):
    """A channel, VOD or schedule entry does not exist, or a channel has nothing to play."""


class InvalidInput(SchedulingError):
    """A required field is missing or a value is out of range."""


class StoreFailure(SchedulingError):
    """The timeline store (or its channel lock) failed to read or write."""
