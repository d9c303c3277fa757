"""Exception types raised by the ARP detection engine."""


class ARPGuardError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(ARPGuardError, ValueError):
    """Raised when a setter receives a malformed address or value.

    The previous configuration is always retained.
    """


class SnapshotQueryError(ARPGuardError):
    """Raised by a snapshot source when the ARP table cannot be read."""


class InvalidStateTransition(ARPGuardError):
    """Raised when start/stop is requested from a state that does not allow it."""
