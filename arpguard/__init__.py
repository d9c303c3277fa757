"""ARPGuard: passive ARP table anomaly detection."""

from .config import Settings
from .errors import (
    ARPGuardError,
    ConfigurationError,
    InvalidStateTransition,
    SnapshotQueryError,
)
from .services.detector import ARPDetector, MonitorState

__all__ = [
    "ARPDetector",
    "MonitorState",
    "Settings",
    "ARPGuardError",
    "ConfigurationError",
    "InvalidStateTransition",
    "SnapshotQueryError",
]
