"""Binding entries, snapshot rows and merge deltas."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional


@dataclass(frozen=True)
class SnapshotRow:
    """One row of a point-in-time ARP table read."""

    ip_address: str
    mac_address: Optional[str]  # None for incomplete / failed resolution
    interface: Optional[str] = None
    is_complete: bool = True
    is_permanent: bool = False


@dataclass
class BindingEntry:
    """Last known IP -> MAC binding plus every MAC previously seen for the IP."""

    ip_address: str
    mac_address: str
    interface: Optional[str]
    is_complete: bool
    is_permanent: bool
    first_seen: datetime
    last_seen: datetime
    mac_history: List[str] = field(default_factory=list)  # oldest first

    def is_stale(self, now: datetime, stale_after_seconds: Optional[float]) -> bool:
        """True when the entry has not been observed within the stale window."""
        if stale_after_seconds is None:
            return False
        return now - self.last_seen > timedelta(seconds=stale_after_seconds)

    def copy(self) -> "BindingEntry":
        """Detached copy; the history list is not shared with the store."""
        return replace(self, mac_history=list(self.mac_history))


@dataclass(frozen=True)
class BindingDelta:
    """Per-address outcome of merging one snapshot row."""

    NEW = "new"
    UNCHANGED = "unchanged"
    CHANGED = "changed"

    kind: str
    ip_address: str
    current_mac: str
    previous_mac: Optional[str] = None
    is_complete: bool = True
    is_permanent: bool = False
    solicited: bool = False  # address was pending resolution before appearing
