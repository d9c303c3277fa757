"""Anomaly kinds, severities and immutable anomaly records."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class AnomalyKind(str, Enum):
    """Classification of a detected ARP table deviation."""

    MAC_CHANGE = "mac_change"
    DUPLICATE_MAC = "duplicate_mac"
    GATEWAY_MAC_CHANGE = "gateway_mac_change"
    PREFIX_MISMATCH = "prefix_mismatch"
    RAPID_CHANGES = "rapid_changes"
    UNSOLICITED_BINDING = "unsolicited_binding"


# Base severity per kind (1-10). Rapid changes escalate from this base.
SEVERITY = {
    AnomalyKind.UNSOLICITED_BINDING: 4,
    AnomalyKind.MAC_CHANGE: 5,
    AnomalyKind.DUPLICATE_MAC: 6,
    AnomalyKind.RAPID_CHANGES: 7,
    AnomalyKind.PREFIX_MISMATCH: 8,
    AnomalyKind.GATEWAY_MAC_CHANGE: 9,
}

MAX_SEVERITY = 10

_TITLES = {
    AnomalyKind.MAC_CHANGE: "MAC address changed",
    AnomalyKind.DUPLICATE_MAC: "Duplicate MAC address",
    AnomalyKind.GATEWAY_MAC_CHANGE: "Gateway MAC address changed",
    AnomalyKind.PREFIX_MISMATCH: "Unexpected MAC vendor prefix",
    AnomalyKind.RAPID_CHANGES: "Rapid ARP changes",
    AnomalyKind.UNSOLICITED_BINDING: "Unsolicited ARP binding",
}


@dataclass(frozen=True)
class AnomalyRecord:
    """One detected deviation. Never mutated after creation."""

    kind: AnomalyKind
    ip_address: str
    current_mac: str
    details: str
    severity: int
    detected_at: datetime
    previous_mac: Optional[str] = None

    def __post_init__(self):
        if not 1 <= self.severity <= MAX_SEVERITY:
            raise ValueError(f"Severity must be between 1 and {MAX_SEVERITY}, got {self.severity}")

    @property
    def title(self) -> str:
        return _TITLES[self.kind]

    def describe(self) -> str:
        """Human-readable one-line description for alerts and the audit trail."""
        if self.previous_mac:
            binding = f"{self.previous_mac} -> {self.current_mac}"
        else:
            binding = self.current_mac
        return (
            f"[severity {self.severity}] {self.title}: {self.ip_address} "
            f"({binding}). {self.details}"
        )
