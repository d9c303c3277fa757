"""Running counters derived from classifier output and store size."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from arpguard.models.anomaly import AnomalyKind, AnomalyRecord


@dataclass
class DetectionStatistics:
    """Cumulative detection counters for a monitoring session."""

    total_entries_monitored: int = 0
    anomalies_detected: int = 0
    mac_changes_detected: int = 0
    duplicate_macs_detected: int = 0
    gateway_anomalies: int = 0
    anomalies_by_kind: Dict[str, int] = field(default_factory=dict)
    cycles_completed: int = 0
    cycles_failed: int = 0
    cycles_skipped: int = 0
    monitoring_started: Optional[datetime] = None
    total_monitoring_time: float = 0.0  # seconds, closed monitoring periods
    _running_since: Optional[datetime] = field(default=None, repr=False)

    def record_cycle(self, store_size: int, anomalies: Iterable[AnomalyRecord]) -> None:
        """Fold one successful cycle into the counters."""
        self.cycles_completed += 1
        self.total_entries_monitored = store_size
        for anomaly in anomalies:
            self.anomalies_detected += 1
            kind = anomaly.kind.value
            self.anomalies_by_kind[kind] = self.anomalies_by_kind.get(kind, 0) + 1
            if anomaly.kind == AnomalyKind.MAC_CHANGE:
                self.mac_changes_detected += 1
            elif anomaly.kind == AnomalyKind.DUPLICATE_MAC:
                self.duplicate_macs_detected += 1
            elif anomaly.kind == AnomalyKind.GATEWAY_MAC_CHANGE:
                self.gateway_anomalies += 1

    def record_failure(self) -> None:
        self.cycles_failed += 1

    def mark_started(self, now: datetime) -> None:
        self.monitoring_started = now
        self._running_since = now

    def mark_stopped(self, now: datetime) -> float:
        """Close the running period. Returns its length in seconds."""
        if self._running_since is None:
            return 0.0
        elapsed = max(0.0, (now - self._running_since).total_seconds())
        self.total_monitoring_time += elapsed
        self._running_since = None
        return elapsed

    def reset(self) -> None:
        fresh = DetectionStatistics()
        self.__dict__.update(fresh.__dict__)

    def snapshot(self, now: datetime) -> "DetectionStatistics":
        """Detached copy with the open monitoring period included in the total."""
        copy = replace(self, anomalies_by_kind=dict(self.anomalies_by_kind))
        if self._running_since is not None:
            copy.total_monitoring_time += max(0.0, (now - self._running_since).total_seconds())
        return copy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries_monitored": self.total_entries_monitored,
            "anomalies_detected": self.anomalies_detected,
            "mac_changes_detected": self.mac_changes_detected,
            "duplicate_macs_detected": self.duplicate_macs_detected,
            "gateway_anomalies": self.gateway_anomalies,
            "anomalies_by_kind": dict(self.anomalies_by_kind),
            "cycles_completed": self.cycles_completed,
            "cycles_failed": self.cycles_failed,
            "cycles_skipped": self.cycles_skipped,
            "monitoring_started": self.monitoring_started.isoformat() if self.monitoring_started else None,
            "total_monitoring_time": round(self.total_monitoring_time, 3),
        }
