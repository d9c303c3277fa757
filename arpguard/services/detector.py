"""
ARP anomaly detection engine.

ARPDetector owns the periodic schedule and drives one cycle at a time:

    snapshot query -> merge -> rate tracking -> classify -> record -> notify

Concurrency model:
- A non-blocking cycle guard admits at most one cycle. A trigger that finds
  the guard taken is dropped and counted in `cycles_skipped`.
- A state lock covers merge/classify/record and every configuration change
  or query, so each cycle sees a point-in-time consistent policy and store.
- Observers are notified after the state lock is released, with copies of
  the cycle's records.

The worker thread runs the first check immediately after `start()` and then
every `check_interval` seconds. `stop()` is cooperative: an in-flight cycle
finishes before the detector returns to IDLE.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from arpguard.config import Settings
from arpguard.errors import ConfigurationError, InvalidStateTransition, SnapshotQueryError
from arpguard.models.anomaly import AnomalyKind, AnomalyRecord
from arpguard.models.binding import BindingDelta, BindingEntry
from arpguard.network.validators import ip_to_int
from arpguard.schemas import AnomalyExportRecord, BindingEntryRecord
from arpguard.services.change_rate import ChangeRateTracker
from arpguard.services.classifier import (
    SCOPE_ADDRESS,
    SCOPE_GLOBAL,
    AnomalyClassifier,
    ClassifierSettings,
    rate_key,
)
from arpguard.services.dispatcher import AlertDispatcher, DetectorEvent, Handler
from arpguard.services.entry_store import EntryStore
from arpguard.services.mac_vendor import MacVendorLookup
from arpguard.services.snapshot import SnapshotSource, SystemArpTableSource, detect_default_gateway
from arpguard.services.statistics import DetectionStatistics
from arpguard.services.trust_policy import TrustPolicy
from arpguard.utils.audit import (
    EVENT_CONFIG_CHANGE,
    EVENT_ERROR,
    EVENT_MONITORING_START,
    EVENT_MONITORING_STOP,
    AuditLogger,
    AuditSink,
)
from arpguard.utils.logging_utils import LogTimer

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    MONITORING = "monitoring"


@dataclass
class CycleResult:
    """Outcome of one check request."""

    performed: bool
    anomalies: List[AnomalyRecord] = field(default_factory=list)
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are interpreted as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ARPDetector:
    """Passive ARP table monitor with trust, duplicate and rate analysis."""

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
        vendor_lookup: Optional[MacVendorLookup] = None,
    ):
        """
        Initialize the detector in the IDLE state.

        Args:
            snapshot_source: Supplies ARP table snapshots
            audit_sink: Receives lifecycle, anomaly and error events
                (defaults to an in-memory AuditLogger)
            settings: Initial schedule, alert and trust configuration
            clock: Returns the current time; injected for deterministic tests
            vendor_lookup: OUI resolver used for vendor names and prefix checks

        Raises:
            ConfigurationError: If the settings carry malformed values
        """
        settings = settings or Settings()

        self.snapshot_source = snapshot_source
        self.audit_sink = audit_sink or AuditLogger()
        self.dispatcher = AlertDispatcher(self.audit_sink)
        self._clock = clock

        self._store = EntryStore()
        self._policy = TrustPolicy()
        self._rates = ChangeRateTracker()
        self._classifier = AnomalyClassifier(vendor_lookup)
        self._anomalies: List[AnomalyRecord] = []
        self._stats = DetectionStatistics()
        self._skipped = 0

        self._state = MonitorState.IDLE
        self._is_checking = False
        self._state_lock = threading.Lock()
        self._cycle_guard = threading.Lock()
        self._skip_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._check_interval = self._validate_interval(settings.CHECK_INTERVAL_SECONDS)
        self._stale_after = settings.ENTRY_STALE_AFTER_SECONDS
        self._config = ClassifierSettings(
            alert_on_gateway_change=settings.ALERT_ON_GATEWAY_CHANGE,
            alert_on_mac_change=settings.ALERT_ON_MAC_CHANGE,
            alert_on_duplicate_mac=settings.ALERT_ON_DUPLICATE_MAC,
            alert_on_unsolicited_binding=settings.ALERT_ON_UNSOLICITED_BINDING,
        )
        self._apply_rapid_change_policy(
            settings.RAPID_CHANGE_THRESHOLD,
            settings.RAPID_CHANGE_WINDOW_SECONDS,
            settings.RAPID_CHANGE_SCOPE,
        )

        if settings.GATEWAY_IP:
            self._policy.set_gateway_ip(settings.GATEWAY_IP)
        for ip, macs in settings.TRUSTED_BINDINGS.items():
            for mac in macs:
                self._policy.add_trusted_mac(mac, ip)
        for ip in settings.MULTI_HOMED_ADDRESSES:
            self._policy.add_multi_homed(ip)
        for key, prefixes in settings.EXPECTED_PREFIXES.items():
            self._policy.set_expected_prefixes(key, prefixes)

    # ═══════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_monitoring(self) -> bool:
        return self._state == MonitorState.MONITORING

    @property
    def is_checking(self) -> bool:
        return self._is_checking

    @property
    def check_interval(self) -> float:
        return self._check_interval

    @property
    def alert_on_gateway_change(self) -> bool:
        return self._config.alert_on_gateway_change

    @property
    def alert_on_mac_change(self) -> bool:
        return self._config.alert_on_mac_change

    @property
    def alert_on_duplicate_mac(self) -> bool:
        return self._config.alert_on_duplicate_mac

    # ═══════════════════════════════════════════════════════════════════
    # MONITORING CONTROL
    # ═══════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """
        Begin periodic monitoring.

        Raises:
            InvalidStateTransition: If monitoring is already running
        """
        with self._lifecycle_lock:
            if self._state != MonitorState.IDLE:
                self._reject_transition("start", "monitoring is already running")

            with self._state_lock:
                if len(self._store) == 0:
                    self._stats.reset()
                    with self._skip_lock:
                        self._skipped = 0
                self._stats.mark_started(self._clock())
                self._state = MonitorState.MONITORING

            # Fresh event per worker so a worker that stopped itself cannot be revived
            self._stop_event = threading.Event()
            self._worker = threading.Thread(
                target=self._run_loop, args=(self._stop_event,), name="arp-monitor", daemon=True
            )
            logger.info(f"ARP monitoring started (interval={self._check_interval}s)")
            self.dispatcher.audit(
                EVENT_MONITORING_START,
                f"ARP monitoring started (interval={self._check_interval}s)",
            )
            self._worker.start()

        self.dispatcher.emit(DetectorEvent.MONITORING_STARTED, self)

    def stop(self) -> None:
        """
        Stop periodic monitoring after any in-flight check completes.

        Raises:
            InvalidStateTransition: If monitoring is not running
        """
        with self._lifecycle_lock:
            if self._state != MonitorState.MONITORING:
                self._reject_transition("stop", "monitoring is not running")

            self._stop_event.set()
            worker = self._worker
            if worker is not None and worker is not threading.current_thread():
                worker.join()
            self._worker = None

            with self._state_lock:
                elapsed = self._stats.mark_stopped(self._clock())
                self._state = MonitorState.IDLE

            logger.info(f"ARP monitoring stopped after {elapsed:.1f}s")
            self.dispatcher.audit(
                EVENT_MONITORING_STOP, f"ARP monitoring stopped after {elapsed:.1f}s"
            )

        self.dispatcher.emit(DetectorEvent.MONITORING_STOPPED, self)

    def perform_single_check(self) -> CycleResult:
        """
        Run one merge -> classify -> record -> notify cycle synchronously.

        Valid in any state. Returns immediately with `performed=False` when
        another cycle is already in flight.
        """
        if not self._cycle_guard.acquire(blocking=False):
            with self._skip_lock:
                self._skipped += 1
            logger.debug("Check dropped: another cycle is in progress")
            return CycleResult(performed=False)

        try:
            self._is_checking = True
            return self._run_cycle()
        finally:
            self._is_checking = False
            self._cycle_guard.release()

    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.perform_single_check()
            except Exception as e:
                logger.exception(f"Unexpected error in monitor cycle: {e}")
                self.dispatcher.audit(EVENT_ERROR, f"Unexpected error in monitor cycle: {e}")
            if stop_event.wait(self._check_interval):
                break

    def _run_cycle(self) -> CycleResult:
        with LogTimer(logger, "ARP table check", warn_after_ms=self._check_interval * 1000) as timer:
            try:
                rows = list(self.snapshot_source.query())
            except Exception as e:
                return self._fail_cycle(f"ARP snapshot query failed: {e}")

            with self._state_lock:
                now = self._clock()
                had_baseline = self._store.has_baseline
                try:
                    deltas = self._store.merge(rows, now)
                except SnapshotQueryError as e:
                    self._stats.record_failure()
                    failed = str(e)
                else:
                    failed = None
                    for delta in deltas:
                        if delta.kind == BindingDelta.CHANGED:
                            self._rates.record(
                                rate_key(delta.ip_address, self._config.rapid_change_scope), now
                            )
                    anomalies = self._classifier.classify(
                        deltas,
                        self._store,
                        self._policy,
                        self._rates,
                        self._config,
                        now,
                        baseline_established=had_baseline,
                    )
                    self._anomalies.extend(anomalies)
                    self._stats.record_cycle(len(self._store), anomalies)
                    table = self._store.entries()

            if failed is not None:
                return self._fail_cycle(f"ARP snapshot rejected: {failed}", counted=True)

            timer.set_record_count(len(rows))
            timer.add_info("anomaly_count", len(anomalies))

        self.dispatcher.emit(DetectorEvent.TABLE_UPDATED, table)
        self.dispatcher.dispatch_anomalies(list(anomalies))
        return CycleResult(performed=True, anomalies=list(anomalies))

    def _fail_cycle(self, message: str, counted: bool = False) -> CycleResult:
        if not counted:
            with self._state_lock:
                self._stats.record_failure()
        logger.error(message)
        self.dispatcher.audit(EVENT_ERROR, message)
        return CycleResult(performed=True, error=message)

    def _reject_transition(self, action: str, reason: str) -> None:
        message = f"Cannot {action}: {reason}"
        logger.warning(message)
        self.dispatcher.audit(EVENT_ERROR, message)
        raise InvalidStateTransition(message)

    # ═══════════════════════════════════════════════════════════════════
    # OBSERVERS
    # ═══════════════════════════════════════════════════════════════════

    def subscribe(self, event: DetectorEvent, handler: Handler) -> None:
        self.dispatcher.subscribe(event, handler)

    def unsubscribe(self, event: DetectorEvent, handler: Handler) -> bool:
        return self.dispatcher.unsubscribe(event, handler)

    # ═══════════════════════════════════════════════════════════════════
    # CONFIGURATION
    # ═══════════════════════════════════════════════════════════════════

    def _configure(self, description: str, apply: Callable[[], Any]) -> Any:
        try:
            with self._state_lock:
                result = apply()
        except ConfigurationError as e:
            self.dispatcher.audit(EVENT_ERROR, f"Rejected configuration change ({description}): {e}")
            raise
        logger.info(f"Configuration: {description}")
        self.dispatcher.audit(EVENT_CONFIG_CHANGE, description)
        return result

    @staticmethod
    def _validate_interval(seconds: float) -> float:
        try:
            value = float(seconds)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid check interval '{seconds}'")
        if value <= 0:
            raise ConfigurationError(f"Check interval must be positive, got {seconds}")
        return value

    def set_check_interval(self, seconds: float) -> None:
        """Change the polling interval; applies from the next scheduled wait."""
        value = self._validate_interval(seconds)

        def apply():
            self._check_interval = value

        self._configure(f"check interval set to {value}s", apply)

    def set_alert_on_gateway_change(self, enabled: bool) -> None:
        self._configure(
            f"gateway change alerts {'enabled' if enabled else 'disabled'}",
            lambda: setattr(self._config, "alert_on_gateway_change", bool(enabled)),
        )

    def set_alert_on_mac_change(self, enabled: bool) -> None:
        self._configure(
            f"MAC change alerts {'enabled' if enabled else 'disabled'}",
            lambda: setattr(self._config, "alert_on_mac_change", bool(enabled)),
        )

    def set_alert_on_duplicate_mac(self, enabled: bool) -> None:
        self._configure(
            f"duplicate MAC alerts {'enabled' if enabled else 'disabled'}",
            lambda: setattr(self._config, "alert_on_duplicate_mac", bool(enabled)),
        )

    def _apply_rapid_change_policy(self, threshold: int, window_seconds: float, scope: str) -> None:
        try:
            threshold = int(threshold)
            window_seconds = float(window_seconds)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid rapid change policy: threshold '{threshold}', window '{window_seconds}'"
            )
        if threshold < 1:
            raise ConfigurationError(f"Rapid change threshold must be at least 1, got {threshold}")
        if window_seconds <= 0:
            raise ConfigurationError(f"Rapid change window must be positive, got {window_seconds}")
        if scope not in (SCOPE_ADDRESS, SCOPE_GLOBAL):
            raise ConfigurationError(
                f"Invalid rapid change scope '{scope}'. Allowed values: {SCOPE_ADDRESS}, {SCOPE_GLOBAL}"
            )
        if scope != self._config.rapid_change_scope:
            self._rates.clear()
        self._config.rapid_change_threshold = threshold
        self._config.rapid_change_window = timedelta(seconds=window_seconds)
        self._config.rapid_change_scope = scope

    def set_rapid_change_policy(self, threshold: int, window_seconds: float, scope: str = SCOPE_ADDRESS) -> None:
        self._configure(
            f"rapid change policy set to >{threshold} changes per {window_seconds}s ({scope})",
            lambda: self._apply_rapid_change_policy(threshold, window_seconds, scope),
        )

    def set_gateway_ip(self, ip_address: Optional[str]) -> None:
        self._configure(
            f"gateway set to {ip_address}",
            lambda: self._policy.set_gateway_ip(ip_address),
        )

    def add_trusted_mac(self, mac_address: str, ip_address: str) -> None:
        self._configure(
            f"trusted {mac_address} for {ip_address}",
            lambda: self._policy.add_trusted_mac(mac_address, ip_address),
        )

    def remove_trusted_mac(self, mac_address: str, ip_address: Optional[str] = None) -> int:
        scope = f" for {ip_address}" if ip_address else ""
        return self._configure(
            f"removed trusted {mac_address}{scope}",
            lambda: self._policy.remove_trusted_mac(mac_address, ip_address),
        )

    def clear_trusted_macs(self) -> None:
        self._configure("cleared trusted MACs", self._policy.clear_trusted_macs)

    def add_multi_homed(self, ip_address: str) -> None:
        self._configure(
            f"{ip_address} allowed to share its MAC",
            lambda: self._policy.add_multi_homed(ip_address),
        )

    def remove_multi_homed(self, ip_address: str) -> None:
        self._configure(
            f"{ip_address} removed from multi-homed list",
            lambda: self._policy.remove_multi_homed(ip_address),
        )

    def set_expected_prefixes(self, target: str, prefixes: List[str]) -> None:
        self._configure(
            f"expected prefixes for {target} set to {', '.join(prefixes) or 'none'}",
            lambda: self._policy.set_expected_prefixes(target, prefixes),
        )

    def trust_policy_summary(self) -> Dict[str, Any]:
        with self._state_lock:
            return {
                "gateway_ip": self._policy.gateway_ip,
                "trusted_bindings": self._policy.trusted_bindings(),
                "multi_homed": sorted(self._policy.multi_homed),
                "expected_prefixes": self._policy.expected_prefixes(),
            }

    # ═══════════════════════════════════════════════════════════════════
    # DATA ACCESS
    # ═══════════════════════════════════════════════════════════════════

    def entry_for_ip(self, ip_address: str) -> Optional[BindingEntry]:
        with self._state_lock:
            return self._store.get(ip_address)

    def entries_with_mac(self, mac_address: str) -> List[BindingEntry]:
        with self._state_lock:
            return self._store.find_by_mac(mac_address)

    def current_table(self) -> List[BindingEntry]:
        with self._state_lock:
            return sorted(self._store.entries(), key=lambda e: _ip_sort_key(e.ip_address))

    def gateway_ip(self) -> Optional[str]:
        with self._state_lock:
            return self._policy.gateway_ip

    def gateway_mac(self) -> Optional[str]:
        with self._state_lock:
            gateway = self._policy.gateway_ip
            entry = self._store.get(gateway) if gateway else None
            return entry.mac_address if entry else None

    def clear_table(self) -> None:
        """Forget every binding and change window. Statistics reset on the next start."""
        self._configure("ARP table cleared", self._clear_table)

    def _clear_table(self) -> None:
        self._store.clear()
        self._rates.clear()
        self._classifier.reset()

    def statistics(self) -> DetectionStatistics:
        with self._state_lock:
            stats = self._stats.snapshot(self._clock())
        with self._skip_lock:
            stats.cycles_skipped = self._skipped
        return stats

    # ── Anomaly history ──────────────────────────────────────────────

    def detected_anomalies(self) -> List[AnomalyRecord]:
        with self._state_lock:
            return list(self._anomalies)

    def anomalies_since(self, since: datetime) -> List[AnomalyRecord]:
        since = _as_utc(since)
        with self._state_lock:
            return [a for a in self._anomalies if a.detected_at >= since]

    def anomalies_of_kind(self, kind: AnomalyKind) -> List[AnomalyRecord]:
        kind = AnomalyKind(kind)
        with self._state_lock:
            return [a for a in self._anomalies if a.kind == kind]

    def clear_anomaly_history(self) -> None:
        """Empty the anomaly history. Statistics counters are kept."""
        self._configure("anomaly history cleared", self._anomalies.clear)

    def prune_anomalies_before(self, cutoff: datetime) -> int:
        """Drop anomalies detected before `cutoff`. Returns the number removed."""
        cutoff = _as_utc(cutoff)

        def apply():
            before = len(self._anomalies)
            self._anomalies[:] = [a for a in self._anomalies if a.detected_at >= cutoff]
            return before - len(self._anomalies)

        return self._configure(f"anomalies before {cutoff.isoformat()} pruned", apply)

    # ═══════════════════════════════════════════════════════════════════
    # EXPORT
    # ═══════════════════════════════════════════════════════════════════

    def export_table_records(self) -> List[BindingEntryRecord]:
        now = self._clock()
        gateway = self.gateway_ip()
        return [
            BindingEntryRecord(
                ip_address=entry.ip_address,
                mac_address=entry.mac_address,
                vendor=self._classifier.vendor_lookup.lookup(entry.mac_address),
                interface=entry.interface,
                is_complete=entry.is_complete,
                is_permanent=entry.is_permanent,
                is_gateway=entry.ip_address == gateway,
                is_stale=entry.is_stale(now, self._stale_after),
                first_seen=entry.first_seen,
                last_seen=entry.last_seen,
                mac_history=entry.mac_history,
            )
            for entry in self.current_table()
        ]

    def export_anomaly_records(self, anomalies: Optional[List[AnomalyRecord]] = None) -> List[AnomalyExportRecord]:
        if anomalies is None:
            anomalies = self.detected_anomalies()
        return [to_export_record(a) for a in anomalies]

    def export_table(self) -> List[Dict[str, Any]]:
        """All bindings as JSON-compatible key-value records."""
        return [r.model_dump(mode="json") for r in self.export_table_records()]

    def export_anomalies(self) -> List[Dict[str, Any]]:
        """All anomalies as JSON-compatible key-value records."""
        return [r.model_dump(mode="json") for r in self.export_anomaly_records()]


def to_export_record(anomaly: AnomalyRecord) -> AnomalyExportRecord:
    return AnomalyExportRecord(
        kind=anomaly.kind.value,
        ip_address=anomaly.ip_address,
        previous_mac=anomaly.previous_mac,
        current_mac=anomaly.current_mac,
        details=anomaly.details,
        severity=anomaly.severity,
        detected_at=anomaly.detected_at,
        description=anomaly.describe(),
    )


def _ip_sort_key(ip_address: str):
    try:
        return (0, ip_to_int(ip_address), "")
    except ValueError:
        # IPv6 sorts after IPv4, lexically
        return (1, 0, ip_address)


def build_detector(settings: Settings, audit_sink: Optional[AuditSink] = None) -> ARPDetector:
    """
    Construct a detector reading the system ARP table.

    Detects the default gateway when none is configured and
    AUTO_DETECT_GATEWAY is enabled.
    """
    if audit_sink is None:
        audit_logger = AuditLogger()
        if settings.AUDIT_LOG_FILE:
            audit_logger.attach_file_handler(settings.AUDIT_LOG_FILE)
        audit_sink = audit_logger

    detector = ARPDetector(
        SystemArpTableSource(command=settings.ARP_COMMAND),
        audit_sink=audit_sink,
        settings=settings,
    )

    if not settings.GATEWAY_IP and settings.AUTO_DETECT_GATEWAY:
        gateway = detect_default_gateway()
        if gateway:
            detector.set_gateway_ip(gateway)

    return detector
