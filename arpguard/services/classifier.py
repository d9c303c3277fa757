"""
Anomaly classifier.

Rule evaluator run once per monitor cycle. Given the merge deltas,
the entry store, the trust policy and the change-rate tracker it produces the
cycle's anomaly records, in rule order:

1. gateway MAC change      (severity 9)
2. MAC change              (severity 5)
3. duplicate MAC           (severity 6)
4. rapid changes           (severity 7, +1 per threshold multiple, max 10)
5. unsolicited binding     (severity 4)
6. vendor prefix mismatch  (severity 8)

A rule fires at most once per (address, rule) pair per cycle, and a gateway
change never also produces a generic MAC change record.

The duplicate MAC rule scans the whole store rather than the cycle's deltas.
The only state the classifier keeps is the set of (address, MAC) pairs it
has already reported as duplicated. A pair leaves that set as soon as the
sharing stops or is suppressed (alert disabled, address allow-listed), so a
duplicate that outlives its suppression is reported again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Set, Tuple

from arpguard.models.anomaly import MAX_SEVERITY, SEVERITY, AnomalyKind, AnomalyRecord
from arpguard.models.binding import BindingDelta
from arpguard.network.constants import BROADCAST_MAC, ZERO_MAC
from arpguard.services.change_rate import GLOBAL_KEY, ChangeRateTracker
from arpguard.services.entry_store import EntryStore
from arpguard.services.mac_vendor import MacVendorLookup, get_vendor_lookup, is_multicast
from arpguard.services.trust_policy import TrustPolicy

logger = logging.getLogger(__name__)

SCOPE_ADDRESS = "address"
SCOPE_GLOBAL = "global"


@dataclass
class ClassifierSettings:
    """Alert toggles and rapid-change policy read by the classifier."""

    alert_on_gateway_change: bool = True
    alert_on_mac_change: bool = True
    alert_on_duplicate_mac: bool = True
    alert_on_unsolicited_binding: bool = True
    rapid_change_threshold: int = 5
    rapid_change_window: timedelta = timedelta(seconds=60)
    rapid_change_scope: str = SCOPE_ADDRESS


def rate_key(ip_address: str, scope: str) -> str:
    """Change-rate window key for an address under the given scope."""
    return GLOBAL_KEY if scope == SCOPE_GLOBAL else ip_address


def rapid_change_severity(count: int, threshold: int) -> int:
    return min(MAX_SEVERITY, SEVERITY[AnomalyKind.RAPID_CHANGES] + count // threshold)


class AnomalyClassifier:
    """Evaluates the detection rules for one cycle."""

    def __init__(self, vendor_lookup: Optional[MacVendorLookup] = None):
        self.vendor_lookup = vendor_lookup or get_vendor_lookup()
        self._reported_duplicates: Set[Tuple[str, str]] = set()

    def reset(self) -> None:
        """Forget reported duplicates; called when the entry store is cleared."""
        self._reported_duplicates.clear()

    def classify(
        self,
        deltas: Sequence[BindingDelta],
        store: EntryStore,
        policy: TrustPolicy,
        rates: ChangeRateTracker,
        config: ClassifierSettings,
        now: datetime,
        baseline_established: bool = True,
    ) -> List[AnomalyRecord]:
        """
        Classify one cycle's deltas.

        Args:
            deltas: Output of EntryStore.merge for this cycle
            store: Entry store after the merge
            policy: Current trust policy
            rates: Change-rate tracker, already updated with this cycle's changes
            config: Alert toggles and rapid-change policy
            now: Detection timestamp for every produced record
            baseline_established: Whether a snapshot had been merged before this one

        Returns:
            Anomaly records in rule order
        """
        relevant = [d for d in deltas if d.kind in (BindingDelta.NEW, BindingDelta.CHANGED)]
        changed = [d for d in relevant if d.kind == BindingDelta.CHANGED]

        emitted: Set[Tuple[str, AnomalyKind]] = set()
        records: List[AnomalyRecord] = []

        def emit(kind, ip_address, current_mac, details, severity=None, previous_mac=None):
            key = (ip_address, kind)
            if key in emitted:
                return
            emitted.add(key)
            records.append(AnomalyRecord(
                kind=kind,
                ip_address=ip_address,
                previous_mac=previous_mac,
                current_mac=current_mac,
                details=details,
                severity=severity if severity is not None else SEVERITY[kind],
                detected_at=now,
            ))

        self._gateway_changes(changed, policy, config, emit)
        self._mac_changes(changed, policy, config, emit)
        self._duplicate_macs(store, policy, config, emit)
        self._rapid_changes(changed, rates, config, now, emit)
        self._unsolicited_bindings(relevant, config, baseline_established, emit)
        self._prefix_mismatches(relevant, policy, emit)

        if records:
            logger.debug(f"Classifier produced {len(records)} anomalies from {len(relevant)} deltas")
        return records

    # ── Rules ────────────────────────────────────────────────────────

    def _gateway_changes(self, changed, policy, config, emit):
        for delta in changed:
            if not policy.is_gateway(delta.ip_address):
                continue
            if policy.is_trusted(delta.ip_address, delta.current_mac):
                continue
            if not config.alert_on_gateway_change:
                continue
            emit(
                AnomalyKind.GATEWAY_MAC_CHANGE,
                delta.ip_address,
                delta.current_mac,
                f"Gateway {delta.ip_address} now answers from {delta.current_mac} "
                f"instead of {delta.previous_mac}. Possible man-in-the-middle.",
                previous_mac=delta.previous_mac,
            )

    def _mac_changes(self, changed, policy, config, emit):
        if not config.alert_on_mac_change:
            return
        for delta in changed:
            if policy.is_gateway(delta.ip_address):
                continue
            if policy.is_trusted(delta.ip_address, delta.current_mac):
                continue
            emit(
                AnomalyKind.MAC_CHANGE,
                delta.ip_address,
                delta.current_mac,
                f"{delta.ip_address} changed from {delta.previous_mac} to {delta.current_mac}.",
                previous_mac=delta.previous_mac,
            )

    def _duplicate_macs(self, store, policy, config, emit):
        if not config.alert_on_duplicate_mac:
            self._reported_duplicates.clear()
            return

        active: Set[Tuple[str, str]] = set()
        for mac, addresses in store.shared_macs().items():
            if mac in (BROADCAST_MAC, ZERO_MAC) or is_multicast(mac):
                continue
            group = [ip for ip in addresses if not policy.is_multi_homed(ip)]
            if len(group) < 2:
                continue
            for ip in group:
                active.add((ip, mac))
                if (ip, mac) in self._reported_duplicates:
                    continue
                others = [other for other in group if other != ip]
                emit(
                    AnomalyKind.DUPLICATE_MAC,
                    ip,
                    mac,
                    f"MAC {mac} is also bound to {', '.join(others)}.",
                )

        # Pairs that stopped sharing or became suppressed are dropped
        self._reported_duplicates = active

    def _rapid_changes(self, changed, rates, config, now, emit):
        if not changed:
            return
        threshold = max(1, config.rapid_change_threshold)

        if config.rapid_change_scope == SCOPE_GLOBAL:
            candidates = [changed[-1]]
        else:
            candidates = changed

        for delta in candidates:
            key = rate_key(delta.ip_address, config.rapid_change_scope)
            count = rates.count_within_window(key, now, config.rapid_change_window)
            if count <= threshold:
                continue
            scope_label = "ARP table" if key == GLOBAL_KEY else delta.ip_address
            emit(
                AnomalyKind.RAPID_CHANGES,
                delta.ip_address,
                delta.current_mac,
                f"{count} MAC changes for {scope_label} within "
                f"{config.rapid_change_window.total_seconds():.0f}s (threshold {threshold}).",
                severity=rapid_change_severity(count, threshold),
                previous_mac=delta.previous_mac,
            )

    def _unsolicited_bindings(self, relevant, config, baseline_established, emit):
        if not config.alert_on_unsolicited_binding or not baseline_established:
            return
        for delta in relevant:
            if delta.kind != BindingDelta.NEW:
                continue
            if delta.solicited or delta.is_permanent or not delta.is_complete:
                continue
            emit(
                AnomalyKind.UNSOLICITED_BINDING,
                delta.ip_address,
                delta.current_mac,
                f"{delta.ip_address} appeared already resolved to {delta.current_mac} "
                "without a preceding resolution request.",
            )

    def _prefix_mismatches(self, relevant, policy, emit):
        for delta in relevant:
            expected = policy.expected_prefixes_for(delta.ip_address)
            if not expected:
                continue
            oui = self.vendor_lookup.get_oui(delta.current_mac)
            if oui in expected:
                continue
            vendor = self.vendor_lookup.lookup(delta.current_mac) or "unknown vendor"
            emit(
                AnomalyKind.PREFIX_MISMATCH,
                delta.ip_address,
                delta.current_mac,
                f"Prefix {oui} ({vendor}) is not among expected prefixes "
                f"{', '.join(sorted(expected))}.",
                previous_mac=delta.previous_mac,
            )
