"""
Entry store: last known IP -> MAC bindings with per-address MAC history.

The store models "last known binding", not "current presence": an address
missing from a snapshot keeps its entry until the store is explicitly
cleared. Not thread-safe on its own; the detector serializes access.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from arpguard.errors import SnapshotQueryError
from arpguard.models.binding import BindingDelta, BindingEntry, SnapshotRow
from arpguard.network.validators import is_valid_ip, normalize_mac

logger = logging.getLogger(__name__)


class EntryStore:
    """Keyed mapping from IP address to its observed binding history."""

    def __init__(self):
        self._entries: Dict[str, BindingEntry] = {}
        self._by_mac: Dict[str, Set[str]] = defaultdict(set)
        # Addresses seen unresolved (a resolution request was in flight)
        self._pending: Set[str] = set()
        self._merge_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ip_address: str) -> bool:
        return ip_address in self._entries

    @property
    def has_baseline(self) -> bool:
        """True once at least one snapshot has been merged since the last clear."""
        return self._merge_count > 0

    def merge(self, rows: Iterable[SnapshotRow], now: datetime) -> List[BindingDelta]:
        """
        Merge one snapshot into the store.

        Rows are validated before anything is mutated, so a malformed
        snapshot leaves the store untouched.

        Args:
            rows: Snapshot rows from the snapshot source
            now: Observation timestamp applied to every touched entry

        Returns:
            One delta per resolved address, in snapshot order

        Raises:
            SnapshotQueryError: If a row carries an invalid IP or MAC address
        """
        resolved, unresolved = self._validate(rows)

        deltas = []
        for row, mac in resolved:
            deltas.append(self._merge_row(row, mac, now))

        for row in unresolved:
            if row.ip_address not in self._entries:
                self._pending.add(row.ip_address)

        self._merge_count += 1
        return deltas

    def _validate(self, rows: Iterable[SnapshotRow]):
        """
        Validate rows and collapse them to one row per address.

        An address listed on several interfaces with different MACs keeps
        the row matching its stored binding, otherwise the first one, so
        re-reading the same snapshot never flips the binding. A resolved
        row always wins over an unresolved one for the same address.
        """
        resolved: Dict[str, Tuple[SnapshotRow, str]] = {}
        unresolved: Dict[str, SnapshotRow] = {}
        for row in rows:
            ip = row.ip_address
            if not is_valid_ip(ip):
                raise SnapshotQueryError(f"Snapshot row has invalid IP address '{ip}'")
            if row.mac_address is None or not row.is_complete:
                unresolved.setdefault(ip, row)
                continue
            mac = normalize_mac(row.mac_address)
            if mac is None:
                raise SnapshotQueryError(
                    f"Snapshot row for {ip} has invalid MAC address '{row.mac_address}'"
                )

            chosen = resolved.get(ip)
            if chosen is None:
                resolved[ip] = (row, mac)
                continue
            if chosen[1] == mac:
                continue
            stored = self._entries.get(ip)
            if stored is not None and stored.mac_address == mac:
                resolved[ip] = (row, mac)
            logger.warning(
                f"Snapshot lists {ip} with conflicting MACs {chosen[1]} and {mac}; "
                f"keeping {resolved[ip][1]}"
            )

        pending = [row for ip, row in unresolved.items() if ip not in resolved]
        return list(resolved.values()), pending

    def _merge_row(self, row: SnapshotRow, mac: str, now: datetime) -> BindingDelta:
        ip = row.ip_address
        entry = self._entries.get(ip)

        if entry is None:
            solicited = ip in self._pending
            self._pending.discard(ip)
            self._entries[ip] = BindingEntry(
                ip_address=ip,
                mac_address=mac,
                interface=row.interface,
                is_complete=row.is_complete,
                is_permanent=row.is_permanent,
                first_seen=now,
                last_seen=now,
            )
            self._by_mac[mac].add(ip)
            logger.debug(f"New binding {ip} -> {mac}")
            return BindingDelta(
                kind=BindingDelta.NEW,
                ip_address=ip,
                current_mac=mac,
                is_complete=row.is_complete,
                is_permanent=row.is_permanent,
                solicited=solicited,
            )

        entry.last_seen = now
        entry.interface = row.interface or entry.interface
        entry.is_complete = row.is_complete
        entry.is_permanent = row.is_permanent

        if entry.mac_address == mac:
            return BindingDelta(
                kind=BindingDelta.UNCHANGED,
                ip_address=ip,
                current_mac=mac,
                is_complete=row.is_complete,
                is_permanent=row.is_permanent,
            )

        previous = entry.mac_address
        entry.mac_history.append(previous)
        entry.mac_address = mac
        self._unindex(previous, ip)
        self._by_mac[mac].add(ip)
        logger.info(f"Binding changed {ip}: {previous} -> {mac}")
        return BindingDelta(
            kind=BindingDelta.CHANGED,
            ip_address=ip,
            current_mac=mac,
            previous_mac=previous,
            is_complete=row.is_complete,
            is_permanent=row.is_permanent,
        )

    def _unindex(self, mac: str, ip: str) -> None:
        ips = self._by_mac.get(mac)
        if ips is None:
            return
        ips.discard(ip)
        if not ips:
            del self._by_mac[mac]

    # ── Read accessors ───────────────────────────────────────────────

    def get(self, ip_address: str) -> Optional[BindingEntry]:
        entry = self._entries.get(ip_address)
        return entry.copy() if entry else None

    def find_by_mac(self, mac_address: str) -> List[BindingEntry]:
        """All entries whose current MAC is `mac_address`, sorted by IP."""
        mac = normalize_mac(mac_address)
        if mac is None:
            return []
        return [self._entries[ip].copy() for ip in sorted(self._by_mac.get(mac, ()))]

    def addresses_sharing(self, mac_address: str) -> List[str]:
        """IP addresses currently bound to `mac_address`."""
        return sorted(self._by_mac.get(mac_address, ()))

    def shared_macs(self) -> Dict[str, List[str]]:
        """MACs currently bound to two or more addresses, each with its sorted addresses."""
        return {
            mac: sorted(ips)
            for mac, ips in sorted(self._by_mac.items())
            if len(ips) > 1
        }

    def entries(self) -> List[BindingEntry]:
        return [entry.copy() for entry in self._entries.values()]

    def clear(self) -> None:
        self._entries.clear()
        self._by_mac.clear()
        self._pending.clear()
        self._merge_count = 0
