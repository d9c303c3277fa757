"""
Trust policy: which MAC addresses are legitimate for which IP addresses.

Also carries the designated gateway, the multi-homed allow-list used to
silence duplicate-MAC alerts, and expected OUI prefixes per address or role.
All setters validate first and raise ConfigurationError without touching the
existing policy.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from arpguard.errors import ConfigurationError
from arpguard.network.constants import GATEWAY_ROLE
from arpguard.network.validators import is_valid_ip, normalize_mac, normalize_oui


def _require_ip(ip_address: str) -> str:
    if not ip_address or not is_valid_ip(ip_address.strip()):
        raise ConfigurationError(
            f"Invalid IP address '{ip_address}'. "
            "Expected IPv4 (e.g. 192.168.1.1) or IPv6 (e.g. 2001:db8::1)"
        )
    return ip_address.strip()


def _require_mac(mac_address: str) -> str:
    mac = normalize_mac(mac_address)
    if mac is None:
        raise ConfigurationError(
            f"Invalid MAC address '{mac_address}'. "
            "Expected format XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX"
        )
    return mac


class TrustPolicy:
    """Trusted bindings, gateway designation and classifier policy extensions."""

    def __init__(self):
        self._trusted: Dict[str, Set[str]] = defaultdict(set)
        self._gateway_ip: Optional[str] = None
        self._multi_homed: Set[str] = set()
        self._expected_prefixes: Dict[str, Set[str]] = {}

    # ── Gateway ──────────────────────────────────────────────────────

    @property
    def gateway_ip(self) -> Optional[str]:
        return self._gateway_ip

    def set_gateway_ip(self, ip_address: Optional[str]) -> None:
        """Designate the gateway. None clears the designation."""
        self._gateway_ip = _require_ip(ip_address) if ip_address is not None else None

    def is_gateway(self, ip_address: str) -> bool:
        return self._gateway_ip is not None and ip_address == self._gateway_ip

    # ── Trusted MACs ─────────────────────────────────────────────────

    def add_trusted_mac(self, mac_address: str, ip_address: str) -> None:
        ip = _require_ip(ip_address)
        mac = _require_mac(mac_address)
        self._trusted[ip].add(mac)

    def remove_trusted_mac(self, mac_address: str, ip_address: Optional[str] = None) -> int:
        """
        Remove a trusted MAC for one IP, or from every IP when `ip_address` is None.

        Returns:
            Number of (ip, mac) trust pairs removed
        """
        mac = _require_mac(mac_address)
        targets = [_require_ip(ip_address)] if ip_address is not None else list(self._trusted)
        removed = 0
        for ip in targets:
            macs = self._trusted.get(ip)
            if macs and mac in macs:
                macs.discard(mac)
                removed += 1
                if not macs:
                    del self._trusted[ip]
        return removed

    def clear_trusted_macs(self) -> None:
        self._trusted.clear()

    def is_trusted(self, ip_address: str, mac_address: str) -> bool:
        return mac_address in self._trusted.get(ip_address, ())

    def trusted_macs(self, ip_address: str) -> Set[str]:
        return set(self._trusted.get(ip_address, ()))

    def trusted_bindings(self) -> Dict[str, List[str]]:
        return {ip: sorted(macs) for ip, macs in self._trusted.items()}

    # ── Multi-homed allow-list ───────────────────────────────────────

    def add_multi_homed(self, ip_address: str) -> None:
        self._multi_homed.add(_require_ip(ip_address))

    def remove_multi_homed(self, ip_address: str) -> None:
        self._multi_homed.discard(_require_ip(ip_address))

    def is_multi_homed(self, ip_address: str) -> bool:
        return ip_address in self._multi_homed

    @property
    def multi_homed(self) -> Set[str]:
        return set(self._multi_homed)

    # ── Expected vendor prefixes ─────────────────────────────────────

    def set_expected_prefixes(self, key: str, prefixes: Iterable[str]) -> None:
        """
        Set the OUI prefixes expected for an IP address or a role.

        Args:
            key: An IP address, or the role name "gateway"
            prefixes: OUIs such as "00:11:22"; an empty iterable removes the policy
        """
        if key != GATEWAY_ROLE:
            key = _require_ip(key)

        normalized = set()
        for prefix in prefixes:
            oui = normalize_oui(prefix)
            if oui is None:
                raise ConfigurationError(
                    f"Invalid OUI prefix '{prefix}'. Expected format XX:XX:XX"
                )
            normalized.add(oui)

        if normalized:
            self._expected_prefixes[key] = normalized
        else:
            self._expected_prefixes.pop(key, None)

    def expected_prefixes_for(self, ip_address: str) -> Optional[Set[str]]:
        """Expected OUIs for an address; an explicit address policy wins over the gateway role."""
        if ip_address in self._expected_prefixes:
            return set(self._expected_prefixes[ip_address])
        if self.is_gateway(ip_address) and GATEWAY_ROLE in self._expected_prefixes:
            return set(self._expected_prefixes[GATEWAY_ROLE])
        return None

    def expected_prefixes(self) -> Dict[str, List[str]]:
        return {key: sorted(values) for key, values in self._expected_prefixes.items()}
