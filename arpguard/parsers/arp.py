"""ARP output parser supporting Linux, macOS, and Windows formats."""

import re
from typing import Callable, Dict, Iterator, List, Optional

from arpguard.network.validators import normalize_mac
from .base import BaseParser, ParseResult, ParsedArpEntry

_IFACE = r"[\w.@-]+"
_HOST = r"[?\w.-]+"

# router (192.168.1.1) at 00:11:22:33:44:55 [ether] PERM on eth0
# ? (192.168.1.20) at <incomplete> on eth0
_LINUX_ARP_RE = re.compile(
    rf"{_HOST}\s+\((?P<ip>[\d.]+)\)\s+at\s+(?P<mac>[0-9a-fA-F:]+|<incomplete>)\s+"
    rf"(?:\[[^\]]+\]\s+)?(?P<flags>(?:PERM|PUB|\s)*)on\s+(?P<iface>{_IFACE})"
)

# 192.168.1.1 dev eth0 lladdr 00:11:22:33:44:55 REACHABLE
# 192.168.1.20 dev eth0  FAILED
_IP_NEIGH_RE = re.compile(
    rf"(?P<ip>[\d.]+)\s+dev\s+(?P<iface>{_IFACE})\s*"
    r"(?:lladdr\s+(?P<mac>[0-9a-fA-F:]+))?\s*(?P<state>.*)"
)

# ? (192.168.1.1) at 0:11:22:33:44:55 on en0 ifscope permanent [ethernet]
_MACOS_RE = re.compile(
    rf"{_HOST}\s+\((?P<ip>[\d.]+)\)\s+at\s+(?P<mac>\S+)\s+on\s+(?P<iface>{_IFACE})(?P<trailer>.*)"
)

# Interface: 192.168.1.100 --- 0x4
_WINDOWS_IFACE_RE = re.compile(r"\s*Interface:\s+(?P<address>[\d.]+)\s+---")
_WINDOWS_ROW_RE = re.compile(r"\s*(?P<ip>[\d.]+)\s+(?P<mac>[0-9a-fA-F-]+)\s+(?P<type>\w+)")

# Neighbour states from `ip neigh`, checked in order
_NEIGH_STATES = (
    ("FAILED", "failed"),
    ("INCOMPLETE", "incomplete"),
    ("PERMANENT", "permanent"),
    ("NOARP", "static"),
)

_UNRESOLVED_MACS = {"<incomplete>", "(incomplete)"}


def _lines(data: str) -> Iterator[str]:
    for line in data.strip().splitlines():
        line = line.strip()
        if line:
            yield line


class ArpParser(BaseParser):
    """Parser for ARP output in various formats."""

    source_type: str = "arp"

    def __init__(self):
        self._parsers: Dict[str, Callable[[str], List[ParsedArpEntry]]] = {
            "linux": self._parse_linux,
            "macos": self._parse_macos,
            "windows": self._parse_windows,
        }

    def parse(self, data: str, platform: Optional[str] = None, **kwargs) -> ParseResult:
        """
        Parse ARP output and extract ARP entries.

        Args:
            data: Raw ARP output as string
            platform: Optional platform override ('linux', 'macos', 'windows')

        Returns:
            ParseResult containing parsed ARP entries
        """
        result = ParseResult(success=True, source_type=self.source_type)

        if not data or not data.strip():
            result.errors.append("Empty input data")
            result.success = False
            return result

        platform = platform or self.detect_format(data)
        parser = self._parsers.get(platform) if platform else None
        if parser is None:
            result.errors.append(f"Unsupported ARP format: {platform or 'unknown'}")
            result.success = False
            return result

        try:
            result.arp_entries = parser(data)
        except (ValueError, IndexError) as e:
            result.errors.append(f"Error parsing ARP data: {e}")
            result.success = False

        return result

    def detect_format(self, data: str) -> Optional[str]:
        """
        Detect the ARP output format from input data.

        Returns:
            'linux', 'macos', 'windows', or None
        """
        for line in _lines(data):
            if _WINDOWS_IFACE_RE.match(line) or line.startswith("Internet Address"):
                return "windows"
            if _IP_NEIGH_RE.match(line) and " dev " in line:
                return "linux"
            if re.match(rf"{_HOST}\s+\([\d.]+\)\s+at\s+", line):
                # macOS marks rows with "ifscope" or "[ethernet]"; Linux uses "[ether]"
                if "ifscope" in line or "[ethernet]" in line:
                    return "macos"
                return "linux"
        return None

    # ── Platform formats ─────────────────────────────────────────────

    def _parse_linux(self, data: str) -> List[ParsedArpEntry]:
        """Both `arp -a` and `ip neigh show` output; header lines are skipped."""
        entries = []
        for line in _lines(data):
            if line.startswith(("Address", "Neighbor")):
                continue
            if " at " in line:
                entry = self._linux_arp_entry(line)
            elif " dev " in line:
                entry = self._ip_neigh_entry(line)
            else:
                entry = None
            if entry is not None:
                entries.append(entry)
        return entries

    def _linux_arp_entry(self, line: str) -> Optional[ParsedArpEntry]:
        match = _LINUX_ARP_RE.match(line)
        if not match:
            return None
        if match["mac"] in _UNRESOLVED_MACS:
            return ParsedArpEntry(match["ip"], None, match["iface"], "incomplete")
        entry_type = "permanent" if "PERM" in (match["flags"] or "") else "dynamic"
        return ParsedArpEntry(match["ip"], self._normalize_mac(match["mac"]), match["iface"], entry_type)

    def _ip_neigh_entry(self, line: str) -> Optional[ParsedArpEntry]:
        match = _IP_NEIGH_RE.match(line)
        if not match:
            return None
        state = (match["state"] or "").upper()
        entry_type = next((kind for flag, kind in _NEIGH_STATES if flag in state), "dynamic")
        mac = self._normalize_mac(match["mac"]) if match["mac"] else None
        return ParsedArpEntry(match["ip"], mac, match["iface"], entry_type)

    def _parse_macos(self, data: str) -> List[ParsedArpEntry]:
        entries = []
        for line in _lines(data):
            match = _MACOS_RE.match(line)
            if not match:
                continue
            if match["mac"] in _UNRESOLVED_MACS:
                entries.append(ParsedArpEntry(match["ip"], None, match["iface"], "incomplete"))
                continue
            entry_type = "permanent" if "permanent" in match["trailer"] else "dynamic"
            entries.append(ParsedArpEntry(
                match["ip"], self._normalize_mac(match["mac"]), match["iface"], entry_type
            ))
        return entries

    def _parse_windows(self, data: str) -> List[ParsedArpEntry]:
        """
        Windows groups rows under an "Interface:" header; the interface's own
        address stands in for the interface name.
        """
        entries = []
        current_interface = None
        for line in _lines(data):
            header = _WINDOWS_IFACE_RE.match(line)
            if header:
                current_interface = header["address"]
                continue
            match = _WINDOWS_ROW_RE.match(line)
            if match:
                entries.append(ParsedArpEntry(
                    match["ip"],
                    self._normalize_mac(match["mac"]),
                    current_interface,
                    match["type"].lower(),
                ))
        return entries

    def _normalize_mac(self, mac: str) -> Optional[str]:
        """Normalize MAC address to lowercase with colons, stripping type markers."""
        if not mac:
            return None
        return normalize_mac(re.sub(r"\s*\[.*\]", "", mac.strip()))
