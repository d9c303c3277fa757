"""
IP and MAC address validation utilities.
"""
import re
from ipaddress import IPv4Address, ip_address
from typing import Optional

MAC_RE = re.compile(r"^([0-9A-Fa-f]{1,2}[:\-]){5}[0-9A-Fa-f]{1,2}$")
BARE_MAC_RE = re.compile(r"^[0-9A-Fa-f]{12}$")
OUI_RE = re.compile(r"^[0-9A-Fa-f]{2}([:\-]?[0-9A-Fa-f]{2}){2}$")


def is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IPv4 or IPv6 address."""
    try:
        ip_address(ip_str)
        return True
    except (ValueError, TypeError):
        return False


def is_valid_mac(mac: str) -> bool:
    """Check if a string looks like a MAC address (colon, dash or bare hex)."""
    if not mac or not isinstance(mac, str):
        return False
    mac = mac.strip()
    return bool(MAC_RE.match(mac) or BARE_MAC_RE.match(mac))


def normalize_mac(mac: Optional[str]) -> Optional[str]:
    """
    Normalize MAC address to lowercase with colons.

    Handles:
    - 00:11:22:33:44:55 -> 00:11:22:33:44:55
    - 00-11-22-33-44-55 -> 00:11:22:33:44:55
    - 0:11:22:33:44:55  -> 00:11:22:33:44:55
    - 001122334455      -> 00:11:22:33:44:55

    Returns None for anything that is not a MAC address.
    """
    if not mac:
        return None
    mac = mac.strip()
    if BARE_MAC_RE.match(mac):
        return ":".join(mac[i : i + 2] for i in range(0, 12, 2)).lower()
    if not MAC_RE.match(mac):
        return None
    parts = mac.replace("-", ":").split(":")
    return ":".join(part.zfill(2) for part in parts).lower()


def normalize_oui(prefix: str) -> Optional[str]:
    """Normalize an OUI prefix (e.g. '00-11-22', '001122') to '00:11:22'."""
    if not prefix or not OUI_RE.match(prefix.strip()):
        return None
    clean = re.sub(r"[:\-]", "", prefix.strip())
    return ":".join(clean[i : i + 2] for i in range(0, 6, 2)).lower()


def ip_to_int(ip_str: str) -> int:
    """Convert a dotted IPv4 address to its integer value."""
    return int(IPv4Address(ip_str))

