"""
MAC vendor lookup service.

Resolves the organisation behind a hardware address from the IEEE OUI list
that the mac-vendor-lookup package keeps in its cache. The list is read once
into a dict so lookups inside a monitor cycle never touch the network or the
package's async client.
"""

import logging
import os
import sys
from typing import Dict, Optional

from arpguard.network.validators import normalize_mac

logger = logging.getLogger(__name__)

VENDOR_FILE_NAME = "mac-vendors.txt"

# First-octet flag bits
MULTICAST_BIT = 0x01
LOCAL_ADMIN_BIT = 0x02

# Used when the IEEE list has not been downloaded yet
_FALLBACK_VENDORS: Dict[str, str] = {
    "000C29": "VMware",
    "005056": "VMware",
    "000569": "VMware",
    "00163E": "Xen",
    "080027": "VirtualBox",
    "525400": "QEMU/KVM",
    "B827EB": "Raspberry Pi",
    "DCA632": "Raspberry Pi",
    "E45F01": "Raspberry Pi",
}


def _first_octet(mac: str) -> Optional[int]:
    normalized = normalize_mac(mac)
    if normalized is None:
        return None
    return int(normalized[:2], 16)


def is_locally_administered(mac: str) -> bool:
    """True for randomised or otherwise non-IEEE-assigned addresses."""
    octet = _first_octet(mac)
    return octet is not None and bool(octet & LOCAL_ADMIN_BIT)


def is_multicast(mac: str) -> bool:
    """True for group addresses, including the broadcast address."""
    octet = _first_octet(mac)
    return octet is not None and bool(octet & MULTICAST_BIT)


def find_vendor_file() -> Optional[str]:
    """Locate the vendor list in the cache directories mac-vendor-lookup writes to."""
    candidates = []
    try:
        import mac_vendor_lookup
    except ImportError:
        logger.debug("mac-vendor-lookup is not installed")
    else:
        package_dir = os.path.dirname(os.path.abspath(mac_vendor_lookup.__file__))
        candidates.append(os.path.join(os.path.dirname(package_dir), "cache", VENDOR_FILE_NAME))

    candidates.append(os.path.join(sys.prefix, "cache", VENDOR_FILE_NAME))
    candidates.append(os.path.join(os.path.expanduser("~"), ".cache", VENDOR_FILE_NAME))
    return next((path for path in candidates if os.path.isfile(path)), None)


def load_vendor_file(path: str) -> Dict[str, str]:
    """
    Read a vendor list of "HEXPREFIX:Vendor Name" lines.

    Returns an empty dict when the file cannot be read.
    """
    vendors: Dict[str, str] = {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                prefix, sep, name = line.strip().partition(":")
                if sep and prefix and name.strip():
                    vendors[prefix.strip().upper()] = name.strip()
    except OSError as e:
        logger.error(f"Failed to read vendor file {path}: {e}")
        return {}
    logger.info(f"Loaded {len(vendors)} OUI entries from {path}")
    return vendors


class MacVendorLookup:
    """
    OUI and vendor resolution for the classifier and the table export.

    Args:
        vendors: Prebuilt OUI (upper-case hex, no separators) -> vendor map.
            When omitted the IEEE list is loaded from the package cache.
    """

    def __init__(self, vendors: Optional[Dict[str, str]] = None):
        if vendors is None:
            path = find_vendor_file()
            if path is None:
                logger.warning(
                    "IEEE OUI vendor file not found, using the built-in table. "
                    "Download it with: python -c \"from mac_vendor_lookup import MacLookup; "
                    "MacLookup().update_vendors()\""
                )
                vendors = {}
            else:
                vendors = load_vendor_file(path)
        self._vendors = vendors

    @property
    def database_size(self) -> int:
        return len(self._vendors)

    def get_oui(self, mac: str) -> Optional[str]:
        """First three octets in xx:xx:xx form, or None for an invalid MAC."""
        normalized = normalize_mac(mac)
        return normalized[:8] if normalized else None

    def lookup(self, mac: str) -> Optional[str]:
        """
        Vendor name for a MAC address.

        Returns:
            Vendor name, "Locally Administered" for random MACs, or None.
        """
        oui = self.get_oui(mac)
        if oui is None:
            return None
        if is_locally_administered(mac):
            return "Locally Administered"
        key = oui.replace(":", "").upper()
        return self._vendors.get(key) or _FALLBACK_VENDORS.get(key)


_vendor_lookup: Optional[MacVendorLookup] = None


def get_vendor_lookup() -> MacVendorLookup:
    """Get or create the shared vendor lookup instance."""
    global _vendor_lookup
    if _vendor_lookup is None:
        _vendor_lookup = MacVendorLookup()
    return _vendor_lookup


def lookup_mac_vendor(mac: str) -> Optional[str]:
    """Convenience function to lookup a MAC vendor."""
    return get_vendor_lookup().lookup(mac)
