"""Address validation helpers."""

from .validators import (
    is_valid_ip,
    is_valid_mac,
    normalize_mac,
    normalize_oui,
    ip_to_int,
)

__all__ = [
    "is_valid_ip",
    "is_valid_mac",
    "normalize_mac",
    "normalize_oui",
    "ip_to_int",
]
