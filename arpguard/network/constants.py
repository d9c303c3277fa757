"""
Shared constants for address validation and ARP table handling.
"""
# ── Special hardware addresses ───────────────────────────────────
BROADCAST_MAC = "ff:ff:ff:ff:ff:ff"
ZERO_MAC = "00:00:00:00:00:00"

# ── Trust policy roles ───────────────────────────────────────────
GATEWAY_ROLE = "gateway"

