"""Parser package for ARP and routing table output.

Turns the text printed by `ip neigh`, `arp -a` and route commands into
structured rows the detection engine can merge.
"""

from .base import BaseParser, ParsedArpEntry, ParseResult
from .arp import ArpParser
from .route import RouteParser

__all__ = [
    "BaseParser",
    "ParsedArpEntry",
    "ParseResult",
    "ArpParser",
    "RouteParser",
]
