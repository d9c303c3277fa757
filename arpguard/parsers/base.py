"""Base classes and data structures for ARP and routing output parsing."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from arpguard.models.binding import SnapshotRow


@dataclass
class ParsedArpEntry:
    """Represents a parsed ARP entry."""

    ip_address: str
    mac_address: Optional[str]
    interface: Optional[str] = None
    entry_type: Optional[str] = None  # dynamic/static/permanent/incomplete/failed

    @property
    def is_complete(self) -> bool:
        return self.mac_address is not None and self.entry_type not in ("incomplete", "failed")

    @property
    def is_permanent(self) -> bool:
        return self.entry_type in ("static", "permanent")

    def to_snapshot_row(self) -> SnapshotRow:
        return SnapshotRow(
            ip_address=self.ip_address,
            mac_address=self.mac_address if self.is_complete else None,
            interface=self.interface,
            is_complete=self.is_complete,
            is_permanent=self.is_permanent,
        )


@dataclass
class ParseResult:
    """Result of parsing operation."""

    success: bool
    source_type: str
    arp_entries: List[ParsedArpEntry] = field(default_factory=list)
    gateway: Optional[str] = None
    errors: List[str] = field(default_factory=list)


class BaseParser(ABC):
    """Abstract base class for all parsers."""

    source_type: str = "unknown"

    @abstractmethod
    def parse(self, data: str, **kwargs) -> ParseResult:
        """Parse input data and return structured result."""
        pass

    def detect_format(self, data: str) -> Optional[str]:
        """Detect the format of input data. Override in subclasses."""
        return None
