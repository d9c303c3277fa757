"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - *Record / *Response classes: output schemas, no validators, so anything
    the engine holds serializes without crashing.  Export records carry a
    `schema_version` so downstream CSV/JSON consumers can detect changes.
  - *Update / *Create classes: request bodies with strict validators so bad
    configuration is rejected early with clear, actionable error messages.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from arpguard.network.constants import GATEWAY_ROLE
from arpguard.network.validators import is_valid_ip, normalize_mac, normalize_oui

EXPORT_SCHEMA_VERSION = 1


# ── Reusable validators ──────────────────────────────────────────────

def _validate_ip(value: str, field_name: str = "IP address") -> str:
    """Validate an IPv4 or IPv6 address string."""
    if not is_valid_ip(value):
        raise ValueError(
            f"Invalid {field_name} '{value}'. "
            "Expected IPv4 (e.g. 192.168.1.1) or IPv6 (e.g. 2001:db8::1)"
        )
    return value


def _validate_mac(value: str) -> str:
    """Validate and normalize a MAC address string."""
    mac = normalize_mac(value)
    if mac is None:
        raise ValueError(
            f"Invalid MAC address '{value}'. "
            "Expected format XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX "
            "(6 pairs of hex digits)"
        )
    return mac


# ═══════════════════════════════════════════════════════════════════════
# EXPORT RECORDS
# ═══════════════════════════════════════════════════════════════════════

class BindingEntryRecord(BaseModel):
    """Versioned export record for one ARP binding."""

    schema_version: int = EXPORT_SCHEMA_VERSION
    ip_address: str
    mac_address: str
    vendor: Optional[str] = None
    interface: Optional[str] = None
    is_complete: bool
    is_permanent: bool
    is_gateway: bool = False
    is_stale: bool = False
    first_seen: datetime
    last_seen: datetime
    mac_history: List[str] = Field(default_factory=list)


class AnomalyExportRecord(BaseModel):
    """Versioned export record for one detected anomaly."""

    schema_version: int = EXPORT_SCHEMA_VERSION
    kind: str
    ip_address: str
    previous_mac: Optional[str] = None
    current_mac: str
    details: str
    severity: int = Field(..., ge=1, le=10)
    detected_at: datetime
    description: str


# ═══════════════════════════════════════════════════════════════════════
# MONITOR STATUS
# ═══════════════════════════════════════════════════════════════════════

class StatisticsResponse(BaseModel):
    total_entries_monitored: int
    anomalies_detected: int
    mac_changes_detected: int
    duplicate_macs_detected: int
    gateway_anomalies: int
    anomalies_by_kind: Dict[str, int]
    cycles_completed: int
    cycles_failed: int
    cycles_skipped: int
    monitoring_started: Optional[datetime] = None
    total_monitoring_time: float


class MonitorStatusResponse(BaseModel):
    state: str
    is_checking: bool
    check_interval: float
    alert_on_gateway_change: bool
    alert_on_mac_change: bool
    alert_on_duplicate_mac: bool
    gateway_ip: Optional[str] = None
    gateway_mac: Optional[str] = None
    statistics: StatisticsResponse


class CheckResponse(BaseModel):
    performed: bool
    error: Optional[str] = None
    anomalies: List[AnomalyExportRecord]


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION REQUESTS
# ═══════════════════════════════════════════════════════════════════════

class MonitorSettingsUpdate(BaseModel):
    """Partial update of the schedule and alert toggles."""

    check_interval: Optional[float] = Field(None, gt=0, le=3600)
    alert_on_gateway_change: Optional[bool] = None
    alert_on_mac_change: Optional[bool] = None
    alert_on_duplicate_mac: Optional[bool] = None


class GatewayUpdate(BaseModel):
    gateway_ip: Optional[str] = None

    @field_validator("gateway_ip")
    @classmethod
    def validate_gateway_ip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_ip(v, "gateway IP address")


class TrustedMacCreate(BaseModel):
    ip_address: str
    mac_address: str

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str) -> str:
        return _validate_ip(v)

    @field_validator("mac_address")
    @classmethod
    def validate_mac_address(cls, v: str) -> str:
        return _validate_mac(v)


class MultiHomedCreate(BaseModel):
    ip_address: str

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str) -> str:
        return _validate_ip(v)


class ExpectedPrefixesUpdate(BaseModel):
    """Expected OUI prefixes for an IP address or the "gateway" role."""

    target: str
    prefixes: List[str] = Field(default_factory=list)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        if v == GATEWAY_ROLE:
            return v
        return _validate_ip(v, "target")

    @field_validator("prefixes")
    @classmethod
    def validate_prefixes(cls, v: List[str]) -> List[str]:
        normalized = []
        for prefix in v:
            oui = normalize_oui(prefix)
            if oui is None:
                raise ValueError(
                    f"Invalid OUI prefix '{prefix}'. Expected format XX:XX:XX"
                )
            normalized.append(oui)
        return normalized


class TrustPolicyResponse(BaseModel):
    gateway_ip: Optional[str] = None
    trusted_bindings: Dict[str, List[str]]
    multi_homed: List[str]
    expected_prefixes: Dict[str, List[str]]
