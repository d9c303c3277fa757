"""
Health check service for ARPGuard.

Checks the monitor loop, the ARP listing command and the OUI vendor database,
and tracks uptime. Returns structured health responses with per-component status.
"""

import logging
import shutil
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from arpguard.config import settings
from arpguard.services.mac_vendor import get_vendor_lookup

logger = logging.getLogger(__name__)

# Captured at module load, used to compute uptime
_start_time = time.monotonic()

# The built-in fallback table is a few dozen prefixes; a loaded OUI file has thousands
MIN_FULL_OUI_DATABASE = 1000


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


def check_monitor(detector) -> ComponentHealth:
    """Report monitor state and whether recent cycles have been failing."""
    if detector is None:
        return ComponentHealth(name="monitor", status="error", message="Detector not initialised")

    stats = detector.statistics()
    message = f"{detector.state.value}, {stats.cycles_completed} cycles completed"
    if stats.cycles_failed and stats.cycles_failed >= stats.cycles_completed:
        return ComponentHealth(
            name="monitor",
            status="error",
            message=f"{message}, {stats.cycles_failed} failed",
        )
    if stats.cycles_failed:
        return ComponentHealth(
            name="monitor",
            status="degraded",
            message=f"{message}, {stats.cycles_failed} failed",
        )
    return ComponentHealth(name="monitor", status="ok", message=message)


def check_arp_command(detector) -> ComponentHealth:
    """Check that the ARP listing command is on PATH."""
    command = getattr(getattr(detector, "snapshot_source", None), "command", None)
    if not command:
        return ComponentHealth(name="arp_command", status="ok", message="Custom snapshot source")
    if shutil.which(command[0]) is None:
        return ComponentHealth(
            name="arp_command",
            status="error",
            message=f"Command not found: {command[0]}",
        )
    return ComponentHealth(name="arp_command", status="ok", message=" ".join(command))


def check_oui_database() -> ComponentHealth:
    """Vendor names fall back to a small built-in table when no OUI file is found."""
    size = get_vendor_lookup().database_size
    if size < MIN_FULL_OUI_DATABASE:
        return ComponentHealth(
            name="oui_database",
            status="degraded",
            message=f"Using built-in fallback table ({size} prefixes)",
        )
    return ComponentHealth(name="oui_database", status="ok", message=f"{size} prefixes")


def run_health_checks(detector) -> HealthResponse:
    """Run all health checks and return aggregated status."""
    checks = [
        check_monitor(detector),
        check_arp_command(detector),
        check_oui_database(),
    ]

    # The monitor and its data source are critical; vendor names are not.
    critical_names = {"monitor", "arp_command"}
    has_critical_error = any(
        c.status == "error" and c.name in critical_names for c in checks
    )
    has_any_problem = any(c.status != "ok" for c in checks)

    if has_critical_error:
        overall = "unhealthy"
    elif has_any_problem:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
