"""
Pytest configuration and fixtures for ARPGuard tests.

Provides:
- FakeSnapshotSource: scripted ARP table snapshots
- FakeClock: manually advanced, timezone-aware clock
- A detector wired to both, with an in-memory audit trail
- FastAPI app with the detector dependency overridden
- AsyncClient for testing async endpoints
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from arpguard.config import Settings
from arpguard.dependencies import get_detector
from arpguard.errors import SnapshotQueryError
from arpguard.models.anomaly import AnomalyKind, AnomalyRecord
from arpguard.models.binding import SnapshotRow
from arpguard.services.detector import ARPDetector
from arpguard.services.snapshot import SnapshotSource
from arpguard.utils.audit import AuditLogger

GATEWAY_IP = "192.168.1.1"
GATEWAY_MAC = "00:11:22:33:44:55"
ATTACKER_MAC = "00:de:ad:be:ef:01"


def row(ip: str, mac: Optional[str], interface: str = "eth0", **kwargs) -> SnapshotRow:
    """Shorthand for a complete snapshot row (or an unresolved one when mac is None)."""
    if mac is None:
        kwargs.setdefault("is_complete", False)
    return SnapshotRow(ip_address=ip, mac_address=mac, interface=interface, **kwargs)


def make_anomaly(ip="192.168.1.10", kind=AnomalyKind.MAC_CHANGE, severity=5):
    return AnomalyRecord(
        kind=kind,
        ip_address=ip,
        previous_mac="00:11:22:33:44:66",
        current_mac=ATTACKER_MAC,
        details="changed",
        severity=severity,
        detected_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class FakeSnapshotSource(SnapshotSource):
    """Returns whatever rows the test last assigned, or raises when told to fail."""

    def __init__(self, rows: Optional[List[SnapshotRow]] = None):
        self.rows = list(rows or [])
        self.error: Optional[str] = None
        self.query_count = 0
        # When set, query() blocks until released so tests can hold a cycle open
        self.entered = threading.Event()
        self.release: Optional[threading.Event] = None

    def set_rows(self, *rows: SnapshotRow) -> None:
        self.rows = list(rows)

    def query(self) -> List[SnapshotRow]:
        self.query_count += 1
        self.entered.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error:
            raise SnapshotQueryError(self.error)
        return list(self.rows)


class FakeClock:
    """Deterministic clock for window and timestamp assertions."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "GATEWAY_IP": GATEWAY_IP,
        "AUTO_DETECT_GATEWAY": False,
        "CHECK_INTERVAL_SECONDS": 0.05,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def source() -> FakeSnapshotSource:
    return FakeSnapshotSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit_log() -> AuditLogger:
    return AuditLogger(session_id="test-session")


@pytest.fixture
def detector(source, clock, audit_log):
    """A detector with the gateway at 192.168.1.1; stopped after the test if running."""
    det = ARPDetector(source, audit_sink=audit_log, settings=make_settings(), clock=clock)
    yield det
    if det.is_monitoring:
        det.stop()


@pytest_asyncio.fixture
async def async_client(detector):
    """
    Create an AsyncClient pointing to the FastAPI app with the test detector
    injected in place of the system-backed one.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    from arpguard.main import app

    app.dependency_overrides[get_detector] = lambda: detector

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
