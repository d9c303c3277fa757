from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "ARPGuard"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Monitoring schedule ────────────────────────────────────────────
    CHECK_INTERVAL_SECONDS: float = 3.0
    AUTO_START_MONITORING: bool = False

    # ── Alert toggles ──────────────────────────────────────────────────
    ALERT_ON_GATEWAY_CHANGE: bool = True
    ALERT_ON_MAC_CHANGE: bool = True
    ALERT_ON_DUPLICATE_MAC: bool = True
    ALERT_ON_UNSOLICITED_BINDING: bool = True

    # ── Rapid change detection ─────────────────────────────────────────
    RAPID_CHANGE_THRESHOLD: int = 5
    RAPID_CHANGE_WINDOW_SECONDS: float = 60.0
    RAPID_CHANGE_SCOPE: str = "address"  # "address" or "global"

    # ── Trust policy bootstrap ─────────────────────────────────────────
    GATEWAY_IP: Optional[str] = None
    AUTO_DETECT_GATEWAY: bool = True
    TRUSTED_BINDINGS: dict[str, list[str]] = {}  # ip -> trusted MACs
    MULTI_HOMED_ADDRESSES: list[str] = []
    EXPECTED_PREFIXES: dict[str, list[str]] = {}  # ip or "gateway" -> OUIs

    # Entries unseen for longer than this are flagged stale (never evicted)
    ENTRY_STALE_AFTER_SECONDS: Optional[float] = None

    # ── Snapshot source / audit trail ──────────────────────────────────
    ARP_COMMAND: Optional[str] = None  # Override e.g. "ip neigh show"
    AUDIT_LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
