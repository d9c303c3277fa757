"""
Structured audit logging for the detection engine.

This module provides the AuditSink interface the engine writes lifecycle and
error events to, and AuditLogger, the default sink. AuditLogger keeps an
in-memory trail for the current session and emits every event to a dedicated
'audit' logger in structured JSON format.

Key features:
- Per-session identifier attached to every entry
- Thread-safe and async-safe request_id tracking via ContextVar
- Query, prune and CSV/JSON export of the trail
"""

import csv
import io
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


# Context variable for tracking request_id across async calls
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)


def set_request_id(request_id: Optional[str]) -> None:
    """Set the request_id for the current context."""
    _request_id_context.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request_id from context, or None."""
    return _request_id_context.get()


# ── Event types ───────────────────────────────────────────────────────
EVENT_MONITORING_START = "monitoring_start"
EVENT_MONITORING_STOP = "monitoring_stop"
EVENT_ANOMALY = "anomaly"
EVENT_CONFIG_CHANGE = "config_change"
EVENT_EXPORT = "export"
EVENT_ERROR = "error"


class AuditSink(ABC):
    """Append-only recorder for human-readable engine events."""

    @abstractmethod
    def record(self, event_type: str, details: Optional[str] = None) -> None:
        """Record one event. Implementations should not block for long."""


@dataclass(frozen=True)
class AuditLogEntry:
    """One audit trail entry."""

    timestamp: datetime
    event_type: str
    details: str
    session_id: str
    request_id: Optional[str] = None

    CSV_FIELDS = ("timestamp", "event_type", "details", "session_id", "request_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'event_type': self.event_type,
            'details': self.details,
            'session_id': self.session_id,
            'request_id': self.request_id,
        }

    def to_csv_line(self) -> str:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="")
        writer.writerow([self.to_dict()[name] or "" for name in self.CSV_FIELDS])
        return output.getvalue()


class AuditLogger(AuditSink):
    """
    Default audit sink.

    Entries are kept in memory for the lifetime of the process and mirrored
    as JSON lines to the 'audit' logger, which can be routed to a file with
    `attach_file_handler`. Retention is controlled by the caller through
    `prune_older_than` and `clear`.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.logger = logging.getLogger('audit')
        self.session_id = session_id or str(uuid.uuid4())
        self._entries: List[AuditLogEntry] = []
        self._lock = threading.Lock()

    def attach_file_handler(self, path: str) -> None:
        """Mirror audit events to a file (one JSON object per line)."""
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)

    def record(self, event_type: str, details: Optional[str] = None) -> None:
        """
        Core method to log an audit event.

        Args:
            event_type: Type of event (e.g. 'monitoring_start', 'anomaly', 'error')
            details: Optional human-readable description
        """
        entry = AuditLogEntry(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            details=details or "",
            session_id=self.session_id,
            request_id=get_request_id(),
        )
        with self._lock:
            self._entries.append(entry)
        self.logger.info(json.dumps(entry.to_dict()))

    # ── Convenience methods ──────────────────────────────────────────

    def log_export(self, filename: str) -> None:
        self.record(EVENT_EXPORT, f"Exported {filename}")

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def entries(self) -> List[AuditLogEntry]:
        with self._lock:
            return list(self._entries)

    def entries_since(self, since: datetime) -> List[AuditLogEntry]:
        with self._lock:
            return [e for e in self._entries if e.timestamp >= since]

    def entries_of_type(self, event_type: str) -> List[AuditLogEntry]:
        with self._lock:
            return [e for e in self._entries if e.event_type == event_type]

    # ── Cleanup ──────────────────────────────────────────────────────

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune_older_than(self, age_seconds: float) -> int:
        """Drop entries older than `age_seconds`. Returns the number removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=age_seconds)
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.timestamp >= cutoff]
            return before - len(self._entries)

    # ── Export ───────────────────────────────────────────────────────

    def generate_csv_export(self) -> str:
        lines = [",".join(AuditLogEntry.CSV_FIELDS)]
        lines.extend(entry.to_csv_line() for entry in self.entries)
        return "\n".join(lines) + "\n"

    def generate_json_export(self) -> Dict[str, Any]:
        entries = self.entries
        return {
            'session_id': self.session_id,
            'exported_at': datetime.now(timezone.utc).isoformat(),
            'entry_count': len(entries),
            'entries': [e.to_dict() for e in entries],
        }
