"""
Alert dispatcher: fan-out of engine events to subscribers and the audit sink.

Subscribers register per event kind. An event kind with no subscribers is a
no-op. A failing subscriber is logged and audited; it never stops delivery
to the remaining subscribers or propagates into the monitor cycle.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from arpguard.models.anomaly import AnomalyRecord
from arpguard.utils.audit import EVENT_ANOMALY, EVENT_ERROR, AuditSink

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class DetectorEvent(str, Enum):
    """Event kinds observers can subscribe to."""

    ANOMALY_DETECTED = "anomaly_detected"
    TABLE_UPDATED = "table_updated"
    MONITORING_STARTED = "monitoring_started"
    MONITORING_STOPPED = "monitoring_stopped"


class AlertDispatcher:
    """Registry of typed event subscribers."""

    def __init__(self, audit_sink: Optional[AuditSink] = None):
        self.audit_sink = audit_sink
        self._handlers: Dict[DetectorEvent, List[Handler]] = {event: [] for event in DetectorEvent}
        self._lock = threading.Lock()

    def subscribe(self, event: DetectorEvent, handler: Handler) -> None:
        event = DetectorEvent(event)
        with self._lock:
            self._handlers[event].append(handler)

    def unsubscribe(self, event: DetectorEvent, handler: Handler) -> bool:
        event = DetectorEvent(event)
        with self._lock:
            try:
                self._handlers[event].remove(handler)
                return True
            except ValueError:
                return False

    def subscriber_count(self, event: DetectorEvent) -> int:
        with self._lock:
            return len(self._handlers[DetectorEvent(event)])

    def emit(self, event: DetectorEvent, *args: Any) -> None:
        """Deliver an event to every subscriber registered for it."""
        with self._lock:
            handlers = list(self._handlers[event])
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Subscriber {getattr(handler, '__name__', handler)!r} failed on {event.value}: {e}")
                self.audit(EVENT_ERROR, f"Observer failure on {event.value}: {e}")

    def dispatch_anomalies(self, anomalies: List[AnomalyRecord]) -> None:
        """Audit and publish a cycle's anomalies in detection order."""
        for anomaly in anomalies:
            logger.warning(anomaly.describe())
            self.audit(EVENT_ANOMALY, anomaly.describe())
            self.emit(DetectorEvent.ANOMALY_DETECTED, anomaly)

    def audit(self, event_type: str, details: str) -> None:
        """Fire-and-forget write to the audit sink."""
        if self.audit_sink is None:
            return
        try:
            self.audit_sink.record(event_type, details)
        except Exception as e:
            logger.error(f"Audit sink failed to record {event_type}: {e}")
