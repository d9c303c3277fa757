"""Sliding-window counter of binding-change events."""

from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict

GLOBAL_KEY = "*"


class ChangeRateTracker:
    """
    Per-key deques of change timestamps.

    Expired timestamps are purged lazily when a window is counted, so no
    timer is needed. Access is serialized by the detector's state lock.
    """

    def __init__(self):
        self._events: Dict[str, Deque[datetime]] = defaultdict(deque)

    def record(self, key: str, timestamp: datetime) -> None:
        self._events[key].append(timestamp)

    def count_within_window(self, key: str, now: datetime, lookback: timedelta) -> int:
        events = self._events.get(key)
        if not events:
            return 0

        cutoff = now - lookback
        while events and events[0] < cutoff:
            events.popleft()

        if not events:
            del self._events[key]
            return 0
        return len(events)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
