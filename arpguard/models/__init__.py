from .binding import SnapshotRow, BindingEntry, BindingDelta
from .anomaly import AnomalyKind, AnomalyRecord, SEVERITY, MAX_SEVERITY

__all__ = [
    "SnapshotRow",
    "BindingEntry",
    "BindingDelta",
    "AnomalyKind",
    "AnomalyRecord",
    "SEVERITY",
    "MAX_SEVERITY",
]
