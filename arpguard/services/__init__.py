"""Services package for ARPGuard."""

from .change_rate import ChangeRateTracker
from .classifier import AnomalyClassifier, ClassifierSettings
from .dispatcher import AlertDispatcher, DetectorEvent
from .entry_store import EntryStore
from .snapshot import SnapshotSource, SystemArpTableSource, detect_default_gateway
from .statistics import DetectionStatistics
from .trust_policy import TrustPolicy
from .detector import ARPDetector, CycleResult, MonitorState, build_detector

__all__ = [
    "ChangeRateTracker",
    "AnomalyClassifier",
    "ClassifierSettings",
    "AlertDispatcher",
    "DetectorEvent",
    "EntryStore",
    "SnapshotSource",
    "SystemArpTableSource",
    "detect_default_gateway",
    "DetectionStatistics",
    "TrustPolicy",
    "ARPDetector",
    "CycleResult",
    "MonitorState",
    "build_detector",
]
