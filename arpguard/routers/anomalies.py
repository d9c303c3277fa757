from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from arpguard.dependencies import get_detector
from arpguard.models.anomaly import AnomalyKind
from arpguard.schemas import AnomalyExportRecord
from arpguard.services.detector import ARPDetector

router = APIRouter(prefix="/api/anomalies", tags=["anomalies"])


@router.get("", response_model=List[AnomalyExportRecord])
def list_anomalies(
    since: Optional[datetime] = Query(None, description="Only anomalies detected at or after this time"),
    kind: Optional[AnomalyKind] = Query(None, description="Only anomalies of this kind"),
    min_severity: int = Query(1, ge=1, le=10),
    detector: ARPDetector = Depends(get_detector),
):
    if since is not None:
        anomalies = detector.anomalies_since(since)
    elif kind is not None:
        anomalies = detector.anomalies_of_kind(kind)
    else:
        anomalies = detector.detected_anomalies()

    if kind is not None:
        anomalies = [a for a in anomalies if a.kind == kind]
    anomalies = [a for a in anomalies if a.severity >= min_severity]

    return detector.export_anomaly_records(anomalies)


@router.delete("")
def clear_anomalies(
    before: Optional[datetime] = Query(None, description="Only remove anomalies detected before this time"),
    detector: ARPDetector = Depends(get_detector),
):
    """Clear the anomaly history, or prune entries older than `before`."""
    if before is None:
        detector.clear_anomaly_history()
        return {"cleared": True}
    removed = detector.prune_anomalies_before(before)
    return {"cleared": False, "removed": removed}
