"""
Data export API endpoints.

Provides CSV and JSON export for the ARP binding table, the anomaly history
and the audit trail.
"""

import json
import logging
import time

from fastapi import APIRouter, Depends, Query, Response

from arpguard.dependencies import get_detector
from arpguard.services.detector import ARPDetector
from arpguard.services.export import (
    ANOMALY_FIELDS,
    MEDIA_TYPES,
    TABLE_FIELDS,
    generate_filename,
    render_export,
)
from arpguard.utils.audit import AuditLogger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])


def _attachment(content: str, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/table")
def export_table(
    format: str = Query("csv", pattern="^(csv|json)$", description="Export format"),
    detector: ARPDetector = Depends(get_detector),
):
    """Export the current ARP binding table to CSV or JSON."""
    start_time = time.perf_counter()
    content, media_type, filename = render_export(
        "arp_table", detector.export_table(), TABLE_FIELDS, format, detector.audit_sink
    )
    logger.info(f"Export complete in {(time.perf_counter() - start_time)*1000:.1f}ms")
    return _attachment(content, media_type, filename)


@router.get("/anomalies")
def export_anomalies(
    format: str = Query("csv", pattern="^(csv|json)$", description="Export format"),
    detector: ARPDetector = Depends(get_detector),
):
    """Export the anomaly history to CSV or JSON."""
    start_time = time.perf_counter()
    content, media_type, filename = render_export(
        "arp_anomalies", detector.export_anomalies(), ANOMALY_FIELDS, format, detector.audit_sink
    )
    logger.info(f"Export complete in {(time.perf_counter() - start_time)*1000:.1f}ms")
    return _attachment(content, media_type, filename)


@router.get("/audit")
def export_audit_log(
    format: str = Query("csv", pattern="^(csv|json)$", description="Export format"),
    detector: ARPDetector = Depends(get_detector),
):
    """Export the session audit trail."""
    sink = detector.audit_sink
    if not isinstance(sink, AuditLogger):
        return Response(status_code=404, content="Audit trail is not kept in memory")

    filename = generate_filename("arp_audit", format)
    if format == "json":
        content = json.dumps(sink.generate_json_export(), indent=2)
    else:
        content = sink.generate_csv_export()
    sink.log_export(filename)
    return _attachment(content, MEDIA_TYPES[format], filename)
