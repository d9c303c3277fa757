"""
CSV and JSON rendering of detector export records.

The detector produces versioned key-value records; this module turns them
into downloadable documents and records the export in the audit trail.
"""

import csv
import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from arpguard.utils.audit import EVENT_EXPORT, AuditSink

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")

TABLE_FIELDS = [
    "schema_version", "ip_address", "mac_address", "vendor", "interface",
    "is_complete", "is_permanent", "is_gateway", "is_stale",
    "first_seen", "last_seen", "mac_history",
]

ANOMALY_FIELDS = [
    "schema_version", "kind", "severity", "ip_address", "previous_mac",
    "current_mac", "details", "detected_at", "description",
]

MEDIA_TYPES = {"csv": "text/csv", "json": "application/json"}


def generate_filename(prefix: str, format: str) -> str:
    """Generate a timestamped filename."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}.{format}"


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, list):
        return ";".join(str(v) for v in value)
    return value


def records_to_csv(records: List[Dict[str, Any]], fieldnames: List[str]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    for record in records:
        writer.writerow({key: _csv_value(record.get(key)) for key in fieldnames})
    return output.getvalue()


def records_to_json(records: List[Dict[str, Any]]) -> str:
    return json.dumps(records, indent=2)


def render_export(
    prefix: str,
    records: List[Dict[str, Any]],
    fieldnames: List[str],
    format: str = "csv",
    audit_sink: Optional[AuditSink] = None,
) -> Tuple[str, str, str]:
    """
    Render export records to a document.

    Args:
        prefix: Filename prefix, e.g. "arp_table"
        records: JSON-compatible records from the detector
        fieldnames: Column order for CSV output
        format: "csv" or "json"
        audit_sink: Receives an export event when given

    Returns:
        Tuple of (content, media_type, filename)

    Raises:
        ValueError: If the format is not supported
    """
    if format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{format}'. Allowed: {', '.join(EXPORT_FORMATS)}")

    if format == "json":
        content = records_to_json(records)
    else:
        content = records_to_csv(records, fieldnames)

    filename = generate_filename(prefix, format)
    logger.info(f"Exported {len(records)} {prefix} records to {filename}")

    if audit_sink is not None:
        try:
            audit_sink.record(EVENT_EXPORT, f"Exported {len(records)} records to {filename}")
        except Exception as e:
            logger.error(f"Audit sink failed to record export: {e}")

    return content, MEDIA_TYPES[format], filename
