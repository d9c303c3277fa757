"""Tests for CSV/JSON rendering of export records."""

import csv
import io
import json

import pytest

from arpguard.services.export import (
    ANOMALY_FIELDS,
    TABLE_FIELDS,
    generate_filename,
    render_export,
)
from arpguard.utils.audit import EVENT_EXPORT, AuditLogger
from conftest import ATTACKER_MAC, GATEWAY_IP, GATEWAY_MAC, row


@pytest.fixture
def populated(detector, source):
    source.set_rows(row(GATEWAY_IP, GATEWAY_MAC), row("192.168.1.10", "00:11:22:33:44:66"))
    detector.perform_single_check()
    source.set_rows(row(GATEWAY_IP, GATEWAY_MAC), row("192.168.1.10", ATTACKER_MAC))
    detector.perform_single_check()
    return detector


class TestRenderExport:

    def test_table_csv(self, populated):
        content, media_type, filename = render_export(
            "arp_table", populated.export_table(), TABLE_FIELDS, "csv"
        )
        rows = list(csv.DictReader(io.StringIO(content)))

        assert media_type == "text/csv"
        assert filename.startswith("arp_table_") and filename.endswith(".csv")
        assert [r["ip_address"] for r in rows] == [GATEWAY_IP, "192.168.1.10"]
        assert rows[1]["mac_history"] == "00:11:22:33:44:66"
        assert rows[0]["schema_version"] == "1"

    def test_anomalies_json(self, populated):
        content, media_type, _ = render_export(
            "arp_anomalies", populated.export_anomalies(), ANOMALY_FIELDS, "json"
        )
        data = json.loads(content)
        assert media_type == "application/json"
        assert data[0]["kind"] == "mac_change"
        assert data[0]["current_mac"] == ATTACKER_MAC

    def test_export_is_audited(self, populated):
        audit = AuditLogger()
        render_export("arp_table", populated.export_table(), TABLE_FIELDS, "csv", audit)
        assert len(audit.entries_of_type(EVENT_EXPORT)) == 1

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            render_export("arp_table", [], TABLE_FIELDS, "xml")

    def test_empty_csv_has_header(self):
        content, _, _ = render_export("arp_table", [], TABLE_FIELDS, "csv")
        assert content.strip() == ",".join(TABLE_FIELDS)

    def test_generate_filename(self):
        assert generate_filename("arp_table", "json").endswith(".json")
