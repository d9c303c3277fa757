"""Tests for the audit trail."""

import json
import logging
from datetime import datetime, timedelta, timezone

from arpguard.utils.audit import (
    EVENT_CONFIG_CHANGE,
    EVENT_EXPORT,
    AuditLogEntry,
    AuditLogger,
    set_request_id,
)


class TestAuditLogger:

    def test_record_and_query(self):
        audit = AuditLogger(session_id="s1")
        audit.record(EVENT_CONFIG_CHANGE, "gateway set")
        audit.log_export("arp_table.csv")

        assert [e.event_type for e in audit.entries] == [EVENT_CONFIG_CHANGE, EVENT_EXPORT]
        assert audit.entries[0].session_id == "s1"
        assert len(audit.entries_of_type(EVENT_EXPORT)) == 1

    def test_request_id_attached(self):
        audit = AuditLogger()
        set_request_id("req-123")
        try:
            audit.record(EVENT_CONFIG_CHANGE, "with request")
        finally:
            set_request_id(None)
        audit.record(EVENT_CONFIG_CHANGE, "without request")

        assert audit.entries[0].request_id == "req-123"
        assert audit.entries[1].request_id is None

    def test_entries_since(self):
        audit = AuditLogger()
        audit.record(EVENT_CONFIG_CHANGE, "x")
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert audit.entries_since(future) == []
        assert len(audit.entries_since(future - timedelta(hours=2))) == 1

    def test_prune_and_clear(self):
        audit = AuditLogger()
        audit.record(EVENT_CONFIG_CHANGE, "x")
        assert audit.prune_older_than(3600) == 0
        assert audit.prune_older_than(-1) == 1
        audit.record(EVENT_CONFIG_CHANGE, "y")
        audit.clear()
        assert audit.entries == []

    def test_emits_json_to_audit_logger(self, caplog):
        audit = AuditLogger(session_id="s2")
        with caplog.at_level(logging.INFO, logger="audit"):
            audit.record(EVENT_CONFIG_CHANGE, "interval 5s")
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["event_type"] == EVENT_CONFIG_CHANGE
        assert payload["session_id"] == "s2"

    def test_file_handler(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLogger()
        audit.attach_file_handler(str(path))
        audit.logger.setLevel(logging.INFO)
        try:
            audit.record(EVENT_CONFIG_CHANGE, "to file")
        finally:
            for handler in list(audit.logger.handlers):
                handler.close()
                audit.logger.removeHandler(handler)
        lines = path.read_text().splitlines()
        assert json.loads(lines[-1])["details"] == "to file"


class TestAuditExport:

    def test_csv_export(self):
        audit = AuditLogger(session_id="s3")
        audit.record(EVENT_CONFIG_CHANGE, 'quoted "value", with comma')
        lines = audit.generate_csv_export().strip().split("\n")
        assert lines[0] == ",".join(AuditLogEntry.CSV_FIELDS)
        assert '"quoted ""value"", with comma"' in lines[1]

    def test_json_export(self):
        audit = AuditLogger(session_id="s4")
        audit.record(EVENT_CONFIG_CHANGE, "x")
        data = audit.generate_json_export()
        assert data["session_id"] == "s4"
        assert data["entry_count"] == 1
        assert data["entries"][0]["details"] == "x"
