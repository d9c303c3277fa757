"""Tests for the console formatter and LogTimer."""

import logging

import pytest

from arpguard.utils.logging_utils import ColoredFormatter, LogTimer

logger = logging.getLogger("arpguard.tests.timer")


def _record(msg="hello", **extra):
    record = logging.LogRecord("arpguard.test", logging.INFO, __file__, 10, msg, None, None, func="check")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestColoredFormatter:

    def test_plain_output_has_no_escape_codes(self):
        line = ColoredFormatter(use_color=False).format(_record())
        assert "\033[" not in line
        assert "INFO" in line
        assert line.endswith("hello")

    def test_extras_rendered_in_order(self):
        line = ColoredFormatter(use_color=False).format(
            _record(anomaly_count=2, duration_ms=12.345, record_count=7)
        )
        assert line.endswith("[duration=12.3ms, records=7, anomalies=2]")

    def test_worker_thread_tagged(self):
        record = _record()
        record.threadName = "arp-monitor"
        assert "@arp-monitor" in ColoredFormatter(use_color=False).format(record)


class TestLogTimer:

    def test_completion_logged_with_counts(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with LogTimer(logger, "ARP table check") as timer:
                timer.set_record_count(3)
                timer.add_info("anomaly_count", 1)

        done = [r for r in caplog.records if r.getMessage() == "Completed: ARP table check"]
        assert len(done) == 1
        assert done[0].record_count == 3
        assert done[0].anomaly_count == 1
        assert timer.duration_ms >= 0

    def test_slow_operation_warns(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with LogTimer(logger, "ARP table check", warn_after_ms=-1):
                pass
        assert any(r.levelno == logging.WARNING and "Slow" in r.getMessage() for r in caplog.records)

    def test_failure_logged_and_propagated(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with pytest.raises(RuntimeError):
                with LogTimer(logger, "ARP table check"):
                    raise RuntimeError("boom")
        assert any(r.levelno == logging.ERROR and "boom" in r.getMessage() for r in caplog.records)
