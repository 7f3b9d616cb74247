"""
Test suite for hostaudit logging helpers
"""

import io
import logging
from datetime import datetime

from rich.console import Console

from hostaudit.core.model import Finding, Severity
from hostaudit.utils.logger import FindingLogger, console_level, setup_logger


def file_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, logging.FileHandler)]


class TestSetupLogger:
    """Console and file handler wiring."""

    def test_console_levels(self):
        assert console_level(0) == logging.WARNING
        assert console_level(1) == logging.INFO
        assert console_level(2) == logging.DEBUG
        assert console_level(5) == logging.DEBUG

    def test_file_handler_and_rotation(self, tmp_path):
        log_file = tmp_path / "raw" / "hostaudit.log"
        logger = setup_logger(1, log_file=str(log_file), console=Console(file=io.StringIO()))
        logger.info("first run")
        for handler in file_handlers(logger):
            handler.flush()
        assert "first run" in log_file.read_text(encoding="utf-8")

        logger = setup_logger(1, log_file=str(log_file), console=Console(file=io.StringIO()))
        logger.info("second run")
        for handler in file_handlers(logger):
            handler.flush()

        backup = tmp_path / "raw" / "hostaudit.log.bak"
        assert "first run" in backup.read_text(encoding="utf-8")
        assert "first run" not in log_file.read_text(encoding="utf-8")
        assert len(file_handlers(logger)) == 1

    def test_stealth_writes_no_file(self, tmp_path):
        log_file = tmp_path / "hostaudit.log"
        logger = setup_logger(2, log_file=str(log_file), stealth=True,
                              console=Console(file=io.StringIO()))
        logger.warning("visible")
        assert file_handlers(logger) == []
        assert not log_file.exists()
        assert logger.handlers[0].level == logging.WARNING

    def test_logger_does_not_propagate(self):
        logger = setup_logger(0, console=Console(file=io.StringIO()))
        assert logger.propagate is False


def test_finding_logger_writes_record_lines(caplog):
    finding = Finding(
        timestamp=datetime(2024, 5, 1, 10, 0, 0),
        severity=Severity.HIGH,
        probe_id="credentials",
        category="ssh_private_key",
        detail="Private key found: /tmp/id_rsa (encrypted: no)",
    )
    with caplog.at_level(logging.DEBUG, logger="hostaudit.findings"):
        FindingLogger()(finding)

    assert caplog.records[0].levelno == logging.DEBUG
    assert caplog.records[0].getMessage() == (
        "FINDING|2024-05-01 10:00:00.000000|HIGH|credentials|ssh_private_key|"
        "Private key found: /tmp/id_rsa (encrypted: no)|none"
    )
