"""Tests for logging setup and helpers."""

from __future__ import annotations

import pytest

from rpi_multiboot import logging as logging_module


@pytest.fixture
def records():
    logging_module.logger.remove()
    captured: list[dict] = []

    def sink(message):
        captured.append(message.record)

    logging_module.logger.add(sink, level="TRACE", enqueue=False)
    return captured


def test_setup_logging_creates_operations_log(tmp_path):
    """Test INFO events reach operations.log."""
    logging_module.setup_logging(log_dir=tmp_path / "logs")

    logging_module.get_logger(source="test").info("Provisioned /dev/sdb2")
    logging_module.logger.complete()

    content = (tmp_path / "logs" / "operations.log").read_text()
    assert "Provisioned /dev/sdb2" in content
    assert not (tmp_path / "logs" / "debug.log").exists()


def test_setup_logging_debug_log(tmp_path):
    """Test --debug adds debug.log with DEBUG events."""
    logging_module.setup_logging(debug=True, log_dir=tmp_path / "logs")

    logging_module.get_logger(source="test").debug("Running command: mkfs.ext4")
    logging_module.logger.complete()

    assert "mkfs.ext4" in (tmp_path / "logs" / "debug.log").read_text()
    assert "mkfs.ext4" not in (tmp_path / "logs" / "operations.log").read_text()


def test_setup_logging_unwritable_dir(tmp_path):
    """Test an uncreatable log directory falls back to console only."""
    blocker = tmp_path / "file"
    blocker.write_text("")

    logging_module.setup_logging(log_dir=blocker / "logs")

    assert not (blocker / "logs").exists()


def test_get_logger_preserves_context_metadata(records):
    """Test bound logger keeps job_id, tags, and source metadata."""
    log = logging_module.get_logger(job_id="job-123", tags=["provision"], source="provision")
    log.info("Context test")

    record = records[0]
    assert record["extra"]["job_id"] == "job-123"
    assert record["extra"]["tags"] == ["provision"]
    assert record["extra"]["source"] == "provision"


def test_command_output_filter():
    """Test command output is only shown at TRACE level."""
    record = {
        "extra": {"tags": ["storage", "command-output"]},
        "level": logging_module.logger.level("DEBUG"),
    }
    assert logging_module._should_log_command_output(record) is False

    record["level"] = logging_module.logger.level("TRACE")
    assert logging_module._should_log_command_output(record) is True

    record["extra"]["tags"] = ["storage"]
    record["level"] = logging_module.logger.level("DEBUG")
    assert logging_module._should_log_command_output(record) is True


class TestOperationContext:
    """Tests for operation_context()."""

    def test_success(self, records):
        with logging_module.operation_context("switch", target="/dev/sda1") as log:
            log.info("Restoring")

        messages = [r["message"] for r in records]
        assert messages == ["Switch started", "Restoring", "Switch completed"]
        assert records[-1]["level"].name == "SUCCESS"
        assert records[0]["extra"]["job_id"].startswith("switch-")

    def test_failure_logged_and_reraised(self, records):
        with pytest.raises(ValueError):
            with logging_module.operation_context("provision"):
                raise ValueError("bad")

        assert records[-1]["message"] == "Provision failed"
        assert records[-1]["level"].name == "ERROR"
        assert records[-1]["extra"]["error_type"] == "ValueError"
