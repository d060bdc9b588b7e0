"""Тесты структурированного логирования."""

import json
import logging

import pytest

from network_deployer.core.context import RunContext, set_current_context
from network_deployer.core.logging import (
    HumanFormatter,
    JSONFormatter,
    LogConfig,
    RotationType,
    add_run_log_handler,
    get_logger,
    remove_run_log_handler,
)


@pytest.fixture
def record_factory():
    def _make(message="Бэкап снят", level=logging.INFO, **extra):
        record = logging.LogRecord("network_deployer.test", level, __file__, 1, message, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record
    return _make


@pytest.fixture
def context():
    ctx = RunContext(run_id="2024-01-01T10-00-00", started_at=None)
    set_current_context(ctx)
    yield ctx
    set_current_context(None)


class TestFormatters:

    def test_human_context_fields(self, record_factory):
        record = record_factory(
            run_id="r1", device="sw1", operation="bulk-update", batch=2, state="applying"
        )

        line = HumanFormatter().format(record)

        assert "INFO     - [r1] Бэкап снят" in line
        assert line.endswith("(device=sw1, operation=bulk-update, batch=2, state=applying)")

    def test_human_without_context(self, record_factory):
        line = HumanFormatter().format(record_factory())
        assert line.endswith("- Бэкап снят")

    def test_json_includes_extras(self, record_factory):
        record = record_factory(device="sw1", batch=1, attempt=None)

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Бэкап снят"
        assert data["level"] == "INFO"
        assert data["device"] == "sw1"
        assert data["batch"] == 1
        assert "attempt" not in data


class TestStructuredLogger:

    def test_bind_adds_fields(self, caplog):
        log = get_logger("network_deployer.test").bind(device="sw1", operation="backup")

        with caplog.at_level(logging.INFO):
            log.info("Подключено", state="checking_reachability")

        record = caplog.records[-1]
        assert record.device == "sw1"
        assert record.operation == "backup"
        assert record.state == "checking_reachability"

    def test_bind_does_not_mutate_parent(self, caplog):
        base = get_logger("network_deployer.test")
        base.bind(device="sw1")

        with caplog.at_level(logging.INFO):
            base.info("без устройства")

        assert not hasattr(caplog.records[-1], "device")

    def test_run_id_from_context(self, caplog, context):
        with caplog.at_level(logging.INFO):
            get_logger("network_deployer.test").warning("внимание")

        assert caplog.records[-1].run_id == "2024-01-01T10-00-00"

    def test_get_logger_cached(self):
        assert get_logger("network_deployer.x") is get_logger("network_deployer.x")


class TestLogConfig:

    def test_from_dict(self):
        config = LogConfig.from_dict({"level": "debug", "rotation": "time", "json_format": True})

        assert config.level == logging.DEBUG
        assert config.rotation == RotationType.TIME
        assert config.json_format is True

    def test_defaults(self):
        config = LogConfig.from_dict({})
        assert config.level == logging.INFO
        assert config.file_path is None


class TestRunLogHandler:

    def test_run_log_written(self, tmp_path):
        path = tmp_path / "run_1" / "run.log"
        handler = add_run_log_handler(path)
        try:
            get_logger("network_deployer.test").bind(device="sw1").info("Откат выполнен")
        finally:
            remove_run_log_handler(handler)

        text = path.read_text(encoding="utf-8")
        assert "Откат выполнен (device=sw1)" in text
        assert handler not in logging.getLogger().handlers

    def test_run_log_json(self, tmp_path):
        path = tmp_path / "run.log"
        handler = add_run_log_handler(path, json_format=True)
        try:
            get_logger("network_deployer.test").error("Ошибка", device="sw2")
        finally:
            remove_run_log_handler(handler)

        data = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
        assert data["device"] == "sw2"
