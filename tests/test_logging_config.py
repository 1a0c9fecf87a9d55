"""Tests for structured logging and deployment log context."""

import asyncio
import json
import logging
import sys

import pytest

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import (
    DeploymentContext,
    get_context_dict,
    get_deployment_id,
)
from src.logging_config.performance import log_duration
from src.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    resolve_config,
)


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.slow_threshold_ms == 1000.0
        assert config.service_name == "rollout-engine"

    def test_custom_config(self):
        config = LoggingConfig(level=LogLevel.DEBUG, format=LogFormat.CONSOLE, service_name="t")
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.CONSOLE
        assert config.service_name == "t"

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestDeploymentContext:
    """Tests for deployment-scoped context binding."""

    def test_context_sets_deployment_id(self):
        with DeploymentContext(deployment_id="dep-1"):
            assert get_deployment_id() == "dep-1"

    def test_context_cleanup_on_exit(self):
        with DeploymentContext(deployment_id="dep-1", operation="rollout"):
            pass
        assert get_deployment_id() == ""
        assert get_context_dict() == {}

    def test_get_context_dict(self):
        with DeploymentContext(deployment_id="dep-1", operation="rollback", initiator="alice"):
            ctx = get_context_dict()
        assert ctx == {"deployment_id": "dep-1", "operation": "rollback", "initiator": "alice"}

    def test_context_dict_empty_outside(self):
        assert get_context_dict() == {}

    def test_bind_extra_context(self):
        with DeploymentContext(deployment_id="dep-1") as ctx:
            ctx.bind(batch=2)
            assert get_context_dict()["batch"] == 2

    def test_nested_contexts_restore_outer(self):
        with DeploymentContext(deployment_id="outer"):
            with DeploymentContext(deployment_id="inner"):
                assert get_deployment_id() == "inner"
            assert get_deployment_id() == "outer"

    @pytest.mark.asyncio
    async def test_tasks_keep_their_own_context(self):
        seen = {}

        async def worker(dep_id):
            with DeploymentContext(deployment_id=dep_id):
                await asyncio.sleep(0)
                seen[dep_id] = get_deployment_id()

        await asyncio.gather(worker("a"), worker("b"))
        assert seen == {"a": "a", "b": "b"}


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed

    def test_includes_service_name(self):
        parsed = json.loads(StructuredFormatter(service_name="svc").format(_record()))
        assert parsed["service"] == "svc"

    def test_caller_info_toggle(self):
        with_caller = json.loads(StructuredFormatter(include_caller=True).format(_record(lineno=42)))
        without = json.loads(StructuredFormatter(include_caller=False).format(_record(lineno=42)))
        assert with_caller["line"] == 42
        assert "line" not in without

    def test_includes_deployment_context(self):
        with DeploymentContext(deployment_id="dep-9", operation="monitor"):
            parsed = json.loads(StructuredFormatter().format(_record()))
        assert parsed["deployment_id"] == "dep-9"
        assert parsed["operation"] == "monitor"

    def test_formats_exception(self):
        try:
            raise ValueError("test error")
        except ValueError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]

    def test_includes_duration(self):
        record = _record()
        record.duration_ms = 42.5
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["duration_ms"] == 42.5


class TestConsoleFormatter:
    """Tests for colored console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="test.module"))
        assert "test.module" in output
        assert "hello" in output

    def test_includes_context_info(self):
        with DeploymentContext(deployment_id="abc"):
            output = ConsoleFormatter().format(_record())
        assert "deployment_id=abc" in output

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output  # Red for ERROR


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def test_json_format(self):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_noisy_loggers(self):
        configure_logging()
        assert logging.getLogger("sqlalchemy.engine").level >= logging.WARNING

    def test_env_var_override_level(self, monkeypatch):
        monkeypatch.setenv("ROLLOUT_LOG_LEVEL", "debug")
        config = configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert config.level == LogLevel.DEBUG
        assert logging.getLogger().level == logging.DEBUG

    def test_env_var_override_format(self, monkeypatch):
        monkeypatch.setenv("ROLLOUT_LOG_FORMAT", "CONSOLE")
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)

    def test_invalid_env_values_ignored(self, monkeypatch):
        monkeypatch.setenv("ROLLOUT_LOG_LEVEL", "LOUD")
        monkeypatch.setenv("ROLLOUT_LOG_FORMAT", "xml")
        config = resolve_config(LoggingConfig(level=LogLevel.WARNING))
        assert config.level == LogLevel.WARNING
        assert config.format == LogFormat.JSON


class TestLogDuration:
    """Tests for the coroutine timing decorator."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        @log_duration(threshold_ms=10000)
        async def op():
            return "ok"

        assert await op() == "ok"

    def test_preserves_name(self):
        @log_duration()
        async def my_operation():
            """My docstring."""

        assert my_operation.__name__ == "my_operation"
        assert my_operation.__doc__ == "My docstring."

    @pytest.mark.asyncio
    async def test_logs_failure_and_reraises(self, caplog):
        @log_duration("rollout", threshold_ms=10000)
        async def failing():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RuntimeError, match="boom"):
                await failing()
        assert any("rollout failed" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_logs_slow_operation(self, caplog):
        @log_duration("slow-op", threshold_ms=0)
        async def op():
            return 1

        with caplog.at_level(logging.WARNING):
            await op()
        assert any("Slow operation: slow-op" in r.getMessage() for r in caplog.records)
