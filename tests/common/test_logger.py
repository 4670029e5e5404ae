# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (dispatch_engine/common/logger.py).
"""

import json
import logging
import sys
from unittest.mock import MagicMock, patch

import pytest

import dispatch_engine.common.logger as logger_module
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.logger import (
    ColoredFormatter,
    JsonFormatter,
    _get_caller_info,
    _loggers,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)


def _record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        """Тест форматирования базовой записи."""
        result = json.loads(JsonFormatter().format(_record()))

        assert result["level"] == "INFO"
        assert result["message"] == "Test message"
        assert result["module"] == "test_module"
        assert result["function"] == "test_function"
        assert result["line"] == 10
        assert result["timestamp"].endswith("Z")

    def test_format_with_extra_data(self) -> None:
        """Тест форматирования записи с дополнительными данными."""
        record = _record(logging.WARNING)
        record.extra_data = {"request_id": "req-1", "driver_id": "drv-1"}

        result = json.loads(JsonFormatter().format(record))

        assert result["extra"] == {"request_id": "req-1", "driver_id": "drv-1"}

    def test_format_keeps_cyrillic(self) -> None:
        """Кириллица пишется как есть, без \\u-экранирования."""
        result = JsonFormatter().format(_record(msg="Заявка принята"))

        assert "Заявка принята" in result

    def test_format_with_exception(self) -> None:
        """Тест форматирования записи с исключением."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        result = JsonFormatter().format(_record(logging.ERROR, "Error occurred", exc_info))

        assert '"exception"' in result
        assert "ValueError" in result


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_basic_record(self) -> None:
        result = ColoredFormatter().format(_record())

        assert "INFO" in result
        assert "Test message" in result
        assert "\033[" in result

    def test_format_with_caller_info(self) -> None:
        """Тест форматирования с информацией о вызывающей функции."""
        record = _record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "accept",
            "caller_module": "dispatch_engine.core.claims.service",
            "caller_file": "service.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "dispatch_engine.core.claims.service.accept()" in result
        assert "service.py:42" in result


class TestGetLogger:
    """Тесты для get_logger."""

    def setup_method(self) -> None:
        _loggers.pop("test_logger", None)
        logging.getLogger("test_logger").handlers.clear()

    def test_creates_logger_with_console_handler(self) -> None:
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_returns_cached_logger(self) -> None:
        assert get_logger("test_logger") is get_logger("test_logger")

    def test_falls_back_to_defaults_for_mocked_settings(self) -> None:
        """Нестроковые значения (MagicMock) заменяются значениями по умолчанию."""
        mock_settings = MagicMock()
        with patch("dispatch_engine.config.settings", mock_settings):
            config = logger_module._read_logging_config()

        assert config["level"] == "DEBUG"
        assert config["format"] == "colored"
        assert config["to_file"] is False


class TestSetupLogging:
    """Тесты для setup_logging."""

    def test_initializes_default_logger(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)

        setup_logging()

        assert "dispatch_engine" in _loggers
        assert logging.getLogger("asyncpg").level == logging.WARNING
        assert logging.getLogger("aio_pika").level == logging.WARNING

    def test_is_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", True)

        with patch.object(logger_module, "get_logger") as mock_get_logger:
            setup_logging()

        mock_get_logger.assert_not_called()


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_returns_dict(self) -> None:
        assert isinstance(_get_caller_info(), dict)


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    @pytest.mark.asyncio
    async def test_log_info_basic(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message")

        mock_info.assert_called_once()
        assert "Test message" in mock_info.call_args[0]

    @pytest.mark.asyncio
    async def test_log_info_dispatches_by_type(self) -> None:
        """Уровень записи определяется type_msg."""
        with patch.object(logging.Logger, "debug") as mock_debug:
            await log_info("Debug message", type_msg=TypeMsg.DEBUG)
        mock_debug.assert_called_once()

        with patch.object(logging.Logger, "critical") as mock_critical:
            await log_info("Critical message", type_msg=TypeMsg.CRITICAL)
        mock_critical.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_info_passes_extra(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message", extra={"request_id": "req-1"})

        extra_data = mock_info.call_args[1]["extra"]["extra_data"]
        assert extra_data["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_log_debug(self) -> None:
        with patch.object(logging.Logger, "debug") as mock_debug:
            await log_debug("Debug message")

        mock_debug.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_warning(self) -> None:
        with patch.object(logging.Logger, "warning") as mock_warning:
            await log_warning("Warning message")

        mock_warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self) -> None:
        """Тест логирования ошибки с трейсбеком."""
        with patch.object(logging.Logger, "error") as mock_error:
            await log_error("Error message", exc_info=True)

        mock_error.assert_called_once()
        assert mock_error.call_args[1].get("exc_info") is True

    @pytest.mark.asyncio
    async def test_custom_logger_name(self) -> None:
        with patch("dispatch_engine.common.logger.get_logger") as mock_get_logger:
            mock_logger = MagicMock()
            mock_get_logger.return_value = mock_logger

            await log_info("Test message", logger_name="monitors")

        mock_get_logger.assert_called_once_with("monitors")
        mock_logger.info.assert_called_once()
