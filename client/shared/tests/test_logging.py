import json
import logging
from datetime import UTC, datetime
from enum import Enum
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _serialize_enums, session_log_context, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Restore the root logger after each test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so these tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_file_named_after_start_time(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "sync")

        assert log_path == tmp_path / "sync" / "2025-03-15_10-30-45.log"

    def test_skips_file_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            assert setup_logging(log_dir=tmp_path / "sync") is None
        assert not (tmp_path / "sync").exists()

    def test_repeated_calls_do_not_stack_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_quiets_transport_loggers(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("websockets").level == logging.WARNING

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "loud")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_json_lines_carry_session_context(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "sync", level=logging.INFO)

        with session_log_context("ABC123", "web"):
            structlog.get_logger("test.json").info("view updated", version=3)

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "view updated"
        assert parsed["session_code"] == "ABC123"
        assert parsed["client_type"] == "web"
        assert parsed["version"] == 3


class TestSerializeEnums:
    class _Phase(Enum):
        WAITING = "waiting"
        ACTIVE = "active"

    def test_replaces_enum_with_value(self):
        result = _serialize_enums(None, "", {"phase": self._Phase.ACTIVE, "msg": "hi"})
        assert result == {"phase": "active", "msg": "hi"}

    def test_replaces_enum_inside_dict_value(self):
        result = _serialize_enums(None, "", {"data": {"phase": self._Phase.WAITING, "count": 2}})
        assert result["data"] == {"phase": "waiting", "count": 2}


class TestSessionLogContext:
    def test_binding_is_scoped_to_the_block(self):
        structlog.contextvars.bind_contextvars(request="outer")
        with session_log_context("ABC123", "mobile"):
            assert structlog.contextvars.get_contextvars() == {
                "request": "outer",
                "session_code": "ABC123",
                "client_type": "mobile",
            }
        assert structlog.contextvars.get_contextvars() == {"request": "outer"}
