"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from cms_sync.logger import JsonFormatter, setup_logging


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("cms_sync.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        mock_basic.assert_called_once()
        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr
        assert kwargs["level"] == logging.INFO

    @patch("cms_sync.logger.logging.basicConfig")
    def test_log_file_adds_handler(self, mock_basic, tmp_path):
        log_file = str(tmp_path / "sync.log")
        setup_logging(log_file=log_file)

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        handlers[1].close()

    @patch("cms_sync.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        setup_logging(debug=True, level="ERROR")
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("cms_sync.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("cms_sync.logger.logging.basicConfig")
    def test_explicit_level_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(level="warning")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("cms_sync.logger.logging.basicConfig")
    def test_json_format(self, mock_basic):
        setup_logging(log_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("cms_sync.logger.logging.basicConfig")
    def test_third_party_silenced(self, mock_basic):
        setup_logging()
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord(
            "cms_sync.sync.persistence", logging.WARNING, __file__, 1,
            "Saved %d", (3,), None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        entry = json.loads(JsonFormatter().format(self._record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "cms_sync.sync.persistence"
        assert entry["msg"] == "Saved 3"
        assert "details" not in entry

    def test_details_included(self):
        record = self._record(details={"failed": ["home/hero.title"]})
        entry = json.loads(JsonFormatter().format(record))
        assert entry["details"] == {"failed": ["home/hero.title"]}

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]
