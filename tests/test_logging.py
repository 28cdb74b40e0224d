"""
Tests for structured logging used by the ingestion, classification and
unsubscribe pipelines.
"""

import json
import logging
from io import StringIO
from unittest.mock import patch

import pytest

from inbox_agent.exceptions import UnsubscribeExtractionError, InboxAgentError
from inbox_agent.structured_logging import (
    StructuredLogger, SensitiveDataFilter, configure_logging, ROOT_LOGGER_NAME
)


class TestStructuredLogging:
    """Structured logger with context tracking."""

    def test_logger_creation(self):
        logger = StructuredLogger("test_component")

        assert logger.logger.name == "inbox_agent.test_component"
        assert logger.component == "test_component"
        assert isinstance(logger.context, dict)

    def test_logger_context_management(self):
        logger = StructuredLogger("agent")

        logger.add_context("email_id", 12345)
        logger.add_context("url", "https://news.example.com/unsub")

        assert logger.context["email_id"] == 12345
        assert logger.context["url"] == "https://news.example.com/unsub"

    def test_structured_log_output_is_json(self):
        log_capture = StringIO()
        handler = logging.StreamHandler(log_capture)

        logger = StructuredLogger("classifier")
        logger.logger.addHandler(handler)
        logger.logger.setLevel(logging.INFO)
        try:
            logger.add_context("account_id", 7)
            logger.info("Categorized email", {"confidence": 0.9})
        finally:
            logger.logger.removeHandler(handler)

        record = json.loads(log_capture.getvalue().strip())
        assert record["message"] == "Categorized email"
        assert record["component"] == "classifier"
        assert record["context"] == {"account_id": 7}
        assert record["extra"] == {"confidence": 0.9}

    def test_log_levels_and_methods(self):
        logger = StructuredLogger("validator")
        logger.logger.setLevel(logging.DEBUG)

        for level in ("debug", "info", "warning", "error"):
            with patch.object(logger.logger, level) as mock_method:
                getattr(logger, level)(f"{level} message", {"test": "data"})
                mock_method.assert_called_once()

    def test_time_operation_logs_completion(self):
        logger = StructuredLogger("ingestion")

        with patch.object(logger.logger, 'info') as mock_info:
            with logger.time_operation("sync_account"):
                pass

            message = mock_info.call_args[0][0]
            assert "sync_account" in message
            assert "completed" in message

    def test_time_operation_logs_failure_and_reraises(self):
        logger = StructuredLogger("ingestion")

        with patch.object(logger.logger, 'error') as mock_error:
            with pytest.raises(RuntimeError):
                with logger.time_operation("sync_account"):
                    raise RuntimeError("boom")

            payload = json.loads(mock_error.call_args[0][0])
            assert payload["extra"]["status"] == "failure"
            assert payload["extra"]["error"] == "boom"

    def test_log_exception_includes_exception_context(self):
        logger = StructuredLogger("extractor")

        with patch.object(logger.logger, 'error') as mock_error:
            try:
                raise UnsubscribeExtractionError("Extraction failed", context={"method": "html"})
            except UnsubscribeExtractionError as e:
                logger.log_exception(e, {"additional": "context"})

            mock_error.assert_called_once()
            payload = json.loads(mock_error.call_args[0][0])
            assert payload["exception"]["type"] == "UnsubscribeExtractionError"
            assert payload["exception"]["context"] == {"method": "html"}

    def test_scoped_context_is_removed_after_block(self):
        logger = StructuredLogger("orchestrator")
        logger.add_context("owner", "me@example.com")

        with logger.scoped_context({"url": "https://x.example.com"}):
            assert logger.context == {"owner": "me@example.com", "url": "https://x.example.com"}

        assert logger.context == {"owner": "me@example.com"}

    def test_scoped_context_restored_on_exception(self):
        logger = StructuredLogger("orchestrator")

        with pytest.raises(ValueError):
            with logger.scoped_context({"attempt": 1}):
                raise ValueError()

        assert "attempt" not in logger.context

    def test_operation_stats(self):
        logger = StructuredLogger("executor")

        logger.log_operation_count("unsubscribe", True)
        logger.log_operation_count("unsubscribe", False)
        logger.log_operation_count("unsubscribe", True)

        stats = logger.get_operation_stats()
        assert stats["unsubscribe"] == {"total": 3, "success": 2, "failure": 1}


class TestSensitiveDataFilter:
    """Secrets never reach log output."""

    def setup_method(self):
        self.filter = SensitiveDataFilter()

    def test_filters_url_tokens(self):
        message = "GET https://example.com/unsub?token=abc123&list=5"
        assert "abc123" not in self.filter.filter_message(message)

    def test_filters_bearer_and_api_keys(self):
        message = "Authorization: Bearer ya29.a0AfH6 api_key=sk-ant-api03-secretvalue"
        filtered = self.filter.filter_message(message)

        assert "ya29.a0AfH6" not in filtered
        assert "secretvalue" not in filtered

    def test_filters_sensitive_keys_in_dicts(self):
        filtered = self.filter.filter_dict({
            "access_token": "ya29.xyz",
            "screenshot_base64": "iVBORw0KGgo",
            "nested": {"password": "hunter2"},
            "count": 3,
        })

        assert filtered["access_token"] == "***"
        assert filtered["screenshot_base64"] == "***"
        assert filtered["nested"]["password"] == "***"
        assert filtered["count"] == 3

    def test_logger_applies_filter(self):
        logger = StructuredLogger("mailbox")

        with patch.object(logger.logger, 'info') as mock_info:
            logger.info("Calling API", {"token": "secret-token-value"})

            assert "secret-token-value" not in mock_info.call_args[0][0]


class TestConfigureLogging:

    def teardown_method(self):
        logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()

    def test_sets_level_and_single_console_handler(self):
        configure_logging(level="DEBUG", format="text")
        configure_logging(level="WARNING", format="json")

        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_file_output(self, tmp_path):
        log_file = tmp_path / "agent.log"
        configure_logging(level="INFO", output="file", filename=str(log_file))

        StructuredLogger("service").info("Ingestion run finished")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        assert "Ingestion run finished" in log_file.read_text()


class TestExceptions:

    def test_context_rendered_in_message(self):
        error = InboxAgentError("Sync failed", context={"account_id": 3})

        assert "Sync failed" in str(error)
        assert "account_id" in str(error)
