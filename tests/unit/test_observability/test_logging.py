"""Tests for structlog configuration."""

import io
import json
import logging

import structlog

from src.observability.logging import (
    bind_client_context,
    configure_logging,
    mask_secret_fields,
)


class TestMaskSecretFields:
    """Tests for the secret masking processor."""

    def test_masks_token(self) -> None:
        """Test that a token value is replaced."""
        event = mask_secret_fields(None, "info", {"event": "x", "token": "abc"})

        assert event["token"] == "[REDACTED]"

    def test_empty_value_kept(self) -> None:
        """Test that an absent token is not reported as redacted."""
        event = mask_secret_fields(None, "info", {"event": "x", "token": None})

        assert event["token"] is None

    def test_other_fields_untouched(self) -> None:
        """Test that unrelated fields pass through."""
        event = mask_secret_fields(None, "info", {"event": "x", "url": "https://a"})

        assert event == {"event": "x", "url": "https://a"}


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self) -> None:
        structlog.contextvars.clear_contextvars()
        structlog.reset_defaults()

    def test_json_output_with_client_context(self) -> None:
        """Test that JSON lines carry bound context and masked secrets."""
        output = io.StringIO()
        configure_logging(level=logging.DEBUG, output=output, json_format=True)
        bind_client_context("client-1")

        structlog.get_logger().info("client_initialized", token="secret")

        record = json.loads(output.getvalue().strip())
        assert record["event"] == "client_initialized"
        assert record["client_id"] == "client-1"
        assert record["token"] == "[REDACTED]"
        assert record["level"] == "info"

    def test_level_filters_events(self) -> None:
        """Test that events below the level are dropped."""
        output = io.StringIO()
        configure_logging(level=logging.WARNING, output=output, json_format=True)

        structlog.get_logger().info("ignored")

        assert output.getvalue() == ""

    def test_transport_loggers_quieted(self) -> None:
        """Test that chatty transport loggers stay at WARNING or above."""
        configure_logging(level=logging.DEBUG, output=io.StringIO())

        assert logging.getLogger("httpx").level == logging.WARNING
