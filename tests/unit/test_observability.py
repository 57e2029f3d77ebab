"""Testes de logging estruturado, mascaramento e medição de latência."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from ussd_engine.observability.logging import (
    ServiceContextFilter,
    configure_logging,
    mask_identity,
    mask_session,
)
from ussd_engine.observability.middleware import get_correlation_id, set_correlation_id
from ussd_engine.observability.timing import timed


class TestMasking:
    def test_mask_identity_keeps_last_four(self):
        assert mask_identity("254700000001") == "***0001"
        assert mask_identity("123") == "***"

    def test_mask_session(self):
        assert mask_session("abcdefghijkl") == "abcdefgh..."


class TestCorrelationId:
    def test_filter_injects_correlation_and_service(self):
        set_correlation_id("corr-1")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        ServiceContextFilter("ussd_engine").filter(record)

        assert record.correlation_id == "corr-1" == get_correlation_id()
        assert record.service == "ussd_engine"

    def test_filter_keeps_explicit_correlation_id(self):
        set_correlation_id("corr-1")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        record.correlation_id = "sweep-42"

        ServiceContextFilter("ussd_engine").filter(record)

        assert record.correlation_id == "sweep-42"

    def test_configure_logging_emits_json(self, capsys):
        configure_logging("INFO", "ussd_engine")

        logging.getLogger("test").info("hello", extra={"state": "main.pre_menu"})

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["state"] == "main.pre_menu"
        assert payload["service"] == "ussd_engine"


class TestTimed:
    def test_logs_component_latency(self):
        with patch("ussd_engine.observability.timing.logger") as mock_logger:
            with timed("dispatch"):
                pass

        extra = mock_logger.info.call_args.kwargs["extra"]
        assert extra["component"] == "dispatch"
        assert extra["elapsed_ms"] >= 0

    def test_slow_component_is_warning(self):
        with patch("ussd_engine.observability.timing.logger") as mock_logger:
            with timed("guard:remote", warn_above_ms=-1):
                pass

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.args[0] == "slow_component"

    def test_logs_on_exception(self):
        with patch("ussd_engine.observability.timing.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                with timed("dispatch"):
                    raise RuntimeError("boom")

        mock_logger.info.assert_called_once()

