"""
Tests for the rate-limited logging helper.
"""
import logging
import threading
from unittest.mock import MagicMock

from cachetools import TTLCache

from multisig_sdk import _rate_limited_log
from multisig_sdk._rate_limited_log import rate_limited_log, reset_rate_limits


def _mock_logger(name="multisig_sdk.test"):
    mock_logger = MagicMock()
    mock_logger.name = name
    return mock_logger


class TestRateLimitedLog:

    def test_repeated_message_is_suppressed(self):
        mock_logger = _mock_logger()

        assert rate_limited_log("Test message", level="warning", logger_instance=mock_logger)
        mock_logger.warning.assert_called_once_with("Test message")

        mock_logger.reset_mock()
        assert not rate_limited_log("Test message", level="warning", logger_instance=mock_logger)
        mock_logger.warning.assert_not_called()

    def test_level_and_message_are_part_of_the_key(self):
        mock_logger = _mock_logger()
        rate_limited_log("Test message", level="warning", logger_instance=mock_logger)

        rate_limited_log("Test message", level="error", logger_instance=mock_logger)
        mock_logger.error.assert_called_once_with("Test message")

        rate_limited_log("Different message", level="warning", logger_instance=mock_logger)
        mock_logger.warning.assert_called_with("Different message")
        assert mock_logger.warning.call_count == 2

    def test_loggers_do_not_share_suppression(self):
        first = _mock_logger("multisig_sdk.chain")
        second = _mock_logger("multisig_sdk.auth")

        rate_limited_log("RPC slow", logger_instance=first)
        rate_limited_log("RPC slow", logger_instance=second)

        first.warning.assert_called_once_with("RPC slow")
        second.warning.assert_called_once_with("RPC slow")

    def test_unknown_level_falls_back_to_warning(self):
        mock_logger = _mock_logger()
        del mock_logger.verbose
        rate_limited_log("odd level", level="verbose", logger_instance=mock_logger)
        mock_logger.warning.assert_called_once_with("odd level")

    def test_message_logged_again_after_interval(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr(_rate_limited_log, "TTLCache",
                            lambda maxsize, ttl: TTLCache(maxsize, ttl, timer=lambda: now[0]))
        mock_logger = _mock_logger()

        rate_limited_log("flapping", interval=1, logger_instance=mock_logger)
        rate_limited_log("flapping", interval=1, logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 1

        now[0] += 1.5
        rate_limited_log("flapping", interval=1, logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_reset_rate_limits(self):
        mock_logger = _mock_logger()
        rate_limited_log("once", logger_instance=mock_logger)
        reset_rate_limits()
        rate_limited_log("once", logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_defaults_to_module_logger(self, caplog):
        with caplog.at_level(logging.WARNING, logger="multisig_sdk._rate_limited_log"):
            rate_limited_log("from module logger")
        assert "from module logger" in caplog.text

    def test_concurrent_callers_emit_once(self):
        mock_logger = _mock_logger()
        threads = [
            threading.Thread(target=rate_limited_log, args=("contended",), kwargs={"logger_instance": mock_logger})
            for _ in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        mock_logger.warning.assert_called_once_with("contended")
