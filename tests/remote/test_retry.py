"""Tests for retry logic."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from apisync.remote.retry import retry_with_backoff


class TestRetryWithBackoff:
    """Tests for retry_with_backoff function."""

    def test_returns_first_success(self) -> None:
        """Should not retry a successful call."""
        func = MagicMock(return_value="ok")
        assert retry_with_backoff(func) == "ok"
        assert func.call_count == 1

    @patch("apisync.remote.retry.time.sleep")
    def test_retries_network_errors(self, mock_sleep: MagicMock) -> None:
        """Transport errors should be retried with growing backoff."""
        func = MagicMock(side_effect=[httpx.ConnectError("down"), ConnectionError("down"), "ok"])

        assert retry_with_backoff(func, max_retries=2, initial_backoff=1.0) == "ok"
        assert func.call_count == 3
        assert [call.args[0] for call in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("apisync.remote.retry.time.sleep")
    def test_raises_after_max_retries(self, mock_sleep: MagicMock) -> None:
        """The last exception should propagate once retries are exhausted."""
        func = MagicMock(side_effect=TimeoutError("slow"))

        with pytest.raises(TimeoutError):
            retry_with_backoff(func, max_retries=1)
        assert func.call_count == 2

    def test_other_errors_not_retried(self) -> None:
        """Non-network exceptions should propagate immediately."""
        func = MagicMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            retry_with_backoff(func, max_retries=3)
        assert func.call_count == 1
