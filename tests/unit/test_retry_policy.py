"""Unit tests for reconnect backoff and timeout configuration."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from vto_bridge.transport.retry_policy import RetryPolicy, TimeoutConfig


class TestRetryPolicy:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(0, 1.0), (1, 2.0), (2, 4.0), (5, 32.0), (6, 60.0), (100, 60.0)],
    )
    def test_exponential_delay_without_jitter(self, attempt: int, expected: float):
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=60.0, jitter_factor=0.0)
        assert policy.get_delay(attempt) == expected

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay_seconds=2.0, max_delay_seconds=60.0, jitter_factor=0.5)
        with patch("vto_bridge.transport.retry_policy.random.uniform", return_value=0.75) as uniform:
            assert policy.get_delay(1) == 4.75
        uniform.assert_called_once_with(0, 2.0)

    def test_delay_never_exceeds_cap_plus_jitter(self):
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=10.0, jitter_factor=0.1)
        for attempt in range(50):
            assert 1.0 <= policy.get_delay(attempt) <= 11.0

    def test_repr(self):
        assert "max_delay=60.0s" in repr(RetryPolicy())


class TestTimeoutConfig:
    def test_defaults(self):
        timeouts = TimeoutConfig()
        assert timeouts.login_timeout_seconds == 10.0
        assert timeouts.connect_timeout_seconds == 5.0

    def test_idle_timeout_tracks_keepalive(self):
        timeouts = TimeoutConfig()
        assert timeouts.idle_timeout_seconds(55) == 115
        assert timeouts.idle_timeout_seconds(1) == 7
        assert timeouts.idle_timeout_seconds() == 125
