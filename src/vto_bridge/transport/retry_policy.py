"""Reconnect backoff and session timeouts."""

from __future__ import annotations

import random

from vto_bridge.const import (
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_LOGIN_TIMEOUT,
    DEFAULT_RECONNECT_BASE_DELAY,
    DEFAULT_RECONNECT_MAX_DELAY,
    KEEPALIVE_MARGIN_SECONDS,
)


class TimeoutConfig:
    """Deadlines applied by a session.

    The idle timeout is derived from the keepalive interval: once logged in
    the device answers every keepalive, so two missed ticks plus a margin
    means the connection is dead even if TCP has not noticed.
    """

    def __init__(
        self,
        login_timeout_seconds: float = DEFAULT_LOGIN_TIMEOUT,
        connect_timeout_seconds: float = 5.0,
        send_timeout_seconds: float = 5.0,
    ):
        self.login_timeout_seconds = login_timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.send_timeout_seconds = send_timeout_seconds

    def idle_timeout_seconds(self, keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL) -> float:
        """Read deadline while authenticated: ``2 * keepalive + margin``."""
        return 2 * keepalive_interval + KEEPALIVE_MARGIN_SECONDS

    def __repr__(self) -> str:
        return (
            f"TimeoutConfig(login={self.login_timeout_seconds:.1f}s, "
            f"connect={self.connect_timeout_seconds:.1f}s, "
            f"send={self.send_timeout_seconds:.1f}s)"
        )


class RetryPolicy:
    """Reconnect delays: doubling from ``base_delay_seconds`` up to the cap.

    Up to ``jitter_factor`` of the delay is added at random so several
    bridges restarting together do not reconnect in lockstep.
    """

    def __init__(
        self,
        base_delay_seconds: float = DEFAULT_RECONNECT_BASE_DELAY,
        max_delay_seconds: float = DEFAULT_RECONNECT_MAX_DELAY,
        jitter_factor: float = 0.1,
    ):
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor

    def get_delay(self, failures: int) -> float:
        """Seconds to wait after ``failures`` consecutive failed attempts (0 for the first)."""
        # exponent capped so huge failure counts cannot overflow the float
        backoff = min(self.base_delay_seconds * 2 ** min(failures, 32), self.max_delay_seconds)
        return backoff + random.uniform(0, backoff * self.jitter_factor)

    def __repr__(self) -> str:
        return f"RetryPolicy(base={self.base_delay_seconds}s, max_delay={self.max_delay_seconds}s, jitter={self.jitter_factor})"
