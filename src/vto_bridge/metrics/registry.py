"""Prometheus metrics registry for the VTO bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

from vto_bridge.structs import SessionState

# Control channel metrics
vto_frames_sent_total: Final = Counter(  # type: ignore[assignment]
    "vto_frames_sent_total",
    "Total frames sent to the door station",
    ["method"],
)

vto_frames_received_total: Final = Counter(  # type: ignore[assignment]
    "vto_frames_received_total",
    "Total frames received from the door station",
    ["kind"],
)

vto_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "vto_decode_errors_total",
    "Total frame decode errors",
    ["reason"],
)

vto_unclassified_payload_total: Final = Counter(  # type: ignore[assignment]
    "vto_unclassified_payload_total",
    "Total steady-state payloads matching no known shape",
)

vto_login_total: Final = Counter(  # type: ignore[assignment]
    "vto_login_total",
    "Total login attempts",
    ["outcome"],
)

vto_keepalive_total: Final = Counter(  # type: ignore[assignment]
    "vto_keepalive_total",
    "Total keepalive exchanges",
    ["outcome"],
)

# Session metrics
vto_session_state: Final = Gauge(  # type: ignore[assignment]
    "vto_session_state",
    "Current session state",
    ["state"],
)

vto_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "vto_reconnection_total",
    "Total session restarts",
    ["reason"],
)

# Bus metrics
vto_events_published_total: Final = Counter(  # type: ignore[assignment]
    "vto_events_published_total",
    "Total events published to MQTT",
    ["outcome"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_frame_sent(method: str) -> None:
    """Record a frame sent."""
    vto_frames_sent_total.labels(method=method).inc()  # type: ignore[no-untyped-call]


def record_frame_recv(kind: str) -> None:
    """Record a frame received, labelled by its classified kind."""
    vto_frames_received_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    """Record a decode error."""
    vto_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_unclassified_payload() -> None:
    vto_unclassified_payload_total.inc()  # type: ignore[no-untyped-call]


def record_login(outcome: str) -> None:
    """Record a login outcome ("success", "rejected", "timeout")."""
    vto_login_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_keepalive(outcome: str) -> None:
    vto_keepalive_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_session_state(state: SessionState) -> None:
    """Record session state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in SessionState:
        value = 1 if s is state else 0
        vto_session_state.labels(state=s.value).set(value)  # type: ignore[no-untyped-call]


def record_reconnection(reason: str) -> None:
    """Record a session restart."""
    vto_reconnection_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_event_published(outcome: str) -> None:
    """Record an MQTT publish outcome."""
    vto_events_published_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]
