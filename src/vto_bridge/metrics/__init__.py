"""Metrics module."""

from .registry import (
    record_decode_error,
    record_event_published,
    record_frame_recv,
    record_frame_sent,
    record_keepalive,
    record_login,
    record_reconnection,
    record_session_state,
    record_unclassified_payload,
    start_metrics_server,
)

__all__ = [
    "record_decode_error",
    "record_event_published",
    "record_frame_recv",
    "record_frame_sent",
    "record_keepalive",
    "record_login",
    "record_reconnection",
    "record_session_state",
    "record_unclassified_payload",
    "start_metrics_server",
]
