"""Exception types for the VTO bridge.

Every error raised by the codec, the session and the HTTP collaborator
inherits from :class:`VTOBridgeError`, so callers can catch the family while
still telling restartable failures from terminal ones.
"""

from __future__ import annotations

from typing import Any


class VTOBridgeError(Exception):
    """Base exception for all VTO bridge errors."""


class MalformedFrame(VTOBridgeError):
    """Frame cannot be decoded.

    Raised when a frame is shorter than its header, its payload is not UTF-8
    JSON, the JSON is not an object, or a login response is missing a field.

    Attributes:
        reason: Specific failure reason (e.g., "too_short", "invalid_json")
        data_preview: First 16 bytes of frame data (the login digest must never end up in logs)
    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        self.data_preview = data[:16] if data else b""
        super().__init__(f"Frame decode failed: {reason}")


class AuthenticationRejected(VTOBridgeError):
    """The device refused the digest login.

    Attributes:
        response: The decoded login result payload
    """

    def __init__(self, response: dict[str, Any] | None = None):
        self.response = response or {}
        error = self.response.get("error")
        detail = f": {error}" if error else ""
        super().__init__(f"Login rejected by device{detail}")


class TransportError(VTOBridgeError):
    """The control connection failed.

    Attributes:
        reason: Specific failure reason (e.g., "connect_failed", "eof", "idle_timeout")
        state: Session state when the failure happened
    """

    def __init__(self, reason: str, state: str = ""):
        self.reason = reason
        self.state = state
        suffix = f" (state: {state})" if state else ""
        super().__init__(f"Transport failed: {reason}{suffix}")


class UnclassifiedPayload(VTOBridgeError):
    """A steady-state payload matched no known shape.

    Never raised across the session boundary; used to tag log lines and metrics.
    """

    def __init__(self, payload: dict[str, Any]):
        self.payload = payload
        super().__init__(f"Unclassified payload with keys: {sorted(payload)}")


class DeviceInfoError(VTOBridgeError):
    """Fetching device information over HTTP failed.

    Attributes:
        reason: Specific failure reason (e.g., "http_error", "missing_field")
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Device info request failed: {reason}")
