"""Inbound message kinds and their classification.

Replies carry no request id the bridge can rely on, so the first two frames
of a connection are parsed positionally as login responses (the session
knows which one it is waiting for). Every later frame is classified by its
shape alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from vto_bridge.const import EVENT_NOTIFY_METHOD
from vto_bridge.protocol.exceptions import MalformedFrame


@dataclass(frozen=True)
class LoginChallenge:
    """Reply to the initial login: session id plus digest inputs."""

    session_id: int
    realm: str
    random: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> LoginChallenge:
        """Parse frame #1 regardless of its ``result`` value.

        Raises:
            MalformedFrame: session, params.realm or params.random missing
        """
        params = payload.get("params")
        if "session" not in payload or not isinstance(params, dict):
            raise MalformedFrame("challenge_missing_fields")
        realm = params.get("realm")
        random = params.get("random")
        if realm is None or random is None:
            raise MalformedFrame("challenge_missing_fields")
        try:
            session_id = int(payload["session"])
        except (TypeError, ValueError) as e:
            raise MalformedFrame("challenge_invalid_session") from e
        return cls(session_id=session_id, realm=str(realm), random=str(random))


@dataclass(frozen=True)
class LoginResult:
    """Reply to the digest login."""

    success: bool
    keepalive_interval: int | None
    raw: dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> LoginResult:
        """Parse frame #2.

        ``keepalive_interval`` is None when the device omits it.

        Raises:
            MalformedFrame: ``result`` missing, or keepAliveInterval not a number
        """
        if "result" not in payload:
            raise MalformedFrame("login_result_missing_fields")
        params = payload.get("params")
        interval: int | None = None
        if isinstance(params, dict) and params.get("keepAliveInterval") is not None:
            try:
                interval = int(params["keepAliveInterval"])
            except (TypeError, ValueError) as e:
                raise MalformedFrame("login_result_invalid_interval") from e
        return cls(success=bool(payload["result"]), keepalive_interval=interval, raw=payload)


@dataclass(frozen=True)
class EventNotification:
    events: list[dict[str, Any]]


@dataclass(frozen=True)
class KeepAliveAck:
    timeout: Any


@dataclass(frozen=True)
class GenericResult:
    """Any other reply with a boolean ``result``, e.g. the subscription ack."""

    request_id: Any
    result: bool


@dataclass(frozen=True)
class Unclassified:
    payload: dict[str, Any]


InboundMessage = LoginChallenge | LoginResult | EventNotification | KeepAliveAck | GenericResult | Unclassified
SteadyStateMessage = EventNotification | KeepAliveAck | GenericResult | Unclassified


def classify_steady_state(payload: dict[str, Any]) -> SteadyStateMessage:
    """Classify a frame received after login by its shape."""
    if payload.get("method") == EVENT_NOTIFY_METHOD:
        params = payload.get("params")
        event_list = params.get("eventList") if isinstance(params, dict) else None
        events = [e for e in event_list if isinstance(e, dict)] if isinstance(event_list, list) else []
        return EventNotification(events=events)

    result = payload.get("result")
    params = payload.get("params")
    if result is True and isinstance(params, dict) and "timeout" in params:
        return KeepAliveAck(timeout=params["timeout"])
    if isinstance(result, bool):
        return GenericResult(request_id=payload.get("id"), result=result)
    return Unclassified(payload=payload)
