"""Control-channel session: login handshake, subscription, keepalive, event pump.

One ``VTOSession`` covers exactly one TCP connection. Requests go out one at
a time and the device answers in order, so the first two replies are
classified by the explicit session state (entered when request #1 and #2
are sent) and everything after login by payload shape.

State machine::

    DISCONNECTED -> CONNECTING -> AWAITING_CHALLENGE -> AWAITING_LOGIN_RESULT
        -> AUTHENTICATED                (result true)
        -> AUTH_REJECTED                (result false, terminal)
    any -> ERROR                        (transport/decode failure, timeouts)
    close(): CLOSING -> DISCONNECTED    (terminal states are kept)
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from vto_bridge.const import DEFAULT_KEEPALIVE_INTERVAL, KEEPALIVE_MARGIN_SECONDS, VTO_PORT
from vto_bridge.logging_abstraction import get_logger
from vto_bridge.metrics import (
    record_decode_error,
    record_frame_recv,
    record_frame_sent,
    record_keepalive,
    record_login,
    record_session_state,
    record_unclassified_payload,
)
from vto_bridge.protocol.commands import Command, attach_events, digest_login, initial_login, keep_alive
from vto_bridge.protocol.digest import derive_login_digest
from vto_bridge.protocol.exceptions import AuthenticationRejected, MalformedFrame, TransportError, UnclassifiedPayload
from vto_bridge.protocol.frame_codec import FrameAssembler, decode_frame, encode_frame
from vto_bridge.protocol.messages import (
    EventNotification,
    GenericResult,
    KeepAliveAck,
    LoginChallenge,
    LoginResult,
    Unclassified,
    classify_steady_state,
)
from vto_bridge.structs import Credentials, SessionState
from vto_bridge.transport.retry_policy import TimeoutConfig
from vto_bridge.transport.socket_abstraction import TCPConnection

logger = get_logger(__name__)

EventsCallback = Callable[[list[dict[str, Any]]], Awaitable[None]]
NotifyCallback = Callable[[], Awaitable[None]]

_TERMINAL_STATES = (SessionState.AUTH_REJECTED, SessionState.ERROR)


class VTOSession:
    """One connection attempt to the door station."""

    lp: str = "session:"

    def __init__(
        self,
        host: str,
        credentials: Credentials,
        *,
        port: int = VTO_PORT,
        timeouts: TimeoutConfig | None = None,
        on_authenticated: NotifyCallback | None = None,
        on_events: EventsCallback | None = None,
        on_keepalive: NotifyCallback | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.credentials = credentials
        self.timeouts = timeouts or TimeoutConfig()
        self.on_authenticated = on_authenticated
        self.on_events = on_events
        self.on_keepalive = on_keepalive

        self.connection = TCPConnection(
            host,
            port,
            connect_timeout=self.timeouts.connect_timeout_seconds,
            io_timeout=self.timeouts.send_timeout_seconds,
        )
        self.session_id: int = 0
        self.request_ordinal: int = 0
        # device-reported keepAliveInterval; ticks run KEEPALIVE_MARGIN_SECONDS earlier
        self.device_keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL
        self.keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL
        self.keepalive_task: asyncio.Task[None] | None = None
        self.state: SessionState = SessionState.DISCONNECTED
        self._assembler = FrameAssembler()
        self._pending_frames: deque[bytes] = deque()
        self._closed = False
        self._keepalive_error: str | None = None

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug(
            "%s %s -> %s",
            self.lp,
            self.state.value,
            state.value,
            extra={"from_state": self.state.value, "to_state": state.value},
        )
        self.state = state
        record_session_state(state)

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    async def run(self) -> None:
        """Connect, log in, subscribe and pump frames until the connection fails.

        Never returns normally.

        Raises:
            TransportError: connect/send/read failure, EOF, login or idle timeout
            MalformedFrame: a frame could not be decoded or a login reply is incomplete
            AuthenticationRejected: the device refused the digest login
        """
        lp = f"{self.lp}run:"
        if self._closed:
            raise TransportError("session_closed", self.state.value)
        try:
            self._set_state(SessionState.CONNECTING)
            if not await self.connection.connect():
                raise TransportError(f"connect_failed: {self.connection.last_error}", self.state.value)

            logger.info("%s Connected, sending initial login", lp, extra={"host": self.host})
            await self._send(initial_login(self.credentials.username))
            self._set_state(SessionState.AWAITING_CHALLENGE)

            while True:
                payload = await self._next_payload()
                await self._dispatch(payload)
        except (TransportError, MalformedFrame) as e:
            if self.state not in _TERMINAL_STATES:
                self._set_state(SessionState.ERROR)
            if isinstance(e, MalformedFrame):
                record_decode_error(e.reason)
            raise

    async def _dispatch(self, payload: dict[str, Any]) -> None:
        if self.state is SessionState.AWAITING_CHALLENGE:
            record_frame_recv("login_challenge")
            await self._handle_challenge(LoginChallenge.from_payload(payload))
        elif self.state is SessionState.AWAITING_LOGIN_RESULT:
            record_frame_recv("login_result")
            await self._handle_login_result(LoginResult.from_payload(payload))
        elif self.state is SessionState.AUTHENTICATED:
            await self._handle_steady_state(payload)
        else:
            raise TransportError("unexpected_frame", self.state.value)

    async def _handle_challenge(self, challenge: LoginChallenge) -> None:
        lp = f"{self.lp}challenge:"
        self.session_id = challenge.session_id
        digest = derive_login_digest(
            self.credentials.username,
            self.credentials.password,
            challenge.realm,
            challenge.random,
        )
        logger.debug("%s Got session %d, sending digest login", lp, self.session_id)
        await self._send(digest_login(self.credentials.username, digest, self.session_id))
        self._set_state(SessionState.AWAITING_LOGIN_RESULT)

    async def _handle_login_result(self, result: LoginResult) -> None:
        lp = f"{self.lp}login:"
        if not result.success:
            self._set_state(SessionState.AUTH_REJECTED)
            record_login("rejected")
            logger.error("%s Login rejected by device", lp, extra={"error": result.raw.get("error")})
            raise AuthenticationRejected(result.raw)

        record_login("success")
        if result.keepalive_interval is not None:
            self.device_keepalive_interval = result.keepalive_interval
            self.keepalive_interval = max(1, result.keepalive_interval - KEEPALIVE_MARGIN_SECONDS)
        logger.info(
            "%s Login successful",
            lp,
            extra={"session_id": self.session_id, "keepalive_interval": self.keepalive_interval},
        )

        await self._send(attach_events(self.request_ordinal, self.session_id))
        self.keepalive_task = asyncio.create_task(self._keepalive_loop(), name=f"vto_keepalive_{self.session_id}")
        self._set_state(SessionState.AUTHENTICATED)
        if self.on_authenticated is not None:
            await self.on_authenticated()

    async def _handle_steady_state(self, payload: dict[str, Any]) -> None:
        lp = f"{self.lp}recv:"
        message = classify_steady_state(payload)
        match message:
            case EventNotification(events=events):
                record_frame_recv("event")
                logger.debug("%s %d event(s) received", lp, len(events))
                if self.on_events is not None:
                    await self.on_events(events)
            case KeepAliveAck():
                record_frame_recv("keepalive_ack")
                record_keepalive("acked")
                if self.on_keepalive is not None:
                    await self.on_keepalive()
            case GenericResult(request_id=request_id, result=ok):
                record_frame_recv("result")
                logger.debug("%s Result for request %s: %s", lp, request_id, ok)
            case Unclassified(payload=raw):
                record_frame_recv("unclassified")
                record_unclassified_payload()
                logger.warning("%s %s", lp, UnclassifiedPayload(raw), extra={"payload": raw})

    async def _keepalive_loop(self) -> None:
        lp = f"{self.lp}keepalive:"
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self._send(keep_alive(self.request_ordinal, self.session_id, self.device_keepalive_interval))
            except TransportError as e:
                record_keepalive("failed")
                logger.warning("%s Keepalive not sent: %s", lp, e)
                # closing the socket wakes the read loop, which then fails with this cause
                self._keepalive_error = e.reason
                await self.connection.close()
                return
            record_keepalive("sent")

    async def _send(self, command: Command) -> None:
        if self._closed or self.state is SessionState.CLOSING:
            raise TransportError("session_closed", self.state.value)
        if not await self.connection.send(encode_frame(command)):
            raise TransportError(f"send_failed: {self.connection.last_error}", self.state.value)
        self.request_ordinal += 1
        record_frame_sent(command.method)

    async def _next_payload(self) -> dict[str, Any]:
        while not self._pending_frames:
            logging_in = self.state in (SessionState.AWAITING_CHALLENGE, SessionState.AWAITING_LOGIN_RESULT)
            if logging_in:
                timeout = self.timeouts.login_timeout_seconds
            else:
                timeout = self.timeouts.idle_timeout_seconds(self.keepalive_interval)
            data = await self.connection.recv(timeout=timeout)
            if data is None:
                if self._keepalive_error is not None:
                    raise TransportError(f"keepalive_failed: {self._keepalive_error}", self.state.value)
                cause = self.connection.last_error or "read_failed"
                if cause == "timeout":
                    if logging_in:
                        record_login("timeout")
                    cause = "login_timeout" if logging_in else "idle_timeout"
                raise TransportError(cause, self.state.value)
            self._pending_frames.extend(self._assembler.feed(data))
        return decode_frame(self._pending_frames.popleft())

    async def close(self) -> None:
        """Cancel the keepalive, then close the socket. Idempotent."""
        if self._closed:
            return
        self._closed = True
        terminal = self.state in _TERMINAL_STATES
        if not terminal:
            self._set_state(SessionState.CLOSING)

        if self.keepalive_task is not None:
            _ = self.keepalive_task.cancel()
            try:
                await self.keepalive_task
            except asyncio.CancelledError:
                pass
            self.keepalive_task = None

        await self.connection.close()
        if not terminal:
            self._set_state(SessionState.DISCONNECTED)

    def __repr__(self) -> str:
        return f"VTOSession({self.host}:{self.port}, {self.state.value}, session_id={self.session_id})"
