"""Unit tests for the VTOSession state machine.

Tests cover:
- Login handshake (challenge, digest login, subscription, keepalive)
- Rejected login
- Steady-state dispatch of events, keepalive acks and other replies
- Transport failures, decode failures and timeouts
- Teardown
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from tests.helpers.fakes import CHALLENGE, LOGIN_OK, FakeConnection
from vto_bridge.protocol.digest import derive_login_digest
from vto_bridge.protocol.exceptions import AuthenticationRejected, MalformedFrame, TransportError
from vto_bridge.protocol.frame_codec import encode_frame
from vto_bridge.structs import SessionState
from vto_bridge.transport.retry_policy import TimeoutConfig


class ShortIdleTimeouts(TimeoutConfig):
    def idle_timeout_seconds(self, keepalive_interval: float = 60) -> float:
        return 0.05


class TestLoginHandshake:
    @pytest.mark.asyncio
    async def test_end_to_end_login(self, make_session, fake_connection: FakeConnection):
        on_authenticated = AsyncMock()
        session = make_session(fake_connection, on_authenticated=on_authenticated)
        fake_connection.push(CHALLENGE)
        fake_connection.push(LOGIN_OK)
        fake_connection.push_eof()

        with pytest.raises(TransportError) as exc_info:
            await session.run()

        assert exc_info.value.reason == "eof"
        login, second_login, attach = fake_connection.sent_payloads

        assert login["method"] == "global.login"
        assert login["session"] == 0
        assert login["params"]["password"] == ""

        assert second_login["session"] == 42
        assert second_login["id"] == 10000
        assert second_login["params"]["password"] == derive_login_digest("user", "pass", "r", "n")
        assert second_login["params"]["authorityType"] == "Default"

        assert attach["method"] == "eventManager.attach"
        assert attach["params"] == {"codes": ["All"]}
        assert attach["session"] == 42
        assert attach["id"] == 2

        assert session.session_id == 42
        assert session.keepalive_interval == 55
        assert session.device_keepalive_interval == 60
        assert session.request_ordinal == 3
        assert session.keepalive_task is not None
        assert not session.keepalive_task.done()
        on_authenticated.assert_awaited_once()

        await session.close()

    @pytest.mark.asyncio
    async def test_state_follows_requests(self, make_session, fake_connection: FakeConnection):
        states: list[SessionState] = []
        session = make_session(fake_connection)
        original = session._set_state

        def spy(state: SessionState) -> None:
            states.append(state)
            original(state)

        session._set_state = spy  # type: ignore[method-assign]
        fake_connection.push(CHALLENGE)
        fake_connection.push(LOGIN_OK)
        fake_connection.push_eof()

        with pytest.raises(TransportError):
            await session.run()
        await session.close()

        assert states == [
            SessionState.CONNECTING,
            SessionState.AWAITING_CHALLENGE,
            SessionState.AWAITING_LOGIN_RESULT,
            SessionState.AUTHENTICATED,
            SessionState.ERROR,
        ]

    @pytest.mark.asyncio
    async def test_coalesced_login_replies(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        fake_connection.push_raw(encode_frame(CHALLENGE) + encode_frame(LOGIN_OK))
        fake_connection.push_eof()

        with pytest.raises(TransportError):
            await session.run()

        assert len(fake_connection.sent) == 3
        await session.close()

    @pytest.mark.asyncio
    async def test_missing_keepalive_interval_keeps_default(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        fake_connection.push(CHALLENGE)
        fake_connection.push({"result": True, "params": None, "session": 42})
        fake_connection.push_eof()

        with pytest.raises(TransportError):
            await session.run()

        assert session.keepalive_interval == 60
        await session.close()

    @pytest.mark.asyncio
    async def test_rejected_login(self, make_session, fake_connection: FakeConnection):
        on_authenticated = AsyncMock()
        session = make_session(fake_connection, on_authenticated=on_authenticated)
        fake_connection.push(CHALLENGE)
        fake_connection.push({"error": {"code": 268632085, "message": "Login failed"}, "result": False, "session": 42})

        with pytest.raises(AuthenticationRejected) as exc_info:
            await session.run()

        assert exc_info.value.response["error"]["code"] == 268632085
        assert session.state is SessionState.AUTH_REJECTED
        assert session.keepalive_task is None
        assert len(fake_connection.sent) == 2
        assert all(p["method"] == "global.login" for p in fake_connection.sent_payloads)
        on_authenticated.assert_not_awaited()

        await session.close()
        assert session.state is SessionState.AUTH_REJECTED
        assert fake_connection.closed

    @pytest.mark.asyncio
    async def test_incomplete_challenge(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        fake_connection.push({"result": False, "session": 42})

        with pytest.raises(MalformedFrame):
            await session.run()

        assert session.state is SessionState.ERROR
        assert len(fake_connection.sent) == 1


class TestSteadyState:
    async def _authenticate(self, session, fake_connection: FakeConnection) -> asyncio.Task[None]:
        fake_connection.push(CHALLENGE)
        fake_connection.push(LOGIN_OK)
        task = asyncio.create_task(session.run())
        for _ in range(50):
            if session.state is SessionState.AUTHENTICATED:
                break
            await asyncio.sleep(0)
        assert session.state is SessionState.AUTHENTICATED
        return task

    @pytest.mark.asyncio
    async def test_dispatch(self, make_session, fake_connection: FakeConnection):
        on_events = AsyncMock()
        on_keepalive = AsyncMock()
        session = make_session(fake_connection, on_events=on_events, on_keepalive=on_keepalive)
        task = await self._authenticate(session, fake_connection)

        events = [
            {"Code": "CallNoAnswered", "Action": "Start", "Data": {"CallID": "1"}},
            {"Code": "DoorStatus", "Action": "Pulse", "Data": {"Status": "Open"}},
        ]
        fake_connection.push({"method": "client.notifyEventStream", "params": {"eventList": events}, "session": 42})
        fake_connection.push({"id": 3, "params": {"timeout": 60}, "result": True, "session": 42})
        fake_connection.push({"id": 2, "params": None, "result": True, "session": 42})
        fake_connection.push({"unexpected": "shape"})
        fake_connection.push_eof()

        with pytest.raises(TransportError):
            await task

        on_events.assert_awaited_once_with(events)
        on_keepalive.assert_awaited_once()
        await session.close()

    @pytest.mark.asyncio
    async def test_unclassified_does_not_change_state(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        task = await self._authenticate(session, fake_connection)

        fake_connection.push({"foo": 1})
        for _ in range(20):
            await asyncio.sleep(0)

        assert session.state is SessionState.AUTHENTICATED
        assert not task.done()
        _ = task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await session.close()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_fatal(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        task = await self._authenticate(session, fake_connection)

        fake_connection.push_raw(b"\x00" * 16 + b"\x08\x00\x00\x00" + b"\x00" * 12 + b"not json")

        with pytest.raises(MalformedFrame):
            await task
        assert session.state is SessionState.ERROR
        await session.close()
        assert session.keepalive_task is None

    @pytest.mark.asyncio
    async def test_idle_timeout(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection, timeouts=ShortIdleTimeouts(login_timeout_seconds=1.0))
        task = await self._authenticate(session, fake_connection)

        with pytest.raises(TransportError) as exc_info:
            await task
        assert exc_info.value.reason == "idle_timeout"
        await session.close()


class TestKeepalive:
    @pytest.mark.asyncio
    async def test_keepalive_tick(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        fake_connection.connected = True
        session.state = SessionState.AUTHENTICATED
        session.session_id = 42
        session.request_ordinal = 3
        session.keepalive_interval = 55

        sleep_mock = AsyncMock(side_effect=[None, asyncio.CancelledError()])
        with patch("vto_bridge.transport.session.asyncio.sleep", sleep_mock), pytest.raises(asyncio.CancelledError):
            await session._keepalive_loop()

        assert [c.args[0] for c in sleep_mock.await_args_list] == [55, 55]
        (tick,) = fake_connection.sent_payloads
        assert tick == {
            "id": 3,
            "magic": "0x1234",
            "method": "global.keepAlive",
            "params": {"timeout": 60, "active": True},
            "session": 42,
        }
        assert session.request_ordinal == 4

    @pytest.mark.asyncio
    async def test_keepalive_stops_on_send_failure(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        session.state = SessionState.AUTHENTICATED

        with patch("vto_bridge.transport.session.asyncio.sleep", AsyncMock()):
            await session._keepalive_loop()

        assert fake_connection.sent == []
        assert fake_connection.closed

    @pytest.mark.asyncio
    async def test_failed_keepalive_ends_session_at_once(self, make_session):
        # login, digest login and attach go out, the first keepalive does not
        connection = FakeConnection(send_limit=3)
        connection.push(CHALLENGE)
        connection.push(LOGIN_OK)
        session = make_session(connection)

        with patch("vto_bridge.transport.session.asyncio.sleep", AsyncMock()):
            with pytest.raises(TransportError) as exc_info:
                await asyncio.wait_for(session.run(), timeout=1.0)

        assert exc_info.value.reason == "keepalive_failed: send_failed: Broken pipe"
        assert session.state is SessionState.ERROR
        assert connection.closed
        assert len(connection.sent) == 3
        await session.close()


class TestFailuresAndTeardown:
    @pytest.mark.asyncio
    async def test_connect_failure(self, make_session):
        connection = FakeConnection(connect_ok=False)
        session = make_session(connection)

        with pytest.raises(TransportError) as exc_info:
            await session.run()

        assert exc_info.value.reason.startswith("connect_failed")
        assert session.state is SessionState.ERROR
        assert connection.sent == []

    @pytest.mark.asyncio
    async def test_login_timeout(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection, timeouts=TimeoutConfig(login_timeout_seconds=0.05))

        with pytest.raises(TransportError) as exc_info:
            await session.run()

        assert exc_info.value.reason == "login_timeout"
        assert session.state is SessionState.ERROR

    @pytest.mark.asyncio
    async def test_close_cancels_keepalive_then_socket(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        fake_connection.push(CHALLENGE)
        fake_connection.push(LOGIN_OK)
        fake_connection.push_eof()
        with pytest.raises(TransportError):
            await session.run()
        keepalive_task = session.keepalive_task
        assert keepalive_task is not None

        await session.close()

        assert keepalive_task.cancelled()
        assert fake_connection.closed
        assert session.keepalive_task is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        await session.close()
        await session.close()
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_no_send_after_close(self, make_session, fake_connection: FakeConnection):
        session = make_session(fake_connection)
        await session.close()

        with pytest.raises(TransportError):
            await session.run()
        assert fake_connection.sent == []
