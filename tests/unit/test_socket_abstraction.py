"""Unit tests for the TCPConnection socket wrapper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vto_bridge.transport.socket_abstraction import TCPConnection


class ConnectedHarness(TCPConnection):
    """TCPConnection with a way to inject reader/writer mocks."""

    def attach(self, *, reader: AsyncMock | None = None, writer: AsyncMock | MagicMock | None = None) -> None:
        self._connected = True
        self.reader = reader
        self.writer = writer


@pytest.fixture
def tcp_connection() -> ConnectedHarness:
    return ConnectedHarness(host="127.0.0.1", port=5000, connect_timeout=0.1, io_timeout=0.1)


def make_writer() -> MagicMock:
    writer = MagicMock(spec=asyncio.StreamWriter)
    writer.write = MagicMock()
    writer.drain = AsyncMock()
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_success(self, tcp_connection: ConnectedHarness) -> None:
        reader = AsyncMock(spec=asyncio.StreamReader)
        writer = make_writer()
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))) as mock_open:
            assert await tcp_connection.connect() is True

        mock_open.assert_awaited_once_with("127.0.0.1", 5000)
        assert tcp_connection.is_connected
        assert tcp_connection.reader is reader
        assert tcp_connection.last_error is None
        assert repr(tcp_connection) == "TCPConnection(127.0.0.1:5000, connected)"

    @pytest.mark.asyncio
    async def test_connect_timeout(self, tcp_connection: ConnectedHarness) -> None:
        async def slow_connect(*_args: object, **_kwargs: object) -> tuple[AsyncMock, MagicMock]:
            await asyncio.sleep(1.0)
            return AsyncMock(), make_writer()

        with patch("asyncio.open_connection", side_effect=slow_connect):
            assert await tcp_connection.connect() is False

        assert not tcp_connection.is_connected
        assert tcp_connection.last_error == "timeout"
        assert tcp_connection.writer is None

    @pytest.mark.asyncio
    async def test_connect_refused(self, tcp_connection: ConnectedHarness) -> None:
        with patch("asyncio.open_connection", side_effect=ConnectionRefusedError("Connection refused")):
            assert await tcp_connection.connect() is False

        assert tcp_connection.last_error == "Connection refused"


class TestSend:
    @pytest.mark.asyncio
    async def test_send_success(self, tcp_connection: ConnectedHarness) -> None:
        writer = make_writer()
        tcp_connection.attach(writer=writer)

        assert await tcp_connection.send(b"frame") is True
        writer.write.assert_called_once_with(b"frame")
        writer.drain.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_not_connected(self, tcp_connection: ConnectedHarness) -> None:
        assert await tcp_connection.send(b"frame") is False
        assert tcp_connection.last_error == "not_connected"

    @pytest.mark.asyncio
    async def test_send_timeout(self, tcp_connection: ConnectedHarness) -> None:
        writer = make_writer()

        async def slow_drain() -> None:
            await asyncio.sleep(1.0)

        writer.drain = slow_drain
        tcp_connection.attach(writer=writer)

        assert await tcp_connection.send(b"frame") is False
        assert tcp_connection.last_error == "timeout"

    @pytest.mark.asyncio
    async def test_send_broken_pipe(self, tcp_connection: ConnectedHarness) -> None:
        writer = make_writer()
        writer.drain = AsyncMock(side_effect=BrokenPipeError("Broken pipe"))
        tcp_connection.attach(writer=writer)

        assert await tcp_connection.send(b"frame") is False
        assert tcp_connection.last_error == "Broken pipe"


class TestRecv:
    @pytest.mark.asyncio
    async def test_recv_data(self, tcp_connection: ConnectedHarness) -> None:
        reader = AsyncMock(spec=asyncio.StreamReader)
        reader.read = AsyncMock(return_value=b"abc")
        tcp_connection.attach(reader=reader, writer=make_writer())

        assert await tcp_connection.recv(max_bytes=16) == b"abc"
        reader.read.assert_awaited_once_with(16)

    @pytest.mark.asyncio
    async def test_recv_eof(self, tcp_connection: ConnectedHarness) -> None:
        reader = AsyncMock(spec=asyncio.StreamReader)
        reader.read = AsyncMock(return_value=b"")
        tcp_connection.attach(reader=reader, writer=make_writer())

        assert await tcp_connection.recv() is None
        assert tcp_connection.last_error == "eof"
        assert not tcp_connection.is_connected

    @pytest.mark.asyncio
    async def test_recv_timeout_keeps_connection(self, tcp_connection: ConnectedHarness) -> None:
        reader = AsyncMock(spec=asyncio.StreamReader)

        async def slow_read(_n: int) -> bytes:
            await asyncio.sleep(1.0)
            return b"late"

        reader.read = slow_read
        tcp_connection.attach(reader=reader, writer=make_writer())

        assert await tcp_connection.recv(timeout=0.01) is None
        assert tcp_connection.last_error == "timeout"
        assert tcp_connection.is_connected

    @pytest.mark.asyncio
    async def test_recv_reset(self, tcp_connection: ConnectedHarness) -> None:
        reader = AsyncMock(spec=asyncio.StreamReader)
        reader.read = AsyncMock(side_effect=ConnectionResetError("Connection reset by peer"))
        tcp_connection.attach(reader=reader, writer=make_writer())

        assert await tcp_connection.recv() is None
        assert tcp_connection.last_error == "Connection reset by peer"

    @pytest.mark.asyncio
    async def test_recv_not_connected(self, tcp_connection: ConnectedHarness) -> None:
        assert await tcp_connection.recv() is None
        assert tcp_connection.last_error == "not_connected"


class TestClose:
    @pytest.mark.asyncio
    async def test_close(self, tcp_connection: ConnectedHarness) -> None:
        writer = make_writer()
        tcp_connection.attach(reader=AsyncMock(), writer=writer)

        await tcp_connection.close()

        writer.close.assert_called_once()
        writer.wait_closed.assert_awaited_once()
        assert not tcp_connection.is_connected
        assert tcp_connection.writer is None

    @pytest.mark.asyncio
    async def test_close_error_still_cleans_up(self, tcp_connection: ConnectedHarness) -> None:
        writer = make_writer()
        writer.wait_closed = AsyncMock(side_effect=ConnectionResetError("reset"))
        tcp_connection.attach(reader=AsyncMock(), writer=writer)

        await tcp_connection.close()

        assert tcp_connection.writer is None
        assert tcp_connection.reader is None

    @pytest.mark.asyncio
    async def test_close_twice(self, tcp_connection: ConnectedHarness) -> None:
        await tcp_connection.close()
        await tcp_connection.close()
        assert not tcp_connection.is_connected
