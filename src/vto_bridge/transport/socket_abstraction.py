"""Asyncio TCP connection to the door station's control port."""

from __future__ import annotations

import asyncio
import time

from vto_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class TCPConnection:
    """Stream reader/writer pair with per-operation deadlines.

    Failures are reported through return values (False / None) with the
    cause kept in ``last_error`` ("timeout", "eof", "not_connected" or the
    OS error text), so the session decides what a failure means.
    """

    lp: str = "tcp:"

    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 5.0,
        io_timeout: float = 5.0,
        max_read_size: int = 65536,
    ):
        """
        Args:
            host: Door station address
            port: Control port
            connect_timeout: Deadline for the TCP handshake in seconds
            io_timeout: Default deadline for a drain or a read in seconds
            max_read_size: Upper bound for a single read
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self.last_error: str | None = None
        self._connected = False

    @property
    def peer(self) -> str:
        return f"{self.host}:{self.port}"

    def _fail(self, op: str, error: str, *, warn: bool = False, **context: object) -> None:
        self.last_error = error
        log = logger.warning if warn else logger.error
        log("%s%s %s failed: %s", self.lp, op, self.peer, error, extra={"peer": self.peer, "error": error, **context})

    async def connect(self) -> bool:
        """Open the connection.

        Returns:
            True once connected, False on timeout or OS error
        """
        start = time.perf_counter()
        self.last_error = None
        logger.info(
            "%sconnect Connecting to %s (timeout: %.1fs)",
            self.lp,
            self.peer,
            self.connect_timeout,
            extra={"peer": self.peer, "timeout": self.connect_timeout},
        )
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except TimeoutError:
            self._fail("connect", "timeout", elapsed_ms=_elapsed_ms(start))
            return False
        except OSError as e:
            self._fail("connect", str(e), elapsed_ms=_elapsed_ms(start))
            return False

        self._connected = True
        elapsed = _elapsed_ms(start)
        logger.info("%sconnect Connected to %s in %.1fms", self.lp, self.peer, elapsed, extra={"elapsed_ms": elapsed})
        return True

    async def send(self, data: bytes) -> bool:
        """Write one complete frame and wait for the buffer to drain."""
        if not self._connected or self.writer is None:
            self._fail("send", "not_connected")
            return False

        start = time.perf_counter()
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.io_timeout)
        except TimeoutError:
            self._fail("send", "timeout", bytes=len(data))
            return False
        except OSError as e:
            self._fail("send", str(e), bytes=len(data))
            return False

        logger.debug(
            "%ssend %d bytes in %.1fms",
            self.lp,
            len(data),
            _elapsed_ms(start),
            extra={"bytes": len(data)},
        )
        return True

    async def recv(self, timeout: float | None = None, max_bytes: int | None = None) -> bytes | None:
        """Read whatever the device has sent, up to ``max_bytes``.

        A timeout leaves the connection usable; EOF marks it disconnected.

        Returns:
            The bytes read, or None with ``last_error`` set
        """
        if not self._connected or self.reader is None:
            self._fail("recv", "not_connected")
            return None

        deadline = self.io_timeout if timeout is None else timeout
        start = time.perf_counter()
        try:
            data = await asyncio.wait_for(self.reader.read(max_bytes or self.max_read_size), timeout=deadline)
        except TimeoutError:
            self._fail("recv", "timeout", warn=True, deadline=deadline)
            return None
        except OSError as e:
            self._fail("recv", str(e))
            return None

        if not data:
            self._connected = False
            self._fail("recv", "eof", warn=True, elapsed_ms=_elapsed_ms(start))
            return None
        logger.debug("%srecv %d bytes in %.1fms", self.lp, len(data), _elapsed_ms(start), extra={"bytes": len(data)})
        return data

    async def close(self) -> None:
        """Close the writer. Safe to call more than once."""
        writer, self.writer = self.writer, None
        self.reader = None
        self._connected = False
        if writer is None:
            return
        logger.info("%sclose Closing connection to %s", self.lp, self.peer)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            # peer already reset the connection
            logger.warning("%sclose %s", self.lp, e, extra={"error_type": type(e).__name__})

    @property
    def is_connected(self) -> bool:
        return self._connected

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"TCPConnection({self.peer}, {status})"
