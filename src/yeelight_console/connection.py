"""Persistent TCP connection to one bulb.

Responsibilities:
- Own the socket and its lifecycle (CONNECTING -> OPEN -> CLOSED).
- Serialize writes from concurrent callers.
- Run the single read loop that decodes each line and routes it to the
  request tracker or the notification dispatcher.

Reconnecting is left to the caller; a closed Connection stays closed.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Optional

from . import codec
from .codec import Notification
from .errors import BulbIOError, ConnectError, DecodeError, Disconnected
from .notifications import DEFAULT_BUFFER_SIZE, NotificationDispatcher
from .tracker import RequestTracker

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0


class ConnectionState(Enum):
    """Connection lifecycle states."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Connection:
    """
    Line-oriented JSON connection shared by every call on a bulb.

    Typical usage:
        conn = await Connection.open("192.168.1.20", 55443)
        future = conn.tracker.register(conn.next_id(), "toggle")
        ...
        await conn.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        notification_buffer: int = DEFAULT_BUFFER_SIZE,
    ):
        """
        Create an unopened connection.

        Args:
            host: Bulb address
            port: Bulb control port
            notification_buffer: Default buffer size for subscriptions
        """
        self.host = host
        self.port = port
        self.state = ConnectionState.CONNECTING
        self.tracker = RequestTracker()
        self.notifications = NotificationDispatcher(notification_buffer)

        self.close_reason: Optional[str] = None
        self._ids = itertools.count(1)
        self._writer: Optional[asyncio.StreamWriter] = None
        self._write_lock = asyncio.Lock()
        self._read_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
        notification_buffer: int = DEFAULT_BUFFER_SIZE,
    ) -> Connection:
        """Connect to ``host:port`` and start the read loop.

        Raises:
            ConnectError: if the socket cannot be established in time
        """
        conn = cls(host, port, notification_buffer=notification_buffer)
        await conn._connect(timeout)
        return conn

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def __repr__(self) -> str:
        return f"<Connection {self.host}:{self.port} {self.state.value}>"

    def next_id(self) -> int:
        """Return the next correlation id; ids are never reused."""
        return next(self._ids)

    async def _connect(self, timeout: Optional[float]) -> None:
        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to %s:%s", self.host, self.port)
        try:
            reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            self._shutdown("connect timed out")
            raise ConnectError(
                f"Timed out connecting to {self.host}:{self.port} after {timeout}s"
            ) from exc
        except OSError as exc:
            self._shutdown("connect failed")
            raise ConnectError(f"Failed to connect to {self.host}:{self.port}: {exc}") from exc

        self.state = ConnectionState.OPEN
        self._read_task = asyncio.create_task(
            self._read_loop(reader), name=f"yeelight-read-{self.host}:{self.port}"
        )
        logger.info("Connected to %s:%s", self.host, self.port)

    async def send(self, line: str) -> None:
        """
        Write one encoded request followed by the line terminator.

        Raises:
            Disconnected: if the connection is not open
            BulbIOError: if the write fails; the connection is closed as well
        """
        if not self.is_open or self._writer is None:
            raise Disconnected(f"connection to {self.host}:{self.port} is closed")

        data = (line + codec.LINE_TERMINATOR).encode("utf-8")
        async with self._write_lock:
            if not self.is_open:
                raise Disconnected(f"connection to {self.host}:{self.port} is closed")
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (OSError, RuntimeError) as exc:
                self._shutdown(f"write failed: {exc}")
                raise BulbIOError(
                    f"Socket write failed to {self.host}:{self.port}: {exc}"
                ) from exc
        logger.debug("TX %s", line)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        reason = "closed by peer"
        discarding = False
        try:
            while True:
                try:
                    raw = await reader.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    # EOF; route whatever partial line is left
                    raw = exc.partial
                    if raw and not discarding:
                        self._route(raw)
                    break
                except asyncio.LimitOverrunError as exc:
                    # drop the buffered part of an over-long line and keep reading
                    if not discarding:
                        logger.warning(
                            "Skipping over-long line from %s:%s (more than %d bytes)",
                            self.host,
                            self.port,
                            exc.consumed,
                        )
                    discarding = True
                    await reader.readexactly(exc.consumed)
                    continue
                except OSError as exc:
                    reason = f"read failed: {exc}"
                    logger.warning(
                        "Read from %s:%s failed: %s", self.host, self.port, exc
                    )
                    break

                if discarding:
                    # tail of the over-long line
                    discarding = False
                    continue
                self._route(raw)
        finally:
            self._shutdown(reason)

    def _route(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        logger.debug("RX %s", line)
        try:
            message = codec.decode(line)
        except DecodeError as exc:
            logger.warning("Skipping malformed line from %s:%s: %s", self.host, self.port, exc)
            return

        if isinstance(message, Notification):
            self.notifications.dispatch(message)
        else:
            self.tracker.resolve(message.id, message)

    def _shutdown(self, reason: str) -> None:
        if self._closed.is_set():
            return
        was_open = self.state is ConnectionState.OPEN
        self.state = ConnectionState.CLOSED
        self.close_reason = reason
        self._closed.set()

        self.tracker.fail_all(
            Disconnected(f"connection to {self.host}:{self.port} closed ({reason})")
        )
        self.notifications.close()
        if self._writer is not None:
            self._writer.close()
        if was_open:
            logger.info("Connection to %s:%s closed: %s", self.host, self.port, reason)

    async def wait_closed(self) -> None:
        """Wait until the connection has closed for any reason."""
        await self._closed.wait()

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        self._shutdown("closed by client")
        task = self._read_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._writer is not None:
            try:
                await self._writer.wait_closed()
            except (OSError, RuntimeError):
                pass
