"""
WebSocket Transport Module

This module owns the physical connection to the Chucky service. It tracks the
connection status, queues outbound messages until the connection is up,
decodes inbound frames and pushes everything that happens to a single
:class:`TransportEventSink`.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from types import TracebackType
from typing import Protocol
from urllib.parse import quote

import anyio
import anyio.lowlevel
from anyio.abc import TaskGroup, TaskStatus
from typing_extensions import Self
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidStatus

from chucky.shared.exceptions import AuthenticationError, ChuckyConnectionError, ChuckyError, ProtocolError
from chucky.shared.message import decode_message, encode_message
from chucky.types import Message

logger = logging.getLogger(__name__)

_AUTH_REJECTED_STATUSES = (401, 403)

# Errors raised by a connection whose peer went away
_CLOSED_ERRORS = (ConnectionClosed, anyio.BrokenResourceError, anyio.ClosedResourceError, OSError)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class Connection(Protocol):
    """An open duplex connection carrying one text frame per message.

    ``websockets.asyncio.client.ClientConnection`` satisfies this protocol;
    :class:`chucky.client._memory.MemoryConnection` is the in-process variant.
    """

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[Connection]]


class TransportEventSink(Protocol):
    """Receiver of everything the transport observes.

    All methods are awaited from the transport's reader task, one at a time,
    in the order the events happened.
    """

    async def on_message(self, message: Message) -> None: ...

    async def on_close(self, code: int | None, reason: str | None) -> None: ...

    async def on_error(self, error: ChuckyError) -> None: ...

    async def on_status_change(self, status: ConnectionStatus) -> None: ...


class NullEventSink:
    """Sink that ignores every event."""

    async def on_message(self, message: Message) -> None:
        await anyio.lowlevel.checkpoint()

    async def on_close(self, code: int | None, reason: str | None) -> None:
        await anyio.lowlevel.checkpoint()

    async def on_error(self, error: ChuckyError) -> None:
        await anyio.lowlevel.checkpoint()

    async def on_status_change(self, status: ConnectionStatus) -> None:
        await anyio.lowlevel.checkpoint()


def _as_connection_error(exc: Exception) -> ChuckyError:
    if isinstance(exc, ChuckyError):
        return exc
    if isinstance(exc, InvalidStatus) and exc.response.status_code in _AUTH_REJECTED_STATUSES:
        return AuthenticationError(
            f"Authentication rejected (HTTP {exc.response.status_code})",
            details={"status_code": exc.response.status_code},
        )
    return ChuckyConnectionError(f"Failed to connect: {exc}")


class WebSocketTransport:
    """Transport for one Chucky session over a WebSocket.

    The transport must be used as an async context manager: entering it
    creates the task group that hosts the reader task started by
    :meth:`connect`.

    Example:
        ```python
        async with WebSocketTransport(url, token) as transport:
            transport.set_event_sink(sink)
            await transport.connect()
            await transport.send(message)
        ```
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        open_timeout: float | None = 60.0,
        keep_alive_interval: float | None = 300.0,
        connector: Connector | None = None,
    ) -> None:
        self._base_url = base_url
        self._token = token
        self._open_timeout = open_timeout
        self._keep_alive_interval = keep_alive_interval
        self._connector: Connector = connector or self._open_websocket
        self._connection: Connection | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._sink: TransportEventSink = NullEventSink()
        self._queue: deque[Message] = deque()
        self._write_lock = anyio.Lock()
        self._task_group: TaskGroup | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def url(self) -> str:
        """Connection target with the bearer token embedded."""
        separator = "&" if "?" in self._base_url else "?"
        return f"{self._base_url}{separator}token={quote(self._token, safe='')}"

    @property
    def queued(self) -> int:
        """Number of messages waiting for the connection."""
        return len(self._queue)

    def set_event_sink(self, sink: TransportEventSink) -> None:
        self._sink = sink

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        await self.disconnect()
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        # Leaving the transport must not wait for the reader
        task_group.cancel_scope.cancel()
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    async def connect(self) -> None:
        """Open the connection, then flush queued messages in order.

        Raises:
            AuthenticationError: If the server rejected the token.
            ChuckyConnectionError: If the connection could not be opened.
            RuntimeError: If the transport is not entered as a context manager.
        """
        if self._status is ConnectionStatus.CONNECTED:
            return
        if self._task_group is None:
            raise RuntimeError("WebSocketTransport must be used as an async context manager")

        await self._set_status(ConnectionStatus.CONNECTING)
        logger.debug("Connecting to %s", self._base_url)

        try:
            connection = await self._connector(self.url)
        except Exception as exc:
            error = _as_connection_error(exc)
            await self._set_status(ConnectionStatus.ERROR)
            logger.warning("Connection to %s failed: %s", self._base_url, error)
            await self._report_error(error)
            if error is exc:
                raise
            raise error from exc

        self._connection = connection
        await self._set_status(ConnectionStatus.CONNECTED)
        logger.debug("Connected to %s", self._base_url)

        await self._task_group.start(self._read_loop, connection)
        await self._flush_queue()

    async def disconnect(self) -> None:
        """Close the connection if open. Never raises."""
        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                await connection.close()
            except Exception:
                logger.debug("Error while closing connection", exc_info=True)
        await self._set_status(ConnectionStatus.DISCONNECTED)

    async def send(self, message: Message) -> None:
        """Send a message, or queue it until the connection is up.

        Raises:
            ChuckyConnectionError: If writing to an open connection failed.
        """
        # A non-empty queue means a flush is still draining; stay behind it
        if self._status is not ConnectionStatus.CONNECTED or self._queue:
            logger.debug("Queueing %s message until connected", message.type)
            self._queue.append(message)
            return

        async with self._write_lock:
            await self._write(message)

    async def _flush_queue(self) -> None:
        async with self._write_lock:
            while self._queue:
                message = self._queue.popleft()
                try:
                    await self._write(message)
                except ChuckyConnectionError as exc:
                    logger.warning("Failed to flush queued %s message: %s", message.type, exc)
                    await self._report_error(exc)

    async def _write(self, message: Message) -> None:
        connection = self._connection
        if connection is None:
            raise ChuckyConnectionError("Not connected")

        frame = encode_message(message)
        logger.debug("Sending: %s", frame)
        try:
            await connection.send(frame)
        except _CLOSED_ERRORS as exc:
            raise ChuckyConnectionError(f"Failed to send {message.type} message: {exc}") from exc

    async def _read_loop(
        self,
        connection: Connection,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        task_status.started()
        try:
            async for frame in connection:
                await self._handle_frame(frame)
        except anyio.ClosedResourceError:
            # Closed locally by disconnect()
            pass
        except (ConnectionClosedError, anyio.BrokenResourceError) as exc:
            if self._connection is connection:
                error = ChuckyConnectionError(f"Connection lost: {exc}")
                logger.warning("%s", error)
                await self._report_error(error)

        if self._connection is not connection:
            return

        self._connection = None
        await self._set_status(ConnectionStatus.DISCONNECTED)
        logger.debug("Connection closed: %s %s", connection.close_code, connection.close_reason)
        try:
            await self._sink.on_close(connection.close_code, connection.close_reason)
        except Exception:
            logger.exception("Close handler failed")

    async def _handle_frame(self, frame: str | bytes) -> None:
        logger.debug("Received: %s", frame)
        try:
            message = decode_message(frame)
        except ProtocolError as exc:
            logger.warning("Ignoring undecodable frame: %s", exc)
            await self._report_error(exc)
            return

        # A failing handler must not stop the reader
        try:
            await self._sink.on_message(message)
        except Exception as exc:
            logger.exception("Error while handling %s message", message.type)
            if isinstance(exc, ChuckyError):
                await self._report_error(exc)
                return
            error = ChuckyError(f"Message handler failed: {exc}")
            error.__cause__ = exc
            await self._report_error(error)

    async def _report_error(self, error: ChuckyError) -> None:
        try:
            await self._sink.on_error(error)
        except Exception:
            logger.exception("Error handler failed while reporting: %s", error)

    async def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        await self._sink.on_status_change(status)

    async def _open_websocket(self, url: str) -> Connection:
        return await websocket_connect(
            url,
            open_timeout=self._open_timeout,
            ping_interval=self._keep_alive_interval,
        )
