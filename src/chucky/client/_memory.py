"""In-memory connections for running sessions without network overhead."""

from __future__ import annotations

import math

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream


class MemoryConnection:
    """One end of an in-memory duplex connection carrying text frames.

    Closing either end ends iteration on both ends, like a WebSocket close.
    """

    def __init__(
        self,
        send_stream: MemoryObjectSendStream[str | bytes],
        receive_stream: MemoryObjectReceiveStream[str | bytes],
    ) -> None:
        self._send_stream = send_stream
        self._receive_stream = receive_stream
        self._peer: MemoryConnection | None = None
        self.close_code: int | None = None
        self.close_reason: str | None = None

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    async def send(self, message: str | bytes) -> None:
        await self._send_stream.send(message)

    async def receive(self) -> str | bytes:
        """Receive the next frame sent by the peer."""
        return await self._receive_stream.receive()

    def __aiter__(self) -> MemoryObjectReceiveStream[str | bytes]:
        return self._receive_stream

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.close_code, self.close_reason = code, reason
        await self._send_stream.aclose()
        if self._peer is not None:
            if not self._peer.closed:
                self._peer.close_code, self._peer.close_reason = code, reason
            await self._peer._send_stream.aclose()


def create_memory_connection_pair() -> tuple[MemoryConnection, MemoryConnection]:
    """Create a connected (client, server) pair of memory connections."""
    client_send, server_receive = anyio.create_memory_object_stream[str | bytes](math.inf)
    server_send, client_receive = anyio.create_memory_object_stream[str | bytes](math.inf)

    client = MemoryConnection(client_send, client_receive)
    server = MemoryConnection(server_send, server_receive)
    client._peer, server._peer = server, client
    return client, server


class MemoryConnector:
    """Connector handing out memory connections instead of opening sockets.

    Every connection attempt creates a fresh pair; the server ends are
    collected and returned by :meth:`accept`. Setting ``fail_with`` makes the
    next attempts raise that exception instead.
    """

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.fail_with: Exception | None = None
        self._accepted_writer, self._accepted = anyio.create_memory_object_stream[MemoryConnection](math.inf)

    async def __call__(self, url: str) -> MemoryConnection:
        self.urls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        client, server = create_memory_connection_pair()
        await self._accepted_writer.send(server)
        return client

    async def accept(self) -> MemoryConnection:
        """Wait for the server end of the next connection."""
        return await self._accepted.receive()
