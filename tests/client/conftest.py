import anyio
import pytest

from chucky.client._memory import MemoryConnection, MemoryConnector
from chucky.client.transport import ConnectionStatus
from chucky.shared.exceptions import ChuckyError
from chucky.shared.message import decode_message, encode_message
from chucky.types import InitMessage, Message, SystemMessage, SystemSubtype


class FakeServer:
    """Server side of the memory connections handed out by a MemoryConnector."""

    def __init__(self, connector: MemoryConnector) -> None:
        self.connector = connector
        self._connection: MemoryConnection | None = None

    @property
    def connection(self) -> MemoryConnection:
        assert self._connection is not None, "accept() first"
        return self._connection

    async def accept(self) -> MemoryConnection:
        self._connection = await self.connector.accept()
        return self._connection

    async def receive(self) -> Message:
        return decode_message(await self.connection.receive())

    async def send(self, message: Message) -> None:
        await self.connection.send(encode_message(message))

    async def send_raw(self, frame: str) -> None:
        await self.connection.send(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self.connection.close(code, reason)

    async def handshake(self, session_id: str = "sess-1") -> InitMessage:
        """Accept the next connection and acknowledge its init message."""
        await self.accept()
        init = await self.receive()
        assert isinstance(init, InitMessage)
        await self.send(SystemMessage(subtype=SystemSubtype.INIT, session_id=session_id))
        return init


class RecordingSink:
    """Transport event sink that records every event."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.errors: list[ChuckyError] = []
        self.closes: list[tuple[int | None, str | None]] = []
        self.statuses: list[ConnectionStatus] = []
        self.message_received = anyio.Event()
        self.closed = anyio.Event()

    async def on_message(self, message: Message) -> None:
        self.messages.append(message)
        self.message_received.set()

    async def on_close(self, code: int | None, reason: str | None) -> None:
        self.closes.append((code, reason))
        self.closed.set()

    async def on_error(self, error: ChuckyError) -> None:
        self.errors.append(error)

    async def on_status_change(self, status: ConnectionStatus) -> None:
        self.statuses.append(status)


@pytest.fixture
def connector() -> MemoryConnector:
    return MemoryConnector()


@pytest.fixture
def server(connector: MemoryConnector) -> FakeServer:
    return FakeServer(connector)


@pytest.fixture
async def sink() -> RecordingSink:
    return RecordingSink()
