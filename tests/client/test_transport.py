import anyio
import anyio.lowlevel
import pytest
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

from chucky.client._memory import MemoryConnector
from chucky.client.transport import ConnectionStatus, WebSocketTransport
from chucky.shared.exceptions import AuthenticationError, ChuckyConnectionError, ChuckyError, ProtocolError
from chucky.types import ControlAction, ControlMessage, Message, PingMessage, UserMessage


def make_transport(connector: MemoryConnector, base_url: str = "ws://test/ws") -> WebSocketTransport:
    return WebSocketTransport(base_url, "secret-token", connector=connector)


@pytest.mark.anyio
async def test_url_embeds_token():
    transport = WebSocketTransport("wss://example.com/ws", "a b/c")
    assert transport.url == "wss://example.com/ws?token=a%20b%2Fc"


@pytest.mark.anyio
async def test_url_appends_token_to_existing_query():
    transport = WebSocketTransport("wss://example.com/ws?region=eu", "tok")
    assert transport.url == "wss://example.com/ws?region=eu&token=tok"


@pytest.mark.anyio
async def test_connect_requires_context_manager(connector, sink):
    transport = make_transport(connector)
    transport.set_event_sink(sink)
    with pytest.raises(RuntimeError):
        await transport.connect()


@pytest.mark.anyio
async def test_connect_reports_status_changes(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()

        assert transport.status is ConnectionStatus.CONNECTED
        assert sink.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        assert connector.urls == ["ws://test/ws?token=secret-token"]

        # Connecting again is a no-op
        await transport.connect()
        assert len(connector.urls) == 1

    assert transport.status is ConnectionStatus.DISCONNECTED
    assert sink.statuses[-1] is ConnectionStatus.DISCONNECTED


@pytest.mark.anyio
async def test_messages_sent_before_connect_are_flushed_in_order(connector, server, sink):
    first = UserMessage.create("s", "first")
    second = UserMessage.create("s", "second")
    third = UserMessage.create("s", "third")

    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)

        await transport.send(first)
        await transport.send(second)
        assert transport.queued == 2
        assert transport.status is ConnectionStatus.DISCONNECTED

        await transport.connect()
        assert transport.queued == 0
        await transport.send(third)

        with anyio.fail_after(1):
            await server.accept()
            received = [await server.receive() for _ in range(3)]

    assert received == [first, second, third]
    assert sink.errors == []


@pytest.mark.anyio
async def test_inbound_frames_are_decoded(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()

        await server.send(PingMessage.create(42))
        with anyio.fail_after(1):
            await sink.message_received.wait()

    assert sink.messages == [PingMessage.create(42)]


@pytest.mark.anyio
async def test_malformed_frames_do_not_stop_the_reader(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()

        await server.send_raw("not json")
        await server.send_raw('{"type": "bogus"}')
        await server.send_raw('{"type": "tool_call", "payload": {"toolName": "add"}}')
        await server.send_raw("[" * 100_000 + "]" * 100_000)
        await server.send(ControlMessage.create(ControlAction.READY))

        with anyio.fail_after(1):
            await sink.message_received.wait()

        assert transport.status is ConnectionStatus.CONNECTED

    assert len(sink.errors) == 4
    assert all(isinstance(error, ProtocolError) for error in sink.errors)
    assert sink.messages == [ControlMessage.create(ControlAction.READY)]
    assert sink.closes == []


@pytest.mark.anyio
async def test_failing_sink_does_not_stop_the_reader(connector, server):
    class FailingSink:
        def __init__(self) -> None:
            self.messages: list[Message] = []
            self.errors: list[ChuckyError] = []
            self.closes: list[tuple[int | None, str | None]] = []
            self.closed = anyio.Event()

        async def on_message(self, message: Message) -> None:
            self.messages.append(message)
            if len(self.messages) == 1:
                raise ValueError("handler bug")

        async def on_error(self, error: ChuckyError) -> None:
            self.errors.append(error)
            raise RuntimeError("error handler bug")

        async def on_close(self, code: int | None, reason: str | None) -> None:
            self.closes.append((code, reason))
            self.closed.set()
            raise RuntimeError("close handler bug")

        async def on_status_change(self, status: ConnectionStatus) -> None:
            await anyio.lowlevel.checkpoint()

    sink = FailingSink()
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()

        await server.send(PingMessage.create(1))
        await server.send(PingMessage.create(2))
        await server.close(1000, "done")
        with anyio.fail_after(1):
            await sink.closed.wait()

    assert sink.messages == [PingMessage.create(1), PingMessage.create(2)]
    assert len(sink.errors) == 1
    assert sink.errors[0].message == "Message handler failed: handler bug"
    assert isinstance(sink.errors[0].__cause__, ValueError)
    assert sink.closes == [(1000, "done")]


@pytest.mark.anyio
async def test_remote_close_notifies_sink(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()

        await server.close(4001, "going away")
        with anyio.fail_after(1):
            await sink.closed.wait()

        assert transport.status is ConnectionStatus.DISCONNECTED

    assert sink.closes == [(4001, "going away")]


@pytest.mark.anyio
async def test_send_after_remote_close_is_queued(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()
        await server.close()
        with anyio.fail_after(1):
            await sink.closed.wait()

        await transport.send(UserMessage.create("s", "later"))
        assert transport.queued == 1


@pytest.mark.anyio
async def test_local_disconnect_does_not_report_close(connector, server, sink):
    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        await transport.connect()
        await server.accept()

        await transport.disconnect()
        assert transport.status is ConnectionStatus.DISCONNECTED
        # Safe to call twice
        await transport.disconnect()

    assert sink.closes == []
    assert sink.errors == []


@pytest.mark.anyio
async def test_connect_failure_sets_error_status(connector, sink):
    connector.fail_with = OSError("connection refused")

    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        with pytest.raises(ChuckyConnectionError, match="connection refused"):
            await transport.connect()

        assert transport.status is ConnectionStatus.ERROR
        assert len(sink.errors) == 1
        assert isinstance(sink.errors[0], ChuckyConnectionError)

        # A new attempt from the error state starts over
        connector.fail_with = None
        await transport.connect()
        assert transport.status is ConnectionStatus.CONNECTED


@pytest.mark.anyio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_rejected_handshake_is_an_authentication_error(connector, sink, status_code):
    connector.fail_with = InvalidStatus(Response(status_code, "Unauthorized", Headers()))

    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        with pytest.raises(AuthenticationError) as exc_info:
            await transport.connect()

    assert exc_info.value.details == {"status_code": status_code}
    assert sink.errors == [exc_info.value]


@pytest.mark.anyio
async def test_other_rejected_handshake_is_a_connection_error(connector, sink):
    connector.fail_with = InvalidStatus(Response(500, "Internal Server Error", Headers()))

    async with make_transport(connector) as transport:
        transport.set_event_sink(sink)
        with pytest.raises(ChuckyConnectionError):
            await transport.connect()
