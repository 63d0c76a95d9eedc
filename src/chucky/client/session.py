from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from types import TracebackType
from typing import Protocol
from uuid import uuid4

import anyio
import anyio.lowlevel
from typing_extensions import Self

from chucky.client.options import SessionOptions
from chucky.client.tool_dispatcher import ToolDispatcher
from chucky.client.transport import ConnectionStatus, WebSocketTransport
from chucky.shared.exceptions import (
    ChuckyConnectionError,
    ChuckyError,
    ChuckyValidationError,
    SessionError,
    error_from_message,
)
from chucky.shared.result_cell import ResultCell
from chucky.types import (
    AssistantMessage,
    ControlAction,
    ControlMessage,
    ErrorMessage,
    InitMessage,
    Message,
    ResultMessage,
    SessionState,
    SystemMessage,
    SystemSubtype,
    ToolCallMessage,
    UserMessage,
)

logger = logging.getLogger(__name__)

_READY_ACTIONS = (ControlAction.READY, ControlAction.SESSION_INFO)


class MessageHandlerFnT(Protocol):
    async def __call__(self, message: Message) -> None: ...  # pragma: no branch


class ErrorHandlerFnT(Protocol):
    async def __call__(self, error: ChuckyError) -> None: ...  # pragma: no branch


class CloseHandlerFnT(Protocol):
    async def __call__(self) -> None: ...  # pragma: no branch


async def _default_message_handler(message: Message) -> None:
    await anyio.lowlevel.checkpoint()


async def _default_error_handler(error: ChuckyError) -> None:
    await anyio.lowlevel.checkpoint()


async def _default_close_handler() -> None:
    await anyio.lowlevel.checkpoint()


def _init_session_id(message: SystemMessage) -> str:
    if isinstance(message.data, dict):
        session_id = message.data.get("session_id")
        if isinstance(session_id, str) and session_id:
            return session_id
    return message.session_id


class Session:
    """A multi-turn conversation with the Chucky service.

    The session drives the handshake over its transport, buffers inbound
    messages for :meth:`receive` and answers tool calls with the handlers
    declared in ``options.mcp_servers``. It is an async context manager;
    leaving the context closes the session.

    Example:
        ```python
        async with client.create_session(options) as session:
            await session.send("What is 2 + 2?")
            async for message in session.receive_turn():
                print(get_assistant_text(message) or get_result_text(message))
        ```
    """

    def __init__(
        self,
        transport: WebSocketTransport,
        options: SessionOptions | None = None,
        *,
        message_handler: MessageHandlerFnT | None = None,
        error_handler: ErrorHandlerFnT | None = None,
        close_handler: CloseHandlerFnT | None = None,
    ) -> None:
        self._transport = transport
        self._options = options or SessionOptions()
        self._message_handler = message_handler or _default_message_handler
        self._error_handler = error_handler or _default_error_handler
        self._close_handler = close_handler or _default_close_handler

        self._session_id = ""
        self._state = SessionState.IDLE
        self._connected = False
        self._closed = False
        self._buffer: deque[Message] = deque()
        self._pending: ResultCell[Message] | None = None
        self._ready: ResultCell[None] | None = None
        self._dispatcher = ToolDispatcher(self._options.tool_handlers())
        self._exit_stack = AsyncExitStack()

        transport.set_event_sink(self)

    @property
    def session_id(self) -> str:
        """Identifier assigned by the server; empty until the session is ready."""
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def options(self) -> SessionOptions:
        return self._options

    @property
    def transport(self) -> WebSocketTransport:
        return self._transport

    async def __aenter__(self) -> Self:
        await self._exit_stack.enter_async_context(self._transport)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            await self.close()
        finally:
            await self._exit_stack.aclose()

    async def connect(self) -> None:
        """Connect the transport and wait for the server to acknowledge the session.

        Concurrent callers share the same initialization.

        Raises:
            AuthenticationError: If the server rejected the token.
            ChuckyConnectionError: If the connection could not be opened.
            SessionError: If the server answered the init with an error.
        """
        if self._connected:
            return
        if self._closed:
            raise SessionError("Session is closed")
        if self._ready is not None and not self._ready.done:
            await self._ready.wait()
            return

        ready: ResultCell[None] = ResultCell()
        self._ready = ready
        self._set_state(SessionState.INITIALIZING)

        try:
            await self._transport.connect()
            await self._transport.send(InitMessage(payload=self._options.to_payload()))
        except Exception as exc:
            self._set_state(SessionState.ERROR)
            if not ready.done:
                ready.set_exception(exc)
            raise

        await ready.wait()

    async def send(self, text: str) -> None:
        """Send a user message, connecting first if needed.

        Returns once the message is handed to the transport; replies are
        read with :meth:`receive`.
        """
        if self._closed:
            raise SessionError("Session is closed")
        if not self._connected:
            await self.connect()

        self._set_state(SessionState.PROCESSING)
        message = UserMessage.create(
            session_id=self._session_id or "unknown",
            content=text,
            uuid=str(uuid4()),
        )
        await self._transport.send(message)

    async def receive(self) -> Message:
        """Wait for the next message from the server.

        Messages are returned in arrival order. Tool calls are answered
        internally and never returned.

        Raises:
            ChuckyValidationError: If another receive() is already waiting.
            SessionError: If the session closed and no messages are left.
        """
        if self._buffer:
            return self._buffer.popleft()
        if self._pending is not None:
            raise ChuckyValidationError("receive() is already waiting for a message")
        if self._closed:
            raise SessionError("Session is closed")

        cell: ResultCell[Message] = ResultCell()
        self._pending = cell
        try:
            return await cell.wait()
        except anyio.get_cancelled_exc_class():
            if self._pending is cell:
                self._pending = None
            elif cell.done and not cell.failed:
                # Assigned a message just as the caller gave up; keep it for the next receive()
                self._buffer.appendleft(cell.result())
                self._wake_receiver()
            raise

    async def receive_turn(self) -> AsyncIterator[Message]:
        """Yield messages until the result that ends the current turn."""
        while True:
            message = await self.receive()
            yield message
            if isinstance(message, ResultMessage):
                return

    async def close(self) -> None:
        """Close the session without waiting for the server.

        A pending :meth:`receive` fails with :class:`SessionError`. Teardown
        completes even if the calling task is being cancelled.
        """
        if self._closed:
            return
        self._closed = True

        with anyio.CancelScope(shield=True):
            if self._transport.status is ConnectionStatus.CONNECTED:
                try:
                    await self._transport.send(ControlMessage.create(ControlAction.CLOSE))
                except ChuckyConnectionError as exc:
                    logger.debug("Could not send close message: %s", exc)
            await self._transport.disconnect()

            self._finish(SessionState.COMPLETED, SessionError("Session closed"))
            await self._close_handler()

    # Transport events

    async def on_message(self, message: Message) -> None:
        if self._initializing and await self._handle_init_message(message):
            return

        if isinstance(message, ToolCallMessage):
            await self._handle_tool_call(message)
            return

        if isinstance(message, ResultMessage):
            self._set_state(SessionState.READY)

        self._deliver(message)
        await self._message_handler(message)

    async def on_close(self, code: int | None, reason: str | None) -> None:
        logger.info("Connection closed by server (code=%s, reason=%s)", code, reason)
        if self._closed:
            return
        self._closed = True

        state = SessionState.ERROR if self._initializing else SessionState.COMPLETED
        self._finish(state, SessionError("Connection closed", details={"code": code, "reason": reason}))
        await self._close_handler()

    async def on_error(self, error: ChuckyError) -> None:
        await self._error_handler(error)

    async def on_status_change(self, status: ConnectionStatus) -> None:
        logger.debug("Transport status: %s", status.value)
        await anyio.lowlevel.checkpoint()

    # Internals

    @property
    def _initializing(self) -> bool:
        return not self._connected and self._ready is not None and not self._ready.done

    async def _handle_init_message(self, message: Message) -> bool:
        """Resolve the handshake; returns True if the message was consumed."""
        if isinstance(message, ControlMessage) and message.action in _READY_ACTIONS:
            self._mark_ready()
            return True

        if isinstance(message, SystemMessage) and message.subtype is SystemSubtype.INIT:
            self._session_id = _init_session_id(message)
            self._mark_ready()
            return True

        if isinstance(message, ErrorMessage):
            error = error_from_message(message, base=SessionError)
            logger.warning("Session initialization failed: %s", error)
            self._set_state(SessionState.ERROR)
            assert self._ready is not None
            self._ready.set_exception(error)
            await self._error_handler(error)

        return False

    def _mark_ready(self) -> None:
        self._connected = True
        self._set_state(SessionState.READY)
        logger.debug("Session %s ready", self._session_id or "<unnamed>")
        assert self._ready is not None
        self._ready.set_result(None)

    async def _handle_tool_call(self, call: ToolCallMessage) -> None:
        self._set_state(SessionState.WAITING_TOOL)
        reply = await self._dispatcher.dispatch(call)
        try:
            await self._transport.send(reply)
        except ChuckyConnectionError as exc:
            logger.warning("Could not send result of tool call %s: %s", call.call_id, exc)
            await self._error_handler(exc)
        self._set_state(SessionState.PROCESSING)

    def _deliver(self, message: Message) -> None:
        # Always go through the buffer so a waiting receiver gets the oldest message
        self._buffer.append(message)
        self._wake_receiver()

    def _wake_receiver(self) -> None:
        if self._pending is not None and self._buffer:
            pending, self._pending = self._pending, None
            pending.set_result(self._buffer.popleft())

    def _finish(self, state: SessionState, error: SessionError) -> None:
        self._connected = False
        self._set_state(state)
        if self._pending is not None:
            pending, self._pending = self._pending, None
            pending.set_exception(error)
        if self._ready is not None and not self._ready.done:
            self._ready.set_exception(error)

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug("Session state: %s -> %s", self._state.value, state.value)
            self._state = state


def get_assistant_text(message: Message) -> str | None:
    """Text of an assistant message, or None for other messages."""
    if isinstance(message, AssistantMessage):
        return message.text
    return None


def get_result_text(message: Message) -> str | None:
    """Final text of a result message, or None for other messages."""
    if isinstance(message, ResultMessage):
        return message.result
    return None
