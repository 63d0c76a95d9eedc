"""Unified client for the Chucky service.

This module provides :class:`ChuckyClient`, which holds the connection
settings and creates one :class:`~chucky.client.session.Session` per
conversation.

Example:
    ```python
    from chucky import ChuckyClient, ClientOptions, SessionOptions

    async with ChuckyClient(ClientOptions(token=token)) as client:
        async with client.create_session(SessionOptions(model="claude-sonnet-4-5-20250929")) as session:
            await session.send("Hello!")
            async for message in session.receive_turn():
                ...
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType

from typing_extensions import Self

from chucky.client.options import DEFAULT_BASE_URL, ClientOptions, SessionOptions
from chucky.client.session import CloseHandlerFnT, ErrorHandlerFnT, MessageHandlerFnT, Session
from chucky.client.transport import Connector, WebSocketTransport

logger = logging.getLogger(__name__)

SessionStartHandlerFnT = Callable[[Session], None]


class ChuckyClient:
    """Factory and owner of sessions sharing one set of connection settings.

    Args:
        options: Connection settings. Read from ``CHUCKY_*`` environment
            variables when omitted.
        connector: Opens connections instead of the default WebSocket
            connector; used to run sessions over in-memory connections.
        session_start_handler: Called with every session this client creates
            or resumes, before it connects.
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        connector: Connector | None = None,
        session_start_handler: SessionStartHandlerFnT | None = None,
    ) -> None:
        self._options = options or ClientOptions()  # type: ignore[call-arg]
        self._connector = connector
        self._session_start_handler = session_start_handler
        self._sessions: list[Session] = []

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def sessions(self) -> list[Session]:
        """Sessions created by this client and not closed through it yet."""
        return list(self._sessions)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def create_session(
        self,
        options: SessionOptions | None = None,
        *,
        message_handler: MessageHandlerFnT | None = None,
        error_handler: ErrorHandlerFnT | None = None,
        close_handler: CloseHandlerFnT | None = None,
    ) -> Session:
        """Create a new session. Use it as an async context manager to run it."""
        transport = WebSocketTransport(
            self._options.base_url,
            self._options.token.get_secret_value(),
            open_timeout=self._options.timeout,
            keep_alive_interval=self._options.keep_alive_interval,
            connector=self._connector,
        )
        session = Session(
            transport,
            options,
            message_handler=message_handler,
            error_handler=error_handler,
            close_handler=close_handler,
        )
        self._sessions.append(session)
        logger.debug("Created session #%d", len(self._sessions))
        if self._session_start_handler is not None:
            self._session_start_handler(session)
        return session

    def resume_session(
        self,
        session_id: str,
        options: SessionOptions | None = None,
        *,
        message_handler: MessageHandlerFnT | None = None,
        error_handler: ErrorHandlerFnT | None = None,
        close_handler: CloseHandlerFnT | None = None,
    ) -> Session:
        """Create a session that continues an existing conversation."""
        resumed = (options or SessionOptions()).model_copy(update={"session_id": session_id, "continue_": True})
        return self.create_session(
            resumed,
            message_handler=message_handler,
            error_handler=error_handler,
            close_handler=close_handler,
        )

    async def close(self) -> None:
        """Close every session created by this client."""
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            await session.close()


def create_client(
    token: str,
    *,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 60.0,
    keep_alive_interval: float | None = 300.0,
    connector: Connector | None = None,
    session_start_handler: SessionStartHandlerFnT | None = None,
) -> ChuckyClient:
    """Create a client from explicit settings instead of ``CHUCKY_*`` variables."""
    options = ClientOptions(
        token=token,  # type: ignore[arg-type]
        base_url=base_url,
        timeout=timeout,
        keep_alive_interval=keep_alive_interval,
    )
    return ChuckyClient(options, connector=connector, session_start_handler=session_start_handler)
