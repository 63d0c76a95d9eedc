"""Chucky client module."""

from chucky.client.client import ChuckyClient, create_client
from chucky.client.options import ClientOptions, Model, OutputFormat, SessionOptions
from chucky.client.session import Session, get_assistant_text, get_result_text
from chucky.client.tool_dispatcher import ToolDispatcher
from chucky.client.transport import Connection, ConnectionStatus, TransportEventSink, WebSocketTransport

__all__ = [
    "ChuckyClient",
    "ClientOptions",
    "Connection",
    "ConnectionStatus",
    "Model",
    "OutputFormat",
    "Session",
    "SessionOptions",
    "ToolDispatcher",
    "TransportEventSink",
    "WebSocketTransport",
    "create_client",
    "get_assistant_text",
    "get_result_text",
]
