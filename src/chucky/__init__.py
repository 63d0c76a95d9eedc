"""Python client for the Chucky conversational-agent service.

Use the Chucky SDK to:

- Open sessions with the service over a persistent WebSocket
- Exchange typed protocol messages with `send`/`receive`
- Run tools locally when the model calls them

## Example

```python
import anyio

from chucky import ChuckyClient, ClientOptions, ClientToolsServer, SessionOptions, get_result_text, text_result

calculator = ClientToolsServer(name="calculator")


@calculator.tool(input_schema={"type": "object", "properties": {"a": {"type": "number"}, "b": {"type": "number"}}})
def add(input):
    \"\"\"Add two numbers\"\"\"
    return text_result(str(input["a"] + input["b"]))


async def main():
    async with ChuckyClient(ClientOptions(token="...")) as client:
        async with client.create_session(SessionOptions(mcp_servers=[calculator])) as session:
            await session.send("What is 7 + 15? Use the add tool.")
            async for message in session.receive_turn():
                if text := get_result_text(message):
                    print(text)


anyio.run(main)
```
"""

from chucky.client import (
    ChuckyClient,
    ClientOptions,
    ConnectionStatus,
    Model,
    OutputFormat,
    Session,
    SessionOptions,
    ToolDispatcher,
    WebSocketTransport,
    create_client,
    get_assistant_text,
    get_result_text,
)
from chucky.shared.exceptions import (
    AuthenticationError,
    BudgetExceededError,
    ChuckyConnectionError,
    ChuckyError,
    ChuckyTimeoutError,
    ChuckyValidationError,
    ConcurrencyLimitError,
    ProtocolError,
    RateLimitError,
    SessionError,
    ToolExecutionError,
)
from chucky.shared.message import decode_message, encode_message, parse_message
from chucky.tools import (
    ClientToolsServer,
    HttpServer,
    SseServer,
    StdioServer,
    ToolDefinition,
    error_result,
    image_result,
    resource_result,
    text_result,
    tool,
)
from chucky.types import (
    AssistantMessage,
    ControlAction,
    ControlMessage,
    ErrorMessage,
    ImageContent,
    InitMessage,
    Message,
    MessageType,
    PermissionMode,
    PingMessage,
    ResourceContent,
    ResultMessage,
    ResultSubtype,
    SessionState,
    SystemMessage,
    SystemSubtype,
    TextContent,
    ToolCallMessage,
    ToolResult,
    ToolResultMessage,
    Usage,
    UserMessage,
)

__all__ = [
    "AssistantMessage",
    "AuthenticationError",
    "BudgetExceededError",
    "ChuckyClient",
    "ChuckyConnectionError",
    "ChuckyError",
    "ChuckyTimeoutError",
    "ChuckyValidationError",
    "ClientOptions",
    "ClientToolsServer",
    "ConcurrencyLimitError",
    "ConnectionStatus",
    "ControlAction",
    "ControlMessage",
    "ErrorMessage",
    "HttpServer",
    "ImageContent",
    "InitMessage",
    "Message",
    "MessageType",
    "Model",
    "OutputFormat",
    "PermissionMode",
    "PingMessage",
    "ProtocolError",
    "RateLimitError",
    "ResourceContent",
    "ResultMessage",
    "ResultSubtype",
    "Session",
    "SessionError",
    "SessionOptions",
    "SessionState",
    "SseServer",
    "StdioServer",
    "SystemMessage",
    "SystemSubtype",
    "TextContent",
    "ToolCallMessage",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolResult",
    "ToolResultMessage",
    "Usage",
    "UserMessage",
    "WebSocketTransport",
    "create_client",
    "decode_message",
    "encode_message",
    "error_result",
    "get_assistant_text",
    "get_result_text",
    "image_result",
    "parse_message",
    "resource_result",
    "text_result",
    "tool",
]
