"""Tool and tool-server declarations sent with the session init.

Tools declared with a handler run in this process: when the server emits a
``tool_call`` for them, the session invokes the handler and replies with its
:class:`~chucky.types.ToolResult`. Tools without a handler, and the remote
``stdio``/``sse``/``http`` servers, run on the server side and are only
described to it.
"""

from __future__ import annotations as _annotations

import base64
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, JsonValue

from chucky.types import ExecuteLocation, ImageContent, ResourceContent, TextContent, ToolResult

ToolHandler = Callable[[Any], ToolResult | Awaitable[ToolResult]]

EMPTY_INPUT_SCHEMA: dict[str, JsonValue] = {"type": "object", "properties": {}, "required": []}


def text_result(text: str) -> ToolResult:
    return ToolResult(content=[TextContent(text=text)])


def error_result(message: str) -> ToolResult:
    return ToolResult(content=[TextContent(text=message)], is_error=True)


def image_result(data: bytes | str, mime_type: str) -> ToolResult:
    """Wrap an image; raw bytes are base64 encoded."""
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode("ascii")
    return ToolResult(content=[ImageContent(data=data, mime_type=mime_type)])


def resource_result(uri: str, mime_type: str | None = None, text: str | None = None) -> ToolResult:
    return ToolResult(content=[ResourceContent(uri=uri, mime_type=mime_type, text=text)])


class ToolDefinition(BaseModel):
    """A tool exposed to the model."""

    name: str = Field(description="Name of the tool")
    description: str = Field(description="Description of what the tool does")
    input_schema: dict[str, JsonValue] = Field(
        default_factory=lambda: dict(EMPTY_INPUT_SCHEMA), description="JSON schema for tool input"
    )
    handler: ToolHandler | None = Field(default=None, exclude=True)
    execute_in: ExecuteLocation = ExecuteLocation.SERVER

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        # Only tools with a local handler are executed outside the server
        if self.handler is not None:
            data["executeIn"] = self.execute_in.value
        return data


def tool(
    name: str,
    description: str,
    input_schema: dict[str, JsonValue] | None = None,
    handler: ToolHandler | None = None,
) -> ToolDefinition:
    """Declare a tool; giving a handler makes it execute on the client."""
    return ToolDefinition(
        name=name,
        description=description,
        input_schema=input_schema if input_schema is not None else dict(EMPTY_INPUT_SCHEMA),
        handler=handler,
        execute_in=ExecuteLocation.CLIENT if handler is not None else ExecuteLocation.SERVER,
    )


class ClientToolsServer(BaseModel):
    """A tool server whose handlers live in this process."""

    name: str
    version: str = "1.0.0"
    tools: list[ToolDefinition] = Field(default_factory=list)

    def add_tool(self, definition: ToolDefinition) -> ClientToolsServer:
        self.tools.append(definition)
        return self

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, JsonValue] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator to register a function as a client-side tool.

        Example:
            ```python
            server = ClientToolsServer(name="calculator")

            @server.tool(input_schema={"type": "object", "properties": {"a": {"type": "number"}}})
            def double(input):
                \"\"\"Double a number\"\"\"
                return text_result(str(input["a"] * 2))
            ```
        """
        if callable(name):
            raise TypeError(
                "The @tool decorator was used incorrectly. Did you forget to call it? Use @tool() instead of @tool"
            )

        def decorator(fn: ToolHandler) -> ToolHandler:
            tool_name = name or getattr(fn, "__name__", None)
            if not tool_name or tool_name == "<lambda>":
                raise ValueError("You must provide a name for lambda functions")
            self.add_tool(
                tool(
                    name=tool_name,
                    description=description or (fn.__doc__ or "").strip(),
                    input_schema=input_schema,
                    handler=fn,
                )
            )
            return fn

        return decorator

    def handlers(self) -> dict[str, ToolHandler]:
        """Handlers of the tools that run locally, keyed by tool name."""
        return {t.name: t.handler for t in self.tools if t.handler is not None}

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "tools": [t.to_wire() for t in self.tools],
        }


class RemoteServer(BaseModel):
    """Base class for tool servers the service connects to itself."""

    name: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StdioServer(RemoteServer):
    type: Literal["stdio"] = "stdio"
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None


class SseServer(RemoteServer):
    type: Literal["sse"] = "sse"
    url: str
    headers: dict[str, str] | None = None


class HttpServer(RemoteServer):
    type: Literal["http"] = "http"
    url: str
    headers: dict[str, str] | None = None


# Remote declarations are tried first; a mapping carrying only a name and tools is a client tools server
ToolServer = Annotated[StdioServer | SseServer | HttpServer | ClientToolsServer, Field(union_mode="left_to_right")]
