"""Chucky protocol types.

Every frame exchanged with the server is a JSON object carrying a ``type``
discriminator. The models below mirror the wire shape exactly: simple
variants (user, assistant, system, result) are flat, structured variants
(init, control, error, tool_call, tool_result, ping) nest their fields under
``payload``. Free-form values are typed as :data:`pydantic.JsonValue` and
passed through untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue, NonNegativeInt, field_validator


class MessageType(str, Enum):
    INIT = "init"
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    RESULT = "result"
    CONTROL = "control"
    ERROR = "error"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    PING = "ping"


class ResultSubtype(str, Enum):
    SUCCESS = "success"
    ERROR_MAX_TURNS = "error_max_turns"
    ERROR_DURING_EXECUTION = "error_during_execution"
    ERROR_BUDGET = "error_budget"
    ERROR_CONCURRENCY = "error_concurrency"
    ERROR_AUTHENTICATION = "error_authentication"


class SystemSubtype(str, Enum):
    INIT = "init"
    COMPACT_BOUNDARY = "compact_boundary"


class ControlAction(str, Enum):
    READY = "ready"
    SESSION_INFO = "session_info"
    END_INPUT = "end_input"
    CLOSE = "close"


class SessionState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    PROCESSING = "processing"
    WAITING_TOOL = "waiting_tool"
    COMPLETED = "completed"
    ERROR = "error"


class ExecuteLocation(str, Enum):
    SERVER = "server"
    CLIENT = "client"
    BROWSER = "browser"


class PermissionMode(str, Enum):
    DEFAULT = "default"
    PLAN = "plan"
    BYPASS_PERMISSIONS = "bypassPermissions"


class ChuckyModel(BaseModel):
    """Base class for all protocol types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, allow_inf_nan=False)


class Usage(ChuckyModel):
    """Token usage counters reported with a result."""

    model_config = ConfigDict(frozen=True)

    input_tokens: NonNegativeInt = 0
    output_tokens: NonNegativeInt = 0
    cache_creation_input_tokens: NonNegativeInt = 0
    cache_read_input_tokens: NonNegativeInt = 0


# Tool result content


class TextContent(ChuckyModel):
    type: Literal["text"] = "text"
    text: str


class ImageContent(ChuckyModel):
    type: Literal["image"] = "image"
    data: str  # base64 encoded
    mime_type: Annotated[str, Field(alias="mimeType")]


class ResourceContent(ChuckyModel):
    type: Literal["resource"] = "resource"
    uri: str
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None
    text: str | None = None
    blob: str | None = None


ContentItem = Annotated[TextContent | ImageContent | ResourceContent, Field(discriminator="type")]


class ToolResult(ChuckyModel):
    """Outcome of a tool invocation, returned by tool handlers."""

    content: list[ContentItem] = Field(default_factory=list)
    is_error: Annotated[bool, Field(alias="isError")] = False


# Messages


class InitMessage(ChuckyModel):
    """Opens a session; the payload carries the session configuration."""

    type: Literal["init"] = "init"
    payload: dict[str, JsonValue] = Field(default_factory=dict)


class UserMessageBody(ChuckyModel):
    role: Literal["user"] = "user"
    content: JsonValue


class UserMessage(ChuckyModel):
    type: Literal["user"] = "user"
    uuid: str | None = None
    session_id: str
    message: UserMessageBody
    parent_tool_use_id: str | None = None

    @classmethod
    def create(
        cls,
        session_id: str,
        content: JsonValue,
        uuid: str | None = None,
        parent_tool_use_id: str | None = None,
    ) -> UserMessage:
        return cls(
            uuid=uuid,
            session_id=session_id,
            message=UserMessageBody(content=content),
            parent_tool_use_id=parent_tool_use_id,
        )

    @property
    def content(self) -> JsonValue:
        return self.message.content


class AssistantMessageBody(ChuckyModel):
    role: Literal["assistant"] = "assistant"
    content: list[JsonValue] = Field(default_factory=list)


class AssistantMessage(ChuckyModel):
    type: Literal["assistant"] = "assistant"
    uuid: str = ""
    session_id: str
    message: AssistantMessageBody = Field(default_factory=AssistantMessageBody)
    parent_tool_use_id: str | None = None

    @property
    def content(self) -> list[JsonValue]:
        return self.message.content

    @property
    def text(self) -> str:
        """Concatenated text of all ``text`` content blocks."""
        parts: list[str] = []
        for block in self.message.content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)


class SystemMessage(ChuckyModel):
    type: Literal["system"] = "system"
    subtype: SystemSubtype
    uuid: str = ""
    session_id: str = ""
    data: JsonValue = None


class ResultMessage(ChuckyModel):
    """Final message of a turn."""

    type: Literal["result"] = "result"
    subtype: ResultSubtype
    uuid: str = ""
    session_id: str
    duration_ms: int = 0
    duration_api_ms: int = 0
    is_error: bool = False
    num_turns: int = 0
    result: str | None = None
    total_cost_usd: float = 0.0
    usage: Usage = Field(default_factory=Usage)
    errors: list[JsonValue] = Field(default_factory=list)

    @field_validator("usage", mode="before")
    @classmethod
    def _missing_usage(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("errors", mode="before")
    @classmethod
    def _missing_errors(cls, value: Any) -> Any:
        return [] if value is None else value


class ControlPayload(ChuckyModel):
    action: ControlAction
    data: JsonValue = None


class ControlMessage(ChuckyModel):
    type: Literal["control"] = "control"
    payload: ControlPayload

    @classmethod
    def create(cls, action: ControlAction, data: JsonValue = None) -> ControlMessage:
        return cls(payload=ControlPayload(action=action, data=data))

    @property
    def action(self) -> ControlAction:
        return self.payload.action

    @property
    def data(self) -> JsonValue:
        return self.payload.data


class ErrorPayload(ChuckyModel):
    message: str = "Unknown error"
    code: str | None = None
    details: JsonValue = None


class ErrorMessage(ChuckyModel):
    type: Literal["error"] = "error"
    payload: ErrorPayload = Field(default_factory=ErrorPayload)

    @classmethod
    def create(cls, message: str, code: str | None = None, details: JsonValue = None) -> ErrorMessage:
        return cls(payload=ErrorPayload(message=message, code=code, details=details))

    @property
    def message(self) -> str:
        return self.payload.message

    @property
    def code(self) -> str | None:
        return self.payload.code


class ToolCallPayload(ChuckyModel):
    call_id: Annotated[str, Field(alias="callId")]
    tool_name: Annotated[str, Field(alias="toolName")]
    input: JsonValue = None


class ToolCallMessage(ChuckyModel):
    """The server asks the client to run a locally registered tool."""

    type: Literal["tool_call"] = "tool_call"
    payload: ToolCallPayload

    @classmethod
    def create(cls, call_id: str, tool_name: str, input: JsonValue = None) -> ToolCallMessage:
        return cls(payload=ToolCallPayload(call_id=call_id, tool_name=tool_name, input=input))

    @property
    def call_id(self) -> str:
        return self.payload.call_id

    @property
    def tool_name(self) -> str:
        return self.payload.tool_name

    @property
    def input(self) -> JsonValue:
        return self.payload.input


class ToolResultPayload(ChuckyModel):
    call_id: Annotated[str, Field(alias="callId")]
    result: ToolResult


class ToolResultMessage(ChuckyModel):
    type: Literal["tool_result"] = "tool_result"
    payload: ToolResultPayload

    @classmethod
    def create(cls, call_id: str, result: ToolResult) -> ToolResultMessage:
        return cls(payload=ToolResultPayload(call_id=call_id, result=result))

    @property
    def call_id(self) -> str:
        return self.payload.call_id

    @property
    def result(self) -> ToolResult:
        return self.payload.result


class PingPayload(ChuckyModel):
    timestamp: int


class PingMessage(ChuckyModel):
    type: Literal["ping"] = "ping"
    payload: PingPayload

    @classmethod
    def create(cls, timestamp: int) -> PingMessage:
        return cls(payload=PingPayload(timestamp=timestamp))


Message = Annotated[
    InitMessage
    | UserMessage
    | AssistantMessage
    | SystemMessage
    | ResultMessage
    | ControlMessage
    | ErrorMessage
    | ToolCallMessage
    | ToolResultMessage
    | PingMessage,
    Field(discriminator="type"),
]
