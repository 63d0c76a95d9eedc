"""Client and session configuration."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, JsonValue, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from chucky.tools import ClientToolsServer, ToolHandler, ToolServer
from chucky.types import PermissionMode

DEFAULT_BASE_URL = "wss://conjure.chucky.cloud/ws"


class Model(str, Enum):
    CLAUDE_SONNET = "claude-sonnet-4-5-20250929"
    CLAUDE_OPUS = "claude-opus-4-5-20251101"


class ClientOptions(BaseSettings):
    """Connection settings shared by every session of a client.

    All settings can be configured via environment variables with the prefix CHUCKY_.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHUCKY_",
        env_file=".env",
        extra="ignore",
    )

    token: SecretStr
    """Bearer token appended to the connection URL."""

    base_url: str = DEFAULT_BASE_URL

    timeout: float = 60.0
    """Seconds allowed for the WebSocket opening handshake."""

    keep_alive_interval: float | None = 300.0
    """Seconds between keep-alive pings; None disables them."""


class OutputFormat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    schema_: JsonValue = Field(alias="schema")


class SessionOptions(BaseModel):
    """Per-session configuration sent to the server in the init payload."""

    model_config = ConfigDict(populate_by_name=True)

    model: Model | str | None = None
    fallback_model: str | None = None
    system_prompt: str | dict[str, JsonValue] | None = None
    max_turns: int | None = None
    max_budget_usd: float | None = None
    max_thinking_tokens: int | None = None
    tools: list[JsonValue] | None = None
    mcp_servers: list[ToolServer] | None = None
    permission_mode: PermissionMode | None = None
    output_format: OutputFormat | None = None
    include_partial_messages: bool = False
    env: dict[str, str] | None = None

    session_id: str | None = None
    """Existing session to resume."""
    fork_session: bool = False
    resume_session_at: str | None = None
    continue_: bool = Field(default=False, alias="continue")

    def tool_handlers(self) -> dict[str, ToolHandler]:
        """Local tool handlers of every client tools server, keyed by tool name."""
        handlers: dict[str, ToolHandler] = {}
        for server in self.mcp_servers or []:
            if isinstance(server, ClientToolsServer):
                handlers.update(server.handlers())
        return handlers

    def to_payload(self) -> dict[str, Any]:
        """Build the camelCase init payload, omitting unset options."""
        data: dict[str, Any] = {}

        if self.model is not None:
            data["model"] = self.model.value if isinstance(self.model, Model) else self.model
        if self.fallback_model is not None:
            data["fallbackModel"] = self.fallback_model
        if self.system_prompt is not None:
            data["systemPrompt"] = self.system_prompt
        if self.max_turns is not None:
            data["maxTurns"] = self.max_turns
        if self.max_budget_usd is not None:
            data["maxBudgetUsd"] = self.max_budget_usd
        if self.max_thinking_tokens is not None:
            data["maxThinkingTokens"] = self.max_thinking_tokens
        if self.tools is not None:
            data["tools"] = self.tools
        if self.mcp_servers is not None:
            data["mcpServers"] = [server.to_wire() for server in self.mcp_servers]
        if self.permission_mode is not None:
            data["permissionMode"] = self.permission_mode.value
        if self.output_format is not None:
            data["outputFormat"] = self.output_format.model_dump(by_alias=True)
        if self.include_partial_messages:
            data["includePartialMessages"] = True
        if self.env is not None:
            data["env"] = self.env
        if self.session_id is not None:
            data["sessionId"] = self.session_id
        if self.fork_session:
            data["forkSession"] = True
        if self.resume_session_at is not None:
            data["resumeSessionAt"] = self.resume_session_at
        if self.continue_:
            data["continue"] = True

        return data
