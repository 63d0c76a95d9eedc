"""Runs locally registered tools on behalf of the server."""

import inspect
import logging
from collections.abc import Mapping

from chucky.shared.exceptions import ToolExecutionError
from chucky.tools import ToolHandler, error_result
from chucky.types import ToolCallMessage, ToolResult, ToolResultMessage

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Maps tool names to handlers and answers tool calls.

    Every call produces exactly one :class:`ToolResultMessage` correlated by
    the call id. Unknown tools, handler exceptions and malformed handler
    results all become error-flagged results; nothing is raised to the caller.
    """

    def __init__(self, handlers: Mapping[str, ToolHandler] | None = None) -> None:
        self._handlers: dict[str, ToolHandler] = dict(handlers or {})

    async def dispatch(self, call: ToolCallMessage) -> ToolResultMessage:
        result = await self._run(call)
        return ToolResultMessage.create(call.call_id, result)

    async def _run(self, call: ToolCallMessage) -> ToolResult:
        handler = self._handlers.get(call.tool_name)
        if handler is None:
            logger.warning("Tool call %s for unknown tool %s", call.call_id, call.tool_name)
            return error_result(f"Tool not found: {call.tool_name}")

        logger.debug("Running tool %s (call %s)", call.tool_name, call.call_id)
        try:
            result = handler(call.input)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError as exc:
            logger.warning("Tool %s reported an error: %s", call.tool_name, exc)
            return error_result(exc.message)
        except Exception as exc:
            logger.exception("Tool %s raised", call.tool_name)
            return error_result(f"Tool execution error: {exc}")

        if not isinstance(result, ToolResult):
            logger.warning("Tool %s returned %s instead of a ToolResult", call.tool_name, type(result).__name__)
            return error_result("Tool handler did not return a ToolResult")
        return result
