from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chucky.types import ErrorMessage


class ChuckyError(Exception):
    """Base class for every error raised by the SDK.

    Attributes:
        code: Stable machine-readable error code (e.g. ``CONNECTION_ERROR``).
        details: Optional extra data attached by the server or the SDK.
    """

    code: str = "CHUCKY_ERROR"

    def __init__(self, message: str, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ChuckyConnectionError(ChuckyError):
    """The link to the server could not be established or was lost."""

    code = "CONNECTION_ERROR"


class AuthenticationError(ChuckyError):
    """The server rejected the bearer token."""

    code = "AUTHENTICATION_ERROR"


class ProtocolError(ChuckyError):
    """A frame could not be decoded into a known message."""

    code = "PROTOCOL_ERROR"


class SessionError(ChuckyError):
    """The session failed to initialize or was used after it closed."""

    code = "SESSION_ERROR"


class BudgetExceededError(SessionError):
    code = "BUDGET_EXCEEDED"

    def __init__(self, message: str = "Budget exceeded", code: str | None = None, details: Any = None) -> None:
        super().__init__(message, code, details)


class ConcurrencyLimitError(SessionError):
    code = "CONCURRENCY_LIMIT"

    def __init__(
        self, message: str = "Concurrency limit reached", code: str | None = None, details: Any = None
    ) -> None:
        super().__init__(message, code, details)


class RateLimitError(SessionError):
    code = "RATE_LIMIT"

    def __init__(self, message: str = "Rate limit exceeded", code: str | None = None, details: Any = None) -> None:
        super().__init__(message, code, details)


class ToolExecutionError(ChuckyError):
    """Raised by tool handlers to report a failure to the model.

    The dispatcher turns it into an error-flagged tool result carrying the
    message verbatim; it never escapes the session.
    """

    code = "TOOL_EXECUTION_ERROR"


class ChuckyTimeoutError(ChuckyError):
    code = "TIMEOUT"

    def __init__(self, message: str = "Operation timed out", code: str | None = None, details: Any = None) -> None:
        super().__init__(message, code, details)


class ChuckyValidationError(ChuckyError):
    """The caller used the API incorrectly."""

    code = "VALIDATION_ERROR"


_ERRORS_BY_CODE: dict[str, type[ChuckyError]] = {
    cls.code: cls
    for cls in (
        ChuckyConnectionError,
        AuthenticationError,
        ProtocolError,
        SessionError,
        BudgetExceededError,
        ConcurrencyLimitError,
        RateLimitError,
        ToolExecutionError,
        ChuckyTimeoutError,
        ChuckyValidationError,
    )
}


def error_from_message(message: ErrorMessage, *, base: type[ChuckyError] = ChuckyError) -> ChuckyError:
    """Build the exception matching an error frame received from the server.

    Unknown or missing codes map to :class:`SessionError`, as do codes whose
    class is not a subclass of ``base``. The original code is kept either way.
    """
    payload = message.payload
    error_cls = _ERRORS_BY_CODE.get(payload.code or "", SessionError)
    if not issubclass(error_cls, base):
        error_cls = SessionError
    return error_cls(payload.message, code=payload.code, details=payload.details)
