"""Wire codec for Chucky frames.

Frames are JSON objects, one per WebSocket text message. Decoding either
yields exactly one :data:`~chucky.types.Message` variant or raises
:class:`~chucky.shared.exceptions.ProtocolError`.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from chucky.shared.exceptions import ProtocolError
from chucky.types import Message, MessageType

message_adapter: TypeAdapter[Message] = TypeAdapter(Message)

_KNOWN_TYPES = frozenset(member.value for member in MessageType)


def _protocol_error(exc: ValidationError) -> ProtocolError:
    errors = exc.errors(include_url=False, include_input=False)
    kind = errors[0]["type"] if errors else None
    if kind == "json_invalid":
        message = f"Invalid JSON: {errors[0]['msg']}"
    elif kind == "union_tag_not_found":
        message = "Frame is missing the 'type' field"
    elif kind == "union_tag_invalid":
        message = "Unknown message type"
    elif kind == "model_attributes_type":
        message = "Frame must be a JSON object"
    else:
        message = f"Invalid message: {exc}"
    return ProtocolError(message, details=errors)


def parse_message(data: Mapping[str, Any]) -> Message:
    """Validate an already-parsed frame into its message variant."""
    if not isinstance(data, Mapping):
        raise ProtocolError(f"Frame must be a JSON object, got {type(data).__name__}")

    message_type = data.get("type")
    if message_type is None:
        raise ProtocolError("Frame is missing the 'type' field")
    if not isinstance(message_type, str) or message_type not in _KNOWN_TYPES:
        raise ProtocolError(f"Unknown message type: {message_type}", details={"type": message_type})

    try:
        return message_adapter.validate_python(data)
    except ValidationError as exc:
        raise _protocol_error(exc) from exc


def decode_message(raw: str | bytes) -> Message:
    """Decode one raw frame.

    Parsing and validation happen in a single pass, so a frame nested too
    deeply is reported like any other malformed frame.
    """
    try:
        return message_adapter.validate_json(raw)
    except ValidationError as exc:
        raise _protocol_error(exc) from exc


def encode_message(message: Message) -> str:
    """Encode a message into its JSON text frame."""
    return message_adapter.dump_json(message, by_alias=True).decode()
