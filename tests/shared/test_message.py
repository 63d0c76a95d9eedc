import json

import pytest

from chucky.shared.exceptions import ProtocolError
from chucky.shared.message import decode_message, encode_message, parse_message
from chucky.tools import error_result, text_result
from chucky.types import (
    AssistantMessage,
    AssistantMessageBody,
    ControlAction,
    ControlMessage,
    ErrorMessage,
    InitMessage,
    Message,
    PingMessage,
    ResultMessage,
    ResultSubtype,
    SystemMessage,
    SystemSubtype,
    ToolCallMessage,
    ToolResultMessage,
    Usage,
    UserMessage,
)

MESSAGES: list[Message] = [
    InitMessage(payload={"model": "claude-sonnet-4-5-20250929", "maxTurns": 3}),
    UserMessage.create("sess-1", "Hello", uuid="u-1"),
    UserMessage.create("sess-1", [{"type": "text", "text": "Hello"}], parent_tool_use_id="tool-1"),
    AssistantMessage(
        uuid="a-1",
        session_id="sess-1",
        message=AssistantMessageBody(content=[{"type": "text", "text": "Hi"}, {"type": "tool_use", "id": "t"}]),
    ),
    SystemMessage(subtype=SystemSubtype.INIT, session_id="sess-1", data={"tools": ["Read"]}),
    ResultMessage(
        subtype=ResultSubtype.SUCCESS,
        session_id="sess-1",
        duration_ms=1200,
        num_turns=2,
        result="42",
        total_cost_usd=0.0123,
        usage=Usage(input_tokens=10, output_tokens=20, cache_creation_input_tokens=3, cache_read_input_tokens=4),
    ),
    ResultMessage(subtype=ResultSubtype.ERROR_MAX_TURNS, session_id="sess-1", is_error=True, errors=["too many"]),
    ControlMessage.create(ControlAction.SESSION_INFO, {"sessionId": "sess-1"}),
    ErrorMessage.create("Budget exceeded", code="BUDGET_EXCEEDED", details={"spent": 5}),
    ToolCallMessage.create("call-1", "add", {"a": 7, "b": 15}),
    ToolResultMessage.create("call-1", text_result("22")),
    ToolResultMessage.create("call-2", error_result("Tool not found: multiply")),
    PingMessage.create(1700000000000),
]


@pytest.mark.parametrize("message", MESSAGES, ids=lambda m: m.type)
def test_encode_then_decode_is_identity(message: Message):
    assert decode_message(encode_message(message)) == message


def test_tool_call_wire_shape():
    frame = '{"type": "tool_call", "payload": {"callId": "c-1", "toolName": "add", "input": {"a": 1}}}'

    message = decode_message(frame)

    assert isinstance(message, ToolCallMessage)
    assert message.call_id == "c-1"
    assert message.tool_name == "add"
    assert message.input == {"a": 1}


def test_tool_result_wire_shape():
    frame = encode_message(ToolResultMessage.create("c-1", text_result("22")))

    assert json.loads(frame) == {
        "type": "tool_result",
        "payload": {"callId": "c-1", "result": {"content": [{"type": "text", "text": "22"}], "isError": False}},
    }


def test_decode_accepts_bytes():
    assert decode_message(b'{"type": "ping", "payload": {"timestamp": 5}}') == PingMessage.create(5)


def test_result_usage_defaults_to_zero():
    message = decode_message('{"type": "result", "subtype": "success", "session_id": "s"}')

    assert isinstance(message, ResultMessage)
    assert message.usage == Usage()
    assert message.usage.cache_read_input_tokens == 0
    assert message.errors == []
    assert message.result is None


def test_result_null_usage_and_partial_usage():
    null_usage = decode_message('{"type": "result", "subtype": "success", "session_id": "s", "usage": null}')
    partial = decode_message(
        '{"type": "result", "subtype": "success", "session_id": "s", "usage": {"input_tokens": 7}, "errors": null}'
    )

    assert isinstance(null_usage, ResultMessage)
    assert null_usage.usage == Usage()
    assert isinstance(partial, ResultMessage)
    assert partial.usage == Usage(input_tokens=7)
    assert partial.errors == []


def test_unknown_fields_are_preserved():
    message = decode_message('{"type": "system", "subtype": "compact_boundary", "compact_metadata": {"pre": 100}}')

    assert isinstance(message, SystemMessage)
    assert json.loads(encode_message(message))["compact_metadata"] == {"pre": 100}


def test_parse_message_from_mapping():
    message = parse_message({"type": "control", "payload": {"action": "ready"}})

    assert message == ControlMessage.create(ControlAction.READY)


@pytest.mark.parametrize(
    "frame",
    [
        pytest.param("not json", id="invalid-json"),
        pytest.param("[1, 2, 3]", id="not-an-object"),
        pytest.param('{"payload": {}}', id="missing-type"),
        pytest.param('{"type": "telemetry"}', id="unknown-type"),
        pytest.param('{"type": 3}', id="non-string-type"),
        pytest.param('{"type": "user", "message": {"role": "user", "content": "hi"}}', id="user-without-session"),
        pytest.param('{"type": "assistant", "message": {"content": []}}', id="assistant-without-session"),
        pytest.param('{"type": "result", "subtype": "success"}', id="result-without-session"),
        pytest.param('{"type": "result", "subtype": "bogus", "session_id": "s"}', id="unknown-result-subtype"),
        pytest.param('{"type": "tool_call", "payload": {"toolName": "add"}}', id="tool-call-without-id"),
        pytest.param('{"type": "control", "payload": {"action": "explode"}}', id="unknown-control-action"),
        pytest.param(
            '{"type": "result", "subtype": "success", "session_id": "s", "usage": {"input_tokens": -1}}',
            id="negative-usage",
        ),
        pytest.param(
            '{"type": "ping", "payload": {"timestamp": 1, "x": ' + "[" * 100_000 + "]" * 100_000 + "}}",
            id="deeply-nested",
        ),
    ],
)
def test_malformed_frames_raise_protocol_error(frame: str):
    with pytest.raises(ProtocolError):
        decode_message(frame)


def test_validation_errors_are_attached():
    with pytest.raises(ProtocolError) as exc_info:
        decode_message('{"type": "tool_call", "payload": {"toolName": "add"}}')

    assert exc_info.value.code == "PROTOCOL_ERROR"
    assert isinstance(exc_info.value.details, list)
    assert exc_info.value.details[0]["loc"][-1] == "callId"


@pytest.mark.parametrize(
    ("frame", "match"),
    [
        ("not json", "Invalid JSON"),
        ('{"payload": {}}', "missing the 'type' field"),
        ('{"type": "telemetry"}', "Unknown message type"),
        ("[" * 10_000 + "]" * 10_000, "Invalid JSON"),
    ],
)
def test_protocol_error_messages(frame: str, match: str):
    with pytest.raises(ProtocolError, match=match):
        decode_message(frame)


def test_non_finite_cost_is_rejected():
    with pytest.raises(ProtocolError):
        decode_message('{"type": "result", "subtype": "success", "session_id": "s", "total_cost_usd": Infinity}')
