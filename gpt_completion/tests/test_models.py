import pytest
from pydantic import ValidationError

from gpt_completion.common import parse_obj_model
from gpt_completion.exceptions import MissingRequiredField, SchemaViolation
from gpt_completion.models import (
    Delta,
    FinishReason,
    FunctionCall,
    LogProbs,
    Message,
    Role,
    ToolCall,
    ToolCallType,
    Usage,
)


@pytest.mark.parametrize(
    "token,expected",
    [
        ("system", Role.SYSTEM),
        ("user", Role.USER),
        ("assistant", Role.ASSISTANT),
        ("tool", Role.TOOL),
    ],
)
def test_role_wire_tokens(token: str, expected: Role):
    assert Role(token) == expected
    assert Message(role=token, content="hi").role == expected


@pytest.mark.parametrize(
    "token",
    ["stop", "length", "content_filter", "tool_calls", "function_call"],
)
def test_finish_reason_wire_tokens(token: str):
    assert FinishReason(token).value == token


@pytest.mark.parametrize("token", ["Assistant", "developer", "", "ASSISTANT"])
def test_unknown_role_is_schema_violation(token: str):
    with pytest.raises(SchemaViolation) as exc_info:
        parse_obj_model(Message, {"role": token, "content": "hi"})
    assert exc_info.value.model_name == "Message"
    assert exc_info.value.errors[0]["loc"] == ("role",)


def test_usage_totals():
    usage = Usage(prompt_tokens=9, completion_tokens=12, total_tokens=21)
    assert usage.total_tokens == usage.prompt_tokens + usage.completion_tokens


def test_usage_rejects_inconsistent_total():
    with pytest.raises(MissingRequiredField) as exc_info:
        Usage(prompt_tokens=9, completion_tokens=12, total_tokens=20)
    assert exc_info.value.field_name == "total_tokens"

    with pytest.raises(MissingRequiredField):
        parse_obj_model(
            Usage, {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 3}
        )


def test_usage_derives_missing_total():
    usage = parse_obj_model(Usage, {"prompt_tokens": 4, "completion_tokens": 6})
    assert usage.total_tokens == 10


@pytest.mark.parametrize(
    "payload",
    [
        {"prompt_tokens": -1, "completion_tokens": 1, "total_tokens": 0},
        {"prompt_tokens": "9", "completion_tokens": 12, "total_tokens": 21},
        {"prompt_tokens": 9.0, "completion_tokens": 12, "total_tokens": 21},
        {"prompt_tokens": True, "completion_tokens": 12, "total_tokens": 13},
    ],
)
def test_usage_rejects_bad_counts(payload):
    with pytest.raises(SchemaViolation):
        parse_obj_model(Usage, payload)


@pytest.mark.parametrize(
    "payload",
    [
        {"content": [{"token": "Hello", "logprob": -0.31, "top_logprobs": []}]},
        {"content": None},
        {},
        '{"content": [{"token": "Hi", "logprob": -1.5, "bytes": [72, 105]}]}',
    ],
)
def test_logprobs_payload_is_discarded(payload):
    logprobs = parse_obj_model(LogProbs, payload)
    assert logprobs == LogProbs()
    assert logprobs.encode() == {}


def test_message_content_may_be_null():
    message = Message(
        role=Role.ASSISTANT,
        content=None,
        tool_calls=[
            ToolCall(
                id="call_1",
                function=FunctionCall(name="lookup", arguments='{"q": "x"}'),
            )
        ],
    )
    assert message.content is None
    assert message.tool_calls is not None
    assert message.tool_calls[0].type == ToolCallType.FUNCTION


def test_message_requires_role():
    with pytest.raises(SchemaViolation):
        parse_obj_model(Message, {"content": "hi"})


def test_message_rejects_non_string_content():
    with pytest.raises(SchemaViolation):
        parse_obj_model(Message, {"role": "assistant", "content": 5})


def test_models_are_immutable():
    message = Message(role=Role.USER, content="hi")
    with pytest.raises(ValidationError):
        message.content = "changed"  # type: ignore


def test_tool_call_type_discriminant():
    with pytest.raises(SchemaViolation):
        parse_obj_model(
            ToolCall,
            {
                "id": "call_1",
                "type": "code_interpreter",
                "function": {"name": "run", "arguments": "{}"},
            },
        )


def test_tool_call_type_is_always_encoded():
    tool_call = ToolCall(id="call_1", function=FunctionCall(name="run", arguments="{}"))
    assert tool_call.encode() == {
        "id": "call_1",
        "type": "function",
        "function": {"name": "run", "arguments": "{}"},
    }


@pytest.mark.parametrize(
    "model,payload",
    [
        (Usage, {"prompt_tokens": 9, "completion_tokens": 12, "total_tokens": 21}),
        (
            ToolCall,
            {
                "id": "call_abc123",
                "type": "function",
                "function": {"name": "get_weather", "arguments": '{"city": "Oslo"}'},
            },
        ),
        (Message, {"role": "assistant", "content": None}),
        (Message, {"role": "assistant", "content": "Hello!"}),
        (
            Message,
            {
                "role": "assistant",
                "content": None,
                "function_call": {"name": "get_weather", "arguments": "{}"},
            },
        ),
        (Delta, {}),
        (Delta, {"role": "assistant", "content": ""}),
        (Delta, {"content": None}),
        (
            Delta,
            {
                "tool_calls": [
                    {"index": 0, "function": {"arguments": '{"city": '}},
                ]
            },
        ),
    ],
)
def test_round_trip(model, payload):
    decoded = parse_obj_model(model, payload)
    assert decoded.encode() == payload
    assert parse_obj_model(model, decoded.encode_json()) == decoded


def test_delta_is_empty():
    assert Delta().is_empty
    assert parse_obj_model(Delta, {"content": None, "tool_calls": []}).is_empty
    assert not Delta(content="").is_empty
    assert not Delta(role=Role.ASSISTANT).is_empty
