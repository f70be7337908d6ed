import sys
from enum import Enum, unique
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gpt_completion.exceptions import MissingRequiredField

if sys.version_info >= (3, 11):
    from enum import StrEnum

    EnumSuper = StrEnum
else:
    EnumSuper = Enum


WireInt = Annotated[int, Field(strict=True)]
TokenCount = Annotated[int, Field(strict=True, ge=0)]
WireStr = Annotated[str, Field(strict=True)]


@unique
class Role(EnumSuper):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@unique
class FinishReason(EnumSuper):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"

    # Deprecated upstream in favor of TOOL_CALLS
    FUNCTION_CALL = "function_call"


@unique
class ToolCallType(EnumSuper):
    FUNCTION = "function"


class WireModel(BaseModel):
    """
    Base for every payload that crosses the API boundary. Models are immutable once
    decoded, and encoding only emits the fields that were present when decoding so
    that absent and null values survive a round trip.

    """

    model_config = ConfigDict(frozen=True)

    # Constant tags (like `object`) that are always emitted, even if the payload omitted them
    wire_constants: ClassVar[dict[str, str]] = {}

    @model_validator(mode="before")
    @classmethod
    def fill_wire_constants(cls, data: Any):
        if cls.wire_constants and isinstance(data, dict):
            missing = {
                key: value
                for key, value in cls.wire_constants.items()
                if key not in data
            }
            if missing:
                return {**data, **missing}
        return data

    def encode(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)

    def encode_json(self) -> str:
        return self.model_dump_json(exclude_unset=True)


class Usage(WireModel):
    """
    Token accounting for a completion request
    """

    completion_tokens: TokenCount
    prompt_tokens: TokenCount
    total_tokens: TokenCount

    @model_validator(mode="before")
    @classmethod
    def derive_total_tokens(cls, data: Any):
        # Some OpenAI-compatible servers leave out the total; it is fully determined
        # by the other two counts
        if isinstance(data, dict) and data.get("total_tokens") is None:
            prompt_tokens = data.get("prompt_tokens")
            completion_tokens = data.get("completion_tokens")
            if isinstance(prompt_tokens, int) and isinstance(completion_tokens, int):
                return {**data, "total_tokens": prompt_tokens + completion_tokens}
        return data

    @model_validator(mode="after")
    def check_total_tokens(self):
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise MissingRequiredField(
                "total_tokens",
                f"{self.total_tokens} != prompt_tokens ({self.prompt_tokens}) + "
                f"completion_tokens ({self.completion_tokens})",
            )
        return self


class LogProbs(WireModel):
    """
    Placeholder for log probability information. Log probabilities are not supported
    yet, so any payload the server sends is accepted and discarded instead of failing
    the whole response.

    """

    @model_validator(mode="before")
    @classmethod
    def discard_payload(cls, data: Any):
        # Null stays null so `logprobs: null` decodes to None rather than a placeholder
        if data is None:
            return data
        return {}


class FunctionCall(WireModel):
    name: WireStr

    # Raw JSON string exactly as generated by the model; it is not guaranteed to parse
    arguments: WireStr


class ToolCall(WireModel):
    wire_constants: ClassVar[dict[str, str]] = {"type": ToolCallType.FUNCTION.value}

    id: WireStr
    type: ToolCallType = ToolCallType.FUNCTION
    function: FunctionCall


class FunctionCallDelta(WireModel):
    name: WireStr | None = None
    arguments: WireStr | None = None


class ToolCallDelta(WireModel):
    """
    A fragment of a tool call. Only the first fragment of a call normally carries
    the id, type and function name; later fragments extend the argument string.

    """

    # Slot of the call within the message, sent by servers that stream parallel tool calls
    index: TokenCount | None = None
    id: WireStr | None = None
    type: ToolCallType | None = None
    function: FunctionCallDelta | None = None


class Message(WireModel):
    """
    A finished chat turn
    """

    role: Role

    # Null when the assistant turn consists solely of tool calls
    content: WireStr | None = None

    tool_calls: list[ToolCall] | None = None

    # Deprecated: replaced by tool_calls, kept for older servers
    function_call: FunctionCall | None = None


class Delta(WireModel):
    """
    The fragment of a message carried by one streamed chunk. Role is only populated
    on the first chunk of a choice; content fragments are appended in arrival order.

    """

    role: Role | None = None
    content: WireStr | None = None
    tool_calls: list[ToolCallDelta] | None = None
    function_call: FunctionCallDelta | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.role is None
            and self.content is None
            and not self.tool_calls
            and self.function_call is None
        )
