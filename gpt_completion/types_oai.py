"""
Response envelopes for the chat completions API, in both the one-shot
(`chat.completion`) and streamed (`chat.completion.chunk`) forms.

API Reference: https://platform.openai.com/docs/api-reference/chat/object

"""

from collections.abc import Iterable
from typing import ClassVar, Literal

from pydantic import ValidationInfo, model_validator

from gpt_completion.common import RawPayload, logger, parse_obj_model
from gpt_completion.exceptions import MissingRequiredField, StreamInvariantViolation
from gpt_completion.models import (
    Delta,
    FinishReason,
    LogProbs,
    Message,
    TokenCount,
    Usage,
    WireInt,
    WireModel,
    WireStr,
)

# Validation context key that downgrades a missing chunk fingerprint to a warning
ALLOW_MISSING_FINGERPRINT = "allow_missing_fingerprint"


def _check_unique_indices(choices):
    seen: set[int] = set()
    for choice in choices:
        if choice.index in seen:
            raise ValueError(f"Duplicate choice index {choice.index}")
        seen.add(choice.index)


class CompletionChoice(WireModel):
    index: TokenCount
    message: Message

    # Only null while generation is still in progress
    finish_reason: FinishReason | None = None

    logprobs: LogProbs | None = None


class Completion(WireModel):
    """
    A finished, non-streamed chat completion
    """

    wire_constants: ClassVar[dict[str, str]] = {"object": "chat.completion"}

    id: WireStr
    object: Literal["chat.completion"] = "chat.completion"
    created: WireInt
    model: WireStr

    # Documented as non-null, but real responses routinely send null or omit it
    system_fingerprint: WireStr | None = None

    # Always sent for one-shot responses; reconstructed streams may not have it
    usage: Usage | None = None

    choices: list[CompletionChoice]

    @model_validator(mode="after")
    def check_choice_indices(self):
        _check_unique_indices(self.choices)
        return self

    def choice(self, index: int) -> CompletionChoice:
        for choice in self.choices:
            if choice.index == index:
                return choice
        raise KeyError(index)


class CompletionChunkChoice(WireModel):
    index: TokenCount
    delta: Delta

    # Null on every chunk but the last one for this choice index
    finish_reason: FinishReason | None = None

    logprobs: LogProbs | None = None


class CompletionChunk(WireModel):
    """
    One frame of a streamed chat completion. Every chunk of a response shares the
    same id, created timestamp and model.

    """

    wire_constants: ClassVar[dict[str, str]] = {"object": "chat.completion.chunk"}

    id: WireStr
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: WireInt
    model: WireStr

    # Required for chunks, unlike Completion. See `decode_chunk` for the relaxation.
    system_fingerprint: WireStr | None = None

    choices: list[CompletionChunkChoice]

    # Servers that report usage while streaming attach it to a trailing chunk,
    # usually with an empty choice list
    usage: Usage | None = None

    @model_validator(mode="after")
    def check_chunk(self, info: ValidationInfo):
        _check_unique_indices(self.choices)

        if self.system_fingerprint is None:
            if not (info.context and info.context.get(ALLOW_MISSING_FINGERPRINT)):
                raise ValueError(
                    "system_fingerprint is required on chat.completion.chunk"
                )
            logger.warning(
                f"Accepting chunk {self.id} without a system_fingerprint"
            )
        return self


def decode_completion(payload: RawPayload, *, require_usage: bool = True) -> Completion:
    """
    :param payload: Deserialized JSON object, or the raw JSON text
    :param require_usage: One-shot responses always carry usage; disable for
        payloads synthesized from other sources

    :raises SchemaViolation: if the payload doesn't match the completion schema
    :raises MissingRequiredField: if usage is absent, or its totals don't add up

    """
    completion = parse_obj_model(Completion, payload)
    if require_usage and completion.usage is None:
        raise MissingRequiredField("usage", f"completion {completion.id} has no usage")
    return completion


def decode_chunk(
    payload: RawPayload, *, allow_missing_fingerprint: bool = False
) -> CompletionChunk:
    """
    :param payload: Deserialized JSON object, or the raw JSON text of a single frame
    :param allow_missing_fingerprint: Real traffic has been seen omitting the documented
        system_fingerprint. When enabled, such chunks decode with a logged warning
        instead of a SchemaViolation.

    """
    return parse_obj_model(
        CompletionChunk,
        payload,
        context={ALLOW_MISSING_FINGERPRINT: allow_missing_fingerprint},
    )


def check_same_response(first: CompletionChunk, chunk: CompletionChunk):
    for field in ("id", "created", "model"):
        expected = getattr(first, field)
        actual = getattr(chunk, field)
        if expected != actual:
            raise StreamInvariantViolation(
                f"Chunk {field} {actual!r} does not match {expected!r} from the first chunk"
            )


def validate_chunk_group(chunks: Iterable[CompletionChunk]):
    """
    Validates that every chunk claims to belong to the same logical response.

    """
    first: CompletionChunk | None = None
    for chunk in chunks:
        if first is None:
            first = chunk
            continue
        check_same_response(first, chunk)
