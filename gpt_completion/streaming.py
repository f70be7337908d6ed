from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import unique

from gpt_completion.common import RawPayload, logger
from gpt_completion.exceptions import (
    IncompleteStream,
    MissingRequiredField,
    StreamInvariantViolation,
)
from gpt_completion.models import (
    EnumSuper,
    FinishReason,
    FunctionCall,
    FunctionCallDelta,
    LogProbs,
    Message,
    Role,
    ToolCall,
    ToolCallDelta,
    ToolCallType,
    Usage,
)
from gpt_completion.types_oai import (
    Completion,
    CompletionChoice,
    CompletionChunk,
    CompletionChunkChoice,
    check_same_response,
    decode_chunk,
)


@unique
class StreamEventEnum(EnumSuper):
    CHOICE_CREATED = "CHOICE_CREATED"
    CONTENT_UPDATED = "CONTENT_UPDATED"
    TOOL_CALL_UPDATED = "TOOL_CALL_UPDATED"
    FUNCTION_CALL_UPDATED = "FUNCTION_CALL_UPDATED"
    CHOICE_COMPLETED = "CHOICE_COMPLETED"


@dataclass
class StreamingObject:
    """
    A single update to one choice of an in-flight stream, suitable for rendering
    partial output before the full completion is available.

    """

    index: int
    event: StreamEventEnum

    # The text appended by this update: a content or argument fragment, the
    # role for CHOICE_CREATED and the finish reason for CHOICE_COMPLETED
    value_change: str | None = None

    tool_call_id: str | None = None


@dataclass
class _FunctionCallAccumulator:
    name: str | None = None
    arguments: list[str] = field(default_factory=list)

    def extend(self, fragment: FunctionCallDelta | None) -> str | None:
        if fragment is None:
            return None
        if self.name is None and fragment.name is not None:
            self.name = fragment.name
        if fragment.arguments is not None:
            self.arguments.append(fragment.arguments)
        return fragment.arguments

    def build(self, field_name: str) -> FunctionCall:
        if self.name is None:
            raise MissingRequiredField(field_name, "no fragment carried a function name")
        return FunctionCall(name=self.name, arguments="".join(self.arguments))


@dataclass
class _ChoiceAccumulator:
    index: int
    role: Role | None = None
    content: list[str] | None = None
    tool_calls: dict[str, _FunctionCallAccumulator] = field(default_factory=dict)
    tool_call_slots: dict[int, str] = field(default_factory=dict)
    last_tool_call_id: str | None = None
    function_call: _FunctionCallAccumulator | None = None
    finish_reason: FinishReason | None = None
    has_logprobs: bool = False

    @property
    def is_complete(self) -> bool:
        return self.finish_reason is not None

    def check_tool_calls(self, fragments: list[ToolCallDelta]):
        """
        Raise if any fragment would have no call to extend, without touching state.

        """
        slots = dict(self.tool_call_slots)
        last_call_id = self.last_tool_call_id
        for fragment in fragments:
            last_call_id = self._tool_call_target(fragment, slots, last_call_id)
            if fragment.index is not None:
                slots.setdefault(fragment.index, last_call_id)

    def resolve_tool_call(self, fragment: ToolCallDelta) -> str:
        call_id = self._tool_call_target(
            fragment, self.tool_call_slots, self.last_tool_call_id
        )
        if fragment.index is not None:
            self.tool_call_slots.setdefault(fragment.index, call_id)
        self.last_tool_call_id = call_id
        return call_id

    def _tool_call_target(
        self,
        fragment: ToolCallDelta,
        slots: dict[int, str],
        last_call_id: str | None,
    ) -> str:
        if fragment.id is not None:
            return fragment.id
        if fragment.index is not None and fragment.index in slots:
            return slots[fragment.index]
        if last_call_id is not None:
            # Fragments without an id continue the most recent call
            return last_call_id
        raise StreamInvariantViolation(
            "Tool call fragment without an id before any tool call started",
            self.index,
        )

    def build_message(self) -> Message:
        if self.role is None:
            raise MissingRequiredField(
                "role", f"no chunk for choice index {self.index} carried a role"
            )

        fields = {
            "role": self.role,
            "content": "".join(self.content) if self.content is not None else None,
        }
        if self.tool_calls:
            fields["tool_calls"] = [
                ToolCall(
                    id=call_id,
                    type=ToolCallType.FUNCTION,
                    function=call.build("function.name"),
                )
                for call_id, call in self.tool_calls.items()
            ]
        if self.function_call is not None:
            fields["function_call"] = self.function_call.build("function_call.name")
            if self.tool_calls:
                logger.warning(
                    f"Choice {self.index} streamed both tool_calls and a deprecated function_call"
                )
        return Message(**fields)


class StreamReconstructor:
    """
    Folds the ordered chunks of one streamed response into the Completion that a
    non-streamed request would have returned. Chunks for different choice indices
    may interleave, but each instance must only see the chunks of a single response,
    in arrival order.

    """

    def __init__(self, *, allow_missing_fingerprint: bool = False):
        """
        :param allow_missing_fingerprint: Accept raw chunks that omit system_fingerprint,
            logging a warning instead of raising SchemaViolation

        """
        self.allow_missing_fingerprint = allow_missing_fingerprint
        self.reset()

    def reset(self):
        """
        Discard all accumulated state, e.g. when the stream is cancelled.

        """
        self._first_chunk: CompletionChunk | None = None
        self._choices: dict[int, _ChoiceAccumulator] = {}
        self._usage: Usage | None = None

    @property
    def pending_indices(self) -> list[int]:
        return sorted(
            index
            for index, choice in self._choices.items()
            if not choice.is_complete
        )

    @property
    def is_complete(self) -> bool:
        # A usage-only stream has no choices but can still be finalized
        return self._first_chunk is not None and not self.pending_indices

    def feed(self, chunk: CompletionChunk | RawPayload) -> list[StreamingObject]:
        """
        Merge one chunk into the per-index accumulators.

        A chunk that raises leaves the reconstructor exactly as it was before the call.

        :return: The updates this chunk made, in the order they were applied
        :raises StreamInvariantViolation: if the chunk conflicts with those already seen

        """
        if not isinstance(chunk, CompletionChunk):
            chunk = decode_chunk(
                chunk, allow_missing_fingerprint=self.allow_missing_fingerprint
            )

        logger.debug("------- CHUNK ----------")
        logger.debug(chunk)
        logger.debug("------- END CHUNK ----------")

        if self._first_chunk is not None:
            check_same_response(self._first_chunk, chunk)
        for choice in chunk.choices:
            self._check_choice(choice)

        if self._first_chunk is None:
            self._first_chunk = chunk
        if chunk.usage is not None:
            self._usage = chunk.usage

        updates: list[StreamingObject] = []
        for choice in chunk.choices:
            updates.extend(self._feed_choice(choice))
        return updates

    def _check_choice(self, choice: CompletionChunkChoice):
        accumulator = self._choices.get(choice.index)
        if accumulator is None:
            accumulator = _ChoiceAccumulator(index=choice.index)
        elif accumulator.is_complete:
            raise StreamInvariantViolation(
                "Chunk received after the choice already finished", choice.index
            )

        delta = choice.delta
        if delta.role is not None and accumulator.role is not None:
            raise StreamInvariantViolation(
                f"Role {delta.role.value!r} sent after role {accumulator.role.value!r} was already recorded",
                choice.index,
            )
        accumulator.check_tool_calls(delta.tool_calls or [])

    def _feed_choice(self, choice: CompletionChunkChoice) -> list[StreamingObject]:
        updates: list[StreamingObject] = []
        delta = choice.delta

        accumulator = self._choices.get(choice.index)
        if accumulator is None:
            accumulator = self._choices[choice.index] = _ChoiceAccumulator(
                index=choice.index
            )
            updates.append(
                StreamingObject(
                    index=choice.index,
                    event=StreamEventEnum.CHOICE_CREATED,
                    value_change=delta.role.value if delta.role is not None else None,
                )
            )

        if delta.role is not None:
            accumulator.role = delta.role

        if delta.content is not None:
            if accumulator.content is None:
                accumulator.content = []
            accumulator.content.append(delta.content)
            if delta.content:
                updates.append(
                    StreamingObject(
                        index=choice.index,
                        event=StreamEventEnum.CONTENT_UPDATED,
                        value_change=delta.content,
                    )
                )

        for fragment in delta.tool_calls or []:
            call_id = accumulator.resolve_tool_call(fragment)
            call = accumulator.tool_calls.setdefault(call_id, _FunctionCallAccumulator())
            value_change = call.extend(fragment.function)
            updates.append(
                StreamingObject(
                    index=choice.index,
                    event=StreamEventEnum.TOOL_CALL_UPDATED,
                    value_change=value_change,
                    tool_call_id=call_id,
                )
            )

        if delta.function_call is not None:
            if accumulator.function_call is None:
                accumulator.function_call = _FunctionCallAccumulator()
            updates.append(
                StreamingObject(
                    index=choice.index,
                    event=StreamEventEnum.FUNCTION_CALL_UPDATED,
                    value_change=accumulator.function_call.extend(delta.function_call),
                )
            )

        if choice.logprobs is not None:
            accumulator.has_logprobs = True

        if choice.finish_reason is not None:
            accumulator.finish_reason = choice.finish_reason
            updates.append(
                StreamingObject(
                    index=choice.index,
                    event=StreamEventEnum.CHOICE_COMPLETED,
                    value_change=choice.finish_reason.value,
                )
            )

        return updates

    def finalize(self, usage: Usage | None = None) -> Completion:
        """
        Build the completion once every choice index has finished.

        :param usage: Token usage obtained out of band. Defaults to the usage reported
            on a trailing chunk, if the server sent one.

        :raises IncompleteStream: if no chunk arrived or an index never finished.
            A stream whose chunks carried no choices at all finalizes to zero choices.
        :raises MissingRequiredField: if an index never received a role, or a tool
            call never received a name

        """
        first = self._first_chunk
        pending = self.pending_indices
        if first is None or pending:
            raise IncompleteStream(pending)

        choices = [
            CompletionChoice(
                index=accumulator.index,
                message=accumulator.build_message(),
                finish_reason=accumulator.finish_reason,
                **({"logprobs": LogProbs()} if accumulator.has_logprobs else {}),
            )
            for accumulator in sorted(self._choices.values(), key=lambda a: a.index)
        ]

        completion_fields = {
            "id": first.id,
            "object": "chat.completion",
            "created": first.created,
            "model": first.model,
            "system_fingerprint": first.system_fingerprint,
            "choices": choices,
        }
        usage = usage if usage is not None else self._usage
        if usage is not None:
            completion_fields["usage"] = usage

        logger.debug(
            f"Reconstructed completion {first.id} with {len(choices)} choice(s)"
        )
        return Completion(**completion_fields)


def reconstruct_stream(
    chunks: Iterable[CompletionChunk | RawPayload],
    *,
    usage: Usage | None = None,
    allow_missing_fingerprint: bool = False,
) -> Completion:
    reconstructor = StreamReconstructor(allow_missing_fingerprint=allow_missing_fingerprint)
    for chunk in chunks:
        reconstructor.feed(chunk)
    return reconstructor.finalize(usage=usage)


async def areconstruct_stream(
    chunks: AsyncIterable[CompletionChunk | RawPayload],
    *,
    usage: Usage | None = None,
    allow_missing_fingerprint: bool = False,
) -> Completion:
    """
    See `reconstruct_stream`. Consumes an async iterable, like the stream returned by
    an async API client.

    """
    reconstructor = StreamReconstructor(allow_missing_fingerprint=allow_missing_fingerprint)
    async for chunk in chunks:
        reconstructor.feed(chunk)
    return reconstructor.finalize(usage=usage)


async def iter_stream_updates(
    chunks: AsyncIterable[CompletionChunk | RawPayload],
    reconstructor: StreamReconstructor,
) -> AsyncIterator[StreamingObject]:
    """
    Feeds each chunk into `reconstructor` and yields the resulting updates as they
    arrive. Once exhausted, call `reconstructor.finalize()` for the full completion.

    """
    async for chunk in chunks:
        for update in reconstructor.feed(chunk):
            yield update
