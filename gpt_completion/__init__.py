from gpt_completion.exceptions import (
    CompletionModelError as CompletionModelError,
    IncompleteStream as IncompleteStream,
    MissingRequiredField as MissingRequiredField,
    SchemaViolation as SchemaViolation,
    StreamInvariantViolation as StreamInvariantViolation,
)
from gpt_completion.models import (
    Delta as Delta,
    FinishReason as FinishReason,
    FunctionCall as FunctionCall,
    FunctionCallDelta as FunctionCallDelta,
    LogProbs as LogProbs,
    Message as Message,
    Role as Role,
    ToolCall as ToolCall,
    ToolCallDelta as ToolCallDelta,
    ToolCallType as ToolCallType,
    Usage as Usage,
)
from gpt_completion.streaming import (
    StreamEventEnum as StreamEventEnum,
    StreamingObject as StreamingObject,
    StreamReconstructor as StreamReconstructor,
    areconstruct_stream as areconstruct_stream,
    iter_stream_updates as iter_stream_updates,
    reconstruct_stream as reconstruct_stream,
)
from gpt_completion.types_oai import (
    Completion as Completion,
    CompletionChoice as CompletionChoice,
    CompletionChunk as CompletionChunk,
    CompletionChunkChoice as CompletionChunkChoice,
    decode_chunk as decode_chunk,
    decode_completion as decode_completion,
    validate_chunk_group as validate_chunk_group,
)
