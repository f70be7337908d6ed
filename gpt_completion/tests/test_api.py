from gpt_completion import (
    Completion,
    CompletionChunk,
    Delta,
    FinishReason,
    IncompleteStream,
    Message,
    MissingRequiredField,
    Role,
    SchemaViolation,
    StreamInvariantViolation,
    StreamReconstructor,
    ToolCall,
    Usage,
    decode_chunk,
    decode_completion,
    reconstruct_stream,
)


def test_exports_variables():
    """
    Test that the library exports the correct models for end users
    """
    assert Completion is not None
    assert CompletionChunk is not None
    assert Message is not None
    assert Delta is not None
    assert ToolCall is not None
    assert Usage is not None
    assert Role is not None
    assert FinishReason is not None
    assert StreamReconstructor is not None
    assert decode_completion is not None
    assert decode_chunk is not None
    assert reconstruct_stream is not None


def test_exports_errors():
    for error in (
        SchemaViolation,
        StreamInvariantViolation,
        IncompleteStream,
        MissingRequiredField,
    ):
        assert issubclass(error, Exception)
