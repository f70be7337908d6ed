from typing import Any


class CompletionModelError(Exception):
    """
    Base class for every error raised while decoding or reconstructing a completion

    """


class SchemaViolation(CompletionModelError):
    """
    Raised when a payload does not conform to the expected wire schema: a field has
    the wrong type, a required field is missing or an enumerated field holds an
    unrecognized token

    """

    def __init__(
        self,
        model_name: str,
        detail: str,
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(f"Invalid {model_name} payload: {detail}")
        self.model_name = model_name
        self.detail = detail
        self.errors = errors or []


class StreamInvariantViolation(CompletionModelError):
    """
    Raised when a chunk sequence breaks the rules of a single streamed response

    """

    def __init__(self, message: str, index: int | None = None):
        super().__init__(
            message if index is None else f"{message} (choice index {index})"
        )
        self.index = index


class IncompleteStream(CompletionModelError):
    """
    The chunk sequence ended before every choice index received a finish reason

    """

    def __init__(self, pending_indices: list[int]):
        if pending_indices:
            message = f"Stream ended without a finish reason for choice indices: {pending_indices}"
        else:
            message = "Stream ended before any chunk was received"
        super().__init__(message)
        self.pending_indices = pending_indices


class MissingRequiredField(CompletionModelError):
    """
    A mandatory field could not be resolved

    """

    def __init__(self, field_name: str, detail: str | None = None):
        super().__init__(
            f"Missing required field `{field_name}`"
            + (f": {detail}" if detail else "")
        )
        self.field_name = field_name
        self.detail = detail
