"""
Shared decode helpers and the package logger. Every wire model is decoded through
`parse_obj_model` so pydantic validation failures surface as `SchemaViolation`.

"""

import logging
from collections.abc import Mapping
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from gpt_completion.exceptions import SchemaViolation

logger = logging.getLogger("gptcompletion_logger")
handler = logging.StreamHandler()
formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)

T = TypeVar("T", bound=BaseModel)

RawPayload = Mapping[str, Any] | str | bytes


def parse_obj_model(
    model: Type[T],
    obj: RawPayload,
    context: dict[str, Any] | None = None,
) -> T:
    """
    Decode either an already-deserialized mapping or raw JSON text into `model`.

    :raises SchemaViolation: if the payload is not valid JSON or does not match the schema.

    """
    try:
        if isinstance(obj, (str, bytes)):
            return model.model_validate_json(obj, context=context)
        elif isinstance(obj, Mapping):
            return model.model_validate(dict(obj), context=context)
    except ValidationError as e:
        logger.debug(f"Rejected {model.__name__} payload: {obj!r}")
        raise SchemaViolation(
            model.__name__,
            f"{e.error_count()} validation error(s): {_summarize_errors(e)}",
            errors=e.errors(include_url=False),
        ) from e

    raise SchemaViolation(
        model.__name__,
        f"expected a mapping or JSON text, got {type(obj).__name__}",
    )


def _summarize_errors(error: ValidationError):
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors(include_url=False)
    )
