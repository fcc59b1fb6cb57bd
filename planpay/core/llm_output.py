import json
import re
from typing import Any, Callable, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

Transform = Callable[[Dict[str, Any]], Dict[str, Any]]

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OUTER_OBJECT = re.compile(r"\{[\s\S]*\}")


class LLMInvalidJSON(ValueError):
    """Raised when model output is not valid JSON."""


class LLMSchemaViolation(ValueError):
    """Raised when JSON is valid but does not match schema."""


def extract_json_text(raw_output: str) -> str:
    """Models wrap JSON in markdown fences or prose despite being told not to."""
    m = _CODE_BLOCK.search(raw_output)
    if m:
        return m.group(1).strip()
    m = _OUTER_OBJECT.search(raw_output)
    return m.group(0) if m else raw_output


def parse_and_validate(
    raw_output: str, schema: Type[T], transform: Optional[Transform] = None
) -> T:
    """
    Parse raw LLM output as JSON and validate against a Pydantic schema.

    Reason:
    - Centralizes cleanup + parsing + validation
    - Produces consistent exception types for retry policy

    Benefit:
    - Any caller can trust returned objects
    - Retry logic becomes deterministic (based on exception types)
    """
    try:
        data = json.loads(extract_json_text(raw_output or ""))
    except json.JSONDecodeError as e:
        raise LLMInvalidJSON("LLM returned invalid JSON") from e

    if not isinstance(data, dict):
        raise LLMSchemaViolation("LLM JSON is not an object")

    if transform is not None:
        data = transform(data)

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise LLMSchemaViolation("LLM JSON did not match schema") from e
