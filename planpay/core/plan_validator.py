from __future__ import annotations

from collections.abc import Mapping
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from planpay.core.errors import PlanValidationError
from planpay.core.plan_schemas import Plan
from planpay.core.tool_registry import ToolRegistry

REQUIRED_PLAN_FIELDS = [
    ("intent", ("intent",)),
    ("totalCost", ("totalCost", "total_cost")),
    ("reasoning", ("reasoning",)),
]


class ValidationReport(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


def _first(d: Mapping, *keys: str) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return None


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_plan(data: Union[Plan, Mapping, Any], registry: ToolRegistry) -> ValidationReport:
    """
    Reason:
    - LLM output is untrusted; check everything before anything runs.
    Benefit:
    - Every problem is reported in one pass, so the caller can fix the plan once.

    Never raises and never repairs the input.
    """
    if isinstance(data, Plan):
        data = data.to_wire()
    if not isinstance(data, Mapping):
        return ValidationReport(valid=False, errors=["Plan must be a JSON object"])

    errors: List[str] = []

    for label, keys in REQUIRED_PLAN_FIELDS:
        value = _first(data, *keys)
        if _missing(value):
            errors.append(f"Missing {label}")

    intent = data.get("intent")
    if intent is not None and not isinstance(intent, str):
        errors.append("intent must be a string")

    steps = data.get("steps")
    if steps is None:
        errors.append("Missing steps")
        steps = []
    elif not isinstance(steps, list):
        errors.append("steps must be a list")
        steps = []

    for idx, step in enumerate(steps):
        errors.extend(_validate_step(idx, step, registry))

    return ValidationReport(valid=not errors, errors=errors)


def _validate_step(idx: int, step: Any, registry: ToolRegistry) -> List[str]:
    if not isinstance(step, Mapping):
        return [f"Step {idx}: must be an object"]

    errors: List[str] = []
    namespace = _first(step, "toolNamespace", "mcp", "namespace")
    tool = _first(step, "toolName", "tool", "tool_name")
    params = step.get("params")
    reason = step.get("reason")

    if _missing(namespace):
        errors.append(f"Step {idx}: Missing mcp")
    if _missing(tool):
        errors.append(f"Step {idx}: Missing tool")
    if params is None:
        errors.append(f"Step {idx}: Missing params")
    elif not isinstance(params, Mapping):
        errors.append(f"Step {idx}: params must be an object")
    if _missing(reason):
        errors.append(f"Step {idx}: Missing reason")

    if not _missing(namespace) and not _missing(tool):
        if not registry.has(str(namespace), str(tool)):
            errors.append(f"Step {idx}: Unknown tool {namespace}::{tool}")

    depends_on = _first(step, "dependsOn", "depends_on")
    if depends_on is None:
        return errors
    if not isinstance(depends_on, list):
        errors.append(f"Step {idx}: dependsOn must be a list")
        return errors

    for dep in depends_on:
        if not _is_index(dep):
            errors.append(f"Step {idx}: Dependency index {dep!r} is not an integer")
        elif dep < 0:
            errors.append(f"Step {idx}: Dependency index {dep} out of range")
        elif dep >= idx:
            errors.append(
                f"Step {idx}: Invalid dependency on step {dep} (must depend on earlier steps)"
            )
    return errors


def parse_plan(data: Any, registry: ToolRegistry) -> Plan:
    """
    Validate then build the typed Plan.
    Raises PlanValidationError with the complete error list.
    """
    report = validate_plan(data, registry)
    if not report.valid:
        raise PlanValidationError(report.errors)
    if isinstance(data, Plan):
        return data
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        raise PlanValidationError(_pydantic_messages(e)) from e


def _pydantic_messages(e: ValidationError) -> List[str]:
    out: List[str] = []
    for err in e.errors():
        loc: Optional[str] = ".".join(str(p) for p in err.get("loc", ()))
        out.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return out
