from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class PlanStep(BaseModel):
    """
    Reason:
    - A single atomic tool call the executor can run.
    Benefit:
    - Accepts the planner's historical field names (mcp/tool) and the
      canonical ones (toolNamespace/toolName) at the boundary.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    namespace: str = Field(
        validation_alias=AliasChoices("toolNamespace", "mcp", "namespace"),
        serialization_alias="toolNamespace",
    )
    tool_name: str = Field(
        validation_alias=AliasChoices("toolName", "tool", "tool_name"),
        serialization_alias="toolName",
    )
    params: Dict[str, Any] = Field(default_factory=dict)
    reason: str
    depends_on: List[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("dependsOn", "depends_on"),
        serialization_alias="dependsOn",
    )

    @property
    def key(self) -> str:
        return f"{self.namespace}::{self.tool_name}"


class Plan(BaseModel):
    """
    Reason:
    - The planner must hand over a structured, executable plan.
    Benefit:
    - Eliminates ad-hoc parsing and makes execution testable.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    intent: str
    steps: List[PlanStep]
    total_cost: str = Field(
        validation_alias=AliasChoices("totalCost", "total_cost"),
        serialization_alias="totalCost",
    )
    reasoning: str
    expected_outcome: str = Field(
        default="",
        validation_alias=AliasChoices("expectedOutcome", "expected_outcome"),
        serialization_alias="expectedOutcome",
    )

    @field_validator("total_cost", mode="before")
    @classmethod
    def _estimate_as_text(cls, v: Any) -> Any:
        # planners emit either "0.01 ETH" or a bare number
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class ExecutionContext:
    """Request-scoped state of one plan run."""

    results: Dict[int, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.monotonic)

    def record(self, index: int, result: Any) -> None:
        if index in self.results:
            raise RuntimeError(f"Result for step {index} already recorded")
        self.results[index] = result

    def has(self, index: int) -> bool:
        return index in self.results

    def completed(self) -> List[int]:
        return sorted(self.results)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)


class StepRecord(BaseModel):
    """
    Captures what happened for each executed step.
    """
    step: int
    namespace: str
    tool: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    cost: Decimal = Decimal("0")

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "step": self.step,
            "namespace": self.namespace,
            "tool": self.tool,
            "success": self.success,
        }
        if self.success:
            out["result"] = self.result
            out["cost"] = float(self.cost)
        else:
            out["error"] = self.error
        return out


class ExecutionResult(BaseModel):
    """
    Reason:
    - Standardize the final output of a plan run.
    Benefit:
    - The HTTP layer and the CLI render the same object.
    """
    run_id: str
    success: bool
    records: List[StepRecord] = Field(default_factory=list)
    total_cost: Decimal = Decimal("0")
    execution_time_ms: int = 0
    errors: Optional[List[str]] = None

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "results": [r.to_wire() for r in self.records],
            "totalCost": float(self.total_cost),
            "executionTime": self.execution_time_ms,
        }
        if self.errors:
            out["errors"] = list(self.errors)
        return out
