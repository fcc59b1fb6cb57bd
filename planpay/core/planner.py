from typing import Any, Dict

from planpay.core.errors import PlannerError
from planpay.core.plan_schemas import Plan
from planpay.core.prompt_loader import load_prompt
from planpay.core.tool_registry import ToolRegistry
from planpay.infra.logging import log_event


def repair_tool_names(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Models sometimes answer "chainintel::analyze-wallet" in the tool field.
    Keep the part after the last "::".
    """
    steps = data.get("steps")
    if not isinstance(steps, list):
        return data
    fixed = []
    for step in steps:
        if isinstance(step, dict) and isinstance(step.get("tool"), str) and "::" in step["tool"]:
            step = {**step, "tool": step["tool"].split("::")[-1]}
        fixed.append(step)
    return {**data, "steps": fixed}


class LLMPlanner:
    """
    Reason:
    - Converts a natural language query into a Plan.
    Benefit:
    - Separates planning from execution; the executor only sees typed plans.
    """

    def __init__(self, client, registry: ToolRegistry, *, version: str = "v1") -> None:
        self.client = client
        self.registry = registry
        self.version = version

    def create_plan(self, query: str) -> Plan:
        prompt = load_prompt(
            "planner",
            version=self.version,
            query=query,
            catalogue=self.registry.catalogue(),
        )
        try:
            plan = self.client.generate_structured(prompt, Plan, transform=repair_tool_names)
        except RuntimeError as e:
            log_event("planner_failed", error=f"{type(e).__name__}: {e}")
            raise PlannerError(f"Failed to create execution plan: {e}") from e
        log_event("planner_plan_created", intent=plan.intent, steps=len(plan.steps))
        return plan
