from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping

from planpay.core.errors import DependencyUnsatisfiedError, ToolInvocationError
from planpay.core.plan_schemas import (
    ExecutionContext,
    ExecutionResult,
    Plan,
    PlanStep,
    StepRecord,
)
from planpay.core.tool_adapter import ToolAdapter
from planpay.core.tool_registry import ToolRegistry
from planpay.infra.logging import log_event

SECONDS_PER_STEP = 3


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def enrich_params(
    params: Mapping[str, Any], depends_on: List[int], results: Mapping[int, Any]
) -> Dict[str, Any]:
    """
    Reason:
    - Later steps usually need what earlier steps found (the wallet address).
    Benefit:
    - The planner can leave address/chain empty on dependent steps.

    Only the first dependency is read for auto-population. Explicit values win.
    """
    enriched = dict(params)
    enriched["_previousResults"] = [
        {"step": dep, "result": results.get(dep)} for dep in depends_on
    ]

    if not depends_on:
        return enriched

    first = results.get(depends_on[0])
    if not isinstance(first, Mapping):
        return enriched

    # MCP responses wrap the payload: {"success": true, "result": {...}}
    actual = first.get("result") if isinstance(first.get("result"), Mapping) else first
    wallet = actual.get("wallet")
    if not isinstance(wallet, Mapping):
        return enriched

    if _is_blank(enriched.get("address")) and wallet.get("address"):
        enriched["address"] = wallet["address"]
        log_event("param_autopopulated", field="address", source_step=depends_on[0])

    chain = wallet.get("chain") or wallet.get("primaryChain")
    if _is_blank(enriched.get("chain")) and chain:
        enriched["chain"] = chain
        log_event("param_autopopulated", field="chain", source_step=depends_on[0])

    return enriched


def execute_plan(
    plan: Plan, adapter: ToolAdapter, registry: ToolRegistry, *, run_id: str
) -> ExecutionResult:
    """
    Reason:
    - Central executor that runs validated plans step-by-step in declared order.
    Benefit:
    - Predictable cost accounting and fail-fast termination.

    Tool failures come back inside the ExecutionResult. Only a missing
    dependency result raises (DependencyUnsatisfiedError).
    """
    ctx = ExecutionContext()
    records: List[StepRecord] = []
    errors: List[str] = []
    total_cost = Decimal("0")

    log_event("plan_run_start", run_id=run_id, intent=plan.intent, steps=len(plan.steps))

    for i, step in enumerate(plan.steps):
        log_event(
            "plan_step_start",
            run_id=run_id,
            step=i,
            tool=step.key,
            params_keys=list(step.params.keys()),
        )

        params: Dict[str, Any] = dict(step.params)
        if step.depends_on:
            missing = [d for d in step.depends_on if not ctx.has(d)]
            if missing:
                log_event("plan_dependency_unsatisfied", run_id=run_id, step=i, missing=missing)
                raise DependencyUnsatisfiedError(
                    step=i,
                    tool=step.tool_name,
                    missing=missing,
                    completed=ctx.completed(),
                    records=records,
                    total_cost=total_cost,
                )
            params = enrich_params(step.params, step.depends_on, ctx.results)

        try:
            result = _run_step(step, params, adapter, registry)
        except ToolInvocationError as e:
            records.append(
                StepRecord(
                    step=i,
                    namespace=step.namespace,
                    tool=step.tool_name,
                    success=False,
                    error=e.message,
                )
            )
            errors.append(f"Step {i} ({step.key}): {e.message}")
            log_event("plan_step_end", run_id=run_id, step=i, tool=step.key, ok=False, error=e.message)
            break  # fail-fast

        ctx.record(i, result)
        cost = registry.price(step.namespace, step.tool_name)
        total_cost += cost
        records.append(
            StepRecord(
                step=i,
                namespace=step.namespace,
                tool=step.tool_name,
                success=True,
                result=result,
                cost=cost,
            )
        )
        log_event(
            "plan_step_end",
            run_id=run_id,
            step=i,
            tool=step.key,
            ok=True,
            cost=cost,
            total_cost=total_cost,
        )

    summary = ExecutionResult(
        run_id=run_id,
        success=not errors,
        records=records,
        total_cost=total_cost,
        execution_time_ms=ctx.elapsed_ms(),
        errors=errors or None,
    )
    log_event(
        "plan_run_end",
        run_id=run_id,
        ok=summary.success,
        steps=len(summary.records),
        total_cost=summary.total_cost,
        ms=summary.execution_time_ms,
    )
    return summary


def _run_step(
    step: PlanStep, params: Dict[str, Any], adapter: ToolAdapter, registry: ToolRegistry
) -> Any:
    if not registry.has(step.namespace, step.tool_name):
        raise ToolInvocationError(f"Unknown tool {step.key}")
    return adapter.invoke(step.namespace, step.tool_name, params)


def plan_depth(plan: Plan) -> int:
    """Longest dependency chain; 0 for an empty plan."""
    depths: Dict[int, int] = {}
    for idx, step in enumerate(plan.steps):
        if not step.depends_on:
            depths[idx] = 1
        else:
            depths[idx] = 1 + max(depths.get(d, 1) for d in step.depends_on)
    return max(depths.values(), default=0)


def estimate_execution_time(plan: Plan, *, seconds_per_step: int = SECONDS_PER_STEP) -> int:
    """
    Advisory only: assumes independent branches could overlap even though
    execute_plan() runs every step sequentially.
    """
    return seconds_per_step * plan_depth(plan)


def calculate_plan_cost(plan: Plan, registry: ToolRegistry) -> Decimal:
    total = Decimal("0")
    for step in plan.steps:
        spec = registry.get(step.namespace, step.tool_name)
        if spec is not None:
            total += spec.price
    return total
