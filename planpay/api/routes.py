from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Header, Request
from fastapi.responses import JSONResponse

from planpay.api.services import Services
from planpay.core.errors import DependencyUnsatisfiedError, PlannerError, PlanValidationError
from planpay.core.executor import calculate_plan_cost, estimate_execution_time, execute_plan
from planpay.core.plan_schemas import ExecutionResult, Plan
from planpay.core.plan_validator import parse_plan, validate_plan
from planpay.infra.ids import new_run_id
from planpay.infra.logging import log_event

router = APIRouter()

PROOF_BODY_FIELDS = ("paymentProof", "paymentData", "payment")


def _services(request: Request) -> Services:
    return request.app.state.services


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status)


@router.get("/")
@router.get("/info")
def info(request: Request) -> Dict[str, Any]:
    services = _services(request)
    return {
        "name": "planpay",
        "description": "Plans, pays for, and executes multi-step tool calls",
        "endpoints": [
            "/tools - Tool catalogue and prices",
            "/plan - Get execution plan without executing",
            "/execute - Execute a plan (x402 payment required)",
        ],
        "namespaces": services.registry.namespaces(),
        "payments": {
            "enabled": services.gate is not None,
            "network": services.config.network,
            "protocol": "x402",
        },
    }


@router.get("/tools")
def tools(request: Request) -> Dict[str, Any]:
    registry = _services(request).registry
    return {
        "tools": [
            {
                "mcp": s.namespace,
                "tool": s.name,
                "price": str(s.price),
                "description": s.description,
            }
            for s in registry.specs()
        ]
    }


@router.post("/plan")
def plan(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    services = _services(request)
    query = (body or {}).get("query")
    if not isinstance(query, str) or not query.strip():
        return _error(400, "Missing query parameter")
    if services.planner is None:
        return _error(503, "Planner not configured (set OPENAI_API_KEY)")

    try:
        created = services.planner.create_plan(query)
    except PlannerError as e:
        return _error(502, str(e))

    report = validate_plan(created, services.registry)
    if not report.valid:
        return _error(422, "Invalid plan", errors=report.errors)

    return {
        "plan": created.to_wire(),
        "estimatedCost": float(calculate_plan_cost(created, services.registry)),
        "estimatedTime": estimate_execution_time(created),
    }


@router.post("/execute")
def execute(
    request: Request,
    body: Optional[Dict[str, Any]] = Body(default=None),
    x_payment: Optional[str] = Header(default=None, alias="x-payment"),
):
    services = _services(request)
    body = body or {}
    if body.get("plan") is None:
        return _error(400, "Missing plan parameter")

    try:
        parsed = parse_plan(body["plan"], services.registry)
    except PlanValidationError as e:
        return _error(400, "Invalid plan", errors=e.errors)

    if services.gate is None:
        return _error(503, "Payment gate not configured (set X402_PAY_TO)")

    raw_proof = x_payment
    if raw_proof is None:
        raw_proof = next((body[k] for k in PROOF_BODY_FIELDS if body.get(k)), None)

    url = request.url
    resource_url = f"{url.scheme}://{url.netloc}{url.path}"
    run_id = new_run_id()

    outcome = services.gate.run(
        raw_proof,
        resource_url=resource_url,
        price=_price_for(parsed, services),
        protected=lambda payment: _run(parsed, services, run_id),
    )
    return JSONResponse(outcome.body, status_code=outcome.status_code, headers=outcome.headers)


def _price_for(parsed: Plan, services: Services) -> Decimal:
    """Fixed price, or the registry cost of the plan with the fixed price as a floor."""
    cfg = services.config
    if cfg.pricing_mode == "plan":
        return max(cfg.price, calculate_plan_cost(parsed, services.registry))
    return cfg.price


def _run(parsed: Plan, services: Services, run_id: str) -> Dict[str, Any]:
    started = time.monotonic()
    try:
        result = execute_plan(parsed, services.adapter, services.registry, run_id=run_id)
    except DependencyUnsatisfiedError as e:
        result = ExecutionResult(
            run_id=run_id,
            success=False,
            records=e.records,
            total_cost=e.total_cost,
            execution_time_ms=int((time.monotonic() - started) * 1000),
            errors=[str(e)],
        )
        log_event("plan_run_aborted", run_id=run_id, error=str(e))
    return {**result.to_wire(), "runId": run_id}
