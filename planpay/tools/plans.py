import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from planpay.api.services import build_adapter
from planpay.config import load_config
from planpay.core.errors import DependencyUnsatisfiedError, PlanValidationError
from planpay.core.executor import calculate_plan_cost, estimate_execution_time, execute_plan
from planpay.core.plan_validator import parse_plan, validate_plan
from planpay.core.tool_registry import default_registry
from planpay.infra.ids import new_run_id


def load_plan_file(path: str) -> Any:
    """A plan file is either the plan itself or {"plan": {...}} as sent to /execute."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict) and isinstance(data.get("plan"), dict):
        return data["plan"]
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="planpay")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("tools", help="List registered tools and prices")

    p_validate = sub.add_parser("validate", help="Validate a plan JSON file")
    p_validate.add_argument("plan_file")

    p_estimate = sub.add_parser("estimate", help="Registry cost and time estimate for a plan")
    p_estimate.add_argument("plan_file")

    p_execute = sub.add_parser(
        "execute", help="Run a plan against the configured tool endpoints (no payment gate)"
    )
    p_execute.add_argument("plan_file")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    registry = default_registry()

    if args.cmd == "tools":
        for s in registry.specs():
            print(f"{s.key:<36} {s.price:>8} ETH  {s.description}")
        return 0

    if args.cmd == "validate":
        report = validate_plan(load_plan_file(args.plan_file), registry)
        if report.valid:
            print("OK")
            return 0
        for err in report.errors:
            print(f"- {err}")
        return 1

    if args.cmd == "estimate":
        try:
            plan = parse_plan(load_plan_file(args.plan_file), registry)
        except PlanValidationError as e:
            print("\n".join(f"- {err}" for err in e.errors))
            return 1
        print("Steps:", len(plan.steps))
        print("Cost:", calculate_plan_cost(plan, registry), "ETH")
        print("Estimated time:", estimate_execution_time(plan), "s")
        return 0

    if args.cmd == "execute":
        try:
            plan = parse_plan(load_plan_file(args.plan_file), registry)
        except PlanValidationError as e:
            print("\n".join(f"- {err}" for err in e.errors))
            return 1
        adapter = build_adapter(load_config())
        try:
            result = execute_plan(plan, adapter, registry, run_id=new_run_id())
        except DependencyUnsatisfiedError as e:
            print(str(e), file=sys.stderr)
            return 2
        print(json.dumps(result.to_wire(), indent=2, ensure_ascii=False, default=str))
        return 0 if result.success else 1

    if args.cmd == "serve":
        import uvicorn

        from planpay.api.app import create_app

        cfg = load_config()
        uvicorn.run(create_app(), host=args.host or cfg.host, port=args.port or cfg.port)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
