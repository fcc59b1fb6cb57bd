from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import os


@dataclass(frozen=True)
class AppConfig:
    # Tools
    chainintel_url: str
    tool_timeout: float

    # Payment gate (x402)
    pay_to: str | None
    price: Decimal
    pricing_mode: str  # "fixed" or "plan"
    network: str
    rpc_url: str
    rpc_timeout: float
    tolerance: Decimal

    # Planner (LLM)
    openai_api_key: str | None
    planner_model: str
    planner_prompt: str

    # Server
    host: str
    port: int


def _decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default).strip() or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise RuntimeError(f"{name} must be a decimal number (got {raw!r})")


def load_config() -> AppConfig:
    chainintel_url = os.getenv(
        "PLANPAY_CHAININTEL_URL", "https://chainintel-mcp.workers.dev"
    ).strip()
    tool_timeout = float(os.getenv("PLANPAY_TOOL_TIMEOUT", "30").strip() or "30")

    pay_to = os.getenv("X402_PAY_TO", "").strip() or None
    price = _decimal("X402_PRICE", "0.001")
    pricing_mode = os.getenv("X402_PRICING_MODE", "fixed").strip().lower() or "fixed"
    if pricing_mode not in ("fixed", "plan"):
        raise RuntimeError(f"X402_PRICING_MODE must be 'fixed' or 'plan' (got {pricing_mode!r})")
    network = os.getenv("X402_NETWORK", "eip155:84532").strip() or "eip155:84532"
    rpc_url = os.getenv("X402_RPC_URL", "https://sepolia.base.org").strip() or "https://sepolia.base.org"
    rpc_timeout = float(os.getenv("X402_RPC_TIMEOUT", "10").strip() or "10")
    tolerance = _decimal("X402_TOLERANCE", "0.00001")

    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip() or None
    planner_model = os.getenv("PLANPAY_PLANNER_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
    planner_prompt = os.getenv("PLANPAY_PLANNER_PROMPT", "v1").strip() or "v1"

    host = os.getenv("PLANPAY_HOST", "0.0.0.0").strip() or "0.0.0.0"
    port = int(os.getenv("PLANPAY_PORT", "8787").strip() or "8787")

    return AppConfig(
        chainintel_url=chainintel_url,
        tool_timeout=tool_timeout,

        pay_to=pay_to,
        price=price,
        pricing_mode=pricing_mode,
        network=network,
        rpc_url=rpc_url,
        rpc_timeout=rpc_timeout,
        tolerance=tolerance,

        openai_api_key=openai_api_key,
        planner_model=planner_model,
        planner_prompt=planner_prompt,

        host=host,
        port=port,
    )
