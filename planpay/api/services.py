from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from planpay.config import AppConfig
from planpay.core.plan_schemas import Plan
from planpay.core.planner import LLMPlanner
from planpay.core.tool_adapter import HttpTransport, InProcessTransport, ToolAdapter
from planpay.core.tool_registry import ToolRegistry, default_registry
from planpay.llm.client import OpenAIClient
from planpay.payments.chain_reader import Web3ChainReader
from planpay.payments.gate import PaymentGate
from planpay.payments.proof import chain_id_of
from planpay.payments.verifier import PaymentVerifier


class Planner(Protocol):
    def create_plan(self, query: str) -> Plan: ...


@dataclass
class Services:
    """
    Handles built once at process start and passed to the app.
    Nothing here holds per-request state.
    """

    config: AppConfig
    registry: ToolRegistry
    adapter: ToolAdapter
    gate: Optional[PaymentGate]
    planner: Optional[Planner]


def build_adapter(config: AppConfig, local: Optional[InProcessTransport] = None) -> ToolAdapter:
    # in-process first: a locally bound tool never goes over the network
    return ToolAdapter(
        [
            local or InProcessTransport(),
            HttpTransport({"chainintel": config.chainintel_url}, timeout=config.tool_timeout),
        ]
    )


def build_gate(config: AppConfig) -> Optional[PaymentGate]:
    if not config.pay_to:
        return None
    reader = Web3ChainReader(config.rpc_url, timeout=config.rpc_timeout)
    verifier = PaymentVerifier(
        reader,
        pay_to=config.pay_to,
        chain_id=chain_id_of(config.network),
        tolerance=config.tolerance,
    )
    return PaymentGate(verifier, network=config.network)


def build_planner(config: AppConfig, registry: ToolRegistry) -> Optional[LLMPlanner]:
    if not config.openai_api_key:
        return None
    client = OpenAIClient(config.openai_api_key, model=config.planner_model)
    return LLMPlanner(client, registry, version=config.planner_prompt)


def build_services(config: AppConfig) -> Services:
    registry = default_registry()
    return Services(
        config=config,
        registry=registry,
        adapter=build_adapter(config),
        gate=build_gate(config),
        planner=build_planner(config, registry),
    )
