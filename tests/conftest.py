from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from planpay.config import AppConfig
from planpay.core.errors import VerificationInfrastructureError
from planpay.core.tool_adapter import InProcessTransport, ToolAdapter
from planpay.core.tool_registry import default_registry
from planpay.payments.chain_reader import ChainReader, ChainReadTimeout
from planpay.payments.gate import PaymentGate
from planpay.payments.verifier import PaymentVerifier

PAY_TO = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20
PAYER = "0x" + "ef" * 20
TX_HASH = "0x" + "11" * 32
CHAIN_ID = 84532
NETWORK = "eip155:84532"
PRICE = Decimal("0.001")
ONE_ETH = 10**18


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    monkeypatch.setenv("PLANPAY_LOG_EVENTS", "0")


class FakeChainReader(ChainReader):
    """In-memory chain: transactions and receipts keyed by hash."""

    def __init__(self) -> None:
        self.txs: Dict[str, Dict[str, Any]] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.reads = 0
        self.fail_with: Optional[Exception] = None

    def add(
        self,
        tx_hash: str = TX_HASH,
        *,
        to: str = PAY_TO,
        value: int = int(PRICE * ONE_ETH),
        status: int = 1,
        chain_id: Optional[int] = CHAIN_ID,
        receipt: bool = True,
    ) -> None:
        tx = {"hash": tx_hash, "from": PAYER, "to": to, "value": value}
        if chain_id is not None:
            tx["chainId"] = chain_id
        self.txs[tx_hash] = tx
        if receipt:
            self.receipts[tx_hash] = {"status": status, "blockNumber": 123}

    def get_transaction(self, tx_hash: str):
        self.reads += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.txs.get(tx_hash)

    def get_transaction_receipt(self, tx_hash: str):
        self.reads += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.receipts.get(tx_hash)


@pytest.fixture
def chain() -> FakeChainReader:
    return FakeChainReader()


@pytest.fixture
def verifier(chain) -> PaymentVerifier:
    return PaymentVerifier(chain, pay_to=PAY_TO, chain_id=CHAIN_ID, tolerance=Decimal("0.00001"))


@pytest.fixture
def gate(verifier) -> PaymentGate:
    return PaymentGate(verifier, network=NETWORK)


@pytest.fixture
def registry():
    return default_registry()


class ToolBench:
    """Binds fake tools in-process and records every call."""

    def __init__(self) -> None:
        self.transport = InProcessTransport()
        self.calls: List[tuple[str, Dict[str, Any]]] = []

    def bind(self, tool: str, result: Any = None, *, error: Optional[Exception] = None, namespace: str = "chainintel"):
        def fn(params: Dict[str, Any]) -> Any:
            self.calls.append((tool, params))
            if error is not None:
                raise error
            return result if result is not None else {"ok": True, "tool": tool}

        self.transport.register(namespace, tool, fn)

    def adapter(self) -> ToolAdapter:
        return ToolAdapter([self.transport])

    def called(self) -> List[str]:
        return [t for t, _ in self.calls]


@pytest.fixture
def bench() -> ToolBench:
    return ToolBench()


def make_step(tool: str, params: Optional[Dict[str, Any]] = None, depends_on: Optional[List[int]] = None) -> Dict[str, Any]:
    return {
        "mcp": "chainintel",
        "tool": tool,
        "params": params if params is not None else {},
        "reason": f"run {tool}",
        "dependsOn": depends_on or [],
    }


def make_plan(*steps: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "intent": "Analyze a wallet",
        "steps": list(steps),
        "totalCost": "0.01 ETH",
        "reasoning": "because",
        "expectedOutcome": "a report",
    }


def make_config(**overrides: Any) -> AppConfig:
    values = dict(
        chainintel_url="http://chainintel.test",
        tool_timeout=5.0,
        pay_to=PAY_TO,
        price=PRICE,
        pricing_mode="fixed",
        network=NETWORK,
        rpc_url="http://rpc.test",
        rpc_timeout=1.0,
        tolerance=Decimal("0.00001"),
        openai_api_key=None,
        planner_model="gpt-4o-mini",
        planner_prompt="v1",
        host="127.0.0.1",
        port=8787,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def step():
    return make_step


@pytest.fixture
def plan_data():
    return make_plan


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def infra_error():
    return VerificationInfrastructureError("Chain RPC unreachable at http://rpc.test")


@pytest.fixture
def read_timeout():
    return ChainReadTimeout("get_transaction timed out after 1.0s")
