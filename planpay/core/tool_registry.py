from decimal import Decimal
from typing import Dict, List, Optional

from planpay.core.tool_schemas import ToolSpec


class ToolRegistry:
    """
    Reason:
    - Maintain an allowlist of paid tools and their static prices.
    Benefit:
    - Cost accounting never depends on what a tool says about itself.
    """

    def __init__(self) -> None:
        self._tools: Dict[tuple[str, str], ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        k = (spec.namespace, spec.name)
        if k in self._tools:
            raise ValueError(f"Tool already registered: {spec.key}")
        self._tools[k] = spec

    def has(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self._tools

    def get(self, namespace: str, name: str) -> Optional[ToolSpec]:
        return self._tools.get((namespace, name))

    def price(self, namespace: str, name: str) -> Decimal:
        spec = self.get(namespace, name)
        if spec is None:
            raise KeyError(f"Unknown tool {namespace}::{name}")
        return spec.price

    def specs(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def namespaces(self) -> List[str]:
        return sorted({ns for ns, _ in self._tools})

    def catalogue(self) -> str:
        """One line per tool, used inside the planner prompt."""
        return "\n".join(
            f"- {s.name} (MCP: {s.namespace}, Price: {s.price} ETH): {s.description}"
            for s in self._tools.values()
        )


# (name, price in ETH, description)
CHAININTEL_TOOLS = [
    ("analyze-wallet", "0.01", "Deep cross-chain wallet analysis with AI insights (Base + Solana)"),
    ("detect-whales", "0.005", "Identify whale wallets and track their movements"),
    ("smart-money-tracker", "0.02", "Track wallets with proven alpha"),
    ("risk-score", "0.005", "Calculate comprehensive risk score for wallet"),
    ("trading-patterns", "0.01", "Analyze trading patterns and identify strategies"),
    ("get_market_data", "0.002", "Current odds and volume for a prediction market"),
    ("analyze_market", "0.005", "AI analysis of a prediction market"),
    ("get_trending_markets", "0.003", "Trending prediction markets by volume"),
    ("search_markets", "0.002", "Search prediction markets by keyword"),
    ("upload_json", "0.002", "Pin a JSON document to IPFS and return its CID"),
]


def default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for name, price, description in CHAININTEL_TOOLS:
        registry.register(
            ToolSpec(
                namespace="chainintel",
                name=name,
                price=Decimal(price),
                description=description,
            )
        )
    return registry
