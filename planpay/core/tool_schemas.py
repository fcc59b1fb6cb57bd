from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class ToolSpec(BaseModel):
    """
    Reason:
    - One static entry per paid tool: where it lives and what it costs.
    Benefit:
    - Validator and executor price steps from the same table.
    """
    model_config = ConfigDict(frozen=True)

    namespace: str = Field(description="MCP / service namespace, e.g. chainintel")
    name: str = Field(description="Tool name inside the namespace")
    price: Decimal = Field(ge=0, description="Price per call in ETH")
    description: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace}::{self.name}"
