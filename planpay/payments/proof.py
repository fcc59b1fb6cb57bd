from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from planpay.core.errors import ProofInvalid

PROTOCOL = "x402"

TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class PaymentChallenge(BaseModel):
    """
    Rebuilt for every request; never stored.
    """
    model_config = ConfigDict(frozen=True)

    resource_url: str
    price: Decimal
    pay_to: str
    network: str

    def body(self, *, error: str = "Payment Required", message: Optional[str] = None) -> Dict[str, Any]:
        return {
            "error": error,
            "message": message or f"This endpoint requires payment via {PROTOCOL}",
            "payment_details": {
                "price": str(self.price),
                "payTo": self.pay_to,
                "network": self.network,
                "protocol": PROTOCOL,
            },
        }

    def headers(self) -> Dict[str, str]:
        return {
            "X-Payment-Required": "true",
            "X-Payment-Amount": str(self.price),
            "X-Payment-Network": self.network,
            "X-Payment-Recipient": self.pay_to,
        }


class PaymentProof(BaseModel):
    """
    Reason:
    - What the caller claims it paid.
    Benefit:
    - Only transaction_hash is used to look things up; claimed_* fields
      are kept for logs and never trusted.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transaction_hash: str = Field(
        validation_alias=AliasChoices("transactionHash", "txHash", "transaction_hash")
    )
    claimed_from: Optional[str] = Field(default=None, validation_alias=AliasChoices("from", "claimed_from"))
    claimed_to: Optional[str] = Field(default=None, validation_alias=AliasChoices("to", "claimed_to"))
    claimed_value: Any = Field(
        default=None, validation_alias=AliasChoices("value", "amount", "claimed_value")
    )
    chain_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("chainId", "chain_id"))

    @field_validator("chain_id", mode="before")
    @classmethod
    def _hex_or_decimal(cls, v: Any) -> Any:
        # wallets report chainId as "0x14a34" as often as 84532
        if isinstance(v, str):
            text = v.strip()
            try:
                return int(text, 0)
            except ValueError:
                return text
        return v


class VerifiedPayment(BaseModel):
    transaction_hash: str
    payer: Optional[str] = None
    pay_to: str
    value_wei: int
    block_number: Optional[int] = None
    resource_url: str = ""


def parse_proof(raw: Any) -> PaymentProof:
    """
    Accepts a bare transaction hash, a JSON string, or an already-decoded object.
    Raises ProofInvalid("malformed-proof") for anything else.
    """
    if isinstance(raw, PaymentProof):
        proof = raw
    elif isinstance(raw, dict):
        proof = _from_mapping(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                raise ProofInvalid("malformed-proof", "Invalid payment proof format") from e
            if not isinstance(data, dict):
                raise ProofInvalid("malformed-proof", "Invalid payment proof format")
            proof = _from_mapping(data)
        else:
            proof = PaymentProof(transaction_hash=text)
    else:
        raise ProofInvalid("malformed-proof", "Invalid payment proof format")

    if not TX_HASH_RE.match(proof.transaction_hash):
        raise ProofInvalid("malformed-proof", "Invalid transaction hash")
    return proof


def _from_mapping(data: Dict[str, Any]) -> PaymentProof:
    try:
        return PaymentProof.model_validate(data)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        raise ProofInvalid("malformed-proof", "Invalid payment proof format") from e


def chain_id_of(network: str) -> Optional[int]:
    """eip155:84532 -> 84532"""
    _, _, ref = network.partition(":")
    try:
        return int(ref or network)
    except ValueError:
        return None
