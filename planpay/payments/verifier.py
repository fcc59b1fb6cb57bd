from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from web3 import Web3

from planpay.core.errors import ProofInvalid
from planpay.infra.logging import log_event
from planpay.payments.chain_reader import ChainReader, ChainReadTimeout
from planpay.payments.proof import PaymentProof, VerifiedPayment

DEFAULT_TOLERANCE = Decimal("0.00001")


def to_wei(eth: Decimal) -> int:
    return int(Web3.to_wei(eth, "ether"))


def from_wei(wei: int) -> Decimal:
    return Decimal(Web3.from_wei(wei, "ether"))


def _as_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


class PaymentVerifier:
    """
    Reason:
    - A proof is only a transaction hash plus claims; the chain is the truth.
    Benefit:
    - No pending-challenge store: every submission is re-derived from chain state.
    """

    def __init__(
        self,
        reader: ChainReader,
        *,
        pay_to: str,
        chain_id: Optional[int] = None,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ) -> None:
        self.reader = reader
        self.pay_to = pay_to
        self.chain_id = chain_id
        self.tolerance = tolerance

    def verify(self, proof: PaymentProof, *, price: Decimal, resource_url: str = "") -> VerifiedPayment:
        """
        Raises ProofInvalid with a specific reason, or
        VerificationInfrastructureError when the chain cannot be read.
        """
        tx_hash = proof.transaction_hash

        if self.chain_id is not None and proof.chain_id is not None and proof.chain_id != self.chain_id:
            raise ProofInvalid(
                "wrong-network",
                f"Proof is for chain {proof.chain_id} (expected: {self.chain_id})",
            )

        try:
            tx = self.reader.get_transaction(tx_hash)
            receipt = self.reader.get_transaction_receipt(tx_hash) if tx else None
        except ChainReadTimeout as e:
            raise ProofInvalid("tx-not-found", f"Transaction lookup timed out: {e}") from e

        if not tx or not receipt:
            raise ProofInvalid("tx-not-found", "Transaction not found on-chain")

        if _as_int(receipt.get("status", 0)) != 1:
            raise ProofInvalid("tx-failed-onchain", "Transaction failed on-chain")

        tx_chain = tx.get("chainId")
        if self.chain_id is not None and tx_chain is not None and _as_int(tx_chain) != self.chain_id:
            raise ProofInvalid(
                "wrong-network",
                f"Transaction is on chain {_as_int(tx_chain)} (expected: {self.chain_id})",
            )

        to = tx.get("to") or ""
        if to.lower() != self.pay_to.lower():
            raise ProofInvalid(
                "wrong-recipient",
                f"Payment sent to wrong address: {to or None} (expected: {self.pay_to})",
            )

        value = _as_int(tx.get("value", 0))
        minimum = to_wei(price) - to_wei(self.tolerance)
        if value < minimum:
            raise ProofInvalid(
                "insufficient-amount",
                f"Insufficient payment: {from_wei(value)} ETH (expected: {price} ETH)",
            )

        payment = VerifiedPayment(
            transaction_hash=tx_hash,
            payer=tx.get("from"),
            pay_to=to,
            value_wei=value,
            block_number=_block_number(receipt),
            resource_url=resource_url,
        )
        log_event(
            "payment_verified",
            tx_hash=tx_hash,
            payer=payment.payer,
            value=from_wei(value),
            resource_url=resource_url,
        )
        return payment


def _block_number(receipt: Mapping[str, Any]) -> Optional[int]:
    bn = receipt.get("blockNumber")
    return _as_int(bn) if bn is not None else None
