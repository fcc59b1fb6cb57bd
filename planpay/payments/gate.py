from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

from planpay.core.errors import NoProofSupplied, ProofInvalid, VerificationInfrastructureError
from planpay.infra.logging import log_event
from planpay.payments.proof import PaymentChallenge, VerifiedPayment, parse_proof
from planpay.payments.verifier import PaymentVerifier


class GateState(str, Enum):
    UNCHALLENGED = "unchallenged"
    CHALLENGED = "challenged"
    VERIFYING = "verifying"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass
class GateOutcome:
    """What the HTTP layer should send back."""

    state: GateState
    status_code: int
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)
    payment: Optional[VerifiedPayment] = None
    reason: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.state == GateState.GRANTED


class PaymentGate:
    """
    Reason:
    - Paid operations run only after an on-chain payment to us is confirmed.
    Benefit:
    - Stateless: a challenge is rebuilt from (price, payee, resource) on every
      request, and every proof is checked against the chain again.

    Unchallenged -> Challenged (402) or Verifying -> Granted (200) / Denied (402).
    A chain reader outage is neither: it is a 500.
    """

    def __init__(self, verifier: PaymentVerifier, *, network: str) -> None:
        self.verifier = verifier
        self.network = network

    @property
    def pay_to(self) -> str:
        return self.verifier.pay_to

    def challenge(self, *, resource_url: str, price: Decimal) -> PaymentChallenge:
        return PaymentChallenge(
            resource_url=resource_url,
            price=price,
            pay_to=self.pay_to,
            network=self.network,
        )

    def run(
        self,
        raw_proof: Any,
        *,
        resource_url: str,
        price: Decimal,
        protected: Callable[[VerifiedPayment], Any],
    ) -> GateOutcome:
        """Drive one request through the gate; call `protected` only when granted."""
        challenge = self.challenge(resource_url=resource_url, price=price)

        try:
            payment = self._verify(raw_proof, resource_url=resource_url, price=price)
        except NoProofSupplied:
            log_event("payment_challenge", resource_url=resource_url, price=price, pay_to=self.pay_to)
            return GateOutcome(
                state=GateState.CHALLENGED,
                status_code=402,
                body=challenge.body(),
                headers=challenge.headers(),
            )
        except ProofInvalid as e:
            log_event("payment_denied", resource_url=resource_url, reason=e.reason, detail=e.detail)
            body = challenge.body(error="Payment verification failed", message=e.detail)
            body["reason"] = e.reason
            body["detail"] = e.detail
            return GateOutcome(
                state=GateState.DENIED,
                status_code=402,
                body=body,
                headers=challenge.headers(),
                reason=e.reason,
            )
        except VerificationInfrastructureError as e:
            log_event("payment_infra_error", resource_url=resource_url, error=str(e))
            return GateOutcome(
                state=GateState.DENIED,
                status_code=500,
                body={"error": f"Payment verification failed: {e}"},
            )

        return GateOutcome(
            state=GateState.GRANTED,
            status_code=200,
            body=protected(payment),
            payment=payment,
        )

    def _verify(self, raw_proof: Any, *, resource_url: str, price: Decimal) -> VerifiedPayment:
        if raw_proof is None or (isinstance(raw_proof, str) and not raw_proof.strip()):
            raise NoProofSupplied("No payment data provided")
        proof = parse_proof(raw_proof)
        log_event(
            "payment_verifying",
            resource_url=resource_url,
            tx_hash=proof.transaction_hash,
            price=price,
        )
        return self.verifier.verify(proof, price=price, resource_url=resource_url)
