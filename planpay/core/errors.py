from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional


class PlanValidationError(ValueError):
    """Raised when a plan fails structural or semantic validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid plan: " + ", ".join(self.errors))


class DependencyUnsatisfiedError(RuntimeError):
    """
    A step declared a dependency that has no result at execution time.

    Reason:
    - The validator checks indices statically; this is the runtime guard.
    Benefit:
    - The caller still gets the records produced before the abort.
    """

    def __init__(
        self,
        *,
        step: int,
        tool: str,
        missing: List[int],
        completed: List[int],
        records: Optional[List[Any]] = None,
        total_cost: Decimal = Decimal("0"),
    ):
        self.step = step
        self.tool = tool
        self.missing = list(missing)
        self.completed = list(completed)
        self.records = list(records or [])
        self.total_cost = total_cost
        done = ", ".join(str(i) for i in self.completed) or "none"
        super().__init__(
            f"Step {step} ({tool}): Dependencies not satisfied. "
            f"Missing results from steps: {', '.join(str(i) for i in self.missing)}. "
            f"Completed steps: {done}"
        )


class ToolInvocationError(RuntimeError):
    """Raised by the tool adapter; the message is shown to callers as-is."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PlannerError(RuntimeError):
    """Raised when the planner collaborator cannot produce a plan."""


class PaymentError(Exception):
    """Base class for payment gate failures."""


class NoProofSupplied(PaymentError):
    """The request carried no payment proof."""


class ProofInvalid(PaymentError):
    """
    The proof was checked and rejected.

    reason is one of: tx-not-found, tx-failed-onchain, wrong-recipient,
    insufficient-amount, wrong-network, malformed-proof.
    """

    def __init__(self, reason: str, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}")


class VerificationInfrastructureError(PaymentError):
    """The chain reader could not be reached; nothing was verified."""
