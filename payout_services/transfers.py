"""
Transfer gateway boundary (``payout_services.transfers``).

Responsibility:
    The payout orchestrator moves money through a ``TransferGateway``.
    The gateway turns one ``TransferRequest`` into a ``TransferResult`` of
    exactly one of three kinds: succeeded, insufficient balance, or any
    other failure.

Architecture position:
    Services -- external collaborator interface.  Concrete gateways live
    with the deployment; tests use an in-memory fake.

Invariants enforced:
    - Amounts cross the boundary as integer minor units (cents).
    - Every request carries an idempotency key so a retried call for the
      same attempt cannot create a second transfer at the provider.

Failure modes:
    - A gateway that raises instead of returning a result is wrapped in
      ``TransferGatewayError`` by the orchestrator and recorded as
      ``transfer_failed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable


class TransferOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferRequest:
    destination: str
    amount_cents: int
    currency: str
    idempotency_key: str
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    outcome: TransferOutcome
    transfer_id: str | None = None
    fee: Decimal = Decimal("0")
    error: str | None = None

    @classmethod
    def succeeded(cls, transfer_id: str, fee: Decimal = Decimal("0")) -> TransferResult:
        return cls(outcome=TransferOutcome.SUCCEEDED, transfer_id=transfer_id, fee=fee)

    @classmethod
    def insufficient_balance(cls, error: str = "Insufficient available balance") -> TransferResult:
        return cls(outcome=TransferOutcome.INSUFFICIENT_BALANCE, error=error)

    @classmethod
    def failed(cls, error: str) -> TransferResult:
        return cls(outcome=TransferOutcome.FAILED, error=error)


@runtime_checkable
class TransferGateway(Protocol):
    """create transfer(destination, amount) -> succeeded | insufficient | failed."""

    def create_transfer(self, request: TransferRequest) -> TransferResult:
        ...
