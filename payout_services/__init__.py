"""
payout_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure calculators in
    payout_engines/ with database sessions, the transfer gateway and the
    statement notifier.  This is the only layer besides payout_scheduler
    that holds database sessions or reads the wall clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        payout_services/  -> payout_engines/  (allowed)
        payout_services/  -> payout_kernel/   (allowed)
        payout_engines/   -> payout_services/ (FORBIDDEN)
        payout_kernel/    -> payout_services/ (FORBIDDEN)

Invariants enforced:
    - Services flush; the caller owns the transaction and commits.
    - Every status change goes through a declared Workflow.
"""

from payout_kernel.logging_config import get_logger

logger = get_logger("services")

from payout_services.notifications import StatementNotification, StatementNotifier
from payout_services.payout_orchestrator import (
    PayoutOrchestrator,
    SweepResult,
    WebhookOutcome,
)
from payout_services.statement_aggregator import StatementAggregator, StatementTarget
from payout_services.statement_service import StatementService
from payout_services.transfers import (
    TransferGateway,
    TransferOutcome,
    TransferRequest,
    TransferResult,
)
from payout_services.webhooks import WebhookEvent, WebhookVerifier, sign_payload
from payout_services.workflows import PAYOUT_WORKFLOW, STATEMENT_WORKFLOW

__all__ = [
    "PAYOUT_WORKFLOW",
    "PayoutOrchestrator",
    "STATEMENT_WORKFLOW",
    "StatementAggregator",
    "StatementNotification",
    "StatementNotifier",
    "StatementService",
    "StatementTarget",
    "SweepResult",
    "TransferGateway",
    "TransferOutcome",
    "TransferRequest",
    "TransferResult",
    "WebhookEvent",
    "WebhookOutcome",
    "WebhookVerifier",
    "sign_payload",
]
