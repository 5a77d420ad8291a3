"""
payout_services.payout_orchestrator -- Drives owner transfers.

Responsibility:
    Takes finalized statements with a positive owner payout through
    PAYOUT_WORKFLOW: an immediate transfer attempt, queueing on an
    insufficient platform balance, batch sweeps when a balance top-up
    lands, ``topup_failed`` when it does not, and operator retry/abandon.

Architecture position:
    Services -- stateful orchestration over kernel models and the
    TransferGateway boundary.  Flushes, never commits.

Invariants enforced:
    - Check-then-act on payout status happens on a row locked with
      SELECT ... FOR UPDATE, so one statement is never transferred twice
      by a concurrent sweep and webhook.
    - Each gateway call carries ``payout:<statement_id>:<attempt>`` as its
      idempotency key.  A retry of a statement stuck in ``pending``
      reuses the previous attempt's key.
    - Webhook events are verified before any state change and applied at
      most once per event id.
    - Sweep items run in their own SAVEPOINT; one failure never aborts
      the sweep.

Failure modes:
    - PayoutNotAllowedError: statement still draft or payout not positive.
    - MissingDestinationAccountError: no transfer account for the entity.
    - InvalidPayoutTransitionError: action illegal in the current status.
    - WebhookVerificationError / UnsupportedWebhookEventError on webhooks.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payout_config.schema import PayoutConfig
from payout_kernel.db.types import ZERO, round_money, to_cents, to_decimal
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import PayoutStatus, StatementStatus
from payout_kernel.exceptions import (
    InvalidPayoutTransitionError,
    MissingDestinationAccountError,
    PayoutNotAllowedError,
    StatementNotFoundError,
    TransferGatewayError,
    UnsupportedWebhookEventError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models import (
    ListingGroupModel,
    PropertyModel,
    StatementModel,
    WebhookEventModel,
)
from payout_kernel.utils.idempotency import transfer_key
from payout_services.transfers import (
    TransferGateway,
    TransferOutcome,
    TransferRequest,
    TransferResult,
)
from payout_services.webhooks import (
    SUPPORTED_EVENTS,
    TOPUP_FAILED,
    TOPUP_SUCCEEDED,
    WebhookVerifier,
)
from payout_services.workflows import (
    PAYOUT_WORKFLOW,
    POSITIVE_PAYOUT,
    STATEMENT_FINALIZED,
    STATEMENT_WORKFLOW,
)

logger = get_logger("services.payouts")


@dataclass(frozen=True)
class SweepResult:
    """Outcome of re-attempting every queued transfer."""

    attempted: int = 0
    transferred: int = 0
    still_queued: int = 0
    failed: int = 0
    errors: tuple[tuple[str, str], ...] = ()  # (statement_id, message)


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    duplicate: bool = False
    sweep: SweepResult | None = None
    marked_topup_failed: int = 0


class PayoutOrchestrator:
    """
    Payout state machine over statements.

    Contract:
        Every payout status change is resolved through
        ``PAYOUT_WORKFLOW.apply``.  The gateway is called only while the
        statement row is locked and its status is ``pending`` or ``queued``.
    Non-goals:
        - Does NOT guarantee exactly-once delivery at the provider; it
          guarantees idempotent local transitions and stable keys.
    """

    def __init__(
        self,
        session: Session,
        gateway: TransferGateway,
        clock: Clock | None = None,
        payout_config: PayoutConfig | None = None,
        verifier: WebhookVerifier | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.config = payout_config or PayoutConfig()
        self.verifier = verifier or WebhookVerifier(
            self.config.webhook_secret,
            self.config.webhook_tolerance_seconds,
            self.clock,
        )

    # =========================================================================
    # Initiation
    # =========================================================================

    def on_statement_finalized(self, statement_id: UUID) -> StatementModel | None:
        """
        Start a payout for a freshly finalized statement, if it has one.

        Statements with a zero or negative payout have nothing to transfer
        and return None.  A missing destination account does not raise: the
        error is stored on the statement, which stays at payout status
        ``none`` so the caller's commit keeps the error visible.
        """
        statement = self._locked(statement_id)
        if round_money(to_decimal(statement.owner_payout)) <= ZERO:
            logger.info(
                "payout_not_applicable",
                extra={
                    "statement_id": str(statement.id),
                    "owner_payout": statement.owner_payout,
                },
            )
            return None
        if not self.config.auto_transfer_on_finalize:
            return None
        try:
            return self._initiate(statement)
        except MissingDestinationAccountError as exc:
            logger.warning(
                "payout_destination_missing",
                extra={
                    "statement_id": str(statement.id),
                    "entity_key": statement.entity_key,
                    "error_code": exc.code,
                },
            )
            return statement

    def initiate_payout(self, statement_id: UUID) -> StatementModel:
        """none -> pending, then attempt the transfer immediately."""
        return self._initiate(self._locked(statement_id))

    def _initiate(self, statement: StatementModel) -> StatementModel:
        if statement.status == StatementStatus.DRAFT.value:
            raise PayoutNotAllowedError(str(statement.id), STATEMENT_FINALIZED.description)
        if round_money(to_decimal(statement.owner_payout)) <= ZERO:
            raise PayoutNotAllowedError(str(statement.id), POSITIVE_PAYOUT.description)

        destination = self.resolve_destination(statement)
        if not destination:
            statement.payout_error = "No destination account configured"
            self.session.flush()
            raise MissingDestinationAccountError(str(statement.id), statement.entity_key)

        self._transition(statement, "initiate")
        statement.payout_destination = destination
        statement.payout_error = None
        self.session.flush()
        return self._attempt(statement, reuse_attempt=False)

    def resolve_destination(self, statement: StatementModel) -> str | None:
        """Group account first, then the property's own account.

        A combined statement without a group account uses its members'
        account only when every member with an account shares the same one.
        """
        if statement.group_id is not None:
            group = self.session.get(ListingGroupModel, statement.group_id)
            if group is not None and group.destination_account:
                return group.destination_account

        if statement.property_id is not None and not statement.is_combined:
            prop = self.session.get(PropertyModel, statement.property_id)
            return prop.destination_account if prop is not None else None

        ids = [UUID(pid) for pid in (statement.property_ids or [])]
        if not ids:
            return None
        accounts = {
            p.destination_account
            for p in self.session.execute(
                select(PropertyModel).where(PropertyModel.id.in_(ids))
            ).scalars()
            if p.destination_account
        }
        return accounts.pop() if len(accounts) == 1 else None

    # =========================================================================
    # Operator actions
    # =========================================================================

    def retry_payout(self, statement_id: UUID) -> StatementModel:
        """Explicit operator retry: back to pending and attempt again."""
        statement = self._locked(statement_id)
        was_pending = statement.payout_status == PayoutStatus.PENDING.value
        self._transition(statement, "retry")
        if not statement.payout_destination:
            statement.payout_destination = self.resolve_destination(statement)
        if not statement.payout_destination:
            raise MissingDestinationAccountError(str(statement.id), statement.entity_key)
        self.session.flush()
        return self._attempt(statement, reuse_attempt=was_pending)

    def abandon_payout(self, statement_id: UUID, reason: str) -> StatementModel:
        statement = self._locked(statement_id)
        self._transition(statement, "abandon")
        statement.payout_error = f"Abandoned: {reason}"
        self.session.flush()
        return statement

    # =========================================================================
    # Top-up events
    # =========================================================================

    def sweep_queued(self) -> SweepResult:
        """Attempt every queued transfer once, oldest period first."""
        ids = self.session.execute(
            select(StatementModel.id)
            .where(StatementModel.payout_status == PayoutStatus.QUEUED.value)
            .order_by(StatementModel.period_start, StatementModel.id)
        ).scalars().all()

        attempted = transferred = still_queued = failed = 0
        errors: list[tuple[str, str]] = []

        for statement_id in ids:
            savepoint = self.session.begin_nested()
            try:
                statement = self._locked(statement_id)
                if statement.payout_status != PayoutStatus.QUEUED.value:
                    # Another worker got to it first.
                    savepoint.commit()
                    continue
                attempted += 1
                self._attempt(statement, reuse_attempt=False)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                failed += 1
                errors.append((str(statement_id), str(exc)))
                logger.exception(
                    "payout_sweep_item_failed",
                    extra={"statement_id": str(statement_id)},
                )
                continue

            match statement.payout_status:
                case PayoutStatus.TRANSFERRED.value:
                    transferred += 1
                case PayoutStatus.QUEUED.value:
                    still_queued += 1
                case _:
                    failed += 1
                    errors.append((str(statement.id), statement.payout_error or ""))

        result = SweepResult(
            attempted=attempted,
            transferred=transferred,
            still_queued=still_queued,
            failed=failed,
            errors=tuple(errors),
        )
        logger.info(
            "payout_sweep_completed",
            extra={
                "attempted": attempted,
                "transferred": transferred,
                "still_queued": still_queued,
                "failed": failed,
            },
        )
        return result

    def mark_topup_failed(self, reason: str) -> int:
        """Move every queued statement to ``topup_failed``."""
        statements = self.session.execute(
            select(StatementModel)
            .where(StatementModel.payout_status == PayoutStatus.QUEUED.value)
            .with_for_update()
        ).scalars().all()

        for statement in statements:
            self._transition(statement, "topup_failed")
            statement.payout_error = f"Balance top-up failed: {reason}"
        self.session.flush()

        logger.warning(
            "payout_topup_failed",
            extra={"statements": len(statements), "reason": reason},
        )
        return len(statements)

    def handle_webhook(self, payload: bytes | str, signature_header: str | None) -> WebhookOutcome:
        """
        Verify, de-duplicate and apply one transfer-service event.

        Raises before any write when the signature does not verify or the
        event type is unsupported.
        """
        event = self.verifier.verify(payload, signature_header)
        if event.event_type not in SUPPORTED_EVENTS:
            logger.warning(
                "webhook_rejected",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            raise UnsupportedWebhookEventError(event.event_type, event.event_id)

        existing = self.session.execute(
            select(WebhookEventModel).where(WebhookEventModel.event_id == event.event_id)
        ).scalar_one_or_none()
        if existing is not None:
            logger.info("webhook_duplicate_ignored", extra={"event_id": event.event_id})
            return WebhookOutcome(event.event_id, event.event_type, duplicate=True)

        record = WebhookEventModel(
            event_id=event.event_id,
            event_type=event.event_type,
            received_at=self.clock.now(),
            payload=event.raw,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(record)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.info("webhook_duplicate_ignored", extra={"event_id": event.event_id})
            return WebhookOutcome(event.event_id, event.event_type, duplicate=True)
        savepoint.commit()

        with LogContext.bind(correlation_id=event.event_id):
            logger.info(
                "webhook_received",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            if event.event_type == TOPUP_SUCCEEDED:
                sweep = self.sweep_queued()
                record.outcome = (
                    f"swept {sweep.attempted}: {sweep.transferred} transferred, "
                    f"{sweep.still_queued} queued, {sweep.failed} failed"
                )
                outcome = WebhookOutcome(event.event_id, event.event_type, sweep=sweep)
            elif event.event_type == TOPUP_FAILED:
                count = self.mark_topup_failed(event.failure_message or "top-up failed")
                record.outcome = f"marked {count} topup_failed"
                outcome = WebhookOutcome(
                    event.event_id, event.event_type, marked_topup_failed=count,
                )

        self.session.flush()
        return outcome

    # =========================================================================
    # Internal
    # =========================================================================

    def _locked(self, statement_id: UUID) -> StatementModel:
        statement = self.session.execute(
            select(StatementModel)
            .where(StatementModel.id == statement_id)
            .with_for_update()
        ).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement

    def _transition(self, statement: StatementModel, action: str) -> None:
        transition = PAYOUT_WORKFLOW.apply(
            statement.payout_status, action, InvalidPayoutTransitionError,
        )
        previous = statement.payout_status
        statement.payout_status = transition.to_state
        logger.info(
            "payout_status_changed",
            extra={
                "statement_id": str(statement.id),
                "action": action,
                "from_status": previous,
                "to_status": transition.to_state,
            },
        )

    def _attempt(self, statement: StatementModel, reuse_attempt: bool) -> StatementModel:
        """Call the gateway once and apply the outcome.  Row must be locked."""
        if reuse_attempt and statement.payout_attempts > 0:
            attempt = statement.payout_attempts
        else:
            attempt = statement.payout_attempts + 1
        amount = round_money(to_decimal(statement.owner_payout))

        request = TransferRequest(
            destination=statement.payout_destination or "",
            amount_cents=to_cents(amount),
            currency=self.config.currency,
            idempotency_key=transfer_key(statement.id, attempt),
            description=(
                f"Owner payout {statement.period_start.isoformat()} to "
                f"{statement.period_end.isoformat()}"
            ),
            metadata={
                "statement_id": str(statement.id),
                "entity_key": statement.entity_key,
                "period_start": statement.period_start.isoformat(),
                "period_end": statement.period_end.isoformat(),
                "owner_name": statement.owner_name or "",
            },
        )

        statement.payout_attempts = attempt
        self.session.flush()

        with LogContext.bind(statement_id=str(statement.id)):
            try:
                result = self.gateway.create_transfer(request)
            except Exception as exc:
                error = TransferGatewayError(str(statement.id), str(exc))
                logger.exception(
                    "payout_gateway_error",
                    extra={"idempotency_key": request.idempotency_key},
                )
                result = TransferResult.failed(str(error))

            self._apply_result(statement, result, amount, request)

        self.session.flush()
        return statement

    def _apply_result(
        self,
        statement: StatementModel,
        result: TransferResult,
        amount: Decimal,
        request: TransferRequest,
    ) -> None:
        match result.outcome:
            case TransferOutcome.SUCCEEDED:
                self._transition(statement, "transfer_succeeded")
                fee = round_money(to_decimal(result.fee))
                statement.payout_transfer_id = result.transfer_id
                statement.transfer_fee = fee
                statement.total_transfer_amount = round_money(amount + fee)
                statement.payout_error = None
                statement.paid_at = self.clock.now()
                if STATEMENT_WORKFLOW.can(statement.status, "mark_paid"):
                    statement.status = STATEMENT_WORKFLOW.apply(
                        statement.status, "mark_paid",
                    ).to_state
                logger.info(
                    "payout_transfer_succeeded",
                    extra={
                        "transfer_id": result.transfer_id,
                        "amount": amount,
                        "fee": fee,
                        "idempotency_key": request.idempotency_key,
                    },
                )
            case TransferOutcome.INSUFFICIENT_BALANCE:
                if statement.payout_status == PayoutStatus.PENDING.value:
                    self._transition(statement, "insufficient_balance")
                statement.payout_error = result.error or "Insufficient available balance"
                logger.warning(
                    "payout_queued",
                    extra={"amount": amount, "reason": statement.payout_error},
                )
            case _:
                self._transition(statement, "transfer_failed")
                statement.payout_error = result.error or "Transfer failed"
                logger.error(
                    "payout_transfer_failed",
                    extra={
                        "amount": amount,
                        "reason": statement.payout_error,
                        "idempotency_key": request.idempotency_key,
                    },
                )
