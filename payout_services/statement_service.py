"""
payout_services.statement_service -- Statement document lifecycle.

Responsibility:
    Moves statements through STATEMENT_WORKFLOW (finalize, send,
    mark_paid, adjust), hands finished statements to the notifier, applies
    cancellation adjustments and answers list queries.

Architecture position:
    Services -- stateful orchestration over kernel models.
    Flushes, never commits.

Invariants enforced:
    - Every status change goes through ``STATEMENT_WORKFLOW.apply``.
    - Statements are never deleted; a cancellation appends a negative
      adjustment item and recomputes the owner payout.
    - A reservation is adjusted out of a statement at most once.

Failure modes:
    - StatementNotFoundError: unknown statement id.
    - InvalidStatementTransitionError: action illegal in current status.
    - EntityNotFoundError: cancellation of a reservation that is not on
      the statement.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payout_kernel.db.types import ZERO, round_money, to_decimal
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import PayoutStatus, StatementStatus
from payout_kernel.exceptions import (
    EntityNotFoundError,
    InvalidStatementTransitionError,
    StatementNotFoundError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models import PropertyModel, StatementModel
from payout_services.notifications import StatementNotification, StatementNotifier
from payout_services.workflows import STATEMENT_WORKFLOW

logger = get_logger("services.statements")


class StatementService:
    """
    Lifecycle operations on persisted statements.

    Contract:
        Methods take a statement id, lock the row, apply one workflow
        action and flush.
    Non-goals:
        - Does NOT compute totals; see StatementAggregator.
        - Does NOT move money; see PayoutOrchestrator.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: StatementNotifier | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.notifier = notifier

    # =========================================================================
    # Queries
    # =========================================================================

    def get_statement(self, statement_id: UUID, lock: bool = False) -> StatementModel:
        stmt = select(StatementModel).where(StatementModel.id == statement_id)
        if lock:
            stmt = stmt.with_for_update()
        statement = self.session.execute(stmt).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement

    def list_statements(
        self,
        status: StatementStatus | None = None,
        payout_status: PayoutStatus | None = None,
        entity_key: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> list[StatementModel]:
        """Statements filtered by status, newest period first."""
        stmt = select(StatementModel)
        if status is not None:
            stmt = stmt.where(StatementModel.status == status.value)
        if payout_status is not None:
            stmt = stmt.where(StatementModel.payout_status == payout_status.value)
        if entity_key is not None:
            stmt = stmt.where(StatementModel.entity_key == entity_key)
        if period_start is not None:
            stmt = stmt.where(StatementModel.period_end >= period_start)
        if period_end is not None:
            stmt = stmt.where(StatementModel.period_start <= period_end)
        stmt = stmt.order_by(
            StatementModel.period_start.desc(), StatementModel.entity_key,
        )
        return list(self.session.execute(stmt).scalars().all())

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _transition(self, statement: StatementModel, action: str) -> None:
        transition = STATEMENT_WORKFLOW.apply(
            statement.status, action, InvalidStatementTransitionError,
        )
        previous = statement.status
        statement.status = transition.to_state
        logger.info(
            "statement_status_changed",
            extra={
                "statement_id": str(statement.id),
                "action": action,
                "from_status": previous,
                "to_status": transition.to_state,
            },
        )

    def finalize(self, statement_id: UUID) -> StatementModel:
        """draft -> generated."""
        statement = self.get_statement(statement_id, lock=True)
        self._transition(statement, "finalize")
        statement.generated_at = self.clock.now()
        self.session.flush()
        return statement

    def build_notification(
        self,
        statement: StatementModel,
        template: str = "default",
    ) -> StatementNotification:
        if statement.is_combined:
            label = statement.group_name or statement.entity_key
        elif statement.property_id is not None:
            prop = self.session.get(PropertyModel, statement.property_id)
            label = prop.name if prop is not None else statement.entity_key
        else:
            label = statement.entity_key
        return StatementNotification(
            statement_id=statement.id,
            owner_name=statement.owner_name or "Owner",
            owner_email=statement.owner_email,
            entity_label=label,
            period_start=statement.period_start,
            period_end=statement.period_end,
            owner_payout=round_money(to_decimal(statement.owner_payout)),
            template=template,
        )

    def send_statement(
        self,
        statement_id: UUID,
        template: str = "default",
        notifier: StatementNotifier | None = None,
    ) -> StatementModel:
        """
        Hand the statement to the notifier, then mark it sent.

        The transition is validated before delivery; a notifier failure
        propagates and leaves the status unchanged.
        """
        notifier = notifier or self.notifier
        if notifier is None:
            raise ValueError("send_statement requires a StatementNotifier")

        statement = self.get_statement(statement_id, lock=True)
        STATEMENT_WORKFLOW.apply(statement.status, "send", InvalidStatementTransitionError)

        notification = self.build_notification(statement, template)
        with LogContext.bind(statement_id=str(statement.id)):
            notifier.deliver(notification)
            self._transition(statement, "send")
            statement.sent_at = self.clock.now()
            logger.info(
                "statement_sent",
                extra={
                    "owner_email": statement.owner_email,
                    "subject": notification.subject,
                    "balance_due": notification.is_balance_due,
                },
            )
        self.session.flush()
        return statement

    def mark_paid(self, statement_id: UUID) -> StatementModel:
        statement = self.get_statement(statement_id, lock=True)
        self._transition(statement, "mark_paid")
        self.session.flush()
        return statement

    def apply_cancellation(
        self,
        statement_id: UUID,
        reservation_id: str,
        reason: str = "Reservation cancelled",
    ) -> StatementModel:
        """
        Reverse a reservation's contribution with a negative adjustment.

        Moves generated/sent statements to ``modified``; an already
        modified statement stays modified.  Applying the same cancellation
        twice is a no-op.
        """
        statement = self.get_statement(statement_id, lock=True)
        items = list(statement.items or [])
        reference = str(reservation_id)

        if any(i.get("type") == "adjustment" and i.get("reference") == reference for i in items):
            logger.info(
                "statement_cancellation_already_applied",
                extra={"statement_id": str(statement.id), "reservation_id": reference},
            )
            return statement

        revenue_items = [
            i for i in items if i.get("type") == "revenue" and i.get("reference") == reference
        ]
        if not revenue_items:
            raise EntityNotFoundError("reservation", reference)

        if statement.status != StatementStatus.MODIFIED.value:
            self._transition(statement, "adjust")

        contribution = sum(
            (Decimal(i.get("gross_payout", "0")) for i in revenue_items), ZERO,
        )
        amount = round_money(-contribution)
        items.append({
            "type": "adjustment",
            "reference": reference,
            "description": reason,
            "date": self.clock.today().isoformat(),
            "category": "cancellation",
            "amount": str(amount),
        })

        statement.items = items
        statement.adjustments = round_money(to_decimal(statement.adjustments) + amount)
        statement.owner_payout = round_money(to_decimal(statement.owner_payout) + amount)
        self.session.flush()

        logger.info(
            "statement_cancellation_applied",
            extra={
                "statement_id": str(statement.id),
                "reservation_id": reference,
                "adjustment": amount,
                "owner_payout": statement.owner_payout,
            },
        )
        return statement
