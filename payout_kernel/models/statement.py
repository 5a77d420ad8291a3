"""
ORM model for owner statements.

Contract:
    One row per (entity, period).  The entity is a single property
    (``property:<uuid>``) or a listing group (``group:<uuid>``).  Totals
    and line items are written by the statement aggregator; document
    status and payout status are advanced only through their workflows.

Invariants enforced:
    - UNIQUE (entity_key, period_start, period_end): regeneration can only
      update the existing row, never add a second one.
    - Rows are never deleted.  Cancellations append negative adjustment
      items instead.
    - ``period_end`` is the inclusive last day of the period.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.db.types import FlexibleBoolean
from payout_kernel.domain.dtos import (
    CalculationMode,
    PayoutStatus,
    StatementStatus,
)


def property_entity_key(property_id: UUID | str) -> str:
    return f"property:{property_id}"


def group_entity_key(group_id: UUID | str) -> str:
    return f"group:{group_id}"


class StatementModel(TrackedBase):
    """Owner payout statement for one property or group over one period."""

    __tablename__ = "statements"

    __table_args__ = (
        UniqueConstraint(
            "entity_key", "period_start", "period_end",
            name="uq_statement_entity_period",
        ),
        Index("ix_statements_status", "status"),
        Index("ix_statements_payout_status", "payout_status"),
        Index("ix_statements_period", "period_start", "period_end"),
    )

    entity_key: Mapped[str] = mapped_column(String(100), nullable=False)
    property_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    group_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_combined: Mapped[bool] = mapped_column(FlexibleBoolean(), default=False, nullable=False)
    group_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    group_tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    property_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    owner_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)
    calculation_mode: Mapped[str] = mapped_column(
        String(20), default=CalculationMode.CHECKOUT.value, nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), default=StatementStatus.DRAFT.value, nullable=False,
    )

    total_revenue: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_expenses: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_additional_payouts: Mapped[Decimal] = mapped_column(
        default=Decimal("0"), nullable=False,
    )
    total_commission: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_commission_deducted: Mapped[Decimal] = mapped_column(
        default=Decimal("0"), nullable=False,
    )
    commission_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_tax: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_cleaning_fee: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    gross_payout: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    tech_fees: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    insurance_fees: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    adjustments: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    owner_payout: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    commission_waived: Mapped[bool] = mapped_column(
        FlexibleBoolean(), default=False, nullable=False,
    )

    items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    payout_status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.NONE.value, nullable=False,
    )
    payout_destination: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payout_transfer_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payout_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    payout_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transfer_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_transfer_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def status_enum(self) -> StatementStatus:
        return StatementStatus(self.status)

    @property
    def payout_status_enum(self) -> PayoutStatus:
        return PayoutStatus(self.payout_status)

    @property
    def mode(self) -> CalculationMode:
        return CalculationMode(self.calculation_mode)

    def __repr__(self) -> str:
        return (
            f"<Statement {self.entity_key} {self.period_start}..{self.period_end} "
            f"{self.status}/{self.payout_status} payout={self.owner_payout}>"
        )
