"""
ORM models for reservations and expenses (read-only inputs to generation).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.db.types import FlexibleBoolean, to_decimal
from payout_kernel.domain.dtos import ExpenseInput, ReservationInput, ReservationStatus


class ReservationModel(TrackedBase):
    """A guest stay at a property."""

    __tablename__ = "reservations"

    __table_args__ = (
        Index("ix_reservations_property_checkout", "property_id", "check_out"),
        Index("ix_reservations_property_checkin", "property_id", "check_in"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    check_in: Mapped[date] = mapped_column(nullable=False)
    check_out: Mapped[date] = mapped_column(nullable=False)
    nights: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    platform_fees: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_responsibility: Mapped[Decimal | None] = mapped_column(nullable=True)
    guest_cleaning_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_split: Mapped[bool] = mapped_column(FlexibleBoolean(), default=False, nullable=False)
    booked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self) -> ReservationInput:
        return ReservationInput(
            reservation_id=str(self.id),
            property_id=str(self.property_id),
            check_in=self.check_in,
            check_out=self.check_out,
            gross_amount=to_decimal(self.gross_amount),
            platform_fees=to_decimal(self.platform_fees),
            tax_responsibility=to_decimal(self.tax_responsibility),
            guest_cleaning_fee=to_decimal(self.guest_cleaning_fee),
            status=ReservationStatus(self.status.lower()),
            source=self.source or "",
            guest_name=self.guest_name,
            nights=self.nights,
            is_split=bool(self.is_split),
            booked_on=self.booked_at.date() if self.booked_at else None,
        )


class ExpenseModel(TrackedBase):
    """Expense or additional payout line booked against a property."""

    __tablename__ = "expenses"

    __table_args__ = (
        Index("ix_expenses_property_date", "property_id", "expense_date"),
    )

    property_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
    )
    expense_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expense_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    landlord_covered: Mapped[bool] = mapped_column(
        FlexibleBoolean(), default=False, nullable=False,
    )

    def to_dto(self) -> ExpenseInput:
        return ExpenseInput(
            expense_id=str(self.id),
            property_id=str(self.property_id) if self.property_id else None,
            expense_date=self.expense_date,
            amount=to_decimal(self.amount),
            description=self.description or "",
            vendor=self.vendor or "",
            category=self.category or "",
            expense_type=self.expense_type or "",
            landlord_covered=bool(self.landlord_covered),
        )
