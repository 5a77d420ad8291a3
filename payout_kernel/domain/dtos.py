"""
Domain DTOs shared by the calculators and the services.

Frozen dataclasses and str enums only.  ORM models convert themselves into
these with ``to_dto()`` so the pure engines never see a Session or a
loosely-typed column value.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class CalculationMode(str, Enum):
    """How reservation revenue is attributed to a statement period."""

    CHECKOUT = "checkout"  # Full amount on the period containing checkout
    CALENDAR = "calendar"  # Prorated by nights inside the period


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MODIFIED = "modified"
    NEW = "new"
    ACCEPTED = "accepted"


class StatementStatus(str, Enum):
    """Statement document lifecycle (see STATEMENT_WORKFLOW)."""

    DRAFT = "draft"
    GENERATED = "generated"
    SENT = "sent"
    PAID = "paid"
    MODIFIED = "modified"


class PayoutStatus(str, Enum):
    """Payout lifecycle, independent of the document status (see PAYOUT_WORKFLOW)."""

    NONE = "none"
    PENDING = "pending"
    QUEUED = "queued"
    TRANSFERRED = "transferred"
    FAILED = "failed"
    TOPUP_FAILED = "topup_failed"
    ABANDONED = "abandoned"


class ExpenseKind(str, Enum):
    DEDUCTION = "deduction"
    ADDITIONAL_PAYOUT = "additional_payout"
    LANDLORD_COVERED = "landlord_covered"
    SKIPPED_PASSTHROUGH = "skipped_passthrough"


@dataclass(frozen=True)
class ReservationInput:
    """Billing-relevant snapshot of one reservation.

    ``gross_amount`` is the client revenue after platform fees.
    """

    reservation_id: str
    property_id: str
    check_in: date
    check_out: date
    gross_amount: Decimal
    platform_fees: Decimal = Decimal("0")
    tax_responsibility: Decimal = Decimal("0")
    guest_cleaning_fee: Decimal = Decimal("0")
    status: ReservationStatus = ReservationStatus.CONFIRMED
    source: str = ""
    guest_name: str | None = None
    nights: int | None = None
    is_split: bool = False
    booked_on: date | None = None

    @property
    def total_nights(self) -> int:
        return (self.check_out - self.check_in).days


@dataclass(frozen=True)
class PropertyBilling:
    """Fee configuration of a property as of statement generation time."""

    property_id: str
    name: str
    owner_name: str | None = None
    commission_percent: Decimal | None = None
    new_fee_percent: Decimal | None = None
    new_fee_effective_from: date | None = None
    cohost_percent: Decimal | None = None
    cohost_fixed_fee: Decimal | None = None
    tech_fee: Decimal | None = None
    insurance_fee: Decimal | None = None
    waiver_enabled: bool = False
    waiver_expires_on: date | None = None
    cohost_on_external_platform: bool = False
    cleaning_fee_pass_through: bool = False
    disregard_tax: bool = False
    pass_through_platform_tax: bool = False
    destination_account: str | None = None
    group_id: UUID | None = None


@dataclass(frozen=True)
class ExpenseInput:
    """One expense or additional-payout row.

    Negative amounts are costs; positive amounts are paid to the owner.
    """

    expense_id: str
    property_id: str | None
    expense_date: date
    amount: Decimal
    description: str = ""
    vendor: str = ""
    category: str = ""
    expense_type: str = ""
    landlord_covered: bool = False
