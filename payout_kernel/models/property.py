"""
ORM models for properties and listing groups.

Contract:
    PropertyModel holds the billing-relevant subset of a managed listing;
    ListingGroupModel merges several properties into one combined statement
    and may override their transfer account.  Both are edited by operators
    and only read by statement generation.

Invariants enforced:
    - Boolean fee flags are FlexibleBoolean columns, so the domain DTO
      always carries strict bools regardless of how a row was imported.
    - ListingGroup names are unique.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.db.types import FlexibleBoolean
from payout_kernel.domain.dtos import CalculationMode, PropertyBilling


def split_tags(raw: str | None) -> list[str]:
    """Comma-separated tag column -> trimmed, non-empty tags."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def has_tag(raw: str | None, tag_name: str) -> bool:
    """Case-insensitive tag membership."""
    wanted = tag_name.strip().lower()
    return any(t.lower() == wanted for t in split_tags(raw))


class ListingGroupModel(TrackedBase):
    """Properties reported together on one combined statement."""

    __tablename__ = "listing_groups"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculation_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    destination_account: Mapped[str | None] = mapped_column(String(200), nullable=True)

    members: Mapped[list["PropertyModel"]] = relationship(
        "PropertyModel",
        back_populates="group",
        order_by="PropertyModel.name",
    )

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)

    @property
    def mode(self) -> CalculationMode | None:
        return CalculationMode(self.calculation_mode) if self.calculation_mode else None


class PropertyModel(TrackedBase):
    """Billing configuration of a managed property."""

    __tablename__ = "properties"

    __table_args__ = (
        Index("ix_properties_group", "group_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    owner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    owner_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(FlexibleBoolean(), default=True, nullable=False)

    commission_percent: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    new_fee_enabled: Mapped[bool] = mapped_column(FlexibleBoolean(), default=False, nullable=False)
    new_fee_percent: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    new_fee_effective_from: Mapped[date | None] = mapped_column(nullable=True)

    cohost_percent: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    cohost_fixed_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    cohost_partner: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tech_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    insurance_fee: Mapped[Decimal | None] = mapped_column(nullable=True)

    waive_commission: Mapped[bool] = mapped_column(FlexibleBoolean(), default=False, nullable=False)
    waive_commission_until: Mapped[date | None] = mapped_column(nullable=True)
    cohost_on_external_platform: Mapped[bool] = mapped_column(
        FlexibleBoolean(), default=False, nullable=False,
    )
    cleaning_fee_pass_through: Mapped[bool] = mapped_column(
        FlexibleBoolean(), default=False, nullable=False,
    )
    disregard_tax: Mapped[bool] = mapped_column(FlexibleBoolean(), default=False, nullable=False)
    pass_through_platform_tax: Mapped[bool] = mapped_column(
        FlexibleBoolean(), default=False, nullable=False,
    )

    destination_account: Mapped[str | None] = mapped_column(String(200), nullable=True)

    group_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("listing_groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    group: Mapped[ListingGroupModel | None] = relationship(
        "ListingGroupModel",
        back_populates="members",
    )

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)

    def to_dto(self) -> PropertyBilling:
        new_fee_active = bool(self.new_fee_enabled) and self.new_fee_percent is not None
        return PropertyBilling(
            property_id=str(self.id),
            name=self.name,
            owner_name=self.owner_name,
            commission_percent=self.commission_percent,
            new_fee_percent=self.new_fee_percent if new_fee_active else None,
            new_fee_effective_from=self.new_fee_effective_from if new_fee_active else None,
            cohost_percent=self.cohost_percent,
            cohost_fixed_fee=self.cohost_fixed_fee,
            tech_fee=self.tech_fee,
            insurance_fee=self.insurance_fee,
            waiver_enabled=bool(self.waive_commission),
            waiver_expires_on=self.waive_commission_until,
            cohost_on_external_platform=bool(self.cohost_on_external_platform),
            cleaning_fee_pass_through=bool(self.cleaning_fee_pass_through),
            disregard_tax=bool(self.disregard_tax),
            pass_through_platform_tax=bool(self.pass_through_platform_tax),
            destination_account=self.destination_account,
            group_id=self.group_id,
        )
