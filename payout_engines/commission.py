"""
Module: payout_engines.commission
Responsibility:
    Compute the gross payout of a reservation slice from revenue, the
    commission percentage, commission waivers, tax responsibility and
    pass-through cleaning costs.  Also resolves which commission
    percentage applies (new-fee transition) and the pass-through cleaning
    fee charged for a stay.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Commission is always computed and returned, even when a waiver sets
      the deducted amount to zero.
    - Waiver monotonicity: with a fixed expiry, a waiver active for
      period-end D is active for every earlier period-end and inactive for
      every period-end after the expiry.
    - No division by zero: a fee percentage of -100 yields a zero
      cleaning pass-through instead of raising.
    - Outputs are rounded to cents and never negative zero.

Failure modes:
    - MissingFeeConfigurationError from ``resolve_fee_percent`` when the
      property has no percentage and no default is allowed.

Usage:
    calc = CommissionCalculator()
    result = calc.calculate(
        revenue=Decimal("1000.00"),
        fee_percent=Decimal("10"),
        period_end=date(2026, 1, 31),
        waiver_enabled=True,
    )
    result.gross_payout   # Decimal("1000.00")
    result.commission     # Decimal("100.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, Decimal

from payout_engines.tracer import traced_engine
from payout_kernel.db.types import ZERO, coerce_flag, round_money
from payout_kernel.domain.dtos import PropertyBilling
from payout_kernel.exceptions import MissingFeeConfigurationError
from payout_kernel.logging_config import get_logger

logger = get_logger("engines.commission")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionResult:
    """Outcome of one commission calculation."""

    gross_payout: Decimal
    commission: Decimal
    commission_deducted: Decimal
    waiver_active: bool
    tax_added: Decimal = ZERO


def is_waiver_active(
    waiver_enabled: bool | str | int | None,
    waiver_expires_on: date | None,
    period_end: date,
) -> bool:
    """
    Waiver applies when enabled and the period ends on or before expiry.

    The expiry date is inclusive through its end of day.  A waiver with no
    expiry stays active indefinitely.
    """
    if not coerce_flag(waiver_enabled):
        return False
    if waiver_expires_on is None:
        logger.warning(
            "commission_waiver_without_expiry",
            extra={"period_end": period_end},
        )
        return True
    return period_end <= waiver_expires_on


def should_add_tax(
    disregard_tax: bool | str | int | None,
    is_platform_booking: bool | str | int | None,
    pass_through_platform_tax: bool | str | int | None,
) -> bool:
    """Platform bookings remit their own tax unless the property passes it through."""
    if coerce_flag(disregard_tax):
        return False
    return not coerce_flag(is_platform_booking) or coerce_flag(pass_through_platform_tax)


def resolve_fee_percent(
    billing: PropertyBilling,
    booked_on: date | None,
    default_percent: Decimal | None = None,
) -> Decimal:
    """
    Commission percentage for a reservation of ``billing``.

    Reservations booked on or after ``new_fee_effective_from`` use
    ``new_fee_percent``; everything else uses the base percentage.
    """
    if (
        billing.new_fee_percent is not None
        and billing.new_fee_effective_from is not None
        and booked_on is not None
        and booked_on >= billing.new_fee_effective_from
    ):
        return billing.new_fee_percent
    if billing.commission_percent is not None:
        return billing.commission_percent
    if default_percent is not None:
        return default_percent
    raise MissingFeeConfigurationError(billing.property_id, billing.name)


def cleaning_passthrough_fee(
    guest_paid_cleaning: Decimal,
    fee_percent: Decimal,
    increment: Decimal = Decimal("5"),
) -> Decimal:
    """
    Cleaning cost recovered from the owner for a pass-through property.

    The guest-paid fee includes the commission markup; strip it and round
    up to the next ``increment``.
    """
    divisor = Decimal("1") + fee_percent / HUNDRED
    if guest_paid_cleaning <= ZERO or divisor <= ZERO or increment <= ZERO:
        return round_money(ZERO)
    base = guest_paid_cleaning / divisor
    steps = (base / increment).to_integral_value(rounding=ROUND_CEILING)
    return round_money(steps * increment)


def apply_cohost_share(
    revenue: Decimal,
    cohost_percent: Decimal | None,
    cohost_fixed_fee: Decimal | None,
) -> Decimal:
    """Revenue left after a co-hosting partner takes its share."""
    if cohost_percent is None:
        return revenue
    adjusted = revenue * cohost_percent / HUNDRED
    if cohost_fixed_fee:
        adjusted -= cohost_fixed_fee
    return round_money(adjusted)


class CommissionCalculator:
    """
    Commission & fee calculator.

    Contract:
        ``calculate`` is pure; the same inputs always give the same result.
    Guarantees:
        - ``commission == round(revenue * fee_percent / 100)`` regardless
          of waiver state.
        - Co-hosted platform bookings settle only commission and
          pass-through costs; revenue is not included.
    """

    @traced_engine(
        "commission", "1.0",
        fingerprint_fields=(
            "revenue", "fee_percent", "tax_responsibility",
            "passthrough_cleaning_fee", "is_cohost_external",
            "add_tax", "waiver_enabled", "waiver_expires_on", "period_end",
        ),
    )
    def calculate(
        self,
        *,
        revenue: Decimal,
        fee_percent: Decimal,
        period_end: date,
        tax_responsibility: Decimal = ZERO,
        passthrough_cleaning_fee: Decimal = ZERO,
        is_cohost_external: bool = False,
        add_tax: bool = False,
        waiver_enabled: bool = False,
        waiver_expires_on: date | None = None,
    ) -> CommissionResult:
        commission = round_money(revenue * fee_percent / HUNDRED)
        waiver_active = is_waiver_active(waiver_enabled, waiver_expires_on, period_end)
        deducted = round_money(ZERO) if waiver_active else commission
        tax_added = round_money(ZERO)

        if is_cohost_external:
            gross = -deducted - passthrough_cleaning_fee
        elif add_tax:
            tax_added = round_money(tax_responsibility)
            gross = revenue - deducted + tax_added - passthrough_cleaning_fee
        else:
            gross = revenue - deducted - passthrough_cleaning_fee

        return CommissionResult(
            gross_payout=round_money(gross),
            commission=commission,
            commission_deducted=deducted,
            waiver_active=waiver_active,
            tax_added=tax_added,
        )
