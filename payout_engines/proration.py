"""
Module: payout_engines.proration
Responsibility:
    Attribute a reservation's money to a statement period, either in full
    (checkout mode) or weighted by the nights that fall inside the period
    (calendar mode).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only payout_kernel domain types and money helpers.

Invariants enforced:
    - Conservation: under calendar mode the slices of a reservation over
      any partition of time into adjacent periods sum exactly to the
      reservation's (cent-precise) amount.  Each slice is the difference
      of two cumulative roundings, so per-period rounding never leaks a
      cent.
    - Exclusivity: under checkout mode exactly one period of a partition
      receives the full amount; all others receive zero.
    - Purity: same reservation + period always yields the same slice.

Failure modes:
    - None raised.  A checkout earlier than check-in, or an empty/inverted
      period, yields a zero slice and a warning.

Usage:
    from payout_engines.proration import ProrationCalculator

    calc = ProrationCalculator()
    part = calc.slice(
        reservation=reservation,
        period_start=date(2025, 12, 1),
        period_end=date(2026, 1, 1),      # exclusive
        mode=CalculationMode.CALENDAR,
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payout_engines.tracer import traced_engine
from payout_kernel.db.types import ZERO, round_money
from payout_kernel.domain.dtos import CalculationMode, ReservationInput
from payout_kernel.logging_config import get_logger

logger = get_logger("engines.proration")


@dataclass(frozen=True)
class ProrationSlice:
    """
    Money of one reservation attributed to one period.

    ``factor`` is informational (nights_in_period / total_nights); the
    amounts are computed by cumulative rounding, not by multiplying with
    the rounded factor.
    """

    reservation_id: str
    mode: CalculationMode
    nights_in_period: int
    total_nights: int
    factor: Decimal
    revenue: Decimal
    tax_responsibility: Decimal
    guest_cleaning_fee: Decimal
    platform_fees: Decimal

    @property
    def is_empty(self) -> bool:
        return self.factor == ZERO

    @property
    def is_partial(self) -> bool:
        return ZERO < self.factor < Decimal("1")

    @property
    def note(self) -> str:
        return f"{self.nights_in_period}/{self.total_nights} nights in period"


def _cumulative(amount: Decimal, nights_elapsed: int, total_nights: int) -> Decimal:
    """Rounded share of ``amount`` earned after ``nights_elapsed`` nights."""
    if nights_elapsed <= 0:
        return ZERO
    if nights_elapsed >= total_nights:
        return round_money(amount)
    return round_money(amount * nights_elapsed / total_nights)


class ProrationCalculator:
    """
    Splits reservation money across statement periods.

    Contract:
        Periods are half-open ``[period_start, period_end)``.  A night is
        identified by the date it begins on, so a stay from Dec 28 to
        Jan 2 has nights Dec 28..Jan 1.
    Guarantees:
        - Slices are always rounded to cents and never negative zero.
    Non-goals:
        - Does not filter by reservation status; the aggregator does.
    """

    @traced_engine(
        "proration", "1.0",
        fingerprint_fields=("reservation", "period_start", "period_end", "mode"),
    )
    def slice(
        self,
        *,
        reservation: ReservationInput,
        period_start: date,
        period_end: date,
        mode: CalculationMode,
    ) -> ProrationSlice:
        total_nights = reservation.total_nights

        if period_end <= period_start:
            logger.warning(
                "proration_empty_period",
                extra={
                    "reservation_id": reservation.reservation_id,
                    "period_start": period_start,
                    "period_end": period_end,
                },
            )
            return self._zero(reservation, mode, max(total_nights, 0))

        if total_nights < 0:
            logger.warning(
                "proration_inverted_stay",
                extra={
                    "reservation_id": reservation.reservation_id,
                    "check_in": reservation.check_in,
                    "check_out": reservation.check_out,
                },
            )
            return self._zero(reservation, mode, 0)

        match mode:
            case CalculationMode.CHECKOUT:
                return self._checkout(reservation, period_start, period_end)
            case CalculationMode.CALENDAR:
                if total_nights == 0:
                    return self._single_day(reservation, period_start, period_end)
                return self._calendar(reservation, period_start, period_end)
            case _:
                raise ValueError(f"Unknown calculation mode: {mode}")

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def _checkout(
        self, reservation: ReservationInput, period_start: date, period_end: date,
    ) -> ProrationSlice:
        if period_start <= reservation.check_out < period_end:
            return self._full(reservation, CalculationMode.CHECKOUT)
        return self._zero(reservation, CalculationMode.CHECKOUT, reservation.total_nights)

    def _single_day(
        self, reservation: ReservationInput, period_start: date, period_end: date,
    ) -> ProrationSlice:
        # Zero-night stay belongs wholly to the period containing its date.
        if period_start <= reservation.check_in < period_end:
            return self._full(reservation, CalculationMode.CALENDAR)
        return self._zero(reservation, CalculationMode.CALENDAR, 0)

    def _calendar(
        self, reservation: ReservationInput, period_start: date, period_end: date,
    ) -> ProrationSlice:
        total = reservation.total_nights
        before_start = min(max((period_start - reservation.check_in).days, 0), total)
        before_end = min(max((period_end - reservation.check_in).days, 0), total)
        nights_in = before_end - before_start

        if nights_in == 0:
            return self._zero(reservation, CalculationMode.CALENDAR, total)

        def part(amount: Decimal) -> Decimal:
            return round_money(
                _cumulative(amount, before_end, total)
                - _cumulative(amount, before_start, total)
            )

        return ProrationSlice(
            reservation_id=reservation.reservation_id,
            mode=CalculationMode.CALENDAR,
            nights_in_period=nights_in,
            total_nights=total,
            factor=Decimal(nights_in) / Decimal(total),
            revenue=part(reservation.gross_amount),
            tax_responsibility=part(reservation.tax_responsibility),
            guest_cleaning_fee=part(reservation.guest_cleaning_fee),
            platform_fees=part(reservation.platform_fees),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _full(reservation: ReservationInput, mode: CalculationMode) -> ProrationSlice:
        return ProrationSlice(
            reservation_id=reservation.reservation_id,
            mode=mode,
            nights_in_period=reservation.total_nights,
            total_nights=reservation.total_nights,
            factor=Decimal("1"),
            revenue=round_money(reservation.gross_amount),
            tax_responsibility=round_money(reservation.tax_responsibility),
            guest_cleaning_fee=round_money(reservation.guest_cleaning_fee),
            platform_fees=round_money(reservation.platform_fees),
        )

    @staticmethod
    def _zero(
        reservation: ReservationInput, mode: CalculationMode, total_nights: int,
    ) -> ProrationSlice:
        zero = round_money(ZERO)
        return ProrationSlice(
            reservation_id=reservation.reservation_id,
            mode=mode,
            nights_in_period=0,
            total_nights=total_nights,
            factor=ZERO,
            revenue=zero,
            tax_responsibility=zero,
            guest_cleaning_fee=zero,
            platform_fees=zero,
        )
