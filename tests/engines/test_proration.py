"""
Tests for the Proration Calculator.

Covers:
- Checkout mode: full amount on the period containing checkout
- Calendar mode: night-weighted slices with cumulative rounding
- Zero-night and inverted stays
- Conservation and exclusivity properties (hypothesis)
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from payout_engines.proration import ProrationCalculator
from payout_kernel.domain.dtos import CalculationMode, ReservationInput


def _reservation(
    check_in: date,
    check_out: date,
    gross: str = "1000.00",
    tax: str = "0",
    cleaning: str = "0",
) -> ReservationInput:
    return ReservationInput(
        reservation_id="res-1",
        property_id="prop-1",
        check_in=check_in,
        check_out=check_out,
        gross_amount=Decimal(gross),
        tax_responsibility=Decimal(tax),
        guest_cleaning_fee=Decimal(cleaning),
    )


DECEMBER = (date(2025, 12, 1), date(2026, 1, 1))
JANUARY = (date(2026, 1, 1), date(2026, 2, 1))


class TestCalendarMode:
    """Night-weighted slices."""

    def setup_method(self):
        self.calc = ProrationCalculator()

    def _slice(self, reservation, period):
        return self.calc.slice(
            reservation=reservation,
            period_start=period[0],
            period_end=period[1],
            mode=CalculationMode.CALENDAR,
        )

    def test_year_end_stay_splits_by_nights(self):
        """Dec 28 - Jan 2: four December nights, one January night."""
        reservation = _reservation(date(2025, 12, 28), date(2026, 1, 2))

        december = self._slice(reservation, DECEMBER)
        january = self._slice(reservation, JANUARY)

        assert december.revenue == Decimal("800.00")
        assert january.revenue == Decimal("200.00")
        assert december.nights_in_period == 4
        assert january.nights_in_period == 1
        assert december.note == "4/5 nights in period"
        assert december.is_partial

    def test_tax_and_cleaning_follow_the_same_split(self):
        reservation = _reservation(
            date(2025, 12, 28), date(2026, 1, 2), tax="50.00", cleaning="125.00",
        )

        december = self._slice(reservation, DECEMBER)
        january = self._slice(reservation, JANUARY)

        assert december.tax_responsibility == Decimal("40.00")
        assert january.tax_responsibility == Decimal("10.00")
        assert december.guest_cleaning_fee + january.guest_cleaning_fee == Decimal("125.00")

    def test_thirds_do_not_leak_a_cent(self):
        reservation = _reservation(date(2025, 12, 30), date(2026, 1, 2), gross="100.00")

        december = self._slice(reservation, DECEMBER)
        january = self._slice(reservation, JANUARY)

        assert december.revenue == Decimal("66.67")
        assert january.revenue == Decimal("33.33")
        assert december.revenue + january.revenue == Decimal("100.00")

    def test_stay_inside_period_is_full(self):
        reservation = _reservation(date(2025, 12, 5), date(2025, 12, 9))

        result = self._slice(reservation, DECEMBER)

        assert result.revenue == Decimal("1000.00")
        assert result.factor == Decimal("1")
        assert not result.is_partial

    def test_stay_outside_period_is_zero(self):
        reservation = _reservation(date(2026, 2, 5), date(2026, 2, 9))

        result = self._slice(reservation, DECEMBER)

        assert result.is_empty
        assert result.revenue == Decimal("0.00")

    def test_checkout_day_is_not_a_night(self):
        """A stay ending on the first of the month has no nights in it."""
        reservation = _reservation(date(2025, 12, 29), date(2026, 1, 1))

        assert self._slice(reservation, JANUARY).is_empty
        assert self._slice(reservation, DECEMBER).revenue == Decimal("1000.00")

    def test_zero_night_stay_belongs_to_its_date(self):
        reservation = _reservation(date(2025, 12, 31), date(2025, 12, 31))

        assert self._slice(reservation, DECEMBER).revenue == Decimal("1000.00")
        assert self._slice(reservation, JANUARY).is_empty


class TestCheckoutMode:
    """Full amount on the period containing checkout."""

    def setup_method(self):
        self.calc = ProrationCalculator()

    def test_full_amount_in_checkout_period(self):
        reservation = _reservation(date(2025, 12, 28), date(2026, 1, 2))

        december = self.calc.slice(
            reservation=reservation, period_start=DECEMBER[0],
            period_end=DECEMBER[1], mode=CalculationMode.CHECKOUT,
        )
        january = self.calc.slice(
            reservation=reservation, period_start=JANUARY[0],
            period_end=JANUARY[1], mode=CalculationMode.CHECKOUT,
        )

        assert december.revenue == Decimal("0.00")
        assert january.revenue == Decimal("1000.00")


class TestMalformedInput:
    """Calculators return zero slices rather than raising."""

    def setup_method(self):
        self.calc = ProrationCalculator()

    def test_inverted_stay_is_zero(self, captured_logs):
        reservation = _reservation(date(2026, 1, 5), date(2026, 1, 2))

        result = self.calc.slice(
            reservation=reservation, period_start=JANUARY[0],
            period_end=JANUARY[1], mode=CalculationMode.CALENDAR,
        )

        assert result.is_empty
        assert any(r["message"] == "proration_inverted_stay" for r in captured_logs())

    def test_inverted_period_is_zero(self):
        reservation = _reservation(date(2026, 1, 5), date(2026, 1, 8))

        result = self.calc.slice(
            reservation=reservation, period_start=JANUARY[1],
            period_end=JANUARY[0], mode=CalculationMode.CALENDAR,
        )

        assert result.is_empty

    def test_engine_call_is_traced(self, captured_logs):
        reservation = _reservation(date(2026, 1, 5), date(2026, 1, 8))

        self.calc.slice(
            reservation=reservation, period_start=JANUARY[0],
            period_end=JANUARY[1], mode=CalculationMode.CHECKOUT,
        )

        traces = [r for r in captured_logs() if r["message"] == "PAYOUT_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "proration"


# =============================================================================
# Properties
# =============================================================================

amounts = st.decimals(
    min_value=Decimal("0.00"), max_value=Decimal("100000.00"), places=2,
    allow_nan=False, allow_infinity=False,
)


class TestProrationProperties:

    @settings(max_examples=200, deadline=None)
    @given(
        gross=amounts,
        nights=st.integers(min_value=1, max_value=60),
        offset=st.integers(min_value=0, max_value=60),
        split=st.integers(min_value=-10, max_value=70),
    )
    def test_adjacent_periods_sum_to_total(self, gross, nights, offset, split):
        check_in = date(2026, 3, 1) + timedelta(days=offset)
        reservation = ReservationInput(
            reservation_id="r", property_id="p",
            check_in=check_in, check_out=check_in + timedelta(days=nights),
            gross_amount=gross,
        )
        boundary = check_in + timedelta(days=split)
        calc = ProrationCalculator()

        first = calc.slice(
            reservation=reservation, period_start=date(2026, 1, 1),
            period_end=boundary, mode=CalculationMode.CALENDAR,
        )
        second = calc.slice(
            reservation=reservation, period_start=boundary,
            period_end=date(2027, 1, 1), mode=CalculationMode.CALENDAR,
        )

        assert first.revenue + second.revenue == gross

    @settings(max_examples=200, deadline=None)
    @given(
        nights=st.integers(min_value=0, max_value=40),
        offset=st.integers(min_value=0, max_value=80),
        period_days=st.integers(min_value=1, max_value=31),
    )
    def test_checkout_mode_picks_exactly_one_period(self, nights, offset, period_days):
        check_in = date(2026, 1, 1) + timedelta(days=offset)
        reservation = ReservationInput(
            reservation_id="r", property_id="p",
            check_in=check_in, check_out=check_in + timedelta(days=nights),
            gross_amount=Decimal("250.00"),
        )
        calc = ProrationCalculator()

        start = date(2026, 1, 1)
        slices = []
        while start < date(2026, 6, 1):
            end = start + timedelta(days=period_days)
            slices.append(calc.slice(
                reservation=reservation, period_start=start,
                period_end=end, mode=CalculationMode.CHECKOUT,
            ))
            start = end

        full = [s for s in slices if s.revenue == Decimal("250.00")]
        assert len(full) == 1
        assert all(s.revenue == Decimal("0.00") for s in slices if s not in full)
