"""
Tests for pure schedule evaluation (payout_scheduler.domain.schedule).

Covers:
- Weekly, biweekly and monthly occurrences
- Due-time evaluation and missed-occurrence coalescing
- Skip dates
- Statement periods per frequency
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payout_kernel.exceptions import InvalidScheduleConfigurationError
from payout_scheduler.domain.schedule import (
    add_skip_date,
    align_timezone,
    fire_decision,
    is_due,
    next_occurrence,
    occurs_on,
    parse_time_of_day,
    remove_skip_date,
    statement_period,
    sunday_based_weekday,
    validate_spec,
)
from payout_scheduler.domain.types import ScheduleFrequency, StatementPeriod, TagScheduleSpec

ANCHOR = date(2026, 1, 19)  # a Monday


def _weekly(day_of_week: int = 1, **fields) -> TagScheduleSpec:
    return TagScheduleSpec(
        tag_name="weekly-owners",
        frequency=ScheduleFrequency.WEEKLY,
        day_of_week=day_of_week,
        **fields,
    )


def _biweekly(anchor: date = ANCHOR, **fields) -> TagScheduleSpec:
    return TagScheduleSpec(
        tag_name="biweekly-owners",
        frequency=ScheduleFrequency.BIWEEKLY,
        biweekly_anchor=anchor,
        **fields,
    )


def _monthly(day_of_month: int, **fields) -> TagScheduleSpec:
    return TagScheduleSpec(
        tag_name="monthly-owners",
        frequency=ScheduleFrequency.MONTHLY,
        day_of_month=day_of_month,
        **fields,
    )


# =============================================================================
# Validation and parsing
# =============================================================================


class TestValidation:

    def test_weekly_needs_day_of_week(self):
        with pytest.raises(InvalidScheduleConfigurationError):
            validate_spec(TagScheduleSpec("t", ScheduleFrequency.WEEKLY))

    def test_monthly_day_range(self):
        with pytest.raises(InvalidScheduleConfigurationError):
            validate_spec(_monthly(32))

    def test_biweekly_needs_anchor(self):
        with pytest.raises(InvalidScheduleConfigurationError):
            validate_spec(TagScheduleSpec("t", ScheduleFrequency.BIWEEKLY))

    def test_period_days_positive(self):
        with pytest.raises(InvalidScheduleConfigurationError):
            validate_spec(_weekly(period_days=0))

    def test_parse_time_of_day(self):
        assert parse_time_of_day("07:30") == time(7, 30)
        with pytest.raises(ValueError):
            parse_time_of_day("25:00")
        with pytest.raises(ValueError):
            parse_time_of_day("9am")

    def test_sunday_is_zero(self):
        assert sunday_based_weekday(date(2026, 1, 18)) == 0  # Sunday
        assert sunday_based_weekday(date(2026, 1, 19)) == 1  # Monday


# =============================================================================
# Occurrences
# =============================================================================


class TestBiweekly:

    @pytest.mark.parametrize("days", [14, 28, 42])
    def test_due_on_whole_fortnights(self, days):
        now = datetime.combine(ANCHOR + timedelta(days=days), time(9, 0))
        assert is_due(_biweekly(), now)

    @pytest.mark.parametrize("days", [7, 21])
    def test_not_due_on_off_weeks(self, days):
        now = datetime.combine(ANCHOR + timedelta(days=days), time(9, 0))
        assert not is_due(_biweekly(), now)

    def test_alternating_anchors_never_share_a_day(self):
        first = _biweekly(ANCHOR)
        second = _biweekly(ANCHOR + timedelta(days=7))
        for offset in range(0, 120):
            day = ANCHOR + timedelta(days=offset)
            assert not (occurs_on(first, day) and occurs_on(second, day))

    def test_days_before_anchor_also_step(self):
        assert occurs_on(_biweekly(), ANCHOR - timedelta(days=14))


class TestMonthly:

    def test_clamped_to_short_month(self):
        spec = _monthly(31)
        assert occurs_on(spec, date(2026, 2, 28))
        assert occurs_on(spec, date(2026, 4, 30))
        assert not occurs_on(spec, date(2026, 3, 30))
        assert occurs_on(spec, date(2026, 3, 31))

    def test_next_occurrence_after_february(self):
        spec = _monthly(30)
        after = datetime(2026, 2, 28, 10, 0)
        assert next_occurrence(spec, after) == datetime(2026, 3, 30, 9, 0)


class TestNextOccurrence:

    def test_strictly_after(self):
        spec = _weekly(1)  # Monday
        monday_nine = datetime(2026, 1, 19, 9, 0)
        assert next_occurrence(spec, monday_nine) == datetime(2026, 1, 26, 9, 0)
        assert next_occurrence(spec, monday_nine - timedelta(minutes=1)) == monday_nine

    def test_keeps_timezone(self):
        spec = _weekly(1)
        after = datetime(2026, 1, 18, 12, 0, tzinfo=timezone.utc)
        assert next_occurrence(spec, after).tzinfo is timezone.utc

    @settings(max_examples=150, deadline=None)
    @given(
        offset_minutes=st.integers(min_value=0, max_value=60 * 24 * 90),
        day_of_month=st.integers(min_value=1, max_value=31),
    )
    def test_monthly_next_is_an_occurrence_after_now(self, offset_minutes, day_of_month):
        spec = _monthly(day_of_month)
        now = datetime(2026, 1, 1) + timedelta(minutes=offset_minutes)

        following = next_occurrence(spec, now)

        assert following > now
        assert occurs_on(spec, following.date())
        assert following - now <= timedelta(days=32)


# =============================================================================
# Fire decisions
# =============================================================================


class TestFireDecision:

    def test_disabled_never_fires(self):
        decision = fire_decision(_weekly(enabled=False), datetime(2026, 1, 19, 10, 0))
        assert not decision.due
        assert decision.reason == "disabled"

    def test_first_evaluation_fires_after_time_of_day(self):
        spec = _weekly(1)
        assert not fire_decision(spec, datetime(2026, 1, 19, 8, 59)).due

        decision = fire_decision(spec, datetime(2026, 1, 19, 9, 0))

        assert decision.due
        assert decision.occurrence == datetime(2026, 1, 19, 9, 0)
        assert decision.next_scheduled_at == datetime(2026, 1, 26, 9, 0)

    def test_missed_occurrences_coalesce(self):
        """Three weeks of downtime fire once and advance past now."""
        spec = _weekly(1, next_scheduled_at=datetime(2026, 1, 19, 9, 0))
        now = datetime(2026, 2, 11, 15, 0)

        decision = fire_decision(spec, now)

        assert decision.due
        assert decision.occurrence == datetime(2026, 1, 19, 9, 0)
        assert decision.next_scheduled_at == datetime(2026, 2, 16, 9, 0)

    def test_future_next_scheduled_is_not_due(self):
        spec = _weekly(1, next_scheduled_at=datetime(2026, 1, 26, 9, 0))
        decision = fire_decision(spec, datetime(2026, 1, 19, 9, 30))
        assert not decision.due
        assert decision.next_scheduled_at == datetime(2026, 1, 26, 9, 0)

    def test_skip_date_still_advances(self):
        spec = _weekly(
            1,
            next_scheduled_at=datetime(2026, 1, 19, 9, 0),
            skip_dates=(date(2026, 1, 19),),
        )

        decision = fire_decision(spec, datetime(2026, 1, 19, 9, 0))

        assert decision.due
        assert decision.skip
        assert decision.reason == "skip_date"
        assert decision.next_scheduled_at == datetime(2026, 1, 26, 9, 0)


class TestSkipDates:

    def test_add_is_sorted_and_unique(self):
        days = add_skip_date((date(2026, 3, 1),), date(2026, 2, 1))
        days = add_skip_date(days, date(2026, 3, 1))
        assert days == (date(2026, 2, 1), date(2026, 3, 1))

    def test_remove(self):
        days = remove_skip_date((date(2026, 2, 1), date(2026, 3, 1)), date(2026, 2, 1))
        assert days == (date(2026, 3, 1),)
        assert remove_skip_date(days, date(2030, 1, 1)) == days


# =============================================================================
# Statement periods
# =============================================================================


class TestStatementPeriod:

    def test_weekly_ends_on_previous_sunday(self):
        period = statement_period(_weekly(1), date(2026, 1, 19))  # Monday
        assert period == StatementPeriod(date(2026, 1, 12), date(2026, 1, 18))
        assert period.days == 7

    def test_weekly_on_sunday_includes_that_day(self):
        period = statement_period(_weekly(0), date(2026, 1, 18))
        assert period.end == date(2026, 1, 18)

    def test_biweekly_covers_fourteen_days(self):
        period = statement_period(_biweekly(), date(2026, 2, 2))
        assert period == StatementPeriod(date(2026, 1, 19), date(2026, 2, 1))
        assert period.days == 14

    def test_monthly_is_previous_month(self):
        period = statement_period(_monthly(1), date(2026, 3, 1))
        assert period == StatementPeriod(date(2026, 2, 1), date(2026, 2, 28))

    def test_period_days_override(self):
        period = statement_period(_monthly(5, period_days=10), date(2026, 3, 5))
        assert period == StatementPeriod(date(2026, 2, 23), date(2026, 3, 4))
        assert period.days == 10


class TestAlignTimezone:

    def test_naive_value_takes_reference_zone(self):
        aware = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert align_timezone(datetime(2026, 1, 1), aware) == aware

    def test_aware_value_against_naive_reference(self):
        value = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        assert align_timezone(value, datetime(2026, 1, 1)) == datetime(2026, 1, 1, 9, 0)

    def test_none_passes_through(self):
        assert align_timezone(None, datetime(2026, 1, 1)) is None
