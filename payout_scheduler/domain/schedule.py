"""
Pure schedule evaluation functions.

Contract:
    ``fire_decision(spec, now)``, ``next_occurrence()`` and
    ``statement_period()`` are PURE -- no I/O, no side effects.  All
    timestamps come from the caller; nothing here reads the clock.

Architecture: payout_scheduler/domain.  ZERO I/O.

Invariants enforced:
    - Biweekly occurrences are whole 14-day steps from the anchor date, so
      two biweekly schedules with anchors one week apart alternate.
    - Monthly day-of-month is clamped to the last day of shorter months.
    - Missed occurrences are coalesced: the next occurrence is always the
      first one strictly after ``now``.
    - A skip date suppresses generation for its occurrence but the
      schedule still advances.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone

from payout_kernel.exceptions import InvalidScheduleConfigurationError
from payout_scheduler.domain.types import (
    FireDecision,
    ScheduleFrequency,
    StatementPeriod,
    TagScheduleSpec,
)

BIWEEKLY_DAYS = 14

# Monthly occurrences are at most 31 days apart; scan a little over two months.
_MAX_SCAN_DAYS = 62


# =============================================================================
# Parsing and validation
# =============================================================================


def parse_time_of_day(value: str | time) -> time:
    """Parse ``"HH:MM"`` (24h)."""
    if isinstance(value, time):
        return value
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"time_of_day must be HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time_of_day out of range: {value!r}")
    return time(hour, minute)


def validate_spec(spec: TagScheduleSpec) -> None:
    """Raise InvalidScheduleConfigurationError if ``spec`` cannot be evaluated."""
    if spec.frequency == ScheduleFrequency.WEEKLY:
        if spec.day_of_week is None or not 0 <= spec.day_of_week <= 6:
            raise InvalidScheduleConfigurationError(
                spec.tag_name, "weekly schedules need day_of_week in 0..6 (0=Sunday)",
            )
    elif spec.frequency == ScheduleFrequency.MONTHLY:
        if spec.day_of_month is None or not 1 <= spec.day_of_month <= 31:
            raise InvalidScheduleConfigurationError(
                spec.tag_name, "monthly schedules need day_of_month in 1..31",
            )
    elif spec.frequency == ScheduleFrequency.BIWEEKLY:
        if spec.biweekly_anchor is None:
            raise InvalidScheduleConfigurationError(
                spec.tag_name, "biweekly schedules need an anchor date",
            )
    if spec.period_days is not None and spec.period_days <= 0:
        raise InvalidScheduleConfigurationError(
            spec.tag_name, f"period_days must be positive, got {spec.period_days}",
        )


def sunday_based_weekday(day: date) -> int:
    """Weekday with 0=Sunday (Python's ``weekday()`` uses 0=Monday)."""
    return (day.weekday() + 1) % 7


def clamp_day_of_month(year: int, month: int, day_of_month: int) -> int:
    return min(day_of_month, calendar.monthrange(year, month)[1])


# =============================================================================
# Occurrences (pure)
# =============================================================================


def occurs_on(spec: TagScheduleSpec, day: date) -> bool:
    """True if ``spec`` has an occurrence on calendar date ``day``."""
    match spec.frequency:
        case ScheduleFrequency.WEEKLY:
            return sunday_based_weekday(day) == spec.day_of_week
        case ScheduleFrequency.BIWEEKLY:
            assert spec.biweekly_anchor is not None
            return (day - spec.biweekly_anchor).days % BIWEEKLY_DAYS == 0
        case ScheduleFrequency.MONTHLY:
            assert spec.day_of_month is not None
            return day.day == clamp_day_of_month(day.year, day.month, spec.day_of_month)
    return False


def next_occurrence(spec: TagScheduleSpec, after: datetime) -> datetime:
    """First occurrence strictly after ``after``.

    Raises:
        InvalidScheduleConfigurationError: If ``spec`` is not evaluable.
    """
    validate_spec(spec)
    day = after.date()
    for _ in range(_MAX_SCAN_DAYS + 1):
        if occurs_on(spec, day):
            candidate = datetime.combine(day, spec.time_of_day, tzinfo=after.tzinfo)
            if candidate > after:
                return candidate
        day += timedelta(days=1)
    raise InvalidScheduleConfigurationError(
        spec.tag_name, f"no occurrence within {_MAX_SCAN_DAYS} days after {after}",
    )


def is_due(spec: TagScheduleSpec, now: datetime) -> bool:
    """Due when ``now`` has reached the stored next occurrence.

    A schedule that has never been evaluated is due on an occurrence day
    once the time of day has passed.
    """
    if not spec.enabled:
        return False
    if spec.next_scheduled_at is not None:
        return now >= spec.next_scheduled_at
    validate_spec(spec)
    return occurs_on(spec, now.date()) and now.time() >= spec.time_of_day


def fire_decision(spec: TagScheduleSpec, now: datetime) -> FireDecision:
    """Decide whether ``spec`` fires at ``now`` and where it advances to."""
    if not spec.enabled:
        return FireDecision(due=False, reason="disabled")

    if not is_due(spec, now):
        return FireDecision(
            due=False,
            next_scheduled_at=spec.next_scheduled_at or next_occurrence(spec, now),
            reason="not_due",
        )

    occurrence = spec.next_scheduled_at or datetime.combine(
        now.date(), spec.time_of_day, tzinfo=now.tzinfo,
    )
    following = next_occurrence(spec, now)
    skip = occurrence.date() in spec.skip_dates
    return FireDecision(
        due=True,
        occurrence=occurrence,
        skip=skip,
        next_scheduled_at=following,
        reason="skip_date" if skip else "due",
    )


# =============================================================================
# Statement periods (pure)
# =============================================================================


def _most_recent_sunday(day: date) -> date:
    return day - timedelta(days=sunday_based_weekday(day))


def statement_period(spec: TagScheduleSpec, occurrence_day: date) -> StatementPeriod:
    """Period covered by the statements generated for ``occurrence_day``.

    Weekly covers Monday..Sunday ending on the most recent Sunday,
    biweekly the 14 days ending on it, monthly the previous calendar
    month.  ``period_days`` overrides all of them with the days just
    before the occurrence.
    """
    if spec.period_days:
        end = occurrence_day - timedelta(days=1)
        return StatementPeriod(start=occurrence_day - timedelta(days=spec.period_days), end=end)

    match spec.frequency:
        case ScheduleFrequency.WEEKLY:
            end = _most_recent_sunday(occurrence_day)
            return StatementPeriod(start=end - timedelta(days=6), end=end)
        case ScheduleFrequency.BIWEEKLY:
            end = _most_recent_sunday(occurrence_day)
            return StatementPeriod(start=end - timedelta(days=BIWEEKLY_DAYS - 1), end=end)
        case ScheduleFrequency.MONTHLY:
            end = occurrence_day.replace(day=1) - timedelta(days=1)
            return StatementPeriod(start=end.replace(day=1), end=end)
    raise InvalidScheduleConfigurationError(spec.tag_name, f"unknown frequency {spec.frequency}")


# =============================================================================
# Skip dates
# =============================================================================


def add_skip_date(skip_dates: Iterable[date], day: date) -> tuple[date, ...]:
    return tuple(sorted(set(skip_dates) | {day}))


def remove_skip_date(skip_dates: Iterable[date], day: date) -> tuple[date, ...]:
    return tuple(sorted(set(skip_dates) - {day}))


# =============================================================================
# Timezones
# =============================================================================


def align_timezone(value: datetime | None, reference: datetime) -> datetime | None:
    """Express ``value`` with the same awareness as ``reference``.

    Some databases hand back naive datetimes for timezone columns; a naive
    value is read in the reference's zone.
    """
    if value is None:
        return None
    if reference.tzinfo is None:
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if value.tzinfo is None:
        return value.replace(tzinfo=reference.tzinfo)
    return value.astimezone(reference.tzinfo)
