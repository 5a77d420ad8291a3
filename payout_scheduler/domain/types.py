"""
payout_scheduler.domain.types -- Pure frozen dataclasses for tag schedules.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen (immutable snapshots of persisted rows).
    - ScheduleRunReport carries the idempotency key that makes one
      occurrence of one tag fire at most once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from payout_kernel.domain.dtos import CalculationMode


# =============================================================================
# Status enums
# =============================================================================


class ScheduleFrequency(str, Enum):
    """Recurrence of a tag schedule."""

    WEEKLY = "weekly"  # day_of_week, 0=Sunday
    BIWEEKLY = "biweekly"  # 14-day steps from biweekly_anchor
    MONTHLY = "monthly"  # day_of_month, clamped to month length


class ScheduleState(str, Enum):
    """Evaluation state of one tag schedule."""

    IDLE = "idle"
    DUE = "due"
    GENERATING = "generating"


class EntityOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScheduleRunStatus(str, Enum):
    COMPLETED = "completed"  # Every entity generated
    PARTIALLY_COMPLETED = "partially_completed"  # Some entities failed
    FAILED = "failed"  # No entity generated
    SKIPPED = "skipped"  # Occurrence on a skip date
    EMPTY = "empty"  # No property or group carries the tag


class GenerationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class TagScheduleSpec:
    """Immutable snapshot of a tag schedule.

    Evaluation against it (``fire_decision``) is pure: the scheduler reads
    ``next_scheduled_at`` and the injected clock, with no side effects.
    """

    tag_name: str
    frequency: ScheduleFrequency
    time_of_day: time = time(9, 0)
    enabled: bool = True
    day_of_week: int | None = None  # 0=Sunday .. 6=Saturday
    day_of_month: int | None = None  # 1..31
    biweekly_anchor: date | None = None
    calculation_mode: CalculationMode = CalculationMode.CHECKOUT
    email_template: str = "default"
    period_days: int | None = None
    skip_dates: tuple[date, ...] = ()
    next_scheduled_at: datetime | None = None
    last_notified_at: datetime | None = None
    schedule_id: UUID | None = None


@dataclass(frozen=True)
class StatementPeriod:
    """Statement period with an inclusive end date."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class FireDecision:
    """Outcome of evaluating one schedule at one instant."""

    due: bool
    occurrence: datetime | None = None
    skip: bool = False
    next_scheduled_at: datetime | None = None
    reason: str = ""


# =============================================================================
# Run reports
# =============================================================================


@dataclass(frozen=True)
class EntityResult:
    """Outcome of generating one statement inside a schedule run.

    Each entity runs in its own SAVEPOINT; a failure here does not abort
    the run.
    """

    entity_key: str
    outcome: EntityOutcome
    statement_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ScheduleRunReport:
    """Immutable result of one firing of one tag schedule."""

    tag_name: str
    occurrence: datetime
    idempotency_key: str
    status: ScheduleRunStatus
    period: StatementPeriod | None = None
    results: tuple[EntityResult, ...] = ()
    next_scheduled_at: datetime | None = None
    run_id: UUID | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.outcome == EntityOutcome.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == EntityOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == EntityOutcome.SKIPPED)

    @property
    def errors(self) -> tuple[EntityResult, ...]:
        return tuple(r for r in self.results if r.outcome == EntityOutcome.FAILED)


@dataclass(frozen=True)
class TickResult:
    """What one scheduler tick did."""

    evaluated: int = 0
    reports: tuple[ScheduleRunReport, ...] = ()
    overlapped: bool = False  # Tick skipped because the previous one is still running
    failed_tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GenerationTicket:
    """Handle for a manual generate-now request."""

    job_id: str
    tag_name: str
    status: GenerationStatus
    report: ScheduleRunReport | None = None
    error: str | None = None
