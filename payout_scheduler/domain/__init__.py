"""
payout_scheduler.domain -- Pure types and due-time math for tag schedules.

ZERO I/O.  All types are frozen dataclasses.
"""

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
    validate_spec,
)
from payout_scheduler.domain.types import (
    EntityOutcome,
    EntityResult,
    FireDecision,
    GenerationStatus,
    GenerationTicket,
    ScheduleFrequency,
    ScheduleRunReport,
    ScheduleRunStatus,
    ScheduleState,
    StatementPeriod,
    TagScheduleSpec,
    TickResult,
)

__all__ = [
    "EntityOutcome",
    "EntityResult",
    "FireDecision",
    "GenerationStatus",
    "GenerationTicket",
    "ScheduleFrequency",
    "ScheduleRunReport",
    "ScheduleRunStatus",
    "ScheduleState",
    "StatementPeriod",
    "TagScheduleSpec",
    "TickResult",
    "add_skip_date",
    "align_timezone",
    "fire_decision",
    "is_due",
    "next_occurrence",
    "occurs_on",
    "parse_time_of_day",
    "remove_skip_date",
    "statement_period",
    "validate_spec",
]
