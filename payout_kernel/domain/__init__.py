"""
Pure domain layer.

Clock abstraction and workflow value objects.  Nothing here touches the
ORM, the database or the wall clock (SystemClock aside).
"""

from payout_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from payout_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SequentialClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
