"""
Statement notification hand-off.

The services compute everything the message needs; a ``StatementNotifier``
renders and delivers it.  Template text lives with the notifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

BALANCE_DUE_SUFFIX = " (Balance Due)"


@dataclass(frozen=True)
class StatementNotification:
    statement_id: UUID
    owner_name: str
    owner_email: str | None
    entity_label: str
    period_start: date
    period_end: date
    owner_payout: Decimal
    template: str = "default"

    @property
    def is_balance_due(self) -> bool:
        return self.owner_payout < 0

    @property
    def subject(self) -> str:
        subject = (
            f"Owner Statement {self.entity_label} "
            f"{self.period_start.isoformat()} to {self.period_end.isoformat()}"
        )
        if self.is_balance_due:
            subject += BALANCE_DUE_SUFFIX
        return subject


@runtime_checkable
class StatementNotifier(Protocol):
    def deliver(self, notification: StatementNotification) -> None:
        ...
