"""
ORM models for tag schedules and their runs.

Contract:
    TagScheduleModel persists one schedule per tag; ScheduleRunModel
    records each firing.  Both convert to the frozen DTOs in
    ``payout_scheduler.domain.types``.

Architecture: payout_scheduler/models. Imports from payout_kernel.db.base only.

Invariants enforced:
    - ``tag_name`` is UNIQUE on TagScheduleModel.
    - ``idempotency_key`` is UNIQUE on ScheduleRunModel: one occurrence of
      one tag is recorded, and therefore generated, at most once.
    - ``next_scheduled_at`` is only advanced by the scheduler.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.db.types import FlexibleBoolean
from payout_kernel.domain.dtos import CalculationMode

if TYPE_CHECKING:
    from payout_scheduler.domain.types import ScheduleRunReport, TagScheduleSpec


class TagScheduleModel(TrackedBase):
    """Generation schedule for every property and group carrying ``tag_name``."""

    __tablename__ = "tag_schedules"

    __table_args__ = (
        Index("ix_tag_schedules_enabled", "enabled"),
        Index("ix_tag_schedules_next", "next_scheduled_at"),
    )

    tag_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(FlexibleBoolean(), default=True, nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    biweekly_anchor: Mapped[date | None] = mapped_column(nullable=True)
    time_of_day: Mapped[str] = mapped_column(String(5), default="09:00", nullable=False)
    calculation_mode: Mapped[str] = mapped_column(
        String(20), default=CalculationMode.CHECKOUT.value, nullable=False,
    )
    email_template: Mapped[str] = mapped_column(String(100), default="default", nullable=False)
    period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    skip_dates: Mapped[list | None] = mapped_column(JSON, nullable=True)
    state: Mapped[str] = mapped_column(String(20), default="idle", nullable=False)
    last_notified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_run_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    @property
    def skip_date_values(self) -> tuple[date, ...]:
        return tuple(sorted(date.fromisoformat(d) for d in (self.skip_dates or [])))

    def set_skip_dates(self, days: tuple[date, ...]) -> None:
        # Reassign so the JSON column is flagged dirty.
        self.skip_dates = [d.isoformat() for d in days]

    def to_dto(self) -> TagScheduleSpec:
        from payout_scheduler.domain.schedule import parse_time_of_day
        from payout_scheduler.domain.types import ScheduleFrequency, TagScheduleSpec

        return TagScheduleSpec(
            schedule_id=self.id,
            tag_name=self.tag_name,
            frequency=ScheduleFrequency(self.frequency),
            time_of_day=parse_time_of_day(self.time_of_day),
            enabled=self.enabled,
            day_of_week=self.day_of_week,
            day_of_month=self.day_of_month,
            biweekly_anchor=self.biweekly_anchor,
            calculation_mode=CalculationMode(self.calculation_mode),
            email_template=self.email_template,
            period_days=self.period_days,
            skip_dates=self.skip_date_values,
            next_scheduled_at=self.next_scheduled_at,
            last_notified_at=self.last_notified_at,
        )

    def __repr__(self) -> str:
        return (
            f"<TagSchedule {self.tag_name} {self.frequency} "
            f"enabled={self.enabled} next={self.next_scheduled_at}>"
        )


class ScheduleRunModel(TrackedBase):
    """One firing of one tag schedule."""

    __tablename__ = "schedule_runs"

    __table_args__ = (
        Index("ix_schedule_runs_tag", "tag_name"),
        Index("ix_schedule_runs_occurrence", "occurrence"),
    )

    schedule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("tag_schedules.id"), nullable=True,
    )
    tag_name: Mapped[str] = mapped_column(String(100), nullable=False)
    occurrence: Mapped[datetime] = mapped_column(nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    trigger: Mapped[str] = mapped_column(String(20), default="schedule", nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    period_start: Mapped[date | None] = mapped_column(nullable=True)
    period_end: Mapped[date | None] = mapped_column(nullable=True)
    succeeded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    results: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self) -> ScheduleRunReport:
        from payout_scheduler.domain.types import (
            EntityOutcome,
            EntityResult,
            ScheduleRunReport,
            ScheduleRunStatus,
            StatementPeriod,
        )

        period = None
        if self.period_start is not None and self.period_end is not None:
            period = StatementPeriod(start=self.period_start, end=self.period_end)

        return ScheduleRunReport(
            run_id=self.id,
            tag_name=self.tag_name,
            occurrence=self.occurrence,
            idempotency_key=self.idempotency_key,
            status=ScheduleRunStatus(self.status),
            period=period,
            results=tuple(
                EntityResult(
                    entity_key=r["entity_key"],
                    outcome=EntityOutcome(r["outcome"]),
                    statement_id=UUID(r["statement_id"]) if r.get("statement_id") else None,
                    error_code=r.get("error_code"),
                    error_message=r.get("error_message"),
                )
                for r in (self.results or [])
            ),
        )

    @classmethod
    def from_dto(cls, dto: ScheduleRunReport, trigger: str = "schedule") -> ScheduleRunModel:
        return cls(
            id=dto.run_id,
            tag_name=dto.tag_name,
            occurrence=dto.occurrence,
            idempotency_key=dto.idempotency_key,
            trigger=trigger,
            status=dto.status.value,
            period_start=dto.period.start if dto.period else None,
            period_end=dto.period.end if dto.period else None,
            succeeded_count=dto.succeeded,
            failed_count=dto.failed,
            skipped_count=dto.skipped,
            results=[
                {
                    "entity_key": r.entity_key,
                    "outcome": r.outcome.value,
                    "statement_id": str(r.statement_id) if r.statement_id else None,
                    "error_code": r.error_code,
                    "error_message": r.error_message,
                }
                for r in dto.results
            ],
            error_summary=(
                "; ".join(f"{r.entity_key}: {r.error_message}" for r in dto.errors)
                or None
            ),
        )
