"""
ScheduleService -- Operator configuration of tag schedules.

Contract:
    Creates, updates, enables/disables and edits the skip dates of tag
    schedules.  Every write validates the schedule and recomputes
    ``next_scheduled_at`` from the injected clock.  Flushes, never commits.

Architecture: payout_scheduler/services.  Uses the pure functions in
    payout_scheduler.domain.schedule for validation and due-time math.

Invariants enforced:
    - One schedule per tag (case-insensitive).
    - A disabled schedule has no ``next_scheduled_at``.
    - Skip dates are stored sorted and unique.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payout_config.schema import SchedulerConfig
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import ScheduleNotFoundError
from payout_kernel.logging_config import LogContext, get_logger
from payout_scheduler.domain.schedule import (
    add_skip_date,
    next_occurrence,
    remove_skip_date,
    validate_spec,
)
from payout_scheduler.domain.types import ScheduleFrequency, ScheduleState, TagScheduleSpec
from payout_scheduler.models.schedule import TagScheduleModel

logger = get_logger("scheduler.schedules")


class ScheduleService:
    """CRUD over TagScheduleModel."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.config = config or SchedulerConfig()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def find(self, tag_name: str, lock: bool = False) -> TagScheduleModel | None:
        stmt = select(TagScheduleModel).where(
            func.lower(TagScheduleModel.tag_name) == tag_name.strip().lower()
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, tag_name: str, lock: bool = False) -> TagScheduleModel:
        model = self.find(tag_name, lock=lock)
        if model is None:
            raise ScheduleNotFoundError(tag_name)
        return model

    def list_schedules(self, enabled_only: bool = False) -> list[TagScheduleModel]:
        stmt = select(TagScheduleModel).order_by(TagScheduleModel.tag_name)
        if enabled_only:
            stmt = stmt.where(TagScheduleModel.enabled == True)  # noqa: E712
        return list(self.session.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_schedule(self, spec: TagScheduleSpec) -> TagScheduleModel:
        """Create or replace the schedule for ``spec.tag_name``.

        Biweekly schedules without an anchor use the configured default
        anchor.  Existing skip dates are kept unless ``spec`` lists its own.
        """
        if spec.frequency == ScheduleFrequency.BIWEEKLY and spec.biweekly_anchor is None:
            spec = replace(spec, biweekly_anchor=self.config.default_biweekly_anchor)
        validate_spec(spec)

        model = self.find(spec.tag_name, lock=True)
        created = model is None
        if model is None:
            model = TagScheduleModel(tag_name=spec.tag_name.strip())
            self.session.add(model)

        model.enabled = spec.enabled
        model.frequency = spec.frequency.value
        model.day_of_week = spec.day_of_week
        model.day_of_month = spec.day_of_month
        model.biweekly_anchor = spec.biweekly_anchor
        model.time_of_day = spec.time_of_day.strftime("%H:%M")
        model.calculation_mode = spec.calculation_mode.value
        model.email_template = spec.email_template
        model.period_days = spec.period_days
        if spec.skip_dates or created:
            model.set_skip_dates(tuple(sorted(set(spec.skip_dates))))
        model.state = ScheduleState.IDLE.value
        self._reschedule(model)
        self.session.flush()

        with LogContext.bind(schedule_tag=model.tag_name):
            logger.info(
                "schedule_saved",
                extra={
                    "is_new": created,
                    "frequency": model.frequency,
                    "enabled": model.enabled,
                    "next_scheduled_at": model.next_scheduled_at,
                },
            )
        return model

    def set_enabled(self, tag_name: str, enabled: bool) -> TagScheduleModel:
        model = self.get(tag_name, lock=True)
        model.enabled = enabled
        self._reschedule(model)
        self.session.flush()
        logger.info(
            "schedule_enabled" if enabled else "schedule_disabled",
            extra={"tag_name": model.tag_name},
        )
        return model

    def disable_schedule(self, tag_name: str) -> TagScheduleModel:
        return self.set_enabled(tag_name, False)

    def enable_schedule(self, tag_name: str) -> TagScheduleModel:
        return self.set_enabled(tag_name, True)

    def add_skip_date(self, tag_name: str, day: date) -> TagScheduleModel:
        model = self.get(tag_name, lock=True)
        model.set_skip_dates(add_skip_date(model.skip_date_values, day))
        self.session.flush()
        logger.info("schedule_skip_date_added", extra={"tag_name": model.tag_name, "day": day})
        return model

    def remove_skip_date(self, tag_name: str, day: date) -> TagScheduleModel:
        model = self.get(tag_name, lock=True)
        model.set_skip_dates(remove_skip_date(model.skip_date_values, day))
        self.session.flush()
        logger.info("schedule_skip_date_removed", extra={"tag_name": model.tag_name, "day": day})
        return model

    def _reschedule(self, model: TagScheduleModel) -> None:
        if not model.enabled:
            model.next_scheduled_at = None
            return
        spec = replace(model.to_dto(), next_scheduled_at=None)
        model.next_scheduled_at = next_occurrence(spec, self.clock.now())
