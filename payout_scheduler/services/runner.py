"""
ScheduleRunner -- Generates the statements of one tag schedule occurrence.

Contract:
    ``run()`` claims the occurrence's idempotency key, resolves the
    statement period, then generates, finalizes and (optionally) sends one
    statement per tagged property or group.  Each entity runs inside its
    own SAVEPOINT.  Flushes, never commits.

Architecture: payout_scheduler/services.  Composes
    payout_services.StatementAggregator and StatementService.

Invariants enforced:
    - One ScheduleRunModel per idempotency key.  A second claim for the
      same occurrence returns None and generates nothing.
    - A failing entity is rolled back alone and reported in the run; the
      other entities and the schedule's advance are unaffected.
    - Statements with a negative payout are not sent unless configured.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payout_config.schema import FeeConfig, StatementConfig
from payout_kernel.db.types import ZERO, to_decimal
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import PayoutKernelError, StatementAlreadyGeneratedError
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.utils.idempotency import generate_idempotency_key, schedule_run_key
from payout_scheduler.domain.schedule import statement_period
from payout_scheduler.domain.types import (
    EntityOutcome,
    EntityResult,
    ScheduleRunReport,
    ScheduleRunStatus,
    ScheduleState,
    StatementPeriod,
    TagScheduleSpec,
)
from payout_scheduler.models.schedule import ScheduleRunModel, TagScheduleModel
from payout_services.notifications import StatementNotifier
from payout_services.statement_aggregator import StatementAggregator, StatementTarget
from payout_services.statement_service import StatementService

logger = get_logger("scheduler.runner")

TRIGGER_SCHEDULE = "schedule"
TRIGGER_MANUAL = "manual"


def run_status(results: tuple[EntityResult, ...], skip_date: bool = False) -> ScheduleRunStatus:
    """Overall status of a run from its entity results."""
    if skip_date:
        return ScheduleRunStatus.SKIPPED
    if not results:
        return ScheduleRunStatus.EMPTY
    failed = sum(1 for r in results if r.outcome == EntityOutcome.FAILED)
    if failed == 0:
        return ScheduleRunStatus.COMPLETED
    if failed == len(results):
        return ScheduleRunStatus.FAILED
    return ScheduleRunStatus.PARTIALLY_COMPLETED


class ScheduleRunner:
    """Runs one occurrence of one tag schedule in the caller's session."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        statement_config: StatementConfig | None = None,
        fee_config: FeeConfig | None = None,
        notifier: StatementNotifier | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.statement_config = statement_config or StatementConfig()
        self.aggregator = StatementAggregator(session, self.clock, fee_config, self.statement_config)
        self.statements = StatementService(session, self.clock, notifier)
        self.notifier = notifier

    def run(
        self,
        schedule: TagScheduleModel,
        occurrence: datetime,
        *,
        skip_date: bool = False,
        trigger: str = TRIGGER_SCHEDULE,
        job_id: str | None = None,
    ) -> ScheduleRunReport | None:
        """
        Generate the occurrence's statements.

        Returns None when the occurrence was already claimed.  On a skip
        date the run is recorded as skipped and nothing is generated.
        """
        spec = schedule.to_dto()
        if trigger == TRIGGER_MANUAL:
            key = generate_idempotency_key("tag-generate", spec.tag_name.lower(), job_id or "")
        else:
            key = schedule_run_key(spec.tag_name, occurrence)

        run = self._claim(schedule, occurrence, key, trigger)
        if run is None:
            logger.info(
                "schedule_occurrence_already_claimed",
                extra={"tag_name": spec.tag_name, "idempotency_key": key},
            )
            return None

        with LogContext.bind(schedule_tag=spec.tag_name, correlation_id=key):
            schedule.state = ScheduleState.GENERATING.value
            if skip_date:
                period = None
                results: tuple[EntityResult, ...] = ()
                logger.info("schedule_skipped_date", extra={"occurrence": occurrence})
            else:
                period = statement_period(spec, occurrence.date())
                results = self._generate_all(spec, period)

            report = ScheduleRunReport(
                run_id=run.id,
                tag_name=spec.tag_name,
                occurrence=occurrence,
                idempotency_key=key,
                status=run_status(results, skip_date),
                period=period,
                results=results,
            )
            self._record(run, report)
            schedule.state = ScheduleState.IDLE.value
            schedule.last_run_status = report.status.value
            if not skip_date:
                schedule.last_notified_at = self.clock.now()
            self.session.flush()

            logger.info(
                "schedule_run_completed",
                extra={
                    "status": report.status.value,
                    "trigger": trigger,
                    "period_start": period.start if period else None,
                    "period_end": period.end if period else None,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                    "skipped": report.skipped,
                },
            )
        return report

    def record_failure(
        self,
        schedule: TagScheduleModel,
        occurrence: datetime,
        error: BaseException,
    ) -> ScheduleRunReport | None:
        """
        Record a scheduled occurrence whose generation raised as failed.

        Called after the generation was rolled back, so the occurrence's
        key is free again.  Returns None if another process claimed it.
        """
        key = schedule_run_key(schedule.tag_name, occurrence)
        run = self._claim(schedule, occurrence, key, TRIGGER_SCHEDULE)
        if run is None:
            return None

        report = ScheduleRunReport(
            run_id=run.id,
            tag_name=schedule.tag_name,
            occurrence=occurrence,
            idempotency_key=key,
            status=ScheduleRunStatus.FAILED,
        )
        self._record(run, report)
        run.error_summary = f"{type(error).__name__}: {error}"
        schedule.state = ScheduleState.IDLE.value
        schedule.last_run_status = ScheduleRunStatus.FAILED.value
        self.session.flush()

        logger.warning(
            "schedule_run_failed",
            extra={
                "tag_name": schedule.tag_name,
                "idempotency_key": key,
                "error_code": getattr(error, "code", "UNEXPECTED_ERROR"),
            },
        )
        return report

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _claim(
        self,
        schedule: TagScheduleModel,
        occurrence: datetime,
        key: str,
        trigger: str,
    ) -> ScheduleRunModel | None:
        run = ScheduleRunModel(
            schedule_id=schedule.id,
            tag_name=schedule.tag_name,
            occurrence=occurrence,
            idempotency_key=key,
            trigger=trigger,
            status=ScheduleRunStatus.EMPTY.value,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(run)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            return None
        savepoint.commit()
        return run

    def _record(self, run: ScheduleRunModel, report: ScheduleRunReport) -> None:
        snapshot = ScheduleRunModel.from_dto(report, trigger=run.trigger)
        run.status = snapshot.status
        run.period_start = snapshot.period_start
        run.period_end = snapshot.period_end
        run.succeeded_count = snapshot.succeeded_count
        run.failed_count = snapshot.failed_count
        run.skipped_count = snapshot.skipped_count
        run.results = snapshot.results
        run.error_summary = snapshot.error_summary
        run.completed_at = self.clock.now()

    def _generate_all(
        self,
        spec: TagScheduleSpec,
        period: StatementPeriod,
    ) -> tuple[EntityResult, ...]:
        targets = self.aggregator.targets_for_tag(spec.tag_name)
        if not targets:
            logger.warning("schedule_no_tagged_entities", extra={"tag_name": spec.tag_name})
        return tuple(self._generate_one(spec, period, target) for target in targets)

    def _generate_one(
        self,
        spec: TagScheduleSpec,
        period: StatementPeriod,
        target: StatementTarget,
    ) -> EntityResult:
        savepoint = self.session.begin_nested()
        try:
            statement_id = self._generate_and_send(spec, period, target)
            savepoint.commit()
        except StatementAlreadyGeneratedError as exc:
            savepoint.rollback()
            logger.info(
                "schedule_entity_skipped",
                extra={"entity_key": target.entity_key, "error_code": exc.code},
            )
            return EntityResult(
                entity_key=target.entity_key,
                outcome=EntityOutcome.SKIPPED,
                error_code=exc.code,
                error_message=str(exc),
            )
        except PayoutKernelError as exc:
            savepoint.rollback()
            logger.warning(
                "schedule_entity_failed",
                extra={"entity_key": target.entity_key, "error_code": exc.code},
            )
            return EntityResult(
                entity_key=target.entity_key,
                outcome=EntityOutcome.FAILED,
                error_code=exc.code,
                error_message=str(exc),
            )
        except Exception as exc:
            savepoint.rollback()
            logger.exception(
                "schedule_entity_failed",
                extra={"entity_key": target.entity_key, "error_code": "UNEXPECTED_ERROR"},
            )
            return EntityResult(
                entity_key=target.entity_key,
                outcome=EntityOutcome.FAILED,
                error_code="UNEXPECTED_ERROR",
                error_message=str(exc),
            )

        return EntityResult(
            entity_key=target.entity_key,
            outcome=EntityOutcome.SUCCEEDED,
            statement_id=statement_id,
        )

    def _generate_and_send(
        self,
        spec: TagScheduleSpec,
        period: StatementPeriod,
        target: StatementTarget,
    ) -> UUID:
        statement = self.aggregator.generate(
            target, period.start, period.end, spec.calculation_mode,
        )
        self.statements.finalize(statement.id)

        if self.notifier is None:
            return statement.id

        if to_decimal(statement.owner_payout) < ZERO and not self.statement_config.send_negative_statements:
            logger.info(
                "statement_send_skipped_negative",
                extra={"statement_id": str(statement.id), "owner_payout": statement.owner_payout},
            )
            return statement.id

        self.statements.send_statement(statement.id, template=spec.email_template)
        return statement.id
