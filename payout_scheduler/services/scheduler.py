"""
TagScheduler -- In-process polling scheduler for tag schedules.

Contract:
    Polls enabled tag schedules on a configurable interval, evaluates
    ``fire_decision()`` (pure) against the injected clock, and runs due
    occurrences through ``ScheduleRunner``.  Operators can also trigger a
    tag immediately with ``generate_now()``.

Architecture: payout_scheduler/services.  Uses
    payout_scheduler.domain.schedule for pure evaluation and
    payout_scheduler.services.runner for generation.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Schedule evaluation is pure (fire_decision).
    - Ticks never overlap: a tick that finds the previous one still
      running returns immediately.
    - The occurrence's run record, its statements and the advance of
      ``next_scheduled_at`` commit in one transaction.
    - A run that raises is rolled back, recorded as failed and still
      advances ``next_scheduled_at``; later ticks never re-fire it.
    - Payouts start only after that transaction has committed, each in
      its own transaction.
    - Graceful shutdown: the stop signal is checked between schedules.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payout_config.schema import FeeConfig, SchedulerConfig, StatementConfig
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import (
    GenerationJobNotFoundError,
    ScheduleAlreadyRunningError,
    ScheduleNotFoundError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_scheduler.domain.schedule import align_timezone, fire_decision
from payout_scheduler.domain.types import (
    EntityOutcome,
    FireDecision,
    GenerationStatus,
    GenerationTicket,
    ScheduleRunReport,
    TickResult,
)
from payout_scheduler.models.schedule import TagScheduleModel
from payout_scheduler.services.runner import TRIGGER_MANUAL, ScheduleRunner
from payout_scheduler.services.schedule_service import ScheduleService
from payout_services.notifications import StatementNotifier
from payout_services.payout_orchestrator import PayoutOrchestrator

logger = get_logger("scheduler")


class TagScheduler:
    """In-process polling scheduler for tag schedules.

    Contract:
        - ``tick()`` evaluates all enabled schedules, fires due ones.
        - ``start()`` / ``stop()`` for background thread operation.
        - ``generate_now()`` runs one tag off the polling loop and waits
          up to the configured timeout before returning a pending ticket.

    Non-goals:
        - NOT a distributed scheduler (no leader election); the unique
          run key keeps a second process from generating twice.
        - Does NOT convert time zones.  Schedule times are read in the
          clock's zone.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
        statement_config: StatementConfig | None = None,
        fee_config: FeeConfig | None = None,
        notifier: StatementNotifier | None = None,
        orchestrator_factory: Callable[[Session], PayoutOrchestrator] | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or SchedulerConfig()
        self._statement_config = statement_config or StatementConfig()
        self._fee_config = fee_config or FeeConfig()
        self._notifier = notifier
        self._orchestrator_factory = orchestrator_factory

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()

        self._jobs_lock = threading.Lock()
        self._jobs: dict[str, GenerationTicket] = {}
        self._in_flight: dict[str, str] = {}  # lower tag -> job id
        self._pool: ThreadPoolExecutor | None = None

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def tick(self) -> TickResult:
        """Evaluate and fire due schedules (public for testing)."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("scheduler_tick_overlapped")
            return TickResult(overlapped=True)
        try:
            session = self._session_factory()
            try:
                result = self._evaluate_schedules(session)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("scheduler_tick_failed")
                return TickResult()
            finally:
                session.close()

            for report in result.reports:
                self._start_payouts(report)
            return result
        finally:
            self._tick_lock.release()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="tag-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"tick_interval": self._config.tick_interval_seconds},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Manual generation
    # -------------------------------------------------------------------------

    def generate_now(self, tag_name: str, timeout: float | None = None) -> GenerationTicket:
        """
        Generate statements for ``tag_name`` immediately.

        Returns the finished ticket, or a ``pending`` ticket when the run
        outlives ``timeout``; poll it with ``get_generation_status()``.

        Raises:
            ScheduleNotFoundError: No schedule for the tag.
            ScheduleAlreadyRunningError: A manual run for the tag is in flight.
        """
        session = self._session_factory()
        try:
            schedule = ScheduleService(session, self._clock, self._config).get(tag_name)
            canonical = schedule.tag_name
        finally:
            session.close()

        job_id = str(uuid4())
        with self._jobs_lock:
            if canonical.lower() in self._in_flight:
                raise ScheduleAlreadyRunningError(canonical)
            self._in_flight[canonical.lower()] = job_id
            self._jobs[job_id] = GenerationTicket(
                job_id=job_id, tag_name=canonical, status=GenerationStatus.PENDING,
            )
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._config.max_workers,
                    thread_name_prefix="tag-generate",
                )
            future = self._pool.submit(self._run_manual, job_id, canonical)

        logger.info("generation_requested", extra={"tag_name": canonical, "job_id": job_id})
        wait = self._config.generate_now_timeout_seconds if timeout is None else timeout
        try:
            future.result(timeout=wait)
        except FutureTimeout:
            logger.info("generation_still_running", extra={"job_id": job_id})
        return self.get_generation_status(job_id)

    def get_generation_status(self, job_id: str) -> GenerationTicket:
        with self._jobs_lock:
            ticket = self._jobs.get(job_id)
        if ticket is None:
            raise GenerationJobNotFoundError(job_id)
        return ticket

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._config.tick_interval_seconds)

    def _runner(self, session: Session) -> ScheduleRunner:
        return ScheduleRunner(
            session,
            self._clock,
            statement_config=self._statement_config,
            fee_config=self._fee_config,
            notifier=self._notifier,
        )

    def _evaluate_schedules(self, session: Session) -> TickResult:
        """Query enabled schedules, evaluate, fire due ones."""
        now = self._clock.now()

        schedules = session.execute(
            select(TagScheduleModel)
            .where(TagScheduleModel.enabled == True)  # noqa: E712
            .order_by(TagScheduleModel.tag_name)
        ).scalars().all()

        runner = self._runner(session)
        reports: list[ScheduleRunReport] = []
        failed_tags: list[str] = []

        for schedule in schedules:
            if self._stop_event.is_set():
                break

            spec = schedule.to_dto()
            spec = replace(
                spec,
                next_scheduled_at=align_timezone(spec.next_scheduled_at, now),
            )

            decision = None
            savepoint = session.begin_nested()
            try:
                decision = fire_decision(spec, now)
                if not decision.due:
                    if schedule.next_scheduled_at is None:
                        schedule.next_scheduled_at = decision.next_scheduled_at
                    savepoint.commit()
                    continue

                with LogContext.bind(schedule_tag=schedule.tag_name):
                    report = runner.run(
                        schedule, decision.occurrence, skip_date=decision.skip,
                    )
                    schedule.next_scheduled_at = decision.next_scheduled_at
                    savepoint.commit()

                    if report is not None:
                        report = replace(report, next_scheduled_at=decision.next_scheduled_at)
                        reports.append(report)
                    logger.info(
                        "schedule_fired",
                        extra={
                            "tag_name": schedule.tag_name,
                            "occurrence": decision.occurrence,
                            "status": report.status.value if report else "already_claimed",
                            "next_scheduled_at": decision.next_scheduled_at,
                        },
                    )
            except Exception as exc:
                savepoint.rollback()
                failed_tags.append(schedule.tag_name)
                logger.exception(
                    "schedule_fire_failed",
                    extra={"tag_name": schedule.tag_name},
                )
                if decision is not None and decision.due:
                    report = self._advance_after_failure(
                        session, runner, schedule, decision, exc,
                    )
                    if report is not None:
                        reports.append(report)

        return TickResult(
            evaluated=len(schedules),
            reports=tuple(reports),
            failed_tags=tuple(failed_tags),
        )

    def _advance_after_failure(
        self,
        session: Session,
        runner: ScheduleRunner,
        schedule: TagScheduleModel,
        decision: FireDecision,
        error: Exception,
    ) -> ScheduleRunReport | None:
        """Record the occurrence as failed and move past it.

        A failed occurrence is reported, never retried by later ticks.
        """
        savepoint = session.begin_nested()
        try:
            report = runner.record_failure(schedule, decision.occurrence, error)
            schedule.next_scheduled_at = decision.next_scheduled_at
            session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.exception(
                "schedule_failure_record_failed",
                extra={"tag_name": schedule.tag_name},
            )
            return None

        logger.info(
            "schedule_advanced_after_failure",
            extra={
                "tag_name": schedule.tag_name,
                "occurrence": decision.occurrence,
                "next_scheduled_at": decision.next_scheduled_at,
            },
        )
        if report is None:
            return None
        return replace(report, next_scheduled_at=decision.next_scheduled_at)

    def _run_manual(self, job_id: str, tag_name: str) -> None:
        session = self._session_factory()
        try:
            schedule = ScheduleService(session, self._clock, self._config).get(tag_name, lock=True)
            report = self._runner(session).run(
                schedule, self._clock.now(), trigger=TRIGGER_MANUAL, job_id=job_id,
            )
            session.commit()
            ticket = GenerationTicket(
                job_id=job_id,
                tag_name=tag_name,
                status=GenerationStatus.COMPLETED,
                report=report,
            )
        except Exception as exc:
            session.rollback()
            logger.exception("generation_failed", extra={"tag_name": tag_name, "job_id": job_id})
            ticket = GenerationTicket(
                job_id=job_id,
                tag_name=tag_name,
                status=GenerationStatus.FAILED,
                error=str(exc),
            )
            report = None
        finally:
            session.close()

        with self._jobs_lock:
            self._jobs[job_id] = ticket
            self._in_flight.pop(tag_name.lower(), None)

        if report is not None:
            self._start_payouts(report)

    def _start_payouts(self, report: ScheduleRunReport) -> None:
        """Initiate payouts for a committed run, one transaction each."""
        if self._orchestrator_factory is None:
            return
        statement_ids: list[UUID] = [
            r.statement_id
            for r in report.results
            if r.outcome == EntityOutcome.SUCCEEDED and r.statement_id is not None
        ]
        for statement_id in statement_ids:
            session = self._session_factory()
            try:
                self._orchestrator_factory(session).on_statement_finalized(statement_id)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception(
                    "payout_initiation_failed",
                    extra={"statement_id": str(statement_id), "tag_name": report.tag_name},
                )
            finally:
                session.close()
