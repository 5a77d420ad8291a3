"""Stateful schedule services: configuration, occurrence runs and polling."""

from payout_scheduler.services.runner import ScheduleRunner, run_status
from payout_scheduler.services.schedule_service import ScheduleService
from payout_scheduler.services.scheduler import TagScheduler

__all__ = ["ScheduleRunner", "ScheduleService", "TagScheduler", "run_status"]
