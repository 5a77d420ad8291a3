"""
payout_scheduler.models -- ORM models for schedule persistence.

Architecture: payout_scheduler/models. Imports from payout_kernel.db.base only.
"""

from payout_scheduler.models.schedule import ScheduleRunModel, TagScheduleModel

__all__ = [
    "ScheduleRunModel",
    "TagScheduleModel",
]
