"""
ORM models for the payout kernel.

Importing this package registers every kernel table on Base.metadata.
"""

from payout_kernel.models.property import (
    ListingGroupModel,
    PropertyModel,
    has_tag,
    split_tags,
)
from payout_kernel.models.reservation import ExpenseModel, ReservationModel
from payout_kernel.models.statement import (
    StatementModel,
    group_entity_key,
    property_entity_key,
)
from payout_kernel.models.webhook_event import WebhookEventModel

__all__ = [
    "ExpenseModel",
    "ListingGroupModel",
    "PropertyModel",
    "ReservationModel",
    "StatementModel",
    "WebhookEventModel",
    "group_entity_key",
    "has_tag",
    "property_entity_key",
    "split_tags",
]
