"""
Inbound webhook event log.

Each verified event id is stored once (UNIQUE event_id); a redelivery of
the same event finds the row and is acknowledged without side effects.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import Base


class WebhookEventModel(Base):
    __tablename__ = "webhook_events"

    event_id: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
