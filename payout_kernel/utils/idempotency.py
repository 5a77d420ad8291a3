"""
Idempotency key generation utilities.

Every key here backs a UNIQUE column or is forwarded to the transfer
gateway, so the same logical operation always produces the same key.
"""

from datetime import datetime
from uuid import UUID


def generate_idempotency_key(
    namespace: str,
    subject: str,
    discriminator: UUID | str | int,
) -> str:
    """
    Generate an idempotency key.

    Format: namespace:subject:discriminator

    Example:
        >>> generate_idempotency_key("payout", str(statement_id), 1)
        "payout:550e8400-e29b-41d4-a716-446655440000:1"
    """
    return f"{namespace}:{subject}:{discriminator}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key into (namespace, subject, discriminator).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]


def schedule_run_key(tag_name: str, occurrence: datetime) -> str:
    """One schedule run per tag and occurrence (minute resolution)."""
    return generate_idempotency_key(
        "tag-schedule", tag_name.lower(), occurrence.strftime("%Y%m%dT%H%M"),
    )


def transfer_key(statement_id: UUID | str, attempt: int) -> str:
    """Key forwarded to the transfer gateway for one payout attempt."""
    return generate_idempotency_key("payout", str(statement_id), attempt)
