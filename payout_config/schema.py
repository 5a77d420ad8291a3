"""
PayoutSystemConfig schema.

Typed, frozen view of the YAML configuration.  The loader parses the YAML
mapping into these dataclasses; services receive the sections they need
as constructor arguments and never read files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal

from payout_kernel.domain.dtos import CalculationMode, ReservationStatus

# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeeConfig:
    """Commission and fee defaults applied when a property leaves them unset."""

    default_commission_percent: Decimal = Decimal("15")
    require_fee_configuration: bool = False
    default_tech_fee: Decimal = Decimal("0")
    default_insurance_fee: Decimal = Decimal("0")
    cohost_platform: str = "airbnb"
    cleaning_rounding_increment: Decimal = Decimal("5")
    landlord_cover_markers: tuple[str, ...] = ("ll cover", "llcover")


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatementConfig:
    allowed_reservation_statuses: tuple[ReservationStatus, ...] = (
        ReservationStatus.CONFIRMED,
        ReservationStatus.ACCEPTED,
        ReservationStatus.COMPLETED,
        ReservationStatus.MODIFIED,
    )
    default_calculation_mode: CalculationMode = CalculationMode.CHECKOUT
    send_negative_statements: bool = False
    email_template: str = "default"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerConfig:
    tick_interval_seconds: float = 60.0
    default_time_of_day: time = time(9, 0)
    default_biweekly_anchor: date = date(2026, 1, 19)
    generate_now_timeout_seconds: float = 10.0
    max_workers: int = 4


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutConfig:
    currency: str = "usd"
    webhook_secret: str | None = None
    webhook_tolerance_seconds: int = 300
    auto_transfer_on_finalize: bool = True


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///payouts.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class PayoutSystemConfig:
    """Complete, validated configuration of one deployment."""

    fees: FeeConfig = field(default_factory=FeeConfig)
    statements: StatementConfig = field(default_factory=StatementConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    payouts: PayoutConfig = field(default_factory=PayoutConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    checksum: str = ""
