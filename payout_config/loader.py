"""
Configuration Loader (``payout_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``payout_config.schema`` dataclasses.  The single public entry point for
runtime config is ``payout_config.get_active_config()``; this module
performs no environment lookups of its own.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.
* Money and percentages are parsed to ``Decimal`` through ``str`` so YAML
  floats never leak binary rounding.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid date/time/decimal -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payout_config.schema import (
    DatabaseConfig,
    FeeConfig,
    PayoutConfig,
    PayoutSystemConfig,
    SchedulerConfig,
    StatementConfig,
)
from payout_kernel.domain.dtos import CalculationMode, ReservationStatus


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_time(value: Any) -> time:
    """
    Parse an ``HH:MM`` time of day.

    Unquoted ``9:00`` is read by YAML 1.1 as the base-60 integer 540, so
    integers are taken as minutes after midnight.
    """
    if isinstance(value, time):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        hours, minutes = divmod(value, 60)
        return time(hours, minutes)
    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) == 2 and all(p.isdigit() for p in parts):
            return time(int(parts[0]), int(parts[1]))
    raise ValueError(f"Cannot parse time of day from {value!r}")


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: expected a number, got {value!r}") from exc


def parse_fees(data: dict[str, Any]) -> FeeConfig:
    defaults = FeeConfig()
    return FeeConfig(
        default_commission_percent=parse_decimal(
            data.get("default_commission_percent", defaults.default_commission_percent),
            "fees.default_commission_percent",
        ),
        require_fee_configuration=bool(
            data.get("require_fee_configuration", defaults.require_fee_configuration)
        ),
        default_tech_fee=parse_decimal(
            data.get("default_tech_fee", defaults.default_tech_fee),
            "fees.default_tech_fee",
        ),
        default_insurance_fee=parse_decimal(
            data.get("default_insurance_fee", defaults.default_insurance_fee),
            "fees.default_insurance_fee",
        ),
        cohost_platform=str(data.get("cohost_platform", defaults.cohost_platform)).lower(),
        cleaning_rounding_increment=parse_decimal(
            data.get("cleaning_rounding_increment", defaults.cleaning_rounding_increment),
            "fees.cleaning_rounding_increment",
        ),
        landlord_cover_markers=tuple(
            str(m).lower()
            for m in data.get("landlord_cover_markers", defaults.landlord_cover_markers)
        ),
    )


def parse_statements(data: dict[str, Any]) -> StatementConfig:
    defaults = StatementConfig()
    statuses = data.get("allowed_reservation_statuses")
    return StatementConfig(
        allowed_reservation_statuses=(
            tuple(ReservationStatus(str(s).lower()) for s in statuses)
            if statuses is not None
            else defaults.allowed_reservation_statuses
        ),
        default_calculation_mode=CalculationMode(
            data.get("default_calculation_mode", defaults.default_calculation_mode.value)
        ),
        send_negative_statements=bool(
            data.get("send_negative_statements", defaults.send_negative_statements)
        ),
        email_template=str(data.get("email_template", defaults.email_template)),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerConfig:
    defaults = SchedulerConfig()
    interval = float(data.get("tick_interval_seconds", defaults.tick_interval_seconds))
    if interval <= 0:
        raise ValueError(f"scheduler.tick_interval_seconds must be positive, got {interval}")
    return SchedulerConfig(
        tick_interval_seconds=interval,
        default_time_of_day=parse_time(
            data.get("default_time_of_day", defaults.default_time_of_day)
        ),
        default_biweekly_anchor=parse_date(
            data.get("default_biweekly_anchor", defaults.default_biweekly_anchor)
        ),
        generate_now_timeout_seconds=float(
            data.get("generate_now_timeout_seconds", defaults.generate_now_timeout_seconds)
        ),
        max_workers=int(data.get("max_workers", defaults.max_workers)),
    )


def parse_payouts(data: dict[str, Any]) -> PayoutConfig:
    defaults = PayoutConfig()
    return PayoutConfig(
        currency=str(data.get("currency", defaults.currency)).lower(),
        webhook_secret=data.get("webhook_secret", defaults.webhook_secret),
        webhook_tolerance_seconds=int(
            data.get("webhook_tolerance_seconds", defaults.webhook_tolerance_seconds)
        ),
        auto_transfer_on_finalize=bool(
            data.get("auto_transfer_on_finalize", defaults.auto_transfer_on_finalize)
        ),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_config(data: dict[str, Any]) -> PayoutSystemConfig:
    """
    Parse a complete configuration mapping.

    Unknown top-level sections are rejected so a typo cannot silently fall
    back to defaults.
    """
    known = {"fees", "statements", "scheduler", "payouts", "database", "log_level"}
    unknown = set(data) - known
    if unknown:
        raise KeyError(f"Unknown configuration sections: {sorted(unknown)}")

    return PayoutSystemConfig(
        fees=parse_fees(data.get("fees") or {}),
        statements=parse_statements(data.get("statements") or {}),
        scheduler=parse_scheduler(data.get("scheduler") or {}),
        payouts=parse_payouts(data.get("payouts") or {}),
        database=parse_database(data.get("database") or {}),
        log_level=str(data.get("log_level", "INFO")).upper(),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
