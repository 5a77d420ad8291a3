"""
payout_config -- single public entrypoint for payout system configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``payout_kernel`` and below
    ``payout_scheduler`` / ``payout_services``.  The kernel MUST NEVER
    import from ``payout_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Environment overrides are applied here and nowhere else:
      ``PAYOUT_CONFIG_PATH``, ``PAYOUT_DATABASE_URL``,
      ``PAYOUT_WEBHOOK_SECRET``, ``PAYOUT_LOG_LEVEL``.
    - Deterministic: the same YAML plus the same overrides always give the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema or value errors.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PAYOUT_CONFIG_TRACE`` log entry with the source path, checksum and
    the key switches in effect.  The webhook secret is never logged.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from payout_config.loader import load_yaml_file, parse_config
from payout_config.schema import (
    DatabaseConfig,
    FeeConfig,
    PayoutConfig,
    PayoutSystemConfig,
    SchedulerConfig,
    StatementConfig,
)

_logger = logging.getLogger("payout_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "PAYOUT_CONFIG_PATH"
ENV_DATABASE_URL = "PAYOUT_DATABASE_URL"
ENV_WEBHOOK_SECRET = "PAYOUT_WEBHOOK_SECRET"
ENV_LOG_LEVEL = "PAYOUT_LOG_LEVEL"


def get_active_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> PayoutSystemConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: explicit ``path``, then
    ``PAYOUT_CONFIG_PATH``, then the shipped ``defaults.yaml``.  Scalar
    overrides from the environment are applied on top of the file.

    Args:
        path: Explicit YAML file to load.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        PayoutSystemConfig -- frozen, fully parsed configuration.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If a value cannot be parsed.
        KeyError: If the file contains unknown sections.
    """
    env = os.environ if environ is None else environ
    source = Path(path or env.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH)

    data = load_yaml_file(source)

    if env.get(ENV_DATABASE_URL):
        data.setdefault("database", {})
        data["database"] = {**(data["database"] or {}), "url": env[ENV_DATABASE_URL]}
    if env.get(ENV_WEBHOOK_SECRET):
        data.setdefault("payouts", {})
        data["payouts"] = {**(data["payouts"] or {}), "webhook_secret": env[ENV_WEBHOOK_SECRET]}
    if env.get(ENV_LOG_LEVEL):
        data["log_level"] = env[ENV_LOG_LEVEL]

    config = parse_config(data)

    _logger.info(
        "PAYOUT_CONFIG_TRACE",
        extra={
            "trace_type": "PAYOUT_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": config.checksum,
            "default_commission_percent": str(config.fees.default_commission_percent),
            "require_fee_configuration": config.fees.require_fee_configuration,
            "tick_interval_seconds": config.scheduler.tick_interval_seconds,
            "webhook_secret_configured": config.payouts.webhook_secret is not None,
            "log_level": config.log_level,
        },
    )

    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "FeeConfig",
    "PayoutConfig",
    "PayoutSystemConfig",
    "SchedulerConfig",
    "StatementConfig",
    "get_active_config",
]
