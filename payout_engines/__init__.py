"""
Module: payout_engines
Responsibility:
    Package entrypoint that re-exports the pure calculators used by the
    statement aggregator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payout_kernel domain types and money helpers.
    MUST NOT import payout_services or payout_scheduler.

Invariants enforced:
    - Purity: engines never read the clock.  Period dates are passed in.
    - Decimal-only arithmetic; floats are never used for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``, emitting a
    PAYOUT_ENGINE_TRACE record with engine name, version, input
    fingerprint and duration.

Usage:
    from payout_engines import CommissionCalculator, ProrationCalculator
"""

from payout_kernel.logging_config import get_logger

logger = get_logger("engines")

from payout_engines.commission import (
    CommissionCalculator,
    CommissionResult,
    apply_cohost_share,
    cleaning_passthrough_fee,
    is_waiver_active,
    resolve_fee_percent,
    should_add_tax,
)
from payout_engines.expenses import (
    ClassifiedExpense,
    ExpenseBreakdown,
    ExpenseClassifier,
    cleaning_mismatch,
)
from payout_engines.proration import ProrationCalculator, ProrationSlice
from payout_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ClassifiedExpense",
    "CommissionCalculator",
    "CommissionResult",
    "ExpenseBreakdown",
    "ExpenseClassifier",
    "ProrationCalculator",
    "ProrationSlice",
    "apply_cohost_share",
    "cleaning_mismatch",
    "cleaning_passthrough_fee",
    "compute_input_fingerprint",
    "is_waiver_active",
    "resolve_fee_percent",
    "should_add_tax",
    "traced_engine",
]
