"""
Module: payout_engines.expenses
Responsibility:
    Classify expense rows of a statement period into deductions,
    additional payouts (upsells), landlord-covered items and skipped
    cleaning pass-through costs, and total them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Landlord-covered expenses are listed but never deducted.
    - Deductions are accumulated as ``abs(amount)``; additional payouts
      keep their sign.
    - Every expense in the input appears in exactly one bucket, or is
      dropped as out-of-scope (wrong property or date).

Failure modes:
    - None raised.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from payout_engines.tracer import traced_engine
from payout_kernel.db.types import ZERO, round_money
from payout_kernel.domain.dtos import ExpenseInput, ExpenseKind
from payout_kernel.logging_config import get_logger

logger = get_logger("engines.expenses")

DEFAULT_LANDLORD_MARKERS = ("ll cover", "llcover")
CLEANING_MARKERS = ("cleaning", "supplies")


@dataclass(frozen=True)
class ClassifiedExpense:
    expense: ExpenseInput
    kind: ExpenseKind
    amount: Decimal


@dataclass(frozen=True)
class ExpenseBreakdown:
    """Expenses of one statement, bucketed by ExpenseKind."""

    items: tuple[ClassifiedExpense, ...] = field(default_factory=tuple)
    total_expenses: Decimal = ZERO
    total_additional_payouts: Decimal = ZERO

    def of_kind(self, kind: ExpenseKind) -> tuple[ClassifiedExpense, ...]:
        return tuple(item for item in self.items if item.kind == kind)

    @property
    def landlord_covered(self) -> tuple[ClassifiedExpense, ...]:
        return self.of_kind(ExpenseKind.LANDLORD_COVERED)

    @property
    def passthrough_cleaning_count(self) -> int:
        """Cleaning bills of pass-through properties (skipped from deduction)."""
        return sum(
            1 for item in self.of_kind(ExpenseKind.SKIPPED_PASSTHROUGH)
            if _mentions(item.expense, ("cleaning",), vendor=False)
        )


def _mentions(expense: ExpenseInput, markers: Sequence[str], vendor: bool = True) -> bool:
    fields = [expense.description, expense.category, expense.expense_type]
    if vendor:
        fields.append(expense.vendor)
    haystack = [(value or "").lower() for value in fields]
    return any(marker in text for marker in markers for text in haystack)


class ExpenseClassifier:
    """
    Buckets expenses for a statement.

    ``passthrough_properties`` holds the ids of properties whose guest
    cleaning fee is passed through; their cleaning and supplies expenses
    are skipped because the cleaning cost is already recovered per stay.
    """

    def __init__(self, landlord_markers: Sequence[str] = DEFAULT_LANDLORD_MARKERS):
        self._landlord_markers = tuple(m.lower() for m in landlord_markers)

    def is_landlord_covered(self, expense: ExpenseInput) -> bool:
        if expense.landlord_covered:
            return True
        fields = (expense.description, expense.vendor, expense.category)
        return any(
            marker in (value or "").lower()
            for marker in self._landlord_markers
            for value in fields
        )

    @staticmethod
    def is_additional_payout(expense: ExpenseInput) -> bool:
        return (
            expense.amount > ZERO
            or (expense.expense_type or "").lower() == "upsell"
            or (expense.category or "").lower() == "upsell"
        )

    @traced_engine(
        "expense_classifier", "1.0",
        fingerprint_fields=("expenses", "property_ids", "period_start", "period_end"),
    )
    def classify(
        self,
        *,
        expenses: Iterable[ExpenseInput],
        property_ids: Iterable[str],
        period_start: date,
        period_end: date,
        passthrough_properties: Iterable[str] = (),
    ) -> ExpenseBreakdown:
        """Classify expenses of ``property_ids`` dated within the inclusive period.

        Expenses without a property are portfolio-wide and always in scope.
        """
        scope = {str(pid) for pid in property_ids}
        passthrough = {str(pid) for pid in passthrough_properties}
        items: list[ClassifiedExpense] = []
        total_expenses = ZERO
        total_additional = ZERO

        for expense in expenses:
            if expense.property_id is not None and str(expense.property_id) not in scope:
                continue
            if not period_start <= expense.expense_date <= period_end:
                continue

            if self.is_landlord_covered(expense):
                kind = ExpenseKind.LANDLORD_COVERED
                amount = round_money(abs(expense.amount))
            elif (
                expense.property_id is not None
                and str(expense.property_id) in passthrough
                and _mentions(expense, CLEANING_MARKERS, vendor=False)
            ):
                kind = ExpenseKind.SKIPPED_PASSTHROUGH
                amount = round_money(abs(expense.amount))
            elif self.is_additional_payout(expense):
                kind = ExpenseKind.ADDITIONAL_PAYOUT
                amount = round_money(expense.amount)
                total_additional += amount
            else:
                kind = ExpenseKind.DEDUCTION
                amount = round_money(abs(expense.amount))
                total_expenses += amount

            items.append(ClassifiedExpense(expense=expense, kind=kind, amount=amount))

        return ExpenseBreakdown(
            items=tuple(items),
            total_expenses=round_money(total_expenses),
            total_additional_payouts=round_money(total_additional),
        )


def cleaning_mismatch(
    passthrough_reservation_count: int,
    cleaning_expense_count: int,
) -> str | None:
    """Warning text when cleaning bills do not line up with pass-through stays."""
    if passthrough_reservation_count == 0:
        return None
    if cleaning_expense_count == passthrough_reservation_count:
        return None
    return (
        f"Cleaning expense count ({cleaning_expense_count}) does not match "
        f"reservation count ({passthrough_reservation_count})"
    )
