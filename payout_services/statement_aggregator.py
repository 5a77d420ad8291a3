"""
payout_services.statement_aggregator -- Builds owner statements.

Responsibility:
    For a property or a listing group and a period, gather reservations
    and expenses, run the proration, commission and expense engines, and
    write one StatementModel with totals and line items.

Architecture position:
    Services -- stateful orchestration over engines + kernel models.
    Flushes, never commits; the caller owns the transaction.

Invariants enforced:
    - One statement per (entity, period): an existing draft is updated in
      place, anything past draft is rejected with
      StatementAlreadyGeneratedError, and a concurrent insert surfaces as
      DuplicateStatementError (UNIQUE constraint).
    - An entity with no reservations and no expenses still gets a
      zero-value statement.
    - owner_payout = gross payout + additional payouts - expenses
      - tech fees - insurance fees + adjustments.
    - A pass-through cleaning fee and a co-host fixed fee are charged once
      per reservation, in the period the stay ends in.

Failure modes:
    - EntityNotFoundError: unknown property or group.
    - MissingFeeConfigurationError: a property without a commission
      percentage while ``require_fee_configuration`` is set.
    - StatementAlreadyGeneratedError / DuplicateStatementError as above.

Usage:
    aggregator = StatementAggregator(session, clock=clock)
    statement = aggregator.generate_for_property(
        property_id, date(2026, 1, 1), date(2026, 1, 31),
        mode=CalculationMode.CALENDAR,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payout_config.schema import FeeConfig, StatementConfig
from payout_engines.commission import (
    CommissionCalculator,
    apply_cohost_share,
    cleaning_passthrough_fee,
    resolve_fee_percent,
    should_add_tax,
)
from payout_engines.expenses import (
    ExpenseBreakdown,
    ExpenseClassifier,
    cleaning_mismatch,
)
from payout_engines.proration import ProrationCalculator, ProrationSlice
from payout_kernel.db.types import ZERO, round_money
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.dtos import (
    CalculationMode,
    ExpenseKind,
    PropertyBilling,
    ReservationInput,
    StatementStatus,
)
from payout_kernel.exceptions import (
    DuplicateStatementError,
    EntityNotFoundError,
    StatementAlreadyGeneratedError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models import (
    ExpenseModel,
    ListingGroupModel,
    PropertyModel,
    ReservationModel,
    StatementModel,
    group_entity_key,
    has_tag,
    property_entity_key,
)

logger = get_logger("services.statement_aggregator")


@dataclass(frozen=True)
class StatementTarget:
    """A property or a listing group that receives one statement."""

    kind: str  # "property" or "group"
    entity_id: UUID
    label: str

    @property
    def entity_key(self) -> str:
        if self.kind == "group":
            return group_entity_key(self.entity_id)
        return property_entity_key(self.entity_id)


@dataclass
class PropertyFigures:
    """Reservation-side totals of one property for one period."""

    billing: PropertyBilling
    revenue: Decimal = ZERO
    commission: Decimal = ZERO
    commission_deducted: Decimal = ZERO
    tax: Decimal = ZERO
    cleaning_fee: Decimal = ZERO
    gross_payout: Decimal = ZERO
    waiver_active: bool = False
    fee_percents: set[Decimal] = field(default_factory=set)
    passthrough_reservations: int = 0
    items: list[dict[str, Any]] = field(default_factory=list)


def _money(value: Decimal) -> str:
    return str(round_money(value))


class StatementAggregator:
    """
    Generates statements for properties and listing groups.

    Contract:
        ``period_end`` is inclusive.  Reservations are sliced over the
        half-open night range ``[period_start, period_end + 1 day)``.
    Non-goals:
        - Does NOT commit.
        - Does NOT move the statement past draft; see StatementService.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fee_config: FeeConfig | None = None,
        statement_config: StatementConfig | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.fees = fee_config or FeeConfig()
        self.statements = statement_config or StatementConfig()
        self.proration = ProrationCalculator()
        self.commission = CommissionCalculator()
        self.classifier = ExpenseClassifier(self.fees.landlord_cover_markers)

    # =========================================================================
    # Targets
    # =========================================================================

    def targets_for_tag(self, tag_name: str) -> list[StatementTarget]:
        """
        Entities that receive a statement when ``tag_name`` fires.

        A tagged group produces one combined statement for all members; a
        tagged property is reported alone unless its group carries the same
        tag.
        """
        groups = self.session.execute(
            select(ListingGroupModel).order_by(ListingGroupModel.name)
        ).scalars().all()
        tagged_groups = [g for g in groups if has_tag(g.tags, tag_name)]
        covered_groups = {g.id for g in tagged_groups}

        properties = self.session.execute(
            select(PropertyModel)
            .where(PropertyModel.is_active == True)  # noqa: E712
            .order_by(PropertyModel.name)
        ).scalars().all()

        targets = [StatementTarget("group", g.id, g.name) for g in tagged_groups]
        targets.extend(
            StatementTarget("property", p.id, p.name)
            for p in properties
            if has_tag(p.tags, tag_name) and p.group_id not in covered_groups
        )
        return targets

    def generate(
        self,
        target: StatementTarget,
        period_start: date,
        period_end: date,
        mode: CalculationMode | None = None,
    ) -> StatementModel:
        if target.kind == "group":
            return self.generate_for_group(target.entity_id, period_start, period_end, mode)
        return self.generate_for_property(target.entity_id, period_start, period_end, mode)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_for_property(
        self,
        property_id: UUID,
        period_start: date,
        period_end: date,
        mode: CalculationMode | None = None,
    ) -> StatementModel:
        prop = self.session.get(PropertyModel, property_id)
        if prop is None:
            raise EntityNotFoundError("property", str(property_id))

        mode = mode or self.statements.default_calculation_mode
        entity_key = property_entity_key(prop.id)
        statement = self._claim(entity_key, period_start, period_end)

        figures = self._property_figures(prop, period_start, period_end, mode)
        breakdown = self._classify_expenses([prop], period_start, period_end)

        statement.property_id = prop.id
        statement.group_id = prop.group_id
        statement.is_combined = False
        statement.owner_name = prop.owner_name
        statement.owner_email = prop.owner_email
        statement.property_ids = [str(prop.id)]
        self._write_totals(statement, mode, [figures], breakdown)

        return self._store(statement, entity_key, period_start, period_end)

    def generate_for_group(
        self,
        group_id: UUID,
        period_start: date,
        period_end: date,
        mode: CalculationMode | None = None,
    ) -> StatementModel:
        group = self.session.get(ListingGroupModel, group_id)
        if group is None:
            raise EntityNotFoundError("listing_group", str(group_id))

        mode = mode or group.mode or self.statements.default_calculation_mode
        entity_key = group_entity_key(group.id)
        statement = self._claim(entity_key, period_start, period_end)

        members = [m for m in group.members if m.is_active]
        all_figures = [
            self._property_figures(m, period_start, period_end, mode) for m in members
        ]
        breakdown = self._classify_expenses(members, period_start, period_end)

        statement.property_id = None
        statement.group_id = group.id
        statement.is_combined = True
        statement.group_name = group.name
        statement.group_tags = group.tag_list
        statement.property_ids = [str(m.id) for m in members]
        owner = next((m for m in members if m.owner_name), None)
        statement.owner_name = owner.owner_name if owner else group.name
        statement.owner_email = owner.owner_email if owner else None
        self._write_totals(statement, mode, all_figures, breakdown)

        return self._store(statement, entity_key, period_start, period_end)

    # =========================================================================
    # Internal: persistence
    # =========================================================================

    def _claim(self, entity_key: str, period_start: date, period_end: date) -> StatementModel:
        """Existing draft (locked) or a new transient statement."""
        existing = self.session.execute(
            select(StatementModel)
            .where(
                StatementModel.entity_key == entity_key,
                StatementModel.period_start == period_start,
                StatementModel.period_end == period_end,
            )
            .with_for_update()
        ).scalar_one_or_none()

        if existing is not None:
            if existing.status != StatementStatus.DRAFT.value:
                raise StatementAlreadyGeneratedError(
                    str(existing.id), entity_key, existing.status,
                )
            logger.info(
                "statement_regenerating_draft",
                extra={"statement_id": str(existing.id), "entity_key": entity_key},
            )
            return existing

        return StatementModel(
            entity_key=entity_key,
            period_start=period_start,
            period_end=period_end,
            status=StatementStatus.DRAFT.value,
        )

    def _store(
        self,
        statement: StatementModel,
        entity_key: str,
        period_start: date,
        period_end: date,
    ) -> StatementModel:
        is_new = statement not in self.session
        if is_new:
            savepoint = self.session.begin_nested()
            try:
                self.session.add(statement)
                self.session.flush()
            except IntegrityError:
                savepoint.rollback()
                raise DuplicateStatementError(
                    entity_key, period_start.isoformat(), period_end.isoformat(),
                ) from None
            savepoint.commit()
        else:
            self.session.flush()

        with LogContext.bind(statement_id=str(statement.id)):
            logger.info(
                "statement_generated",
                extra={
                    "entity_key": entity_key,
                    "period_start": period_start,
                    "period_end": period_end,
                    "calculation_mode": statement.calculation_mode,
                    "owner_payout": statement.owner_payout,
                    "regenerated": not is_new,
                },
            )
        return statement

    # =========================================================================
    # Internal: figures
    # =========================================================================

    def _reservations(
        self, property_id: UUID, period_start: date, period_end_exclusive: date,
    ) -> list[ReservationInput]:
        allowed = {s.value for s in self.statements.allowed_reservation_statuses}
        rows = self.session.execute(
            select(ReservationModel)
            .where(
                ReservationModel.property_id == property_id,
                ReservationModel.check_in < period_end_exclusive,
                ReservationModel.check_out >= period_start,
            )
            .order_by(ReservationModel.check_in, ReservationModel.id)
        ).scalars().all()
        return [r.to_dto() for r in rows if (r.status or "").lower() in allowed]

    def _property_figures(
        self,
        prop: PropertyModel,
        period_start: date,
        period_end: date,
        mode: CalculationMode,
    ) -> PropertyFigures:
        billing = prop.to_dto()
        end_exclusive = period_end + timedelta(days=1)
        figures = PropertyFigures(billing=billing)
        default_fee = None if self.fees.require_fee_configuration else self.fees.default_commission_percent

        for reservation in self._reservations(prop.id, period_start, end_exclusive):
            part = self.proration.slice(
                reservation=reservation,
                period_start=period_start,
                period_end=end_exclusive,
                mode=mode,
            )
            if part.is_empty:
                continue

            fee_percent = resolve_fee_percent(billing, reservation.booked_on, default_fee)
            self._add_reservation(
                figures, reservation, part, fee_percent,
                period_start, end_exclusive, period_end, mode,
            )

        return figures

    def _add_reservation(
        self,
        figures: PropertyFigures,
        reservation: ReservationInput,
        part: ProrationSlice,
        fee_percent: Decimal,
        period_start: date,
        end_exclusive: date,
        period_end: date,
        mode: CalculationMode,
    ) -> None:
        billing = figures.billing
        platform_booking = self.fees.cohost_platform in reservation.source.lower()
        cohost_external = billing.cohost_on_external_platform and platform_booking
        closes_here = self._stay_ends_in_period(reservation, period_start, end_exclusive, mode)

        revenue = part.revenue
        if billing.cohost_percent is not None:
            fixed = billing.cohost_fixed_fee if closes_here else None
            revenue = apply_cohost_share(revenue, billing.cohost_percent, fixed)

        cleaning = round_money(ZERO)
        if billing.cleaning_fee_pass_through and closes_here:
            cleaning = cleaning_passthrough_fee(
                reservation.guest_cleaning_fee, fee_percent,
                self.fees.cleaning_rounding_increment,
            )
            figures.passthrough_reservations += 1

        result = self.commission.calculate(
            revenue=revenue,
            fee_percent=fee_percent,
            period_end=period_end,
            tax_responsibility=part.tax_responsibility,
            passthrough_cleaning_fee=cleaning,
            is_cohost_external=cohost_external,
            add_tax=should_add_tax(
                billing.disregard_tax, platform_booking, billing.pass_through_platform_tax,
            ),
            waiver_enabled=billing.waiver_enabled,
            waiver_expires_on=billing.waiver_expires_on,
        )

        if not cohost_external:
            figures.revenue += revenue
        figures.commission += result.commission
        figures.commission_deducted += result.commission_deducted
        figures.tax += result.tax_added
        figures.cleaning_fee += cleaning
        figures.gross_payout += result.gross_payout
        figures.waiver_active = figures.waiver_active or result.waiver_active
        figures.fee_percents.add(fee_percent)

        figures.items.append({
            "type": "revenue",
            "reference": reservation.reservation_id,
            "property_id": reservation.property_id,
            "description": (
                f"{reservation.guest_name or 'Guest'} - "
                f"{reservation.check_in.isoformat()} to {reservation.check_out.isoformat()}"
            ),
            "date": reservation.check_out.isoformat(),
            "category": "booking",
            "source": reservation.source,
            "amount": _money(revenue),
            "commission": _money(result.commission),
            "commission_deducted": _money(result.commission_deducted),
            "tax": _money(result.tax_added),
            "cleaning_fee": _money(cleaning),
            "gross_payout": _money(result.gross_payout),
            "fee_percent": str(fee_percent),
            "cohost_external": cohost_external,
            "note": part.note if part.is_partial else None,
        })

    @staticmethod
    def _stay_ends_in_period(
        reservation: ReservationInput,
        period_start: date,
        end_exclusive: date,
        mode: CalculationMode,
    ) -> bool:
        # Checkout mode only ever sees the slice containing the checkout.
        if mode == CalculationMode.CHECKOUT or reservation.total_nights <= 0:
            return True
        return period_start < reservation.check_out <= end_exclusive

    def _classify_expenses(
        self,
        properties: Sequence[PropertyModel],
        period_start: date,
        period_end: date,
    ) -> ExpenseBreakdown:
        ids = [p.id for p in properties]
        if not ids:
            return ExpenseBreakdown()
        rows = self.session.execute(
            select(ExpenseModel)
            .where(
                ExpenseModel.property_id.in_(ids),
                ExpenseModel.expense_date >= period_start,
                ExpenseModel.expense_date <= period_end,
            )
            .order_by(ExpenseModel.expense_date, ExpenseModel.id)
        ).scalars().all()
        return self.classifier.classify(
            expenses=[r.to_dto() for r in rows],
            property_ids=[str(i) for i in ids],
            period_start=period_start,
            period_end=period_end,
            passthrough_properties=[
                str(p.id) for p in properties if p.cleaning_fee_pass_through
            ],
        )

    def _fixed_fee(self, value: Decimal | None, default: Decimal) -> Decimal:
        return round_money(value if value is not None else default)

    def _write_totals(
        self,
        statement: StatementModel,
        mode: CalculationMode,
        all_figures: Iterable[PropertyFigures],
        breakdown: ExpenseBreakdown,
    ) -> None:
        all_figures = list(all_figures)

        def total(attr: str) -> Decimal:
            return round_money(sum((getattr(f, attr) for f in all_figures), ZERO))

        tech_fees = round_money(sum(
            (self._fixed_fee(f.billing.tech_fee, self.fees.default_tech_fee) for f in all_figures),
            ZERO,
        ))
        insurance_fees = round_money(sum(
            (self._fixed_fee(f.billing.insurance_fee, self.fees.default_insurance_fee)
             for f in all_figures),
            ZERO,
        ))
        gross_payout = total("gross_payout")
        owner_payout = round_money(
            gross_payout
            + breakdown.total_additional_payouts
            - breakdown.total_expenses
            - tech_fees
            - insurance_fees
        )

        fee_percents = set().union(*(f.fee_percents for f in all_figures)) if all_figures else set()
        items = [item for f in all_figures for item in f.items]
        items.extend(self._expense_items(breakdown))

        statement.calculation_mode = mode.value
        statement.total_revenue = total("revenue")
        statement.total_commission = total("commission")
        statement.total_commission_deducted = total("commission_deducted")
        statement.commission_percent = fee_percents.pop() if len(fee_percents) == 1 else None
        statement.total_tax = total("tax")
        statement.total_cleaning_fee = total("cleaning_fee")
        statement.gross_payout = gross_payout
        statement.total_expenses = breakdown.total_expenses
        statement.total_additional_payouts = breakdown.total_additional_payouts
        statement.tech_fees = tech_fees
        statement.insurance_fees = insurance_fees
        statement.adjustments = round_money(ZERO)
        statement.owner_payout = owner_payout
        statement.commission_waived = any(f.waiver_active for f in all_figures)
        statement.items = items
        statement.internal_notes = cleaning_mismatch(
            sum(f.passthrough_reservations for f in all_figures),
            breakdown.passthrough_cleaning_count,
        )

    @staticmethod
    def _expense_items(breakdown: ExpenseBreakdown) -> list[dict[str, Any]]:
        kind_to_type = {
            ExpenseKind.DEDUCTION: "expense",
            ExpenseKind.ADDITIONAL_PAYOUT: "upsell",
            ExpenseKind.LANDLORD_COVERED: "landlord_covered",
            ExpenseKind.SKIPPED_PASSTHROUGH: "skipped_passthrough",
        }
        return [
            {
                "type": kind_to_type[item.kind],
                "reference": item.expense.expense_id,
                "property_id": item.expense.property_id,
                "description": item.expense.description,
                "date": item.expense.expense_date.isoformat(),
                "category": item.expense.expense_type or item.expense.category or "expense",
                "vendor": item.expense.vendor,
                "amount": _money(item.amount),
            }
            for item in breakdown.items
        ]
