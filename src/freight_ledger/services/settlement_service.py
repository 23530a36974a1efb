"""Settlement creation, recalculation and status transitions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from freight_ledger.calculators.settlement_calculator import (
    SettlementSummary,
    compute_settlement,
    eligible_loads_for_settlement,
    summarize_settlements,
)
from freight_ledger.calculators.types import (
    ZERO,
    OtherEarning,
    SettlementCalculation,
    round_money,
    to_decimal,
)
from freight_ledger.context import TenantContext
from freight_ledger.exceptions import InvalidStateTransition, NotFound, ValidationFailed
from freight_ledger.models import Driver, Expense, Load, Settlement, SettlementLoad
from freight_ledger.models.base import utcnow
from freight_ledger.services.audit import AuditEntry, AuditSink, DatabaseAuditSink, record_audit
from freight_ledger.services.load_locking import LoadPatch, LoadUpdateService
from freight_ledger.services.sequence_service import EntityKind, SequenceService
from freight_ledger.services.state_machine import (
    SettlementStateMachine,
    SettlementStatus,
    status_value,
)

logger = logging.getLogger(__name__)


@dataclass
class SettlementRequest:
    """Inputs for one settlement run."""

    driver_id: UUID
    load_ids: list[UUID]
    period_start: date | None = None
    period_end: date | None = None
    deductions: dict[str, Any] = field(default_factory=dict)
    other_earnings: list[OtherEarning] = field(default_factory=list)
    include_expenses: bool = True
    notes: str | None = None


@dataclass
class SettlementOutcome:
    settlement: Settlement
    calculation: SettlementCalculation
    warnings: list[str] = field(default_factory=list)


@dataclass
class _StoredFigures:
    """Cent-rounded figures whose identities hold exactly once stored."""

    entries: list[SettlementLoad]
    deductions: dict[str, Decimal]
    other_earnings: list[dict[str, Any]]
    gross_pay: Decimal
    other_earnings_total: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    total_miles: Decimal
    effective_rate: Decimal


def _stored_figures(calculation: SettlementCalculation) -> _StoredFigures:
    entries = []
    for entry in calculation.entries:
        base_pay = round_money(entry.base_pay)
        detention = round_money(entry.detention)
        layover = round_money(entry.layover)
        tonu = round_money(entry.tonu)
        entries.append(
            SettlementLoad(
                load_id=entry.load_id,
                load_number=entry.load_number,
                pay_source=entry.pay_source.value,
                base_pay=base_pay,
                detention=detention,
                layover=layover,
                tonu=tonu,
                total_pay=base_pay + detention + layover + tonu,
                miles=entry.miles,
            )
        )

    deductions = {
        category.value: round_money(amount) for category, amount in calculation.deductions.items()
    }
    earnings = [
        OtherEarning(
            amount=round_money(earning.amount),
            description=earning.description,
            earning_type=earning.earning_type,
        )
        for earning in calculation.other_earnings
    ]

    gross_pay = sum((entry.total_pay for entry in entries), ZERO)
    other_total = sum((earning.amount for earning in earnings), ZERO)
    total_deductions = sum(deductions.values(), ZERO)
    total_miles = calculation.total_miles
    effective_rate = round_money(gross_pay / total_miles) if total_miles else ZERO

    return _StoredFigures(
        entries=entries,
        deductions=deductions,
        other_earnings=[earning.to_dict() for earning in earnings],
        gross_pay=gross_pay,
        other_earnings_total=other_total,
        total_deductions=total_deductions,
        net_pay=gross_pay + other_total - total_deductions,
        total_miles=total_miles,
        effective_rate=effective_rate,
    )


def _deduction_inputs(deductions: Mapping[str, Any]) -> dict[str, str]:
    return {str(key): str(to_decimal(value)) for key, value in deductions.items()}


def _apply_figures(settlement: Settlement, figures: _StoredFigures) -> None:
    settlement.gross_pay = figures.gross_pay
    settlement.other_earnings_total = figures.other_earnings_total
    settlement.total_deductions = figures.total_deductions
    settlement.net_pay = figures.net_pay
    settlement.total_miles = figures.total_miles
    settlement.effective_rate = figures.effective_rate
    settlement.deductions = {key: str(value) for key, value in figures.deductions.items()}
    settlement.other_earnings = figures.other_earnings


class SettlementService:
    """Service for driver settlements.

    Settlement lifecycle:
    1. Create (draft): validate, compute, number, persist, link loads
    2. Recalculate while draft or pending
    3. Move through pending → processed → paid
    4. Void at any point before paid, unlinking the loads
    """

    def __init__(
        self,
        session: AsyncSession,
        sequences: SequenceService,
        audit_sink: AuditSink | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.session = session
        self.sequences = sequences
        self._today = today
        self.audit_sink = audit_sink if audit_sink is not None else DatabaseAuditSink(session)
        self.loads = LoadUpdateService(session, self.audit_sink)

    async def preview(self, ctx: TenantContext, request: SettlementRequest) -> SettlementCalculation:
        """Compute a settlement without persisting anything."""
        driver, loads, expenses = await self._gather_inputs(ctx, request)
        return compute_settlement(
            driver,
            loads,
            deductions=request.deductions,
            other_earnings=request.other_earnings,
            expenses=expenses,
            period_start=request.period_start,
            period_end=request.period_end,
        )

    async def create_settlement(
        self,
        ctx: TenantContext,
        request: SettlementRequest,
    ) -> SettlementOutcome:
        """Create a draft settlement and link its loads.

        Raises:
            NotFound: If the driver or any load does not exist
            CrossOwnerViolation: If a load belongs to another driver
            ValidationFailed: For other input problems, or loads already settled
            CounterUnavailable: If no settlement number could be allocated
        """
        driver, loads, expenses = await self._gather_inputs(ctx, request)
        calculation = compute_settlement(
            driver,
            loads,
            deductions=request.deductions,
            other_earnings=request.other_earnings,
            expenses=expenses,
            period_start=request.period_start,
            period_end=request.period_end,
        )

        settled = [load for load in loads if load.settlement_id is not None]
        if settled:
            raise ValidationFailed(
                [
                    f"{len(settled)} load(s) already have settlements: "
                    + ", ".join(load.load_number for load in settled)
                ],
                calculation.warnings,
            )

        year = (request.period_end or self._today()).year
        number = await self.sequences.next_formatted(ctx, EntityKind.SETTLEMENT, year)

        figures = _stored_figures(calculation)
        settlement = Settlement(
            tenant_id=ctx.tenant_id,
            settlement_number=number,
            driver_id=driver.driver_id,
            period_start=request.period_start,
            period_end=request.period_end,
            status=SettlementStatus.DRAFT.value,
            notes=request.notes,
            created_by=ctx.actor_id,
            loads=figures.entries,
        )
        settlement.deduction_inputs = _deduction_inputs(request.deductions)
        _apply_figures(settlement, figures)
        self.session.add(settlement)
        await self.session.flush()

        warnings = list(calculation.warnings)
        for load in loads:
            result = await self.loads.apply_patch(
                ctx, load, LoadPatch(settlement_id=settlement.settlement_id)
            )
            warnings.extend(result.warnings)

        logger.info(
            "Settlement %s created for driver %s: gross %s, net %s",
            number,
            driver.driver_id,
            settlement.gross_pay,
            settlement.net_pay,
        )
        await self._audit(ctx, settlement, "create", None, warnings)
        return SettlementOutcome(settlement=settlement, calculation=calculation, warnings=warnings)

    async def recalculate(
        self,
        ctx: TenantContext,
        settlement_id: UUID,
        deductions: Mapping[str, Any] | None = None,
        other_earnings: list[OtherEarning] | None = None,
    ) -> SettlementOutcome:
        """Recompute figures from the current loads. Refused once processed or later."""
        settlement = await self.get_settlement(ctx, settlement_id)
        if not SettlementStateMachine.can_calculate(settlement.status):
            raise InvalidStateTransition(
                "settlement",
                settlement.status,
                settlement.status,
                reason="figures are final once a settlement is processed, paid or void",
            )

        if deductions is None:
            deductions = dict(settlement.deduction_inputs)
        if other_earnings is None:
            other_earnings = [
                OtherEarning(
                    amount=to_decimal(item["amount"]),
                    description=item.get("description", ""),
                    earning_type=item.get("type", "other"),
                )
                for item in settlement.other_earnings
            ]

        request = SettlementRequest(
            driver_id=settlement.driver_id,
            load_ids=[entry.load_id for entry in settlement.loads],
            period_start=settlement.period_start,
            period_end=settlement.period_end,
            deductions=dict(deductions),
            other_earnings=list(other_earnings),
        )
        driver, loads, expenses = await self._gather_inputs(ctx, request)
        calculation = compute_settlement(
            driver,
            loads,
            deductions=request.deductions,
            other_earnings=request.other_earnings,
            expenses=expenses,
            period_start=request.period_start,
            period_end=request.period_end,
            current_settlement_id=settlement.settlement_id,
        )

        settlement.deduction_inputs = _deduction_inputs(request.deductions)
        figures = _stored_figures(calculation)
        settlement.loads.clear()
        await self.session.flush()
        settlement.loads.extend(figures.entries)
        _apply_figures(settlement, figures)
        settlement.updated_at = utcnow()
        await self.session.flush()

        logger.info(
            "Settlement %s recalculated: net %s", settlement.settlement_number, settlement.net_pay
        )
        warnings = list(calculation.warnings)
        await self._audit(ctx, settlement, "recalculate", None, warnings)
        return SettlementOutcome(settlement=settlement, calculation=calculation, warnings=warnings)

    async def transition(
        self,
        ctx: TenantContext,
        settlement_id: UUID,
        target: str | SettlementStatus,
        reason: str | None = None,
    ) -> Settlement:
        """Move a settlement to its next status.

        Raises:
            InvalidStateTransition: If the move is not allowed from the current status
        """
        target = SettlementStatus(target)
        if target == SettlementStatus.VOID:
            return await self.void_settlement(ctx, settlement_id, reason or "")

        settlement = await self.get_settlement(ctx, settlement_id)
        SettlementStateMachine.validate_transition(settlement.status, target)

        now = utcnow()
        previous = settlement.status
        settlement.status = target.value
        if target == SettlementStatus.PROCESSED:
            settlement.processed_at = now
        elif target == SettlementStatus.PAID:
            settlement.paid_at = now
        settlement.updated_at = now
        await self.session.flush()

        logger.info(
            "Settlement %s: %s -> %s by %s",
            settlement.settlement_number,
            previous,
            target.value,
            ctx.actor_id,
        )
        await self._audit(ctx, settlement, target.value, reason, [])
        return settlement

    async def void_settlement(
        self,
        ctx: TenantContext,
        settlement_id: UUID,
        reason: str,
    ) -> Settlement:
        """Void a settlement and release its loads for settling again."""
        if not reason or not reason.strip():
            raise ValidationFailed(["A reason is required to void a settlement"])

        settlement = await self.get_settlement(ctx, settlement_id)
        SettlementStateMachine.validate_transition(settlement.status, SettlementStatus.VOID)

        now = utcnow()
        settlement.status = SettlementStatus.VOID.value
        settlement.voided_at = now
        settlement.void_reason = reason.strip()
        settlement.updated_at = now

        for entry in settlement.loads:
            load = await self.loads.get_load(ctx, entry.load_id)
            if load.settlement_id == settlement.settlement_id:
                await self.loads.apply_patch(
                    ctx, load, LoadPatch(settlement_id=None), reason, allow_unlink=True
                )
        await self.session.flush()

        logger.info("Settlement %s voided by %s", settlement.settlement_number, ctx.actor_id)
        await self._audit(ctx, settlement, "void", reason.strip(), [])
        return settlement

    async def get_settlement(self, ctx: TenantContext, settlement_id: UUID) -> Settlement:
        settlement = await self.session.scalar(
            select(Settlement).where(
                Settlement.settlement_id == settlement_id,
                Settlement.tenant_id == ctx.tenant_id,
            )
        )
        if settlement is None:
            raise NotFound("settlement", settlement_id)
        return settlement

    async def list_settlements(
        self,
        ctx: TenantContext,
        driver_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Settlement]:
        query = select(Settlement).where(Settlement.tenant_id == ctx.tenant_id)
        if driver_id is not None:
            query = query.where(Settlement.driver_id == driver_id)
        if status is not None:
            query = query.where(Settlement.status == status_value(status))
        result = await self.session.execute(query.order_by(Settlement.created_at))
        return list(result.scalars().all())

    async def summary(
        self,
        ctx: TenantContext,
        driver_id: UUID | None = None,
    ) -> SettlementSummary:
        """Totals over the tenant's non-void settlements."""
        settlements = await self.list_settlements(ctx, driver_id=driver_id)
        return summarize_settlements(
            s for s in settlements if s.status != SettlementStatus.VOID.value
        )

    async def eligible_loads(
        self,
        ctx: TenantContext,
        driver_id: UUID,
        period_start: date,
        period_end: date,
    ) -> list[Load]:
        result = await self.session.execute(
            select(Load).where(Load.tenant_id == ctx.tenant_id, Load.driver_id == driver_id)
        )
        return eligible_loads_for_settlement(
            result.scalars().all(), driver_id, period_start, period_end
        )

    async def _gather_inputs(
        self,
        ctx: TenantContext,
        request: SettlementRequest,
    ) -> tuple[Driver, list[Load], list[Expense]]:
        driver = await self.session.scalar(
            select(Driver).where(
                Driver.driver_id == request.driver_id,
                Driver.tenant_id == ctx.tenant_id,
            )
        )
        if driver is None:
            raise NotFound("driver", request.driver_id)

        loads: list[Load] = []
        if request.load_ids:
            result = await self.session.execute(
                select(Load).where(
                    Load.tenant_id == ctx.tenant_id,
                    Load.load_id.in_(request.load_ids),
                )
            )
            by_id = {load.load_id: load for load in result.scalars().all()}
            for load_id in request.load_ids:
                if load_id not in by_id:
                    raise NotFound("load", load_id)
                loads.append(by_id[load_id])

        expenses: list[Expense] = []
        if request.include_expenses and loads:
            result = await self.session.execute(
                select(Expense).where(
                    Expense.tenant_id == ctx.tenant_id,
                    Expense.driver_id == driver.driver_id,
                    Expense.load_id.in_([load.load_id for load in loads]),
                )
            )
            expenses = list(result.scalars().all())

        return driver, loads, expenses

    async def _audit(
        self,
        ctx: TenantContext,
        settlement: Settlement,
        action: str,
        reason: str | None,
        warnings: list[str],
    ) -> None:
        warning = await record_audit(
            self.audit_sink,
            AuditEntry(
                tenant_id=ctx.tenant_id,
                entity_type="settlement",
                entity_id=str(settlement.settlement_id),
                action=action,
                patch={
                    "status": settlement.status,
                    "gross_pay": str(settlement.gross_pay),
                    "net_pay": str(settlement.net_pay),
                },
                reason=reason,
                actor_id=ctx.actor_id,
            ),
        )
        if warning:
            warnings.append(warning)
