"""Approval workflow for changes to locked loads."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from freight_ledger.context import TenantContext
from freight_ledger.exceptions import ConcurrentModification, NotFound, ValidationFailed
from freight_ledger.models import Adjustment
from freight_ledger.models.base import utcnow
from freight_ledger.services.audit import AuditEntry, AuditSink, DatabaseAuditSink, record_audit
from freight_ledger.services.load_locking import (
    LoadPatch,
    LoadUpdateService,
    validate_locked_update,
)
from freight_ledger.services.state_machine import AdjustmentStateMachine, AdjustmentStatus

logger = logging.getLogger(__name__)


@dataclass
class AdjustmentOutcome:
    adjustment: Adjustment
    warnings: list[str] = field(default_factory=list)

    @property
    def adjustment_id(self) -> UUID:
        return self.adjustment.adjustment_id

    @property
    def status(self) -> str:
        return self.adjustment.status


class AdjustmentService:
    """Creates, approves and rejects load adjustments.

    Status flow: pending → approved → applied, or pending → rejected.
    An adjustment created without an approval requirement is applied in
    the same call and goes straight to applied. Approval applies the patch
    through ``LoadUpdateService.apply_patch``, the same path ordinary
    edits use. Concurrent approve/reject of one adjustment is caught by
    the row version and reported as ``ConcurrentModification``.
    """

    def __init__(self, session: AsyncSession, audit_sink: AuditSink | None = None):
        self.session = session
        self.audit_sink = audit_sink if audit_sink is not None else DatabaseAuditSink(session)
        self.loads = LoadUpdateService(session, self.audit_sink)

    async def get_adjustment(self, ctx: TenantContext, adjustment_id: UUID) -> Adjustment:
        adjustment = await self.session.scalar(
            select(Adjustment).where(
                Adjustment.adjustment_id == adjustment_id,
                Adjustment.tenant_id == ctx.tenant_id,
            )
        )
        if adjustment is None:
            raise NotFound("adjustment", adjustment_id)
        return adjustment

    async def create_adjustment(
        self,
        ctx: TenantContext,
        load_id: UUID,
        patch: LoadPatch,
        reason: str,
        require_approval: bool = True,
    ) -> AdjustmentOutcome:
        """Record an adjustment, applying it at once when no approval is required."""
        errors = []
        if not patch.model_fields_set:
            errors.append("Adjustment must change at least one field")
        if not reason or not reason.strip():
            errors.append("A reason is required for every adjustment")
        if errors:
            raise ValidationFailed(errors)

        load = await self.loads.get_load(ctx, load_id)
        validate_locked_update(load, patch, reason)

        adjustment = Adjustment(
            tenant_id=ctx.tenant_id,
            load_id=load.load_id,
            patch=patch.to_storage(),
            reason=reason.strip(),
            status=AdjustmentStatus.PENDING.value,
            require_approval=require_approval,
            created_by=ctx.actor_id,
        )
        self.session.add(adjustment)
        await self.session.flush()

        warnings: list[str] = []
        if not require_approval:
            result = await self.loads.apply_patch(
                ctx, load, patch, adjustment.reason, adjustment_id=adjustment.adjustment_id
            )
            warnings.extend(result.warnings)
            adjustment.status = AdjustmentStatus.APPLIED.value
            adjustment.applied_at = utcnow()
            await self._flush(adjustment, adjustment.version)

        logger.info(
            "Adjustment %s on load %s created by %s (%s)",
            adjustment.adjustment_id,
            load.load_number,
            ctx.actor_id,
            adjustment.status,
        )
        await self._audit(ctx, adjustment, "create", adjustment.reason, warnings)
        return AdjustmentOutcome(adjustment=adjustment, warnings=warnings)

    async def approve_adjustment(
        self,
        ctx: TenantContext,
        adjustment_id: UUID,
        expected_version: int | None = None,
    ) -> AdjustmentOutcome:
        """Approve a pending adjustment and apply its patch.

        Raises:
            InvalidStateTransition: If the adjustment is not pending
            ConcurrentModification: If another writer changed it first
        """
        adjustment = await self._get_checked(ctx, adjustment_id, expected_version)
        version = adjustment.version
        AdjustmentStateMachine.validate_transition(adjustment.status, AdjustmentStatus.APPROVED)

        adjustment.status = AdjustmentStatus.APPROVED.value
        adjustment.approved_by = ctx.actor_id
        adjustment.approved_at = utcnow()
        await self._flush(adjustment, version)

        load = await self.loads.get_load(ctx, adjustment.load_id)
        patch = LoadPatch.model_validate(adjustment.patch)
        result = await self.loads.apply_patch(
            ctx, load, patch, adjustment.reason, adjustment_id=adjustment.adjustment_id
        )

        AdjustmentStateMachine.validate_transition(adjustment.status, AdjustmentStatus.APPLIED)
        adjustment.status = AdjustmentStatus.APPLIED.value
        adjustment.applied_at = utcnow()
        await self._flush(adjustment, adjustment.version)

        logger.info("Adjustment %s approved and applied by %s", adjustment_id, ctx.actor_id)
        warnings = list(result.warnings)
        await self._audit(ctx, adjustment, "approve", adjustment.reason, warnings)
        return AdjustmentOutcome(adjustment=adjustment, warnings=warnings)

    async def reject_adjustment(
        self,
        ctx: TenantContext,
        adjustment_id: UUID,
        rejection_reason: str,
        expected_version: int | None = None,
    ) -> AdjustmentOutcome:
        """Reject a pending adjustment. The load is never touched."""
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationFailed(["A rejection reason is required"])

        adjustment = await self._get_checked(ctx, adjustment_id, expected_version)
        version = adjustment.version
        AdjustmentStateMachine.validate_transition(adjustment.status, AdjustmentStatus.REJECTED)

        adjustment.status = AdjustmentStatus.REJECTED.value
        adjustment.rejected_by = ctx.actor_id
        adjustment.rejected_at = utcnow()
        adjustment.rejection_reason = rejection_reason.strip()
        await self._flush(adjustment, version)

        logger.info("Adjustment %s rejected by %s", adjustment_id, ctx.actor_id)
        warnings: list[str] = []
        await self._audit(ctx, adjustment, "reject", adjustment.rejection_reason, warnings)
        return AdjustmentOutcome(adjustment=adjustment, warnings=warnings)

    async def list_adjustments(
        self,
        ctx: TenantContext,
        load_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Adjustment]:
        """Adjustments for the tenant, newest first."""
        query = select(Adjustment).where(Adjustment.tenant_id == ctx.tenant_id)
        if load_id is not None:
            query = query.where(Adjustment.load_id == load_id)
        if status is not None:
            query = query.where(Adjustment.status == status)
        result = await self.session.execute(query.order_by(Adjustment.created_at.desc()))
        return list(result.scalars().all())

    async def list_pending(self, ctx: TenantContext) -> list[Adjustment]:
        return await self.list_adjustments(ctx, status=AdjustmentStatus.PENDING.value)

    async def _get_checked(
        self,
        ctx: TenantContext,
        adjustment_id: UUID,
        expected_version: int | None,
    ) -> Adjustment:
        adjustment = await self.get_adjustment(ctx, adjustment_id)
        if expected_version is not None and adjustment.version != expected_version:
            raise ConcurrentModification("adjustment", adjustment_id, expected_version)
        return adjustment

    async def _flush(self, adjustment: Adjustment, expected_version: int | None) -> None:
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModification(
                "adjustment", adjustment.adjustment_id, expected_version
            ) from exc

    async def _audit(
        self,
        ctx: TenantContext,
        adjustment: Adjustment,
        action: str,
        reason: str | None,
        warnings: list[str],
    ) -> None:
        warning = await record_audit(
            self.audit_sink,
            AuditEntry(
                tenant_id=ctx.tenant_id,
                entity_type="adjustment",
                entity_id=str(adjustment.adjustment_id),
                action=action,
                patch=dict(adjustment.patch),
                reason=reason,
                actor_id=ctx.actor_id,
            ),
        )
        if warning:
            warnings.append(warning)
