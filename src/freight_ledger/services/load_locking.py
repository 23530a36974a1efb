"""Post-delivery change control for loads.

Once a load is delivered (or explicitly locked) every change is still
allowed, but changes to financial fields must carry a reason, and every
changed field is appended to the load's adjustment log with its old and
new value. Paperwork and linkage fields are exempt from the reason rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from freight_ledger.context import TenantContext
from freight_ledger.exceptions import ConcurrentModification, NotFound, ValidationFailed
from freight_ledger.models import Load, LoadAdjustmentLogEntry
from freight_ledger.models.base import utcnow
from freight_ledger.services.audit import (
    AuditEntry,
    AuditSink,
    DatabaseAuditSink,
    record_audit,
)

logger = logging.getLogger(__name__)

Money = Annotated[Decimal, Field(ge=0)]

LoadStatus = Literal[
    "available",
    "dispatched",
    "in_transit",
    "delivered",
    "delivered_with_bol",
    "invoiced",
    "paid",
    "completed",
    "cancelled",
    "tonu",
]

LOCKED_STATUSES = frozenset({"delivered", "delivered_with_bol", "invoiced", "paid", "completed"})

# Changing these on a locked load needs no reason.
REASON_EXEMPT_FIELDS = frozenset(
    {
        "documents",
        "notes",
        "pod_number",
        "bol_number",
        "status",
        "invoice_id",
        "settlement_id",
    }
)

LINKAGE_FIELDS = ("invoice_id", "settlement_id")


class LoadPatch(BaseModel):
    """The closed set of load fields a patch or adjustment may change.

    Only fields explicitly set on the patch are applied; an explicit
    ``None`` clears a field.
    """

    model_config = ConfigDict(extra="forbid")

    rate: Money | None = None
    miles: Money | None = None
    fsc_amount: Money | None = None
    detention_amount: Money | None = None
    layover_amount: Money | None = None
    lumper_amount: Money | None = None
    tonu_fee: Money | None = None
    other_accessorials: Money | None = None
    grand_total: Money | None = None

    driver_base_pay: Money | None = None
    driver_detention_pay: Money | None = None
    driver_layover_pay: Money | None = None
    driver_total_gross: Money | None = None

    driver_id: UUID | None = None
    customer_name: str | None = None
    pickup_date: date | None = None
    delivery_date: date | None = None
    status: LoadStatus | None = None

    notes: str | None = None
    pod_number: str | None = None
    bol_number: str | None = None
    documents: list[dict[str, Any]] | None = None

    invoice_id: UUID | None = None
    settlement_id: UUID | None = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this patch, with their values."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


PATCHABLE_FIELDS = frozenset(LoadPatch.model_fields)


@dataclass
class LockCheck:
    """Outcome of checking a patch against a load's lock state."""

    locked: bool
    changed: dict[str, tuple[Any, Any]] = field(default_factory=dict)
    reason_required_fields: list[str] = field(default_factory=list)

    @property
    def requires_reason(self) -> bool:
        return bool(self.reason_required_fields)


@dataclass
class LoadUpdateResult:
    load: Load
    changed_fields: list[str]
    logged: bool
    warnings: list[str] = field(default_factory=list)


def is_load_locked(load: Load) -> bool:
    """Delivered and later loads are locked, as is any load flagged by hand."""
    return load.status in LOCKED_STATUSES or bool(load.is_locked)


def _same(old: Any, new: Any) -> bool:
    if isinstance(old, Decimal) or isinstance(new, Decimal):
        if old is None or new is None:
            return old is None and new is None
        return Decimal(old) == Decimal(new)
    return old == new


def changed_fields(load: Load, patch: LoadPatch) -> dict[str, tuple[Any, Any]]:
    """Fields whose value would actually change, mapped to (old, new)."""
    changed = {}
    for name, new_value in sorted(patch.changes().items()):
        old_value = getattr(load, name)
        if not _same(old_value, new_value):
            changed[name] = (old_value, new_value)
    return changed


def validate_locked_update(
    load: Load,
    patch: LoadPatch,
    reason: str | None,
    allow_unlink: bool = False,
) -> LockCheck:
    """Check a patch against the lock policy and the linkage guard.

    A linkage field may be set while empty. Repointing it is always
    refused; clearing it is refused unless ``allow_unlink`` is given,
    which only the owning ledger entity does (voiding a settlement).

    Raises:
        ValidationFailed: If a locked load's financial fields change
            without a reason, or a linkage field would be repointed or
            cleared
    """
    changed = changed_fields(load, patch)
    locked = is_load_locked(load)
    check = LockCheck(locked=locked, changed=changed)
    errors: list[str] = []

    for name in LINKAGE_FIELDS:
        if name in changed:
            old_value, new_value = changed[name]
            if old_value is None:
                continue
            entity = name.removesuffix("_id")
            if new_value is not None:
                errors.append(
                    f"Load {load.load_number} is already linked to {entity} {old_value}"
                )
            elif not allow_unlink:
                errors.append(
                    f"Load {load.load_number} can only be released from {entity} "
                    f"{old_value} by that {entity}"
                )

    if locked:
        check.reason_required_fields = [
            name for name in changed if name not in REASON_EXEMPT_FIELDS
        ]
        if check.requires_reason and not (reason and reason.strip()):
            errors.append(
                f"Load {load.load_number} is locked; a reason is required to change: "
                + ", ".join(check.reason_required_fields)
            )

    if errors:
        raise ValidationFailed(errors)
    return check


class LoadUpdateService:
    """The one path through which load fields are patched.

    Ordinary edits and applied adjustments both go through ``apply_patch``.
    The service flushes but never commits; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, audit_sink: AuditSink | None = None):
        self.session = session
        self.audit_sink = audit_sink if audit_sink is not None else DatabaseAuditSink(session)

    async def get_load(self, ctx: TenantContext, load_id: UUID) -> Load:
        load = await self.session.scalar(
            select(Load).where(Load.load_id == load_id, Load.tenant_id == ctx.tenant_id)
        )
        if load is None:
            raise NotFound("load", load_id)
        return load

    async def update_load(
        self,
        ctx: TenantContext,
        load_id: UUID,
        patch: LoadPatch,
        reason: str | None = None,
    ) -> LoadUpdateResult:
        load = await self.get_load(ctx, load_id)
        return await self.apply_patch(ctx, load, patch, reason)

    async def apply_patch(
        self,
        ctx: TenantContext,
        load: Load,
        patch: LoadPatch,
        reason: str | None = None,
        adjustment_id: UUID | None = None,
        allow_unlink: bool = False,
    ) -> LoadUpdateResult:
        """Validate and apply a patch, field by field.

        Each patched field takes the patch value. The load row is versioned,
        so a load changed by another transaction since it was read raises
        ``ConcurrentModification`` instead of being overwritten.
        """
        check = validate_locked_update(load, patch, reason, allow_unlink=allow_unlink)
        if not check.changed:
            return LoadUpdateResult(load=load, changed_fields=[], logged=False)

        version = load.version

        now = utcnow()
        for name, (_, new_value) in check.changed.items():
            setattr(load, name, new_value)
        load.updated_at = now

        if check.locked:
            for name, (old_value, new_value) in check.changed.items():
                self.session.add(
                    LoadAdjustmentLogEntry(
                        tenant_id=ctx.tenant_id,
                        load_id=load.load_id,
                        field=name,
                        old_value=to_jsonable_python(old_value),
                        new_value=to_jsonable_python(new_value),
                        reason=reason,
                        changed_by=ctx.actor_id,
                        changed_at=now,
                        adjustment_id=adjustment_id,
                    )
                )
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModification("load", load.load_id, version) from exc

        fields = list(check.changed)
        logger.info(
            "Load %s updated by %s: %s", load.load_number, ctx.actor_id, ", ".join(fields)
        )

        warnings = []
        warning = await record_audit(
            self.audit_sink,
            AuditEntry(
                tenant_id=ctx.tenant_id,
                entity_type="load",
                entity_id=str(load.load_id),
                action="adjustment" if adjustment_id else "update",
                patch={
                    name: to_jsonable_python(new) for name, (_, new) in check.changed.items()
                },
                reason=reason,
                actor_id=ctx.actor_id,
                timestamp=now,
            ),
        )
        if warning:
            warnings.append(warning)

        return LoadUpdateResult(
            load=load,
            changed_fields=fields,
            logged=check.locked,
            warnings=warnings,
        )

    async def adjustment_log(self, ctx: TenantContext, load_id: UUID) -> list[LoadAdjustmentLogEntry]:
        """The load's adjustment log, oldest first."""
        result = await self.session.execute(
            select(LoadAdjustmentLogEntry)
            .where(
                LoadAdjustmentLogEntry.load_id == load_id,
                LoadAdjustmentLogEntry.tenant_id == ctx.tenant_id,
            )
            .order_by(LoadAdjustmentLogEntry.changed_at, LoadAdjustmentLogEntry.field)
        )
        return list(result.scalars().all())
