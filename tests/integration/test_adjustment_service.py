"""Load edits and the adjustment approval workflow against a real database."""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select

from freight_ledger.context import TenantContext
from freight_ledger.exceptions import (
    ConcurrentModification,
    InvalidStateTransition,
    ValidationFailed,
)
from freight_ledger.models import AuditRecord, Load
from freight_ledger.services.adjustment_service import AdjustmentService
from freight_ledger.services.audit import MemoryAuditSink
from freight_ledger.services.load_locking import LoadPatch, LoadUpdateService

pytestmark = pytest.mark.asyncio

DISPATCHER = TenantContext("tenant-a", actor_id="dispatcher-1", actor_role="dispatcher")
MANAGER = TenantContext("tenant-a", actor_id="manager-1", actor_role="manager")
RATE_CHANGE = LoadPatch(rate=Decimal("1100.00"))


class BrokenAuditSink:
    async def write(self, entry):
        raise RuntimeError("audit store offline")


@pytest_asyncio.fixture
async def load(seed, make_load, driver) -> Load:
    """A delivered, therefore locked, load."""
    load = make_load(driver_id=driver.driver_id)
    await seed(load)
    return load


async def fresh_rate(session, load_id) -> Decimal:
    result = await session.execute(
        select(Load.rate).where(Load.load_id == load_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestLoadUpdates:
    async def test_unlocked_load_is_not_logged(self, db_session, seed, make_load):
        load = make_load(status="dispatched")
        await seed(load)
        service = LoadUpdateService(db_session)

        result = await service.update_load(DISPATCHER, load.load_id, LoadPatch(rate=Decimal("900")))
        assert result.changed_fields == ["rate"]
        assert result.logged is False
        assert await service.adjustment_log(DISPATCHER, load.load_id) == []

    async def test_locked_load_needs_reason(self, db_session, load):
        service = LoadUpdateService(db_session)
        with pytest.raises(ValidationFailed, match="a reason is required"):
            await service.update_load(DISPATCHER, load.load_id, RATE_CHANGE)

    async def test_locked_load_change_is_logged(self, db_session, load):
        service = LoadUpdateService(db_session)
        result = await service.update_load(
            DISPATCHER,
            load.load_id,
            LoadPatch(rate=Decimal("1100.00"), notes="Rate confirmation re-sent"),
            reason="Rate confirmation corrected",
        )
        await db_session.commit()

        assert result.logged is True
        assert result.changed_fields == ["notes", "rate"]
        log = await service.adjustment_log(DISPATCHER, load.load_id)
        assert [(entry.field, entry.reason, entry.changed_by) for entry in log] == [
            ("notes", "Rate confirmation corrected", "dispatcher-1"),
            ("rate", "Rate confirmation corrected", "dispatcher-1"),
        ]
        assert log[1].adjustment_id is None

    async def test_paperwork_needs_no_reason(self, db_session, load):
        service = LoadUpdateService(db_session)
        result = await service.update_load(DISPATCHER, load.load_id, LoadPatch(pod_number="POD-881"))
        assert result.logged is True
        assert result.changed_fields == ["pod_number"]

    async def test_unchanged_values_are_a_no_op(self, db_session, load):
        service = LoadUpdateService(db_session)
        result = await service.update_load(DISPATCHER, load.load_id, LoadPatch(rate=Decimal("1000")))
        assert result.changed_fields == []
        assert result.logged is False

    async def test_invoice_link_cannot_be_cleared(self, db_session, seed, make_load):
        load = make_load(invoice_id=uuid4())
        await seed(load)
        with pytest.raises(ValidationFailed, match="can only be released from invoice"):
            await LoadUpdateService(db_session).update_load(
                DISPATCHER, load.load_id, LoadPatch(invoice_id=None), reason="Billed in error"
            )


class TestAdjustmentWorkflow:
    async def test_pending_until_approved(self, db_session, load):
        service = AdjustmentService(db_session)
        outcome = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        assert outcome.status == "pending"
        assert outcome.adjustment.version == 1
        assert await fresh_rate(db_session, load.load_id) == Decimal("1000.00")
        assert [a.adjustment_id for a in await service.list_pending(DISPATCHER)] == [
            outcome.adjustment_id
        ]

        approved = await service.approve_adjustment(MANAGER, outcome.adjustment_id, expected_version=1)
        await db_session.commit()

        assert approved.status == "applied"
        assert approved.adjustment.approved_by == "manager-1"
        assert approved.adjustment.applied_at is not None
        assert await fresh_rate(db_session, load.load_id) == Decimal("1100.00")

        log = await LoadUpdateService(db_session).adjustment_log(DISPATCHER, load.load_id)
        assert [(entry.field, entry.adjustment_id) for entry in log] == [
            ("rate", outcome.adjustment_id)
        ]
        assert await service.list_pending(DISPATCHER) == []

    async def test_applied_at_once_without_approval(self, db_session, load):
        service = AdjustmentService(db_session)
        outcome = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Customer short-paid", require_approval=False
        )
        assert outcome.status == "applied"
        assert await fresh_rate(db_session, load.load_id) == Decimal("1100.00")

    async def test_rejected_adjustment_never_touches_load(self, db_session, load):
        service = AdjustmentService(db_session)
        created = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )

        rejected = await service.reject_adjustment(MANAGER, created.adjustment_id, "Not supported by BOL")
        assert rejected.status == "rejected"
        assert rejected.adjustment.rejection_reason == "Not supported by BOL"
        assert await fresh_rate(db_session, load.load_id) == Decimal("1000.00")

        with pytest.raises(InvalidStateTransition):
            await service.approve_adjustment(MANAGER, created.adjustment_id)

    async def test_approving_applied_adjustment_is_refused(self, db_session, load):
        service = AdjustmentService(db_session)
        created = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        await service.approve_adjustment(MANAGER, created.adjustment_id)
        await db_session.commit()

        with pytest.raises(InvalidStateTransition) as exc_info:
            await service.approve_adjustment(MANAGER, created.adjustment_id)
        assert exc_info.value.current_status == "applied"

        log = await LoadUpdateService(db_session).adjustment_log(DISPATCHER, load.load_id)
        assert [entry.field for entry in log] == ["rate"]
        assert await fresh_rate(db_session, load.load_id) == Decimal("1100.00")

    async def test_adjustment_cannot_release_settlement(self, db_session, seed, make_load):
        load = make_load(settlement_id=uuid4())
        await seed(load)
        with pytest.raises(ValidationFailed, match="can only be released from settlement"):
            await AdjustmentService(db_session).create_adjustment(
                DISPATCHER,
                load.load_id,
                LoadPatch(settlement_id=None),
                "Pay this load next week",
                require_approval=False,
            )
        assert await AdjustmentService(db_session).list_pending(DISPATCHER) == []

    async def test_rejection_needs_reason(self, db_session, load):
        service = AdjustmentService(db_session)
        created = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        with pytest.raises(ValidationFailed):
            await service.reject_adjustment(MANAGER, created.adjustment_id, "  ")

    async def test_all_problems_reported_together(self, db_session, load):
        with pytest.raises(ValidationFailed) as exc_info:
            await AdjustmentService(db_session).create_adjustment(
                DISPATCHER, load.load_id, LoadPatch(), ""
            )
        assert len(exc_info.value.errors) == 2

    async def test_stale_expected_version(self, db_session, load):
        service = AdjustmentService(db_session)
        created = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        with pytest.raises(ConcurrentModification):
            await service.approve_adjustment(MANAGER, created.adjustment_id, expected_version=7)

    async def test_concurrent_decisions(self, db_session, session_factory, load):
        """Approve and reject race; only the first to commit wins."""
        created = await AdjustmentService(db_session).create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        await db_session.commit()

        async with session_factory() as first, session_factory() as second:
            late = AdjustmentService(second)
            stale = await late.get_adjustment(MANAGER, created.adjustment_id)
            assert (stale.status, stale.version) == ("pending", 1)

            await AdjustmentService(first).approve_adjustment(MANAGER, created.adjustment_id)
            await first.commit()

            with pytest.raises(ConcurrentModification):
                await late.reject_adjustment(MANAGER, created.adjustment_id, "Duplicate request")


class TestAuditing:
    async def test_audit_rows_for_each_step(self, db_session, load):
        service = AdjustmentService(db_session)
        created = await service.create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Detention billed as rate"
        )
        await service.approve_adjustment(MANAGER, created.adjustment_id)
        await db_session.commit()

        rows = (await db_session.execute(select(AuditRecord))).scalars().all()
        assert sorted((row.entity_type, row.action) for row in rows) == [
            ("adjustment", "approve"),
            ("adjustment", "create"),
            ("load", "adjustment"),
        ]

    async def test_memory_sink(self, db_session, load):
        sink = MemoryAuditSink()
        await AdjustmentService(db_session, audit_sink=sink).create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Customer short-paid", require_approval=False
        )
        assert [(entry.entity_type, entry.action) for entry in sink.entries] == [
            ("load", "adjustment"),
            ("adjustment", "create"),
        ]
        assert sink.entries[0].patch == {"rate": "1100.00"}

    async def test_failing_sink_does_not_block_change(self, db_session, load):
        outcome = await AdjustmentService(db_session, audit_sink=BrokenAuditSink()).create_adjustment(
            DISPATCHER, load.load_id, RATE_CHANGE, "Customer short-paid", require_approval=False
        )
        assert outcome.status == "applied"
        assert len(outcome.warnings) == 2
        assert all("could not be written" in warning for warning in outcome.warnings)
        assert await fresh_rate(db_session, load.load_id) == Decimal("1100.00")
