"""Invoice creation, payment application, status refresh and AR aging."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from freight_ledger.calculators.invoice_calculator import (
    build_invoice_calculation,
    default_due_date,
    eligible_loads_for_invoice,
    validate_invoice_input,
)
from freight_ledger.calculators.receivables import (
    InvoiceSummary,
    ar_aging_summary,
    derive_status,
    invoice_summary,
    total_paid,
    validate_payment,
)
from freight_ledger.calculators.types import (
    ZERO,
    AgingBuckets,
    InvoiceStatus,
    round_money,
    to_decimal,
)
from freight_ledger.config import get_settings
from freight_ledger.context import TenantContext
from freight_ledger.exceptions import ConcurrentModification, InvalidStateTransition, NotFound
from freight_ledger.models import Invoice, InvoiceLine, InvoicePayment, Load
from freight_ledger.models.base import utcnow
from freight_ledger.services.audit import AuditEntry, AuditSink, DatabaseAuditSink, record_audit
from freight_ledger.services.load_locking import LoadPatch, LoadUpdateService
from freight_ledger.services.sequence_service import EntityKind, SequenceService
from freight_ledger.services.state_machine import InvoiceStateMachine, status_value

logger = logging.getLogger(__name__)


@dataclass
class InvoiceRequest:
    """Inputs for billing a customer for a set of loads."""

    customer_name: str
    load_ids: list[UUID]
    issue_date: date | None = None
    due_date: date | None = None
    factored: bool = False
    factoring_company: str | None = None
    factoring_fee_percent: Decimal | None = None
    notes: str | None = None


@dataclass
class PaymentInput:
    amount: Decimal
    payment_date: date | None = None
    method: str = "check"
    reference: str | None = None


@dataclass
class InvoiceOutcome:
    invoice: Invoice
    warnings: list[str] = field(default_factory=list)


class InvoiceService:
    """Service for customer invoices.

    ``add_payment`` is the only way payment history changes. Each payment
    is validated against the 1% overpayment tolerance, appended, and the
    cached ``paid_amount`` and ``status`` are recomputed from the full
    payment list. The invoice row carries a version number, so two
    concurrent payments on one invoice cannot both commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        sequences: SequenceService,
        audit_sink: AuditSink | None = None,
        today: Callable[[], date] = date.today,
        net_terms_days: int | None = None,
    ):
        self.session = session
        self.sequences = sequences
        self.audit_sink = audit_sink if audit_sink is not None else DatabaseAuditSink(session)
        self.loads = LoadUpdateService(session, self.audit_sink)
        self._today = today
        self.net_terms_days = net_terms_days or get_settings().default_net_terms_days

    async def create_invoice(self, ctx: TenantContext, request: InvoiceRequest) -> InvoiceOutcome:
        """Bill the requested loads as one draft invoice.

        Raises:
            NotFound: If any load does not exist
            ValidationFailed: If the request is invalid, including loads already invoiced
            CounterUnavailable: If no invoice number could be allocated
        """
        loads = await self._get_loads(ctx, request.load_ids)
        validation = validate_invoice_input(
            request.customer_name,
            loads,
            factored=request.factored,
            factoring_fee_percent=request.factoring_fee_percent,
            factoring_company=request.factoring_company,
        )
        validation.raise_if_invalid()

        calculation = build_invoice_calculation(
            loads,
            factored=request.factored,
            factoring_fee_percent=request.factoring_fee_percent,
        )
        issue_date = request.issue_date or self._today()
        due_date = request.due_date or default_due_date(issue_date, self.net_terms_days)
        number = await self.sequences.next_formatted(ctx, EntityKind.INVOICE, issue_date.year)

        lines = []
        for line_number, candidate in enumerate(calculation.lines, start=1):
            parts = {
                "base_amount": round_money(candidate.base_amount),
                "fuel_surcharge": round_money(candidate.fuel_surcharge),
                "detention": round_money(candidate.detention),
                "layover": round_money(candidate.layover),
                "lumper": round_money(candidate.lumper),
                "other_accessorials": round_money(candidate.other_accessorials),
            }
            lines.append(
                InvoiceLine(
                    load_id=candidate.load_id,
                    line_number=line_number,
                    load_number=candidate.load_number,
                    description=candidate.description,
                    line_total=sum(parts.values(), ZERO),
                    **parts,
                )
            )

        amount = sum((line.line_total for line in lines), ZERO)
        factoring_fee = ZERO
        if request.factored:
            factoring_fee = round_money(amount * calculation.factoring_fee_percent / Decimal("100"))

        invoice = Invoice(
            tenant_id=ctx.tenant_id,
            invoice_number=number,
            customer_name=request.customer_name.strip(),
            issue_date=issue_date,
            due_date=due_date,
            amount=amount,
            paid_amount=ZERO,
            factoring_enabled=request.factored,
            factoring_company=request.factoring_company,
            factoring_fee_percent=(
                calculation.factoring_fee_percent if request.factored else None
            ),
            factoring_fee=factoring_fee,
            net_amount=amount - factoring_fee,
            status=InvoiceStatus.DRAFT.value,
            notes=request.notes,
            created_by=ctx.actor_id,
            lines=lines,
            payments=[],
        )
        self.session.add(invoice)
        await self.session.flush()

        warnings = list(validation.warnings)
        for load in loads:
            result = await self.loads.apply_patch(
                ctx, load, LoadPatch(invoice_id=invoice.invoice_id)
            )
            warnings.extend(result.warnings)

        logger.info(
            "Invoice %s created for %s: %s across %d load(s)",
            number,
            invoice.customer_name,
            amount,
            len(lines),
        )
        await self._audit(ctx, invoice, "create", warnings)
        return InvoiceOutcome(invoice=invoice, warnings=warnings)

    async def add_payment(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        payment: PaymentInput,
        expected_version: int | None = None,
    ) -> InvoiceOutcome:
        """Apply a payment to an invoice.

        Raises:
            InvalidPayment: If the amount is not positive or exceeds the ceiling;
                the error carries ``max_amount``
            ConcurrentModification: If the invoice changed since it was read
        """
        invoice = await self.get_invoice(ctx, invoice_id)
        version = invoice.version
        if expected_version is not None and version != expected_version:
            raise ConcurrentModification("invoice", invoice_id, expected_version)

        amount = round_money(to_decimal(payment.amount))
        validate_payment(to_decimal(invoice.amount), total_paid(invoice), amount)

        today = self._today()
        invoice.payments.append(
            InvoicePayment(
                amount=amount,
                payment_date=payment.payment_date or today,
                method=payment.method,
                reference=payment.reference,
                recorded_by=ctx.actor_id,
            )
        )
        self._rederive(invoice, today)
        await self._flush(invoice, version)

        logger.info(
            "Payment of %s applied to invoice %s; paid %s of %s (%s)",
            amount,
            invoice.invoice_number,
            invoice.paid_amount,
            invoice.amount,
            invoice.status,
        )
        warnings: list[str] = []
        await self._audit(ctx, invoice, "payment", warnings)
        return InvoiceOutcome(invoice=invoice, warnings=warnings)

    async def mark_sent(self, ctx: TenantContext, invoice_id: UUID) -> Invoice:
        """Release a draft invoice; its status is derived from then on."""
        invoice = await self.get_invoice(ctx, invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidStateTransition(
                "invoice",
                invoice.status,
                InvoiceStatus.PENDING.value,
                reason="only draft invoices can be sent",
            )
        version = invoice.version
        invoice.sent_at = utcnow()
        self._rederive(invoice, self._today())
        await self._flush(invoice, version)
        logger.info("Invoice %s sent (%s)", invoice.invoice_number, invoice.status)
        await self._audit(ctx, invoice, "send", [])
        return invoice

    async def refresh_status(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        today: date | None = None,
    ) -> Invoice:
        """Recompute the cached status, e.g. to pick up an invoice going overdue."""
        invoice = await self.get_invoice(ctx, invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            version = invoice.version
            self._rederive(invoice, today or self._today())
            await self._flush(invoice, version)
        return invoice

    async def refresh_statuses(self, ctx: TenantContext, today: date | None = None) -> int:
        """Refresh every sent, unpaid invoice. Returns how many changed status."""
        today = today or self._today()
        changed = 0
        for invoice in await self.list_invoices(ctx):
            if invoice.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.PAID.value):
                continue
            before = invoice.status
            self._rederive(invoice, today)
            if invoice.status != before:
                changed += 1
        if changed:
            await self.session.flush()
        return changed

    async def ar_aging(self, ctx: TenantContext, as_of: date | None = None) -> AgingBuckets:
        """Aging of outstanding balances on sent invoices."""
        invoices = await self.list_invoices(ctx)
        return ar_aging_summary(
            (i for i in invoices if i.status != InvoiceStatus.DRAFT.value),
            as_of or self._today(),
        )

    async def summary(self, ctx: TenantContext) -> InvoiceSummary:
        return invoice_summary(await self.list_invoices(ctx))

    async def eligible_loads(
        self,
        ctx: TenantContext,
        customer_name: str | None = None,
    ) -> list[Load]:
        result = await self.session.execute(select(Load).where(Load.tenant_id == ctx.tenant_id))
        return eligible_loads_for_invoice(result.scalars().all(), customer_name)

    async def get_invoice(self, ctx: TenantContext, invoice_id: UUID) -> Invoice:
        invoice = await self.session.scalar(
            select(Invoice).where(
                Invoice.invoice_id == invoice_id,
                Invoice.tenant_id == ctx.tenant_id,
            )
        )
        if invoice is None:
            raise NotFound("invoice", invoice_id)
        return invoice

    async def list_invoices(
        self,
        ctx: TenantContext,
        status: str | None = None,
        customer_name: str | None = None,
    ) -> list[Invoice]:
        query = select(Invoice).where(Invoice.tenant_id == ctx.tenant_id)
        if status is not None:
            query = query.where(Invoice.status == status_value(status))
        if customer_name is not None:
            query = query.where(Invoice.customer_name == customer_name)
        result = await self.session.execute(query.order_by(Invoice.issue_date, Invoice.created_at))
        return list(result.scalars().all())

    def _rederive(self, invoice: Invoice, today: date) -> None:
        """Rewrite the cached paid amount and status from the payment list."""
        previous = invoice.status
        paid = total_paid(invoice)
        status = derive_status(to_decimal(invoice.amount), paid, invoice.due_date, today)
        InvoiceStateMachine.validate_transition(previous, status)
        invoice.paid_amount = paid
        invoice.status = status.value
        if status == InvoiceStatus.PAID and previous != InvoiceStatus.PAID.value:
            invoice.paid_at = utcnow()
        invoice.updated_at = utcnow()

    async def _get_loads(self, ctx: TenantContext, load_ids: list[UUID]) -> list[Load]:
        if not load_ids:
            return []
        result = await self.session.execute(
            select(Load).where(Load.tenant_id == ctx.tenant_id, Load.load_id.in_(load_ids))
        )
        by_id = {load.load_id: load for load in result.scalars().all()}
        loads = []
        for load_id in load_ids:
            if load_id not in by_id:
                raise NotFound("load", load_id)
            loads.append(by_id[load_id])
        return loads

    async def _flush(self, invoice: Invoice, expected_version: int) -> None:
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModification("invoice", invoice.invoice_id, expected_version) from exc

    async def _audit(
        self,
        ctx: TenantContext,
        invoice: Invoice,
        action: str,
        warnings: list[str],
    ) -> None:
        warning = await record_audit(
            self.audit_sink,
            AuditEntry(
                tenant_id=ctx.tenant_id,
                entity_type="invoice",
                entity_id=str(invoice.invoice_id),
                action=action,
                patch={
                    "status": invoice.status,
                    "amount": str(invoice.amount),
                    "paid_amount": str(invoice.paid_amount),
                },
                reason=None,
                actor_id=ctx.actor_id,
            ),
        )
        if warning:
            warnings.append(warning)
