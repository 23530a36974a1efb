"""Customer invoice endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from freight_ledger.api.dependencies import DbSession, Sequences, Tenant
from freight_ledger.api.schemas import (
    AgingResponse,
    ErrorResponse,
    InvoiceCreate,
    InvoiceResponse,
    PaymentCreate,
)
from freight_ledger.services.invoice_service import InvoiceRequest, InvoiceService, PaymentInput

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_invoice(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    payload: InvoiceCreate,
) -> InvoiceResponse:
    """Bill delivered loads as a single draft invoice."""
    service = InvoiceService(db, sequences)
    outcome = await service.create_invoice(
        ctx,
        InvoiceRequest(
            customer_name=payload.customer_name,
            load_ids=payload.load_ids,
            issue_date=payload.issue_date,
            due_date=payload.due_date,
            factored=payload.factored,
            factoring_company=payload.factoring_company,
            factoring_fee_percent=payload.factoring_fee_percent,
            notes=payload.notes,
        ),
    )
    await db.commit()
    response = InvoiceResponse.model_validate(outcome.invoice)
    response.warnings = outcome.warnings
    return response


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    customer_name: str | None = None,
) -> list[InvoiceResponse]:
    service = InvoiceService(db, sequences)
    invoices = await service.list_invoices(ctx, status=status_filter, customer_name=customer_name)
    return [InvoiceResponse.model_validate(invoice) for invoice in invoices]


@router.get("/aging", response_model=AgingResponse)
async def ar_aging(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    as_of: date | None = None,
) -> AgingResponse:
    """Outstanding balances by days past due. Drafts are excluded."""
    as_of = as_of or date.today()
    service = InvoiceService(db, sequences)
    buckets = await service.ar_aging(ctx, as_of)
    return AgingResponse(
        as_of=as_of,
        current=buckets.current,
        days_31_60=buckets.days_31_60,
        days_61_90=buckets.days_61_90,
        days_90_plus=buckets.days_90_plus,
        total=buckets.total,
    )


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_invoice(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    invoice_id: Annotated[UUID, Path()],
) -> InvoiceResponse:
    service = InvoiceService(db, sequences)
    return InvoiceResponse.model_validate(await service.get_invoice(ctx, invoice_id))


@router.post(
    "/{invoice_id}/send",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def send_invoice(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    invoice_id: Annotated[UUID, Path()],
) -> InvoiceResponse:
    """Mark a draft invoice as sent; its status is derived from then on."""
    service = InvoiceService(db, sequences)
    invoice = await service.mark_sent(ctx, invoice_id)
    await db.commit()
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/{invoice_id}/payments",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def add_payment(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    invoice_id: Annotated[UUID, Path()],
    payload: PaymentCreate,
) -> InvoiceResponse:
    """Record a payment. Status and paid amount are recomputed from all payments."""
    service = InvoiceService(db, sequences)
    outcome = await service.add_payment(
        ctx,
        invoice_id,
        PaymentInput(
            amount=payload.amount,
            payment_date=payload.payment_date,
            method=payload.method,
            reference=payload.reference,
        ),
        expected_version=payload.expected_version,
    )
    await db.commit()
    response = InvoiceResponse.model_validate(outcome.invoice)
    response.warnings = outcome.warnings
    return response
