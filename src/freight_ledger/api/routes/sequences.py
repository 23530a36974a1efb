"""Document number endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from freight_ledger.api.dependencies import Sequences, Tenant
from freight_ledger.api.schemas import (
    ErrorResponse,
    NextNumberRequest,
    NextNumberResponse,
    ResyncRequest,
    ResyncResponse,
)
from freight_ledger.services.sequence_service import parse_kind

router = APIRouter(prefix="/sequences", tags=["sequences"])

KindPath = Annotated[str, Path(description="invoice, load or settlement")]


@router.post(
    "/{kind}/next",
    response_model=NextNumberResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def next_number(
    sequences: Sequences,
    ctx: Tenant,
    kind: KindPath,
    payload: NextNumberRequest | None = None,
) -> NextNumberResponse:
    """Allocate the next number. Each call consumes one number."""
    entity_kind = parse_kind(kind)
    year = (payload.year if payload else None) or sequences.current_year()
    seq = await sequences.next_number(ctx, entity_kind, year)
    return NextNumberResponse(
        kind=entity_kind.value,
        year=year,
        seq=seq,
        number=sequences.format_number(entity_kind, year, seq),
    )


@router.get(
    "/{kind}/preview",
    response_model=NextNumberResponse,
    responses={422: {"model": ErrorResponse}},
)
async def preview_number(
    sequences: Sequences,
    ctx: Tenant,
    kind: KindPath,
    year: Annotated[int, Query(ge=1900, le=9999)],
) -> NextNumberResponse:
    """Show the next number without allocating it."""
    entity_kind = parse_kind(kind)
    seq = await sequences.preview_next(ctx, entity_kind, year)
    return NextNumberResponse(
        kind=entity_kind.value,
        year=year,
        seq=seq,
        number=sequences.format_number(entity_kind, year, seq),
    )


@router.post(
    "/{kind}/resync",
    response_model=ResyncResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def resync_counter(
    sequences: Sequences,
    ctx: Tenant,
    kind: KindPath,
    payload: ResyncRequest,
) -> ResyncResponse:
    """Raise the counter to the highest number already issued."""
    entity_kind = parse_kind(kind)
    existing = payload.existing_numbers
    if existing is None:
        existing = await sequences.issued_numbers(ctx, entity_kind, payload.year)
    stored = await sequences.resync(ctx, entity_kind, payload.year, existing)
    return ResyncResponse(
        kind=entity_kind.value,
        year=payload.year,
        stored=stored,
        next_number=stored + 1,
    )
