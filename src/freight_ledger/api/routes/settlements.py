"""Driver settlement endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from freight_ledger.api.dependencies import DbSession, Sequences, Tenant
from freight_ledger.api.schemas import (
    ErrorResponse,
    SettlementCreate,
    SettlementPreviewResponse,
    SettlementRecalculateRequest,
    SettlementResponse,
    SettlementTransitionRequest,
)
from freight_ledger.services.settlement_service import SettlementRequest, SettlementService

router = APIRouter(prefix="/settlements", tags=["settlements"])


def _to_request(payload: SettlementCreate) -> SettlementRequest:
    return SettlementRequest(
        driver_id=payload.driver_id,
        load_ids=payload.load_ids,
        period_start=payload.period_start,
        period_end=payload.period_end,
        deductions=dict(payload.deductions),
        other_earnings=[earning.to_domain() for earning in payload.other_earnings],
        include_expenses=payload.include_expenses,
        notes=payload.notes,
    )


@router.post(
    "/preview",
    response_model=SettlementPreviewResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def preview_settlement(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    payload: SettlementCreate,
) -> SettlementPreviewResponse:
    """Compute a settlement without saving it."""
    service = SettlementService(db, sequences)
    calculation = await service.preview(ctx, _to_request(payload))
    return SettlementPreviewResponse.from_calculation(calculation)


@router.post(
    "",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_settlement(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    payload: SettlementCreate,
) -> SettlementResponse:
    """Create a draft settlement and link its loads."""
    service = SettlementService(db, sequences)
    outcome = await service.create_settlement(ctx, _to_request(payload))
    await db.commit()
    response = SettlementResponse.model_validate(outcome.settlement)
    response.warnings = outcome.warnings
    return response


@router.get("", response_model=list[SettlementResponse])
async def list_settlements(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    driver_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[SettlementResponse]:
    """List settlements in creation order."""
    service = SettlementService(db, sequences)
    settlements = await service.list_settlements(ctx, driver_id=driver_id, status=status_filter)
    return [SettlementResponse.model_validate(s) for s in settlements]


@router.get(
    "/{settlement_id}",
    response_model=SettlementResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_settlement(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    service = SettlementService(db, sequences)
    settlement = await service.get_settlement(ctx, settlement_id)
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/recalculate",
    response_model=SettlementResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def recalculate_settlement(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    settlement_id: Annotated[UUID, Path()],
    payload: SettlementRecalculateRequest,
) -> SettlementResponse:
    """Recompute a draft or pending settlement from current load data."""
    service = SettlementService(db, sequences)
    other_earnings = None
    if payload.other_earnings is not None:
        other_earnings = [earning.to_domain() for earning in payload.other_earnings]
    outcome = await service.recalculate(
        ctx,
        settlement_id,
        deductions=payload.deductions,
        other_earnings=other_earnings,
    )
    await db.commit()
    response = SettlementResponse.model_validate(outcome.settlement)
    response.warnings = outcome.warnings
    return response


@router.post(
    "/{settlement_id}/transition",
    response_model=SettlementResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def transition_settlement(
    db: DbSession,
    sequences: Sequences,
    ctx: Tenant,
    settlement_id: Annotated[UUID, Path()],
    payload: SettlementTransitionRequest,
) -> SettlementResponse:
    """Move a settlement along its lifecycle. Voiding requires a reason."""
    service = SettlementService(db, sequences)
    settlement = await service.transition(ctx, settlement_id, payload.status, reason=payload.reason)
    await db.commit()
    return SettlementResponse.model_validate(settlement)
