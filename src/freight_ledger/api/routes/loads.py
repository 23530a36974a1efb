"""Load edit and adjustment endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from freight_ledger.api.dependencies import DbSession, Tenant
from freight_ledger.api.schemas import (
    AdjustmentCreate,
    AdjustmentDecision,
    AdjustmentLogEntryResponse,
    AdjustmentRejection,
    AdjustmentResponse,
    ErrorResponse,
    LoadResponse,
    LoadUpdateRequest,
    LoadUpdateResponse,
)
from freight_ledger.services.adjustment_service import AdjustmentOutcome, AdjustmentService
from freight_ledger.services.load_locking import LoadUpdateService

router = APIRouter(tags=["loads"])


def _adjustment_response(outcome: AdjustmentOutcome) -> AdjustmentResponse:
    response = AdjustmentResponse.model_validate(outcome.adjustment)
    response.warnings = outcome.warnings
    return response


# ============================================================================
# Loads
# ============================================================================


@router.get(
    "/loads/{load_id}",
    response_model=LoadResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_load(
    db: DbSession,
    ctx: Tenant,
    load_id: Annotated[UUID, Path()],
) -> LoadResponse:
    load = await LoadUpdateService(db).get_load(ctx, load_id)
    return LoadResponse.model_validate(load)


@router.patch(
    "/loads/{load_id}",
    response_model=LoadUpdateResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def update_load(
    db: DbSession,
    ctx: Tenant,
    load_id: Annotated[UUID, Path()],
    payload: LoadUpdateRequest,
) -> LoadUpdateResponse:
    """Patch a load. Financial edits on a locked load need a reason and are logged."""
    service = LoadUpdateService(db)
    result = await service.update_load(ctx, load_id, payload.patch, payload.reason)
    await db.commit()
    return LoadUpdateResponse(
        load=LoadResponse.model_validate(result.load),
        changed_fields=result.changed_fields,
        logged=result.logged,
        warnings=result.warnings,
    )


@router.get(
    "/loads/{load_id}/adjustment-log",
    response_model=list[AdjustmentLogEntryResponse],
)
async def get_adjustment_log(
    db: DbSession,
    ctx: Tenant,
    load_id: Annotated[UUID, Path()],
) -> list[AdjustmentLogEntryResponse]:
    service = LoadUpdateService(db)
    entries = await service.adjustment_log(ctx, load_id)
    return [AdjustmentLogEntryResponse.model_validate(entry) for entry in entries]


@router.post(
    "/loads/{load_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_adjustment(
    db: DbSession,
    ctx: Tenant,
    load_id: Annotated[UUID, Path()],
    payload: AdjustmentCreate,
) -> AdjustmentResponse:
    """Request a change to a load, applied now or after approval."""
    service = AdjustmentService(db)
    outcome = await service.create_adjustment(
        ctx,
        load_id,
        payload.patch,
        payload.reason,
        require_approval=payload.require_approval,
    )
    await db.commit()
    return _adjustment_response(outcome)


# ============================================================================
# Adjustments
# ============================================================================


@router.get("/adjustments", response_model=list[AdjustmentResponse])
async def list_adjustments(
    db: DbSession,
    ctx: Tenant,
    load_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[AdjustmentResponse]:
    service = AdjustmentService(db)
    adjustments = await service.list_adjustments(ctx, load_id=load_id, status=status_filter)
    return [AdjustmentResponse.model_validate(a) for a in adjustments]


@router.post(
    "/adjustments/{adjustment_id}/approve",
    response_model=AdjustmentResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def approve_adjustment(
    db: DbSession,
    ctx: Tenant,
    adjustment_id: Annotated[UUID, Path()],
    payload: AdjustmentDecision | None = None,
) -> AdjustmentResponse:
    """Approve a pending adjustment and apply it to the load."""
    service = AdjustmentService(db)
    outcome = await service.approve_adjustment(
        ctx,
        adjustment_id,
        expected_version=payload.expected_version if payload else None,
    )
    await db.commit()
    return _adjustment_response(outcome)


@router.post(
    "/adjustments/{adjustment_id}/reject",
    response_model=AdjustmentResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def reject_adjustment(
    db: DbSession,
    ctx: Tenant,
    adjustment_id: Annotated[UUID, Path()],
    payload: AdjustmentRejection,
) -> AdjustmentResponse:
    service = AdjustmentService(db)
    outcome = await service.reject_adjustment(
        ctx,
        adjustment_id,
        payload.reason,
        expected_version=payload.expected_version,
    )
    await db.commit()
    return _adjustment_response(outcome)
