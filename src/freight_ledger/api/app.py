"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from freight_ledger import __version__
from freight_ledger.api.routes import (
    health_router,
    invoices_router,
    loads_router,
    sequences_router,
    settlements_router,
)
from freight_ledger.database import dispose_db, init_db
from freight_ledger.exceptions import (
    ConcurrentModification,
    CounterUnavailable,
    InvalidPayment,
    InvalidStateTransition,
    LedgerError,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

# Checked in order; CrossOwnerViolation is a ValidationFailed.
ERROR_STATUS_CODES: list[tuple[type[LedgerError], int]] = [
    (ValidationFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidPayment, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidStateTransition, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (CounterUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(exc: LedgerError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Freight Ledger API",
        description="Settlements, invoices and post-delivery adjustments for trucking operations",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        """Render domain errors with their structured detail."""
        code = status_code_for(exc)
        if code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(sequences_router, prefix="/api/v1")
    app.include_router(settlements_router, prefix="/api/v1")
    app.include_router(invoices_router, prefix="/api/v1")
    app.include_router(loads_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
