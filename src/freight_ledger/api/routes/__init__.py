"""API routes."""

from freight_ledger.api.routes.health import router as health_router
from freight_ledger.api.routes.invoices import router as invoices_router
from freight_ledger.api.routes.loads import router as loads_router
from freight_ledger.api.routes.sequences import router as sequences_router
from freight_ledger.api.routes.settlements import router as settlements_router

__all__ = [
    "health_router",
    "invoices_router",
    "loads_router",
    "sequences_router",
    "settlements_router",
]
