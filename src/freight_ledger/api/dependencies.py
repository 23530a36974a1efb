"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freight_ledger.context import TenantContext
from freight_ledger.database import get_session_factory
from freight_ledger.services.sequence_service import SequenceService


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory dependency. Overridden in tests."""
    return get_session_factory()


SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]


async def get_db_session(factory: SessionMaker) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_sequence_service(factory: SessionMaker) -> SequenceService:
    """Counters run in their own transactions, so they get the factory."""
    return SequenceService(factory)


async def get_tenant_context(
    x_tenant_id: Annotated[str | None, Header()] = None,
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> TenantContext:
    """Extract tenant and actor from headers."""
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return TenantContext(
        tenant_id=x_tenant_id.strip(),
        actor_id=x_actor_id or "system",
        actor_role=x_actor_role or "system",
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Tenant = Annotated[TenantContext, Depends(get_tenant_context)]
Sequences = Annotated[SequenceService, Depends(get_sequence_service)]
