"""Year-scoped sequence numbers for invoices, loads and settlements.

Each allocation runs in its own short transaction: a single
``UPDATE ... SET seq = seq + 1`` on the (tenant, kind, year) row, or an
``INSERT`` of the kind's starting value when the row does not exist yet.
The unique key on the counter table turns a lost creation race into an
``IntegrityError``; lock contention surfaces as ``OperationalError`` and a
dropped connection as ``InterfaceError``. Every ``DBAPIError`` is retried
with backoff a bounded number of times before the caller gets
``CounterUnavailable``. The database row is the only source of truth; no
"does this number already exist" check is performed afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Awaitable, Callable, Iterable
from datetime import date
from enum import Enum
from typing import TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freight_ledger.config import get_settings
from freight_ledger.context import TenantContext
from freight_ledger.exceptions import CounterUnavailable, ValidationFailed
from freight_ledger.models import Invoice, Load, SequenceCounter, Settlement
from freight_ledger.models.base import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityKind(str, Enum):
    """Kinds of numbered ledger entities."""

    INVOICE = "invoice"
    LOAD = "load"
    SETTLEMENT = "settlement"


# Loads number from 1; invoices and settlements from 1000.
START_VALUES: dict[EntityKind, int] = {
    EntityKind.INVOICE: 1000,
    EntityKind.LOAD: 1,
    EntityKind.SETTLEMENT: 1000,
}

_NUMBER_COLUMNS = {
    EntityKind.INVOICE: (Invoice, Invoice.invoice_number),
    EntityKind.LOAD: (Load, Load.load_number),
    EntityKind.SETTLEMENT: (Settlement, Settlement.settlement_number),
}


def parse_kind(kind: str | EntityKind) -> EntityKind:
    try:
        return EntityKind(kind)
    except ValueError:
        raise ValidationFailed([f"Unknown sequence kind: {kind}"]) from None


class SequenceService:
    """Issues unique, monotonically increasing numbers per (tenant, kind, year)."""

    BACKOFF_BASE = 0.01
    BACKOFF_CAP = 0.5

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int | None = None,
        settlement_prefix: str | None = None,
        today: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.counter_max_attempts
        self.settlement_prefix = settlement_prefix or settings.settlement_prefix
        self._today = today

    def current_year(self) -> int:
        return self._today().year

    def prefix(self, kind: str | EntityKind) -> str:
        kind = parse_kind(kind)
        if kind == EntityKind.INVOICE:
            return "INV"
        if kind == EntityKind.LOAD:
            return "LD"
        return self.settlement_prefix

    def format_number(self, kind: str | EntityKind, year: int, seq: int) -> str:
        """``INV-2025-1000``, ``LD-2025-1``, ``SET-2025-1000``."""
        return f"{self.prefix(kind)}-{year}-{seq}"

    async def next_number(
        self,
        ctx: TenantContext,
        kind: str | EntityKind,
        year: int | None = None,
    ) -> int:
        """Allocate the next number for the key.

        Raises:
            CounterUnavailable: If no attempt could commit
        """
        kind = parse_kind(kind)
        year = year or self.current_year()

        async def allocate(session: AsyncSession) -> int:
            key = self._key_filter(ctx.tenant_id, kind, year)
            result = await session.execute(
                update(SequenceCounter)
                .where(*key)
                .values(seq=SequenceCounter.seq + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return await session.scalar(select(SequenceCounter.seq).where(*key))

            start = START_VALUES[kind]
            session.add(
                SequenceCounter(
                    tenant_id=ctx.tenant_id,
                    kind=kind.value,
                    year=year,
                    seq=start,
                    updated_at=utcnow(),
                )
            )
            return start

        value = await self._run_with_retries(ctx, kind, year, allocate)
        logger.debug(
            "Allocated %s number %s for tenant %s (%s)", kind.value, value, ctx.tenant_id, year
        )
        return value

    async def next_formatted(
        self,
        ctx: TenantContext,
        kind: str | EntityKind,
        year: int | None = None,
    ) -> str:
        kind = parse_kind(kind)
        year = year or self.current_year()
        seq = await self.next_number(ctx, kind, year)
        return self.format_number(kind, year, seq)

    async def preview_next(
        self,
        ctx: TenantContext,
        kind: str | EntityKind,
        year: int | None = None,
    ) -> int:
        """The number the next allocation would return, without allocating it."""
        kind = parse_kind(kind)
        year = year or self.current_year()
        async with self.session_factory() as session:
            current = await session.scalar(
                select(SequenceCounter.seq).where(*self._key_filter(ctx.tenant_id, kind, year))
            )
        if current is None:
            return START_VALUES[kind]
        return current + 1

    async def resync(
        self,
        ctx: TenantContext,
        kind: str | EntityKind,
        year: int,
        existing_numbers: Iterable[str],
    ) -> int:
        """Raise the stored counter to the highest already-issued number.

        Numbers not matching ``PREFIX-YEAR-N`` are ignored. The counter is
        never lowered, so calling this repeatedly is harmless. Returns the
        stored value afterwards; the next allocation is that value plus one.
        """
        kind = parse_kind(kind)
        pattern = re.compile(rf"^{re.escape(self.prefix(kind))}-{year}-(\d+)$")
        found = []
        for number in existing_numbers:
            match = pattern.match(number.strip())
            if match:
                found.append(int(match.group(1)))
        highest = max(found, default=START_VALUES[kind] - 1)

        async def raise_counter(session: AsyncSession) -> int:
            counter = await session.scalar(
                select(SequenceCounter)
                .where(*self._key_filter(ctx.tenant_id, kind, year))
                .with_for_update()
            )
            if counter is None:
                session.add(
                    SequenceCounter(
                        tenant_id=ctx.tenant_id,
                        kind=kind.value,
                        year=year,
                        seq=highest,
                        updated_at=utcnow(),
                    )
                )
                return highest
            if counter.seq < highest:
                counter.seq = highest
                counter.updated_at = utcnow()
            return counter.seq

        stored = await self._run_with_retries(ctx, kind, year, raise_counter)
        logger.info(
            "Resynced %s counter for tenant %s (%s): highest issued %s, stored %s",
            kind.value,
            ctx.tenant_id,
            year,
            highest,
            stored,
        )
        return stored

    async def issued_numbers(
        self,
        ctx: TenantContext,
        kind: str | EntityKind,
        year: int,
    ) -> list[str]:
        """Formatted numbers already stored on entities of this kind and year."""
        kind = parse_kind(kind)
        model, column = _NUMBER_COLUMNS[kind]
        async with self.session_factory() as session:
            result = await session.execute(
                select(column).where(
                    model.tenant_id == ctx.tenant_id,
                    column.like(f"{self.prefix(kind)}-{year}-%"),
                )
            )
            return list(result.scalars().all())

    def _key_filter(self, tenant_id: str, kind: EntityKind, year: int) -> tuple:
        return (
            SequenceCounter.tenant_id == tenant_id,
            SequenceCounter.kind == kind.value,
            SequenceCounter.year == year,
        )

    async def _run_with_retries(
        self,
        ctx: TenantContext,
        kind: EntityKind,
        year: int,
        operation: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        value = await operation(session)
                return value
            except DBAPIError as exc:
                logger.warning(
                    "Counter contention on %s/%s/%s (attempt %d of %d): %s",
                    ctx.tenant_id,
                    kind.value,
                    year,
                    attempt,
                    self.max_attempts,
                    exc.__class__.__name__,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self._backoff(attempt))

        raise CounterUnavailable(ctx.tenant_id, kind.value, year, self.max_attempts)

    def _backoff(self, attempt: int) -> float:
        delay = min(self.BACKOFF_CAP, self.BACKOFF_BASE * 2 ** (attempt - 1))
        return delay * random.uniform(0.5, 1.5)
