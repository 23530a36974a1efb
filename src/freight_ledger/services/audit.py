"""Audit sink for ledger mutations.

A failing sink never blocks the mutation it describes. ``record_audit``
logs the failure and hands back a warning string for the caller to pass on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from freight_ledger.models import AuditRecord
from freight_ledger.models.base import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    """One audited change."""

    tenant_id: str
    entity_type: str
    entity_id: str
    action: str
    patch: dict[str, Any]
    reason: str | None
    actor_id: str
    timestamp: datetime = field(default_factory=utcnow)


class AuditSink(Protocol):
    async def write(self, entry: AuditEntry) -> None: ...


class DatabaseAuditSink:
    """Writes audit rows into the caller's session inside a savepoint.

    A failed write rolls back only the savepoint; the mutation already
    flushed in the enclosing transaction is kept.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def write(self, entry: AuditEntry) -> None:
        async with self.session.begin_nested():
            self.session.add(
                AuditRecord(
                    tenant_id=entry.tenant_id,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    action=entry.action,
                    patch=entry.patch,
                    reason=entry.reason,
                    actor_id=entry.actor_id,
                    recorded_at=entry.timestamp,
                )
            )


class MemoryAuditSink:
    """In-process sink that keeps entries in a list."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


async def record_audit(sink: AuditSink | None, entry: AuditEntry) -> str | None:
    """Write an audit entry. Returns a warning instead of raising on failure."""
    if sink is None:
        return None
    try:
        await sink.write(entry)
    except Exception:
        logger.exception(
            "Audit write failed for %s %s (%s)", entry.entity_type, entry.entity_id, entry.action
        )
        return f"Audit record for {entry.entity_type} {entry.entity_id} could not be written"
    return None
