"""Freight ledger command line interface.

Provides operational tools for:
- Allocating and previewing document numbers
- Resyncing a counter after a data import
- Refreshing invoice statuses and reporting AR aging
- Creating the schema on a fresh database

Usage:
    freight-ledger-admin create-tables
    freight-ledger-admin next-number --tenant-id X --kind invoice
    freight-ledger-admin resync-counter --tenant-id X --kind invoice --year 2025
    freight-ledger-admin ar-aging --tenant-id X --as-of 2025-03-31
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncEngine

from freight_ledger.context import TenantContext
from freight_ledger.database import get_engine, make_session_factory
from freight_ledger.exceptions import LedgerError
from freight_ledger.models import Base
from freight_ledger.services.invoice_service import InvoiceService
from freight_ledger.services.sequence_service import EntityKind, SequenceService

logger = logging.getLogger(__name__)

KINDS = [kind.value for kind in EntityKind]


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


class LedgerCli:
    """Freight ledger command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="freight-ledger-admin",
            description="Freight ledger operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("create-tables", help="Create all ledger tables")

        for name, help_text in (
            ("next-number", "Allocate the next document number"),
            ("preview-number", "Show the next document number without allocating it"),
        ):
            sub = subparsers.add_parser(name, help=help_text)
            sub.add_argument("--tenant-id", type=str, required=True, help="Tenant ID")
            sub.add_argument("--kind", choices=KINDS, required=True, help="Document kind")
            sub.add_argument("--year", type=int, help="Counter year (default: current year)")

        resync = subparsers.add_parser(
            "resync-counter",
            help="Raise a counter to the highest number already issued",
        )
        resync.add_argument("--tenant-id", type=str, required=True, help="Tenant ID")
        resync.add_argument("--kind", choices=KINDS, required=True, help="Document kind")
        resync.add_argument("--year", type=int, required=True, help="Counter year")

        aging = subparsers.add_parser("ar-aging", help="Report receivables aging as JSON")
        aging.add_argument("--tenant-id", type=str, required=True, help="Tenant ID")
        aging.add_argument(
            "--as-of",
            type=parse_date,
            help="Aging date (ISO format, default: today)",
        )

        refresh = subparsers.add_parser(
            "refresh-invoices",
            help="Recompute cached invoice statuses (e.g. to mark overdue)",
        )
        refresh.add_argument("--tenant-id", type=str, required=True, help="Tenant ID")
        refresh.add_argument("--as-of", type=parse_date, help="Status date (default: today)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., Awaitable[dict[str, Any]]]] = {
            "create-tables": self._cmd_create_tables,
            "next-number": self._cmd_next_number,
            "preview-number": self._cmd_preview_number,
            "resync-counter": self._cmd_resync_counter,
            "ar-aging": self._cmd_ar_aging,
            "refresh-invoices": self._cmd_refresh_invoices,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            result = asyncio.run(self._with_database(parsed, handler))
        except LedgerError as exc:
            print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
            return 1

        print(json.dumps(result, indent=2, default=str))
        return 0

    async def _with_database(
        self,
        args: argparse.Namespace,
        handler: Callable[..., Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        engine = get_engine(args.database_url)
        try:
            return await handler(args, engine)
        finally:
            await engine.dispose()

    async def _cmd_create_tables(self, args: argparse.Namespace, engine: AsyncEngine) -> dict[str, Any]:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return {"tables": sorted(Base.metadata.tables)}

    async def _cmd_next_number(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> dict[str, Any]:
        factory = make_session_factory(engine)
        sequences = SequenceService(factory)
        year = args.year or sequences.current_year()
        seq = await sequences.next_number(TenantContext(args.tenant_id), args.kind, year)
        return {
            "kind": args.kind,
            "year": year,
            "seq": seq,
            "number": sequences.format_number(args.kind, year, seq),
        }

    async def _cmd_preview_number(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> dict[str, Any]:
        factory = make_session_factory(engine)
        sequences = SequenceService(factory)
        year = args.year or sequences.current_year()
        seq = await sequences.preview_next(TenantContext(args.tenant_id), args.kind, year)
        return {
            "kind": args.kind,
            "year": year,
            "seq": seq,
            "number": sequences.format_number(args.kind, year, seq),
        }

    async def _cmd_resync_counter(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> dict[str, Any]:
        """Scan stored numbers for the kind and year, then raise the counter."""
        factory = make_session_factory(engine)
        ctx = TenantContext(args.tenant_id)
        sequences = SequenceService(factory)
        issued = await sequences.issued_numbers(ctx, args.kind, args.year)
        stored = await sequences.resync(ctx, args.kind, args.year, issued)
        return {
            "kind": args.kind,
            "year": args.year,
            "issued": len(issued),
            "stored": stored,
            "next_number": sequences.format_number(args.kind, args.year, stored + 1),
        }

    async def _cmd_ar_aging(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> dict[str, Any]:
        factory = make_session_factory(engine)
        as_of = args.as_of or date.today()
        async with factory() as session:
            service = InvoiceService(session, SequenceService(factory))
            buckets = await service.ar_aging(TenantContext(args.tenant_id), as_of)
        return {"as_of": as_of.isoformat(), **buckets.to_dict()}

    async def _cmd_refresh_invoices(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> dict[str, Any]:
        factory = make_session_factory(engine)
        as_of = args.as_of or date.today()
        async with factory() as session:
            service = InvoiceService(session, SequenceService(factory))
            changed = await service.refresh_statuses(TenantContext(args.tenant_id), as_of)
            await session.commit()
        logger.info("Refreshed invoice statuses for %s: %d changed", args.tenant_id, changed)
        return {"as_of": as_of.isoformat(), "changed": changed}


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=logging.WARNING)
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
