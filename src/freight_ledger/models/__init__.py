"""ORM models for the freight ledger."""

from freight_ledger.models.audit import AuditRecord
from freight_ledger.models.base import Base
from freight_ledger.models.billing import Invoice, InvoiceLine, InvoicePayment
from freight_ledger.models.counter import SequenceCounter
from freight_ledger.models.fleet import Driver, Expense
from freight_ledger.models.load import Adjustment, Load, LoadAdjustmentLogEntry
from freight_ledger.models.settlement import Settlement, SettlementLoad

__all__ = [
    "Adjustment",
    "AuditRecord",
    "Base",
    "Driver",
    "Expense",
    "Invoice",
    "InvoiceLine",
    "InvoicePayment",
    "Load",
    "LoadAdjustmentLogEntry",
    "SequenceCounter",
    "Settlement",
    "SettlementLoad",
]
