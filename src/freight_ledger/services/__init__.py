"""Freight ledger services."""

from freight_ledger.services.adjustment_service import AdjustmentOutcome, AdjustmentService
from freight_ledger.services.audit import (
    AuditEntry,
    AuditSink,
    DatabaseAuditSink,
    MemoryAuditSink,
    record_audit,
)
from freight_ledger.services.invoice_service import (
    InvoiceOutcome,
    InvoiceRequest,
    InvoiceService,
    PaymentInput,
)
from freight_ledger.services.load_locking import (
    REASON_EXEMPT_FIELDS,
    LoadPatch,
    LoadUpdateService,
    is_load_locked,
    validate_locked_update,
)
from freight_ledger.services.sequence_service import EntityKind, SequenceService
from freight_ledger.services.settlement_service import (
    SettlementOutcome,
    SettlementRequest,
    SettlementService,
)
from freight_ledger.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    InvoiceStateMachine,
    SettlementStateMachine,
    SettlementStatus,
)

__all__ = [
    "AdjustmentOutcome",
    "AdjustmentService",
    "AdjustmentStateMachine",
    "AdjustmentStatus",
    "AuditEntry",
    "AuditSink",
    "DatabaseAuditSink",
    "EntityKind",
    "InvoiceOutcome",
    "InvoiceRequest",
    "InvoiceService",
    "InvoiceStateMachine",
    "LoadPatch",
    "LoadUpdateService",
    "MemoryAuditSink",
    "PaymentInput",
    "REASON_EXEMPT_FIELDS",
    "SequenceService",
    "SettlementOutcome",
    "SettlementRequest",
    "SettlementService",
    "SettlementStateMachine",
    "SettlementStatus",
    "is_load_locked",
    "record_audit",
    "validate_locked_update",
]
