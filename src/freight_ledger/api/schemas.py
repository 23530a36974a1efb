"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from freight_ledger.calculators.types import OtherEarning, SettlementCalculation
from freight_ledger.services.load_locking import LoadPatch

# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Body of every ledger error response."""

    code: str
    detail: str
    errors: list[str] | None = None
    warnings: list[str] | None = None


# ============================================================================
# Sequences
# ============================================================================


class NextNumberRequest(BaseModel):
    year: int | None = Field(default=None, ge=1900, le=9999)


class NextNumberResponse(BaseModel):
    kind: str
    year: int
    seq: int
    number: str


class ResyncRequest(BaseModel):
    """Resync a counter. Without ``existing_numbers`` the stored entities are scanned."""

    year: int = Field(ge=1900, le=9999)
    existing_numbers: list[str] | None = None


class ResyncResponse(BaseModel):
    kind: str
    year: int
    stored: int
    next_number: int


# ============================================================================
# Settlements
# ============================================================================


class OtherEarningInput(BaseModel):
    amount: Decimal
    description: str = ""
    type: str = "other"

    def to_domain(self) -> OtherEarning:
        return OtherEarning(amount=self.amount, description=self.description, earning_type=self.type)


class SettlementCreate(BaseModel):
    """Schema for creating or previewing a settlement."""

    driver_id: UUID
    load_ids: list[UUID]
    period_start: date | None = None
    period_end: date | None = None
    deductions: dict[str, Decimal] = Field(default_factory=dict)
    other_earnings: list[OtherEarningInput] = Field(default_factory=list)
    include_expenses: bool = True
    notes: str | None = None


class SettlementTransitionRequest(BaseModel):
    status: Literal["pending", "processed", "paid", "void"]
    reason: str | None = None


class SettlementRecalculateRequest(BaseModel):
    deductions: dict[str, Decimal] | None = None
    other_earnings: list[OtherEarningInput] | None = None


class SettlementLoadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    load_id: UUID
    load_number: str
    pay_source: str
    base_pay: Decimal
    detention: Decimal
    layover: Decimal
    tonu: Decimal
    total_pay: Decimal
    miles: Decimal


class SettlementResponse(BaseModel):
    """Schema for settlement response."""

    model_config = ConfigDict(from_attributes=True)

    settlement_id: UUID
    settlement_number: str
    driver_id: UUID
    period_start: date | None = None
    period_end: date | None = None
    status: str
    gross_pay: Decimal
    other_earnings_total: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    total_miles: Decimal
    effective_rate: Decimal
    deductions: dict[str, str]
    other_earnings: list[dict[str, Any]]
    loads: list[SettlementLoadResponse]
    created_at: datetime
    processed_at: datetime | None = None
    paid_at: datetime | None = None
    voided_at: datetime | None = None
    warnings: list[str] = Field(default_factory=list)


class SettlementPreviewEntry(BaseModel):
    load_id: UUID | None
    load_number: str
    pay_source: str
    base_pay: Decimal
    detention: Decimal
    layover: Decimal
    tonu: Decimal
    total_pay: Decimal


class SettlementPreviewResponse(BaseModel):
    """Unrounded figures from a settlement computation."""

    loads: list[SettlementPreviewEntry]
    gross_pay: Decimal
    other_earnings_total: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    total_miles: Decimal
    effective_rate: Decimal
    deductions: dict[str, Decimal]
    warnings: list[str]

    @classmethod
    def from_calculation(cls, calculation: SettlementCalculation) -> "SettlementPreviewResponse":
        return cls(
            loads=[
                SettlementPreviewEntry(
                    load_id=entry.load_id,
                    load_number=entry.load_number,
                    pay_source=entry.pay_source.value,
                    base_pay=entry.base_pay,
                    detention=entry.detention,
                    layover=entry.layover,
                    tonu=entry.tonu,
                    total_pay=entry.total_pay,
                )
                for entry in calculation.entries
            ],
            gross_pay=calculation.gross_pay,
            other_earnings_total=calculation.other_earnings_total,
            total_deductions=calculation.total_deductions,
            net_pay=calculation.net_pay,
            total_miles=calculation.total_miles,
            effective_rate=calculation.effective_rate,
            deductions={
                category.value: amount for category, amount in calculation.deductions.items()
            },
            warnings=calculation.warnings,
        )


# ============================================================================
# Invoices
# ============================================================================


class InvoiceCreate(BaseModel):
    """Schema for creating a new invoice."""

    customer_name: str
    load_ids: list[UUID]
    issue_date: date | None = None
    due_date: date | None = None
    factored: bool = False
    factoring_company: str | None = None
    factoring_fee_percent: Decimal | None = None
    notes: str | None = None


class PaymentCreate(BaseModel):
    amount: Decimal
    payment_date: date | None = None
    method: Literal["check", "ach", "wire", "credit_card", "cash", "factoring", "other"] = "check"
    reference: str | None = None
    expected_version: int | None = None


class InvoiceLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    load_id: UUID
    load_number: str
    description: str
    base_amount: Decimal
    fuel_surcharge: Decimal
    detention: Decimal
    layover: Decimal
    lumper: Decimal
    other_accessorials: Decimal
    line_total: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    amount: Decimal
    payment_date: date
    method: str
    reference: str | None = None


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_id: UUID
    invoice_number: str
    customer_name: str
    issue_date: date
    due_date: date | None = None
    amount: Decimal
    paid_amount: Decimal
    factoring_enabled: bool
    factoring_fee: Decimal
    net_amount: Decimal
    status: str
    version: int
    paid_at: datetime | None = None
    lines: list[InvoiceLineResponse]
    payments: list[PaymentResponse]
    warnings: list[str] = Field(default_factory=list)


class AgingResponse(BaseModel):
    as_of: date
    current: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    days_90_plus: Decimal
    total: Decimal


# ============================================================================
# Loads & adjustments
# ============================================================================


class LoadUpdateRequest(BaseModel):
    patch: LoadPatch
    reason: str | None = None


class LoadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    load_id: UUID
    load_number: str
    status: str
    driver_id: UUID | None = None
    customer_name: str | None = None
    rate: Decimal | None = None
    miles: Decimal | None = None
    driver_base_pay: Decimal | None = None
    driver_total_gross: Decimal | None = None
    invoice_id: UUID | None = None
    settlement_id: UUID | None = None
    updated_at: datetime
    version: int


class LoadUpdateResponse(BaseModel):
    load: LoadResponse
    changed_fields: list[str]
    logged: bool
    warnings: list[str] = Field(default_factory=list)


class AdjustmentCreate(BaseModel):
    patch: LoadPatch
    reason: str
    require_approval: bool = True


class AdjustmentDecision(BaseModel):
    expected_version: int | None = None


class AdjustmentRejection(BaseModel):
    reason: str
    expected_version: int | None = None


class AdjustmentResponse(BaseModel):
    """Schema for adjustment response."""

    model_config = ConfigDict(from_attributes=True)

    adjustment_id: UUID
    load_id: UUID
    patch: dict[str, Any]
    reason: str
    status: str
    require_approval: bool
    created_by: str
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    applied_at: datetime | None = None
    version: int
    warnings: list[str] = Field(default_factory=list)


class AdjustmentLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field: str
    old_value: Any = None
    new_value: Any = None
    reason: str | None = None
    changed_by: str
    changed_at: datetime
    adjustment_id: UUID | None = None
