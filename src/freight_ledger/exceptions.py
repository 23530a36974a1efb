"""Error taxonomy for the ledger core.

Every error carries the structured detail a caller needs to render an
actionable message (``to_dict``) without re-deriving the reason.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "LEDGER_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured payload for API responses and logs."""
        return {"code": self.code, "detail": str(self)}


class ValidationFailed(LedgerError):
    """Malformed or missing input. Lists every violation, not just the first."""

    code = "VALIDATION_FAILED"

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("Validation failed: " + "; ".join(self.errors))

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = self.errors
        payload["warnings"] = self.warnings
        return payload


class CrossOwnerViolation(ValidationFailed):
    """Settlement loads belong to a different driver."""

    code = "CROSS_OWNER_VIOLATION"

    def __init__(
        self,
        driver_id: Any,
        load_ids: list[Any],
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
    ):
        self.driver_id = driver_id
        self.load_ids = list(load_ids)
        message = f"{len(self.load_ids)} load(s) are assigned to a different driver"
        all_errors = list(errors or [])
        if message not in all_errors:
            all_errors.append(message)
        super().__init__(all_errors, warnings)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["driver_id"] = str(self.driver_id) if self.driver_id else None
        payload["load_ids"] = [str(load_id) for load_id in self.load_ids]
        return payload


class NotFound(LedgerError):
    """Referenced load, driver, invoice, settlement or adjustment is absent."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["entity_type"] = self.entity_type
        payload["entity_id"] = str(self.entity_id)
        return payload


class InvalidStateTransition(LedgerError):
    """Status precondition not met."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        current_status: str,
        target_status: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        msg = (
            f"Cannot move {entity_type} from '{current_status}' to '{target_status}'"
        )
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["entity_type"] = self.entity_type
        payload["status"] = self.current_status
        payload["target_status"] = self.target_status
        return payload


class InvalidPayment(LedgerError):
    """Payment amount is not positive or would exceed the invoice ceiling."""

    code = "INVALID_PAYMENT"

    def __init__(
        self,
        reason: str,
        amount: Decimal,
        max_amount: Decimal | None = None,
        outstanding: Decimal | None = None,
    ):
        self.reason = reason
        self.amount = amount
        self.max_amount = max_amount
        self.outstanding = outstanding
        super().__init__(reason)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["amount"] = str(self.amount)
        payload["max_amount"] = (
            str(self.max_amount) if self.max_amount is not None else None
        )
        payload["outstanding"] = (
            str(self.outstanding) if self.outstanding is not None else None
        )
        return payload


class CounterUnavailable(LedgerError):
    """The transactional counter could not commit. Transient; retry with backoff."""

    code = "COUNTER_UNAVAILABLE"

    def __init__(self, tenant_id: str, kind: str, year: int, attempts: int):
        self.tenant_id = tenant_id
        self.kind = kind
        self.year = year
        self.attempts = attempts
        super().__init__(
            f"Failed to generate {kind} number for {year} after {attempts} attempt(s). "
            "Please try again."
        )

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["kind"] = self.kind
        payload["year"] = self.year
        payload["attempts"] = self.attempts
        return payload


class ConcurrentModification(LedgerError):
    """Optimistic version check failed: another writer committed first."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: Any, expected_version: int | None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected_version}); reload and retry"
        )

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["entity_type"] = self.entity_type
        payload["entity_id"] = str(self.entity_id)
        payload["expected_version"] = self.expected_version
        return payload
