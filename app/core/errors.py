# app/core/errors.py - Domain errors raised by the fee ledger services
from typing import Any, Dict, Optional


class FeeLedgerError(Exception):
    """Base class for every error the finance services raise on purpose"""

    kind = "FeeLedgerError"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "detail": self.message,
            "context": {k: str(v) if not isinstance(v, (int, float, bool, str, list)) else v
                        for k, v in self.context.items()},
        }


class NotFound(FeeLedgerError):
    """Unknown obligation, receipt, rule, plan or entry"""
    kind = "NotFound"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, line: Optional[int] = None):
        message = f"{entity} '{entity_id}' not found"
        if line is not None:
            message = f"Line {line}: {message}"
        super().__init__(message, entity=entity, id=entity_id, line=line)


class ExceedsDue(FeeLedgerError):
    """A payment line would overdraw its obligation"""
    kind = "ExceedsDue"
    status_code = 409

    def __init__(self, line: int, student_fee_id: str, amount, remaining_due, fee_type_name: str = None):
        label = f" ({fee_type_name})" if fee_type_name else ""
        super().__init__(
            f"Line {line}: payment of {amount} exceeds remaining due {remaining_due} "
            f"for student fee {student_fee_id}{label}",
            line=line,
            student_fee_id=student_fee_id,
            amount=amount,
            remaining_due=remaining_due,
        )


class InvalidState(FeeLedgerError):
    """Operation is not allowed in the record's current state"""
    kind = "InvalidState"
    status_code = 409


class InvalidDiscount(FeeLedgerError):
    """A discount would push discount + paid above the obligation total"""
    kind = "InvalidDiscount"
    status_code = 409


class ValidationError(FeeLedgerError):
    """Malformed or missing input detected before any mutation"""
    kind = "ValidationError"
    status_code = 422


class ConcurrencyConflict(FeeLedgerError):
    """Lock contention or a stale read detected at commit"""
    kind = "ConcurrencyConflict"
    status_code = 409


class PermissionDenied(FeeLedgerError):
    """Caller identity lacks the role or student access for the operation"""
    kind = "PermissionDenied"
    status_code = 403


class GatewayUnavailable(FeeLedgerError):
    """The payment gateway could not be reached or answered badly"""
    kind = "GatewayUnavailable"
    status_code = 502


__all__ = [
    "FeeLedgerError",
    "NotFound",
    "ExceedsDue",
    "InvalidState",
    "InvalidDiscount",
    "ValidationError",
    "ConcurrencyConflict",
    "PermissionDenied",
    "GatewayUnavailable",
]
