"""
Custom exceptions for capital call administration
"""
from typing import Any, Dict, List, Optional


class CapitalCallError(Exception):
    """Base exception for capital call business errors"""

    status_code = 400

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for an API response"""
        return {"detail": str(self), "error_type": type(self).__name__}


class ValidationError(CapitalCallError):
    """Raised when input fields are missing or invalid"""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class InvalidTransitionError(CapitalCallError):
    """Raised when the state machine rejects a status change"""

    status_code = 409

    def __init__(self, current_status: str, requested_status: str, allowed: Optional[List[str]] = None):
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed = list(allowed or [])
        super().__init__(
            f"Invalid status transition from '{current_status}' to '{requested_status}'. "
            f"Allowed transitions: {', '.join(self.allowed) or 'none'}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "current_status": self.current_status,
            "requested_status": self.requested_status,
            "allowed_transitions": self.allowed,
        })
        return data


class OverpaymentRejectedError(CapitalCallError):
    """Raised when a payment would exceed the call amount"""

    def __init__(self, payment_amount, max_allowed):
        self.payment_amount = payment_amount
        self.max_allowed = max_allowed
        super().__init__(
            f"Payment amount of {payment_amount} would exceed the call amount. "
            f"The maximum allowed payment is {max_allowed}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["max_allowed"] = str(self.max_allowed)
        return data


class NotFoundError(CapitalCallError):
    """Raised when a referenced fund, allocation or capital call does not exist"""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class DuplicateSubmissionError(CapitalCallError):
    """Raised by storage on a unique-constraint violation; absorbed by the integrity layer"""

    status_code = 409

    def __init__(self, entity: str, detail: str = ""):
        self.entity = entity
        super().__init__(f"Duplicate {entity} submission" + (f": {detail}" if detail else ""))
