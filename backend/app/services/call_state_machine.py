"""
Capital call state machine

Validates status transitions for a single capital call and computes the
field changes a transition implies. Pure: callers persist the result.
"""
from typing import Any, Dict, List, Optional
from datetime import date
from decimal import Decimal

from app.exceptions import InvalidTransitionError, ValidationError
from app.services.schedule_generator import to_decimal

SCHEDULED = "scheduled"
CALLED = "called"
PARTIAL = "partial"
PARTIALLY_PAID = "partially_paid"
OVERDUE = "overdue"
PAID = "paid"
DEFAULTED = "defaulted"

CAPITAL_CALL_STATUSES = [SCHEDULED, CALLED, PARTIAL, PARTIALLY_PAID, OVERDUE, PAID, DEFAULTED]

# `partial` is kept for records written before `partially_paid` existed;
# new partial payments are always recorded as `partially_paid`.
VALID_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    SCHEDULED: [CALLED, OVERDUE, DEFAULTED, PARTIALLY_PAID, PAID],
    CALLED: [PARTIAL, PARTIALLY_PAID, PAID, OVERDUE, DEFAULTED],
    PARTIAL: [PAID, OVERDUE, DEFAULTED],
    PARTIALLY_PAID: [PAID, OVERDUE, DEFAULTED],
    OVERDUE: [PAID, DEFAULTED, PARTIAL, PARTIALLY_PAID],
    PAID: [],
    DEFAULTED: [],
}

TERMINAL_STATUSES = {PAID, DEFAULTED}
PARTIAL_STATUSES = {PARTIAL, PARTIALLY_PAID}


def allowed_transitions(current_status: str) -> List[str]:
    return list(VALID_STATUS_TRANSITIONS.get(current_status, []))


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless current -> new is in the transition table"""
    if new_status not in CAPITAL_CALL_STATUSES:
        raise ValidationError(f"Invalid status value: {new_status}")
    allowed = allowed_transitions(current_status)
    if new_status not in allowed:
        raise InvalidTransitionError(current_status, new_status, allowed)


def calculate_outstanding_amount(call_amount: Any, paid_amount: Any) -> Decimal:
    """Outstanding balance, floored at zero"""
    return max(Decimal("0"), to_decimal(call_amount) - to_decimal(paid_amount))


def apply_status_change(
    call: Any,
    new_status: str,
    paid_amount: Any = None,
    paid_date: Optional[date] = None
) -> Dict[str, Any]:
    """
    Validate a transition and return the patch it implies

    Args:
        call: Capital call exposing status, call_amount, paid_amount,
            outstanding_amount and paid_date
        new_status: Requested status
        paid_amount: Cumulative paid amount; required for paid and partial
            transitions
        paid_date: Date stamped on payment-related transitions (default today)

    Returns:
        Dictionary of fields to update on the call

    Raises:
        InvalidTransitionError: Transition not in the table
        ValidationError: Paid amount missing or inconsistent with the status
    """
    validate_transition(call.status, new_status)

    call_amount = to_decimal(call.call_amount)
    patch: Dict[str, Any] = {"status": new_status}

    if new_status == PAID:
        if paid_amount is None:
            raise ValidationError("Paid amount is required to mark a capital call as paid")
        paid = to_decimal(paid_amount)
        if paid != call_amount:
            raise ValidationError(
                f"Paid amount {paid} must equal the call amount {call_amount} to mark as paid"
            )
        patch.update({
            "paid_amount": paid,
            "outstanding_amount": Decimal("0"),
            "paid_date": paid_date or date.today(),
        })
    elif new_status in PARTIAL_STATUSES:
        if paid_amount is None:
            raise ValidationError("Paid amount is required for a partial payment")
        paid = to_decimal(paid_amount)
        if paid <= 0 or paid >= call_amount:
            raise ValidationError(
                "Partial payment amount must be greater than 0 and less than the call amount"
            )
        patch.update({
            "paid_amount": paid,
            "outstanding_amount": call_amount - paid,
            "paid_date": paid_date or date.today(),
        })
    elif new_status == DEFAULTED:
        # Remaining balance is written off
        patch["outstanding_amount"] = Decimal("0")

    return patch
