"""
Payment ledger

Records payment events against capital calls and keeps the call's paid and
outstanding figures in line with the payment log. The log is the source of
truth: paid_amount is always recomputed from the persisted payments, never
incremented in place.
"""
from typing import Any, Dict, Iterable, List, NamedTuple, Optional
from datetime import date
from decimal import Decimal
import logging

from app.core.config import CapitalCallSettings
from app.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentRejectedError,
    ValidationError,
)
from app.services.call_state_machine import (
    DEFAULTED,
    PAID,
    PARTIAL_STATUSES,
    PARTIALLY_PAID,
    allowed_transitions,
    validate_transition,
)
from app.services.schedule_generator import to_decimal
from app.services.storage import Storage

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ["wire", "check", "ach", "other"]


class PaymentTotals(NamedTuple):
    """Paid/outstanding figures derived from a call's payment log"""
    total_paid: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal


def summarize_payments(call_amount: Any, payments: Iterable[Any]) -> PaymentTotals:
    """
    Reduce a payment log to the call's paid and outstanding amounts

    total_paid is the raw sum of the log; paid_amount is capped at the call
    amount (relevant only when overpayments are allowed).
    """
    call_amount = to_decimal(call_amount)
    total = sum((to_decimal(p.amount) for p in payments), Decimal("0"))
    paid = min(total, call_amount)
    return PaymentTotals(total, paid, call_amount - paid)


def derive_call_status(current_status: str, call_amount: Any, paid_amount: Any) -> str:
    """Status implied by the paid amount: paid, partially_paid, or unchanged"""
    call_amount = to_decimal(call_amount)
    paid = to_decimal(paid_amount)
    if call_amount - paid <= 0:
        return PAID
    if paid > 0:
        return PARTIALLY_PAID
    return current_status


class PaymentLedger:
    """
    Apply payments to capital calls

    Example:
        >>> ledger = PaymentLedger(storage, CapitalCallSettings())
        >>> call, payment = await ledger.record_payment(call_id=1, amount=30000)
    """

    def __init__(self, storage: Storage, config: Optional[CapitalCallSettings] = None):
        self.storage = storage
        self.config = config or CapitalCallSettings()

    def validate_payment_input(self, amount: Any, payment_type: Optional[str], notes: Optional[str]) -> str:
        """Check amount, payment type and notes; return the effective payment type"""
        errors = []
        if amount is None or to_decimal(amount) <= 0:
            errors.append("Payment amount must be greater than 0")

        payment_type = payment_type or self.config.default_payment_type
        if payment_type not in PAYMENT_TYPES:
            errors.append(f"Payment type must be one of: {', '.join(PAYMENT_TYPES)}")

        if self.config.require_payment_notes and not (notes or "").strip():
            errors.append("Payment notes are required")

        if errors:
            raise ValidationError(errors)
        return payment_type

    async def get_payment_totals(self, call: Any) -> PaymentTotals:
        payments = await self.storage.get_payments_for_capital_call(call.id)
        return summarize_payments(call.call_amount, payments)

    async def record_payment(
        self,
        call_id: int,
        amount: Any,
        payment_date: Optional[date] = None,
        payment_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None
    ):
        """
        Append a payment and update the call

        Returns:
            Tuple of (updated capital call, created payment)

        Raises:
            ValidationError: Bad amount, payment type or missing notes
            NotFoundError: Capital call does not exist
            InvalidTransitionError: Call has been defaulted, or the resulting
                status is not reachable from the current one
            OverpaymentRejectedError: Payment exceeds the remaining balance
        """
        payment_type = self.validate_payment_input(amount, payment_type, notes)
        amount = to_decimal(amount)
        payment_date = payment_date or date.today()

        call = await self.storage.get_capital_call(call_id)
        if not call:
            raise NotFoundError("Capital call", call_id)

        if call.status == DEFAULTED:
            raise InvalidTransitionError(call.status, PAID, allowed_transitions(call.status))

        call_amount = to_decimal(call.call_amount)
        totals = await self.get_payment_totals(call)

        if totals.total_paid + amount > call_amount and not self.config.allow_overpayments:
            max_allowed = max(Decimal("0"), call_amount - totals.total_paid)
            raise OverpaymentRejectedError(amount, max_allowed)

        new_paid = min(totals.total_paid + amount, call_amount)
        new_outstanding = call_amount - new_paid
        new_status = derive_call_status(call.status, call_amount, new_paid)
        if new_status == PARTIALLY_PAID and call.status in PARTIAL_STATUSES:
            new_status = call.status
        if new_status != call.status:
            validate_transition(call.status, new_status)

        payment = await self.storage.create_payment({
            "capital_call_id": call.id,
            "amount": amount,
            "payment_date": payment_date,
            "payment_type": payment_type,
            "notes": notes,
            "created_by": created_by,
        })

        updated = await self.storage.update_capital_call(call.id, {
            "paid_amount": new_paid,
            "outstanding_amount": new_outstanding,
            "status": new_status,
            "paid_date": payment_date,
        })

        logger.info(
            f"Recorded {payment_type} payment of {amount} on capital call {call.id}: "
            f"paid {new_paid}, outstanding {new_outstanding}, status {new_status}"
        )
        return updated, payment

    async def reconcile_to_paid_amount(
        self,
        call: Any,
        target_paid: Any,
        payment_date: Optional[date] = None,
        payment_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None
    ) -> Optional[Any]:
        """
        Append a payment so the log reaches target_paid

        Used when a status change sets a cumulative paid amount directly.
        The log is append-only, so a target below what has already been
        recorded is rejected. Returns the created payment, or None when the
        log already matches.
        """
        target = to_decimal(target_paid)
        totals = await self.get_payment_totals(call)
        if target < totals.total_paid:
            raise ValidationError(
                f"Paid amount {target} is lower than the {totals.total_paid} already recorded in payments"
            )
        difference = target - totals.total_paid
        if difference == 0:
            return None

        return await self.storage.create_payment({
            "capital_call_id": call.id,
            "amount": difference,
            "payment_date": payment_date or date.today(),
            "payment_type": payment_type or self.config.default_payment_type,
            "notes": notes or "Recorded via status update",
            "created_by": created_by,
        })

    async def list_payments(self, call_id: int) -> List[Any]:
        call = await self.storage.get_capital_call(call_id)
        if not call:
            raise NotFoundError("Capital call", call_id)
        return await self.storage.get_payments_for_capital_call(call_id)
