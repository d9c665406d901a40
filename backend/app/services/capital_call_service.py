"""
Capital Call Service

Orchestrates capital call administration on top of the storage interface:
schedule generation, idempotent creation, status transitions, payments,
and the cascade that follows a change in call state:

    payment / status change
        -> allocation status (AllocationStatusAggregator)
        -> fund portfolio weights (PortfolioWeightRecalculator)

The cascade runs after the triggering write has been persisted. A failure
downstream is logged and does not undo the payment or status change.
"""
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Tuple
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal
import asyncio
import logging

from app.core.config import CapitalCallSettings
from app.exceptions import (
    DuplicateSubmissionError,
    NotFoundError,
    ValidationError,
)
from app.services.allocation_integrity import AllocationIntegrityService
from app.services.allocation_status import AllocationStatusAggregator, FUNDED
from app.services.call_state_machine import (
    CALLED,
    CAPITAL_CALL_STATUSES,
    DEFAULTED,
    OVERDUE,
    PAID,
    PARTIAL,
    PARTIALLY_PAID,
    SCHEDULED,
    apply_status_change,
    calculate_outstanding_amount,
    is_terminal,
)
from app.services.payment_ledger import PAYMENT_TYPES, PaymentLedger, derive_call_status
from app.services.portfolio_weights import PortfolioWeightRecalculator
from app.services.schedule_generator import (
    HUNDRED,
    calculate_due_date,
    generate_schedule,
    get_reference_date,
    quantize,
    to_decimal,
)
from app.services.storage import Storage

logger = logging.getLogger(__name__)

# Statuses swept to overdue once their due date (plus grace days) has passed
OVERDUE_CANDIDATE_STATUSES = [CALLED, PARTIAL, PARTIALLY_PAID]

SINGLE_PAYMENT_NOTE = "Single payment allocation - automatically paid"


class KeyedLock:
    """
    One asyncio.Lock per key

    A key's lock exists only while a holder or waiter is using it, so
    long-lived instances do not grow with every id ever locked.

    Example:
        >>> async with locks(call_id):
        ...     ...
    """

    def __init__(self):
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._users: Dict[Any, int] = defaultdict(int)

    @asynccontextmanager
    async def __call__(self, key: Any) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class CapitalCallService:
    """
    Capital call administration

    Read-recompute-write sequences are serialised per capital call and per
    fund with in-process locks; pass shared KeyedLock instances to make
    several service instances cooperate.

    Example:
        >>> service = CapitalCallService(SqlAlchemyStorage(db))
        >>> calls = await service.generate_capital_calls(allocation_id=1, schedule_type="quarterly", call_count=4)
        >>> call, payment = await service.record_payment(calls[0][0].id, amount=25000)
    """

    def __init__(
        self,
        storage: Storage,
        config: Optional[CapitalCallSettings] = None,
        call_locks: Optional[KeyedLock] = None,
        fund_locks: Optional[KeyedLock] = None
    ):
        self.storage = storage
        self.config = config or CapitalCallSettings()
        self.integrity = AllocationIntegrityService(storage)
        self.ledger = PaymentLedger(storage, self.config)
        self.aggregator = AllocationStatusAggregator(storage)
        self.recalculator = PortfolioWeightRecalculator(storage)
        self.call_locks = call_locks or KeyedLock()
        self.fund_locks = fund_locks or KeyedLock()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_allocation(self, allocation_id: int):
        allocation = await self.storage.get_fund_allocation(allocation_id)
        if not allocation:
            raise NotFoundError("Allocation", allocation_id)
        return allocation

    async def get_capital_call(self, call_id: int):
        call = await self.storage.get_capital_call(call_id)
        if not call:
            raise NotFoundError("Capital call", call_id)
        return call

    async def list_capital_calls(self) -> List[Any]:
        return await self.storage.get_capital_calls()

    async def get_capital_calls_by_allocation(self, allocation_id: int) -> List[Any]:
        await self.get_allocation(allocation_id)
        return await self.storage.get_capital_calls_by_allocation(allocation_id)

    async def list_payments(self, call_id: int) -> List[Any]:
        return await self.ledger.list_payments(call_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_allocation(
        self,
        allocation_data: Dict[str, Any],
        capital_call_data: Optional[Dict[str, Any]] = None,
        schedule: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create an allocation with an optional initial call and/or schedule

        Failures in the calls are reported as warnings; the allocation is
        kept either way. Both steps are safe to retry.
        """
        call_data = None
        if capital_call_data:
            call_date = capital_call_data.get("call_date") or allocation_data.get("allocation_date")
            call_amount = to_decimal(capital_call_data.get("call_amount"))
            call_data = {
                "call_amount": call_amount,
                "amount_type": capital_call_data.get("amount_type")
                or ("dollar" if allocation_data.get("amount_type", "dollar") == "dollar" else "percentage"),
                "call_date": call_date,
                "due_date": capital_call_data.get("due_date") or calculate_due_date(call_date, self.config.due_days),
                "status": SCHEDULED,
                "paid_amount": Decimal("0"),
                "outstanding_amount": call_amount,
                "notes": capital_call_data.get("notes"),
            }

        result = await self.integrity.execute_allocation_workflow(allocation_data, call_data)
        result["capital_calls"] = []

        if schedule:
            options = dict(schedule)
            try:
                generated = await self.generate_capital_calls(
                    result["allocation"].id,
                    options.pop("schedule_type"),
                    **options
                )
                result["capital_calls"] = [call for call, _ in generated]
                # Generation re-derives the allocation status
                result["allocation"] = await self.get_allocation(result["allocation"].id)
            except ValidationError as e:
                logger.error(f"Failed to generate schedule for allocation {result['allocation'].id}: {e}")
                result["warnings"].append(f"Schedule generation failed but allocation was successful: {e}")

        return result

    async def create_capital_call(self, data: Mapping[str, Any]) -> Tuple[Any, bool]:
        """
        Create a single capital call directly

        Call date defaults to the allocation's reference date and due date
        to call date plus the configured due days. Any initial paid amount
        is recorded as a payment so the log stays authoritative.

        Returns:
            Tuple of (capital call, is_new)
        """
        allocation_id = data.get("allocation_id")
        if allocation_id is None:
            raise ValidationError("Valid allocation ID is required")
        allocation = await self.get_allocation(allocation_id)

        call_date = data.get("call_date") or get_reference_date(allocation, date.today())
        due_date = data.get("due_date") or calculate_due_date(call_date, self.config.due_days)
        call_amount = to_decimal(data.get("call_amount"))
        paid_amount = to_decimal(data.get("paid_amount"))

        if paid_amount < 0:
            raise ValidationError("Paid amount cannot be negative")
        if call_amount > 0 and paid_amount > call_amount and not self.config.allow_overpayments:
            raise ValidationError("Paid amount cannot exceed the call amount")

        requested_status = data.get("status") or SCHEDULED
        if requested_status not in CAPITAL_CALL_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(CAPITAL_CALL_STATUSES)}")
        if requested_status in (PAID, PARTIAL, PARTIALLY_PAID) and paid_amount <= 0:
            raise ValidationError(f"Paid amount is required to create a {requested_status} capital call")

        paid_amount = min(paid_amount, call_amount)
        if requested_status == DEFAULTED:
            # Remaining balance is written off
            status = DEFAULTED
            outstanding_amount = Decimal("0")
        else:
            status = derive_call_status(requested_status, call_amount, paid_amount)
            outstanding_amount = calculate_outstanding_amount(call_amount, paid_amount)

        record = {
            "allocation_id": allocation.id,
            "call_amount": call_amount,
            "amount_type": data.get("amount_type") or ("dollar" if allocation.amount_type == "dollar" else "percentage"),
            "call_date": call_date,
            "due_date": due_date,
            "status": status,
            "paid_amount": paid_amount,
            "outstanding_amount": outstanding_amount,
            "paid_date": data.get("paid_date") or (call_date if paid_amount > 0 else None),
            "notes": data.get("notes"),
        }

        call, is_new = await self.integrity.create_capital_call_safe(record)
        if is_new and paid_amount > 0:
            await self.ledger.reconcile_to_paid_amount(call, paid_amount, payment_date=record["paid_date"])

        if is_new and status != SCHEDULED and self.config.auto_status_update:
            await self._run_cascade(allocation.id)
        return call, is_new

    async def generate_capital_calls(
        self,
        allocation_id: int,
        schedule_type: str,
        call_count: Optional[int] = None,
        call_percentage: Any = None,
        total_percentage: Any = HUNDRED,
        custom_schedule: Optional[Iterable[Mapping[str, Any]]] = None,
        first_call_date: Optional[date] = None
    ) -> List[Tuple[Any, bool]]:
        """
        Generate and persist the capital calls for an allocation's schedule

        Retries are safe: calls that already exist for the same allocation
        and call date are returned with is_new False. A single payment that
        lands on an existing unsettled call settles that call instead.
        Allocation status is then re-derived from the calls.

        Returns:
            List of (capital call, is_new) in schedule order
        """
        allocation = await self.get_allocation(allocation_id)

        drafts = generate_schedule(
            allocation,
            schedule_type,
            call_count=call_count,
            call_percentage=call_percentage,
            total_percentage=total_percentage,
            custom_schedule=custom_schedule,
            first_call_date=first_call_date,
            due_days=self.config.due_days
        )

        results = []
        for draft in drafts:
            call, is_new = await self.integrity.create_capital_call_safe(draft)
            if draft["status"] == PAID:
                if is_new:
                    await self.ledger.reconcile_to_paid_amount(
                        call,
                        draft["paid_amount"],
                        payment_date=draft["paid_date"],
                        notes=SINGLE_PAYMENT_NOTE
                    )
                elif call.status != PAID:
                    call = await self._settle_existing_call(call.id, draft["paid_date"])
            results.append((call, is_new))

        created = sum(1 for _, is_new in results if is_new)
        logger.info(
            f"Generated {schedule_type} schedule for allocation {allocation_id}: "
            f"{created} created, {len(results) - created} already existed"
        )

        await self._run_cascade(allocation.id)

        return results

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    async def update_status(
        self,
        call_id: int,
        new_status: str,
        paid_amount: Any = None,
        payment_date: Optional[date] = None,
        payment_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None
    ):
        """
        Apply a validated status transition to a capital call

        Paid and partial transitions carry the cumulative paid amount; any
        increase over the payment log is appended as a payment.

        Raises:
            NotFoundError: Capital call does not exist
            InvalidTransitionError: Transition not allowed from the current status
            ValidationError: Paid amount missing or inconsistent
        """
        async with self.call_locks(call_id):
            call = await self.get_capital_call(call_id)
            patch = apply_status_change(call, new_status, paid_amount, payment_date)

            if "paid_amount" in patch:
                if payment_type and payment_type not in PAYMENT_TYPES:
                    raise ValidationError(f"Payment type must be one of: {', '.join(PAYMENT_TYPES)}")
                await self.ledger.reconcile_to_paid_amount(
                    call,
                    patch["paid_amount"],
                    payment_date=patch["paid_date"],
                    payment_type=payment_type,
                    notes=notes,
                    created_by=created_by
                )

            previous = call.status
            updated = await self.storage.update_capital_call(call.id, patch)
            logger.info(f"Capital call {call_id} status changed: {previous} -> {new_status}")

        if self.config.auto_status_update:
            await self._run_cascade(updated.allocation_id)
        return updated

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
        Record a payment against a capital call

        Returns:
            Tuple of (updated capital call, payment)
        """
        async with self.call_locks(call_id):
            call, payment = await self.ledger.record_payment(
                call_id,
                amount,
                payment_date=payment_date,
                payment_type=payment_type,
                notes=notes,
                created_by=created_by
            )

        if call.status == PAID and self.config.auto_status_update:
            await self._run_cascade(call.allocation_id)
        return call, payment

    async def _settle_existing_call(self, call_id: int, paid_date: date):
        """Mark an existing call paid in full, logging the unpaid balance as a payment"""
        async with self.call_locks(call_id):
            call = await self.get_capital_call(call_id)
            if call.status == PAID:
                return call
            if call.status == DEFAULTED:
                raise ValidationError(
                    f"Capital call {call.id} on {call.call_date} has been defaulted and cannot take a single payment"
                )

            previous = call.status
            patch = apply_status_change(call, PAID, call.call_amount, paid_date)
            await self.ledger.reconcile_to_paid_amount(
                call,
                patch["paid_amount"],
                payment_date=patch["paid_date"],
                notes=SINGLE_PAYMENT_NOTE
            )
            updated = await self.storage.update_capital_call(call.id, patch)

        logger.info(f"Capital call {call_id} settled by single payment: {previous} -> {PAID}")
        return updated

    async def update_dates(self, call_id: int, call_date: date, due_date: date):
        """
        Reschedule a capital call that has not been settled

        Raises:
            ValidationError: Dates missing or inverted, call already paid or
                defaulted, or another call of the allocation uses the date
            NotFoundError: Capital call does not exist
        """
        if not call_date or not due_date:
            raise ValidationError("Both call date and due date are required")
        if due_date < call_date:
            raise ValidationError("Due date must not be before call date")

        async with self.call_locks(call_id):
            call = await self.get_capital_call(call_id)
            if is_terminal(call.status):
                raise ValidationError(
                    f"Cannot change dates for a capital call that has already been {call.status}"
                )
            try:
                updated = await self.storage.update_capital_call(
                    call.id, {"call_date": call_date, "due_date": due_date}
                )
            except DuplicateSubmissionError:
                raise ValidationError(
                    f"Allocation {call.allocation_id} already has a capital call on {call_date}"
                )

        logger.info(f"Capital call {call_id} rescheduled: call {call_date}, due {due_date}")
        return updated

    async def mark_overdue_calls(self, as_of: Optional[date] = None) -> List[Any]:
        """
        Move issued, unsettled calls past their due date (plus grace days) to overdue

        Returns:
            Capital calls that were marked overdue
        """
        as_of = as_of or date.today()
        cutoff = as_of - timedelta(days=self.config.grace_days)
        candidates = await self.storage.get_capital_calls_due_before(cutoff, OVERDUE_CANDIDATE_STATUSES)

        marked = []
        for call in candidates:
            marked.append(await self.update_status(call.id, OVERDUE))

        logger.info(f"Marked {len(marked)} capital calls overdue as of {as_of}")
        return marked

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    async def refresh_allocation(self, allocation_id: int) -> Optional[Dict[str, Any]]:
        """
        Re-derive allocation status and, when it changed, the fund's weights
        """
        change = await self.aggregator.refresh(allocation_id)
        if change is None:
            return None
        if change["status"] == FUNDED or change["previous_status"] == FUNDED:
            await self.recalculate_fund_weights(change["allocation"].fund_id)
        return change

    async def recalculate_fund_weights(self, fund_id: int) -> Dict[int, Decimal]:
        async with self.fund_locks(fund_id):
            return await self.recalculator.recalculate(fund_id)

    async def _run_cascade(self, allocation_id: int) -> None:
        try:
            await self.refresh_allocation(allocation_id)
        except Exception as e:
            logger.error(f"Error updating allocation status for allocation {allocation_id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_capital_call_summary(self, allocation_id: int, as_of: Optional[date] = None) -> Dict[str, Any]:
        """Totals across an allocation's capital calls"""
        calls = await self.get_capital_calls_by_allocation(allocation_id)
        as_of = as_of or date.today()

        total_amount = sum((to_decimal(c.call_amount) for c in calls), Decimal("0"))
        paid_amount = sum((to_decimal(c.paid_amount) for c in calls), Decimal("0"))
        pending_amount = sum(
            (calculate_outstanding_amount(c.call_amount, c.paid_amount) for c in calls if c.status == CALLED),
            Decimal("0")
        )
        overdue_amount = sum(
            (
                calculate_outstanding_amount(c.call_amount, c.paid_amount)
                for c in calls
                if c.due_date < as_of and not is_terminal(c.status)
            ),
            Decimal("0")
        )
        outstanding_amount = sum((to_decimal(c.outstanding_amount) for c in calls), Decimal("0"))
        paid_percentage = quantize(paid_amount / total_amount * HUNDRED) if total_amount > 0 else Decimal("0.00")

        return {
            "allocation_id": allocation_id,
            "total_calls": len(calls),
            "total_amount": total_amount,
            "paid_amount": paid_amount,
            "outstanding_amount": outstanding_amount,
            "pending_amount": pending_amount,
            "overdue_amount": overdue_amount,
            "paid_percentage": paid_percentage,
        }

    async def get_calendar(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """Capital calls in a date range, enriched with fund and allocation details"""
        if end_date < start_date:
            raise ValidationError("End date must not be before start date")

        calls = await self.storage.get_capital_calls_in_range(start_date, end_date)
        allocations: Dict[int, Any] = {}
        funds: Dict[int, Any] = {}

        entries = []
        for call in calls:
            if call.allocation_id not in allocations:
                allocations[call.allocation_id] = await self.storage.get_fund_allocation(call.allocation_id)
            allocation = allocations[call.allocation_id]
            if allocation is None:
                continue
            if allocation.fund_id not in funds:
                funds[allocation.fund_id] = await self.storage.get_fund(allocation.fund_id)
            fund = funds[allocation.fund_id]

            entries.append({
                "capital_call": call,
                "fund_id": allocation.fund_id,
                "fund_name": fund.name if fund else "Unknown Fund",
                "deal_id": allocation.deal_id,
                "allocation_amount": allocation.amount,
            })
        return entries
