"""
Allocation status aggregation

Derives an allocation's funding status from the state of its capital calls.
"""
from typing import Any, Dict, Iterable, Optional
from decimal import Decimal
import logging

from app.exceptions import NotFoundError
from app.services.call_state_machine import PAID, SCHEDULED
from app.services.schedule_generator import to_decimal
from app.services.storage import Storage

logger = logging.getLogger(__name__)

COMMITTED = "committed"
INVESTED = "invested"
FUNDED = "funded"
PARTIALLY_CLOSED = "partially_closed"
CLOSED = "closed"
WRITTEN_OFF = "written_off"

ALLOCATION_STATUSES = [COMMITTED, INVESTED, FUNDED, PARTIALLY_CLOSED, CLOSED, WRITTEN_OFF]

# Lifecycle states set by people, not derived from capital calls
PRESERVED_STATUSES = {PARTIALLY_CLOSED, CLOSED, WRITTEN_OFF}


def summarize_calls(calls: Iterable[Any]) -> Dict[str, Decimal]:
    """Called capital (issued calls only) and capital paid on settled calls"""
    total_called = Decimal("0")
    total_paid = Decimal("0")
    for call in calls:
        if call.status != SCHEDULED:
            total_called += to_decimal(call.call_amount)
        if call.status == PAID:
            total_paid += to_decimal(call.paid_amount)
    return {"total_called": total_called, "total_paid": total_paid}


def derive_allocation_status(calls: Iterable[Any]) -> str:
    """
    committed until capital has been called and fully paid, then funded

    Capital called but not fully paid stays committed; there is no
    partially funded allocation status.
    """
    totals = summarize_calls(calls)
    if totals["total_called"] == 0:
        return COMMITTED
    if totals["total_paid"] >= totals["total_called"]:
        return FUNDED
    return COMMITTED


class AllocationStatusAggregator:
    """Re-derive and persist allocation status from its capital calls"""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def refresh(self, allocation_id: int) -> Optional[Dict[str, Any]]:
        """
        Recompute the allocation's status

        Returns:
            None when nothing changed, otherwise a dict with the allocation,
            its previous status and its new status

        Raises:
            NotFoundError: Allocation does not exist
        """
        allocation = await self.storage.get_fund_allocation(allocation_id)
        if not allocation:
            raise NotFoundError("Allocation", allocation_id)

        if allocation.status in PRESERVED_STATUSES:
            logger.debug(f"Allocation {allocation_id} is {allocation.status}; status not derived")
            return None

        calls = await self.storage.get_capital_calls_by_allocation(allocation_id)
        if not calls:
            return None

        new_status = derive_allocation_status(calls)
        if new_status == allocation.status:
            return None

        previous = allocation.status
        updated = await self.storage.update_fund_allocation(allocation.id, {"status": new_status})
        logger.info(f"Allocation {allocation_id} status changed: {previous} -> {new_status}")

        return {"allocation": updated, "previous_status": previous, "status": new_status}
