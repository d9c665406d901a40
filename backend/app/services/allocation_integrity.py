"""
Allocation integrity service

Idempotent creation of allocations and capital calls. Inputs are validated
up front so callers get a field-level error list instead of a storage
constraint error, and a retried submission that hits a unique constraint
returns the record created by the first attempt.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
from decimal import InvalidOperation
from datetime import date
import logging

from app.exceptions import DuplicateSubmissionError, ValidationError
from app.services.schedule_generator import AMOUNT_TYPES, to_decimal
from app.services.storage import Storage

logger = logging.getLogger(__name__)


def _is_positive_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_amount(value: Any) -> bool:
    try:
        return value is not None and to_decimal(value) > 0
    except (InvalidOperation, TypeError, ValueError):
        return False


def validate_allocation_data(data: Mapping[str, Any]) -> List[str]:
    """Return field-level problems with an allocation payload (empty when valid)"""
    errors = []

    if not _is_positive_id(data.get("fund_id")):
        errors.append("Valid fund ID is required")

    if not _is_positive_id(data.get("deal_id")):
        errors.append("Valid deal ID is required")

    if not _is_positive_amount(data.get("amount")):
        errors.append("Allocation amount must be greater than 0")

    if data.get("amount_type", "dollar") not in AMOUNT_TYPES:
        errors.append(f"Amount type must be one of: {', '.join(AMOUNT_TYPES)}")

    if not isinstance(data.get("allocation_date"), date):
        errors.append("Allocation date is required")

    return errors


def validate_capital_call_data(data: Mapping[str, Any]) -> List[str]:
    """Return field-level problems with a capital call payload (empty when valid)"""
    errors = []

    if not _is_positive_id(data.get("allocation_id")):
        errors.append("Valid allocation ID is required")

    if not _is_positive_amount(data.get("call_amount")):
        errors.append("Call amount must be greater than 0")

    if data.get("amount_type", "percentage") not in AMOUNT_TYPES:
        errors.append(f"Amount type must be one of: {', '.join(AMOUNT_TYPES)}")

    call_date = data.get("call_date")
    due_date = data.get("due_date")
    if not isinstance(call_date, date):
        errors.append("Call date is required")
    if not isinstance(due_date, date):
        errors.append("Due date is required")
    if isinstance(call_date, date) and isinstance(due_date, date) and due_date < call_date:
        errors.append("Due date must not be before call date")

    return errors


class AllocationIntegrityService:
    """
    Duplicate-safe creation of allocations and capital calls

    Example:
        >>> integrity = AllocationIntegrityService(storage)
        >>> allocation, is_new = await integrity.create_allocation_safe(payload)
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def create_allocation_safe(self, data: Dict[str, Any]) -> Tuple[Any, bool]:
        """
        Create an allocation, or return the existing one for the same
        fund, deal and allocation date

        Returns:
            Tuple of (allocation, is_new)
        """
        errors = validate_allocation_data(data)
        if errors:
            raise ValidationError(errors)

        try:
            allocation = await self.storage.create_fund_allocation(dict(data))
            logger.info(f"Created allocation {allocation.id} (fund {allocation.fund_id}, deal {allocation.deal_id})")
            return allocation, True
        except DuplicateSubmissionError:
            existing = await self._find_existing_allocation(data)
            if existing is None:
                raise
            logger.warning(f"Duplicate allocation submission, returning existing allocation {existing.id}")
            return existing, False

    async def create_capital_call_safe(self, data: Dict[str, Any]) -> Tuple[Any, bool]:
        """
        Create a capital call, or return the existing one for the same
        allocation and call date

        Returns:
            Tuple of (capital call, is_new)
        """
        errors = validate_capital_call_data(data)
        if errors:
            raise ValidationError(errors)

        try:
            call = await self.storage.create_capital_call(dict(data))
            logger.info(f"Created capital call {call.id} for allocation {call.allocation_id} on {call.call_date}")
            return call, True
        except DuplicateSubmissionError:
            existing = await self._find_existing_capital_call(data)
            if existing is None:
                raise
            logger.warning(f"Duplicate capital call submission, returning existing call {existing.id}")
            return existing, False

    async def execute_allocation_workflow(
        self,
        allocation_data: Dict[str, Any],
        capital_call_data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create an allocation and an optional initial capital call

        A failing capital call does not undo the allocation; the failure is
        reported as a warning instead.
        """
        warnings = []

        allocation, is_new_allocation = await self.create_allocation_safe(allocation_data)
        if not is_new_allocation:
            warnings.append("Allocation already exists with these parameters")

        result = {
            "allocation": allocation,
            "is_new_allocation": is_new_allocation,
            "capital_call": None,
            "is_new_capital_call": None,
            "warnings": warnings,
        }

        if capital_call_data:
            call_data = {**capital_call_data, "allocation_id": allocation.id}
            try:
                call, is_new_call = await self.create_capital_call_safe(call_data)
                result["capital_call"] = call
                result["is_new_capital_call"] = is_new_call
                if not is_new_call:
                    warnings.append("Capital call already exists for this allocation and date")
            except ValidationError as e:
                logger.error(f"Failed to create capital call for allocation {allocation.id}: {e}")
                warnings.append(f"Capital call creation failed but allocation was successful: {e}")

        return result

    async def _find_existing_allocation(self, data: Mapping[str, Any]) -> Optional[Any]:
        candidates = await self.storage.get_allocations_by_deal(data["deal_id"])
        for allocation in candidates:
            if allocation.fund_id == data["fund_id"] and allocation.allocation_date == data["allocation_date"]:
                return allocation
        return None

    async def _find_existing_capital_call(self, data: Mapping[str, Any]) -> Optional[Any]:
        candidates = await self.storage.get_capital_calls_by_allocation(data["allocation_id"])
        for call in candidates:
            if call.call_date == data["call_date"]:
                return call
        return None
