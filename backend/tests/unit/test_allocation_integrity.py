"""
Unit tests for duplicate-safe allocation and capital call creation
"""
import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from app.exceptions import DuplicateSubmissionError, ValidationError
from app.services.allocation_integrity import (
    AllocationIntegrityService,
    validate_allocation_data,
    validate_capital_call_data,
)


def allocation_payload(**overrides):
    data = {
        "fund_id": 1,
        "deal_id": 42,
        "amount": Decimal("500000"),
        "amount_type": "dollar",
        "allocation_date": date(2024, 1, 15),
    }
    data.update(overrides)
    return data


def call_payload(**overrides):
    data = {
        "allocation_id": 5,
        "call_amount": Decimal("125000"),
        "amount_type": "dollar",
        "call_date": date(2024, 1, 15),
        "due_date": date(2024, 1, 29),
        "status": "scheduled",
        "paid_amount": Decimal("0"),
        "outstanding_amount": Decimal("125000"),
    }
    data.update(overrides)
    return data


class TestValidation:
    """Test field-level validation"""

    def test_valid_allocation(self):
        assert validate_allocation_data(allocation_payload()) == []

    def test_allocation_errors_are_collected(self):
        """Test every problem is reported at once"""
        errors = validate_allocation_data(
            allocation_payload(fund_id=0, deal_id=None, amount=Decimal("-1"), amount_type="units", allocation_date=None)
        )

        assert len(errors) == 5
        assert "Valid fund ID is required" in errors

    def test_boolean_is_not_an_id(self):
        """Test True is not accepted as an id"""
        assert "Valid deal ID is required" in validate_allocation_data(allocation_payload(deal_id=True))

    def test_unparseable_amount(self):
        """Test garbage amount is a validation problem, not a crash"""
        errors = validate_allocation_data(allocation_payload(amount="lots"))

        assert errors == ["Allocation amount must be greater than 0"]

    def test_valid_capital_call(self):
        assert validate_capital_call_data(call_payload()) == []

    def test_capital_call_inverted_dates(self):
        """Test due date before call date"""
        errors = validate_capital_call_data(call_payload(due_date=date(2024, 1, 1)))

        assert errors == ["Due date must not be before call date"]

    def test_capital_call_missing_fields(self):
        errors = validate_capital_call_data({"allocation_id": 5})

        assert "Call amount must be greater than 0" in errors
        assert "Call date is required" in errors
        assert "Due date is required" in errors


class TestAllocationIntegrityService:
    """Test idempotent creation"""

    def setup_method(self):
        self.storage = Mock()
        self.storage.create_fund_allocation = AsyncMock(side_effect=lambda data: SimpleNamespace(id=5, **data))
        self.storage.create_capital_call = AsyncMock(side_effect=lambda data: SimpleNamespace(id=9, **data))
        self.storage.get_allocations_by_deal = AsyncMock(return_value=[])
        self.storage.get_capital_calls_by_allocation = AsyncMock(return_value=[])
        self.service = AllocationIntegrityService(self.storage)

    @pytest.mark.asyncio
    async def test_new_allocation(self):
        allocation, is_new = await self.service.create_allocation_safe(allocation_payload())

        assert is_new is True
        assert allocation.id == 5

    @pytest.mark.asyncio
    async def test_invalid_allocation_never_reaches_storage(self):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_allocation_safe(allocation_payload(amount=0))

        assert exc_info.value.errors == ["Allocation amount must be greater than 0"]
        self.storage.create_fund_allocation.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_allocation_returns_existing(self):
        """Test unique violation resolves to the record created first"""
        existing = SimpleNamespace(id=3, fund_id=1, deal_id=42, allocation_date=date(2024, 1, 15))
        other_fund = SimpleNamespace(id=4, fund_id=2, deal_id=42, allocation_date=date(2024, 1, 15))
        self.storage.create_fund_allocation.side_effect = DuplicateSubmissionError("fund allocation")
        self.storage.get_allocations_by_deal.return_value = [other_fund, existing]

        allocation, is_new = await self.service.create_allocation_safe(allocation_payload())

        assert is_new is False
        assert allocation is existing

    @pytest.mark.asyncio
    async def test_duplicate_without_match_is_reraised(self):
        """Test a constraint violation that cannot be resolved propagates"""
        self.storage.create_fund_allocation.side_effect = DuplicateSubmissionError("fund allocation")

        with pytest.raises(DuplicateSubmissionError):
            await self.service.create_allocation_safe(allocation_payload())

    @pytest.mark.asyncio
    async def test_duplicate_capital_call_returns_existing(self):
        existing = SimpleNamespace(id=8, allocation_id=5, call_date=date(2024, 1, 15))
        self.storage.create_capital_call.side_effect = DuplicateSubmissionError("capital call")
        self.storage.get_capital_calls_by_allocation.return_value = [existing]

        call, is_new = await self.service.create_capital_call_safe(call_payload())

        assert is_new is False
        assert call is existing

    @pytest.mark.asyncio
    async def test_workflow_with_capital_call(self):
        """Test allocation and initial call are linked"""
        result = await self.service.execute_allocation_workflow(
            allocation_payload(),
            call_payload(allocation_id=None)
        )

        assert result["is_new_allocation"] is True
        assert result["is_new_capital_call"] is True
        assert result["capital_call"].allocation_id == 5
        assert result["warnings"] == []

    @pytest.mark.asyncio
    async def test_workflow_keeps_allocation_when_call_invalid(self):
        """Test bad capital call data becomes a warning"""
        result = await self.service.execute_allocation_workflow(
            allocation_payload(),
            call_payload(call_amount=Decimal("0"))
        )

        assert result["allocation"].id == 5
        assert result["capital_call"] is None
        assert len(result["warnings"]) == 1
        assert "allocation was successful" in result["warnings"][0]

    @pytest.mark.asyncio
    async def test_workflow_duplicate_allocation_warns(self):
        existing = SimpleNamespace(id=3, fund_id=1, deal_id=42, allocation_date=date(2024, 1, 15))
        self.storage.create_fund_allocation.side_effect = DuplicateSubmissionError("fund allocation")
        self.storage.get_allocations_by_deal.return_value = [existing]

        result = await self.service.execute_allocation_workflow(allocation_payload())

        assert result["is_new_allocation"] is False
        assert result["warnings"] == ["Allocation already exists with these parameters"]
