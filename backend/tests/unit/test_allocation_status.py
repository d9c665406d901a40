"""
Unit tests for allocation status aggregation
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from app.exceptions import NotFoundError
from app.services.allocation_status import (
    AllocationStatusAggregator,
    derive_allocation_status,
    summarize_calls,
)


def call(status, amount="250000", paid="0"):
    return SimpleNamespace(status=status, call_amount=Decimal(amount), paid_amount=Decimal(paid))


class TestDeriveAllocationStatus:
    """Test status derivation from capital calls"""

    def test_only_scheduled_calls(self):
        """Test nothing called yet stays committed"""
        assert derive_allocation_status([call("scheduled"), call("scheduled")]) == "committed"

    def test_called_but_unpaid(self):
        """Test called capital without payment stays committed"""
        assert derive_allocation_status([call("called"), call("scheduled")]) == "committed"

    def test_all_issued_calls_paid(self):
        """Test funded once every issued call is paid"""
        calls = [call("paid", paid="250000"), call("scheduled"), call("scheduled")]

        assert derive_allocation_status(calls) == "funded"

    def test_partial_payment_is_not_funded(self):
        """Test partially paid calls do not count as paid capital"""
        calls = [call("paid", paid="250000"), call("partially_paid", paid="100000")]

        assert derive_allocation_status(calls) == "committed"

    def test_defaulted_call_blocks_funding(self):
        """Test defaulted capital counts as called but never paid"""
        calls = [call("paid", paid="250000"), call("defaulted")]

        assert derive_allocation_status(calls) == "committed"

    def test_summary(self):
        """Test called and paid totals"""
        totals = summarize_calls([call("paid", paid="250000"), call("overdue"), call("scheduled")])

        assert totals == {"total_called": Decimal("500000"), "total_paid": Decimal("250000")}


class TestAllocationStatusAggregator:
    """Test persisting derived status"""

    def setup_method(self):
        self.storage = Mock()
        self.storage.get_fund_allocation = AsyncMock()
        self.storage.get_capital_calls_by_allocation = AsyncMock(return_value=[])
        self.storage.update_fund_allocation = AsyncMock(
            side_effect=lambda allocation_id, patch: SimpleNamespace(id=allocation_id, fund_id=1, **patch)
        )
        self.aggregator = AllocationStatusAggregator(self.storage)

    @pytest.mark.asyncio
    async def test_status_change_is_persisted(self):
        """Test committed allocation becomes funded"""
        self.storage.get_fund_allocation.return_value = SimpleNamespace(id=3, status="committed")
        self.storage.get_capital_calls_by_allocation.return_value = [call("paid", paid="250000")]

        change = await self.aggregator.refresh(3)

        assert change["previous_status"] == "committed"
        assert change["status"] == "funded"
        self.storage.update_fund_allocation.assert_awaited_once_with(3, {"status": "funded"})

    @pytest.mark.asyncio
    async def test_unchanged_status(self):
        """Test no write when status already matches"""
        self.storage.get_fund_allocation.return_value = SimpleNamespace(id=3, status="committed")
        self.storage.get_capital_calls_by_allocation.return_value = [call("called")]

        assert await self.aggregator.refresh(3) is None
        self.storage.update_fund_allocation.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_calls_leaves_allocation_alone(self):
        """Test allocations without calls keep their status"""
        self.storage.get_fund_allocation.return_value = SimpleNamespace(id=3, status="invested")

        assert await self.aggregator.refresh(3) is None
        self.storage.update_fund_allocation.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["partially_closed", "closed", "written_off"])
    async def test_manual_lifecycle_status_preserved(self, status):
        """Test closed-out allocations are never re-derived"""
        self.storage.get_fund_allocation.return_value = SimpleNamespace(id=3, status=status)
        self.storage.get_capital_calls_by_allocation.return_value = [call("paid", paid="250000")]

        assert await self.aggregator.refresh(3) is None
        self.storage.update_fund_allocation.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_allocation(self):
        """Test unknown allocation id"""
        self.storage.get_fund_allocation.return_value = None

        with pytest.raises(NotFoundError):
            await self.aggregator.refresh(404)
