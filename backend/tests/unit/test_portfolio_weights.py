"""
Unit tests for portfolio weight recalculation
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from app.services.portfolio_weights import PortfolioWeightRecalculator, compute_portfolio_weights


def allocation(id, amount, status="funded", weight="0"):
    return SimpleNamespace(id=id, amount=Decimal(amount), status=status, portfolio_weight=Decimal(weight))


class TestComputePortfolioWeights:
    """Test weight arithmetic"""

    def test_weights_are_share_of_funded_capital(self):
        """Test funded allocations split 100 by amount"""
        weights = compute_portfolio_weights([
            allocation(1, "600000"),
            allocation(2, "400000"),
        ])

        assert weights == {1: Decimal("60.00"), 2: Decimal("40.00")}

    def test_unfunded_allocations_get_zero(self):
        """Test committed allocations are excluded from the denominator"""
        weights = compute_portfolio_weights([
            allocation(1, "500000"),
            allocation(2, "500000", status="committed", weight="50.00"),
        ])

        assert weights == {1: Decimal("100.00"), 2: Decimal("0.00")}

    def test_rounding_residual_goes_to_largest(self):
        """Test three equal thirds still sum to exactly 100"""
        weights = compute_portfolio_weights([
            allocation(1, "100"),
            allocation(2, "100"),
            allocation(3, "100"),
        ])

        assert sum(weights.values()) == Decimal("100.00")
        assert weights[1] == Decimal("33.34")
        assert weights[2] == weights[3] == Decimal("33.33")

    def test_residual_prefers_larger_amount(self):
        """Test the largest funded allocation absorbs the residual"""
        weights = compute_portfolio_weights([
            allocation(1, "1"),
            allocation(2, "1"),
            allocation(3, "4"),
        ])

        assert weights[1] == weights[2] == Decimal("16.67")
        assert weights[3] == Decimal("66.66")
        assert sum(weights.values()) == Decimal("100.00")

    def test_no_funded_capital(self):
        """Test weights are undefined without funded allocations"""
        assert compute_portfolio_weights([allocation(1, "100", status="committed")]) is None
        assert compute_portfolio_weights([]) is None


class TestPortfolioWeightRecalculator:
    """Test persisting weights"""

    def setup_method(self):
        self.storage = Mock()
        self.storage.get_allocations_by_fund = AsyncMock()
        self.storage.update_fund_allocation = AsyncMock()
        self.recalculator = PortfolioWeightRecalculator(self.storage)

    @pytest.mark.asyncio
    async def test_only_changed_weights_are_written(self):
        """Test allocations already at the right weight are skipped"""
        self.storage.get_allocations_by_fund.return_value = [
            allocation(1, "750000", weight="75.00"),
            allocation(2, "250000", weight="0"),
        ]

        weights = await self.recalculator.recalculate(1)

        assert weights == {1: Decimal("75.00"), 2: Decimal("25.00")}
        self.storage.update_fund_allocation.assert_awaited_once_with(2, {"portfolio_weight": Decimal("25.00")})

    @pytest.mark.asyncio
    async def test_no_funded_capital_is_a_no_op(self):
        """Test nothing is written when the fund has no funded capital"""
        self.storage.get_allocations_by_fund.return_value = [
            allocation(1, "750000", status="committed", weight="40.00"),
        ]

        assert await self.recalculator.recalculate(1) == {}
        self.storage.update_fund_allocation.assert_not_called()
