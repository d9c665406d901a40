"""
Integration tests for the capital call lifecycle

Tests the complete flow against a SQLite database:
1. Schedule generation
2. Status transitions and payments
3. Allocation status aggregation
4. Portfolio weight recalculation
"""
import pytest
from datetime import date
from decimal import Decimal
from app.exceptions import OverpaymentRejectedError


@pytest.mark.integration
class TestCapitalCallLifecycle:
    """End-to-end capital call scenarios"""

    @pytest.mark.asyncio
    async def test_quarterly_schedule_paid_in_full(self, service, allocation_factory):
        """Test $100,000 quarterly allocation is funded once every call is paid"""
        allocation = allocation_factory(amount=Decimal("100000.00"))

        results = await service.generate_capital_calls(allocation.id, "quarterly", call_count=4)
        calls = [call for call, _ in results]
        assert [c.call_amount for c in calls] == [Decimal("25000.00")] * 4

        for call in calls:
            await service.update_status(call.id, "paid", paid_amount=call.call_amount)

        calls = await service.get_capital_calls_by_allocation(allocation.id)
        assert all(c.status == "paid" for c in calls)
        assert all(c.outstanding_amount == Decimal("0") for c in calls)

        allocation = await service.get_allocation(allocation.id)
        assert allocation.status == "funded"
        assert allocation.portfolio_weight == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_uneven_quarterly_split(self, service, allocation_factory):
        """Test the last call absorbs the rounding of a three-way split"""
        allocation = allocation_factory(amount=Decimal("100000.00"))

        results = await service.generate_capital_calls(allocation.id, "quarterly", call_count=3)

        amounts = [call.call_amount for call, _ in results]
        assert amounts == [Decimal("33330.00"), Decimal("33330.00"), Decimal("33340.00")]

    @pytest.mark.asyncio
    async def test_partial_payment_then_overpayment(self, service, test_allocation):
        """Test a 30000 payment on a 50000 call and a rejected 25000 follow-up"""
        call, _ = await service.create_capital_call({
            "allocation_id": test_allocation.id,
            "call_amount": Decimal("50000"),
            "status": "called",
        })

        call, _ = await service.record_payment(call.id, Decimal("30000"))
        assert call.status == "partially_paid"
        assert call.outstanding_amount == Decimal("20000.00")

        with pytest.raises(OverpaymentRejectedError) as exc_info:
            await service.record_payment(call.id, Decimal("25000"))
        assert exc_info.value.max_allowed == Decimal("20000.00")

        payments = await service.list_payments(call.id)
        assert [p.amount for p in payments] == [Decimal("30000.00")]

    @pytest.mark.asyncio
    async def test_single_payment_allocation(self, service, allocation_factory):
        """Test a $10,000 single payment is paid and funds the allocation immediately"""
        allocation = allocation_factory(amount=Decimal("10000.00"))

        [(call, is_new)] = await service.generate_capital_calls(allocation.id, "single")

        assert is_new is True
        assert call.status == "paid"
        assert call.paid_amount == Decimal("10000.00")
        assert (await service.get_allocation(allocation.id)).status == "funded"

    @pytest.mark.asyncio
    async def test_weights_across_fund(self, service, allocation_factory):
        """Test weights follow funded capital as allocations are funded"""
        first = allocation_factory(deal_id=1, amount=Decimal("600000.00"))
        second = allocation_factory(deal_id=2, amount=Decimal("400000.00"))
        third = allocation_factory(deal_id=3, amount=Decimal("250000.00"))

        await service.generate_capital_calls(first.id, "single")
        assert (await service.get_allocation(first.id)).portfolio_weight == Decimal("100.00")

        await service.generate_capital_calls(second.id, "single")
        await service.generate_capital_calls(third.id, "quarterly", call_count=2)

        weights = {a.id: a.portfolio_weight for a in await service.storage.get_allocations_by_fund(first.fund_id)}
        assert weights == {first.id: Decimal("60.00"), second.id: Decimal("40.00"), third.id: Decimal("0.00")}

    @pytest.mark.asyncio
    async def test_overdue_then_late_payment(self, service, test_allocation):
        """Test an overdue call can still be settled and funds the allocation"""
        call, _ = await service.create_capital_call({
            "allocation_id": test_allocation.id,
            "call_amount": Decimal("1000000"),
            "status": "called",
        })

        marked = await service.mark_overdue_calls(as_of=date(2024, 3, 1))
        assert [c.id for c in marked] == [call.id]

        call, _ = await service.record_payment(call.id, Decimal("1000000"), payment_type="wire")
        assert call.status == "paid"
        assert (await service.get_allocation(test_allocation.id)).status == "funded"

    @pytest.mark.asyncio
    async def test_allocation_with_schedule(self, service, test_fund):
        """Test allocation creation with a generated schedule"""
        result = await service.create_allocation(
            {
                "fund_id": test_fund.id,
                "deal_id": 77,
                "amount": Decimal("200000"),
                "amount_type": "dollar",
                "allocation_date": date(2024, 2, 1),
            },
            schedule={"schedule_type": "biannual", "call_count": 2}
        )

        assert result["is_new_allocation"] is True
        assert [c.call_date for c in result["capital_calls"]] == [date(2024, 2, 1), date(2024, 8, 1)]
        assert result["warnings"] == []
