"""
Portfolio weight recalculation

An allocation's portfolio weight is its share of the fund's funded capital.
Weights are derived: only this module writes portfolio_weight.
"""
from typing import Any, Dict, Iterable, Optional
from decimal import Decimal
import logging

from app.services.schedule_generator import HUNDRED, quantize, to_decimal
from app.services.storage import Storage

logger = logging.getLogger(__name__)

FUNDED = "funded"


def compute_portfolio_weights(allocations: Iterable[Any]) -> Optional[Dict[int, Decimal]]:
    """
    Compute the weight of every allocation in a fund

    Funded allocations get amount / funded capital * 100 rounded to 2
    decimals, everything else gets 0. The rounding residual goes to the
    largest funded allocation so funded weights sum to exactly 100.00.

    Returns:
        Mapping of allocation id to weight, or None when the fund has no
        funded capital (weights are undefined)
    """
    allocations = list(allocations)
    funded = [a for a in allocations if a.status == FUNDED]
    called_capital = sum((to_decimal(a.amount) for a in funded), Decimal("0"))

    if called_capital <= 0:
        return None

    weights = {a.id: Decimal("0.00") for a in allocations}
    for allocation in funded:
        weights[allocation.id] = quantize(to_decimal(allocation.amount) / called_capital * HUNDRED)

    residual = HUNDRED - sum((weights[a.id] for a in funded), Decimal("0"))
    if residual:
        largest = max(funded, key=lambda a: (to_decimal(a.amount), -a.id))
        weights[largest.id] += residual

    return weights


class PortfolioWeightRecalculator:
    """Recompute and persist portfolio weights for all allocations in a fund"""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def recalculate(self, fund_id: int) -> Dict[int, Decimal]:
        """
        Recalculate weights for a fund

        Returns:
            Mapping of allocation id to its new weight (empty when the fund
            has no funded capital and nothing was written)
        """
        allocations = await self.storage.get_allocations_by_fund(fund_id)
        weights = compute_portfolio_weights(allocations)

        if weights is None:
            logger.info(f"Fund {fund_id} has no funded capital; portfolio weights left unchanged")
            return {}

        updated = 0
        for allocation in allocations:
            weight = weights[allocation.id]
            if to_decimal(allocation.portfolio_weight) != weight:
                await self.storage.update_fund_allocation(allocation.id, {"portfolio_weight": weight})
                updated += 1

        logger.info(f"Recalculated portfolio weights for fund {fund_id}: {updated} of {len(allocations)} allocations changed")
        return weights
