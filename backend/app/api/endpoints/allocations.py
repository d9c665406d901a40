"""
Fund allocation API endpoints
"""
from fastapi import APIRouter, Depends, Response
from typing import List

from app.api.deps import get_capital_call_service
from app.exceptions import NotFoundError
from app.schemas.allocation import (
    Allocation as AllocationSchema,
    AllocationCreate,
    AllocationCreateResponse,
    PortfolioWeights,
)
from app.services.capital_call_service import CapitalCallService

router = APIRouter()


@router.post("", response_model=AllocationCreateResponse)
async def create_allocation(
    request: AllocationCreate,
    response: Response,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """
    Create an allocation, optionally with an initial capital call or a
    generated schedule

    Resubmitting the same fund, deal and allocation date returns the
    existing allocation with status 200 instead of 201.
    """
    fund = await service.storage.get_fund(request.fund_id)
    if not fund:
        raise NotFoundError("Fund", request.fund_id)

    allocation_data = request.model_dump(exclude={"capital_call", "schedule"})
    result = await service.create_allocation(
        allocation_data,
        capital_call_data=request.capital_call.model_dump() if request.capital_call else None,
        schedule=request.schedule.model_dump(by_alias=True) if request.schedule else None,
    )

    response.status_code = 201 if result["is_new_allocation"] else 200
    return result


@router.get("/{allocation_id}", response_model=AllocationSchema)
async def get_allocation(
    allocation_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Get allocation details"""
    return await service.get_allocation(allocation_id)


@router.get("/fund/{fund_id}", response_model=List[AllocationSchema])
async def list_fund_allocations(
    fund_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """List a fund's allocations"""
    return await service.storage.get_allocations_by_fund(fund_id)


@router.post("/fund/{fund_id}/recalculate-weights", response_model=PortfolioWeights)
async def recalculate_weights(
    fund_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Recompute portfolio weights for every allocation in a fund"""
    fund = await service.storage.get_fund(fund_id)
    if not fund:
        raise NotFoundError("Fund", fund_id)

    weights = await service.recalculate_fund_weights(fund_id)
    return {"fund_id": fund_id, "weights": weights}
