"""
Fund API endpoints
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_capital_call_service
from app.exceptions import NotFoundError
from app.schemas.fund import Fund as FundSchema, FundCreate
from app.services.capital_call_service import CapitalCallService

router = APIRouter()


@router.post("", response_model=FundSchema, status_code=201)
async def create_fund(
    fund: FundCreate,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Create a fund"""
    return await service.storage.create_fund(fund.model_dump())


@router.get("/{fund_id}", response_model=FundSchema)
async def get_fund(
    fund_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Get fund details"""
    fund = await service.storage.get_fund(fund_id)
    if not fund:
        raise NotFoundError("Fund", fund_id)
    return fund
