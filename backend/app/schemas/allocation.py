"""
Fund allocation Pydantic schemas
"""
from pydantic import BaseModel, Field
from typing import Dict, Optional, List
from datetime import date, datetime
from decimal import Decimal

from app.schemas.capital_call import CapitalCall, ScheduleOptions


class InitialCapitalCall(BaseModel):
    """Capital call created together with an allocation"""
    call_amount: Decimal = Field(..., gt=0)
    amount_type: Optional[str] = None
    call_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class AllocationCreate(BaseModel):
    """Allocation creation request"""
    fund_id: int
    deal_id: int
    amount: Decimal = Field(..., gt=0)
    amount_type: str = "dollar"  # percentage, dollar
    security_type: Optional[str] = None
    allocation_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None
    capital_call: Optional[InitialCapitalCall] = None
    schedule: Optional[ScheduleOptions] = None

    class Config:
        json_schema_extra = {
            "example": {
                "fund_id": 1,
                "deal_id": 42,
                "amount": 1000000.00,
                "amount_type": "dollar",
                "security_type": "Series A Preferred",
                "allocation_date": "2024-01-15"
            }
        }


class Allocation(BaseModel):
    """Allocation response schema"""
    id: int
    fund_id: int
    deal_id: int
    amount: Decimal
    amount_type: str
    security_type: Optional[str] = None
    allocation_date: date
    status: str
    portfolio_weight: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AllocationCreateResponse(BaseModel):
    """Result of the allocation workflow"""
    allocation: Allocation
    is_new_allocation: bool
    capital_call: Optional[CapitalCall] = None
    is_new_capital_call: Optional[bool] = None
    capital_calls: List[CapitalCall] = []
    warnings: List[str] = []


class PortfolioWeights(BaseModel):
    """Recalculated weights keyed by allocation id"""
    fund_id: int
    weights: Dict[int, Decimal]
