"""
Capital call Pydantic schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class CapitalCallCreate(BaseModel):
    """Direct capital call creation request"""
    allocation_id: int
    call_amount: Decimal = Field(..., gt=0)
    amount_type: Optional[str] = None  # percentage, dollar (defaults from the allocation)
    call_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[str] = None
    paid_amount: Decimal = Decimal("0")
    paid_date: Optional[date] = None
    notes: Optional[str] = None


class CustomScheduleEntry(BaseModel):
    """One row of a custom capital call schedule"""
    model_config = ConfigDict(populate_by_name=True)

    call_date: Optional[date] = Field(None, alias="date")  # defaults to the reference date
    percentage: Optional[Decimal] = None
    dollar_amount: Optional[Decimal] = None
    amount_type: Optional[str] = None
    due_date: Optional[date] = None


class ScheduleOptions(BaseModel):
    """How an allocation's commitment is split into capital calls"""
    schedule_type: str  # single, monthly, quarterly, biannual, annual, custom
    call_count: Optional[int] = None
    call_percentage: Optional[Decimal] = None
    total_percentage: Decimal = Decimal("100")
    first_call_date: Optional[date] = None
    custom_schedule: Optional[List[CustomScheduleEntry]] = None


class GenerateScheduleRequest(ScheduleOptions):
    """Schedule generation request"""
    allocation_id: int

    class Config:
        json_schema_extra = {
            "example": {
                "allocation_id": 1,
                "schedule_type": "quarterly",
                "call_count": 4,
                "first_call_date": "2024-01-15"
            }
        }


class StatusUpdate(BaseModel):
    """Capital call status transition request"""
    status: str
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[date] = None
    payment_type: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None


class DatesUpdate(BaseModel):
    """Capital call reschedule request"""
    call_date: date
    due_date: date


class PaymentCreate(BaseModel):
    """Payment recording request"""
    amount: Decimal
    payment_date: Optional[date] = None
    payment_type: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None


class Payment(BaseModel):
    """Payment response schema"""
    id: int
    capital_call_id: int
    amount: Decimal
    payment_date: date
    payment_type: str
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CapitalCall(BaseModel):
    """Capital call response schema"""
    id: int
    allocation_id: int
    call_amount: Decimal
    amount_type: str
    call_date: date
    due_date: date
    status: str
    paid_amount: Decimal
    outstanding_amount: Decimal
    paid_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CapitalCallCreateResponse(BaseModel):
    """Creation result; is_new is False when an identical call already existed"""
    capital_call: CapitalCall
    is_new: bool


class GenerateScheduleResponse(BaseModel):
    """Generated schedule"""
    allocation_id: int
    schedule_type: str
    created: int
    existing: int
    capital_calls: List[CapitalCall]


class PaymentResponse(BaseModel):
    """Recorded payment with the updated capital call"""
    capital_call: CapitalCall
    payment: Payment


class CapitalCallSummary(BaseModel):
    """Totals across an allocation's capital calls"""
    allocation_id: int
    total_calls: int
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal
    paid_percentage: Decimal


class CalendarEntry(BaseModel):
    """Capital call with fund and allocation context"""
    capital_call: CapitalCall
    fund_id: int
    fund_name: str
    deal_id: int
    allocation_amount: Decimal
