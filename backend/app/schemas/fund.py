"""
Fund Pydantic schemas
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class FundCreate(BaseModel):
    """Fund creation request"""
    name: str
    description: Optional[str] = None
    vintage_year: Optional[int] = None


class Fund(BaseModel):
    """Fund response schema"""
    id: int
    name: str
    description: Optional[str] = None
    vintage_year: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
