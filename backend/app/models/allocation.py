"""
Fund allocation database model

An allocation is committed capital from one fund into one deal.
"""
from sqlalchemy import Column, Integer, String, Date, Numeric, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import date, datetime, timezone
from app.db.base import Base


class FundAllocation(Base):
    """Fund allocation model"""

    __tablename__ = "fund_allocations"

    id = Column(Integer, primary_key=True, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=False, index=True)
    deal_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    amount_type = Column(String(20), nullable=False, default="dollar")  # percentage, dollar
    security_type = Column(String(100))
    allocation_date = Column(Date, nullable=False, default=date.today, index=True)
    # committed, invested, funded, partially_closed, closed, written_off
    status = Column(String(50), nullable=False, default="committed", index=True)
    # Maintained by PortfolioWeightRecalculator only
    portfolio_weight = Column(Numeric(5, 2), nullable=False, default=0)
    notes = Column(Text)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    fund = relationship("Fund", back_populates="allocations")
    capital_calls = relationship("CapitalCall", back_populates="allocation")

    __table_args__ = (
        UniqueConstraint("fund_id", "deal_id", "allocation_date", name="unique_fund_deal_allocation"),
    )
