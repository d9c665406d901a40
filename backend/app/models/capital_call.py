"""
Capital call and payment database models
"""
from sqlalchemy import Column, Integer, String, Date, Numeric, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import date, datetime, timezone
from app.db.base import Base


class CapitalCall(Base):
    """Capital Call model"""

    __tablename__ = "capital_calls"

    id = Column(Integer, primary_key=True, index=True)
    allocation_id = Column(Integer, ForeignKey("fund_allocations.id"), nullable=False, index=True)
    call_amount = Column(Numeric(15, 2), nullable=False)
    amount_type = Column(String(20), nullable=False, default="percentage")  # percentage, dollar
    call_date = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=False, index=True)
    # scheduled, called, partial, partially_paid, overdue, paid, defaulted
    status = Column(String(50), nullable=False, default="scheduled", index=True)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding_amount = Column(Numeric(15, 2), nullable=False)
    paid_date = Column(Date)
    notes = Column(Text)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    allocation = relationship("FundAllocation", back_populates="capital_calls")
    payments = relationship("Payment", back_populates="capital_call", order_by="Payment.id")

    __table_args__ = (
        UniqueConstraint("allocation_id", "call_date", name="unique_allocation_call_date"),
    )


class Payment(Base):
    """Payment event recorded against a capital call (append-only)"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    capital_call_id = Column(Integer, ForeignKey("capital_calls.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    payment_type = Column(String(20), nullable=False, default="wire")  # wire, check, ach, other
    notes = Column(Text)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    capital_call = relationship("CapitalCall", back_populates="payments")
