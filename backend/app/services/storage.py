"""
Persistence interface for capital call administration

Services never touch the database directly; they receive a Storage
implementation. Every operation is async, lookups return None when the
record does not exist, and unique-constraint violations surface as
DuplicateSubmissionError. Any other failure propagates unchanged.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import DuplicateSubmissionError
from app.models.fund import Fund
from app.models.allocation import FundAllocation
from app.models.capital_call import CapitalCall, Payment

logger = logging.getLogger(__name__)


class Storage(ABC):
    """CRUD access to funds, allocations, capital calls and payments"""

    # Funds
    @abstractmethod
    async def get_fund(self, fund_id: int) -> Optional[Fund]: ...

    @abstractmethod
    async def create_fund(self, data: Dict[str, Any]) -> Fund: ...

    # Allocations
    @abstractmethod
    async def get_fund_allocation(self, allocation_id: int) -> Optional[FundAllocation]: ...

    @abstractmethod
    async def get_allocations_by_fund(self, fund_id: int) -> List[FundAllocation]: ...

    @abstractmethod
    async def get_allocations_by_deal(self, deal_id: int) -> List[FundAllocation]: ...

    @abstractmethod
    async def create_fund_allocation(self, data: Dict[str, Any]) -> FundAllocation: ...

    @abstractmethod
    async def update_fund_allocation(self, allocation_id: int, patch: Dict[str, Any]) -> Optional[FundAllocation]: ...

    # Capital calls
    @abstractmethod
    async def get_capital_call(self, call_id: int) -> Optional[CapitalCall]: ...

    @abstractmethod
    async def get_capital_calls(self) -> List[CapitalCall]: ...

    @abstractmethod
    async def get_capital_calls_by_allocation(self, allocation_id: int) -> List[CapitalCall]: ...

    @abstractmethod
    async def get_capital_calls_in_range(self, start_date: date, end_date: date) -> List[CapitalCall]: ...

    @abstractmethod
    async def get_capital_calls_due_before(self, cutoff: date, statuses: List[str]) -> List[CapitalCall]: ...

    @abstractmethod
    async def create_capital_call(self, data: Dict[str, Any]) -> CapitalCall: ...

    @abstractmethod
    async def update_capital_call(self, call_id: int, patch: Dict[str, Any]) -> Optional[CapitalCall]: ...

    # Payments
    @abstractmethod
    async def get_payments_for_capital_call(self, call_id: int) -> List[Payment]: ...

    @abstractmethod
    async def create_payment(self, data: Dict[str, Any]) -> Payment: ...


class SqlAlchemyStorage(Storage):
    """Storage backed by a SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def _add(self, instance, entity: str):
        self.db.add(instance)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            message = str(e.orig) if e.orig is not None else str(e)
            if "unique" in message.lower() or "duplicate" in message.lower():
                logger.warning(f"Unique constraint violated creating {entity}: {message}")
                raise DuplicateSubmissionError(entity, message) from e
            raise
        self.db.refresh(instance)
        return instance

    def _update(self, instance, patch: Dict[str, Any], entity: str):
        if instance is None:
            return None
        for key, value in patch.items():
            setattr(instance, key, value)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            message = str(e.orig) if e.orig is not None else str(e)
            if "unique" in message.lower() or "duplicate" in message.lower():
                raise DuplicateSubmissionError(entity, message) from e
            raise
        self.db.refresh(instance)
        return instance

    async def get_fund(self, fund_id: int) -> Optional[Fund]:
        return self.db.query(Fund).filter(Fund.id == fund_id).first()

    async def create_fund(self, data: Dict[str, Any]) -> Fund:
        return self._add(Fund(**data), "fund")

    async def get_fund_allocation(self, allocation_id: int) -> Optional[FundAllocation]:
        return self.db.query(FundAllocation).filter(FundAllocation.id == allocation_id).first()

    async def get_allocations_by_fund(self, fund_id: int) -> List[FundAllocation]:
        return (
            self.db.query(FundAllocation)
            .filter(FundAllocation.fund_id == fund_id)
            .order_by(FundAllocation.id)
            .all()
        )

    async def get_allocations_by_deal(self, deal_id: int) -> List[FundAllocation]:
        return (
            self.db.query(FundAllocation)
            .filter(FundAllocation.deal_id == deal_id)
            .order_by(FundAllocation.id)
            .all()
        )

    async def create_fund_allocation(self, data: Dict[str, Any]) -> FundAllocation:
        return self._add(FundAllocation(**data), "fund allocation")

    async def update_fund_allocation(self, allocation_id: int, patch: Dict[str, Any]) -> Optional[FundAllocation]:
        allocation = await self.get_fund_allocation(allocation_id)
        return self._update(allocation, patch, "fund allocation")

    async def get_capital_call(self, call_id: int) -> Optional[CapitalCall]:
        return self.db.query(CapitalCall).filter(CapitalCall.id == call_id).first()

    async def get_capital_calls(self) -> List[CapitalCall]:
        return self.db.query(CapitalCall).order_by(CapitalCall.call_date, CapitalCall.id).all()

    async def get_capital_calls_by_allocation(self, allocation_id: int) -> List[CapitalCall]:
        return (
            self.db.query(CapitalCall)
            .filter(CapitalCall.allocation_id == allocation_id)
            .order_by(CapitalCall.call_date, CapitalCall.id)
            .all()
        )

    async def get_capital_calls_in_range(self, start_date: date, end_date: date) -> List[CapitalCall]:
        return (
            self.db.query(CapitalCall)
            .filter(CapitalCall.call_date >= start_date, CapitalCall.call_date <= end_date)
            .order_by(CapitalCall.call_date, CapitalCall.id)
            .all()
        )

    async def get_capital_calls_due_before(self, cutoff: date, statuses: List[str]) -> List[CapitalCall]:
        return (
            self.db.query(CapitalCall)
            .filter(CapitalCall.due_date < cutoff, CapitalCall.status.in_(statuses))
            .order_by(CapitalCall.due_date, CapitalCall.id)
            .all()
        )

    async def create_capital_call(self, data: Dict[str, Any]) -> CapitalCall:
        return self._add(CapitalCall(**data), "capital call")

    async def update_capital_call(self, call_id: int, patch: Dict[str, Any]) -> Optional[CapitalCall]:
        call = await self.get_capital_call(call_id)
        return self._update(call, patch, "capital call")

    async def get_payments_for_capital_call(self, call_id: int) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.capital_call_id == call_id)
            .order_by(Payment.id)
            .all()
        )

    async def create_payment(self, data: Dict[str, Any]) -> Payment:
        return self._add(Payment(**data), "payment")
