"""
Request-scoped dependencies shared by the API endpoints
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import CapitalCallSettings
from app.db.session import get_db
from app.services.capital_call_service import CapitalCallService, KeyedLock
from app.services.storage import SqlAlchemyStorage

# Shared across requests so concurrent writes to the same call or fund serialise
call_locks = KeyedLock()
fund_locks = KeyedLock()


def get_capital_call_service(db: Session = Depends(get_db)) -> CapitalCallService:
    return CapitalCallService(
        SqlAlchemyStorage(db),
        CapitalCallSettings.from_settings(),
        call_locks=call_locks,
        fund_locks=fund_locks,
    )
