"""
Pytest configuration and shared fixtures

This module contains pytest fixtures that are shared across all tests.
"""
import os
import pytest
import sys
from pathlib import Path
from datetime import date
from decimal import Decimal
from typing import Any, Dict

# Add app to path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# Keep the module-level engine off PostgreSQL while testing
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402


@pytest.fixture(scope="function")
def test_db():
    """Setup SQLite in-memory database for testing"""
    from app.db.base import Base
    import app.models  # noqa: F401  registers the tables

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = TestingSessionLocal()

    yield db

    # Cleanup
    db.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def storage(test_db):
    """Storage over the in-memory database"""
    from app.services.storage import SqlAlchemyStorage

    return SqlAlchemyStorage(test_db)


@pytest.fixture
def capital_call_settings():
    """Default capital call business rules"""
    from app.core.config import CapitalCallSettings

    return CapitalCallSettings()


@pytest.fixture
def service(storage, capital_call_settings):
    """Capital call service over the in-memory database"""
    from app.services.capital_call_service import CapitalCallService

    return CapitalCallService(storage, capital_call_settings)


@pytest.fixture(scope="function")
def test_fund(test_db):
    """Create a test fund in the database"""
    from app.models import Fund

    fund = Fund(
        name="Test Fund",
        description="Early-stage venture fund",
        vintage_year=2023
    )
    test_db.add(fund)
    test_db.commit()
    test_db.refresh(fund)

    return fund


@pytest.fixture
def allocation_factory(test_db, test_fund):
    """Create allocations in the test fund"""
    from app.models import FundAllocation

    def _create(**overrides):
        values: Dict[str, Any] = {
            "fund_id": test_fund.id,
            "deal_id": 1,
            "amount": Decimal("1000000.00"),
            "amount_type": "dollar",
            "security_type": "Series A Preferred",
            "allocation_date": date(2024, 1, 15),
            "status": "committed",
        }
        values.update(overrides)
        allocation = FundAllocation(**values)
        test_db.add(allocation)
        test_db.commit()
        test_db.refresh(allocation)
        return allocation

    return _create


@pytest.fixture
def test_allocation(allocation_factory):
    """A committed $1,000,000 dollar allocation dated 2024-01-15"""
    return allocation_factory()


@pytest.fixture
def client(test_db):
    """FastAPI test client bound to the in-memory database"""
    from fastapi.testclient import TestClient
    from app.db.session import get_db
    from app.main import app

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_call():
    """Lightweight stand-in for a capital call row"""
    from types import SimpleNamespace

    def _make(**overrides):
        values = {
            "id": 1,
            "allocation_id": 1,
            "call_amount": Decimal("100000.00"),
            "amount_type": "dollar",
            "call_date": date(2024, 1, 15),
            "due_date": date(2024, 1, 29),
            "status": "called",
            "paid_amount": Decimal("0"),
            "outstanding_amount": Decimal("100000.00"),
            "paid_date": None,
            "notes": None,
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make
