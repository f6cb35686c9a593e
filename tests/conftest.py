"""Pytest fixtures for testing"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from household_ledger.api.dependencies import get_analytics_client
from household_ledger.api.main import create_app
from household_ledger.domain.models import AccountKind
from household_ledger.infrastructure.database.models import Base
from household_ledger.infrastructure.database.session import get_db
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.services.credit_cards import CreditCardBillingManager
from household_ledger.services.ledger import LedgerPoster
from household_ledger.services.loans import LoanService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

HOUSEHOLD_ID = "household-1"
OTHER_HOUSEHOLD_ID = "household-2"


class FakeAnalyticsClient:
    """Records refresh requests instead of calling the analytics service"""

    def __init__(self):
        self.refreshed = []

    async def refresh_period(self, household_id: str, period: date) -> None:
        self.refreshed.append((household_id, period))


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def second_db(db: Session) -> Generator[Session, None, None]:
    """Independent session on the same database, standing in for a concurrent request"""
    other = TestingSessionLocal()
    try:
        yield other
    finally:
        other.close()


@pytest.fixture
def analytics_client() -> FakeAnalyticsClient:
    return FakeAnalyticsClient()


@pytest.fixture
def client(db: Session, analytics_client: FakeAnalyticsClient) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analytics_client] = lambda: analytics_client
    return TestClient(app)


@pytest.fixture
def household_id() -> str:
    return HOUSEHOLD_ID


@pytest.fixture
def other_household_id() -> str:
    return OTHER_HOUSEHOLD_ID


@pytest.fixture
def refreshes() -> list:
    """Collects (household_id, period) pairs passed to the refresh hook"""
    return []


@pytest.fixture
def uow(db: Session) -> UnitOfWork:
    return UnitOfWork(db)


@pytest.fixture
def ledger(uow: UnitOfWork, refreshes: list) -> LedgerPoster:
    return LedgerPoster(uow, HOUSEHOLD_ID, lambda household_id, period: refreshes.append((household_id, period)))


@pytest.fixture
def loan_service(uow: UnitOfWork) -> LoanService:
    return LoanService(uow, HOUSEHOLD_ID)


@pytest.fixture
def card_manager(uow: UnitOfWork) -> CreditCardBillingManager:
    return CreditCardBillingManager(uow, HOUSEHOLD_ID)


@pytest.fixture
def bank_account(ledger: LedgerPoster):
    """Salary account funded with 500000.00"""
    return ledger.open_account(
        "Salary Account",
        AccountKind.BANK,
        opening_balance=Decimal("500000.00"),
        as_of=date(2024, 1, 1),
    )
