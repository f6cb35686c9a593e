"""Dependency injection for FastAPI endpoints"""

from datetime import date

from fastapi import BackgroundTasks, Depends, Header
from sqlalchemy.orm import Session

from household_ledger.infrastructure.clients.analytics import AnalyticsClient
from household_ledger.infrastructure.database.session import get_db
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.services.credit_cards import CreditCardBillingManager
from household_ledger.services.ledger import LedgerPoster, RefreshHook
from household_ledger.services.loans import LoanService


def get_household_id(x_household_id: str = Header(..., min_length=1)) -> str:
    """Caller's household, resolved upstream by the authentication layer"""
    return x_household_id


def get_user_id(x_user_id: str | None = Header(None)) -> str | None:
    return x_user_id


def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    """One unit of work per request"""
    return UnitOfWork(db)


def get_analytics_client() -> AnalyticsClient:
    """Provide aggregation refresh client instance"""
    return AnalyticsClient()


def get_refresh_hook(
    background_tasks: BackgroundTasks,
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
) -> RefreshHook:
    """Schedule aggregation refreshes to run after the response is sent"""

    def schedule_refresh(household_id: str, period: date) -> None:
        background_tasks.add_task(analytics_client.refresh_period, household_id, period)

    return schedule_refresh


def get_ledger(
    uow: UnitOfWork = Depends(get_uow),
    household_id: str = Depends(get_household_id),
    refresh_hook: RefreshHook = Depends(get_refresh_hook),
) -> LedgerPoster:
    return LedgerPoster(uow, household_id, refresh_hook)


def get_loan_service(
    uow: UnitOfWork = Depends(get_uow),
    household_id: str = Depends(get_household_id),
    refresh_hook: RefreshHook = Depends(get_refresh_hook),
) -> LoanService:
    return LoanService(uow, household_id, refresh_hook)


def get_card_manager(
    uow: UnitOfWork = Depends(get_uow),
    household_id: str = Depends(get_household_id),
    refresh_hook: RefreshHook = Depends(get_refresh_hook),
) -> CreditCardBillingManager:
    return CreditCardBillingManager(uow, household_id, refresh_hook)
