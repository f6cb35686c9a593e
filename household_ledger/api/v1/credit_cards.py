"""/v1/credit-cards - card setup, charges, payments and statements"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from household_ledger.api.dependencies import get_card_manager
from household_ledger.api.v1.schemas import (
    ChargeRequest,
    CreateCreditCardRequest,
    CreditCardPaymentRequest,
    CreditCardPaymentResponse,
    CreditCardResponse,
    GenerateStatementRequest,
    StatementResponse,
    TransactionResponse,
)
from household_ledger.config import settings
from household_ledger.infrastructure.database.models import CreditCardStatement
from household_ledger.services.credit_cards import CreditCardBillingManager

router = APIRouter()


def _statement_response(manager: CreditCardBillingManager, statement: CreditCardStatement) -> StatementResponse:
    response = StatementResponse.model_validate(statement)
    response.payments_applied = manager.payments_applied(statement)
    return response


@router.post("/credit-cards", response_model=CreditCardResponse, status_code=status.HTTP_201_CREATED)
def create_credit_card(
    request_body: CreateCreditCardRequest,
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    """Create a CREDIT_CARD account together with its card terms"""
    card = manager.create_card(
        name=request_body.name,
        credit_limit=request_body.limit,
        billing_day=request_body.billing_day,
        due_days=request_body.due_days,
        apr=request_body.apr,
        minimum_due_percent=request_body.minimum_due_percent,
        issuer=request_body.issuer,
        currency=request_body.currency,
    )
    return CreditCardResponse.model_validate(card)


@router.get("/credit-cards", response_model=List[CreditCardResponse])
def list_credit_cards(manager: CreditCardBillingManager = Depends(get_card_manager)):
    return [CreditCardResponse.model_validate(card) for card in manager.list()]


@router.get("/credit-cards/{card_id}", response_model=CreditCardResponse)
def get_credit_card(card_id: uuid.UUID, manager: CreditCardBillingManager = Depends(get_card_manager)):
    return CreditCardResponse.model_validate(manager.get(card_id))


@router.post("/credit-cards/{card_id}/charges", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def charge_credit_card(
    card_id: uuid.UUID,
    request_body: ChargeRequest,
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    transaction = manager.charge(
        card_id,
        request_body.amount,
        request_body.category_id,
        request_body.date,
        request_body.description,
    )
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/credit-cards/{card_id}/payments",
    response_model=CreditCardPaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
def apply_credit_card_payment(
    card_id: uuid.UUID,
    request_body: CreditCardPaymentRequest,
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    payment = manager.apply_payment(
        card_id,
        request_body.amount,
        request_body.source_account_id,
        request_body.date,
        request_body.payment_type,
    )
    return CreditCardPaymentResponse.model_validate(payment)


@router.get("/credit-cards/{card_id}/payments", response_model=List[CreditCardPaymentResponse])
def list_credit_card_payments(card_id: uuid.UUID, manager: CreditCardBillingManager = Depends(get_card_manager)):
    return [CreditCardPaymentResponse.model_validate(p) for p in manager.payments(card_id)]


@router.post(
    "/credit-cards/{card_id}/statements",
    response_model=StatementResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_statement(
    card_id: uuid.UUID,
    request_body: Optional[GenerateStatementRequest] = Body(None),
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    """Close the latest completed billing cycle as of ``as_of`` (default today)"""
    if not settings.enable_credit_card_statements:
        raise HTTPException(status_code=403, detail="Statement generation is disabled")

    as_of = (request_body.as_of if request_body else None) or date.today()
    statement = manager.generate_statement(card_id, as_of)
    return _statement_response(manager, statement)


@router.get("/credit-cards/{card_id}/statements", response_model=List[StatementResponse])
def list_statements(card_id: uuid.UUID, manager: CreditCardBillingManager = Depends(get_card_manager)):
    """Statements, newest cycle first"""
    return [_statement_response(manager, s) for s in manager.statements(card_id)]


@router.post("/credit-cards/{card_id}/statements/refresh-status", response_model=List[StatementResponse])
def refresh_statement_status(
    card_id: uuid.UUID,
    request_body: Optional[GenerateStatementRequest] = Body(None),
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    """Flag OPEN statements past their due date as OVERDUE; returns the statements changed"""
    as_of = (request_body.as_of if request_body else None) or date.today()
    return [_statement_response(manager, s) for s in manager.refresh_statement_status(card_id, as_of)]


@router.post("/credit-cards/{card_id}/statements/{statement_id}/mark-paid", response_model=StatementResponse)
def mark_statement_paid(
    card_id: uuid.UUID,
    statement_id: uuid.UUID,
    manager: CreditCardBillingManager = Depends(get_card_manager),
):
    return _statement_response(manager, manager.mark_statement_paid(card_id, statement_id))
