"""/v1/accounts - account setup and lookup"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from household_ledger.api.dependencies import get_ledger
from household_ledger.api.v1.schemas import AccountResponse, CreateAccountRequest, UpdateAccountRequest
from household_ledger.domain.models import AccountKind
from household_ledger.services.ledger import LedgerPoster

router = APIRouter()


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(request_body: CreateAccountRequest, ledger: LedgerPoster = Depends(get_ledger)):
    """
    Create an account. A non-zero opening balance is posted as the account's
    first transaction so the balance always equals the sum of its ledger.
    Credit card accounts are created through /v1/credit-cards instead.
    """
    if request_body.kind == AccountKind.CREDIT_CARD:
        raise HTTPException(status_code=422, detail="Create credit card accounts via /v1/credit-cards")

    account = ledger.open_account(
        name=request_body.name,
        kind=request_body.kind,
        currency=request_body.currency,
        owner_id=request_body.owner_id,
        opening_balance=request_body.opening_balance,
        as_of=request_body.as_of,
    )
    return AccountResponse.model_validate(account)


@router.get("/accounts", response_model=List[AccountResponse])
def list_accounts(ledger: LedgerPoster = Depends(get_ledger)):
    return [AccountResponse.model_validate(a) for a in ledger.accounts.list(ledger.household_id)]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(account_id: uuid.UUID, ledger: LedgerPoster = Depends(get_ledger)):
    account = ledger.accounts.get(ledger.household_id, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return AccountResponse.model_validate(account)


@router.put("/accounts/{account_id}", response_model=AccountResponse)
def rename_account(
    account_id: uuid.UUID,
    request_body: UpdateAccountRequest,
    ledger: LedgerPoster = Depends(get_ledger),
):
    return AccountResponse.model_validate(ledger.rename_account(account_id, request_body.name))


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(account_id: uuid.UUID, ledger: LedgerPoster = Depends(get_ledger)):
    """Delete an account that no transaction, loan or credit card references"""
    ledger.delete_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
