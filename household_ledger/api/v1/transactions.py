"""/v1/transactions and /v1/transfers - ledger postings"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from household_ledger.api.dependencies import get_ledger, get_user_id
from household_ledger.api.v1.schemas import (
    PostTransactionRequest,
    ReversalResponse,
    TransactionResponse,
    TransferRequest,
    TransferResponse,
)
from household_ledger.services.ledger import LedgerPoster

router = APIRouter()


@router.post("/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def post_transaction(
    request_body: PostTransactionRequest,
    ledger: LedgerPoster = Depends(get_ledger),
    user_id: Optional[str] = Depends(get_user_id),
):
    """
    Post an income or expense. Supplying ``id`` makes the call safe to retry:
    a replay returns the stored transaction without changing the balance.
    """
    transaction = ledger.post(
        account_id=request_body.account_id,
        kind=request_body.kind,
        amount=request_body.amount,
        txn_date=request_body.date,
        category_id=request_body.category_id,
        description=request_body.description,
        explicit_id=request_body.id,
        created_by=user_id,
    )
    return TransactionResponse.model_validate(transaction)


@router.get("/transactions", response_model=List[TransactionResponse])
def list_transactions(
    account_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: LedgerPoster = Depends(get_ledger),
):
    """Household transactions, newest first"""
    rows = ledger.transactions.list(ledger.household_id, account_id=account_id, limit=limit, offset=offset)
    return [TransactionResponse.model_validate(t) for t in rows]


@router.delete("/transactions/{transaction_id}", response_model=ReversalResponse)
def reverse_transaction(transaction_id: uuid.UUID, ledger: LedgerPoster = Depends(get_ledger)):
    """Reverse a transaction (both legs for a transfer)"""
    return ReversalResponse(reversed=ledger.reverse(transaction_id))


@router.post("/transfers", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
def transfer(
    request_body: TransferRequest,
    ledger: LedgerPoster = Depends(get_ledger),
    user_id: Optional[str] = Depends(get_user_id),
):
    debit, credit = ledger.transfer(
        from_account_id=request_body.from_account_id,
        to_account_id=request_body.to_account_id,
        amount=request_body.amount,
        txn_date=request_body.date,
        description=request_body.description,
        created_by=user_id,
    )
    return TransferResponse(
        debit=TransactionResponse.model_validate(debit),
        credit=TransactionResponse.model_validate(credit),
    )
