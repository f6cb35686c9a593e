"""/v1/loans - origination, EMI payment, prepayment"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status

from household_ledger.api.dependencies import get_loan_service
from household_ledger.api.v1.schemas import (
    LoanDetailResponse,
    LoanEMISchema,
    LoanResponse,
    OriginateLoanRequest,
    PayEmiRequest,
    PrepayLoanRequest,
    PrepayLoanResponse,
)
from household_ledger.domain.models import EmiStatus
from household_ledger.infrastructure.database.models import Loan
from household_ledger.services.loans import LoanService

router = APIRouter()


def _remaining(loan: Loan) -> int:
    return sum(1 for emi in loan.emis if emi.status == EmiStatus.PENDING)


def _loan_response(loan: Loan) -> LoanResponse:
    response = LoanResponse.model_validate(loan)
    response.remaining_installments = _remaining(loan)
    return response


@router.post("/loans", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
def originate_loan(request_body: OriginateLoanRequest, service: LoanService = Depends(get_loan_service)):
    """Create a loan and its full EMI schedule"""
    loan = service.originate(
        principal=request_body.principal,
        annual_rate=request_body.interest_rate,
        tenure_months=request_body.tenure_months,
        linked_account_id=request_body.linked_account_id,
        start_date=request_body.start_date,
        name=request_body.name,
        lender=request_body.lender,
    )
    return _loan_response(loan)


@router.get("/loans", response_model=List[LoanResponse])
def list_loans(service: LoanService = Depends(get_loan_service)):
    return [_loan_response(loan) for loan in service.list()]


@router.get("/loans/{loan_id}", response_model=LoanDetailResponse)
def get_loan(loan_id: uuid.UUID, service: LoanService = Depends(get_loan_service)):
    """Loan with its schedule (by EMI number) and prepayments (newest first)"""
    loan = service.get(loan_id)
    detail = LoanDetailResponse.model_validate(loan)
    detail.remaining_installments = _remaining(loan)
    return detail


@router.post("/loans/{loan_id}/emis/{emi_number}/pay", response_model=LoanEMISchema)
def pay_emi(
    loan_id: uuid.UUID,
    emi_number: int,
    request_body: Optional[PayEmiRequest] = Body(None),
    service: LoanService = Depends(get_loan_service),
):
    paid_on = request_body.paid_on if request_body else None
    emi = service.pay_emi(loan_id, emi_number, paid_on=paid_on)
    return LoanEMISchema.model_validate(emi)


@router.post("/loans/{loan_id}/prepayments", response_model=PrepayLoanResponse)
def prepay_loan(
    loan_id: uuid.UUID,
    request_body: PrepayLoanRequest,
    service: LoanService = Depends(get_loan_service),
):
    """Prepay principal and regenerate the pending schedule"""
    schedule = service.prepay(loan_id, request_body.amount, request_body.date, request_body.strategy)
    loan = service.get(loan_id)
    return PrepayLoanResponse(
        loan=_loan_response(loan),
        schedule=[LoanEMISchema.model_validate(emi) for emi in schedule],
    )
