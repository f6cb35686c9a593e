"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field, UUID4
from datetime import date
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from household_ledger.domain.models import (
    AccountKind,
    CardStatus,
    EmiStatus,
    LoanStatus,
    PaymentType,
    PrepaymentStrategy,
    StatementStatus,
    TransactionKind,
)

PositiveAmount = Annotated[Decimal, Field(gt=0, max_digits=18, decimal_places=2)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Accounts


class CreateAccountRequest(BaseModel):
    """Request body for POST /v1/accounts"""

    name: str = Field(..., min_length=1)
    kind: AccountKind
    currency: str = Field("INR", min_length=3, max_length=3)
    owner_id: Optional[str] = Field(None, description="Owning member; omit for a shared account")
    opening_balance: Decimal = Field(Decimal("0"), max_digits=18, decimal_places=2)
    as_of: Optional[date] = None


class UpdateAccountRequest(BaseModel):
    """Request body for PUT /v1/accounts/{id}; the balance is not editable"""

    name: str = Field(..., min_length=1)


class AccountResponse(ORMModel):
    id: UUID
    name: str
    kind: AccountKind
    currency: str
    balance: Decimal
    owner_id: Optional[str] = None


# Transactions


class PostTransactionRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    id: Optional[UUID4] = Field(None, description="Client-generated id; makes retries idempotent")
    account_id: UUID
    kind: TransactionKind
    amount: PositiveAmount
    date: date
    category_id: Optional[UUID] = None
    description: Optional[str] = None


class TransactionResponse(ORMModel):
    id: UUID
    account_id: UUID
    category_id: Optional[UUID] = None
    kind: TransactionKind
    amount: Decimal
    date: date
    description: Optional[str] = None
    linked_transaction_id: Optional[UUID] = None


class TransferRequest(BaseModel):
    """Request body for POST /v1/transfers"""

    from_account_id: UUID
    to_account_id: UUID
    amount: PositiveAmount
    date: date
    description: Optional[str] = None


class TransferResponse(BaseModel):
    debit: TransactionResponse
    credit: TransactionResponse


class ReversalResponse(BaseModel):
    reversed: List[UUID]


# Loans


class OriginateLoanRequest(BaseModel):
    """Request body for POST /v1/loans"""

    name: str = Field(..., min_length=1)
    lender: Optional[str] = None
    principal: PositiveAmount
    interest_rate: Decimal = Field(..., ge=0, le=100, description="Annual interest rate in percent")
    tenure_months: int = Field(..., gt=0, le=600)
    linked_account_id: UUID
    start_date: date


class PayEmiRequest(BaseModel):
    """Optional body for POST /v1/loans/{id}/emis/{emi_number}/pay"""

    paid_on: Optional[date] = None


class PrepayLoanRequest(BaseModel):
    """Request body for POST /v1/loans/{id}/prepayments"""

    amount: PositiveAmount
    date: date
    strategy: PrepaymentStrategy


class LoanEMISchema(ORMModel):
    emi_number: int
    due_date: date
    principal_component: Decimal
    interest_component: Decimal
    total_amount: Decimal
    status: EmiStatus
    paid_date: Optional[date] = None
    transaction_id: Optional[UUID] = None


class PrepaymentSchema(ORMModel):
    id: UUID
    amount: Decimal
    date: date
    strategy: PrepaymentStrategy


class LoanResponse(ORMModel):
    id: UUID
    name: str
    lender: Optional[str] = None
    linked_account_id: UUID
    principal: Decimal
    interest_rate: Decimal
    tenure_months: int
    start_date: date
    emi_amount: Decimal
    outstanding_principal: Decimal
    status: LoanStatus
    remaining_installments: int = 0


class LoanDetailResponse(LoanResponse):
    emis: List[LoanEMISchema]
    prepayments: List[PrepaymentSchema]


class PrepayLoanResponse(BaseModel):
    loan: LoanResponse
    schedule: List[LoanEMISchema]


# Credit cards


class CreateCreditCardRequest(BaseModel):
    """Request body for POST /v1/credit-cards"""

    name: str = Field(..., min_length=1)
    issuer: Optional[str] = None
    limit: PositiveAmount
    billing_day: int = Field(..., ge=1, le=31)
    due_days: int = Field(..., ge=0, le=60)
    apr: Decimal = Field(..., ge=0, le=100, description="Annual percentage rate")
    minimum_due_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    currency: str = Field("INR", min_length=3, max_length=3)


class CreditCardResponse(ORMModel):
    id: UUID
    account_id: UUID
    issuer: Optional[str] = None
    credit_limit: Decimal
    billing_cycle_start_day: int
    due_days: int
    interest_rate_monthly: Decimal
    minimum_due_percent: Decimal
    outstanding_amount: Decimal
    status: CardStatus


class ChargeRequest(BaseModel):
    """Request body for POST /v1/credit-cards/{id}/charges"""

    amount: PositiveAmount
    date: date
    category_id: Optional[UUID] = None
    description: Optional[str] = None


class CreditCardPaymentRequest(BaseModel):
    """Request body for POST /v1/credit-cards/{id}/payments"""

    amount: PositiveAmount
    source_account_id: UUID
    date: date
    payment_type: Optional[PaymentType] = None


class CreditCardPaymentResponse(ORMModel):
    id: UUID
    statement_id: Optional[UUID] = None
    amount: Decimal
    payment_date: date
    payment_type: PaymentType
    transaction_id: UUID


class GenerateStatementRequest(BaseModel):
    """Optional body for POST /v1/credit-cards/{id}/statements"""

    as_of: Optional[date] = None


class StatementResponse(ORMModel):
    id: UUID
    cycle_start: date
    cycle_end: date
    statement_date: date
    opening_balance: Decimal
    total_spends: Decimal
    total_payments: Decimal
    interest_charged: Decimal
    closing_balance: Decimal
    minimum_due: Decimal
    due_date: date
    status: StatementStatus
    payments_applied: Decimal = Decimal("0")
