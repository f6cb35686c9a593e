"""Loan service - origination, EMI payment and prepayment with schedule regeneration"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from household_ledger.config import settings
from household_ledger.domain.amortization import (
    ZERO,
    build_fixed_payment_schedule,
    build_schedule,
    level_payment,
    quantize_schedule,
    to_money,
)
from household_ledger.domain.exceptions import LimitExceededError, NotFoundError, ValidationError
from household_ledger.domain.models import (
    EmiStatus,
    LoanStatus,
    PrepaymentStrategy,
    ScheduleRow,
    TransactionKind,
)
from household_ledger.infrastructure.database.models import Loan, LoanEMI, LoanPrepayment
from household_ledger.infrastructure.database.repositories import CategoryRepository, LoanRepository
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.infrastructure.observability.logging import log_loan_event
from household_ledger.infrastructure.observability.metrics import (
    emi_payment_counter,
    loan_closed_counter,
    prepayment_counter,
)
from household_ledger.services.ledger import LedgerPoster, RefreshHook, positive_amount
from household_ledger.utils.date_utils import add_months


def _annual_rate(value) -> Decimal:
    rate = Decimal(str(value))
    if rate < 0:
        raise ValidationError("Interest rate cannot be negative")
    return rate


class LoanService:
    """
    Owns the Loan / LoanEMI / LoanPrepayment lifecycle for one household.

    State machine: ACTIVE -> ACTIVE on EMI payment or prepayment,
    ACTIVE -> CLOSED once the outstanding principal reaches zero.
    """

    def __init__(self, uow: UnitOfWork, household_id: str, refresh_hook: Optional[RefreshHook] = None):
        self.uow = uow
        self.household_id = household_id
        self.ledger = LedgerPoster(uow, household_id, refresh_hook)
        self.loans = LoanRepository(uow.db)
        self.categories = CategoryRepository(uow.db)

    def get(self, loan_id: uuid.UUID) -> Loan:
        loan = self.loans.get(self.household_id, loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")
        return loan

    def list(self) -> List[Loan]:
        return self.loans.list(self.household_id)

    def originate(
        self,
        principal: Decimal,
        annual_rate: Decimal,
        tenure_months: int,
        linked_account_id: uuid.UUID,
        start_date: date,
        name: str = "Loan",
        lender: str | None = None,
    ) -> Loan:
        """Create an ACTIVE loan and its full PENDING schedule (first EMI one month after start)"""
        principal = positive_amount(principal)
        rate = _annual_rate(annual_rate)
        if tenure_months <= 0:
            raise ValidationError("Tenure must be at least one month")

        emi = level_payment(principal, rate, tenure_months)
        rows = quantize_schedule(build_schedule(principal, rate, tenure_months, start_date), principal)

        with self.uow:
            account = self.ledger.accounts.get(self.household_id, linked_account_id)
            if account is None:
                raise NotFoundError("Linked account not found")

            loan = self.loans.add(
                Loan(
                    household_id=self.household_id,
                    name=name,
                    lender=lender,
                    linked_account_id=account.id,
                    principal=principal,
                    interest_rate=rate,
                    tenure_months=tenure_months,
                    start_date=start_date,
                    emi_amount=to_money(emi),
                    outstanding_principal=principal,
                    status=LoanStatus.ACTIVE,
                )
            )
            self.loans.add_emis(loan, rows)

        log_loan_event("originate", loan.id, principal=principal, emi_amount=to_money(emi), installments=len(rows))
        return loan

    def pay_emi(self, loan_id: uuid.UUID, emi_number: int, paid_on: date | None = None) -> LoanEMI:
        """
        Pay one installment from the loan's linked account.

        Posts an EXPENSE for the EMI total under the repayment category, marks
        the EMI PAID and reduces the outstanding principal, atomically.
        """
        paid_on = paid_on or date.today()

        with self.uow:
            loan = self.loans.get(self.household_id, loan_id, for_update=True)
            if loan is None:
                raise NotFoundError("Loan not found")
            emi = self.loans.get_emi(loan.id, emi_number, for_update=True)
            if emi is None:
                raise NotFoundError("EMI not found")
            if emi.status == EmiStatus.PAID:
                raise ValidationError(f"EMI #{emi_number} is already paid")

            account = self.ledger.accounts.get(self.household_id, loan.linked_account_id, for_update=True)
            if account is None:
                raise NotFoundError("Linked account not found")

            category = self.categories.get_or_create(
                self.household_id, settings.loan_repayment_category, TransactionKind.EXPENSE, color="#ff9800"
            )
            transaction = self.ledger.post_locked(
                account,
                TransactionKind.EXPENSE,
                emi.total_amount,
                paid_on,
                category_id=category.id,
                description=f"EMI #{emi_number} for {loan.name}",
            )

            emi.status = EmiStatus.PAID
            emi.paid_date = paid_on
            emi.transaction_id = transaction.id
            self._reduce_outstanding(loan, emi.principal_component)

        emi_payment_counter.inc()
        log_loan_event("pay_emi", loan.id, emi_number=emi_number, amount=emi.total_amount)
        return emi

    def prepay(
        self,
        loan_id: uuid.UUID,
        amount: Decimal,
        prepay_date: date,
        strategy: PrepaymentStrategy,
    ) -> List[LoanEMI]:
        """
        Record a prepayment and regenerate the PENDING tail of the schedule.

        REDUCE_TENURE keeps the EMI amount and shortens the schedule;
        REDUCE_EMI keeps the number of remaining installments and lowers the EMI.
        Regenerated rows continue numbering from the first pending EMI, so PAID
        history is untouched. Returns the new pending schedule.

        Raises:
            LimitExceededError: amount above the outstanding principal
            ScheduleDivergenceError: REDUCE_TENURE payment cannot amortise the balance
        """
        amount = positive_amount(amount)
        try:
            strategy = PrepaymentStrategy(strategy)
        except ValueError as e:
            raise ValidationError(f"Unknown prepayment strategy: {strategy!r}") from e

        with self.uow:
            loan = self.loans.get(self.household_id, loan_id, for_update=True)
            if loan is None:
                raise NotFoundError("Loan not found")
            if amount > loan.outstanding_principal:
                raise LimitExceededError("Prepayment cannot exceed outstanding principal")

            remaining = loan.outstanding_principal - amount
            pending = self.loans.pending_emis(loan.id)
            rows: List[ScheduleRow] = []
            new_emi = loan.emi_amount
            if pending and remaining > 0:
                rows, new_emi = self._regenerate(loan, remaining, pending, strategy)

            # All validation done; writes start here
            self.loans.db.add(LoanPrepayment(loan_id=loan.id, amount=amount, date=prepay_date, strategy=strategy))
            self._reduce_outstanding(loan, amount)
            loan.emi_amount = new_emi

            self.loans.delete_pending_emis(loan)
            schedule = self.loans.add_emis(loan, rows)

        prepayment_counter.labels(strategy=strategy.value).inc()
        log_loan_event(
            "prepay",
            loan.id,
            amount=amount,
            strategy=strategy.value,
            emi_amount=new_emi,
            remaining_installments=len(schedule),
        )
        return schedule

    def _regenerate(
        self,
        loan: Loan,
        principal: Decimal,
        pending: List[LoanEMI],
        strategy: PrepaymentStrategy,
    ) -> tuple[List[ScheduleRow], Decimal]:
        first = pending[0]
        rate = Decimal(loan.interest_rate)
        anchor_day = loan.start_date.day

        if strategy == PrepaymentStrategy.REDUCE_TENURE:
            rows = build_fixed_payment_schedule(
                principal,
                rate,
                loan.emi_amount,
                first.due_date,
                tolerance=settings.reduce_tenure_tolerance,
                max_rows=settings.reduce_tenure_max_rows,
                anchor_day=anchor_day,
            )
            new_emi = loan.emi_amount
        else:
            count = len(pending)
            # build_schedule places the first EMI one month after its start date
            calc_start = add_months(first.due_date, -1, anchor_day=anchor_day)
            rows = build_schedule(principal, rate, count, calc_start, anchor_day=anchor_day)
            new_emi = to_money(level_payment(principal, rate, count))

        rows = quantize_schedule(rows, principal)
        for offset, row in enumerate(rows):
            row.emi_number = first.emi_number + offset
        return rows, new_emi

    def _reduce_outstanding(self, loan: Loan, amount: Decimal) -> None:
        loan.outstanding_principal = max(ZERO, to_money(loan.outstanding_principal - amount))
        if loan.outstanding_principal == 0 and loan.status != LoanStatus.CLOSED:
            loan.status = LoanStatus.CLOSED
            loan_closed_counter.inc()
            log_loan_event("close", loan.id)
