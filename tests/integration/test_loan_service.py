"""Integration tests for loan origination, EMI payment and prepayment"""

import pytest
import uuid
from datetime import date
from decimal import Decimal
from household_ledger.config import settings
from household_ledger.domain.exceptions import ConflictError, LimitExceededError, NotFoundError, ValidationError
from household_ledger.domain.models import EmiStatus, LoanStatus, PrepaymentStrategy
from household_ledger.infrastructure.database.models import LedgerTransaction, LoanPrepayment
from household_ledger.services.loans import LoanService


@pytest.fixture
def loan(loan_service, bank_account):
    """120000 at 12% over 12 months, first EMI on 2024-02-15"""
    return loan_service.originate(
        Decimal("120000"), Decimal("12"), 12, bank_account.id, date(2024, 1, 15), name="Car Loan"
    )


def pending(loan_service, loan):
    return loan_service.loans.pending_emis(loan.id)


def test_originate_creates_full_schedule(loan):
    assert loan.status == LoanStatus.ACTIVE
    assert loan.emi_amount == Decimal("10661.85")
    assert loan.outstanding_principal == Decimal("120000.00")
    assert len(loan.emis) == 12
    assert loan.emis[0].due_date == date(2024, 2, 15)
    assert loan.emis[-1].due_date == date(2025, 1, 15)
    assert sum(emi.principal_component for emi in loan.emis) == Decimal("120000.00")


def test_originate_rejects_unknown_account(loan_service):
    with pytest.raises(NotFoundError):
        loan_service.originate(Decimal("1000"), Decimal("10"), 12, uuid.uuid4(), date(2024, 1, 1))


def test_originate_rejects_zero_tenure(loan_service, bank_account):
    with pytest.raises(ValidationError):
        loan_service.originate(Decimal("1000"), Decimal("10"), 0, bank_account.id, date(2024, 1, 1))


def test_pay_emi_posts_expense_and_reduces_principal(loan_service, loan, bank_account, db):
    emi = loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))

    assert emi.status == EmiStatus.PAID
    assert emi.paid_date == date(2024, 2, 15)
    assert loan.outstanding_principal == Decimal("120000.00") - emi.principal_component
    assert bank_account.balance == Decimal("500000.00") - emi.total_amount

    transaction = db.get(LedgerTransaction, emi.transaction_id)
    assert transaction.amount == emi.total_amount
    assert transaction.category_id is not None


def test_pay_emi_twice_is_rejected_without_side_effects(loan_service, loan, bank_account, db):
    loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))
    balance = bank_account.balance
    outstanding = loan.outstanding_principal
    postings = db.query(LedgerTransaction).count()

    with pytest.raises(ValidationError):
        loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 16))

    assert bank_account.balance == balance
    assert loan.outstanding_principal == outstanding
    assert db.query(LedgerTransaction).count() == postings


def test_pay_unknown_emi(loan_service, loan):
    with pytest.raises(NotFoundError):
        loan_service.pay_emi(loan.id, 13)


def test_paying_every_emi_closes_loan(loan_service, loan):
    for number in range(1, 13):
        loan_service.pay_emi(loan.id, number, paid_on=date(2024, 1, 15))

    assert loan.outstanding_principal == Decimal("0.00")
    assert loan.status == LoanStatus.CLOSED


def test_emi_transaction_cannot_be_reversed(loan_service, loan):
    emi = loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))

    with pytest.raises(ConflictError):
        loan_service.ledger.reverse(emi.transaction_id)

    assert emi.status == EmiStatus.PAID


def test_prepay_reduce_tenure_keeps_emi_and_shortens_schedule(loan_service, loan):
    loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))
    before = len(pending(loan_service, loan))

    schedule = loan_service.prepay(loan.id, Decimal("20000"), date(2024, 2, 20), PrepaymentStrategy.REDUCE_TENURE)

    assert loan.emi_amount == Decimal("10661.85")
    assert len(schedule) < before
    assert len(pending(loan_service, loan)) == len(schedule)
    assert [emi.emi_number for emi in schedule] == list(range(2, 2 + len(schedule)))
    assert schedule[0].due_date == date(2024, 3, 15)
    assert sum(emi.principal_component for emi in schedule) == loan.outstanding_principal


def test_prepay_reduce_emi_keeps_count_and_lowers_emi(loan_service, loan):
    loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))
    before = len(pending(loan_service, loan))

    schedule = loan_service.prepay(loan.id, Decimal("20000"), date(2024, 2, 20), PrepaymentStrategy.REDUCE_EMI)

    assert len(schedule) == before
    assert loan.emi_amount < Decimal("10661.85")
    assert schedule[0].emi_number == 2
    assert schedule[-1].due_date == date(2025, 1, 15)
    assert sum(emi.principal_component for emi in schedule) == loan.outstanding_principal


def test_prepay_keeps_paid_history(loan_service, loan):
    paid = loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))
    paid_total = paid.total_amount

    loan_service.prepay(loan.id, Decimal("20000"), date(2024, 2, 20), PrepaymentStrategy.REDUCE_EMI)

    emi = loan_service.loans.get_emi(loan.id, 1)
    assert emi.status == EmiStatus.PAID
    assert emi.total_amount == paid_total


def test_prepay_records_audit_without_posting(loan_service, loan, bank_account, db):
    loan_service.prepay(loan.id, Decimal("5000"), date(2024, 1, 20), PrepaymentStrategy.REDUCE_EMI)

    prepayments = db.query(LoanPrepayment).filter(LoanPrepayment.loan_id == loan.id).all()
    assert len(prepayments) == 1
    assert prepayments[0].amount == Decimal("5000.00")
    assert loan.outstanding_principal == Decimal("115000.00")
    assert bank_account.balance == Decimal("500000.00")


def test_prepay_above_outstanding_is_rejected(loan_service, loan, db):
    with pytest.raises(LimitExceededError):
        loan_service.prepay(loan.id, Decimal("120000.01"), date(2024, 1, 20), PrepaymentStrategy.REDUCE_EMI)

    assert db.query(LoanPrepayment).count() == 0
    assert loan.outstanding_principal == Decimal("120000.00")
    assert len(pending(loan_service, loan)) == 12


def test_prepay_full_outstanding_closes_loan(loan_service, loan):
    schedule = loan_service.prepay(loan.id, Decimal("120000"), date(2024, 1, 20), PrepaymentStrategy.REDUCE_TENURE)

    assert schedule == []
    assert loan.status == LoanStatus.CLOSED
    assert pending(loan_service, loan) == []


def test_reduce_tenure_divergence_leaves_loan_untouched(loan_service, bank_account, db, monkeypatch):
    loan = loan_service.originate(Decimal("120000"), Decimal("12"), 12, bank_account.id, date(2024, 1, 15))
    monkeypatch.setattr(settings, "reduce_tenure_max_rows", 2)

    with pytest.raises(ValidationError):
        loan_service.prepay(loan.id, Decimal("1000"), date(2024, 1, 20), PrepaymentStrategy.REDUCE_TENURE)

    assert loan.outstanding_principal == Decimal("120000.00")
    assert db.query(LoanPrepayment).count() == 0


def test_loan_is_scoped_to_household(uow, loan, other_household_id):
    outsider = LoanService(uow, other_household_id)

    with pytest.raises(NotFoundError):
        outsider.get(loan.id)
    assert outsider.list() == []


def test_list_loans(loan_service, loan, household_id):
    assert [item.id for item in loan_service.list()] == [loan.id]
    assert loan_service.get(loan.id).household_id == household_id


def test_principal_is_conserved_across_payments_and_prepayments(loan_service, loan, db):
    loan_service.pay_emi(loan.id, 1, paid_on=date(2024, 2, 15))
    loan_service.prepay(loan.id, Decimal("15000"), date(2024, 2, 20), PrepaymentStrategy.REDUCE_EMI)
    loan_service.pay_emi(loan.id, 2, paid_on=date(2024, 3, 15))
    loan_service.prepay(loan.id, Decimal("7000"), date(2024, 3, 20), PrepaymentStrategy.REDUCE_TENURE)
    loan_service.pay_emi(loan.id, 3, paid_on=date(2024, 4, 15))

    detail = loan_service.get(loan.id)
    paid_principal = sum(emi.principal_component for emi in detail.emis if emi.status == EmiStatus.PAID)
    prepaid = sum(p.amount for p in detail.prepayments)

    assert detail.outstanding_principal + paid_principal + prepaid == Decimal("120000.00")
    assert sum(emi.principal_component for emi in detail.emis if emi.status == EmiStatus.PENDING) == detail.outstanding_principal
