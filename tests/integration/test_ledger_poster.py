"""Integration tests for postings, reversals, transfers and the unit of work"""

import pytest
import uuid
from datetime import date
from decimal import Decimal
from sqlalchemy.exc import OperationalError
from household_ledger.domain.exceptions import ConflictError, NotFoundError, ValidationError
from household_ledger.domain.models import AccountKind, TransactionKind
from household_ledger.infrastructure.database.models import Account, LedgerTransaction
from household_ledger.infrastructure.database.repositories import CategoryRepository
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.services.ledger import LedgerPoster, positive_amount


def assert_balance_matches_ledger(ledger: LedgerPoster, account):
    assert account.balance == ledger.transactions.signed_total(account.id)


def test_opening_balance_is_posted(ledger, bank_account):
    assert bank_account.balance == Decimal("500000.00")
    assert len(ledger.transactions.list(ledger.household_id, account_id=bank_account.id)) == 1
    assert_balance_matches_ledger(ledger, bank_account)


def test_account_without_opening_balance_has_no_transactions(ledger):
    account = ledger.open_account("Wallet", AccountKind.CASH_RESERVE)

    assert account.balance == Decimal("0.00")
    assert ledger.transactions.list(ledger.household_id, account_id=account.id) == []


def test_post_expense_and_income_move_balance(ledger, bank_account):
    ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("250.50"), date(2024, 2, 3))
    ledger.post(bank_account.id, TransactionKind.INCOME, Decimal("1000"), date(2024, 2, 4))

    assert bank_account.balance == Decimal("500749.50")
    assert_balance_matches_ledger(ledger, bank_account)


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), "abc"])
def test_post_rejects_non_positive_amount(ledger, bank_account, amount):
    with pytest.raises(ValidationError):
        ledger.post(bank_account.id, TransactionKind.EXPENSE, amount, date(2024, 2, 3))

    assert bank_account.balance == Decimal("500000.00")


def test_post_rejects_unknown_kind(ledger, bank_account):
    with pytest.raises(ValidationError):
        ledger.post(bank_account.id, "REFUND", Decimal("10"), date(2024, 2, 3))


def test_post_with_category(ledger, bank_account, db):
    category = CategoryRepository(db).get_or_create(ledger.household_id, "Groceries")
    db.commit()

    transaction = ledger.post(
        bank_account.id, TransactionKind.EXPENSE, Decimal("80"), date(2024, 2, 3), category_id=category.id
    )

    assert transaction.category_id == category.id


def test_post_rejects_category_of_another_household(ledger, bank_account, db, other_household_id):
    category = CategoryRepository(db).get_or_create(other_household_id, "Groceries")
    db.commit()

    with pytest.raises(NotFoundError):
        ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("80"), date(2024, 2, 3), category_id=category.id)


def test_post_to_other_household_account_is_not_found(uow, bank_account, other_household_id):
    outsider = LedgerPoster(uow, other_household_id)

    with pytest.raises(NotFoundError):
        outsider.post(bank_account.id, TransactionKind.EXPENSE, Decimal("10"), date(2024, 2, 3))


def test_reverse_restores_balance(ledger, bank_account, db):
    transaction = ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("400"), date(2024, 2, 3))
    transaction_id = transaction.id

    removed = ledger.reverse(transaction_id)

    assert removed == [transaction_id]
    assert bank_account.balance == Decimal("500000.00")
    assert db.get(LedgerTransaction, transaction_id) is None
    assert_balance_matches_ledger(ledger, bank_account)


def test_reverse_unknown_transaction(ledger):
    with pytest.raises(NotFoundError):
        ledger.reverse(uuid.uuid4())


def test_transfer_posts_linked_legs(ledger, bank_account):
    savings = ledger.open_account("Savings", AccountKind.CASH_RESERVE)

    debit, credit = ledger.transfer(bank_account.id, savings.id, Decimal("15000"), date(2024, 2, 10))

    assert debit.kind == TransactionKind.EXPENSE
    assert credit.kind == TransactionKind.INCOME
    assert debit.linked_transaction_id == credit.id
    assert credit.linked_transaction_id == debit.id
    assert bank_account.balance == Decimal("485000.00")
    assert savings.balance == Decimal("15000.00")


def test_reversing_one_transfer_leg_reverses_both(ledger, bank_account):
    savings = ledger.open_account("Savings", AccountKind.CASH_RESERVE)
    debit, credit = ledger.transfer(bank_account.id, savings.id, Decimal("15000"), date(2024, 2, 10))
    debit_id, credit_id = debit.id, credit.id

    removed = ledger.reverse(credit_id)

    assert set(removed) == {debit_id, credit_id}
    assert bank_account.balance == Decimal("500000.00")
    assert savings.balance == Decimal("0.00")


def test_transfer_to_same_account_rejected(ledger, bank_account):
    with pytest.raises(ValidationError):
        ledger.transfer(bank_account.id, bank_account.id, Decimal("10"), date(2024, 2, 10))


def test_transfer_between_currencies_rejected(ledger, bank_account):
    usd = ledger.open_account("USD Account", AccountKind.BANK, currency="USD")

    with pytest.raises(ValidationError):
        ledger.transfer(bank_account.id, usd.id, Decimal("10"), date(2024, 2, 10))

    assert bank_account.balance == Decimal("500000.00")


def test_explicit_id_replay_is_idempotent(ledger, bank_account):
    transaction_id = uuid.uuid4()

    first = ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("99"), date(2024, 2, 3), explicit_id=transaction_id)
    second = ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("99"), date(2024, 2, 3), explicit_id=transaction_id)

    assert first.id == second.id == transaction_id
    assert bank_account.balance == Decimal("499901.00")


def test_explicit_id_reuse_for_different_posting_conflicts(ledger, bank_account):
    transaction_id = uuid.uuid4()
    ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("99"), date(2024, 2, 3), explicit_id=transaction_id)

    with pytest.raises(ConflictError):
        ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("100"), date(2024, 2, 3), explicit_id=transaction_id)


def test_refresh_hook_runs_once_per_period_after_commit(ledger, bank_account, refreshes):
    refreshes.clear()
    savings = ledger.open_account("Savings", AccountKind.CASH_RESERVE)

    ledger.transfer(bank_account.id, savings.id, Decimal("100"), date(2024, 3, 20))

    assert refreshes == [(ledger.household_id, date(2024, 3, 1))]


def test_refresh_hook_not_called_when_posting_fails(ledger, refreshes):
    refreshes.clear()

    with pytest.raises(NotFoundError):
        ledger.post(uuid.uuid4(), TransactionKind.EXPENSE, Decimal("10"), date(2024, 3, 20))

    assert refreshes == []


def test_unit_of_work_drops_callbacks_on_rollback(db):
    uow = UnitOfWork(db)
    calls = []

    with pytest.raises(RuntimeError):
        with uow:
            uow.after_commit(calls.append, "refresh")
            raise RuntimeError("boom")

    assert calls == []


def test_unit_of_work_only_outer_scope_commits(db):
    uow = UnitOfWork(db)
    calls = []

    with uow:
        with uow:
            uow.after_commit(calls.append, "inner")
        assert calls == []
    assert calls == ["inner"]


def test_unit_of_work_failed_callback_does_not_raise(db):
    uow = UnitOfWork(db)
    calls = []

    def broken():
        raise RuntimeError("analytics down")

    with uow:
        uow.after_commit(broken)
        uow.after_commit(calls.append, "next")

    assert calls == ["next"]


@pytest.mark.parametrize("amount", [Decimal("0.005"), Decimal("10.001"), "12.345"])
def test_post_rejects_sub_cent_amount(ledger, bank_account, amount):
    with pytest.raises(ValidationError):
        ledger.post(bank_account.id, TransactionKind.EXPENSE, amount, date(2024, 2, 3))

    assert bank_account.balance == Decimal("500000.00")


def test_positive_amount_keeps_whole_cents():
    assert positive_amount("10.1") == Decimal("10.10")
    assert positive_amount(Decimal("7")) == Decimal("7.00")


def test_explicit_id_of_other_household_is_not_found(ledger, bank_account, uow, other_household_id):
    transaction_id = uuid.uuid4()
    ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("99"), date(2024, 2, 3), explicit_id=transaction_id)
    outsider = LedgerPoster(uow, other_household_id)
    own = outsider.open_account("Outsider Account", AccountKind.BANK)

    with pytest.raises(NotFoundError):
        outsider.post(own.id, TransactionKind.EXPENSE, Decimal("99"), date(2024, 2, 3), explicit_id=transaction_id)

    assert own.balance == Decimal("0.00")


def test_concurrent_reversal_is_applied_once(ledger, bank_account, second_db, monkeypatch):
    """The reversal that loses the race finds the transaction gone once it holds the account lock"""
    transaction = ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("400"), date(2024, 2, 3))
    transaction_id = transaction.id
    racing = LedgerPoster(UnitOfWork(second_db), ledger.household_id)
    lock_accounts = racing.accounts.get_many_for_update

    def reverse_elsewhere_then_lock(household_id, account_ids):
        ledger.reverse(transaction_id)
        return lock_accounts(household_id, account_ids)

    monkeypatch.setattr(racing.accounts, "get_many_for_update", reverse_elsewhere_then_lock)

    with pytest.raises(NotFoundError):
        racing.reverse(transaction_id)

    assert bank_account.balance == Decimal("500000.00")
    assert_balance_matches_ledger(ledger, bank_account)


def test_stale_account_write_conflicts(ledger, bank_account, second_db):
    """A write based on an outdated account version is rejected at commit"""
    stale = second_db.get(Account, bank_account.id)
    stale_balance = stale.balance
    ledger.post(bank_account.id, TransactionKind.EXPENSE, Decimal("100"), date(2024, 2, 3))

    with pytest.raises(ConflictError):
        with UnitOfWork(second_db):
            stale.balance = stale_balance + Decimal("1")

    assert bank_account.balance == Decimal("499900.00")
    assert_balance_matches_ledger(ledger, bank_account)


class LockNotAvailable(Exception):
    pgcode = "55P03"


def test_lock_timeout_becomes_conflict(db):
    with pytest.raises(ConflictError):
        with UnitOfWork(db):
            raise OperationalError("SELECT 1 FOR UPDATE", {}, LockNotAvailable("lock timeout"))


def test_other_operational_errors_propagate(db):
    with pytest.raises(OperationalError):
        with UnitOfWork(db):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


def test_rename_account_keeps_balance(ledger, bank_account):
    renamed = ledger.rename_account(bank_account.id, "  Household Salary  ")

    assert renamed.name == "Household Salary"
    assert renamed.balance == Decimal("500000.00")


def test_rename_account_rejects_empty_name(ledger, bank_account):
    with pytest.raises(ValidationError):
        ledger.rename_account(bank_account.id, "   ")


def test_rename_other_household_account_is_not_found(uow, bank_account, other_household_id):
    with pytest.raises(NotFoundError):
        LedgerPoster(uow, other_household_id).rename_account(bank_account.id, "Mine now")


def test_delete_unused_account(ledger, db):
    account = ledger.open_account("Spare", AccountKind.CASH_RESERVE)
    account_id = account.id

    ledger.delete_account(account_id)

    assert db.get(Account, account_id) is None


def test_delete_account_with_transactions_conflicts(ledger, bank_account):
    with pytest.raises(ConflictError):
        ledger.delete_account(bank_account.id)

    assert ledger.accounts.get(ledger.household_id, bank_account.id) is not None


def test_delete_account_linked_to_loan_conflicts(ledger, loan_service):
    account = ledger.open_account("Loan Account", AccountKind.BANK)
    loan_service.originate(Decimal("10000"), Decimal("10"), 6, account.id, date(2024, 1, 15))

    with pytest.raises(ConflictError):
        ledger.delete_account(account.id)


def test_delete_credit_card_account_conflicts(ledger, card_manager):
    card = card_manager.create_card("Card", Decimal("1000"), billing_day=5, due_days=15, apr=Decimal("24"))

    with pytest.raises(ConflictError):
        ledger.delete_account(card.account_id)


def test_delete_other_household_account_is_not_found(uow, bank_account, other_household_id):
    with pytest.raises(NotFoundError):
        LedgerPoster(uow, other_household_id).delete_account(bank_account.id)
