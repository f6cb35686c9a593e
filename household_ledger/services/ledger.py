"""Ledger poster - the single entry point for balance-affecting writes"""

import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

from household_ledger.domain.amortization import to_money
from household_ledger.domain.exceptions import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from household_ledger.domain.models import AccountKind, TransactionKind
from household_ledger.infrastructure.database.models import Account, Category, LedgerTransaction
from household_ledger.infrastructure.database.repositories import (
    AccountRepository,
    CreditCardRepository,
    LoanRepository,
    TransactionRepository,
)
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.infrastructure.observability.logging import log_posting
from household_ledger.infrastructure.observability.metrics import (
    posting_counter,
    reversal_counter,
    transfer_counter,
)
from household_ledger.utils.date_utils import month_start

# Called after commit with (household_id, first day of the affected month)
RefreshHook = Callable[[str, date], None]


def positive_amount(amount) -> Decimal:
    """Coerce to a Decimal of currency minor units; rejects zero, negatives and sub-cent precision"""
    try:
        raw = Decimal(str(amount))
        value = to_money(raw)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if value != raw:
        raise ValidationError("Amount cannot have more than two decimal places")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


def coerce_kind(kind) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown transaction kind: {kind!r}") from e


def signed_amount(transaction: LedgerTransaction) -> Decimal:
    """+amount for INCOME, -amount for EXPENSE"""
    if transaction.kind == TransactionKind.INCOME:
        return transaction.amount
    return -transaction.amount


class LedgerPoster:
    """
    Posts, reverses and transfers transactions for one household.

    Each write inserts or deletes ledger rows and applies the matching balance
    delta inside one unit of work. Postings on a CREDIT_CARD account also keep
    the card's outstanding amount equal to the negated account balance and
    enforce its credit limit.
    """

    def __init__(self, uow: UnitOfWork, household_id: str, refresh_hook: Optional[RefreshHook] = None):
        self.uow = uow
        self.db = uow.db
        self.household_id = household_id
        self.refresh_hook = refresh_hook
        self.accounts = AccountRepository(self.db)
        self.transactions = TransactionRepository(self.db)
        self.cards = CreditCardRepository(self.db)
        self.loans = LoanRepository(self.db)

    def open_account(
        self,
        name: str,
        kind: AccountKind,
        currency: str = "INR",
        owner_id: str | None = None,
        opening_balance: Decimal = Decimal("0"),
        as_of: date | None = None,
    ) -> Account:
        """Create an account; a non-zero opening balance is posted as its first transaction"""
        with self.uow:
            account = self.accounts.create(self.household_id, name, AccountKind(kind), currency, owner_id)
            opening_balance = to_money(Decimal(str(opening_balance)))
            if opening_balance != 0:
                kind_for_opening = TransactionKind.INCOME if opening_balance > 0 else TransactionKind.EXPENSE
                self._post_locked(
                    account,
                    kind_for_opening,
                    abs(opening_balance),
                    as_of or date.today(),
                    description="Opening balance",
                )
        return account

    def rename_account(self, account_id: uuid.UUID, name: str) -> Account:
        """Only the name is editable; the balance moves through postings alone"""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name cannot be empty")

        with self.uow:
            account = self.accounts.get(self.household_id, account_id, for_update=True)
            if account is None:
                raise NotFoundError("Account not found")
            account.name = name
            self.db.flush()
        return account

    def delete_account(self, account_id: uuid.UUID) -> None:
        """
        Delete an account nothing refers to.

        Raises:
            NotFoundError: account outside the household
            ConflictError: transactions, a loan or a credit card still reference it
        """
        with self.uow:
            account = self.accounts.get(self.household_id, account_id, for_update=True)
            if account is None:
                raise NotFoundError("Account not found")
            if self.transactions.exists_for_account(account.id):
                raise ConflictError("Account has transactions and cannot be deleted")
            if self.loans.exists_for_account(account.id):
                raise ConflictError("Account is linked to a loan and cannot be deleted")
            if self.cards.get_by_account(account.id) is not None:
                raise ConflictError("Account belongs to a credit card and cannot be deleted")
            self.accounts.delete(account)

    def post(
        self,
        account_id: uuid.UUID,
        kind: TransactionKind,
        amount: Decimal,
        txn_date: date,
        category_id: uuid.UUID | None = None,
        description: str | None = None,
        explicit_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> LedgerTransaction:
        """
        Post an INCOME or EXPENSE transaction and apply its signed delta.

        A caller-supplied ``explicit_id`` makes retries idempotent: replaying the
        same posting returns the stored row without touching the balance.

        Raises:
            ValidationError: non-positive amount or unknown kind
            NotFoundError: account or category outside the household
            ConflictError: ``explicit_id`` already used for a different posting
            LimitExceededError: expense would push a credit card past its limit
        """
        kind = coerce_kind(kind)
        amount = positive_amount(amount)

        with self.uow:
            if explicit_id is not None:
                existing = self.db.get(LedgerTransaction, explicit_id)
                if existing is not None:
                    return self._replay(existing, account_id, kind, amount)

            account = self.accounts.get(self.household_id, account_id, for_update=True)
            if account is None:
                raise NotFoundError("Account not found")
            self.ensure_category(category_id)

            transaction = self._post_locked(
                account,
                kind,
                amount,
                txn_date,
                category_id=category_id,
                description=description,
                transaction_id=explicit_id,
                created_by=created_by,
            )
        return transaction

    def reverse(self, transaction_id: uuid.UUID) -> List[uuid.UUID]:
        """
        Delete a transaction and apply the inverse delta. Both legs of a
        transfer are reversed together. Returns the ids removed.

        Raises:
            NotFoundError: transaction outside the household
            ConflictError: transaction settles a loan EMI or a card payment
        """
        with self.uow:
            transaction = self.transactions.get(self.household_id, transaction_id)
            if transaction is None:
                raise NotFoundError("Transaction not found")

            legs = [transaction]
            if transaction.linked_transaction_id is not None:
                linked = self.transactions.get(self.household_id, transaction.linked_transaction_id)
                if linked is not None:
                    legs.append(linked)

            for leg in legs:
                self._check_reversible(leg)

            locked = {
                account.id: account
                for account in self.accounts.get_many_for_update(self.household_id, [leg.account_id for leg in legs])
            }
            # A concurrent reversal may have removed the legs while the accounts were being locked
            legs = [self.transactions.get(self.household_id, leg.id, for_update=True) for leg in legs]
            if any(leg is None for leg in legs):
                raise NotFoundError("Transaction not found")

            removed = []
            for leg in legs:
                account = locked[leg.account_id]
                delta = -signed_amount(leg)
                self._sync_card_outstanding(account, delta, enforce_limit=False)
                account.balance = to_money(account.balance + delta)

                removed.append(leg.id)
                reversal_counter.inc()
                log_posting("reverse", self.household_id, account.id, leg.id, leg.kind.value, leg.amount)
                self._schedule_refresh(leg.date)
                self.transactions.delete(leg)

        return removed

    def transfer(
        self,
        from_account_id: uuid.UUID,
        to_account_id: uuid.UUID,
        amount: Decimal,
        txn_date: date,
        description: str | None = None,
        created_by: str | None = None,
    ) -> Tuple[LedgerTransaction, LedgerTransaction]:
        """Post a linked EXPENSE on the source and INCOME on the destination"""
        amount = positive_amount(amount)
        if from_account_id == to_account_id:
            raise ValidationError("Cannot transfer to the same account")

        with self.uow:
            locked = {
                account.id: account
                for account in self.accounts.get_many_for_update(self.household_id, [from_account_id, to_account_id])
            }
            source = locked.get(from_account_id)
            destination = locked.get(to_account_id)
            if source is None or destination is None:
                raise NotFoundError("Account not found")
            if source.currency != destination.currency:
                raise ValidationError("Transfers between different currencies are not supported")

            debit, credit = self.transfer_locked(source, destination, amount, txn_date, description, created_by)
        return debit, credit

    def transfer_locked(
        self,
        source: Account,
        destination: Account,
        amount: Decimal,
        txn_date: date,
        description: str | None = None,
        created_by: str | None = None,
    ) -> Tuple[LedgerTransaction, LedgerTransaction]:
        """Transfer between accounts the caller already holds locked in this unit of work"""
        debit = self._post_locked(
            source,
            TransactionKind.EXPENSE,
            amount,
            txn_date,
            description=description or f"Transfer to {destination.name}",
            created_by=created_by,
        )
        credit = self._post_locked(
            destination,
            TransactionKind.INCOME,
            amount,
            txn_date,
            description=description or f"Transfer from {source.name}",
            linked_transaction_id=debit.id,
            created_by=created_by,
        )
        debit.linked_transaction_id = credit.id
        self.db.flush()

        transfer_counter.inc()
        return debit, credit

    def post_locked(self, account: Account, kind: TransactionKind, amount: Decimal, txn_date: date, **fields) -> LedgerTransaction:
        """Post on an account the caller already holds locked in this unit of work"""
        return self._post_locked(account, coerce_kind(kind), positive_amount(amount), txn_date, **fields)

    def _post_locked(
        self,
        account: Account,
        kind: TransactionKind,
        amount: Decimal,
        txn_date: date,
        category_id: uuid.UUID | None = None,
        description: str | None = None,
        transaction_id: uuid.UUID | None = None,
        linked_transaction_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> LedgerTransaction:
        delta = amount if kind == TransactionKind.INCOME else -amount
        self._sync_card_outstanding(account, delta, enforce_limit=True)

        transaction = self.transactions.add(
            LedgerTransaction(
                id=transaction_id or uuid.uuid4(),
                account_id=account.id,
                category_id=category_id,
                kind=kind,
                amount=amount,
                date=txn_date,
                description=description,
                linked_transaction_id=linked_transaction_id,
                currency=account.currency,
                created_by=created_by,
            )
        )
        account.balance = to_money(account.balance + delta)
        self.db.flush()

        posting_counter.labels(kind=kind.value).inc()
        log_posting("post", self.household_id, account.id, transaction.id, kind.value, amount)
        self._schedule_refresh(txn_date)
        return transaction

    def _sync_card_outstanding(self, account: Account, delta: Decimal, enforce_limit: bool) -> None:
        """Mirror a CREDIT_CARD account delta onto the card's outstanding amount"""
        if account.kind != AccountKind.CREDIT_CARD:
            return
        card = self.cards.get_by_account(account.id, for_update=True)
        if card is None:
            return

        outstanding = card.outstanding_amount - delta
        if enforce_limit and delta < 0 and outstanding > card.credit_limit:
            raise LimitExceededError(
                f"Charge of {-delta} exceeds available credit {card.credit_limit - card.outstanding_amount}"
            )
        card.outstanding_amount = to_money(outstanding)

    def _replay(
        self,
        existing: LedgerTransaction,
        account_id: uuid.UUID,
        kind: TransactionKind,
        amount: Decimal,
    ) -> LedgerTransaction:
        owner = self.accounts.get(self.household_id, existing.account_id)
        if owner is None:
            raise NotFoundError("Transaction id is not available")
        if existing.account_id != account_id or existing.kind != kind or existing.amount != amount:
            raise ConflictError("Transaction id already used for a different posting")
        return existing

    def ensure_category(self, category_id: uuid.UUID | None) -> None:
        if category_id is None:
            return
        category = self.db.get(Category, category_id)
        if category is None or category.household_id != self.household_id:
            raise NotFoundError("Category not found")

    def _check_reversible(self, transaction: LedgerTransaction) -> None:
        if self.loans.emi_for_transaction(transaction.id) is not None:
            raise ConflictError("Transaction settles a loan EMI and cannot be reversed")
        if self.cards.payment_for_transaction(transaction.id) is not None:
            raise ConflictError("Transaction settles a credit card payment and cannot be reversed")

    def _schedule_refresh(self, txn_date: date) -> None:
        if self.refresh_hook is not None:
            self.uow.after_commit(self.refresh_hook, self.household_id, month_start(txn_date))
