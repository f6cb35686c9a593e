"""Credit card billing manager - charges, payments, statements and statement status"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from household_ledger.config import settings
from household_ledger.domain.billing import accrue_interest, billing_cycle, compute_statement, summarize_cycle
from household_ledger.domain.exceptions import (
    ConflictError,
    DuplicateStatementError,
    InsufficientFundsError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from household_ledger.domain.models import (
    AccountKind,
    CardStatus,
    PaymentType,
    StatementStatus,
    TransactionKind,
)
from household_ledger.infrastructure.database.models import (
    CreditCard,
    CreditCardPayment,
    CreditCardStatement,
    LedgerTransaction,
)
from household_ledger.infrastructure.database.repositories import CreditCardRepository
from household_ledger.infrastructure.database.unit_of_work import UnitOfWork
from household_ledger.infrastructure.observability.logging import log_card_event
from household_ledger.infrastructure.observability.metrics import (
    card_payment_counter,
    record_card_charge,
    statement_counter,
)
from household_ledger.services.ledger import LedgerPoster, RefreshHook, positive_amount


class CreditCardBillingManager:
    """
    Owns the CreditCard / CreditCardStatement / CreditCardPayment lifecycle.

    Statement state machine: OPEN -> OVERDUE once the due date passes,
    OPEN | OVERDUE -> PAID on explicit settlement. Payments are attached to the
    oldest unpaid statement but never move it to PAID on their own: the
    threshold for automatic settlement is not defined.
    """

    def __init__(self, uow: UnitOfWork, household_id: str, refresh_hook: Optional[RefreshHook] = None):
        self.uow = uow
        self.household_id = household_id
        self.ledger = LedgerPoster(uow, household_id, refresh_hook)
        self.cards = CreditCardRepository(uow.db)

    def get(self, card_id: uuid.UUID) -> CreditCard:
        card = self.cards.get(self.household_id, card_id)
        if card is None:
            raise NotFoundError("Credit card not found")
        return card

    def list(self) -> List[CreditCard]:
        return self.cards.list(self.household_id)

    def statements(self, card_id: uuid.UUID) -> List[CreditCardStatement]:
        return self.cards.statements(self.get(card_id).id)

    def payments(self, card_id: uuid.UUID) -> List[CreditCardPayment]:
        return self.cards.payments(self.get(card_id).id)

    def payments_applied(self, statement: CreditCardStatement) -> Decimal:
        """Cumulative payments attached to a statement"""
        return self.cards.payments_applied(statement.id)

    def create_card(
        self,
        name: str,
        credit_limit: Decimal,
        billing_day: int,
        due_days: int,
        apr: Decimal,
        minimum_due_percent: Decimal | None = None,
        issuer: str | None = None,
        currency: str = "INR",
        owner_id: str | None = None,
    ) -> CreditCard:
        """Create the CREDIT_CARD account and its card terms together; APR is stored monthly"""
        credit_limit = positive_amount(credit_limit)
        if not 1 <= billing_day <= 31:
            raise ValidationError("Billing cycle day must be between 1 and 31")
        if due_days < 0:
            raise ValidationError("Due days cannot be negative")
        apr = Decimal(str(apr))
        if apr < 0:
            raise ValidationError("APR cannot be negative")
        if minimum_due_percent is None:
            minimum_due_percent = settings.default_minimum_due_percent
        minimum_due_percent = Decimal(str(minimum_due_percent))
        if not 0 <= minimum_due_percent <= 100:
            raise ValidationError("Minimum due percent must be between 0 and 100")

        with self.uow:
            account = self.ledger.accounts.create(
                self.household_id, name, AccountKind.CREDIT_CARD, currency, owner_id
            )
            card = self.cards.add(
                CreditCard(
                    household_id=self.household_id,
                    account_id=account.id,
                    issuer=issuer,
                    credit_limit=credit_limit,
                    billing_cycle_start_day=billing_day,
                    due_days=due_days,
                    interest_rate_monthly=apr / 12,
                    minimum_due_percent=minimum_due_percent,
                    outstanding_amount=Decimal("0.00"),
                    status=CardStatus.ACTIVE,
                )
            )

        log_card_event("create", card.id, credit_limit=credit_limit)
        return card

    def charge(
        self,
        card_id: uuid.UUID,
        amount: Decimal,
        category_id: uuid.UUID | None,
        txn_date: date,
        description: str | None = None,
    ) -> LedgerTransaction:
        """
        Post a card spend as an EXPENSE on the card account.

        Raises:
            LimitExceededError: outstanding + amount would exceed the credit limit
        """
        amount = positive_amount(amount)

        with self.uow:
            account, card = self._lock_card(card_id)
            if card.status != CardStatus.ACTIVE:
                raise ValidationError("Credit card is not active")
            self.ledger.ensure_category(category_id)

            if card.outstanding_amount + amount > card.credit_limit:
                record_card_charge(False)
                raise LimitExceededError("Transaction exceeds credit limit")

            transaction = self.ledger.post_locked(
                account,
                TransactionKind.EXPENSE,
                amount,
                txn_date,
                category_id=category_id,
                description=description,
            )

        record_card_charge(True)
        log_card_event("charge", card.id, amount=amount, transaction_id=transaction.id)
        return transaction

    def apply_payment(
        self,
        card_id: uuid.UUID,
        amount: Decimal,
        source_account_id: uuid.UUID,
        payment_date: date,
        payment_type: PaymentType | None = None,
    ) -> CreditCardPayment:
        """
        Pay the card from another account through a linked transfer and attach
        the payment to the oldest OPEN or OVERDUE statement (by due date).

        Raises:
            InsufficientFundsError: source balance below the amount
        """
        amount = positive_amount(amount)
        try:
            payment_type = PaymentType(payment_type or PaymentType.PARTIAL)
        except ValueError as e:
            raise ValidationError(f"Unknown payment type: {payment_type!r}") from e

        card = self.get(card_id)
        if source_account_id == card.account_id:
            raise ValidationError("A card cannot pay itself")

        with self.uow:
            locked = {
                account.id: account
                for account in self.ledger.accounts.get_many_for_update(
                    self.household_id, [source_account_id, card.account_id]
                )
            }
            source = locked.get(source_account_id)
            if source is None:
                raise NotFoundError("Source account not found")
            card_account = locked[card.account_id]
            card = self.cards.get(self.household_id, card.id, for_update=True)

            if source.currency != card_account.currency:
                raise ValidationError("Source account currency does not match the card")
            if source.balance < amount:
                raise InsufficientFundsError("Insufficient funds in source account")

            _, credit = self.ledger.transfer_locked(
                source,
                card_account,
                amount,
                payment_date,
                description=f"Payment to {card.issuer or 'Credit Card'}",
            )

            statement = self.cards.oldest_unpaid_statement(card.id)
            payment = self.cards.add_payment(
                CreditCardPayment(
                    credit_card_id=card.id,
                    statement_id=statement.id if statement else None,
                    amount=amount,
                    payment_date=payment_date,
                    payment_type=payment_type,
                    transaction_id=credit.id,
                )
            )

        card_payment_counter.labels(payment_type=payment_type.value).inc()
        log_card_event("payment", card.id, amount=amount, statement_id=payment.statement_id)
        return payment

    def generate_statement(self, card_id: uuid.UUID, as_of: date) -> CreditCardStatement:
        """
        Close the billing cycle ending on the latest billing day on or before ``as_of``.

        Raises:
            DuplicateStatementError: a statement for this cycle already exists
            ConflictError: a later cycle has already been billed
        """
        with self.uow:
            card = self.cards.get(self.household_id, card_id, for_update=True)
            if card is None:
                raise NotFoundError("Credit card not found")

            cycle = billing_cycle(card.billing_cycle_start_day, as_of)
            previous = self.cards.latest_statement(card.id)
            if previous is not None and previous.cycle_end == cycle.cycle_end:
                raise DuplicateStatementError(f"Statement for cycle ending {cycle.cycle_end} already exists")
            if previous is not None and previous.cycle_end > cycle.cycle_end:
                raise ConflictError(f"A later cycle ending {previous.cycle_end} is already billed")

            transactions = self.ledger.transactions.in_range(card.account_id, cycle.cycle_start, cycle.cycle_end)
            spends, payments = summarize_cycle(transactions, cycle)
            opening = previous.closing_balance if previous is not None else Decimal("0")
            interest = accrue_interest(opening, card.interest_rate_monthly, cycle)
            figures = compute_statement(
                opening,
                spends,
                payments,
                interest,
                card.minimum_due_percent,
                cycle.cycle_end,
                card.due_days,
            )

            statement = self.cards.add_statement(
                CreditCardStatement(
                    credit_card_id=card.id,
                    cycle_start=cycle.cycle_start,
                    cycle_end=cycle.cycle_end,
                    statement_date=as_of,
                    opening_balance=figures.opening_balance,
                    total_spends=figures.total_spends,
                    total_payments=figures.total_payments,
                    interest_charged=figures.interest_charged,
                    closing_balance=figures.closing_balance,
                    minimum_due=figures.minimum_due,
                    due_date=figures.due_date,
                    status=StatementStatus.OPEN,
                )
            )

        statement_counter.inc()
        log_card_event(
            "statement",
            card.id,
            cycle_end=statement.cycle_end,
            closing_balance=statement.closing_balance,
        )
        return statement

    def refresh_statement_status(self, card_id: uuid.UUID, as_of: date) -> List[CreditCardStatement]:
        """Move OPEN statements whose due date is before ``as_of`` to OVERDUE"""
        with self.uow:
            card = self.cards.get(self.household_id, card_id, for_update=True)
            if card is None:
                raise NotFoundError("Credit card not found")
            overdue = self.cards.open_statements_due_before(card.id, as_of)
            for statement in overdue:
                statement.status = StatementStatus.OVERDUE
            self.uow.db.flush()

        for statement in overdue:
            log_card_event("overdue", card.id, statement_id=statement.id)
        return overdue

    def mark_statement_paid(self, card_id: uuid.UUID, statement_id: uuid.UUID) -> CreditCardStatement:
        """Operator settlement of an OPEN or OVERDUE statement"""
        with self.uow:
            card = self.cards.get(self.household_id, card_id, for_update=True)
            if card is None:
                raise NotFoundError("Credit card not found")
            statement = self.cards.get_statement(card.id, statement_id)
            if statement is None:
                raise NotFoundError("Statement not found")
            if statement.status == StatementStatus.PAID:
                raise ValidationError("Statement is already paid")
            statement.status = StatementStatus.PAID
            self.uow.db.flush()

        log_card_event("settle", card.id, statement_id=statement.id)
        return statement

    def _lock_card(self, card_id: uuid.UUID):
        """Lock the card account before the card, the same order postings use"""
        card = self.get(card_id)
        account = self.ledger.accounts.get(self.household_id, card.account_id, for_update=True)
        if account is None:
            raise NotFoundError("Credit card account not found")
        card = self.cards.get(self.household_id, card.id, for_update=True)
        return account, card
