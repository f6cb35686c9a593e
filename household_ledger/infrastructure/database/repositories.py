"""Data access layer; every lookup is scoped to the caller's household"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from household_ledger.domain.models import (
    AccountKind,
    EmiStatus,
    ScheduleRow,
    StatementStatus,
    TransactionKind,
)
from household_ledger.infrastructure.database.models import (
    Account,
    Category,
    CreditCard,
    CreditCardPayment,
    CreditCardStatement,
    LedgerTransaction,
    Loan,
    LoanEMI,
)


class AccountRepository:
    """Repository for accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        household_id: str,
        name: str,
        kind: AccountKind,
        currency: str = "INR",
        owner_id: str | None = None,
    ) -> Account:
        """Persist an empty account; balances only ever move through postings"""
        account = Account(
            household_id=household_id,
            owner_id=owner_id,
            name=name,
            kind=kind,
            currency=currency,
            balance=Decimal("0.00"),
        )
        self.db.add(account)
        self.db.flush()  # Get ID without committing
        return account

    def get(self, household_id: str, account_id: uuid.UUID, for_update: bool = False) -> Optional[Account]:
        query = self.db.query(Account).filter(Account.id == account_id, Account.household_id == household_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_many_for_update(self, household_id: str, account_ids: Iterable[uuid.UUID]) -> List[Account]:
        """Lock several accounts in id order so concurrent transfers cannot deadlock"""
        ordered = sorted(set(account_ids), key=str)
        return [
            account
            for account in (self.get(household_id, account_id, for_update=True) for account_id in ordered)
            if account is not None
        ]

    def list(self, household_id: str) -> List[Account]:
        return (
            self.db.query(Account)
            .filter(Account.household_id == household_id)
            .order_by(Account.created_at.desc())
            .all()
        )

    def delete(self, account: Account) -> None:
        self.db.delete(account)
        self.db.flush()


class TransactionRepository:
    """Repository for posted ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def get(
        self, household_id: str, transaction_id: uuid.UUID, for_update: bool = False
    ) -> Optional[LedgerTransaction]:
        query = (
            self.db.query(LedgerTransaction)
            .join(Account, LedgerTransaction.account_id == Account.id)
            .filter(LedgerTransaction.id == transaction_id, Account.household_id == household_id)
        )
        if for_update:
            query = query.with_for_update(of=LedgerTransaction).populate_existing()
        return query.first()

    def exists_for_account(self, account_id: uuid.UUID) -> bool:
        return self.db.query(LedgerTransaction.id).filter(LedgerTransaction.account_id == account_id).first() is not None

    def list(
        self,
        household_id: str,
        account_id: uuid.UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LedgerTransaction]:
        """Newest first"""
        query = (
            self.db.query(LedgerTransaction)
            .join(Account, LedgerTransaction.account_id == Account.id)
            .filter(Account.household_id == household_id)
        )
        if account_id is not None:
            query = query.filter(LedgerTransaction.account_id == account_id)
        return (
            query.order_by(LedgerTransaction.date.desc(), LedgerTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def in_range(self, account_id: uuid.UUID, start: date, end: date) -> List[LedgerTransaction]:
        """Transactions dated within [start, end], both ends inclusive"""
        return (
            self.db.query(LedgerTransaction)
            .filter(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.date >= start,
                LedgerTransaction.date <= end,
            )
            .all()
        )

    def signed_total(self, account_id: uuid.UUID) -> Decimal:
        """Sum of +INCOME / -EXPENSE amounts; equals the account balance"""
        signed = case(
            (LedgerTransaction.kind == TransactionKind.INCOME, LedgerTransaction.amount),
            else_=-LedgerTransaction.amount,
        )
        total = (
            self.db.query(func.coalesce(func.sum(signed), 0))
            .filter(LedgerTransaction.account_id == account_id)
            .scalar()
        )
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def delete(self, transaction: LedgerTransaction) -> None:
        self.db.delete(transaction)
        self.db.flush()


class CategoryRepository:
    """Minimal category directory: lookup-or-create by name"""

    def __init__(self, db: Session):
        self.db = db

    def get_or_create(
        self,
        household_id: str,
        name: str,
        kind: TransactionKind = TransactionKind.EXPENSE,
        color: str | None = None,
    ) -> Category:
        category = (
            self.db.query(Category)
            .filter(Category.household_id == household_id, Category.name == name)
            .first()
        )
        if category is None:
            category = Category(household_id=household_id, name=name, kind=kind, color=color)
            self.db.add(category)
            self.db.flush()
        return category


class LoanRepository:
    """Repository for loans, their installments and prepayments"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, loan: Loan) -> Loan:
        self.db.add(loan)
        self.db.flush()
        return loan

    def get(self, household_id: str, loan_id: uuid.UUID, for_update: bool = False) -> Optional[Loan]:
        query = self.db.query(Loan).filter(Loan.id == loan_id, Loan.household_id == household_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list(self, household_id: str) -> List[Loan]:
        return (
            self.db.query(Loan)
            .filter(Loan.household_id == household_id)
            .order_by(Loan.created_at.desc())
            .all()
        )

    def get_emi(self, loan_id: uuid.UUID, emi_number: int, for_update: bool = False) -> Optional[LoanEMI]:
        query = self.db.query(LoanEMI).filter(LoanEMI.loan_id == loan_id, LoanEMI.emi_number == emi_number)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def pending_emis(self, loan_id: uuid.UUID) -> List[LoanEMI]:
        return (
            self.db.query(LoanEMI)
            .filter(LoanEMI.loan_id == loan_id, LoanEMI.status == EmiStatus.PENDING)
            .order_by(LoanEMI.emi_number.asc())
            .all()
        )

    def add_emis(self, loan: Loan, rows: List[ScheduleRow]) -> List[LoanEMI]:
        """Bulk-create PENDING installments from a rounded schedule"""
        emis = [
            LoanEMI(
                loan_id=loan.id,
                emi_number=row.emi_number,
                due_date=row.due_date,
                principal_component=row.principal_component,
                interest_component=row.interest_component,
                total_amount=row.total_amount,
                status=EmiStatus.PENDING,
            )
            for row in rows
        ]
        self.db.add_all(emis)
        self.db.flush()
        return emis

    def delete_pending_emis(self, loan: Loan) -> int:
        """Remove the PENDING tail; executed immediately so renumbered rows can reuse the numbers"""
        deleted = (
            self.db.query(LoanEMI)
            .filter(LoanEMI.loan_id == loan.id, LoanEMI.status == EmiStatus.PENDING)
            .delete(synchronize_session="fetch")
        )
        self.db.expire(loan, ["emis"])
        return deleted

    def exists_for_account(self, account_id: uuid.UUID) -> bool:
        return self.db.query(Loan.id).filter(Loan.linked_account_id == account_id).first() is not None

    def emi_for_transaction(self, transaction_id: uuid.UUID) -> Optional[LoanEMI]:
        return self.db.query(LoanEMI).filter(LoanEMI.transaction_id == transaction_id).first()


class CreditCardRepository:
    """Repository for credit cards, statements and payments"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, card: CreditCard) -> CreditCard:
        self.db.add(card)
        self.db.flush()
        return card

    def get(self, household_id: str, card_id: uuid.UUID, for_update: bool = False) -> Optional[CreditCard]:
        query = self.db.query(CreditCard).filter(CreditCard.id == card_id, CreditCard.household_id == household_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_by_account(self, account_id: uuid.UUID, for_update: bool = False) -> Optional[CreditCard]:
        query = self.db.query(CreditCard).filter(CreditCard.account_id == account_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list(self, household_id: str) -> List[CreditCard]:
        return (
            self.db.query(CreditCard)
            .filter(CreditCard.household_id == household_id)
            .order_by(CreditCard.created_at.desc())
            .all()
        )

    def add_statement(self, statement: CreditCardStatement) -> CreditCardStatement:
        self.db.add(statement)
        self.db.flush()
        return statement

    def get_statement(self, card_id: uuid.UUID, statement_id: uuid.UUID) -> Optional[CreditCardStatement]:
        return (
            self.db.query(CreditCardStatement)
            .filter(CreditCardStatement.id == statement_id, CreditCardStatement.credit_card_id == card_id)
            .first()
        )

    def latest_statement(self, card_id: uuid.UUID) -> Optional[CreditCardStatement]:
        return (
            self.db.query(CreditCardStatement)
            .filter(CreditCardStatement.credit_card_id == card_id)
            .order_by(CreditCardStatement.cycle_end.desc())
            .first()
        )

    def statements(self, card_id: uuid.UUID, limit: int = 12) -> List[CreditCardStatement]:
        return (
            self.db.query(CreditCardStatement)
            .filter(CreditCardStatement.credit_card_id == card_id)
            .order_by(CreditCardStatement.cycle_end.desc())
            .limit(limit)
            .all()
        )

    def oldest_unpaid_statement(self, card_id: uuid.UUID) -> Optional[CreditCardStatement]:
        return (
            self.db.query(CreditCardStatement)
            .filter(
                CreditCardStatement.credit_card_id == card_id,
                CreditCardStatement.status.in_([StatementStatus.OPEN, StatementStatus.OVERDUE]),
            )
            .order_by(CreditCardStatement.due_date.asc())
            .first()
        )

    def open_statements_due_before(self, card_id: uuid.UUID, as_of: date) -> List[CreditCardStatement]:
        return (
            self.db.query(CreditCardStatement)
            .filter(
                CreditCardStatement.credit_card_id == card_id,
                CreditCardStatement.status == StatementStatus.OPEN,
                CreditCardStatement.due_date < as_of,
            )
            .all()
        )

    def add_payment(self, payment: CreditCardPayment) -> CreditCardPayment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def payments(self, card_id: uuid.UUID, limit: int = 50) -> List[CreditCardPayment]:
        return (
            self.db.query(CreditCardPayment)
            .filter(CreditCardPayment.credit_card_id == card_id)
            .order_by(CreditCardPayment.payment_date.desc())
            .limit(limit)
            .all()
        )

    def payments_applied(self, statement_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(CreditCardPayment.amount), 0))
            .filter(CreditCardPayment.statement_id == statement_id)
            .scalar()
        )
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def payment_for_transaction(self, transaction_id: uuid.UUID) -> Optional[CreditCardPayment]:
        return (
            self.db.query(CreditCardPayment)
            .filter(CreditCardPayment.transaction_id == transaction_id)
            .first()
        )
