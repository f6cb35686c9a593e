"""SQLAlchemy ORM models for accounts, ledger transactions, loans and credit cards"""

import uuid
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

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

Base = declarative_base()

# Money: two fractional digits at rest, Decimal in Python
Money = Numeric(18, 2)


def _enum(enum_cls, name):
    return Enum(enum_cls, name=name, native_enum=False, length=20)


class Category(Base):
    """Household transaction category (only looked up / auto-created here)"""

    __tablename__ = "category"
    __table_args__ = (UniqueConstraint("household_id", "name", name="uq_category_household_name"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    household_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    kind = Column(_enum(TransactionKind, "transaction_kind"), nullable=False)
    color = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Account(Base):
    """Money container; balance is mutated only by the ledger poster"""

    __tablename__ = "account"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    household_id = Column(Text, nullable=False, index=True)
    owner_id = Column(Text, nullable=True)  # NULL = shared / reserve
    name = Column(Text, nullable=False)
    kind = Column(_enum(AccountKind, "account_kind"), nullable=False)
    currency = Column(Text, nullable=False, default="INR")
    balance = Column(Money, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    transactions = relationship("LedgerTransaction", back_populates="account")
    credit_card = relationship("CreditCard", back_populates="account", uselist=False)


class LedgerTransaction(Base):
    """Posted income or expense; amount is the unsigned magnitude"""

    __tablename__ = "ledger_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=False, index=True)
    category_id = Column(UUID(as_uuid=True), ForeignKey("category.id"), nullable=True)
    kind = Column(_enum(TransactionKind, "transaction_kind"), nullable=False)
    amount = Column(Money, nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    linked_transaction_id = Column(UUID(as_uuid=True), nullable=True)  # Other leg of a transfer
    currency = Column(Text, nullable=False)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    account = relationship("Account", back_populates="transactions")


class Loan(Base):
    """Amortising loan repaid from a linked account"""

    __tablename__ = "loan"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    household_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    lender = Column(Text, nullable=True)
    linked_account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=False)
    principal = Column(Money, nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False)  # Annual %
    tenure_months = Column(Integer, nullable=False)  # As contracted at origination
    start_date = Column(Date, nullable=False)
    emi_amount = Column(Money, nullable=False)
    outstanding_principal = Column(Money, nullable=False)
    status = Column(_enum(LoanStatus, "loan_status"), nullable=False, default=LoanStatus.ACTIVE)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    linked_account = relationship("Account")
    emis = relationship(
        "LoanEMI", back_populates="loan", order_by="LoanEMI.emi_number", cascade="all, delete-orphan"
    )
    prepayments = relationship(
        "LoanPrepayment", back_populates="loan", order_by="LoanPrepayment.date.desc()", cascade="all, delete-orphan"
    )


class LoanEMI(Base):
    """One installment; PAID rows are the immutable repayment history"""

    __tablename__ = "loan_emi"
    __table_args__ = (UniqueConstraint("loan_id", "emi_number", name="uq_loan_emi_number"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loan.id", ondelete="CASCADE"), nullable=False)
    emi_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_component = Column(Money, nullable=False)
    interest_component = Column(Money, nullable=False)
    total_amount = Column(Money, nullable=False)
    status = Column(_enum(EmiStatus, "emi_status"), nullable=False, default=EmiStatus.PENDING)
    paid_date = Column(Date, nullable=True)
    transaction_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    loan = relationship("Loan", back_populates="emis")


class LoanPrepayment(Base):
    """Append-only prepayment audit record"""

    __tablename__ = "loan_prepayment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loan.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Money, nullable=False)
    date = Column(Date, nullable=False)
    strategy = Column(_enum(PrepaymentStrategy, "prepayment_strategy"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan = relationship("Loan", back_populates="prepayments")


class CreditCard(Base):
    """Card terms and running outstanding for a CREDIT_CARD account"""

    __tablename__ = "credit_card"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    household_id = Column(Text, nullable=False, index=True)
    account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=False, unique=True)
    issuer = Column(Text, nullable=True)
    credit_limit = Column(Money, nullable=False)
    billing_cycle_start_day = Column(Integer, nullable=False)
    due_days = Column(Integer, nullable=False)
    interest_rate_monthly = Column(Numeric(7, 4), nullable=False)
    minimum_due_percent = Column(Numeric(5, 2), nullable=False)
    outstanding_amount = Column(Money, nullable=False, default=0)
    status = Column(_enum(CardStatus, "card_status"), nullable=False, default=CardStatus.ACTIVE)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    account = relationship("Account", back_populates="credit_card")
    statements = relationship(
        "CreditCardStatement", back_populates="credit_card", order_by="CreditCardStatement.cycle_end.desc()"
    )
    payments = relationship(
        "CreditCardPayment", back_populates="credit_card", order_by="CreditCardPayment.payment_date.desc()"
    )


class CreditCardStatement(Base):
    """Statement for one billing cycle; opening balance chains from the previous one"""

    __tablename__ = "credit_card_statement"
    __table_args__ = (UniqueConstraint("credit_card_id", "cycle_end", name="uq_statement_card_cycle"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credit_card_id = Column(UUID(as_uuid=True), ForeignKey("credit_card.id"), nullable=False, index=True)
    cycle_start = Column(Date, nullable=False)
    cycle_end = Column(Date, nullable=False)
    statement_date = Column(Date, nullable=False)
    opening_balance = Column(Money, nullable=False)
    total_spends = Column(Money, nullable=False)
    total_payments = Column(Money, nullable=False)
    interest_charged = Column(Money, nullable=False)
    closing_balance = Column(Money, nullable=False)
    minimum_due = Column(Money, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(_enum(StatementStatus, "statement_status"), nullable=False, default=StatementStatus.OPEN)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_card = relationship("CreditCard", back_populates="statements")
    payments = relationship("CreditCardPayment", back_populates="statement")


class CreditCardPayment(Base):
    """Append-only record of a payment received by the card"""

    __tablename__ = "credit_card_payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credit_card_id = Column(UUID(as_uuid=True), ForeignKey("credit_card.id"), nullable=False, index=True)
    statement_id = Column(UUID(as_uuid=True), ForeignKey("credit_card_statement.id"), nullable=True)
    amount = Column(Money, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_type = Column(_enum(PaymentType, "payment_type"), nullable=False, default=PaymentType.PARTIAL)
    transaction_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_card = relationship("CreditCard", back_populates="payments")
    statement = relationship("CreditCardStatement", back_populates="payments")
