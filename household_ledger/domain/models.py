"""Domain models - enums and pure dataclasses shared by the ledger engine"""

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal


class AccountKind(str, enum.Enum):
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"
    CASH_RESERVE = "CASH_RESERVE"
    INVESTMENT = "INVESTMENT"


class TransactionKind(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class EmiStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class PrepaymentStrategy(str, enum.Enum):
    REDUCE_TENURE = "REDUCE_TENURE"
    REDUCE_EMI = "REDUCE_EMI"


class CardStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class StatementStatus(str, enum.Enum):
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


class PaymentType(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    MINIMUM = "MINIMUM"


@dataclass
class ScheduleRow:
    """Single installment of an amortization schedule"""

    emi_number: int
    due_date: date
    principal_component: Decimal
    interest_component: Decimal
    total_amount: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class BillingCycle:
    """Inclusive date window covered by one credit card statement"""

    cycle_start: date
    cycle_end: date

    def contains(self, day: date) -> bool:
        return self.cycle_start <= day <= self.cycle_end


@dataclass
class StatementFigures:
    """Monetary totals of a statement before it is persisted"""

    opening_balance: Decimal
    total_spends: Decimal
    total_payments: Decimal
    interest_charged: Decimal
    closing_balance: Decimal
    minimum_due: Decimal
    due_date: date
