"""Credit card billing-cycle arithmetic - windows, statement totals, minimum due"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Tuple

from household_ledger.domain.amortization import ZERO, to_money
from household_ledger.domain.exceptions import ValidationError
from household_ledger.domain.models import BillingCycle, StatementFigures, TransactionKind
from household_ledger.utils.date_utils import add_months, most_recent_day_of_month


def billing_cycle(billing_day: int, as_of: date) -> BillingCycle:
    """
    Cycle closing on the latest ``billing_day`` on or before ``as_of``.

    The cycle starts the day after the previous month's billing day, so
    consecutive cycles never overlap even when the day is clamped (31 -> 30/28).

    Example:
        billing_day=15, as_of=2024-11-20 -> 2024-10-16 .. 2024-11-15
        billing_day=15, as_of=2024-11-10 -> 2024-09-16 .. 2024-10-15
    """
    if not 1 <= billing_day <= 31:
        raise ValidationError("Billing cycle day must be between 1 and 31")

    cycle_end = most_recent_day_of_month(billing_day, as_of)
    previous_end = add_months(cycle_end, -1, anchor_day=billing_day)
    return BillingCycle(cycle_start=previous_end + timedelta(days=1), cycle_end=cycle_end)


def summarize_cycle(transactions: Iterable, cycle: BillingCycle) -> Tuple[Decimal, Decimal]:
    """Sum (spends, payments) of ledger rows dated inside the cycle (both ends inclusive)"""
    spends = ZERO
    payments = ZERO
    for txn in transactions:
        if not cycle.contains(txn.date):
            continue
        if txn.kind == TransactionKind.EXPENSE:
            spends += txn.amount
        else:
            payments += txn.amount
    return spends, payments


def accrue_interest(opening_balance: Decimal, monthly_rate_percent: Decimal, cycle: BillingCycle) -> Decimal:
    """
    Interest charged on a statement.

    Always zero: whether overdue balances accrue on the average daily balance
    or as simple interest on the opening balance is an unresolved product
    decision, so no charge is levied until it is settled.
    """
    return ZERO


def compute_statement(
    opening_balance: Decimal,
    total_spends: Decimal,
    total_payments: Decimal,
    interest_charged: Decimal,
    minimum_due_percent: Decimal,
    cycle_end: date,
    due_days: int,
) -> StatementFigures:
    """closing = max(0, opening + spends - payments + interest); minimum = closing * pct / 100"""
    closing = max(ZERO, opening_balance + total_spends - total_payments + interest_charged)
    minimum_due = max(ZERO, closing * Decimal(minimum_due_percent) / 100)

    return StatementFigures(
        opening_balance=to_money(opening_balance),
        total_spends=to_money(total_spends),
        total_payments=to_money(total_payments),
        interest_charged=to_money(interest_charged),
        closing_balance=to_money(closing),
        minimum_due=to_money(minimum_due),
        due_date=cycle_end + timedelta(days=due_days),
    )
