"""Amortization calculator - level-payment EMI and reducing-balance schedules"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from household_ledger.domain.exceptions import ScheduleDivergenceError, ValidationError
from household_ledger.domain.models import ScheduleRow
from household_ledger.utils.date_utils import add_months

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal) -> Decimal:
    """Round to currency minor units; only used at the storage/display boundary"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return Decimal(annual_rate_percent) / 12 / 100


def level_payment(principal: Decimal, annual_rate_percent: Decimal, months: int) -> Decimal:
    """
    Reducing-balance EMI: P * r * (1 + r)^n / ((1 + r)^n - 1), r = annual / 12 / 100.

    A zero rate returns principal / months exactly. The result is unrounded.

    Example:
        120000 at 12% over 12 months -> 10661.85 (rounded)
    """
    if months <= 0:
        raise ValidationError("Tenure must be at least one month")
    if principal <= 0:
        raise ValidationError("Principal must be positive")
    if annual_rate_percent < 0:
        raise ValidationError("Interest rate cannot be negative")

    principal = Decimal(principal)
    if annual_rate_percent == 0:
        return principal / months

    r = monthly_rate(annual_rate_percent)
    growth = (1 + r) ** months
    return principal * r * growth / (growth - 1)


def build_schedule(
    principal: Decimal,
    annual_rate_percent: Decimal,
    months: int,
    start_date: date,
    anchor_day: int | None = None,
) -> List[ScheduleRow]:
    """
    Generate a level-payment schedule. The first installment falls one month
    after ``start_date`` and each subsequent one a calendar month later, on
    ``anchor_day`` (default: the start date's day).

    Iterates interest = balance * r, principal = emi - interest; the balance is
    clamped at zero and iteration stops at or before ``months`` rows.
    """
    emi = level_payment(principal, annual_rate_percent, months)
    r = monthly_rate(annual_rate_percent)
    balance = Decimal(principal)

    rows = []
    for number in range(1, months + 1):
        interest = balance * r
        principal_component = emi - interest
        balance -= principal_component
        if balance < 0:
            balance = ZERO

        rows.append(
            ScheduleRow(
                emi_number=number,
                due_date=add_months(start_date, number, anchor_day=anchor_day or start_date.day),
                principal_component=principal_component,
                interest_component=interest,
                total_amount=emi,
                running_balance=balance,
            )
        )

        if balance <= 0:
            break

    return rows


def build_fixed_payment_schedule(
    principal: Decimal,
    annual_rate_percent: Decimal,
    payment: Decimal,
    first_due_date: date,
    tolerance: Decimal = Decimal("0.10"),
    max_rows: int = 360,
    first_emi_number: int = 1,
    anchor_day: int | None = None,
) -> List[ScheduleRow]:
    """
    Amortise ``principal`` with a fixed ``payment`` for as many months as needed.

    Used when a prepayment shortens the tenure. The final row may be smaller
    than ``payment``; a residue at or under ``tolerance`` is folded into it.

    Raises:
        ScheduleDivergenceError: payment never covers the interest, or the
            balance would not clear within ``max_rows`` installments
    """
    r = monthly_rate(annual_rate_percent)
    balance = Decimal(principal)
    payment = Decimal(payment)

    if balance <= 0:
        return []
    if payment <= balance * r:
        raise ScheduleDivergenceError(
            f"Installment {to_money(payment)} does not cover the first month's interest "
            f"{to_money(balance * r)}"
        )

    rows: List[ScheduleRow] = []
    while balance > 0 and (balance > tolerance or not rows):
        if len(rows) >= max_rows:
            raise ScheduleDivergenceError(
                f"Balance does not clear within {max_rows} installments"
            )

        interest = balance * r
        principal_component = min(payment - interest, balance)
        balance -= principal_component

        offset = len(rows)
        rows.append(
            ScheduleRow(
                emi_number=first_emi_number + offset,
                due_date=add_months(first_due_date, offset, anchor_day=anchor_day or first_due_date.day),
                principal_component=principal_component,
                interest_component=interest,
                total_amount=principal_component + interest,
                running_balance=balance,
            )
        )

    # Residue under tolerance belongs to the last installment
    if balance > 0:
        last = rows[-1]
        last.principal_component += balance
        last.total_amount += balance
        last.running_balance = ZERO

    return rows


def quantize_schedule(rows: List[ScheduleRow], principal: Decimal) -> List[ScheduleRow]:
    """
    Round a schedule to cents for storage.

    Installment totals and interest are rounded individually; the principal
    part is what remains of the rounded total. The last row absorbs the
    rounding remainder so the principal components sum to ``principal`` exactly.
    """
    target = to_money(principal)
    allocated = ZERO
    rounded = []

    for index, row in enumerate(rows):
        interest = to_money(row.interest_component)
        if index == len(rows) - 1:
            principal_component = target - allocated
            total = principal_component + interest
        else:
            total = to_money(row.total_amount)
            principal_component = total - interest

        allocated += principal_component
        rounded.append(
            ScheduleRow(
                emi_number=row.emi_number,
                due_date=row.due_date,
                principal_component=principal_component,
                interest_component=interest,
                total_amount=total,
                running_balance=target - allocated,
            )
        )

    return rounded
