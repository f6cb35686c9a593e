"""Unit tests for EMI calculation and schedule generation"""

import pytest
from datetime import date
from decimal import Decimal
from household_ledger.domain.amortization import (
    build_fixed_payment_schedule,
    build_schedule,
    level_payment,
    quantize_schedule,
    to_money,
)
from household_ledger.domain.exceptions import ScheduleDivergenceError, ValidationError


def test_level_payment_standard_loan():
    """120000 at 12% for 12 months"""
    emi = level_payment(Decimal("120000"), Decimal("12"), 12)

    assert to_money(emi) == Decimal("10661.85")


def test_level_payment_zero_rate_is_plain_division():
    assert level_payment(Decimal("1200"), Decimal("0"), 12) == Decimal("100")


@pytest.mark.parametrize(
    "principal,rate,months",
    [
        (Decimal("1000"), Decimal("10"), 0),
        (Decimal("0"), Decimal("10"), 12),
        (Decimal("1000"), Decimal("-1"), 12),
    ],
)
def test_level_payment_rejects_invalid_terms(principal, rate, months):
    with pytest.raises(ValidationError):
        level_payment(principal, rate, months)


def test_schedule_principal_sums_to_loan_amount():
    """Rounded principal components add up to the principal exactly"""
    principal = Decimal("120000")
    rows = quantize_schedule(build_schedule(principal, Decimal("12"), 12, date(2024, 1, 15)), principal)

    assert len(rows) == 12
    assert sum(row.principal_component for row in rows) == principal
    assert rows[-1].running_balance == Decimal("0")
    assert rows[0].interest_component == Decimal("1200.00")
    assert rows[0].total_amount == Decimal("10661.85")
    assert all(row.principal_component + row.interest_component == row.total_amount for row in rows)


def test_schedule_dates_start_one_month_after_start():
    rows = build_schedule(Decimal("120000"), Decimal("12"), 3, date(2024, 1, 15))

    assert [row.due_date for row in rows] == [date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15)]
    assert [row.emi_number for row in rows] == [1, 2, 3]


def test_schedule_dates_clamp_to_month_end_without_drifting():
    """A loan started on the 31st pays on the last day of shorter months"""
    rows = build_schedule(Decimal("3000"), Decimal("10"), 3, date(2024, 1, 31))

    assert [row.due_date for row in rows] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_zero_rate_schedule_has_no_interest():
    principal = Decimal("1000")
    rows = quantize_schedule(build_schedule(principal, Decimal("0"), 3, date(2024, 1, 1)), principal)

    assert all(row.interest_component == 0 for row in rows)
    assert [row.principal_component for row in rows] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]


def test_fixed_payment_schedule_is_shorter_than_original_tenure():
    """Keeping the EMI on a smaller balance finishes early"""
    principal = Decimal("90000")
    rows = build_fixed_payment_schedule(principal, Decimal("12"), Decimal("10661.85"), date(2024, 3, 15))
    rows = quantize_schedule(rows, principal)

    assert len(rows) < 11
    assert all(row.total_amount == Decimal("10661.85") for row in rows[:-1])
    assert rows[-1].total_amount <= Decimal("10661.85")
    assert sum(row.principal_component for row in rows) == principal
    assert rows[0].due_date == date(2024, 3, 15)
    assert rows[1].due_date == date(2024, 4, 15)


def test_fixed_payment_schedule_numbering_continues():
    rows = build_fixed_payment_schedule(
        Decimal("5000"), Decimal("12"), Decimal("2000"), date(2024, 6, 15), first_emi_number=7
    )

    assert [row.emi_number for row in rows] == [7, 8, 9]


def test_fixed_payment_below_interest_diverges():
    with pytest.raises(ScheduleDivergenceError):
        build_fixed_payment_schedule(Decimal("100000"), Decimal("12"), Decimal("1000"), date(2024, 1, 1))


def test_fixed_payment_beyond_row_cap_diverges():
    """Barely covering the interest would take well over 360 months"""
    with pytest.raises(ScheduleDivergenceError):
        build_fixed_payment_schedule(Decimal("100000"), Decimal("12"), Decimal("1000.01"), date(2024, 1, 1))


def test_fixed_payment_folds_small_residue_into_last_row():
    rows = build_fixed_payment_schedule(
        Decimal("200.05"), Decimal("0"), Decimal("100"), date(2024, 1, 1), tolerance=Decimal("0.10")
    )

    assert len(rows) == 2
    assert rows[-1].principal_component == Decimal("100.05")
    assert rows[-1].running_balance == 0


def test_divergence_is_a_validation_error():
    assert issubclass(ScheduleDivergenceError, ValidationError)
