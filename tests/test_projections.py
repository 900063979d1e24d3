"""Tests for the installment projection engine."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from estate_ledger import projections
from estate_ledger.constants import AccountStatus, PaymentType, SaleStatus, StandStatus
from estate_ledger.data_manager import DeveloperRecord, PaymentRecord, SaleRecord, StandRecord


def _sale(price="45000", deposit="5000", sale_date=date(2024, 1, 15), sale_id="s1"):
    return SaleRecord(
        sale_id=sale_id,
        stand_id="d1-1",
        developer_id="d1",
        agent_id="u2",
        client_id="c1",
        client_name="Alice",
        sale_date=sale_date,
        sale_price=Decimal(price),
        deposit_paid=Decimal(deposit),
        status=SaleStatus.PENDING,
    )


def _stand(terms="36 Months"):
    return StandRecord(
        stand_id="d1-1",
        stand_number="1",
        developer_id="d1",
        price=Decimal("45000"),
        size=Decimal("500"),
        status=StandStatus.SOLD,
        financing_terms=terms,
    )


def _payment(amount, sale_id="s1", payment_type=PaymentType.INSTALLMENT, when=date(2024, 1, 15)):
    return PaymentRecord(
        payment_id=f"p-{amount}-{when}",
        sale_id=sale_id,
        amount=Decimal(amount),
        payment_date=when,
        reference="REF",
        payment_type=payment_type,
    )


def test_months_between_ignores_day_of_month():
    assert projections.months_between(date(2024, 1, 31), date(2024, 2, 1)) == 1
    assert projections.months_between(date(2023, 11, 15), date(2024, 2, 14)) == 3
    assert projections.months_between(date(2024, 3, 1), date(2024, 3, 31)) == 0


def test_next_due_date_is_in_month_after_today():
    assert projections.next_due_date(date(2024, 1, 15), date(2024, 3, 20)) == date(2024, 4, 15)
    assert projections.next_due_date(date(2024, 1, 15), date(2024, 12, 2)) == date(2025, 1, 15)


def test_next_due_date_clamps_to_month_end():
    assert projections.next_due_date(date(2024, 1, 31), date(2024, 1, 10)) == date(2024, 2, 29)


def test_overdue_account_two_months_after_sale():
    sale = _sale()
    payments = [_payment("5000", payment_type=PaymentType.DEPOSIT)]

    projection = projections.project_account(sale, _stand(), payments, date(2024, 3, 15))

    assert projection.status is AccountStatus.OVERDUE
    assert projection.duration_months == 36
    assert projection.monthly_amount.quantize(Decimal("0.01")) == Decimal("1111.11")
    assert projection.expected_paid.quantize(Decimal("0.01")) == Decimal("7222.22")
    assert projection.due_amount.quantize(Decimal("0.01")) == Decimal("2222.22")
    assert projection.total_paid == Decimal("5000")
    assert projection.balance == Decimal("40000")
    assert projection.next_due_date == date(2024, 4, 15)


def test_shortfall_within_tolerance_is_current():
    sale = _sale(price="13000", deposit="1000")
    stand = _stand("12 Months")
    # One month in: expected 1000 + 1000; paid 1991 is short by 9, inside the 10 unit margin.
    payments = [_payment("1000", payment_type=PaymentType.DEPOSIT), _payment("991")]

    projection = projections.project_account(sale, stand, payments, date(2024, 2, 20))

    assert projection.status is AccountStatus.CURRENT
    assert projection.due_amount == Decimal("0")


def test_shortfall_just_beyond_tolerance_is_overdue():
    sale = _sale(price="13000", deposit="1000")
    payments = [_payment("1000", payment_type=PaymentType.DEPOSIT), _payment("989")]

    projection = projections.project_account(sale, _stand("12 Months"), payments, date(2024, 2, 20))

    assert projection.status is AccountStatus.OVERDUE
    assert projection.due_amount == Decimal("11")


@pytest.mark.parametrize("paid", ["45000", "50000"])
def test_fully_paid_account_is_paid_regardless_of_elapsed_time(paid):
    sale = _sale()

    projection = projections.project_account(sale, _stand(), [_payment(paid)], date(2030, 1, 1))

    assert projection.status is AccountStatus.PAID
    assert projection.progress_pct == Decimal("100")
    assert projection.due_amount == Decimal("0")


def test_payments_of_other_sales_are_ignored():
    sale = _sale()
    payments = [_payment("45000", sale_id="other")]

    projection = projections.project_account(sale, _stand(), payments, date(2024, 1, 20))

    assert projection.total_paid == Decimal("0")
    assert projection.status is AccountStatus.OVERDUE


def test_developer_terms_apply_when_stand_has_none():
    developer = DeveloperRecord("d1", "Dev", "Contact", "d@example.com", 10, "10%", "24 Months")

    projection = projections.project_account(
        _sale(),
        _stand(terms=None),
        [_payment("5000")],
        date(2024, 1, 20),
        developer=developer,
    )

    assert projection.duration_months == 24


def test_missing_terms_default_to_twelve_months():
    projection = projections.project_account(_sale(), None, [], date(2024, 1, 20))

    assert projection.duration_months == 12


def test_zero_duration_yields_zero_monthly_amount():
    projection = projections.project_account(_sale(), _stand("0 Months"), [_payment("5000")], date(2024, 6, 1))

    assert projection.monthly_amount == Decimal("0")
    assert projection.status is AccountStatus.CURRENT


def test_progress_is_capped_share_of_price():
    projection = projections.project_account(_sale(), _stand(), [_payment("9000")], date(2024, 1, 20))

    assert projection.progress_pct == Decimal("20")


def test_summarize_accounts_totals_outstanding_and_overdue():
    today = date(2024, 3, 15)
    overdue = projections.project_account(_sale(), _stand(), [_payment("5000")], today)
    current = projections.project_account(
        _sale(sale_id="s2", sale_date=date(2024, 3, 1)),
        _stand(),
        [_payment("5000", sale_id="s2")],
        today,
    )

    summary = projections.summarize_accounts([overdue, current])

    assert summary.total_outstanding == Decimal("80000")
    assert summary.overdue_count == 1
    assert summary.total_overdue == overdue.due_amount
