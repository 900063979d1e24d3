"""Installment projection engine.

No payment schedule is ever persisted. The expected position of an account is
re-derived on every call from the sale's price, its tracked deposit, the
financing terms text, and the payment ledger, so editing terms after the fact
can never leave a stale schedule behind.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta

from . import log
from .constants import OVERDUE_TOLERANCE, AccountStatus
from .data_manager import DeveloperRecord, PaymentRecord, SaleRecord, StandRecord
from .terms import parse_duration_months

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InstallmentProjection:
    """Derived health of one sale's installment account."""

    sale_id: str
    status: AccountStatus
    sale_price: Decimal
    total_paid: Decimal
    balance: Decimal
    duration_months: int
    monthly_amount: Decimal
    months_passed: int
    expected_paid: Decimal
    due_amount: Decimal
    next_due_date: Optional[date]
    progress_pct: Decimal


@dataclass(frozen=True)
class InstallmentSummary:
    total_outstanding: Decimal
    total_overdue: Decimal
    overdue_count: int


EMPTY_PROJECTION = InstallmentProjection(
    sale_id="",
    status=AccountStatus.CURRENT,
    sale_price=ZERO,
    total_paid=ZERO,
    balance=ZERO,
    duration_months=0,
    monthly_amount=ZERO,
    months_passed=0,
    expected_paid=ZERO,
    due_amount=ZERO,
    next_due_date=None,
    progress_pct=ZERO,
)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, ignoring the day."""

    return (end.year - start.year) * 12 + (end.month - start.month)


def next_due_date(sale_date: date, today: date) -> date:
    """The sale's day of month, in the month after ``today``.

    Days past the end of that month are clamped to its last day.
    """

    return date(today.year, today.month, 1) + relativedelta(months=1, day=sale_date.day)


def total_paid_for(sale_id: str, payments: Iterable[PaymentRecord]) -> Decimal:
    return sum((payment.amount for payment in payments if payment.sale_id == sale_id), ZERO)


def resolve_financing_terms(stand: Optional[StandRecord], developer: Optional[DeveloperRecord]) -> Optional[str]:
    """The stand's own terms when set, otherwise the developer's."""

    if stand is not None and stand.financing_terms:
        return stand.financing_terms
    if developer is not None:
        return developer.financing_terms
    return None


def project_account(
    sale: SaleRecord,
    stand: Optional[StandRecord],
    payments: Sequence[PaymentRecord],
    today: date,
    *,
    developer: Optional[DeveloperRecord] = None,
) -> InstallmentProjection:
    """Classify a sale's account as PAID, CURRENT, or OVERDUE.

    The amount still owed after the tracked deposit is spread evenly over the
    financing duration. An account is overdue when the ledger total trails the
    deposit plus one installment per elapsed calendar month by more than
    :data:`OVERDUE_TOLERANCE`.

    Args:
        sale (SaleRecord): Sale being projected.
        stand (StandRecord | None): Stand sold, consulted for its terms override.
        payments (Sequence[PaymentRecord]): Ledger entries; entries belonging to
            other sales are ignored.
        today (date): Reference date for elapsed months and the next due date.
        developer (DeveloperRecord | None): Fallback source of financing terms.

    Returns:
        InstallmentProjection: Derived account state.
    """

    total_paid = total_paid_for(sale.sale_id, payments)
    balance = sale.sale_price - total_paid

    duration = parse_duration_months(resolve_financing_terms(stand, developer))
    principal = sale.sale_price - sale.deposit_paid
    monthly_amount = principal / Decimal(duration) if duration > 0 else ZERO

    months_passed = months_between(sale.sale_date, today)
    expected_paid = sale.deposit_paid + monthly_amount * months_passed

    status = AccountStatus.CURRENT
    due_amount = ZERO
    if balance <= ZERO:
        status = AccountStatus.PAID
    elif total_paid < expected_paid - OVERDUE_TOLERANCE:
        status = AccountStatus.OVERDUE
        due_amount = expected_paid - total_paid

    if sale.sale_price > ZERO:
        progress = min(HUNDRED, total_paid / sale.sale_price * HUNDRED)
    else:
        progress = HUNDRED

    log.debug(
        "Projected sale '%s': status=%s paid=%s expected=%s months=%d/%d",
        sale.sale_id,
        status.value,
        total_paid,
        expected_paid,
        months_passed,
        duration,
    )
    return InstallmentProjection(
        sale_id=sale.sale_id,
        status=status,
        sale_price=sale.sale_price,
        total_paid=total_paid,
        balance=balance,
        duration_months=duration,
        monthly_amount=monthly_amount,
        months_passed=months_passed,
        expected_paid=expected_paid,
        due_amount=due_amount,
        next_due_date=next_due_date(sale.sale_date, today),
        progress_pct=progress,
    )


def summarize_accounts(projections: Iterable[InstallmentProjection]) -> InstallmentSummary:
    total_outstanding = ZERO
    total_overdue = ZERO
    overdue_count = 0
    for projection in projections:
        total_outstanding += projection.balance
        if projection.status is AccountStatus.OVERDUE:
            total_overdue += projection.due_amount
            overdue_count += 1
    return InstallmentSummary(
        total_outstanding=total_outstanding,
        total_overdue=total_overdue,
        overdue_count=overdue_count,
    )
