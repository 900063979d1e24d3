"""Read-side aggregations over a snapshot.

Every function here is a pure fold: it takes the snapshot, never mutates it,
and recomputes its figures from scratch on each call. Cancelled sales are
excluded from revenue figures everywhere.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from . import log
from .constants import AGENCY_COMMISSION_RATE, CommissionStatus, SaleStatus, StandStatus
from .data_manager import SaleRecord, Snapshot

ZERO = Decimal("0")


@dataclass(frozen=True)
class AgentPerformance:
    agent_id: str
    total_sales: Decimal
    count: int
    total_commission: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    total_revenue: Decimal
    sales_count: int
    total_stands: int
    sold_stands: int
    occupancy_rate: int
    average_sale_price: Decimal
    total_collected: Decimal
    total_outstanding: Decimal


@dataclass(frozen=True)
class PeriodSales:
    """Revenue and deal count for one month (``YYYY-MM``) or ISO week (``YYYY-Www``)."""

    period: str
    revenue: Decimal
    count: int


@dataclass(frozen=True)
class DeveloperSales:
    developer_id: str
    name: str
    revenue: Decimal
    count: int


@dataclass(frozen=True)
class DeveloperReconciliation:
    """What a developer is owed on the stands the agency has sold."""

    developer_id: str
    name: str
    stands_sold: int
    expected: Decimal
    collected: Decimal
    outstanding: Decimal
    agency_commission: Decimal
    net_due: Decimal


@dataclass(frozen=True)
class InventoryStatus:
    totals: Dict[StandStatus, int]
    by_developer: Dict[str, Dict[StandStatus, int]]


@dataclass(frozen=True)
class CommissionSummary:
    count: int
    sales_volume: Decimal
    agency_revenue: Decimal
    agent_payout: Decimal
    pending_payout: Decimal
    paid_payout: Decimal


def active_sales(snapshot: Snapshot) -> List[SaleRecord]:
    return [sale for sale in snapshot.sales if sale.status is not SaleStatus.CANCELLED]


def _paid_by_sale(snapshot: Snapshot) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in snapshot.payments:
        totals[payment.sale_id] += payment.amount
    return totals


def get_agent_performance(snapshot: Snapshot, agent_id: str) -> AgentPerformance:
    """Sales volume and commission earned by one agent.

    Sales volume and count cover the agent's non-cancelled sales; commission
    sums every commission record of the agent, which only exist for live
    sales. An unknown agent yields zeros.
    """
    sales = [sale for sale in active_sales(snapshot) if sale.agent_id == agent_id]
    commission = sum(
        (c.agent_commission for c in snapshot.commissions if c.agent_id == agent_id),
        ZERO,
    )
    return AgentPerformance(
        agent_id=agent_id,
        total_sales=sum((sale.sale_price for sale in sales), ZERO),
        count=len(sales),
        total_commission=commission,
    )


def dashboard_summary(snapshot: Snapshot) -> DashboardSummary:
    sales = active_sales(snapshot)
    revenue = sum((sale.sale_price for sale in sales), ZERO)
    paid = _paid_by_sale(snapshot)
    collected = sum((paid[sale.sale_id] for sale in sales), ZERO)

    total_stands = len(snapshot.stands)
    sold = sum(1 for stand in snapshot.stands if stand.status is StandStatus.SOLD)
    occupancy = round(sold * 100 / total_stands) if total_stands else 0
    average = revenue / len(sales) if sales else ZERO

    log.debug("Dashboard: revenue=%s sold=%d/%d", revenue, sold, total_stands)
    return DashboardSummary(
        total_revenue=revenue,
        sales_count=len(sales),
        total_stands=total_stands,
        sold_stands=sold,
        occupancy_rate=occupancy,
        average_sale_price=average,
        total_collected=collected,
        total_outstanding=revenue - collected,
    )


def _group_sales(sales: List[SaleRecord], key) -> List[PeriodSales]:
    revenue: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Dict[str, int] = defaultdict(int)
    for sale in sales:
        period = key(sale)
        revenue[period] += sale.sale_price
        counts[period] += 1
    return [PeriodSales(period=p, revenue=revenue[p], count=counts[p]) for p in sorted(revenue)]


def sales_by_month(snapshot: Snapshot) -> List[PeriodSales]:
    return _group_sales(active_sales(snapshot), lambda sale: sale.sale_date.strftime("%Y-%m"))


def _iso_week(sale: SaleRecord) -> str:
    year, week, _ = sale.sale_date.isocalendar()
    return f"{year}-W{week:02d}"


def sales_by_week(snapshot: Snapshot) -> List[PeriodSales]:
    """Revenue grouped by ISO week, oldest first."""
    return _group_sales(active_sales(snapshot), _iso_week)


def sales_by_developer(snapshot: Snapshot) -> List[DeveloperSales]:
    """One row per developer, in developer order, including developers without sales."""
    sales = active_sales(snapshot)
    rows = []
    for developer in snapshot.developers:
        own = [sale for sale in sales if sale.developer_id == developer.developer_id]
        rows.append(
            DeveloperSales(
                developer_id=developer.developer_id,
                name=developer.name,
                revenue=sum((sale.sale_price for sale in own), ZERO),
                count=len(own),
            )
        )
    return rows


def developer_reconciliation(snapshot: Snapshot, developer_id: Optional[str] = None) -> List[DeveloperReconciliation]:
    """Expected, collected, and net-due figures per developer.

    ``net_due`` is the gross value of the developer's sold stands less the 5%
    agency commission.
    """
    paid = _paid_by_sale(snapshot)
    sales = active_sales(snapshot)
    rows = []
    for developer in snapshot.developers:
        if developer_id is not None and developer.developer_id != developer_id:
            continue
        own = [sale for sale in sales if sale.developer_id == developer.developer_id]
        expected = sum((sale.sale_price for sale in own), ZERO)
        collected = sum((paid[sale.sale_id] for sale in own), ZERO)
        agency_commission = expected * AGENCY_COMMISSION_RATE
        rows.append(
            DeveloperReconciliation(
                developer_id=developer.developer_id,
                name=developer.name,
                stands_sold=len(own),
                expected=expected,
                collected=collected,
                outstanding=expected - collected,
                agency_commission=agency_commission,
                net_due=expected - agency_commission,
            )
        )
    return rows


def inventory_status(snapshot: Snapshot) -> InventoryStatus:
    totals = {status: 0 for status in StandStatus}
    by_developer: Dict[str, Dict[StandStatus, int]] = {}
    for stand in snapshot.stands:
        totals[stand.status] += 1
        counts = by_developer.setdefault(stand.developer_id, {status: 0 for status in StandStatus})
        counts[stand.status] += 1
    return InventoryStatus(totals=totals, by_developer=by_developer)


def commission_summary(
    snapshot: Snapshot,
    *,
    agent_id: Optional[str] = None,
    status: Optional[CommissionStatus] = None,
) -> CommissionSummary:
    """Totals over the commission records matching the optional filters."""
    selected = [
        c
        for c in snapshot.commissions
        if (agent_id is None or c.agent_id == agent_id) and (status is None or c.status is status)
    ]
    return CommissionSummary(
        count=len(selected),
        sales_volume=sum((c.sale_price for c in selected), ZERO),
        agency_revenue=sum((c.total_agency_commission for c in selected), ZERO),
        agent_payout=sum((c.agent_commission for c in selected), ZERO),
        pending_payout=sum(
            (c.agent_commission for c in selected if c.status is CommissionStatus.PENDING),
            ZERO,
        ),
        paid_payout=sum(
            (c.agent_commission for c in selected if c.status is CommissionStatus.PAID),
            ZERO,
        ),
    )
