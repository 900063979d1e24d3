"""Tests for the read-side report aggregations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from estate_ledger import core_logic, data_manager, reports
from estate_ledger.constants import CommissionStatus, StandStatus


@pytest.fixture
def portfolio(demo_context):
    """Demo data plus two live sales and one cancelled sale.

    Live: ``s1`` (160000, u2, d1), d1-101 (150000, u3, 15000 deposit) and
    d2-201 (200000, u2). Cancelled: d1-103 (155000).
    """

    def sell(stand_id, agent_id, sale_date, deposit="0"):
        sale, _ = core_logic.record_sale(
            demo_context,
            core_logic.SaleCommand(
                stand_id=stand_id,
                client_id="c2",
                agent_id=agent_id,
                deposit_amount=Decimal(deposit),
                sale_date=sale_date,
            ),
        )
        return sale

    sell("d1-101", "u3", date(2024, 1, 10), deposit="15000")
    sell("d2-201", "u2", date(2024, 1, 20))
    cancelled = sell("d1-103", "u3", date(2024, 1, 12))
    core_logic.cancel_sale(demo_context, cancelled.sale_id)
    return demo_context.snapshot


def test_active_sales_excludes_cancelled(portfolio):
    assert len(portfolio.sales) == 4
    assert len(reports.active_sales(portfolio)) == 3


def test_agent_performance_covers_live_sales_only(portfolio):
    john = reports.get_agent_performance(portfolio, "u2")
    jane = reports.get_agent_performance(portfolio, "u3")

    assert (john.total_sales, john.count, john.total_commission) == (Decimal("360000"), 2, Decimal("9000"))
    assert (jane.total_sales, jane.count, jane.total_commission) == (Decimal("150000"), 1, Decimal("3750"))


def test_agent_performance_unknown_agent_is_zero(portfolio):
    result = reports.get_agent_performance(portfolio, "ghost")

    assert result == reports.AgentPerformance("ghost", Decimal("0"), 0, Decimal("0"))


def test_dashboard_summary(portfolio):
    summary = reports.dashboard_summary(portfolio)

    assert summary.total_revenue == Decimal("510000")
    assert summary.sales_count == 3
    assert summary.total_stands == 4
    assert summary.sold_stands == 3
    assert summary.occupancy_rate == 75
    assert summary.average_sale_price == Decimal("170000")
    assert summary.total_collected == Decimal("31000")
    assert summary.total_outstanding == Decimal("479000")


def test_dashboard_summary_of_empty_store():
    summary = reports.dashboard_summary(data_manager.default_snapshot())

    assert summary.total_revenue == Decimal("0")
    assert summary.occupancy_rate == 0
    assert summary.average_sale_price == Decimal("0")


def test_sales_by_month_is_chronological(portfolio):
    rows = reports.sales_by_month(portfolio)

    assert [(r.period, r.revenue, r.count) for r in rows] == [
        ("2023-10", Decimal("160000"), 1),
        ("2024-01", Decimal("350000"), 2),
    ]


def test_sales_by_week_uses_iso_weeks(portfolio):
    rows = reports.sales_by_week(portfolio)

    assert [r.period for r in rows] == ["2023-W41", "2024-W02", "2024-W03"]
    assert rows[-1].revenue == Decimal("200000")


def test_sales_by_developer_lists_developers_without_sales(portfolio, demo_context):
    core_logic.add_developer(demo_context, core_logic.DeveloperCommand(name="Quiet Homes"))

    rows = reports.sales_by_developer(portfolio)

    assert [(r.name, r.revenue, r.count) for r in rows] == [
        ("Sunset Properties", Decimal("310000"), 2),
        ("Urban Living", Decimal("200000"), 1),
        ("Quiet Homes", Decimal("0"), 0),
    ]


def test_developer_reconciliation_nets_agency_commission(portfolio):
    (row,) = reports.developer_reconciliation(portfolio, "d1")

    assert row.stands_sold == 2
    assert row.expected == Decimal("310000")
    assert row.collected == Decimal("31000")
    assert row.outstanding == Decimal("279000")
    assert row.agency_commission == Decimal("15500")
    assert row.net_due == Decimal("294500")


def test_developer_reconciliation_all_developers(portfolio):
    rows = reports.developer_reconciliation(portfolio)

    assert [row.developer_id for row in rows] == ["d1", "d2"]
    assert rows[1].net_due == Decimal("190000")


def test_inventory_status_counts_every_status(portfolio):
    status = reports.inventory_status(portfolio)

    assert status.totals == {StandStatus.AVAILABLE: 1, StandStatus.RESERVED: 0, StandStatus.SOLD: 3}
    assert status.by_developer["d1"][StandStatus.SOLD] == 2
    assert status.by_developer["d2"] == {StandStatus.AVAILABLE: 0, StandStatus.RESERVED: 0, StandStatus.SOLD: 1}


def test_commission_summary_splits_pending_and_paid(portfolio, demo_context):
    core_logic.mark_commission_paid(demo_context, "cm1")

    summary = reports.commission_summary(portfolio)

    assert summary.count == 3
    assert summary.sales_volume == Decimal("510000")
    assert summary.agency_revenue == Decimal("25500")
    assert summary.agent_payout == Decimal("12750")
    assert summary.pending_payout == Decimal("8750")
    assert summary.paid_payout == Decimal("4000")


def test_commission_summary_filters(portfolio):
    summary = reports.commission_summary(portfolio, agent_id="u2", status=CommissionStatus.PENDING)

    assert summary.count == 2
    assert summary.sales_volume == Decimal("360000")
