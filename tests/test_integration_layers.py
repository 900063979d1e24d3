"""Integration tests describing the end-to-end Estate Ledger workflows.

These scenarios run the data access layer, the business logic layer, the
reports and the CLI together against real files in a temporary directory.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from estate_ledger import agreements, cli, core_logic, data_manager, reports
from estate_ledger.constants import AccountStatus, AgreementStatus, PaymentType, SaleStatus, StandStatus


def _onboard(context: core_logic.RuntimeContext):
    """Create an agent, a client, a developer on 30%/12 months, and one stand."""

    agent = core_logic.add_user(context, core_logic.UserCommand(name="Tom Agent", email="tom@example.com"))
    client = core_logic.add_client(context, core_logic.ClientCommand(name="Mary Buyer", id_number="ID-55"))
    developer = core_logic.add_developer(
        context,
        core_logic.DeveloperCommand(
            name="Ridge Estates",
            deposit_terms="30%",
            financing_terms="12 Months",
            mandate_holder_id=agent.user_id,
        ),
    )
    stand = core_logic.add_stand(
        context,
        core_logic.StandCommand(developer_id=developer.developer_id, stand_number="1", price=Decimal("120000")),
    )
    return agent, client, developer, stand


def test_sale_to_settlement_flow(runtime_context):
    """Sell a stand with a deposit, fall behind, catch up, and settle."""

    context = runtime_context
    agent, client, developer, stand = _onboard(context)
    assert stand.deposit_required == Decimal("36000")

    sale, commission = core_logic.record_sale(
        context,
        core_logic.SaleCommand(
            stand_id=stand.stand_id,
            client_id=client.client_id,
            agent_id=agent.user_id,
            deposit_amount=stand.deposit_required,
            sale_date=date(2024, 1, 10),
        ),
    )
    assert commission.total_agency_commission == Decimal("6000")
    assert commission.agent_commission == Decimal("3000")

    # Two months in with only the deposit paid: 36000 + 2 x 7000 expected.
    projection = core_logic.project_installment_account(context, sale.sale_id, today=date(2024, 3, 15))
    assert projection.status is AccountStatus.OVERDUE
    assert projection.due_amount == Decimal("14000")

    core_logic.record_payment(
        context,
        core_logic.PaymentCommand(sale_id=sale.sale_id, amount=Decimal("14000"), payment_date=date(2024, 3, 16)),
    )
    projection = core_logic.project_installment_account(context, sale.sale_id, today=date(2024, 3, 20))
    assert projection.status is AccountStatus.CURRENT

    core_logic.record_payment(
        context,
        core_logic.PaymentCommand(
            sale_id=sale.sale_id,
            amount=Decimal("70000"),
            payment_type=PaymentType.FULL_PAYMENT,
            payment_date=date(2024, 4, 1),
        ),
    )

    # Commands persisted as they ran; a reload must see the same ledger.
    context = core_logic.refresh_context(context)
    financials = core_logic.get_sale_financials(context, sale.sale_id)
    assert financials.paid == Decimal("120000")
    assert financials.balance == Decimal("0")
    assert core_logic.project_installment_account(context, sale.sale_id).status is AccountStatus.PAID

    accounts, summary = core_logic.list_installment_accounts(context, today=date(2024, 4, 2))
    assert accounts == []
    assert summary.total_outstanding == Decimal("0")

    dashboard = reports.dashboard_summary(context.snapshot)
    assert dashboard.total_revenue == Decimal("120000")
    assert dashboard.total_outstanding == Decimal("0")
    assert dashboard.occupancy_rate == 100

    (reconciliation,) = reports.developer_reconciliation(context.snapshot, developer.developer_id)
    assert reconciliation.net_due == Decimal("114000")


def test_cancellation_reverses_inventory_and_commission_flow(runtime_context):
    """Cancelling releases the stand and voids commission but keeps payments."""

    context = runtime_context
    agent, client, _, stand = _onboard(context)
    sale, _ = core_logic.record_sale(
        context,
        core_logic.SaleCommand(
            stand_id=stand.stand_id,
            client_id=client.client_id,
            agent_id=agent.user_id,
            deposit_amount=Decimal("5000"),
        ),
    )

    core_logic.cancel_sale(context, sale.sale_id)
    context = core_logic.refresh_context(context)

    assert core_logic.get_stand(context, stand.stand_id).status is StandStatus.AVAILABLE
    assert core_logic.get_sale(context, sale.sale_id).status is SaleStatus.CANCELLED
    assert core_logic.list_commissions(context) == []
    assert core_logic.get_sale_financials(context, sale.sale_id).paid == Decimal("5000")
    assert reports.dashboard_summary(context.snapshot).total_revenue == Decimal("0")
    assert reports.get_agent_performance(context.snapshot, agent.user_id).count == 0
    assert core_logic.list_installment_accounts(context)[0] == []

    resale, _ = core_logic.record_sale(
        context,
        core_logic.SaleCommand(stand_id=stand.stand_id, client_id=client.client_id, agent_id=agent.user_id),
    )
    assert resale.sale_id != sale.sale_id
    assert len(core_logic.list_commissions(context)) == 1


def test_agreement_drafting_flow(runtime_context):
    """Draft and approve an agreement for a freshly recorded sale."""

    context = runtime_context
    agent, client, _, stand = _onboard(context)
    sale, _ = core_logic.record_sale(
        context,
        core_logic.SaleCommand(
            stand_id=stand.stand_id,
            client_id=client.client_id,
            agent_id=agent.user_id,
            deposit_amount=Decimal("36000"),
        ),
    )
    assert [s.sale_id for s in agreements.sales_without_agreement(context)] == [sale.sale_id]

    agreement = agreements.create_agreement(context, sale.sale_id)
    agreements.update_agreement_status(context, agreement.agreement_id, AgreementStatus.APPROVED)

    stored = data_manager.load_snapshot(context.settings.data_file)
    assert stored.agreements[0].approved_by == "u1"
    assert "Mary Buyer" in stored.agreements[0].content
    assert "$36,000" in stored.agreements[0].content
    assert "12 Months" in stored.agreements[0].content
    assert agreements.sales_without_agreement(context) == []


def test_cli_sale_payment_and_statement_flow(config_factory, capsys):
    """Run a sale and a payment through the CLI and print the statement."""

    bundle = config_factory(demo=True)
    base = ["--config", str(bundle.config_path)]

    assert cli.main([*base, "sale", "--stand-id", "d2-201", "--client-id", "c2", "--agent-id", "u3", "--deposit", "5000"]) == 0
    sale_id = data_manager.load_snapshot(bundle.data_file).sales[-1].sale_id

    assert cli.main([*base, "pay", "--sale-id", sale_id, "--amount", "15000", "--receipt-no", "RB-7"]) == 0
    capsys.readouterr()

    assert cli.main([*base, "statement", "--sale-id", sale_id]) == 0
    out = capsys.readouterr().out
    assert "Client: Robert Fox" in out
    assert "receipt RB-7" in out
    assert "Total paid:  20,000.00" in out
    assert "Outstanding: 180,000.00" in out

    assert cli.main([*base, "agent-performance", "--agent-id", "u3"]) == 0
    assert "Commission: 5,000.00" in capsys.readouterr().out


def test_cli_batch_stands_skips_existing_numbers_flow(config_factory, capsys):
    bundle = config_factory(demo=True)

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "batch-stands", "--developer-id", "d1", "--start", "101", "--end", "105", "--price", "100000"]
    )

    assert exit_code == 0
    assert "Added 2 stands, skipped 3 existing numbers" in capsys.readouterr().out
    stands = data_manager.load_snapshot(bundle.data_file).stands
    assert [s.stand_id for s in stands if s.developer_id == "d1"] == ["d1-101", "d1-102", "d1-103", "d1-104", "d1-105"]
    assert stands[-1].deposit_required == Decimal("10000")


def test_cli_backup_and_import_restore_flow(config_factory, capsys):
    """A backup taken before a cancellation restores the original sale."""

    bundle = config_factory(demo=True)
    base = ["--config", str(bundle.config_path)]

    assert cli.main([*base, "backup"]) == 0
    backups = sorted((bundle.directory / "backups").glob("backup-*.json"))
    assert len(backups) == 1

    assert cli.main([*base, "cancel-sale", "--sale-id", "s1"]) == 0
    assert data_manager.load_snapshot(bundle.data_file).sales[0].status is SaleStatus.CANCELLED

    assert cli.main([*base, "import", "--file", str(backups[0])]) == 0
    assert "Imported 15 records" in capsys.readouterr().out

    restored = data_manager.load_snapshot(bundle.data_file)
    assert restored.sales[0].status is SaleStatus.COMPLETED
    assert restored.stands[1].status is StandStatus.SOLD
    assert [c.commission_id for c in restored.commissions] == ["cm1"]


def test_cli_rejects_second_sale_of_sold_stand_flow(config_factory):
    bundle = config_factory(demo=True)
    base = ["--config", str(bundle.config_path)]

    assert cli.main([*base, "sale", "--stand-id", "d1-101", "--client-id", "c1", "--agent-id", "u2"]) == 0
    assert cli.main([*base, "sale", "--stand-id", "d1-101", "--client-id", "c2", "--agent-id", "u3"]) == 2

    stored = data_manager.load_snapshot(bundle.data_file)
    active = [s for s in stored.sales if s.stand_id == "d1-101" and s.status is not SaleStatus.CANCELLED]
    assert len(active) == 1
    assert len(stored.commissions) == 2
