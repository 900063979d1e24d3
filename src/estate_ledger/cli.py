"""Command-line entry points for Estate Ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing the results. Keeping the CLI thin lets tests and any other
front-end reuse the same parser configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import agreements, assistant, core_logic, log, reports
from .constants import AgreementStatus, CommissionStatus, PaymentType, StandStatus, UserRole


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="estate-cli",
        description="Command-line tools for the Estate Ledger sales book.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and payments."""
    specs = {
        "add-user": register_add_user_command(subparsers),
        "add-client": register_add_client_command(subparsers),
        "delete-client": register_delete_client_command(subparsers),
        "add-developer": register_add_developer_command(subparsers),
        "update-developer": register_update_developer_command(subparsers),
        "delete-developer": register_delete_developer_command(subparsers),
        "add-stand": register_add_stand_command(subparsers),
        "batch-stands": register_batch_stands_command(subparsers),
        "delete-stand": register_delete_stand_command(subparsers),
        "sale": register_sale_command(subparsers),
        "cancel-sale": register_cancel_sale_command(subparsers),
        "complete-sale": register_complete_sale_command(subparsers),
        "pay": register_pay_command(subparsers),
        "pay-commission": register_pay_commission_command(subparsers),
        "add-template": register_add_template_command(subparsers),
        "draft-agreement": register_draft_agreement_command(subparsers),
        "agreement-status": register_agreement_status_command(subparsers),
        "read-notification": register_read_notification_command(subparsers),
        "clear-notifications": register_clear_notifications_command(subparsers),
        "backup": register_backup_command(subparsers),
        "import": register_import_command(subparsers),
        "auto-backup": register_auto_backup_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stands": register_stands_command(subparsers),
        "next-stand": register_next_stand_command(subparsers),
        "financials": register_financials_command(subparsers),
        "statement": register_statement_command(subparsers),
        "installments": register_installments_command(subparsers),
        "agent-performance": register_agent_performance_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "sales-report": register_sales_report_command(subparsers),
        "reconciliation": register_reconciliation_command(subparsers),
        "inventory": register_inventory_command(subparsers),
        "commissions": register_commissions_command(subparsers),
        "audit-log": register_audit_log_command(subparsers),
        "notifications": register_notifications_command(subparsers),
        "pending-agreements": register_pending_agreements_command(subparsers),
        "export-xlsx": register_export_xlsx_command(subparsers),
        "draft-clause": register_draft_clause_command(subparsers),
        "ask": register_ask_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *arguments: str,
) -> CommandSpec:
    """Build a spec whose parser only takes required ``--<id>`` style options."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        for argument in arguments:
            parser.add_argument(argument, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_user_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-user``."""
    name = "add-user"
    help_text = "Register a new agency user."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--email", required=True)
        parser.add_argument("--role", choices=[member.value for member in UserRole], default=UserRole.AGENT.value)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_user)


def register_add_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-client``."""
    name = "add-client"
    help_text = "Register a new client."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--id-number", required=True, help="ID or passport number.")
        parser.add_argument("--email", default="")
        parser.add_argument("--phone", default="")
        parser.add_argument("--address", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_client)


def register_delete_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("delete-client", "Delete a client without sales.", run_delete_client, "--client-id")


def _add_developer_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--contact-person", default="Pending")
    parser.add_argument("--email", default="pending@example.com")
    parser.add_argument("--total-stands", type=int, default=0)
    parser.add_argument("--deposit-terms", default=None, help='E.g. "25%%" or "$5000 Flat".')
    parser.add_argument("--financing-terms", default=None, help='E.g. "36 Months @ 12%% p.a".')
    parser.add_argument("--mandate-holder-id", default=None)


def register_add_developer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-developer``."""
    name = "add-developer"
    help_text = "Register a new developer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_developer_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_developer)


def register_update_developer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-developer``."""
    name = "update-developer"
    help_text = "Change the supplied details of an existing developer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--developer-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--contact-person", default=None)
        parser.add_argument("--email", default=None)
        parser.add_argument("--total-stands", type=int, default=None)
        parser.add_argument("--deposit-terms", default=None)
        parser.add_argument("--financing-terms", default=None)
        parser.add_argument("--mandate-holder-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_developer)


def register_delete_developer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("delete-developer", "Delete a developer without stands.", run_delete_developer, "--developer-id")


def register_add_stand_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-stand``."""
    name = "add-stand"
    help_text = "Add a single stand to a developer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--developer-id", required=True)
        parser.add_argument("--stand-number", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--size", default="500")
        parser.add_argument("--deposit-required", default=None)
        parser.add_argument("--financing-terms", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_stand)


def register_batch_stands_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``batch-stands``."""
    name = "batch-stands"
    help_text = "Generate a numbered range of stands, skipping existing numbers."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--developer-id", required=True)
        parser.add_argument("--start", type=int, required=True)
        parser.add_argument("--end", type=int, required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--size", default="500")
        parser.add_argument("--deposit-required", default=None)
        parser.add_argument("--financing-terms", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_batch_stands)


def register_delete_stand_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("delete-stand", "Delete a stand that is not sold.", run_delete_stand, "--stand-id")


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Sell an available stand to a client."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--stand-id", required=True)
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--agent-id", required=True)
        parser.add_argument("--deposit", default="0")
        parser.add_argument("--sale-date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_cancel_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("cancel-sale", "Cancel a sale and release its stand.", run_cancel_sale, "--sale-id")


def register_complete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("complete-sale", "Mark a sale as completed.", run_complete_sale, "--sale-id")


def register_pay_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay``."""
    name = "pay"
    help_text = "Record a payment against a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in PaymentType],
            default=PaymentType.INSTALLMENT.value,
        )
        parser.add_argument("--reference", default=None)
        parser.add_argument("--receipt-no", dest="receipt_no", default=None, help="Manual receipt book number.")
        parser.add_argument("--date", dest="payment_date", type=date.fromisoformat, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay)


def register_pay_commission_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("pay-commission", "Mark a commission as paid.", run_pay_commission, "--commission-id")


def register_add_template_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-template``."""
    name = "add-template"
    help_text = "Store an agreement template read from a text file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--file", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_template)


def register_draft_agreement_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``draft-agreement``."""
    name = "draft-agreement"
    help_text = "Draft a sales agreement for a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.add_argument("--template-id", default=None)
        parser.add_argument("--conditions", default="", help="Special conditions.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_draft_agreement)


def register_agreement_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``agreement-status``."""
    name = "agreement-status"
    help_text = "Approve, reject, or otherwise move an agreement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--agreement-id", required=True)
        parser.add_argument("--status", choices=[member.value for member in AgreementStatus], required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_agreement_status)


def register_read_notification_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("read-notification", "Mark a notification as read.", run_read_notification, "--notification-id")


def register_clear_notifications_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("clear-notifications", "Remove all notifications.", run_clear_notifications)


def register_backup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("backup", "Write a full backup into the backup directory.", run_backup)


def register_import_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import``."""
    name = "import"
    help_text = "Replace all data with the content of an export file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--file", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import)


def register_auto_backup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``auto-backup``."""
    name = "auto-backup"
    help_text = "Enable or disable the auto-backup flag."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("state", choices=["on", "off"])
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_auto_backup)


def register_stands_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stands``."""
    name = "stands"
    help_text = "List stands, optionally filtered."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--developer-id", default=None)
        parser.add_argument("--status", choices=[member.value for member in StandStatus], default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stands)


def register_next_stand_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("next-stand", "Show the next available stand of a developer.", run_next_stand, "--developer-id")


def register_financials_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("financials", "Show price, paid, and balance of a sale.", run_financials, "--sale-id")


def register_statement_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("statement", "Print the client statement of a sale.", run_statement, "--sale-id")


def register_installments_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``installments``."""
    name = "installments"
    help_text = "Show installment account health for open sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", default=None, help="Project a single sale only.")
        parser.add_argument("--today", type=date.fromisoformat, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_installments)


def register_agent_performance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("agent-performance", "Show sales and commission of an agent.", run_agent_performance, "--agent-id")


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("dashboard", "Show headline revenue and occupancy figures.", run_dashboard)


def register_sales_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales-report``."""
    name = "sales-report"
    help_text = "Show revenue grouped by month, ISO week, or developer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--by", choices=["month", "week", "developer"], default="month")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_reconciliation_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reconciliation``."""
    name = "reconciliation"
    help_text = "Show what each developer is owed."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--developer-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_reconciliation)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("inventory", "Show stand counts per status.", run_inventory)


def register_commissions_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``commissions``."""
    name = "commissions"
    help_text = "List commissions and their totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--agent-id", default=None)
        parser.add_argument("--status", choices=[member.value for member in CommissionStatus], default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_commissions)


def register_audit_log_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``audit-log``."""
    name = "audit-log"
    help_text = "Display the audit trail, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=20)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_audit_log)


def register_notifications_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``notifications``."""
    name = "notifications"
    help_text = "Display notifications, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--unread", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_notifications)


def register_pending_agreements_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    return _simple_command("pending-agreements", "List sales that have no agreement yet.", run_pending_agreements)


def register_export_xlsx_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export-xlsx``."""
    name = "export-xlsx"
    help_text = "Export every collection to an Excel workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export_xlsx)


def register_draft_clause_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``draft-clause``."""
    name = "draft-clause"
    help_text = "Ask the assistant to draft a contract clause."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("requirement")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_draft_clause)


def register_ask_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ask``."""
    name = "ask"
    help_text = "Ask the assistant a question about the sales data."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("query")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_ask)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve and validate the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def _optional_money(raw: Optional[str]) -> Optional[Decimal]:
    return None if raw is None else Decimal(raw)


def translate_add_developer(args: argparse.Namespace) -> core_logic.DeveloperCommand:
    """Translate CLI args into a developer command object."""
    return core_logic.DeveloperCommand(
        name=args.name,
        contact_person=args.contact_person,
        email=args.email,
        total_stands=args.total_stands,
        deposit_terms=args.deposit_terms,
        financing_terms=args.financing_terms,
        mandate_holder_id=args.mandate_holder_id,
    )


_DEVELOPER_FIELDS = (
    "name",
    "contact_person",
    "email",
    "total_stands",
    "deposit_terms",
    "financing_terms",
    "mandate_holder_id",
)


def translate_update_developer(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
) -> core_logic.DeveloperCommand:
    """Merge the supplied options over the stored developer; omitted options keep their value."""
    existing = core_logic.get_developer(context, args.developer_id)
    command = core_logic.DeveloperCommand(**{field: getattr(existing, field) for field in _DEVELOPER_FIELDS})
    supplied = {field: getattr(args, field) for field in _DEVELOPER_FIELDS if getattr(args, field) is not None}
    return replace(command, **supplied)


def translate_add_stand(args: argparse.Namespace) -> core_logic.StandCommand:
    """Translate CLI args into a stand command object."""
    return core_logic.StandCommand(
        developer_id=args.developer_id,
        stand_number=args.stand_number,
        price=Decimal(args.price),
        size=Decimal(args.size),
        deposit_required=_optional_money(args.deposit_required),
        financing_terms=args.financing_terms,
    )


def translate_batch_stands(args: argparse.Namespace) -> core_logic.BatchStandCommand:
    """Translate CLI args into a batch stand command object."""
    return core_logic.BatchStandCommand(
        developer_id=args.developer_id,
        start=args.start,
        end=args.end,
        price=Decimal(args.price),
        size=Decimal(args.size),
        deposit_required=_optional_money(args.deposit_required),
        financing_terms=args.financing_terms,
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        stand_id=args.stand_id,
        client_id=args.client_id,
        agent_id=args.agent_id,
        deposit_amount=Decimal(args.deposit),
        sale_date=args.sale_date,
    )


def translate_pay(args: argparse.Namespace) -> core_logic.PaymentCommand:
    """Translate CLI args into a payment command object."""
    return core_logic.PaymentCommand(
        sale_id=args.sale_id,
        amount=Decimal(args.amount),
        payment_type=PaymentType(args.payment_type),
        reference=args.reference,
        manual_receipt_no=args.receipt_no,
        payment_date=args.payment_date,
    )


def _emit(lines: Iterable[str]) -> None:
    for line in lines:
        print(line)


def _money(value: Decimal) -> str:
    return f"{value:,.2f}"


def run_add_user(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    user = core_logic.add_user(
        context,
        core_logic.UserCommand(name=args.name, email=args.email, role=UserRole(args.role)),
    )
    _emit([f"Added user {user.user_id} ({user.name}, {user.role.value})"])
    return 0


def run_add_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    client = core_logic.add_client(
        context,
        core_logic.ClientCommand(
            name=args.name,
            id_number=args.id_number,
            email=args.email,
            phone=args.phone,
            address=args.address,
        ),
    )
    _emit([f"Added client {client.client_id} ({client.name})"])
    return 0


def run_delete_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_client(context, args.client_id)
    return 0


def run_add_developer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    developer = core_logic.add_developer(context, translate_add_developer(args))
    _emit([f"Added developer {developer.developer_id} ({developer.name})"])
    return 0


def run_update_developer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    developer = core_logic.update_developer(context, args.developer_id, translate_update_developer(context, args))
    _emit([f"Updated developer {developer.developer_id} ({developer.name})"])
    return 0


def run_delete_developer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_developer(context, args.developer_id)
    return 0


def run_add_stand(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    stand = core_logic.add_stand(context, translate_add_stand(args))
    _emit([f"Added stand {stand.stand_id} at {_money(stand.price)}"])
    return 0


def run_batch_stands(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the batch stand generation and report added/skipped counts."""
    result = core_logic.batch_add_stands(context, translate_batch_stands(args))
    _emit([f"Added {result.added_count} stands, skipped {result.skipped_count} existing numbers"])
    return 0


def run_delete_stand(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_stand(context, args.stand_id)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    sale, commission = core_logic.record_sale(context, translate_sale(args))
    _emit(
        [
            f"Recorded sale {sale.sale_id} for stand {sale.stand_id} at {_money(sale.sale_price)}",
            f"Commission {commission.commission_id}: agency {_money(commission.total_agency_commission)}, "
            f"agent {_money(commission.agent_commission)}",
        ]
    )
    return 0


def run_cancel_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.cancel_sale(context, args.sale_id)
    return 0


def run_complete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.mark_sale_completed(context, args.sale_id)
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the payment workflow via the BLL."""
    payment = core_logic.record_payment(context, translate_pay(args))
    financials = core_logic.get_sale_financials(context, payment.sale_id)
    _emit([f"Recorded payment {payment.payment_id}; balance now {_money(financials.balance)}"])
    return 0


def run_pay_commission(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.mark_commission_paid(context, args.commission_id)
    return 0


def run_add_template(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    content = Path(args.file).read_text(encoding="utf-8")
    template = agreements.add_template(context, args.name, content)
    _emit([f"Added template {template.template_id} ({template.name})"])
    return 0


def run_draft_agreement(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    agreement = agreements.create_agreement(
        context,
        args.sale_id,
        template_id=args.template_id,
        special_conditions=args.conditions,
    )
    _emit([f"Drafted agreement {agreement.agreement_id}", "", agreement.content])
    return 0


def run_agreement_status(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    agreements.update_agreement_status(context, args.agreement_id, AgreementStatus(args.status))
    return 0


def run_read_notification(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.mark_notification_read(context, args.notification_id)
    return 0


def run_clear_notifications(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.clear_notifications(context)
    _emit([f"Cleared {removed} notifications"])
    return 0


def run_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record, path = core_logic.create_backup(context)
    _emit([f"Backup written to {path} ({record.size}, {record.record_count} records)"])
    return 0


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    count = core_logic.import_snapshot(context, args.file)
    _emit([f"Imported {count} records"])
    return 0


def run_auto_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.set_auto_backup(context, args.state == "on")
    return 0


def run_stands(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    status = StandStatus(args.status) if args.status else None
    stands = core_logic.list_stands(context, developer_id=args.developer_id, status=status)
    _emit(
        f"{stand.stand_id:<20} #{stand.stand_number:<8} {stand.status.value:<10} {_money(stand.price):>14}"
        for stand in stands
    )
    return 0


def run_next_stand(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    stand = core_logic.next_available_stand(context, args.developer_id)
    _emit([f"Next available stand: {stand.stand_id} (#{stand.stand_number})" if stand else "No stands available"])
    return 0


def run_financials(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    financials = core_logic.get_sale_financials(context, args.sale_id)
    _emit(
        [
            f"Price:   {_money(financials.price)}",
            f"Paid:    {_money(financials.paid)}",
            f"Balance: {_money(financials.balance)}",
        ]
    )
    return 0


def run_statement(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print a client statement; unknown sales print nothing and succeed."""
    statement = core_logic.build_client_statement(context, args.sale_id)
    if statement is None:
        _emit([f"No sale found with id {args.sale_id}"])
        return 0
    client_name = statement.client.name if statement.client else statement.sale.client_name
    stand_number = statement.stand.stand_number if statement.stand else statement.sale.stand_id
    lines = [
        f"{context.settings.agency_name} - Statement of Account",
        f"Client: {client_name}",
        f"Stand:  #{stand_number}" + (f" ({statement.developer.name})" if statement.developer else ""),
        f"Price:  {_money(statement.sale.sale_price)}",
        "",
    ]
    for payment in statement.payments:
        receipt = f" receipt {payment.manual_receipt_no}" if payment.manual_receipt_no else ""
        lines.append(
            f"{payment.payment_date.isoformat()}  {payment.payment_type.value:<13} {_money(payment.amount):>14}  "
            f"{payment.reference}{receipt}"
        )
    lines.extend(["", f"Total paid:  {_money(statement.total_paid)}", f"Outstanding: {_money(statement.outstanding)}"])
    _emit(lines)
    return 0


def run_installments(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.sale_id:
        projections = [core_logic.project_installment_account(context, args.sale_id, today=args.today)]
        summary = None
    else:
        projections, summary = core_logic.list_installment_accounts(context, today=args.today)
    for projection in projections:
        due = projection.next_due_date.isoformat() if projection.next_due_date else "-"
        _emit(
            [
                f"{projection.sale_id:<28} {projection.status.value:<8} balance {_money(projection.balance):>14} "
                f"monthly {_money(projection.monthly_amount):>12} due {_money(projection.due_amount):>12} next {due}"
            ]
        )
    if summary is not None:
        _emit(
            [
                f"Outstanding: {_money(summary.total_outstanding)}",
                f"Overdue:     {_money(summary.total_overdue)} across {summary.overdue_count} accounts",
            ]
        )
    return 0


def run_agent_performance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    with context.lock:
        performance = reports.get_agent_performance(context.snapshot, args.agent_id)
    _emit(
        [
            f"Sales:      {performance.count}",
            f"Volume:     {_money(performance.total_sales)}",
            f"Commission: {_money(performance.total_commission)}",
        ]
    )
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    with context.lock:
        summary = reports.dashboard_summary(context.snapshot)
    _emit(
        [
            f"Revenue:        {_money(summary.total_revenue)} ({summary.sales_count} sales)",
            f"Stands sold:    {summary.sold_stands}/{summary.total_stands} ({summary.occupancy_rate}%)",
            f"Average sale:   {_money(summary.average_sale_price)}",
            f"Collected:      {_money(summary.total_collected)}",
            f"Outstanding:    {_money(summary.total_outstanding)}",
        ]
    )
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    with context.lock:
        if args.by == "developer":
            rows: Iterable[Any] = [
                (row.name, row.revenue, row.count) for row in reports.sales_by_developer(context.snapshot)
            ]
        elif args.by == "week":
            rows = [(row.period, row.revenue, row.count) for row in reports.sales_by_week(context.snapshot)]
        else:
            rows = [(row.period, row.revenue, row.count) for row in reports.sales_by_month(context.snapshot)]
    _emit(f"{label:<24} {_money(revenue):>16} {count:>5}" for label, revenue, count in rows)
    return 0


def run_reconciliation(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    with context.lock:
        rows = reports.developer_reconciliation(context.snapshot, args.developer_id)
    for row in rows:
        _emit(
            [
                f"{row.name} ({row.stands_sold} sold)",
                f"  Expected:    {_money(row.expected)}",
                f"  Collected:   {_money(row.collected)}",
                f"  Outstanding: {_money(row.outstanding)}",
                f"  Net due:     {_money(row.net_due)}",
            ]
        )
    return 0


def run_inventory(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    with context.lock:
        status = reports.inventory_status(context.snapshot)
    _emit(f"{key.value:<10} {count}" for key, count in status.totals.items())
    return 0


def run_commissions(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    status = CommissionStatus(args.status) if args.status else None
    commissions = core_logic.list_commissions(context, agent_id=args.agent_id, status=status)
    with context.lock:
        summary = reports.commission_summary(context.snapshot, agent_id=args.agent_id, status=status)
    _emit(
        f"{c.commission_id:<28} {c.agent_id:<10} {c.status.value:<8} {_money(c.agent_commission):>12}"
        for c in commissions
    )
    _emit(
        [
            f"Agency revenue: {_money(summary.agency_revenue)}",
            f"Agent payout:   {_money(summary.agent_payout)} "
            f"(pending {_money(summary.pending_payout)}, paid {_money(summary.paid_payout)})",
        ]
    )
    return 0


def run_audit_log(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entries = core_logic.list_audit_logs(context, limit=args.limit)
    _emit(f"{entry.timestamp}  {entry.user_id:<8} {entry.action:<18} {entry.details}" for entry in entries)
    return 0


def run_notifications(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    notifications = core_logic.list_notifications(context, unread_only=args.unread)
    _emit(
        f"{'*' if not n.read else ' '} {n.notification_id:<30} [{n.notification_type.value}] {n.title}: {n.message}"
        for n in notifications
    )
    return 0


def run_pending_agreements(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    _emit(f"{sale.sale_id:<28} {sale.client_name}" for sale in agreements.sales_without_agreement(context))
    return 0


def run_export_xlsx(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    path = core_logic.export_workbook(context, args.output)
    _emit([f"Workbook written to {path}"])
    return 0


def run_draft_clause(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    generator = assistant.build_text_generator(context.settings)
    _emit([assistant.generate_agreement_clause(generator, args.requirement)])
    return 0


def run_ask(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    generator = assistant.build_text_generator(context.settings)
    with context.lock:
        payload = assistant.sales_data_payload(context.snapshot)
    _emit(
        [
            assistant.analyze_sales_data(
                generator,
                args.query,
                payload,
                agency_name=context.settings.agency_name,
            )
        ]
    )
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_snapshot(context: core_logic.RuntimeContext) -> None:
    """Persist the snapshot after a successful command when auto-persist is off."""
    if not core_logic.persist_context(context):
        raise RuntimeError(f"Unable to write data file '{context.settings.data_file}'")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and not context.settings.auto_persist:
            persist_snapshot(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
