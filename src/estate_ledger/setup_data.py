"""Utility for initializing an Estate Ledger installation.

The module doubles as a script (``estate-setup``) and as a library used by
tests. It can write a starter ``config.ini`` and the initial JSON snapshot the
configuration points at, optionally seeded with demonstration records.
"""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from datetime import date
from pathlib import Path
from typing import Sequence

from . import data_manager
from .constants import (
    AGENCY_COMMISSION_RATE,
    AGENT_COMMISSION_RATE,
    EXPECTED_SCHEMA_VERSION,
    CommissionStatus,
    PaymentType,
    SaleStatus,
    StandStatus,
    UserRole,
)
from .data_manager import (
    ClientRecord,
    CommissionRecord,
    DeveloperRecord,
    PaymentRecord,
    SaleRecord,
    Snapshot,
    StandRecord,
    UserRecord,
)

CONFIG_FILE = data_manager.CONFIG_FILE_NAME

CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "AgencyName = {agency_name}\n"
    "SchemaVersion = {schema_version}\n"
    "AutoPersist = yes\n"
    "BackupDir = backups\n\n"
    "[Defaults]\n"
    "CurrentUser = {current_user}\n\n"
    "[Assistant]\n"
    "Model = gemini-2.5-flash\n"
    "ApiKeyEnv = GEMINI_API_KEY\n"
    "TimeoutSeconds = 30\n"
)


def write_config(
    destination: Path,
    *,
    data_file: str = "estate_data.json",
    agency_name: str = "Fine Estate",
    current_user: str = "u1",
    overwrite: bool = False,
) -> Path:
    """Write a starter ``config.ini``.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(
        CONFIG_TEMPLATE.format(
            data_file=data_file,
            agency_name=agency_name,
            schema_version=EXPECTED_SCHEMA_VERSION,
            current_user=current_user,
        ),
        encoding="utf-8",
    )
    return destination


def demo_snapshot() -> Snapshot:
    """Default snapshot plus two agents, two developers, and one completed sale."""

    snapshot = data_manager.default_snapshot()
    snapshot.users.extend(
        [
            UserRecord("u2", "John Doe", UserRole.AGENT, "john@fineestate.com"),
            UserRecord("u3", "Jane Smith", UserRole.AGENT, "jane@fineestate.com"),
        ]
    )
    snapshot.clients.extend(
        [
            ClientRecord("c1", "Alice Green", "alice@example.com", "555-0101", "ID987654321", "123 Maple St", date(2023, 10, 1)),
            ClientRecord("c2", "Robert Fox", "bob@example.com", "555-0102", "ID123456789", "456 Oak Ave", date(2023, 10, 5)),
        ]
    )
    snapshot.developers.extend(
        [
            DeveloperRecord("d1", "Sunset Properties", "Mike Ross", "mike@sunset.com", 50, "10%", "24 Months", "u2"),
            DeveloperRecord("d2", "Urban Living", "Rachel Zane", "rachel@urban.com", 30, "$5000 Flat", "12 Months", "u3"),
        ]
    )
    snapshot.stands.extend(
        [
            StandRecord("d1-101", "101", "d1", Decimal("150000"), Decimal("500"), StandStatus.AVAILABLE, Decimal("15000"), "24 Months"),
            StandRecord("d1-102", "102", "d1", Decimal("160000"), Decimal("550"), StandStatus.SOLD, Decimal("16000"), "24 Months"),
            StandRecord("d1-103", "103", "d1", Decimal("155000"), Decimal("510"), StandStatus.AVAILABLE, Decimal("15500"), "24 Months"),
            StandRecord("d2-201", "201", "d2", Decimal("200000"), Decimal("400"), StandStatus.AVAILABLE, Decimal("5000"), "12 Months"),
        ]
    )
    sale_price = Decimal("160000")
    snapshot.sales.append(
        SaleRecord("s1", "d1-102", "d1", "u2", "c1", "Alice Green", date(2023, 10, 15), sale_price, Decimal("16000"), SaleStatus.COMPLETED)
    )
    snapshot.commissions.append(
        CommissionRecord(
            commission_id="cm1",
            sale_id="s1",
            agent_id="u2",
            stand_id="d1-102",
            sale_price=sale_price,
            total_agency_commission=sale_price * AGENCY_COMMISSION_RATE,
            agent_commission=sale_price * AGENT_COMMISSION_RATE,
            status=CommissionStatus.PENDING,
            date_created=date(2023, 10, 15),
        )
    )
    snapshot.payments.append(
        PaymentRecord("p1", "s1", Decimal("16000"), date(2023, 10, 15), "REF001", PaymentType.DEPOSIT)
    )
    return snapshot


def create_data_file(destination: Path, *, demo: bool = False, overwrite: bool = False) -> Path:
    """Write the initial snapshot to ``destination``.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing data file: {destination}")
    snapshot = demo_snapshot() if demo else data_manager.default_snapshot()
    data_manager.save_snapshot(snapshot, destination)
    return destination


def run_from_config(config_path: Path, *, demo: bool = False, overwrite: bool = False) -> Path:
    """Create the data file the configuration at ``config_path`` points to."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_data_file(settings.data_file, demo=demo, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize Estate Ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter configuration file first when none exists.",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Seed the data file with demonstration records.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target data file if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Estate Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        if args.init_config and not config_path.exists():
            write_config(config_path)
            print(f"Wrote starter configuration '{config_path}'.")
        output_path = run_from_config(config_path, demo=args.demo, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write data file: {exc}")
        return 1

    print(f"\n[SUCCESS] Created data file at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
