"""Shared pytest fixtures and utilities for Estate Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from estate_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from estate_ledger.setup_data import create_data_file, demo_snapshot, write_config  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_USER_ID = "u1"


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_file: Path
    current_user: str
    agency_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/data-file bundles on demand."""

    def _create_config(
        *,
        demo: bool = False,
        with_data_file: bool = True,
        agency_name: str = "Test Estates",
        current_user: str = DEFAULT_USER_ID,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True)
        config_path = write_config(
            bundle_dir / "config.ini",
            data_file="estate_data.json",
            agency_name=agency_name,
            current_user=current_user,
        )
        data_file = bundle_dir / "estate_data.json"
        if with_data_file:
            create_data_file(data_file, demo=demo)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_file=data_file,
            current_user=current_user,
            agency_name=agency_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """In-memory settings; auto-persist is off so unit tests never touch disk."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "estate_data.json",
        agency_name="Test Estates",
        schema_version=DEFAULT_SCHEMA_VERSION,
        current_user_id=DEFAULT_USER_ID,
        auto_persist=False,
        backup_dir=tmp_path / "backups",
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Context over the default snapshot: one admin and the standard template."""

    return core_logic.RuntimeContext(settings=settings, snapshot=data_manager.default_snapshot())


@pytest.fixture
def demo_context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Context over the demonstration data.

    Agents ``u2``/``u3``, clients ``c1``/``c2``, developers ``d1`` (10%, 24
    months) and ``d2`` ($5000 flat, 12 months), AVAILABLE stands ``d1-101``,
    ``d1-103`` and ``d2-201``, and sale ``s1`` of ``d1-102``.
    """

    return core_logic.RuntimeContext(settings=settings, snapshot=demo_snapshot())


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return cli.build_parser()


@pytest.fixture
def command_table(cli_parser: argparse.ArgumentParser):
    """Return the fully wired command table."""

    return cli.configure_subcommands(cli_parser)
